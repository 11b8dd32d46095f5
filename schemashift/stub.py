"""In-memory database driver that records what it is asked to do."""

from __future__ import annotations

from schemashift.migrate import NIL_VERSION, DatabaseDriver, LockedError

DROP = "DROP"
"""Entry appended to the migration sequence when the database is dropped."""


class StubDatabase(DatabaseDriver):
    """Keeps version state in memory and logs every migration body it runs."""

    def __init__(self, url: str = "", instance: object = None) -> None:
        self.url = url
        self.instance = instance
        self.current_version = NIL_VERSION
        self.migration_sequence: list[str] = []
        self.last_run_migration: bytes | None = None
        self.is_dirty = False
        self.is_locked = False

    def close(self) -> None:
        """Nothing to release."""

    def lock(self) -> None:
        if self.is_locked:
            raise LockedError()
        self.is_locked = True

    def unlock(self) -> None:
        self.is_locked = False

    def run(self, body: bytes | str) -> None:
        data = body.encode("utf-8") if isinstance(body, str) else bytes(body)
        self.last_run_migration = data
        self.migration_sequence.append(data.decode("utf-8"))

    def set_version(self, version: int, dirty: bool) -> None:
        self.current_version = version
        self.is_dirty = dirty

    def version(self) -> tuple[int, bool]:
        return self.current_version, self.is_dirty

    def drop(self) -> None:
        self.current_version = NIL_VERSION
        self.last_run_migration = None
        self.migration_sequence.append(DROP)

    def equal_sequence(self, sequence: list[str]) -> bool:
        """Return True if exactly ``sequence`` has been run, in order."""
        return list(sequence) == self.migration_sequence