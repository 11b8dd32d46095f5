"""Read migrations from a source driver and apply them to a database driver."""

from __future__ import annotations

import abc
import contextlib
import threading
import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Protocol

DEFAULT_PREFETCH_MIGRATIONS = 10
"""Default number of migrations to read ahead of the one being applied."""

DEFAULT_LOCK_TIMEOUT = 15.0
"""Default number of seconds a database driver has to acquire its lock."""

NIL_VERSION = -1
"""Version reported by a database on which no migration has been applied."""


class MigrateError(Exception):
    """Base class of the errors raised while migrating."""


class NoChangeError(MigrateError):
    """Nothing had to be done."""

    def __init__(self, message: str = "no change") -> None:
        super().__init__(message)


class NilVersionError(MigrateError):
    """No migration has been applied yet."""

    def __init__(self, message: str = "no migration") -> None:
        super().__init__(message)


class InvalidVersionError(MigrateError):
    """A forced version was below -1."""

    def __init__(self, message: str = "version must be >= -1") -> None:
        super().__init__(message)


class LockedError(MigrateError):
    """The database is locked already."""

    def __init__(self, message: str = "database locked") -> None:
        super().__init__(message)


class LockTimeoutError(MigrateError):
    """The database lock could not be acquired in time."""

    def __init__(self, message: str = "timeout: can't acquire database lock") -> None:
        super().__init__(message)


class ShortLimitError(MigrateError):
    """The source held fewer migrations than the requested number of steps."""

    def __init__(self, short: int) -> None:
        super().__init__(f"limit {short} short")
        self.short = short


class DirtyError(MigrateError):
    """The database was left dirty by a failed migration."""

    def __init__(self, version: int) -> None:
        super().__init__(f"Dirty database version {version}. Fix and force version.")
        self.version = version


class Logger(Protocol):
    """Receives progress messages from a :class:`Migrate` instance."""

    def printf(self, message: str) -> None:
        """Write an already formatted message."""

    def verbose(self) -> bool:
        """Return True when verbose output is wanted."""


class SourceDriver(abc.ABC):
    """Where migrations are read from.

    Missing versions or migrations are reported with FileNotFoundError.
    """

    @abc.abstractmethod
    def first(self) -> int:
        """Return the lowest version."""

    @abc.abstractmethod
    def prev(self, version: int) -> int:
        """Return the version before ``version``."""

    @abc.abstractmethod
    def next(self, version: int) -> int:
        """Return the version after ``version``."""

    @abc.abstractmethod
    def read_up(self, version: int) -> tuple[bytes, str]:
        """Return the body and identifier of the up migration of ``version``."""

    @abc.abstractmethod
    def read_down(self, version: int) -> tuple[bytes, str]:
        """Return the body and identifier of the down migration of ``version``."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release the source."""


class DatabaseDriver(abc.ABC):
    """Where migrations are applied."""

    @abc.abstractmethod
    def lock(self) -> None:
        """Take the migration lock, raising if it is held."""

    @abc.abstractmethod
    def unlock(self) -> None:
        """Release the migration lock."""

    @abc.abstractmethod
    def run(self, body: bytes) -> None:
        """Execute a migration body."""

    @abc.abstractmethod
    def set_version(self, version: int, dirty: bool) -> None:
        """Record the current version and dirty state."""

    @abc.abstractmethod
    def version(self) -> tuple[int, bool]:
        """Return the current version (NIL_VERSION if none) and dirty state."""

    @abc.abstractmethod
    def drop(self) -> None:
        """Delete everything in the database."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release the database."""


@dataclass
class Migration:
    """One step from ``version`` to ``target_version``; a body of None runs nothing."""

    version: int
    target_version: int
    identifier: str = ""
    body: bytes | None = None
    started_buffering: float = field(default_factory=time.monotonic)
    finished_reading: float = field(default_factory=time.monotonic)

    def log_string(self) -> str:
        """Return a short description for log output."""
        direction = "u" if self.target_version >= self.version else "d"
        text = f"{self.version}/{direction}"
        if self.identifier:
            text += f" {self.identifier}"
        return text


def _format_duration(seconds: float) -> str:
    return f"{seconds * 1000:.3f}ms"


class Migrate:
    """Moves a database between the versions offered by a source."""

    def __init__(
        self,
        source: SourceDriver,
        database: DatabaseDriver,
        source_name: str = "",
        database_name: str = "",
    ) -> None:
        self.source_name = source_name
        self.database_name = database_name
        self._source = source
        self._database = database
        self.log: Logger | None = None
        self.prefetch_migrations = DEFAULT_PREFETCH_MIGRATIONS
        self.lock_timeout = DEFAULT_LOCK_TIMEOUT
        self._stop_event = threading.Event()
        self._is_locked = False
        self._is_locked_mu = threading.Lock()

    def __enter__(self) -> Migrate:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the source and the database, raising if either fails."""
        self._log_verbose("Closing source and database\n")
        errors: list[Exception] = []
        for driver in (self._source, self._database):
            try:
                driver.close()
            except Exception as exc:  # noqa: BLE001 - collected and re-raised
                errors.append(exc)
        if errors:
            raise MigrateError("; ".join(str(e) for e in errors)) from errors[0]

    def request_stop(self) -> None:
        """Stop at the next safe point between migrations."""
        self._stop_event.set()

    def migrate(self, version: int) -> None:
        """Migrate up or down to ``version``."""
        if version < 0:
            raise ValueError("version must be >= 0")
        with self._locked():
            current = self._clean_version()
            self._run_migrations(self._read(current, version))

    def steps(self, n: int) -> None:
        """Apply ``n`` up migrations if positive, ``-n`` down migrations if negative."""
        if n == 0:
            raise NoChangeError()
        with self._locked():
            current = self._clean_version()
            if n > 0:
                self._run_migrations(self._read_up(current, n))
            else:
                self._run_migrations(self._read_down(current, -n))

    def up(self) -> None:
        """Apply every up migration."""
        with self._locked():
            current = self._clean_version()
            self._run_migrations(self._read_up(current, -1))

    def down(self) -> None:
        """Apply every down migration."""
        with self._locked():
            current = self._clean_version()
            self._run_migrations(self._read_down(current, -1))

    def drop(self) -> None:
        """Delete everything in the database."""
        with self._locked():
            self._database.drop()

    def run(self, *args: Migration) -> None:
        """Apply the given migrations without consulting the source."""
        if not args:
            raise NoChangeError()
        with self._locked():
            self._clean_version()
            for migr in args:
                self._log_scheduled(migr)
            self._run_migrations(args)

    def force(self, version: int) -> None:
        """Set ``version`` and clear the dirty state without running anything."""
        if version < -1:
            raise InvalidVersionError()
        with self._locked():
            self._database.set_version(version, False)

    def version(self) -> tuple[int, bool]:
        """Return the current version and dirty state."""
        version, dirty = self._database.version()
        if version == NIL_VERSION:
            raise NilVersionError()
        return version, dirty

    def _clean_version(self) -> int:
        version, dirty = self._database.version()
        if dirty:
            raise DirtyError(version)
        return version

    def _read(self, from_version: int, to_version: int) -> Iterator[Migration]:
        if from_version >= 0:
            self._version_exists(from_version)
        if to_version >= 0:
            self._version_exists(to_version)
        if from_version == to_version:
            raise NoChangeError()

        if from_version < to_version:
            if from_version == -1:
                first = self._source.first()
                yield self._new_migration(first, first)
                from_version = first
            while from_version < to_version:
                if self._should_stop():
                    return
                following = self._source.next(from_version)
                yield self._new_migration(following, following)
                from_version = following
            return

        while from_version > to_version and from_version >= 0:
            if self._should_stop():
                return
            try:
                previous = self._source.prev(from_version)
            except FileNotFoundError:
                if to_version != -1:
                    raise
                previous = None
            if previous is None:
                yield self._new_migration(from_version, -1)
                return
            yield self._new_migration(from_version, previous)
            from_version = previous

    def _read_up(self, from_version: int, limit: int) -> Iterator[Migration]:
        if from_version >= 0:
            self._version_exists(from_version)
        if limit == 0:
            raise NoChangeError()

        count = 0
        while limit == -1 or count < limit:
            if self._should_stop():
                return
            if from_version == -1:
                first = self._source.first()
                yield self._new_migration(first, first)
                from_version = first
                count += 1
                continue
            try:
                following = self._source.next(from_version)
            except FileNotFoundError:
                if limit == -1 and count == 0:
                    raise NoChangeError() from None
                if limit == -1:
                    return
                if count == 0:
                    raise
                raise ShortLimitError(limit - count) from None
            yield self._new_migration(following, following)
            from_version = following
            count += 1

    def _read_down(self, from_version: int, limit: int) -> Iterator[Migration]:
        if from_version >= 0:
            self._version_exists(from_version)
        if limit == 0:
            raise NoChangeError()
        if from_version == -1 and limit == -1:
            raise NoChangeError()
        if from_version == -1 and limit > 0:
            raise FileNotFoundError("no version to migrate down from")

        count = 0
        while limit == -1 or count < limit:
            if self._should_stop():
                return
            try:
                previous: int | None = self._source.prev(from_version)
            except FileNotFoundError:
                previous = None
            if previous is None:
                if limit == -1 or limit - count > 0:
                    first = self._source.first()
                    yield self._new_migration(first, -1)
                    count += 1
                if count < limit:
                    raise ShortLimitError(limit - count)
                return
            yield self._new_migration(from_version, previous)
            from_version = previous
            count += 1

    def _run_migrations(self, migrations: Iterable[Migration]) -> None:
        for migr in migrations:
            if self._should_stop():
                return

            self._database.set_version(migr.target_version, True)
            if migr.body is not None:
                self._log_verbose(f"Read and execute {migr.log_string()}\n")
                self._database.run(migr.body)
            self._database.set_version(migr.target_version, False)

            end_time = time.monotonic()
            read_time = migr.finished_reading - migr.started_buffering
            run_time = end_time - migr.finished_reading
            if self.log is not None:
                if self.log.verbose():
                    self.log.printf(
                        f"Finished {migr.log_string()} "
                        f"(read {_format_duration(read_time)}, ran {_format_duration(run_time)})\n"
                    )
                else:
                    self.log.printf(
                        f"{migr.log_string()} ({_format_duration(read_time + run_time)})\n"
                    )

    def _version_exists(self, version: int) -> None:
        for reader in (self._source.read_up, self._source.read_down):
            try:
                reader(version)
            except FileNotFoundError:
                continue
            return
        raise FileNotFoundError(f"no migration found for version {version}")

    def _should_stop(self) -> bool:
        return self._stop_event.is_set()

    def _new_migration(self, version: int, target_version: int) -> Migration:
        reader = self._source.read_up if target_version >= version else self._source.read_down
        started = time.monotonic()
        try:
            body, identifier = reader(version)
        except FileNotFoundError:
            migr = Migration(version, target_version)
        else:
            migr = Migration(
                version,
                target_version,
                identifier,
                body,
                started_buffering=started,
                finished_reading=time.monotonic(),
            )
        self._log_scheduled(migr)
        return migr

    def _log_scheduled(self, migr: Migration) -> None:
        if self.prefetch_migrations > 0 and migr.body is not None:
            self._log_verbose(f"Start buffering {migr.log_string()}\n")
        else:
            self._log_verbose(f"Scheduled {migr.log_string()}\n")

    def _lock(self) -> None:
        with self._is_locked_mu:
            if self._is_locked:
                raise LockedError()

            outcome: dict[str, BaseException] = {}

            def attempt() -> None:
                try:
                    self._database.lock()
                except BaseException as exc:  # noqa: BLE001 - handed back to caller
                    outcome["error"] = exc

            worker = threading.Thread(target=attempt, daemon=True)
            worker.start()
            worker.join(self.lock_timeout)
            if worker.is_alive():
                raise LockTimeoutError()
            if "error" in outcome:
                raise outcome["error"]
            self._is_locked = True

    def _unlock(self) -> None:
        with self._is_locked_mu:
            self._database.unlock()
            self._is_locked = False

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        self._lock()
        try:
            yield
        except BaseException as exc:
            try:
                self._unlock()
            except Exception as unlock_exc:
                raise unlock_exc from exc
            raise
        self._unlock()

    def _log_verbose(self, message: str) -> None:
        if self.log is not None and self.log.verbose():
            self.log.printf(message)