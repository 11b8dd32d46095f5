"""Database driver for SQLite files."""

from __future__ import annotations

import contextlib
import sqlite3
from collections.abc import Iterator
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit

from schemashift.migrate import NIL_VERSION, DatabaseDriver, LockedError, MigrateError

DEFAULT_MIGRATIONS_TABLE = "schema_migrations"


class _QueryError(MigrateError):
    """A statement against the database failed."""

    def __init__(self, message: str, query: str = "") -> None:
        super().__init__(f"{message} in line 0: {query}" if query else message)
        self.query = query


@dataclass
class SqliteConfig:
    """Settings of a :class:`SqliteDatabase`."""

    migrations_table: str = ""
    database_name: str = ""


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "t", "true"}
    return bool(value)


class SqliteDatabase(DatabaseDriver):
    """Applies migrations to an open SQLite connection."""

    def __init__(self, connection: sqlite3.Connection, config: SqliteConfig | None) -> None:
        if config is None:
            raise ValueError("no config")
        connection.execute("SELECT 1").fetchone()
        if not config.migrations_table:
            config.migrations_table = DEFAULT_MIGRATIONS_TABLE
        self._connection = connection
        self.config = config
        self.is_locked = False
        self._ensure_version_table()

    def _ensure_version_table(self) -> None:
        self.lock()
        try:
            table = self.config.migrations_table
            query = (
                f"CREATE TABLE IF NOT EXISTS {table} (version uint64,dirty bool);\n"
                f"CREATE UNIQUE INDEX IF NOT EXISTS version_unique ON {table} (version);\n"
            )
            self._connection.executescript(query)
        finally:
            self.unlock()

    def close(self) -> None:
        self._connection.close()

    def lock(self) -> None:
        if self.is_locked:
            raise LockedError()
        self.is_locked = True

    def unlock(self) -> None:
        self.is_locked = False

    def run(self, body: bytes | str) -> None:
        query = body.decode("utf-8") if isinstance(body, (bytes, bytearray)) else body
        self._execute_query(query)

    def _execute_query(self, query: str) -> None:
        script = f"BEGIN;\n{query}\n;\nCOMMIT;"
        try:
            self._connection.executescript(script)
        except sqlite3.Error as exc:
            if self._connection.in_transaction:
                with contextlib.suppress(sqlite3.Error):
                    self._connection.execute("ROLLBACK")
            raise _QueryError(str(exc), query) from exc

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[None]:
        try:
            self._connection.execute("BEGIN")
        except sqlite3.Error as exc:
            raise _QueryError(f"transaction start failed: {exc}") from exc
        try:
            yield
        except BaseException:
            if self._connection.in_transaction:
                with contextlib.suppress(sqlite3.Error):
                    self._connection.execute("ROLLBACK")
            raise
        try:
            self._connection.execute("COMMIT")
        except sqlite3.Error as exc:
            raise _QueryError(f"transaction commit failed: {exc}") from exc

    def set_version(self, version: int, dirty: bool) -> None:
        table = self.config.migrations_table
        with self._transaction():
            query = f"DELETE FROM {table}"
            try:
                self._connection.execute(query)
                if version >= 0:
                    query = f"INSERT INTO {table} (version, dirty) VALUES (?, ?)"
                    self._connection.execute(query, (version, int(dirty)))
            except sqlite3.Error as exc:
                raise _QueryError(str(exc), query) from exc

    def version(self) -> tuple[int, bool]:
        query = f"SELECT version, dirty FROM {self.config.migrations_table} LIMIT 1"
        try:
            row = self._connection.execute(query).fetchone()
        except sqlite3.Error:
            return NIL_VERSION, False
        if row is None or row[0] is None:
            return NIL_VERSION, False
        return int(row[0]), _as_bool(row[1])

    def drop(self) -> None:
        query = "SELECT name FROM sqlite_master WHERE type = 'table';"
        try:
            rows = self._connection.execute(query).fetchall()
        except sqlite3.Error as exc:
            raise _QueryError(str(exc), query) from exc
        table_names = [name for (name,) in rows if name]
        if not table_names:
            return
        for name in table_names:
            self._execute_query(f"DROP TABLE {name}")
        try:
            self._connection.execute("VACUUM")
        except sqlite3.Error as exc:
            raise _QueryError(str(exc), "VACUUM") from exc


def open_sqlite(url: str) -> SqliteDatabase:
    """Open the SQLite file named by a ``sqlite3://path`` URL.

    The ``x-migrations-table`` query parameter picks the version table;
    other ``x-`` parameters are dropped and the rest go to SQLite.
    """
    parts = urlsplit(url)
    params = parse_qsl(parts.query, keep_blank_values=True)
    migrations_table = next((v for k, v in params if k == "x-migrations-table"), "")
    kept = [(k, v) for k, v in params if not k.startswith("x-")]

    db_file = url.split("?", 1)[0].split("#", 1)[0].replace("sqlite3://", "", 1)
    if kept:
        connection = sqlite3.connect(
            f"file:{db_file}?{urlencode(kept)}", uri=True, check_same_thread=False
        )
    else:
        connection = sqlite3.connect(db_file, check_same_thread=False)

    config = SqliteConfig(
        migrations_table=migrations_table or DEFAULT_MIGRATIONS_TABLE,
        database_name=parts.path,
    )
    try:
        return SqliteDatabase(connection, config)
    except BaseException:
        connection.close()
        raise