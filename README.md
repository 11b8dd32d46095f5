# schemashift

schemashift applies numbered migrations to a database, moving the schema up
or down one version at a time. It records the current version in the
database and marks it *dirty* while a migration runs, so a failed migration
can be noticed and repaired with `force`.

## Installing

```
pip install schemashift
```

## Library

Everything centres on `schemashift.migrate.Migrate`, which joins a source of
migrations to a database:

```python
from schemashift.migrate import Migrate, SourceDriver
from schemashift.sqlite import open_sqlite


class DictSource(SourceDriver):
    """Migrations held in memory: {version: {"up": bytes, "down": bytes}}."""

    def __init__(self, migrations):
        self._migrations = migrations
        self._versions = sorted(migrations)

    def first(self):
        if not self._versions:
            raise FileNotFoundError("no migrations")
        return self._versions[0]

    def prev(self, version):
        earlier = [v for v in self._versions if v < version]
        if version not in self._migrations or not earlier:
            raise FileNotFoundError(version)
        return earlier[-1]

    def next(self, version):
        later = [v for v in self._versions if v > version]
        if version not in self._migrations or not later:
            raise FileNotFoundError(version)
        return later[0]

    def _read(self, version, direction):
        try:
            return self._migrations[version][direction], f"{version}.{direction}"
        except KeyError:
            raise FileNotFoundError(version) from None

    def read_up(self, version):
        return self._read(version, "up")

    def read_down(self, version):
        return self._read(version, "down")

    def close(self):
        pass


source = DictSource({
    1: {"up": b"CREATE TABLE users (id INTEGER);", "down": b"DROP TABLE users;"},
    2: {"up": b"ALTER TABLE users ADD email TEXT;"},
})

with Migrate(source, open_sqlite("sqlite3://app.db"), "memory", "sqlite3") as m:
    m.up()
    version, dirty = m.version()   # (2, False)
```

A source implements `SourceDriver` (`first`, `prev`, `next`, `read_up`,
`read_down`, `close`) and reports a missing version or migration with
`FileNotFoundError`. `read_up` and `read_down` return the body and an
identifier used in log output. A version may have only an up or only a down
migration; the missing direction is recorded as a version change without
running anything.

A database implements `DatabaseDriver` (`lock`, `unlock`, `run`,
`set_version`, `version`, `drop`, `close`). Two come with the package:

- `schemashift.sqlite.SqliteDatabase(connection, config)` works on an open
  `sqlite3.Connection`; `SqliteConfig(migrations_table=...)` names the
  version table (default `schema_migrations`), created if it is missing.
  `open_sqlite("sqlite3://path/to/file.db")` opens a file; the query
  parameter `x-migrations-table` picks the version table, other `x-`
  parameters are dropped and the rest are handed to SQLite. Each migration
  body runs inside one transaction.
- `schemashift.stub.StubDatabase` keeps everything in memory and records the
  bodies it runs in `migration_sequence`, useful in tests.

`Migrate` methods:

- `up()`, `down()` – apply every up or down migration
- `steps(n)` – apply `n` up migrations, or `-n` down migrations if negative
- `migrate(version)` – move up or down to `version`
- `force(version)` – set the version (>= -1) and clear the dirty state
- `drop()` – delete everything in the database
- `run(*migrations)` – apply given `Migration` objects without the source
- `version()` – return `(version, dirty)`
- `request_stop()` – stop at the next safe point between migrations
- `close()` – close source and database (also done on leaving a `with` block)

Attributes `log` (any object with `printf(message)` and `verbose()`),
`prefetch_migrations` (default 10) and `lock_timeout` (seconds, default 15)
may be set on an instance.

Failures raise subclasses of `MigrateError`: `NoChangeError`,
`NilVersionError`, `InvalidVersionError`, `LockedError`, `LockTimeoutError`,
`ShortLimitError` (with `.short`) and `DirtyError` (with `.version`). A
version missing from the source raises `FileNotFoundError`.

Helpers:

- `schemashift.lockid.generate_advisory_lock_id(name, *extra_names)` gives
  a stable numeric lock identifier as a string.
- `schemashift.statements.migration_statements(body)` splits a migration on
  semicolons into its non-empty statements.
- `schemashift.commands` holds the command-line commands as functions:
  `create_migration`, `next_seq`, `clean_dir`,
  `num_down_migrations_from_args`, `goto_cmd`, `up_cmd`, `down_cmd`,
  `drop_cmd`, `force_cmd` and `version_cmd`. Bad arguments raise
  `CommandError`.

## Command line

The `schemashift` command creates migration files:

```
schemashift create -ext sql -dir migrations -seq create_users
schemashift create -ext sql -format unix add_email
```

This makes an empty `NAME.up.EXT` / `NAME.down.EXT` pair, prefixed with a
timestamp (strftime `-format`, default `%Y%m%d%H%M%S`, or `unix` /
`unixNano`) or, with `-seq`, with the next zero-padded sequence number found
in the directory (`-digits N`, default 6).

It also has the commands `goto V`, `up [N]`, `down [N]` (`down -all`, or
`down` with no count after a confirmation), `drop`, `force V` and `version`,
and the options `-source`, `-path` (shorthand for `-source=file://path`),
`-database`, `-prefetch N`, `-lock-timeout N`, `-verbose`, `-version` and
`-help`. Ctrl+C stops after the migration that is running. The database
URL schemes it knows are `sqlite3://` and `stub://`.

## What is not included

The package ships no source drivers: there is no reader for migration files
on disk or anywhere else. As a result the command line can only run
`create`, `-help` and `-version`; every command that migrates stops with an
"unknown driver" error. To apply migrations, use the library with a
`SourceDriver` of your own, as shown above. The only database backends are
SQLite and the in-memory stub.