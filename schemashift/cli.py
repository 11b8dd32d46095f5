"""Command line interface of the migration tool."""

from __future__ import annotations

import re
import signal
import sys
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from importlib import metadata
from typing import TextIO
from urllib.parse import urlsplit

from schemashift.commands import (
    DEFAULT_TIME_FORMAT,
    create_migration,
    down_cmd,
    drop_cmd,
    force_cmd,
    goto_cmd,
    num_down_migrations_from_args,
    up_cmd,
    version_cmd,
)
from schemashift.migrate import DatabaseDriver, Migrate, MigrateError, SourceDriver
from schemashift.sqlite import open_sqlite
from schemashift.stub import StubDatabase

_SOURCE_DRIVERS: dict[str, Callable[[str], SourceDriver]] = {}
_DATABASE_DRIVERS: dict[str, Callable[[str], DatabaseDriver]] = {
    "sqlite3": open_sqlite,
    "stub": lambda url: StubDatabase(url=url),
}


class _Exit(Exception):
    def __init__(self, code: int) -> None:
        super().__init__(code)
        self.code = code


class CliLog:
    """Logger writing to standard error, with timestamps when verbose."""

    def __init__(self, verbose: bool = False, stream: TextIO | None = None) -> None:
        self._verbose = verbose
        self._stream = stream

    def _write(self, text: str) -> None:
        stream = self._stream if self._stream is not None else sys.stderr
        stream.write(text)
        stream.flush()

    def printf(self, message: str) -> None:
        """Write an already formatted message."""
        if self._verbose:
            if not message.endswith("\n"):
                message += "\n"
            message = time.strftime("%Y/%m/%d %H:%M:%S ") + message
        self._write(message)

    def println(self, *args: object) -> None:
        """Write the arguments separated by spaces, followed by a newline."""
        text = " ".join(str(arg) for arg in args) + "\n"
        if self._verbose:
            text = time.strftime("%Y/%m/%d %H:%M:%S ") + text
        self._write(text)

    def verbose(self) -> bool:
        """Return True when verbose output is wanted."""
        return self._verbose

    def _fatal(self, *args: object) -> None:
        self.println(*args)
        raise _Exit(1)

    def _fatal_err(self, error: BaseException) -> None:
        self._fatal("error:", error)


@dataclass(frozen=True)
class _Flag:
    kind: str
    default: object


class _FlagError(Exception):
    pass


_TRUE = {"1", "t", "T", "true", "TRUE", "True"}
_FALSE = {"0", "f", "F", "false", "FALSE", "False"}

_GLOBAL_FLAGS = {
    "help": _Flag("bool", False),
    "version": _Flag("bool", False),
    "verbose": _Flag("bool", False),
    "prefetch": _Flag("uint", 10),
    "lock-timeout": _Flag("uint", 15),
    "path": _Flag("str", ""),
    "database": _Flag("str", ""),
    "source": _Flag("str", ""),
}

_CREATE_FLAGS = {
    "ext": _Flag("str", ""),
    "dir": _Flag("str", ""),
    "format": _Flag("str", DEFAULT_TIME_FORMAT),
    "seq": _Flag("bool", False),
    "digits": _Flag("int", 6),
}

_DOWN_FLAGS = {"all": _Flag("bool", False)}

_SIGNED_INT = re.compile(r"[+-]?[0-9]+")
_UNSIGNED_INT = re.compile(r"[0-9]+")


def _convert(kind: str, raw: str, name: str) -> object:
    if kind == "str":
        return raw
    try:
        value = int(raw, 0)
    except ValueError:
        raise _FlagError(f'invalid value "{raw}" for flag -{name}: parse error') from None
    if kind == "uint" and value < 0:
        raise _FlagError(f'invalid value "{raw}" for flag -{name}: parse error')
    return value


def _parse_flags(args: list[str], spec: dict[str, _Flag]) -> tuple[dict[str, object], list[str]]:
    """Parse leading flags in the single- or double-dash style; stop at the first argument."""
    values = {name: flag.default for name, flag in spec.items()}
    i = 0
    while i < len(args):
        arg = args[i]
        if len(arg) < 2 or not arg.startswith("-"):
            break
        if arg == "--":
            i += 1
            break
        body = arg[2:] if arg.startswith("--") else arg[1:]
        if not body or body.startswith("-") or body.startswith("="):
            raise _FlagError(f"bad flag syntax: {arg}")
        i += 1
        name, has_value, raw = body.partition("=")
        flag = spec.get(name)
        if flag is None:
            raise _FlagError(f"flag provided but not defined: -{name}")
        if flag.kind == "bool":
            if not has_value or raw in _TRUE:
                values[name] = True
            elif raw in _FALSE:
                values[name] = False
            else:
                raise _FlagError(f'invalid boolean value "{raw}" for -{name}')
            continue
        if not has_value:
            if i >= len(args):
                raise _FlagError(f"flag needs an argument: -{name}")
            raw = args[i]
            i += 1
        values[name] = _convert(flag.kind, raw, name)
    return values, args[i:]


def _usage_text() -> str:
    return (
        """Usage: migrate OPTIONS COMMAND [arg...]
       migrate [ -version | -help ]

Options:
  -source          Location of the migrations (driver://url)
  -path            Shorthand for -source=file://path
  -database        Run migrations against this database (driver://url)
  -prefetch N      Number of migrations to load in advance before executing (default 10)
  -lock-timeout N  Allow N seconds to acquire database lock (default 15)
  -verbose         Print verbose logging
  -version         Print version
  -help            Print usage

Commands:
  create [-ext E] [-dir D] [-seq] [-digits N] [-format] NAME
               Create a set of timestamped up/down migrations titled NAME, in directory D with extension E.
               Use -seq option to generate sequential up/down migrations with N digits.
               Use -format option to specify a strftime format string, or "unix" / "unixNano".
  goto V       Migrate to version V
  up [N]       Apply all or N up migrations
  down [N]     Apply all or N down migrations
  drop         Drop everything inside database
  force V      Set version V but don't run migration (ignores dirty state)
  version      Print current migration version

Source drivers: """
        + ", ".join(sorted(_SOURCE_DRIVERS))
        + "\nDatabase drivers: "
        + ", ".join(sorted(_DATABASE_DRIVERS))
        + "\n"
    )


def _print_usage() -> None:
    sys.stderr.write(_usage_text())


def _package_version() -> str:
    try:
        return metadata.version("schemashift")
    except metadata.PackageNotFoundError:
        return "dev"


def _scheme(url: str) -> str:
    if not url:
        raise MigrateError("URL cannot be empty")
    scheme = urlsplit(url).scheme
    if not scheme:
        raise MigrateError("no scheme")
    return scheme


def _open_migrate(source_url: str, database_url: str) -> Migrate:
    source_name = _scheme(source_url)
    database_name = _scheme(database_url)

    source_opener = _SOURCE_DRIVERS.get(source_name)
    if source_opener is None:
        raise MigrateError(f"source driver: unknown driver {source_name} (forgotten import?)")
    source = source_opener(source_url)

    database_opener = _DATABASE_DRIVERS.get(database_name)
    if database_opener is None:
        source.close()
        raise MigrateError(
            f"database driver: unknown driver {database_name} (forgotten import?)"
        )
    try:
        database = database_opener(database_url)
    except BaseException:
        source.close()
        raise
    return Migrate(source, database, source_name, database_name)


def _elapsed(start: float) -> str:
    return f"{(time.monotonic() - start) * 1000:.3f}ms"


def _arg(args: list[str], index: int) -> str:
    return args[index] if index < len(args) else ""


def _call(log: CliLog, func: Callable[..., object], *args: object) -> None:
    try:
        func(*args)
    except Exception as exc:  # noqa: BLE001 - every failure ends the command
        log._fatal_err(exc)


def _dispatch(
    log: CliLog,
    args: list[str],
    migrater: Migrate | None,
    migrater_error: Exception | None,
) -> int:
    start = time.monotonic()
    start_time = datetime.now()
    command = _arg(args, 0)

    def require() -> Migrate:
        if migrater is None:
            assert migrater_error is not None
            log._fatal_err(migrater_error)
        assert migrater is not None
        return migrater

    def finished() -> None:
        if log.verbose():
            log.println("Finished after", _elapsed(start))

    if command == "create":
        try:
            opts, rest = _parse_flags(args[1:], _CREATE_FLAGS)
        except _FlagError as exc:
            sys.stderr.write(f"{exc}\n")
            return 2
        if not rest:
            log._fatal("error: please specify name")
        if not opts["ext"]:
            log._fatal("error: -ext flag must be specified")
        ext = "." + str(opts["ext"]).removeprefix(".")
        _call(
            log,
            create_migration,
            opts["dir"],
            start_time,
            opts["format"],
            rest[0],
            ext,
            opts["seq"],
            opts["digits"],
        )
        return 0

    if command == "goto":
        m = require()
        raw = _arg(args, 1)
        if raw == "":
            log._fatal("error: please specify version argument V")
        if not _UNSIGNED_INT.fullmatch(raw):
            log._fatal("error: can't read version argument V")
        _call(log, goto_cmd, m, int(raw))
        finished()
        return 0

    if command == "up":
        m = require()
        limit = -1
        raw = _arg(args, 1)
        if raw != "":
            if not _UNSIGNED_INT.fullmatch(raw):
                log._fatal("error: can't read limit argument N")
            limit = int(raw)
        _call(log, up_cmd, m, limit)
        finished()
        return 0

    if command == "down":
        m = require()
        try:
            opts, rest = _parse_flags(args[1:], _DOWN_FLAGS)
        except _FlagError as exc:
            log._fatal_err(exc)
        try:
            num, needs_confirm = num_down_migrations_from_args(bool(opts["all"]), rest)
        except Exception as exc:  # noqa: BLE001
            log._fatal_err(exc)
        if needs_confirm:
            log.println("Are you sure you want to apply all down migrations? [y/N]")
            response = sys.stdin.readline().strip().lower()
            if response == "y":
                log.println("Applying all down migrations")
            else:
                log._fatal("Not applying all down migrations")
        _call(log, down_cmd, m, num)
        finished()
        return 0

    if command == "drop":
        m = require()
        _call(log, drop_cmd, m)
        finished()
        return 0

    if command == "force":
        m = require()
        raw = _arg(args, 1)
        if raw == "":
            log._fatal("error: please specify version argument V")
        if not _SIGNED_INT.fullmatch(raw):
            log._fatal("error: can't read version argument V")
        version = int(raw)
        if version < -1:
            log._fatal("error: argument V must be >= -1")
        _call(log, force_cmd, m, version)
        finished()
        return 0

    if command == "version":
        m = require()
        _call(log, version_cmd, m)
        return 0

    _print_usage()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run the migration tool and return its exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        opts, rest = _parse_flags(args, _GLOBAL_FLAGS)
    except _FlagError as exc:
        sys.stderr.write(f"{exc}\n")
        _print_usage()
        return 2

    log = CliLog(bool(opts["verbose"]))

    if opts["version"]:
        sys.stderr.write(f"{_package_version()}\n")
        return 0
    if opts["help"]:
        _print_usage()
        return 0

    source_url = str(opts["source"])
    if not source_url and opts["path"]:
        source_url = f"file://{opts['path']}"

    migrater: Migrate | None = None
    migrater_error: Exception | None = None
    try:
        migrater = _open_migrate(source_url, str(opts["database"]))
    except Exception as exc:  # noqa: BLE001 - each command decides how to report it
        migrater_error = exc

    previous_handler = None
    in_main_thread = threading.current_thread() is threading.main_thread()
    if migrater is not None:
        migrater.log = log
        migrater.prefetch_migrations = int(opts["prefetch"])
        migrater.lock_timeout = float(int(opts["lock-timeout"]))
        if in_main_thread:
            stopping = threading.Event()
            target = migrater

            def on_interrupt(signum: int, frame: object) -> None:
                if not stopping.is_set():
                    stopping.set()
                    log.println("Stopping after this running migration ...")
                    target.request_stop()

            previous_handler = signal.signal(signal.SIGINT, on_interrupt)

    try:
        return _dispatch(log, rest, migrater, migrater_error)
    except _Exit as exc:
        return exc.code
    finally:
        if migrater is not None:
            if in_main_thread and previous_handler is not None:
                signal.signal(signal.SIGINT, previous_handler)
            try:
                migrater.close()
            except Exception as exc:  # noqa: BLE001
                log.println(exc)


if __name__ == "__main__":
    sys.exit(main())