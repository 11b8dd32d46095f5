"""The commands of the migration tool, usable without the command line."""

from __future__ import annotations

import glob
import os
import posixpath
import re
import sys
from datetime import datetime, timezone

from schemashift.migrate import Migrate, NoChangeError

DEFAULT_TIME_FORMAT = "%Y%m%d%H%M%S"
"""strftime pattern used for timestamped migration names."""

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_SIGNED_INT = re.compile(r"[+-]?[0-9]+")
_UNSIGNED_INT = re.compile(r"[0-9]+")


class CommandError(Exception):
    """A command was given arguments it cannot work with."""


def _parse_int(text: str) -> int:
    if not _SIGNED_INT.fullmatch(text):
        raise CommandError(f'parsing "{text}": invalid syntax')
    return int(text)


def next_seq(matches: list[str], directory: str, seq_digits: int) -> str:
    """Return the zero-padded sequence number following the last of ``matches``."""
    if seq_digits <= 0:
        raise CommandError("Digits must be positive")

    next_value = 1
    if matches:
        filename = matches[-1]
        stem = filename[len(directory):] if filename.startswith(directory) else filename
        idx = stem.find("_")
        # at least one digit has to precede the underscore
        if idx < 1:
            raise CommandError(f"Malformed migration filename: {filename}")
        next_value = _parse_int(stem[:idx]) + 1

    if next_value <= 0:
        raise CommandError("Next sequence number must be positive")

    text = str(next_value)
    if len(text) > seq_digits:
        raise CommandError(
            f"Next sequence number {text} too large. At most {seq_digits} digits are allowed"
        )
    return text.zfill(seq_digits)


def clean_dir(directory: str) -> str:
    """Normalise ``directory`` to "" or a path ending in a slash."""
    cleaned = posixpath.normpath(directory or ".")
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    if cleaned == ".":
        return ""
    if cleaned == "/":
        return cleaned
    return cleaned + "/"


def _unix_delta(start_time: datetime):
    aware = start_time if start_time.tzinfo is not None else start_time.astimezone()
    return aware.astimezone(timezone.utc) - _EPOCH


def create_migration(
    directory: str,
    start_time: datetime,
    time_format: str,
    name: str,
    ext: str,
    seq: bool,
    seq_digits: int,
) -> tuple[str, str]:
    """Create an empty up and down migration file and return their paths."""
    directory = clean_dir(directory)
    if seq and time_format != DEFAULT_TIME_FORMAT:
        raise CommandError("The seq and format options are mutually exclusive")

    if seq:
        if seq_digits <= 0:
            raise CommandError("Digits must be positive")
        matches = sorted(glob.glob(glob.escape(directory) + "*" + glob.escape(ext)))
        base = f"{directory}{next_seq(matches, directory, seq_digits)}_{name}."
    elif time_format == "":
        raise CommandError("Time format may not be empty")
    elif time_format == "unix":
        delta = _unix_delta(start_time)
        base = f"{directory}{delta.days * 86400 + delta.seconds}_{name}."
    elif time_format == "unixNano":
        delta = _unix_delta(start_time)
        nanos = (delta.days * 86400 + delta.seconds) * 10**9 + delta.microseconds * 1000
        base = f"{directory}{nanos}_{name}."
    else:
        base = f"{directory}{start_time.strftime(time_format)}_{name}."

    if directory:
        os.makedirs(directory, exist_ok=True)

    paths = (f"{base}up{ext}", f"{base}down{ext}")
    for path in paths:
        with open(path, "w", encoding="utf-8"):
            pass
    return paths


def num_down_migrations_from_args(apply_all: bool, args: list[str]) -> tuple[int, bool]:
    """Return how many down migrations to apply (-1 for all) and whether to confirm."""
    if apply_all:
        if args:
            raise CommandError("-all cannot be used with other arguments")
        return -1, False

    if not args:
        return -1, True
    if len(args) == 1:
        value = args[0]
        if not _UNSIGNED_INT.fullmatch(value) or int(value) >= 2**64:
            raise CommandError("can't read limit argument N")
        return int(value), False
    raise CommandError("too many arguments")


def _report(migrater: Migrate, *args: object) -> None:
    text = " ".join(str(arg) for arg in args) + "\n"
    if migrater.log is not None:
        migrater.log.printf(text)
    else:
        sys.stderr.write(text)


def goto_cmd(migrater: Migrate, version: int) -> None:
    """Migrate to ``version``; reaching it already is reported, not raised."""
    try:
        migrater.migrate(version)
    except NoChangeError as exc:
        _report(migrater, exc)


def up_cmd(migrater: Migrate, limit: int) -> None:
    """Apply ``limit`` up migrations, or all of them if ``limit`` is negative."""
    try:
        if limit >= 0:
            migrater.steps(limit)
        else:
            migrater.up()
    except NoChangeError as exc:
        _report(migrater, exc)


def down_cmd(migrater: Migrate, limit: int) -> None:
    """Apply ``limit`` down migrations, or all of them if ``limit`` is negative."""
    try:
        if limit >= 0:
            migrater.steps(-limit)
        else:
            migrater.down()
    except NoChangeError as exc:
        _report(migrater, exc)


def drop_cmd(migrater: Migrate) -> None:
    """Delete everything in the database."""
    migrater.drop()


def force_cmd(migrater: Migrate, version: int) -> None:
    """Set ``version`` without running any migration."""
    migrater.force(version)


def version_cmd(migrater: Migrate) -> tuple[int, bool]:
    """Report and return the current version and dirty state."""
    version, dirty = migrater.version()
    if dirty:
        _report(migrater, f"{version} (dirty)")
    else:
        _report(migrater, version)
    return version, dirty