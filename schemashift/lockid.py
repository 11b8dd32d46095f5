"""Advisory lock identifiers derived from database names."""

from __future__ import annotations

import zlib

_ADVISORY_LOCK_ID_SALT = 1486364155


def generate_advisory_lock_id(database_name: str, *args: str) -> str:
    """Return a stable lock identifier for ``database_name``.

    Additional names (for example a schema) are joined in front of the
    database name with NUL separators before hashing.
    """
    if args:
        database_name = "\x00".join([*args, database_name])
    checksum = zlib.crc32(database_name.encode("utf-8"))
    return str((checksum * _ADVISORY_LOCK_ID_SALT) & 0xFFFFFFFF)