"""Split a migration body into its individual statements."""

from __future__ import annotations


def migration_statements(migration: bytes | str) -> list[str]:
    """Return the non-empty statements of ``migration``, split on semicolons."""
    if isinstance(migration, (bytes, bytearray)):
        text = bytes(migration).decode("utf-8")
    else:
        text = migration
    return [statement for statement in text.strip().split(";") if statement]