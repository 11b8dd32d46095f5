"""Versioned schema migrations with SQLite and in-memory database drivers."""

__version__ = "4.0.0"