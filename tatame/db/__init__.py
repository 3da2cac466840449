"""TATAME persistence layer (SQLite via aiosqlite)."""

from .schema import SCHEMA_SQL, init_db

__all__ = ["SCHEMA_SQL", "init_db"]
