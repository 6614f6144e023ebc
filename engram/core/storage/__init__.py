"""
Persistence layer.

Supported backends:
- SQLite (aiosqlite), optionally paired with a Qdrant vector index
"""

from engram.core.storage.base import Repository
from engram.core.storage.sqlite_store import SQLiteRepository

__all__ = ["Repository", "SQLiteRepository"]
