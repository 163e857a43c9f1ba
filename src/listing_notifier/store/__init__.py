"""Store implementations."""

from .base import SeenIds, Store
from .sqlite_store import SQLiteSeenIds, SQLiteStore

__all__ = ["SeenIds", "Store", "SQLiteSeenIds", "SQLiteStore"]
