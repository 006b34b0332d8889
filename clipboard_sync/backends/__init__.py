"""
Persistence backend abstraction layer.

Provides the store interface used by the session registry and version
ledger, plus SQLite and in-memory implementations.
"""

from .base import ClipboardStore, StoreTransaction
from .memory import MemoryStore
from .sqlite import SQLiteConfig, SQLiteStore

__all__ = [
    "ClipboardStore",
    "StoreTransaction",
    "MemoryStore",
    "SQLiteConfig",
    "SQLiteStore",
]
