"""
Durable key-value storage backends.
"""

from .base import KeyValueStore, StorageScope
from .memory import MemoryKeyValueStore
from .sqlite import SQLiteDatabase, SQLiteKeyValueStore

__all__ = [
    "KeyValueStore",
    "StorageScope",
    "MemoryKeyValueStore",
    "SQLiteDatabase",
    "SQLiteKeyValueStore",
]
