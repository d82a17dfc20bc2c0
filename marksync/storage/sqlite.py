"""
SQLite key-value storage using aiosqlite.

Both scopes live in one database file and share one connection; each
``SQLiteKeyValueStore`` is a view on a single scope.
"""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Tuple

import aiosqlite

from ..exceptions import StorageError, create_error_context
from .base import KeyValueStore, StorageScope

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    scope TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (scope, key)
)
"""


class SQLiteDatabase:
    """Lazily opened aiosqlite connection shared by the scoped stores."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self) -> aiosqlite.Connection:
        """Open the database and create the schema on first use."""
        async with self._lock:
            if self._connection is not None:
                return self._connection

            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(self.db_path)
            # WAL keeps readers from blocking the single writer
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute(SCHEMA)
            await conn.commit()
            self._connection = conn
            logger.info(f"Opened key-value database at {self.db_path}")
            return conn

    async def disconnect(self) -> None:
        async with self._lock:
            if self._connection is None:
                return
            await self._connection.close()
            self._connection = None

    def scope(self, scope: StorageScope) -> "SQLiteKeyValueStore":
        return SQLiteKeyValueStore(self, scope)


class SQLiteKeyValueStore(KeyValueStore):
    """Key-value store backed by the ``kv_store`` table."""

    def __init__(self, database: SQLiteDatabase, scope: StorageScope):
        self.database = database
        self.scope = scope
        self._write_lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        value, _ = await self.get_versioned(key)
        return value

    async def get_versioned(self, key: str) -> Tuple[Optional[Any], int]:
        try:
            conn = await self.database.connect()
            async with conn.execute(
                "SELECT value, version FROM kv_store WHERE scope = ? AND key = ?",
                (self.scope.value, key),
            ) as cursor:
                row = await cursor.fetchone()
        except (aiosqlite.Error, OSError) as e:
            raise self._storage_error("get", key, e)

        if row is None:
            return None, 0
        return json.loads(row[0]), row[1]

    async def set(self, key: str, value: Any) -> int:
        async with self._write_lock:
            try:
                conn = await self.database.connect()
                await conn.execute(
                    """
                    INSERT INTO kv_store (scope, key, value, version, updated_at)
                    VALUES (?, ?, ?, 1, ?)
                    ON CONFLICT(scope, key) DO UPDATE SET
                        value = excluded.value,
                        version = kv_store.version + 1,
                        updated_at = excluded.updated_at
                    """,
                    (self.scope.value, key, json.dumps(value), datetime.utcnow().isoformat()),
                )
                await conn.commit()
            except (aiosqlite.Error, OSError) as e:
                raise self._storage_error("set", key, e)

        _, version = await self.get_versioned(key)
        return version

    async def compare_and_set(self, key: str, value: Any, expected_version: int) -> bool:
        payload = json.dumps(value)
        now = datetime.utcnow().isoformat()

        async with self._write_lock:
            try:
                conn = await self.database.connect()
                if expected_version == 0:
                    cursor = await conn.execute(
                        "INSERT OR IGNORE INTO kv_store (scope, key, value, version, updated_at) "
                        "VALUES (?, ?, ?, 1, ?)",
                        (self.scope.value, key, payload, now),
                    )
                else:
                    cursor = await conn.execute(
                        "UPDATE kv_store SET value = ?, version = version + 1, updated_at = ? "
                        "WHERE scope = ? AND key = ? AND version = ?",
                        (payload, now, self.scope.value, key, expected_version),
                    )
                written = cursor.rowcount == 1
                await cursor.close()
                await conn.commit()
                return written
            except (aiosqlite.Error, OSError) as e:
                raise self._storage_error("compare_and_set", key, e)

    async def remove(self, key: str) -> bool:
        async with self._write_lock:
            try:
                conn = await self.database.connect()
                cursor = await conn.execute(
                    "DELETE FROM kv_store WHERE scope = ? AND key = ?",
                    (self.scope.value, key),
                )
                removed = cursor.rowcount > 0
                await cursor.close()
                await conn.commit()
                return removed
            except (aiosqlite.Error, OSError) as e:
                raise self._storage_error("remove", key, e)

    async def close(self) -> None:
        await self.database.disconnect()

    def _storage_error(self, operation: str, key: str, error: Exception) -> StorageError:
        logger.error(f"Storage {operation} failed for {self.scope.value}:{key}: {error}")
        return StorageError(
            message=f"Failed to {operation} '{key}': {error}",
            context=create_error_context(operation=f"storage_{operation}", key=key),
            cause=error,
        )
