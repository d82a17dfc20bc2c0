"""
In-memory key-value store.
"""

import asyncio
import json
from typing import Any, Dict, Optional, Tuple

from .base import KeyValueStore, StorageScope


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store; values are JSON round-tripped like the durable backend."""

    def __init__(self, scope: StorageScope = StorageScope.LOCAL):
        self.scope = scope
        self._data: Dict[str, Tuple[str, int]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        value, _ = await self.get_versioned(key)
        return value

    async def get_versioned(self, key: str) -> Tuple[Optional[Any], int]:
        entry = self._data.get(key)
        if entry is None:
            return None, 0
        raw, version = entry
        return json.loads(raw), version

    async def set(self, key: str, value: Any) -> int:
        async with self._lock:
            _, version = self._data.get(key, (None, 0))
            self._data[key] = (json.dumps(value), version + 1)
            return version + 1

    async def compare_and_set(self, key: str, value: Any, expected_version: int) -> bool:
        async with self._lock:
            _, version = self._data.get(key, (None, 0))
            if version != expected_version:
                return False
            self._data[key] = (json.dumps(value), version + 1)
            return True

    async def remove(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    def snapshot(self) -> Dict[str, Any]:
        """Decoded copy of every stored value."""
        return {key: json.loads(raw) for key, (raw, _) in self._data.items()}
