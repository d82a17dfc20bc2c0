"""
Abstract key-value storage used for folder shares, credentials and bookmark
metadata.

Two scopes exist: device-local values (credentials, per-bookmark metadata)
and account-synced values (folder shares).
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional, Tuple


class StorageScope(str, Enum):
    LOCAL = "local"
    SYNC = "sync"


class KeyValueStore(ABC):
    """Abstract JSON-value store with per-key version counters."""

    scope: StorageScope

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """
        Read a value.

        Args:
            key: Storage key

        Returns:
            Decoded value, or None when the key is absent
        """
        pass

    @abstractmethod
    async def get_versioned(self, key: str) -> Tuple[Optional[Any], int]:
        """
        Read a value together with its version counter.

        Args:
            key: Storage key

        Returns:
            Tuple of (value, version); version is 0 for an absent key
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> int:
        """
        Write a value unconditionally.

        Args:
            key: Storage key
            value: JSON-serializable value

        Returns:
            The new version
        """
        pass

    @abstractmethod
    async def compare_and_set(self, key: str, value: Any, expected_version: int) -> bool:
        """
        Write a value only if the stored version still equals expected_version.

        Args:
            key: Storage key
            value: JSON-serializable value
            expected_version: Version read before computing value (0 = absent)

        Returns:
            True if written, False if another writer got there first
        """
        pass

    @abstractmethod
    async def remove(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            True if the key existed
        """
        pass

    async def close(self) -> None:
        """Release resources held by the store."""
        return None
