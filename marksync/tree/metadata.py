"""
Per-bookmark tags and notes kept in device-local storage.
"""

import logging
from typing import Dict, Iterable, Optional

from ..models.bookmark import BookmarkMetadata
from ..storage.base import KeyValueStore

logger = logging.getLogger(__name__)

METADATA_INDEX_KEY = "bookmark_meta_index"


def _meta_key(bookmark_id: str) -> str:
    return f"bookmark_meta_{bookmark_id}"


class BookmarkMetadataStore:
    """Tags and notes for bookmark ids."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get(self, bookmark_id: str) -> Optional[BookmarkMetadata]:
        data = await self.store.get(_meta_key(bookmark_id))
        return BookmarkMetadata.from_dict(data) if data else None

    async def get_many(self, bookmark_ids: Iterable[str]) -> Dict[str, BookmarkMetadata]:
        result = {}
        for bookmark_id in bookmark_ids:
            meta = await self.get(bookmark_id)
            if meta is not None:
                result[bookmark_id] = meta
        return result

    async def get_all(self) -> Dict[str, BookmarkMetadata]:
        index = await self.store.get(METADATA_INDEX_KEY) or []
        return await self.get_many(index)

    async def update(
        self,
        bookmark_id: str,
        tags: Optional[Iterable[str]] = None,
        notes: Optional[str] = None,
    ) -> BookmarkMetadata:
        """Merge tags and/or notes into the stored metadata for a bookmark."""
        meta = await self.get(bookmark_id) or BookmarkMetadata()
        if tags is not None:
            meta.tags = list(tags)
        if notes is not None:
            meta.notes = notes

        await self.store.set(_meta_key(bookmark_id), meta.to_dict())

        index = await self.store.get(METADATA_INDEX_KEY) or []
        if bookmark_id not in index:
            index.append(bookmark_id)
            await self.store.set(METADATA_INDEX_KEY, index)
        return meta

    async def remove(self, bookmark_id: str) -> None:
        await self.store.remove(_meta_key(bookmark_id))
        index = await self.store.get(METADATA_INDEX_KEY) or []
        if bookmark_id in index:
            index.remove(bookmark_id)
            await self.store.set(METADATA_INDEX_KEY, index)
