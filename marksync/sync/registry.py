"""
Durable registry of folder shares.

The whole map folderId -> FolderShare is persisted under one key in the
account-synced store. Mutations are queued to a single writer task and each
write is a compare-and-set against the version read before the mutation was
applied, so two writers (two tasks, or two devices sharing the store) can
never silently drop each other's changes.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import StorageError, create_error_context
from ..models.share import FolderShare, RenameResult, ResourceType
from ..storage.base import KeyValueStore, StorageScope

logger = logging.getLogger(__name__)

SHARES_KEY = "folder_shares"

Mutation = Callable[[Dict[str, FolderShare]], Any]


class FolderShareRegistry:
    """At most one FolderShare per folder id, persisted as a whole map."""

    MAX_WRITE_ATTEMPTS = 5

    def __init__(self, store: KeyValueStore):
        """
        Initialize the registry.

        Args:
            store: Account-synced key-value store
        """
        if store.scope != StorageScope.SYNC:
            raise ValueError("Folder shares must be kept in the synced storage scope")
        self.store = store
        self._shares: Dict[str, FolderShare] = {}
        self._version = 0
        self._loaded = False
        self._queue: Optional[asyncio.Queue] = None
        self._writer: Optional[asyncio.Task] = None

    # ==================== Reads ====================

    async def load(self) -> Dict[str, FolderShare]:
        """(Re)read the persisted map."""
        data, version = await self.store.get_versioned(SHARES_KEY)
        self._shares = self._decode(data)
        self._version = version
        self._loaded = True
        logger.debug(f"Loaded {len(self._shares)} folder shares (version {version})")
        return dict(self._shares)

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    @staticmethod
    def _decode(data: Any) -> Dict[str, FolderShare]:
        shares: Dict[str, FolderShare] = {}
        for folder_id, entry in (data or {}).items():
            try:
                shares[folder_id] = FolderShare.from_dict(entry)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed folder share {folder_id}: {e}")
        return shares

    async def get(self, folder_id: str) -> Optional[FolderShare]:
        await self._ensure_loaded()
        return self._shares.get(folder_id)

    async def all(self) -> List[FolderShare]:
        await self._ensure_loaded()
        return list(self._shares.values())

    async def for_resource(self, resource_id: str) -> List[FolderShare]:
        """Every share that points into the same gist or repository."""
        await self._ensure_loaded()
        return [s for s in self._shares.values() if s.resource_id == resource_id]

    # ==================== Mutations ====================

    async def link(
        self,
        folder_id: str,
        resource_type: ResourceType,
        resource_id: str,
        url: str,
        name: str,
        file_path: Optional[str] = None,
    ) -> FolderShare:
        """Create or replace the share of a folder."""
        share = FolderShare(
            folder_id=folder_id,
            resource_type=resource_type,
            resource_id=resource_id,
            url=url,
            name=name,
            file_path=file_path,
        )

        def apply(shares: Dict[str, FolderShare]) -> FolderShare:
            if share.file_path:
                for other in shares.values():
                    if (
                        other.folder_id != folder_id
                        and other.resource_id == resource_id
                        and other.file_path == share.file_path
                    ):
                        logger.warning(
                            f"Folders {other.folder_id} and {folder_id} both map to "
                            f"{share.file_path} in {resource_id}; they will overwrite each other"
                        )
            shares[folder_id] = share
            return share

        result = await self._submit(apply)
        logger.info(f"Linked folder {folder_id} to {resource_type.value} {resource_id}")
        return result

    async def unlink(self, folder_id: str) -> Optional[FolderShare]:
        """
        Forget the share of a folder. The remote file is left alone.

        Returns:
            The removed share, or None if the folder was not shared
        """
        removed = await self._submit(lambda shares: shares.pop(folder_id, None))
        if removed:
            logger.info(f"Unlinked folder {folder_id} from {removed.resource_id}")
        return removed

    async def rename(self, folder_id: str, new_name: str) -> Optional[RenameResult]:
        """
        Update the display name and, for repo shares, the snapshot path.

        Returns:
            Old and new file paths, or None if the folder is not shared
        """

        def apply(shares: Dict[str, FolderShare]) -> Optional[RenameResult]:
            share = shares.get(folder_id)
            if share is None:
                return None
            updated = share.renamed(new_name)
            shares[folder_id] = updated
            return RenameResult(old_file_path=share.file_path, new_file_path=updated.file_path)

        return await self._submit(apply)

    async def touch(self, folder_id: str, when: Optional[datetime] = None) -> Optional[FolderShare]:
        """Record a successful sync."""
        synced_at = when or datetime.utcnow()

        def apply(shares: Dict[str, FolderShare]) -> Optional[FolderShare]:
            share = shares.get(folder_id)
            if share is None:
                return None
            shares[folder_id] = replace(share, last_synced_at=synced_at)
            return shares[folder_id]

        return await self._submit(apply)

    # ==================== Single writer ====================

    async def _submit(self, mutation: Mutation) -> Any:
        await self._ensure_loaded()
        if self._writer is None or self._writer.done():
            self._queue = asyncio.Queue()
            self._writer = asyncio.create_task(self._write_loop())

        future = asyncio.get_running_loop().create_future()
        await self._queue.put((mutation, future))
        return await future

    async def _write_loop(self) -> None:
        while True:
            mutation, future = await self._queue.get()
            try:
                result = await self._apply(mutation)
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._queue.task_done()

    async def _apply(self, mutation: Mutation) -> Any:
        for attempt in range(1, self.MAX_WRITE_ATTEMPTS + 1):
            shares = {folder_id: replace(share) for folder_id, share in self._shares.items()}
            result = mutation(shares)

            payload = {folder_id: share.to_dict() for folder_id, share in shares.items()}
            if await self.store.compare_and_set(SHARES_KEY, payload, self._version):
                self._shares = shares
                self._version += 1
                return result

            logger.warning(
                f"Folder shares changed concurrently (attempt {attempt}/{self.MAX_WRITE_ATTEMPTS}), reloading"
            )
            await self.load()

        raise StorageError(
            "Could not persist folder shares: concurrent writers kept winning",
            error_code="WRITE_CONFLICT",
            context=create_error_context(operation="persist_shares", attempts=self.MAX_WRITE_ATTEMPTS),
        )

    async def close(self) -> None:
        """Stop the writer task after pending mutations are persisted."""
        if self._writer is None:
            return
        if self._queue is not None:
            await self._queue.join()
        self._writer.cancel()
        try:
            await self._writer
        except asyncio.CancelledError:
            pass
        self._writer = None

