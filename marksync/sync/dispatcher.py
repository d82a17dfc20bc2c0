"""
Turns local bookmark-tree changes into sync work.

Change events arrive on a bounded queue and are consumed by one loop task.
Each event is resolved against the share registry into resyncs, remote
deletes and orphan reconciliation. Resyncs are debounced per folder so that a
burst of edits produces one write; reconciliation is coalesced per collection.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional, Protocol, Set

from ..models.events import (
    ChangeEvent,
    NodeCreated,
    NodeMoved,
    NodeRemoved,
    NodeRenamed,
    SyncIntent,
    SyncReason,
)
from ..models.share import FolderShare
from ..tree.provider import ROOT_ID, BookmarkTreeProvider
from .registry import FolderShareRegistry

logger = logging.getLogger(__name__)


class IntentHandler(Protocol):
    """Remote actions the dispatcher asks for."""

    async def sync_folder(self, folder_id: str) -> Any:
        ...

    async def delete_snapshot(self, share: FolderShare, path: str) -> bool:
        ...

    async def reconcile(self, resource_id: str, skip_paths: Iterable[str] = ()) -> int:
        ...

    async def forget_bookmarks(self, node_ids: Iterable[str]) -> None:
        ...


class SyncTriggerDispatcher:
    """Consumes change events and schedules sync intents."""

    def __init__(
        self,
        registry: FolderShareRegistry,
        tree: BookmarkTreeProvider,
        handler: IntentHandler,
        debounce_seconds: float = 2.0,
        queue_size: int = 1000,
    ):
        """
        Initialize the dispatcher.

        Args:
            registry: Folder share registry
            tree: Bookmark tree, used to walk ancestors of new nodes
            handler: Performs the remote work (the sync service)
            debounce_seconds: Quiet period before a folder is pushed
            queue_size: Capacity of the event queue
        """
        self.registry = registry
        self.tree = tree
        self.handler = handler
        self.debounce_seconds = debounce_seconds
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)

        self._loop_task: Optional[asyncio.Task] = None
        self._pending: Dict[str, asyncio.Task] = {}
        self._folder_locks: Dict[str, asyncio.Lock] = {}
        self._reconcile_pending: Dict[str, Set[str]] = {}
        self._tasks: Set[asyncio.Task] = set()

    # ==================== Lifecycle ====================

    def start(self) -> None:
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self.run())
            logger.info("Sync trigger dispatcher started")

    async def stop(self) -> None:
        """Stop consuming events and cancel intents still waiting out their debounce."""
        for task in list(self._pending.values()):
            task.cancel()
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("Sync trigger dispatcher stopped")

    async def drain(self) -> None:
        """Wait until every queued event and every scheduled intent has finished."""
        await self.queue.join()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ==================== Intake ====================

    async def publish(self, event: ChangeEvent) -> None:
        await self.queue.put(event)

    def publish_nowait(self, event: ChangeEvent) -> bool:
        """
        Enqueue from synchronous code (tree listeners).

        Returns:
            False if the queue was full and the event was dropped
        """
        try:
            self.queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            logger.warning(f"Change event queue full, dropping {event}")
            return False

    async def run(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                await self.handle_event(event)
            except Exception as e:
                logger.error(f"Failed to handle change event {event}: {e}", exc_info=True)
            finally:
                self.queue.task_done()

    # ==================== Resolution ====================

    async def handle_event(self, event: ChangeEvent) -> None:
        if isinstance(event, NodeCreated):
            await self._on_created(event)
        elif isinstance(event, NodeRemoved):
            await self._on_removed(event)
        elif isinstance(event, NodeRenamed):
            await self._on_renamed(event)
        elif isinstance(event, NodeMoved):
            await self._on_moved(event)
        else:
            logger.warning(f"Ignoring unknown change event {event!r}")

    async def nearest_share(self, node_id: Optional[str]) -> Optional[FolderShare]:
        """Closest shared folder at or above node_id, stopping at the root."""
        current = node_id
        while current and current != ROOT_ID:
            share = await self.registry.get(current)
            if share is not None:
                return share
            node = await self.tree.get(current)
            if node is None:
                return None
            current = node.parent_id
        return None

    async def _on_created(self, event: NodeCreated) -> None:
        share = await self.nearest_share(event.parent_id)
        if share is not None:
            self.schedule_resync(share.folder_id, SyncReason.CREATED)

    async def _on_removed(self, event: NodeRemoved) -> None:
        if event.parent_id and await self.registry.get(event.parent_id) is not None:
            self.schedule_resync(event.parent_id, SyncReason.REMOVED)

        share = await self.registry.get(event.node_id)
        if share is not None:
            await self._cascade_delete(share)

        # Shared folders nested inside the removed subtree went with it
        for descendant_id in event.descendant_ids:
            nested = await self.registry.get(descendant_id)
            if nested is not None:
                await self._cascade_delete(nested)

        removed = [event.node_id, *event.descendant_ids]
        try:
            await self.handler.forget_bookmarks(removed)
        except Exception as e:
            logger.error(f"Failed to drop metadata of removed nodes under {event.node_id}: {e}")

    async def _cascade_delete(self, share: FolderShare) -> None:
        """Delete the folder's snapshot, forget the share, then clean up its collection."""
        pending = self._pending.pop(share.folder_id, None)
        if pending is not None:
            pending.cancel()

        skip: Set[str] = set()
        if share.is_repo and share.file_path:
            try:
                await self.handler.delete_snapshot(share, share.file_path)
                skip.add(share.file_path)
            except Exception as e:
                logger.error(f"Failed to delete snapshot of removed folder {share.folder_id}: {e}")

        await self.registry.unlink(share.folder_id)
        logger.info(f"Removed share of deleted folder {share.folder_id} ({share.name})")

        if share.is_repo:
            self.schedule_reconcile(share.resource_id, skip)

    async def _on_renamed(self, event: NodeRenamed) -> None:
        result = await self.registry.rename(event.node_id, event.title)
        if result is None:
            return

        share = await self.registry.get(event.node_id)
        if result.path_changed and result.old_file_path:
            skip: Set[str] = set()
            try:
                await self.handler.delete_snapshot(share, result.old_file_path)
                skip.add(result.old_file_path)
            except Exception as e:
                logger.error(f"Failed to delete old snapshot {result.old_file_path}: {e}")
            self.schedule_reconcile(share.resource_id, skip)

        self.schedule_resync(event.node_id, SyncReason.RENAMED)

    async def _on_moved(self, event: NodeMoved) -> None:
        if await self.registry.get(event.node_id) is not None:
            self.schedule_resync(event.node_id, SyncReason.MOVED)

        # The folders the node left and entered changed content as well
        for parent_id in (event.old_parent_id, event.parent_id):
            share = await self.nearest_share(parent_id)
            if share is not None and share.folder_id != event.node_id:
                self.schedule_resync(share.folder_id, SyncReason.MOVED)

    # ==================== Scheduling ====================

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def schedule_resync(self, folder_id: str, reason: SyncReason) -> None:
        """Push a folder after the debounce period; a newer intent replaces a waiting one."""
        waiting = self._pending.get(folder_id)
        if waiting is not None and not waiting.done():
            waiting.cancel()

        intent = SyncIntent(folder_id=folder_id, reason=reason)
        self._pending[folder_id] = self._track(asyncio.create_task(self._run_resync(intent)))

    async def _run_resync(self, intent: SyncIntent) -> None:
        await asyncio.sleep(self.debounce_seconds)

        # Past the debounce window: newer intents no longer cancel this one
        if self._pending.get(intent.folder_id) is asyncio.current_task():
            del self._pending[intent.folder_id]

        lock = self._folder_locks.setdefault(intent.folder_id, asyncio.Lock())
        async with lock:
            try:
                logger.debug(f"Resyncing folder {intent.folder_id} ({intent.reason.value})")
                await self.handler.sync_folder(intent.folder_id)
            except Exception as e:
                logger.error(f"Resync of folder {intent.folder_id} failed: {e}")

    def schedule_reconcile(self, resource_id: str, skip_paths: Iterable[str] = ()) -> None:
        """Reconcile a collection after the debounce period; requests in between are merged."""
        pending = self._reconcile_pending.get(resource_id)
        if pending is not None:
            pending.update(skip_paths)
            return

        self._reconcile_pending[resource_id] = set(skip_paths)
        self._track(asyncio.create_task(self._run_reconcile(resource_id)))

    async def _run_reconcile(self, resource_id: str) -> None:
        await asyncio.sleep(self.debounce_seconds)
        skip_paths = self._reconcile_pending.pop(resource_id, set())
        try:
            await self.handler.reconcile(resource_id, skip_paths)
        except Exception as e:
            logger.error(f"Reconciliation of {resource_id} failed: {e}")
