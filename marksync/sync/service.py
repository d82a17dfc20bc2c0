"""
Folder sync service.

Owns the explicit user actions (share, sync, sync all, unlink, pull, import,
reconcile) and performs the remote work the dispatcher schedules.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..exceptions import (
    AuthenticationError,
    NotFoundError,
    ValidationError,
    create_error_context,
    handle_unexpected_error,
)
from ..models.bookmark import BookmarkNode
from ..models.share import COLLECTION_FILE, FolderShare, ResourceType, snapshot_path_for
from ..tree.metadata import BookmarkMetadataStore
from ..tree.provider import BookmarkTreeProvider
from .auth import AuthGuard
from .exporter import CollectionInfo, SnapshotExporter
from .github import RepoLocation, parse_gist_id
from .importer import ImportOptions, ImportResult, SnapshotImporter
from .reader import RemoteReader
from .reconciler import OrphanReconciler
from .registry import FolderShareRegistry
from .writer import RemoteWriter, WriteResult

logger = logging.getLogger(__name__)


@dataclass
class BatchSyncResult:
    """Aggregate outcome of syncing many folders."""
    successes: int = 0
    failures: int = 0
    errors: List[str] = field(default_factory=list)
    auth_failed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successes": self.successes,
            "failures": self.failures,
            "errors": list(self.errors),
            "auth_failed": self.auth_failed,
        }


def _bookmark_ids(nodes: Iterable[BookmarkNode]) -> List[str]:
    ids: List[str] = []
    stack = list(nodes)
    while stack:
        node = stack.pop()
        if node.is_folder:
            stack.extend(node.children)
        else:
            ids.append(node.id)
    return ids


class FolderSyncService:
    """Keeps shared folders and their remote snapshots consistent."""

    def __init__(
        self,
        registry: FolderShareRegistry,
        tree: BookmarkTreeProvider,
        metadata: BookmarkMetadataStore,
        guard: AuthGuard,
        reader: RemoteReader,
        writer: RemoteWriter,
        reconciler: OrphanReconciler,
        exporter: Optional[SnapshotExporter] = None,
        importer: Optional[SnapshotImporter] = None,
    ):
        self.registry = registry
        self.tree = tree
        self.metadata = metadata
        self.guard = guard
        self.reader = reader
        self.writer = writer
        self.reconciler = reconciler
        self.exporter = exporter or SnapshotExporter()
        self.importer = importer or SnapshotImporter(tree, metadata)

    # ==================== Export ====================

    async def _require_folder(self, folder_id: str) -> BookmarkNode:
        folder = await self.tree.get(folder_id)
        if folder is None or not folder.is_folder:
            raise NotFoundError(
                f"Bookmark folder {folder_id} does not exist",
                error_code="FOLDER_NOT_FOUND",
                context=create_error_context(operation="export", folder_id=folder_id),
                user_message="That bookmark folder no longer exists.",
            )
        return folder

    async def export_folder(
        self,
        folder: BookmarkNode,
        source: ResourceType,
        source_id: Optional[str] = None,
        source_url: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """Snapshot text for a folder's current contents."""
        metadata = await self.metadata.get_many(_bookmark_ids(folder.children))
        credential = await self.guard.credentials.load()
        collection = CollectionInfo(
            name=folder.title,
            description=f"Bookmarks from {folder.title}",
            author=(credential.username or "") if credential else "",
            source=source.value,
            source_id=source_id,
            source_url=source_url,
        )
        return self.exporter.export(folder.children, metadata=metadata, collection=collection, now=now)

    # ==================== Share / unlink ====================

    async def share_folder(
        self,
        folder_id: str,
        resource_type: ResourceType,
        target: Optional[str] = None,
        description: Optional[str] = None,
        public: bool = False,
    ) -> FolderShare:
        """
        Link a folder to a gist or repository and push it once.

        Args:
            folder_id: Folder to share
            resource_type: gist or repo
            target: Gist id/URL (None creates a new gist) or "owner/repo"/repo URL
            description: Gist description for new gists
            public: Visibility of a new gist

        Returns:
            The stored FolderShare
        """
        folder = await self._require_folder(folder_id)
        context = create_error_context(operation="share_folder", folder_id=folder_id, target=target)

        if resource_type == ResourceType.REPO:
            if not target:
                raise ValidationError("A repository is required to share to a repo", context=context)
            try:
                location = RepoLocation.parse(target)
            except ValueError as e:
                raise ValidationError(str(e), error_code="INVALID_REPOSITORY", context=context, cause=e)

            path = snapshot_path_for(folder.title)
            content = await self.export_folder(folder, resource_type, location.full_name)
            result = await self.writer.put_file(
                location, path, content, f"Sync {folder.title} bookmarks", folder_name=folder.title
            )
            url = result.html_url or f"https://github.com/{location.full_name}"
            return await self.registry.link(
                folder_id, resource_type, location.full_name, url, folder.title, file_path=path
            )

        if target:
            gist_id = parse_gist_id(target)
            if not gist_id:
                raise ValidationError(f"Not a gist reference: {target}", error_code="INVALID_GIST", context=context)
            content = await self.export_folder(folder, resource_type, gist_id)
            result = await self.writer.update_gist(gist_id, content)
            url = result.html_url or f"https://gist.github.com/{gist_id}"
        else:
            content = await self.export_folder(folder, resource_type)
            gist = await self.writer.create_gist(
                content,
                description or f"{folder.title} bookmarks",
                filename=COLLECTION_FILE,
                public=public,
            )
            gist_id = gist["id"]
            url = gist.get("html_url") or f"https://gist.github.com/{gist_id}"

        return await self.registry.link(folder_id, resource_type, gist_id, url, folder.title)

    async def unlink(self, folder_id: str, delete_remote: bool = False) -> bool:
        """
        Stop syncing a folder.

        Args:
            folder_id: Shared folder
            delete_remote: Also delete the repository snapshot file

        Returns:
            True if the folder was shared
        """
        share = await self.registry.get(folder_id)
        if share is None:
            return False

        if delete_remote and share.is_repo and share.file_path:
            await self.delete_snapshot(share, share.file_path)
        await self.registry.unlink(folder_id)
        return True

    # ==================== Sync ====================

    async def sync_folder(self, folder_id: str) -> WriteResult:
        """
        Push the current contents of one shared folder.

        Raises:
            NotFoundError: If the folder is not shared or no longer exists
            AuthenticationError / ConflictError / NetworkError: From the write
        """
        share = await self.registry.get(folder_id)
        if share is None:
            raise NotFoundError(
                f"Folder {folder_id} is not shared",
                error_code="NOT_SHARED",
                context=create_error_context(operation="sync_folder", folder_id=folder_id),
                user_message="This folder is not linked to GitHub.",
            )

        folder = await self._require_folder(folder_id)
        content = await self.export_folder(folder, share.resource_type, share.resource_id, share.url)

        if share.is_repo:
            location = RepoLocation.parse(share.resource_id)
            path = share.file_path or COLLECTION_FILE
            result = await self.writer.put_file(
                location, path, content, f"Sync {folder.title} bookmarks", folder_name=folder.title
            )
        else:
            result = await self.writer.update_gist(share.resource_id, content)

        await self.registry.touch(folder_id)
        logger.info(f"Synced folder {folder_id} ({folder.title}) to {share.resource_id}")
        return result

    async def sync_all(self) -> BatchSyncResult:
        """
        Push every shared folder, one after another.

        Per-folder failures are counted and the loop continues, except that an
        authorization failure stops the batch.
        """
        result = BatchSyncResult()
        for share in await self.registry.all():
            try:
                await self.sync_folder(share.folder_id)
                result.successes += 1
            except AuthenticationError as e:
                result.failures += 1
                result.auth_failed = True
                result.errors.append(f"{share.name}: {e.user_message}")
                logger.error(f"Sync all stopped, authorization failed: {e.to_log_string()}")
                break
            except Exception as e:
                error = handle_unexpected_error(e)
                result.failures += 1
                result.errors.append(f"{share.name}: {error.message}")
                logger.error(f"Failed to sync folder {share.folder_id}: {error.to_log_string()}")

        logger.info(f"Sync all finished: {result.successes} succeeded, {result.failures} failed")
        return result

    # ==================== Remote cleanup ====================

    async def delete_snapshot(self, share: FolderShare, path: str) -> bool:
        """Delete one snapshot file of a repository share."""
        if not share.is_repo:
            return False
        location = RepoLocation.parse(share.resource_id)
        return await self.writer.delete_file(location, path, f"Remove {path}")

    async def reconcile(self, resource_id: str, skip_paths: Iterable[str] = ()) -> int:
        """Delete orphaned snapshots from a repository collection."""
        try:
            RepoLocation.parse(resource_id)
        except ValueError as e:
            raise ValidationError(
                str(e),
                error_code="INVALID_REPOSITORY",
                context=create_error_context(operation="reconcile", resource_id=resource_id),
                cause=e,
            )
        return await self.reconciler.reconcile(resource_id, skip_paths)

    async def forget_bookmarks(self, node_ids: Iterable[str]) -> None:
        """Drop tags and notes of bookmarks that were removed from the tree."""
        for node_id in node_ids:
            await self.metadata.remove(node_id)

    # ==================== Pull / import ====================

    async def pull(self, folder_id: str) -> Optional[str]:
        return await self.reader.pull(folder_id)

    async def import_text(self, text: str, options: Optional[ImportOptions] = None) -> ImportResult:
        """Import a snapshot document given as text."""
        return await self.importer.import_json(text, options)

    async def import_from_share(self, folder_id: str, options: Optional[ImportOptions] = None) -> ImportResult:
        """Import the remote snapshot of a shared folder."""
        content = await self.pull(folder_id)
        if content is None:
            raise NotFoundError(
                f"No remote snapshot for folder {folder_id}",
                context=create_error_context(operation="import_from_share", folder_id=folder_id),
            )
        return await self.import_text(content, options)

    async def import_remote(
        self,
        resource_type: ResourceType,
        reference: str,
        file_path: Optional[str] = None,
        options: Optional[ImportOptions] = None,
    ) -> ImportResult:
        """
        Import a snapshot straight from a gist or repository file.

        Args:
            resource_type: gist or repo
            reference: Gist id/URL or repository reference
            file_path: Repository file (defaults to bookmarks.json)
            options: Import options
        """
        context = create_error_context(operation="import_remote", reference=reference)
        if resource_type == ResourceType.REPO:
            try:
                resource_id = RepoLocation.parse(reference).full_name
            except ValueError as e:
                raise ValidationError(str(e), error_code="INVALID_REPOSITORY", context=context, cause=e)
        else:
            resource_id = parse_gist_id(reference)
            if not resource_id:
                raise ValidationError(f"Not a gist reference: {reference}", error_code="INVALID_GIST", context=context)

        source = FolderShare(
            folder_id="",
            resource_type=resource_type,
            resource_id=resource_id,
            url=reference,
            name="",
            file_path=(file_path or COLLECTION_FILE) if resource_type == ResourceType.REPO else None,
        )
        content = await self.reader.fetch_content(source)
        return await self.import_text(content, options)

    # ==================== Status ====================

    async def list_shares(self) -> List[FolderShare]:
        return await self.registry.all()

    async def get_share(self, folder_id: str) -> Optional[FolderShare]:
        return await self.registry.get(folder_id)

