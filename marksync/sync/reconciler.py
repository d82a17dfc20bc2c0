"""
Orphan cleanup for repository-backed collections.

After a folder is renamed or deleted its old snapshot file stays behind in
the repository. The reconciler lists every file, keeps the ones that look
like snapshots, subtracts the paths still referenced by a share and deletes
the rest.
"""

import logging
import posixpath
from typing import Iterable, List, Optional, Set

from ..config.settings import DEFAULT_EXCLUDED_FILES
from ..exceptions import AuthenticationError, MarkSyncException
from ..models.share import COLLECTION_FILE
from .auth import AuthGuard
from .github import GitHubClient, RepoLocation
from .registry import FolderShareRegistry
from .writer import RemoteWriter

logger = logging.getLogger(__name__)


class SnapshotFileFilter:
    """
    Decides which repository files are bookmark snapshots.

    Any ``.json`` file whose name is not a well-known tooling config counts.
    Override ``is_snapshot`` for stricter rules.
    """

    def __init__(self, excluded_files: Optional[Iterable[str]] = None):
        names = DEFAULT_EXCLUDED_FILES if excluded_files is None else excluded_files
        self.excluded_files: Set[str] = {name.lower() for name in names}

    def is_snapshot(self, path: str) -> bool:
        name = posixpath.basename(path).lower()
        return name.endswith(".json") and name not in self.excluded_files

    def __call__(self, path: str) -> bool:
        return self.is_snapshot(path)


class OrphanReconciler:
    """Deletes snapshot files no share refers to."""

    def __init__(
        self,
        client: GitHubClient,
        guard: AuthGuard,
        registry: FolderShareRegistry,
        writer: RemoteWriter,
        file_filter: Optional[SnapshotFileFilter] = None,
    ):
        self.client = client
        self.guard = guard
        self.registry = registry
        self.writer = writer
        self.file_filter = file_filter or SnapshotFileFilter()

    async def find_orphans(self, resource_id: str, skip_paths: Iterable[str] = ()) -> List[str]:
        """Snapshot paths in the repository that no share of it references."""
        location = RepoLocation.parse(resource_id)
        token = await self.guard.require_token("reconcile")
        try:
            files = await self.client.list_repo_files(token, location)
        except AuthenticationError as e:
            await self.guard.intercept_error(e)
            raise

        # Shares without a path sync to the root collection file, which is never an orphan
        referenced = {s.file_path or COLLECTION_FILE for s in await self.registry.for_resource(resource_id)}
        excluded = referenced | set(skip_paths) | {COLLECTION_FILE}
        return [path for path in files if self.file_filter(path) and path not in excluded]

    async def reconcile(self, resource_id: str, skip_paths: Iterable[str] = ()) -> int:
        """
        Delete orphaned snapshot files from a repository.

        Args:
            resource_id: "owner/repo"
            skip_paths: Paths never to delete in this pass (e.g. just deleted)

        Returns:
            Number of files deleted
        """
        orphans = await self.find_orphans(resource_id, skip_paths)
        if not orphans:
            logger.debug(f"No orphaned snapshots in {resource_id}")
            return 0

        location = RepoLocation.parse(resource_id)
        deleted = 0
        for path in orphans:
            try:
                if await self.writer.delete_file(location, path, f"Remove orphaned bookmark file {path}"):
                    deleted += 1
            except AuthenticationError:
                logger.error(f"Authorization lost while reconciling {resource_id}, stopping")
                raise
            except MarkSyncException as e:
                logger.error(f"Failed to delete orphan {path} from {resource_id}: {e.to_log_string()}")

        logger.info(f"Removed {deleted}/{len(orphans)} orphaned snapshots from {resource_id}")
        return deleted
