"""
Fetch snapshot content from a gist or a repository.
"""

import logging
from typing import Optional

from ..exceptions import (
    AuthenticationError,
    MarkSyncException,
    NotFoundError,
    create_error_context,
)
from ..models.share import FolderShare
from .auth import AuthGuard
from .github import GitHubClient, RepoLocation, decode_content
from .registry import FolderShareRegistry
from .writer import pick_gist_file

logger = logging.getLogger(__name__)


class RemoteReader:
    """Reads the snapshot behind a folder share."""

    def __init__(self, client: GitHubClient, guard: AuthGuard, registry: FolderShareRegistry):
        self.client = client
        self.guard = guard
        self.registry = registry

    async def fetch_content(self, share: FolderShare) -> str:
        """
        Snapshot text of a share.

        Raises:
            NotFoundError: If the gist, file or repository does not exist
            AuthenticationError: If the credential is missing or rejected
        """
        token = await self.guard.require_token("fetch_content")
        try:
            if share.is_repo:
                return await self._fetch_repo_file(token, share)
            return await self._fetch_gist_file(token, share)
        except AuthenticationError as e:
            await self.guard.intercept_error(e)
            raise

    async def _fetch_repo_file(self, token: str, share: FolderShare) -> str:
        if not share.file_path:
            raise NotFoundError(
                f"Share of folder {share.folder_id} has no file path",
                context=create_error_context(operation="fetch_content", folder_id=share.folder_id),
            )
        location = RepoLocation.parse(share.resource_id)
        data = await self.client.get_contents(token, location, share.file_path)
        return decode_content(data.get("content", ""))

    async def _fetch_gist_file(self, token: str, share: FolderShare) -> str:
        gist = await self.client.get_gist(token, share.resource_id)
        files = gist.get("files") or {}
        name = pick_gist_file(files)
        if name is None:
            raise NotFoundError(
                f"Gist {share.resource_id} has no files",
                context=create_error_context(operation="fetch_content", resource_id=share.resource_id),
            )

        entry = files[name]
        if entry.get("truncated") and entry.get("raw_url"):
            return await self.client.get_raw(entry["raw_url"], token)
        return entry.get("content", "")

    async def pull(self, folder_id: str) -> Optional[str]:
        """
        Snapshot text for a shared folder.

        Returns:
            The content, or None if the folder is not shared or anything fails
        """
        share = await self.registry.get(folder_id)
        if share is None:
            return None

        try:
            return await self.fetch_content(share)
        except MarkSyncException as e:
            logger.warning(f"Pull failed for folder {folder_id}: {e.to_log_string()}")
            return None
        except ValueError as e:
            logger.warning(f"Pull failed for folder {folder_id}: {e}")
            return None
