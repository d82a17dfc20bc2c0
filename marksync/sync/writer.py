"""
Remote writes with optimistic concurrency.

Every repository update carries the sha read immediately before it; GitHub
rejects the write if someone else changed the file in between, and that
rejection surfaces as ConflictError without a retry.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..exceptions import (
    AuthenticationError,
    ConflictError,
    MarkSyncException,
    NotFoundError,
)
from ..models.share import COLLECTION_FILE, SUMMARY_FILE
from .auth import AuthGuard
from .exporter import render_summary
from .github import GitHubClient, RepoLocation

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class WriteResult:
    """Outcome of one snapshot write."""
    path: str
    created: bool
    sha: Optional[str] = None
    html_url: Optional[str] = None
    summary_written: bool = False


def pick_gist_file(files: Dict[str, Any], filename: Optional[str] = None) -> Optional[str]:
    """Name of the managed file: explicit, else the first .json file, else the first file."""
    if filename:
        return filename
    for name in files:
        if name.endswith(".json"):
            return name
    return next(iter(files), None)


class RemoteWriter:
    """Creates, updates and deletes snapshot files on GitHub."""

    def __init__(self, client: GitHubClient, guard: AuthGuard):
        self.client = client
        self.guard = guard

    async def _guarded(self, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await call()
        except AuthenticationError as e:
            await self.guard.intercept_error(e)
            raise

    async def put_file(
        self,
        location: RepoLocation,
        path: str,
        content: str,
        message: str,
        folder_name: Optional[str] = None,
    ) -> WriteResult:
        """
        Create or update a file in a repository.

        Args:
            location: Target repository
            path: File path inside the repository
            content: UTF-8 text to store
            message: Commit message
            folder_name: When given, README.md is regenerated afterwards

        Returns:
            WriteResult for the snapshot file

        Raises:
            AuthenticationError: No credential, or the credential was rejected
            ConflictError: The file changed between reading its sha and writing
        """
        token = await self.guard.require_token("put_file")

        sha = await self._guarded(lambda: self.client.get_file_sha(token, location, path))
        try:
            response = await self._guarded(
                lambda: self.client.put_contents(token, location, path, content, message, sha=sha)
            )
        except ConflictError:
            logger.warning(f"Conflicting write to {location.full_name}/{path}, remote file changed")
            raise

        file_info = response.get("content") or {}
        result = WriteResult(
            path=path,
            created=sha is None,
            sha=file_info.get("sha"),
            html_url=file_info.get("html_url"),
        )
        logger.info(f"{'Created' if result.created else 'Updated'} {location.full_name}/{path}")

        if folder_name is not None:
            result.summary_written = await self._write_summary(token, location, folder_name, path, content)
        return result

    async def _write_summary(
        self,
        token: str,
        location: RepoLocation,
        folder_name: str,
        path: str,
        content: str,
    ) -> bool:
        """Regenerate README.md; failures are logged and swallowed."""
        summary = render_summary(folder_name, path, content)
        try:
            sha = await self._guarded(lambda: self.client.get_file_sha(token, location, SUMMARY_FILE))
            await self._guarded(
                lambda: self.client.put_contents(
                    token, location, SUMMARY_FILE, summary, f"Update README for {folder_name}", sha=sha
                )
            )
            return True
        except MarkSyncException as e:
            logger.warning(f"Could not update {SUMMARY_FILE} in {location.full_name}: {e.to_log_string()}")
            return False

    async def create_gist(
        self,
        content: str,
        description: str,
        filename: str = COLLECTION_FILE,
        public: bool = False,
    ) -> Dict[str, Any]:
        """Create a gist holding one snapshot file; returns the gist payload."""
        token = await self.guard.require_token("create_gist")
        gist = await self._guarded(
            lambda: self.client.create_gist(
                token, description, {filename: {"content": content}}, public=public
            )
        )
        logger.info(f"Created gist {gist.get('id')}")
        return gist

    async def update_gist(
        self,
        gist_id: str,
        content: str,
        filename: Optional[str] = None,
        description: Optional[str] = None,
    ) -> WriteResult:
        """
        Overwrite the managed file of a gist. Last write wins.

        Raises:
            AuthenticationError: No credential, or the credential was rejected
            NotFoundError: The gist does not exist
        """
        token = await self.guard.require_token("update_gist")

        gist = await self._guarded(lambda: self.client.get_gist(token, gist_id))
        target = pick_gist_file(gist.get("files") or {}, filename) or COLLECTION_FILE

        updated = await self._guarded(
            lambda: self.client.update_gist(
                token, gist_id, {target: {"content": content}}, description=description
            )
        )
        history = updated.get("history") or [{}]
        logger.info(f"Updated gist {gist_id} ({target})")
        return WriteResult(
            path=target,
            created=target not in (gist.get("files") or {}),
            sha=history[0].get("version"),
            html_url=updated.get("html_url"),
        )

    async def delete_file(self, location: RepoLocation, path: str, message: str) -> bool:
        """
        Delete a file from a repository.

        Returns:
            True if deleted, False if the file did not exist
        """
        token = await self.guard.require_token("delete_file")

        sha = await self._guarded(lambda: self.client.get_file_sha(token, location, path))
        if sha is None:
            logger.debug(f"Nothing to delete at {location.full_name}/{path}")
            return False

        try:
            await self._guarded(lambda: self.client.delete_contents(token, location, path, message, sha))
        except NotFoundError:
            return False

        logger.info(f"Deleted {location.full_name}/{path}")
        return True
