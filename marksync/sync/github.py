"""
Async client for the GitHub REST API.

Only the endpoints the sync engine needs: identity, gists, repository
contents (with their sha conditional tokens) and recursive trees. HTTP
failures are mapped onto the marksync error taxonomy here so that callers
never see raw httpx exceptions.
"""

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlparse

import httpx

from ..config.settings import DEFAULT_GITHUB_API_URL
from ..exceptions import (
    AuthenticationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    RejectedError,
    RemoteError,
    create_error_context,
)

logger = logging.getLogger(__name__)


def encode_content(text: str) -> str:
    """UTF-8 safe base64 encoding for the contents API."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_content(data: str) -> str:
    """Decode base64 content as returned by the contents API (wrapped at 60 chars)."""
    return base64.b64decode(data.replace("\n", "")).decode("utf-8")


@dataclass(frozen=True)
class RepoLocation:
    """A repository addressed as owner/repo."""
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @classmethod
    def parse(cls, value: str) -> "RepoLocation":
        """
        Parse "owner/repo" or a https://github.com/owner/repo URL.

        Raises:
            ValueError: If value is neither form
        """
        value = value.strip()
        if "://" not in value:
            parts = [p for p in value.split("/") if p]
            if len(parts) == 2:
                return cls(owner=parts[0], repo=parts[1])
        else:
            parsed = urlparse(value)
            if parsed.hostname == "github.com":
                parts = [p for p in parsed.path.split("/") if p]
                if len(parts) >= 2:
                    repo = parts[1][:-4] if parts[1].endswith(".git") else parts[1]
                    return cls(owner=parts[0], repo=repo)
        raise ValueError(f"Not a GitHub repository reference: {value}")


def parse_gist_id(value: str) -> Optional[str]:
    """
    Extract a gist id from a gist URL or a bare id.

    Accepts https://gist.github.com/<user>/<id>, https://gist.github.com/<id>
    and the id itself.
    """
    value = value.strip()
    if "/" not in value and "." not in value:
        return value or None

    parsed = urlparse(value)
    if parsed.hostname == "gist.github.com":
        parts = [p for p in parsed.path.split("/") if p]
        return parts[-1] if parts else None
    return None


class GitHubClient:
    """Thin async wrapper around the GitHub REST API."""

    def __init__(
        self,
        base_url: str = DEFAULT_GITHUB_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API root, overridable for GitHub Enterprise
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used to plug in fakes)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={"Accept": "application/vnd.github.v3+json"},
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _request(
        self,
        method: str,
        url: str,
        token: Optional[str],
        operation: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        client = await self._get_http_client()
        headers = {"Authorization": f"Bearer {token}"} if token else {}

        try:
            response = await client.request(method, url, headers=headers, json=json, params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(
                message=f"GitHub request timed out: {method} {url}",
                error_code="TIMEOUT",
                context=create_error_context(operation=operation, url=url),
                cause=e,
            )
        except httpx.TransportError as e:
            raise NetworkError(
                message=f"Unable to reach GitHub: {e}",
                context=create_error_context(operation=operation, url=url),
                cause=e,
            )

        if response.status_code >= 400:
            raise self._error_for(response, operation, url)
        return response

    async def _request_json(self, method: str, url: str, token: Optional[str], operation: str, **kwargs) -> Any:
        response = await self._request(method, url, token, operation, **kwargs)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    @staticmethod
    def _error_for(response: httpx.Response, operation: str, url: str) -> RemoteError:
        """Map an error response onto the exception taxonomy."""
        try:
            detail = response.json().get("message", "")
        except ValueError:
            detail = response.text
        status = response.status_code
        message = detail or f"GitHub API error: {status}"
        context = create_error_context(operation=operation, url=url, status=status)

        if status == 401:
            return AuthenticationError(message, status_code=status, context=context)
        if status == 404:
            return NotFoundError(message, status_code=status, context=context)
        if status == 409 or (status == 422 and "sha" in message.lower()):
            return ConflictError(message, status_code=status, context=context)
        return RejectedError(message, status_code=status, context=context)

    # ==================== Identity ====================

    async def get_user(self, token: str) -> Dict[str, Any]:
        """Authenticated user (login, name, avatar_url)."""
        return await self._request_json("GET", "/user", token, "get_user")

    # ==================== Gists ====================

    async def get_gist(self, token: Optional[str], gist_id: str) -> Dict[str, Any]:
        """Gist with its files; token may be None for public gists."""
        return await self._request_json("GET", f"/gists/{gist_id}", token, "get_gist")

    async def create_gist(
        self,
        token: str,
        description: str,
        files: Dict[str, Dict[str, str]],
        public: bool = False,
    ) -> Dict[str, Any]:
        return await self._request_json(
            "POST",
            "/gists",
            token,
            "create_gist",
            json={"description": description, "public": public, "files": files},
        )

    async def update_gist(
        self,
        token: str,
        gist_id: str,
        files: Dict[str, Optional[Dict[str, str]]],
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"files": files}
        if description is not None:
            payload["description"] = description
        return await self._request_json("PATCH", f"/gists/{gist_id}", token, "update_gist", json=payload)

    async def get_raw(self, url: str, token: Optional[str] = None) -> str:
        """Fetch a raw file (used for truncated gist files)."""
        response = await self._request("GET", url, token, "get_raw")
        return response.text

    # ==================== Repositories ====================

    def _contents_url(self, location: RepoLocation, path: str) -> str:
        return f"/repos/{location.owner}/{location.repo}/contents/{quote(path, safe='/')}"

    async def get_repo(self, token: str, location: RepoLocation) -> Dict[str, Any]:
        return await self._request_json(
            "GET", f"/repos/{location.owner}/{location.repo}", token, "get_repo"
        )

    async def get_contents(self, token: str, location: RepoLocation, path: str) -> Dict[str, Any]:
        """
        File metadata and base64 content.

        Raises:
            NotFoundError: If the file does not exist
        """
        return await self._request_json("GET", self._contents_url(location, path), token, "get_contents")

    async def get_file_sha(self, token: str, location: RepoLocation, path: str) -> Optional[str]:
        """Current conditional-write token of a file, or None if it does not exist."""
        try:
            data = await self.get_contents(token, location, path)
        except NotFoundError:
            return None
        return data.get("sha")

    async def put_contents(
        self,
        token: str,
        location: RepoLocation,
        path: str,
        content: str,
        message: str,
        sha: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create (sha=None) or update (sha required) a file.

        Raises:
            ConflictError: If sha is stale or missing for an existing file
        """
        payload: Dict[str, Any] = {"message": message, "content": encode_content(content)}
        if sha:
            payload["sha"] = sha
        return await self._request_json(
            "PUT", self._contents_url(location, path), token, "put_contents", json=payload
        )

    async def delete_contents(
        self,
        token: str,
        location: RepoLocation,
        path: str,
        message: str,
        sha: str,
    ) -> None:
        await self._request_json(
            "DELETE",
            self._contents_url(location, path),
            token,
            "delete_contents",
            json={"message": message, "sha": sha},
        )

    async def list_repo_files(self, token: str, location: RepoLocation) -> List[str]:
        """Paths of every file on the default branch."""
        repo = await self.get_repo(token, location)
        branch = repo.get("default_branch") or "main"

        data = await self._request_json(
            "GET",
            f"/repos/{location.owner}/{location.repo}/git/trees/{quote(branch, safe='')}",
            token,
            "get_tree",
            params={"recursive": "1"},
        )
        if data.get("truncated"):
            logger.warning(f"File tree of {location.full_name} was truncated by GitHub")

        return [entry["path"] for entry in data.get("tree", []) if entry.get("type") == "blob"]
