"""
Shared fixtures: an in-memory GitHub served through httpx.MockTransport and a
fully wired sync engine on top of it.
"""

import base64
import hashlib
import itertools
import json
from types import SimpleNamespace
from typing import Callable, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio

from marksync.storage import MemoryKeyValueStore, StorageScope
from marksync.sync import (
    AuthGuard,
    FolderShareRegistry,
    FolderSyncService,
    GitHubClient,
    GitHubCredential,
    OrphanReconciler,
    RemoteReader,
    RemoteWriter,
    SecureCredentialStore,
)
from marksync.tree import BookmarkMetadataStore, InMemoryBookmarkTree

API_URL = "https://api.github.test"
RAW_HOST = "gist.githubusercontent.test"
TOKEN = "good-token"
REPO = "octo/bookmarks"


def _json(status: int, payload) -> httpx.Response:
    return httpx.Response(status, json=payload)


class FakeGitHub:
    """Just enough of the GitHub REST API for the sync engine."""

    def __init__(self):
        self.tokens: Dict[str, Dict[str, str]] = {
            TOKEN: {"login": "octo", "avatar_url": "https://avatars.test/octo"}
        }
        self.repos: Dict[str, Dict] = {}
        self.gists: Dict[str, Dict[str, str]] = {}
        self.truncated: Dict[str, set] = {}
        self.requests: List[Tuple[str, str]] = []
        self.failures: Dict[Tuple[str, str], int] = {}
        self.hooks: List[Callable[[httpx.Request], None]] = []
        self._counter = itertools.count(1)

    # ---- state helpers ----

    def add_repo(self, full_name: str = REPO, files: Optional[Dict[str, str]] = None, default_branch: str = "main"):
        self.repos[full_name] = {"default_branch": default_branch, "files": {}}
        for path, content in (files or {}).items():
            self.put_file(full_name, path, content)

    def put_file(self, full_name: str, path: str, content: str) -> str:
        sha = hashlib.sha1(f"{next(self._counter)}:{content}".encode()).hexdigest()
        self.repos[full_name]["files"][path] = {"content": content, "sha": sha}
        return sha

    def file(self, full_name: str, path: str) -> Optional[str]:
        entry = self.repos[full_name]["files"].get(path)
        return entry["content"] if entry else None

    def files(self, full_name: str = REPO) -> List[str]:
        return sorted(self.repos[full_name]["files"])

    def add_gist(self, gist_id: str, files: Dict[str, str], truncated: Tuple[str, ...] = ()):
        self.gists[gist_id] = dict(files)
        self.truncated[gist_id] = set(truncated)

    def count(self, method: str, path: str) -> int:
        return sum(1 for m, p in self.requests if m == method and p == path)

    def contents_path(self, path: str, full_name: str = REPO) -> str:
        return f"/repos/{full_name}/contents/{path}"

    # ---- transport ----

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))
        for hook in list(self.hooks):
            hook(request)

        status = self.failures.get((request.method, path))
        if status:
            return _json(status, {"message": "injected failure"})

        if request.url.host == RAW_HOST:
            _, gist_id, name = [p for p in path.split("/") if p]
            return httpx.Response(200, text=self.gists[gist_id][name])

        auth = request.headers.get("Authorization")
        token = auth.split(" ", 1)[1] if auth else None
        if token is not None and token not in self.tokens:
            return _json(401, {"message": "Bad credentials"})

        parts = [p for p in path.split("/") if p]
        if parts == ["user"]:
            if token is None:
                return _json(401, {"message": "Requires authentication"})
            return _json(200, self.tokens[token])
        if parts and parts[0] == "gists":
            return self._gists(request, parts[1:])
        if len(parts) >= 3 and parts[0] == "repos":
            if token is None:
                return _json(401, {"message": "Requires authentication"})
            return self._repos(request, f"{parts[1]}/{parts[2]}", parts[3:])
        return _json(404, {"message": "Not Found"})

    def _gist_payload(self, gist_id: str) -> Dict:
        files = {}
        for name, content in self.gists[gist_id].items():
            truncated = name in self.truncated.get(gist_id, set())
            files[name] = {
                "filename": name,
                "content": "" if truncated else content,
                "truncated": truncated,
                "raw_url": f"https://{RAW_HOST}/raw/{gist_id}/{name}",
            }
        return {
            "id": gist_id,
            "html_url": f"https://gist.github.test/{gist_id}",
            "files": files,
            "history": [{"version": f"v{len(self.requests)}"}],
        }

    def _gists(self, request: httpx.Request, rest: List[str]) -> httpx.Response:
        if request.method == "POST" and not rest:
            body = json.loads(request.content)
            gist_id = f"gist{next(self._counter)}"
            self.add_gist(gist_id, {n: f["content"] for n, f in body["files"].items()})
            return _json(201, self._gist_payload(gist_id))

        gist_id = rest[0] if rest else None
        if gist_id not in self.gists:
            return _json(404, {"message": "Not Found"})
        if request.method == "GET":
            return _json(200, self._gist_payload(gist_id))
        if request.method == "PATCH":
            body = json.loads(request.content)
            for name, entry in body.get("files", {}).items():
                if entry is None:
                    self.gists[gist_id].pop(name, None)
                else:
                    self.gists[gist_id][name] = entry["content"]
                    self.truncated[gist_id].discard(name)
            return _json(200, self._gist_payload(gist_id))
        return _json(405, {"message": "Method not allowed"})

    def _repos(self, request: httpx.Request, full_name: str, rest: List[str]) -> httpx.Response:
        repo = self.repos.get(full_name)
        if repo is None:
            return _json(404, {"message": "Not Found"})
        if not rest:
            return _json(200, {"full_name": full_name, "default_branch": repo["default_branch"]})
        if rest[:2] == ["git", "trees"]:
            tree = [{"path": p, "type": "blob", "sha": f["sha"]} for p, f in sorted(repo["files"].items())]
            return _json(200, {"sha": "tree", "tree": tree, "truncated": False})
        if rest[0] == "contents":
            return self._contents(request, full_name, "/".join(rest[1:]))
        return _json(404, {"message": "Not Found"})

    def _contents(self, request: httpx.Request, full_name: str, path: str) -> httpx.Response:
        files = self.repos[full_name]["files"]
        current = files.get(path)

        if request.method == "GET":
            if current is None:
                return _json(404, {"message": "Not Found"})
            encoded = base64.b64encode(current["content"].encode("utf-8")).decode("ascii")
            wrapped = "\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60))
            return _json(200, {"path": path, "sha": current["sha"], "content": wrapped, "encoding": "base64"})

        body = json.loads(request.content)
        if request.method == "PUT":
            if current is not None and "sha" not in body:
                return _json(422, {"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'})
            if current is not None and body["sha"] != current["sha"]:
                return _json(409, {"message": f"{path} does not match {body['sha']}"})
            content = base64.b64decode(body["content"]).decode("utf-8")
            sha = self.put_file(full_name, path, content)
            payload = {"content": {"path": path, "sha": sha, "html_url": f"https://github.test/{full_name}/blob/main/{path}"}}
            return _json(201 if current is None else 200, payload)

        if request.method == "DELETE":
            if current is None:
                return _json(404, {"message": "Not Found"})
            if body.get("sha") != current["sha"]:
                return _json(409, {"message": f"{path} does not match {body.get('sha')}"})
            del files[path]
            return _json(200, {"commit": {"sha": "c0ffee"}})

        return _json(405, {"message": "Method not allowed"})


@pytest.fixture
def fake_github():
    fake = FakeGitHub()
    fake.add_repo(REPO)
    return fake


@pytest_asyncio.fixture
async def github_client(fake_github):
    client = GitHubClient(base_url=API_URL, timeout=5.0, transport=httpx.MockTransport(fake_github.handle))
    yield client
    await client.close()


@pytest_asyncio.fixture
async def engine(fake_github, github_client):
    """Fully wired engine with a stored credential for TOKEN."""
    local_store = MemoryKeyValueStore(StorageScope.LOCAL)
    sync_store = MemoryKeyValueStore(StorageScope.SYNC)

    credentials = SecureCredentialStore(local_store, "test-passphrase")
    await credentials.save(GitHubCredential(access_token=TOKEN, username="octo"))
    guard = AuthGuard(github_client, credentials)

    registry = FolderShareRegistry(sync_store)
    tree = InMemoryBookmarkTree()
    metadata = BookmarkMetadataStore(local_store)
    writer = RemoteWriter(github_client, guard)
    reader = RemoteReader(github_client, guard, registry)
    reconciler = OrphanReconciler(github_client, guard, registry, writer)
    service = FolderSyncService(
        registry=registry,
        tree=tree,
        metadata=metadata,
        guard=guard,
        reader=reader,
        writer=writer,
        reconciler=reconciler,
    )

    yield SimpleNamespace(
        github=fake_github,
        client=github_client,
        local_store=local_store,
        sync_store=sync_store,
        credentials=credentials,
        guard=guard,
        registry=registry,
        tree=tree,
        metadata=metadata,
        writer=writer,
        reader=reader,
        reconciler=reconciler,
        service=service,
    )
    await registry.close()
