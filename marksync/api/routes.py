"""
Share, sync and credential API routes.
"""

import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from ..models.share import FolderShare, ResourceType
from ..sync.importer import ImportOptions, ImportStrategy
from . import get_auth_guard, get_sync_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sync"])


# Request/Response Models

class ShareRequest(BaseModel):
    resource_type: Literal["gist", "repo"]
    target: Optional[str] = None  # gist id/URL, or owner/repo; None creates a gist
    description: Optional[str] = None
    public: bool = False


class ShareResponse(BaseModel):
    folder_id: str
    type: str
    resource_id: str
    url: str
    name: str
    file_path: Optional[str] = None
    last_synced: Optional[str] = None

    @classmethod
    def from_share(cls, share: FolderShare) -> "ShareResponse":
        return cls(
            folder_id=share.folder_id,
            type=share.resource_type.value,
            resource_id=share.resource_id,
            url=share.url,
            name=share.name,
            file_path=share.file_path,
            last_synced=share.last_synced_at.isoformat() if share.last_synced_at else None,
        )


class SyncResponse(BaseModel):
    folder_id: str
    path: str
    created: bool
    html_url: Optional[str] = None
    summary_written: bool = False


class BatchSyncResponse(BaseModel):
    successes: int
    failures: int
    errors: List[str]
    auth_failed: bool


class ReconcileRequest(BaseModel):
    skip_paths: List[str] = Field(default_factory=list)


class ReconcileResponse(BaseModel):
    resource_id: str
    deleted: int


class PullResponse(BaseModel):
    folder_id: str
    content: str


class ImportRequest(BaseModel):
    content: Optional[str] = None  # snapshot JSON text
    source_folder_id: Optional[str] = None  # import the remote snapshot of a shared folder
    source_type: Optional[Literal["gist", "repo"]] = None
    source: Optional[str] = None  # gist id/URL or repository reference
    file_path: Optional[str] = None
    strategy: Literal["append", "replace"] = "append"
    skip_duplicates: bool = True
    preserve_tags: bool = True


class ImportResponse(BaseModel):
    imported: int
    errors: List[str]


class TokenRequest(BaseModel):
    token: str = Field(min_length=1)


class AuthStatusResponse(BaseModel):
    connected: bool
    username: Optional[str] = None
    connected_at: Optional[str] = None


def _require_service():
    service = get_sync_service()
    if service is None:
        raise HTTPException(503, "Sync service not available")
    return service


def _require_guard():
    guard = get_auth_guard()
    if guard is None:
        raise HTTPException(503, "Auth guard not available")
    return guard


# ==================== Shares ====================

@router.get("/shares", response_model=List[ShareResponse])
async def list_shares():
    """List every shared folder."""
    service = _require_service()
    return [ShareResponse.from_share(s) for s in await service.list_shares()]


@router.get("/shares/{folder_id}", response_model=ShareResponse)
async def get_share(folder_id: str):
    service = _require_service()
    share = await service.get_share(folder_id)
    if share is None:
        raise HTTPException(404, f"Folder {folder_id} is not shared")
    return ShareResponse.from_share(share)


@router.post("/shares/{folder_id}", response_model=ShareResponse)
async def share_folder(folder_id: str, request: ShareRequest):
    """Link a folder to a gist or repository and push it."""
    service = _require_service()
    share = await service.share_folder(
        folder_id,
        ResourceType(request.resource_type),
        target=request.target,
        description=request.description,
        public=request.public,
    )
    return ShareResponse.from_share(share)


@router.delete("/shares/{folder_id}")
async def unlink_folder(folder_id: str, delete_remote: bool = Query(False)):
    """Stop syncing a folder; the remote file is kept unless delete_remote is set."""
    service = _require_service()
    if not await service.unlink(folder_id, delete_remote=delete_remote):
        raise HTTPException(404, f"Folder {folder_id} is not shared")
    return {"success": True, "folder_id": folder_id}


# ==================== Sync ====================

@router.post("/shares/{folder_id}/sync", response_model=SyncResponse)
async def sync_folder(folder_id: str):
    service = _require_service()
    result = await service.sync_folder(folder_id)
    return SyncResponse(
        folder_id=folder_id,
        path=result.path,
        created=result.created,
        html_url=result.html_url,
        summary_written=result.summary_written,
    )


@router.post("/sync", response_model=BatchSyncResponse)
async def sync_all():
    """Push every shared folder. Partial failures are reported, not raised."""
    service = _require_service()
    result = await service.sync_all()
    return BatchSyncResponse(**result.to_dict())


@router.post("/collections/{owner}/{repo}/reconcile", response_model=ReconcileResponse)
async def reconcile_collection(owner: str, repo: str, request: Optional[ReconcileRequest] = None):
    """Delete snapshot files in a repository that no shared folder refers to."""
    service = _require_service()
    resource_id = f"{owner}/{repo}"
    skip_paths = request.skip_paths if request else []
    deleted = await service.reconcile(resource_id, skip_paths)
    return ReconcileResponse(resource_id=resource_id, deleted=deleted)


# ==================== Pull / import ====================

@router.get("/shares/{folder_id}/pull", response_model=PullResponse)
async def pull_folder(folder_id: str):
    service = _require_service()
    content = await service.pull(folder_id)
    if content is None:
        raise HTTPException(404, "Nothing has been synced yet")
    return PullResponse(folder_id=folder_id, content=content)


@router.post("/folders/{folder_id}/import", response_model=ImportResponse)
async def import_into_folder(folder_id: str, request: ImportRequest):
    """Import a snapshot (inline, from a shared folder, or from GitHub) into a folder."""
    service = _require_service()
    options = ImportOptions(
        strategy=ImportStrategy(request.strategy),
        target_folder_id=folder_id,
        skip_duplicates=request.skip_duplicates,
        preserve_tags=request.preserve_tags,
    )

    if request.content is not None:
        result = await service.import_text(request.content, options)
    elif request.source_folder_id:
        result = await service.import_from_share(request.source_folder_id, options)
    elif request.source_type and request.source:
        result = await service.import_remote(
            ResourceType(request.source_type), request.source, file_path=request.file_path, options=options
        )
    else:
        raise HTTPException(400, "Provide content, source_folder_id, or source_type and source")

    return ImportResponse(imported=result.imported, errors=result.errors)


# ==================== Credential ====================

@router.get("/auth/status", response_model=AuthStatusResponse)
async def auth_status():
    guard = _require_guard()
    return AuthStatusResponse(**await guard.status())


@router.put("/auth/token", response_model=AuthStatusResponse)
async def connect_token(request: TokenRequest):
    """Validate a personal access token against GitHub and store it."""
    guard = _require_guard()
    await guard.connect(request.token)
    return AuthStatusResponse(**await guard.status())


@router.delete("/auth/token")
async def disconnect_token() -> Dict[str, Any]:
    guard = _require_guard()
    removed = await guard.disconnect()
    return {"success": True, "removed": removed}
