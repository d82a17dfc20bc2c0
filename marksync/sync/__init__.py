"""
Folder-to-GitHub sync engine.

Keeps shared bookmark folders and their remote snapshots (gists or files in
a repository) consistent.
"""

from .auth import AuthGuard, GitHubCredential, SecureCredentialStore
from .dispatcher import IntentHandler, SyncTriggerDispatcher
from .exporter import CollectionInfo, SnapshotExporter, format_timestamp, render_summary
from .github import GitHubClient, RepoLocation, parse_gist_id
from .importer import (
    ImportOptions,
    ImportResult,
    ImportStrategy,
    SnapshotImporter,
    parse_snapshot,
)
from .reader import RemoteReader
from .reconciler import OrphanReconciler, SnapshotFileFilter
from .registry import FolderShareRegistry
from .service import BatchSyncResult, FolderSyncService
from .writer import RemoteWriter, WriteResult

__all__ = [
    # Auth
    "AuthGuard",
    "GitHubCredential",
    "SecureCredentialStore",
    # Triggers
    "IntentHandler",
    "SyncTriggerDispatcher",
    # Snapshots
    "CollectionInfo",
    "SnapshotExporter",
    "format_timestamp",
    "render_summary",
    "ImportOptions",
    "ImportResult",
    "ImportStrategy",
    "SnapshotImporter",
    "parse_snapshot",
    # Remote
    "GitHubClient",
    "RepoLocation",
    "parse_gist_id",
    "RemoteReader",
    "RemoteWriter",
    "WriteResult",
    "OrphanReconciler",
    "SnapshotFileFilter",
    # Registry / service
    "FolderShareRegistry",
    "BatchSyncResult",
    "FolderSyncService",
]
