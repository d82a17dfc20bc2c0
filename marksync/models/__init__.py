"""
Data models for marksync.
"""

from .bookmark import BookmarkNode, BookmarkMetadata
from .events import (
    ChangeEvent,
    NodeCreated,
    NodeMoved,
    NodeRemoved,
    NodeRenamed,
    SyncIntent,
    SyncReason,
)
from .share import (
    COLLECTION_FILE,
    SNAPSHOT_DIR,
    SUMMARY_FILE,
    FolderShare,
    RenameResult,
    ResourceType,
    sanitize_folder_name,
    snapshot_path_for,
)
from .snapshot import (
    SNAPSHOT_VERSION,
    CollectionMetadata,
    SharedBookmark,
    SharedFolder,
    SnapshotCollection,
)

__all__ = [
    # Bookmarks
    "BookmarkNode",
    "BookmarkMetadata",
    # Events
    "ChangeEvent",
    "NodeCreated",
    "NodeMoved",
    "NodeRemoved",
    "NodeRenamed",
    "SyncIntent",
    "SyncReason",
    # Shares
    "COLLECTION_FILE",
    "SNAPSHOT_DIR",
    "SUMMARY_FILE",
    "FolderShare",
    "RenameResult",
    "ResourceType",
    "sanitize_folder_name",
    "snapshot_path_for",
    # Snapshots
    "SNAPSHOT_VERSION",
    "CollectionMetadata",
    "SharedBookmark",
    "SharedFolder",
    "SnapshotCollection",
]
