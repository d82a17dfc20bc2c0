"""
Snapshot export: folder subtree -> canonical JSON document.

Pure functions only; the same input (including ``now``) always produces the
same bytes, which keeps remote diffs limited to real changes.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from ..models.bookmark import BookmarkMetadata, BookmarkNode
from ..models.share import SUMMARY_FILE
from ..models.snapshot import (
    CollectionMetadata,
    SharedBookmark,
    SharedFolder,
    SnapshotCollection,
)

logger = logging.getLogger(__name__)


def format_timestamp(value: datetime) -> str:
    """ISO 8601 in UTC with millisecond precision, e.g. 2024-01-15T10:30:00.000Z."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


@dataclass
class CollectionInfo:
    """Collection-level metadata written into every snapshot."""
    name: str
    description: str = ""
    author: str = ""
    source: str = "repo"
    source_id: Optional[str] = None
    source_url: Optional[str] = None
    is_public: bool = False
    tags: Optional[List[str]] = None  # None = union of exported bookmark tags


class SnapshotExporter:
    """Builds snapshot documents from bookmark subtrees."""

    def __init__(self, include_tags: bool = True, include_notes: bool = True):
        self.include_tags = include_tags
        self.include_notes = include_notes

    def build(
        self,
        children: Iterable[BookmarkNode],
        collection: CollectionInfo,
        metadata: Optional[Dict[str, BookmarkMetadata]] = None,
        include_tags: Optional[bool] = None,
        include_notes: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> SnapshotCollection:
        """
        Flatten a folder's children into a SnapshotCollection.

        Args:
            children: Direct children of the shared folder, in display order
            collection: Collection name, source and description
            metadata: Tags and notes keyed by bookmark id
            include_tags: Overrides the exporter default
            include_notes: Overrides the exporter default
            now: Timestamp for created/updated (defaults to utcnow)

        Returns:
            The snapshot; leaves become top-level bookmarks, every folder at
            any depth becomes its own entry with only its direct bookmarks
        """
        metadata = metadata or {}
        tags_enabled = self.include_tags if include_tags is None else include_tags
        notes_enabled = self.include_notes if include_notes is None else include_notes

        def to_shared(node: BookmarkNode) -> SharedBookmark:
            meta = metadata.get(node.id)
            return SharedBookmark(
                title=node.title,
                url=node.url,
                date_added=format_timestamp(node.date_added) if node.date_added else None,
                tags=list(meta.tags) if tags_enabled and meta and meta.tags else None,
                notes=meta.notes if notes_enabled and meta and meta.notes else None,
            )

        bookmarks: List[SharedBookmark] = []
        folders: List[SharedFolder] = []

        def walk(folder: BookmarkNode, parent_path: str) -> None:
            path = f"{parent_path}/{folder.title}" if parent_path else folder.title
            folders.append(
                SharedFolder(
                    name=folder.title,
                    path=path,
                    bookmarks=[to_shared(c) for c in folder.children if not c.is_folder],
                )
            )
            for child in folder.children:
                if child.is_folder:
                    walk(child, path)

        for child in children:
            if child.is_folder:
                walk(child, "")
            else:
                bookmarks.append(to_shared(child))

        tags = collection.tags
        if tags is None:
            exported = set()
            for bookmark in bookmarks + [b for f in folders for b in f.bookmarks]:
                exported.update(bookmark.tags or [])
            tags = sorted(exported)

        timestamp = format_timestamp(now or datetime.utcnow())
        return SnapshotCollection(
            metadata=CollectionMetadata(
                name=collection.name,
                description=collection.description,
                author=collection.author,
                created=timestamp,
                updated=timestamp,
                tags=tags,
                is_public=collection.is_public,
                source=collection.source,
                source_id=collection.source_id,
                source_url=collection.source_url,
            ),
            bookmarks=bookmarks,
            folders=folders,
        )

    def export(
        self,
        children: Iterable[BookmarkNode],
        include_tags: Optional[bool] = None,
        include_notes: Optional[bool] = None,
        metadata: Optional[Dict[str, BookmarkMetadata]] = None,
        collection: Optional[CollectionInfo] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """Serialized snapshot text (see build)."""
        snapshot = self.build(
            children,
            collection or CollectionInfo(name="Bookmarks"),
            metadata=metadata,
            include_tags=include_tags,
            include_notes=include_notes,
            now=now,
        )
        return snapshot.to_json()


def _folder_tree(root_name: str, folders: List[dict]) -> List[str]:
    counts = {f.get("path", ""): len(f.get("bookmarks") or []) for f in folders}
    lines = [f"{root_name}/"]
    seen = set()
    for path in sorted(counts):
        parts = path.split("/")
        for depth in range(len(parts)):
            current = "/".join(parts[: depth + 1])
            if current in seen:
                continue
            seen.add(current)
            suffix = f" ({counts[current]} bookmarks)" if current in counts else ""
            lines.append(f"{'  ' * depth}|-- {parts[depth]}/{suffix}")
    return lines


def render_summary(
    folder_name: str,
    file_path: str,
    snapshot_text: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Human-readable README for a synced collection.

    Args:
        folder_name: Display name of the folder that was synced
        file_path: Repository path of the snapshot
        snapshot_text: The snapshot just written; stats are skipped if unparsable
        now: Timestamp shown as last update

    Returns:
        Markdown text
    """
    total_bookmarks = 0
    folders: List[dict] = []
    tags: List[str] = []

    if snapshot_text:
        try:
            data = json.loads(snapshot_text)
            folders = data.get("folders") or []
            tags = (data.get("metadata") or {}).get("tags") or []
            total_bookmarks = len(data.get("bookmarks") or []) + sum(
                len(f.get("bookmarks") or []) for f in folders
            )
        except (ValueError, AttributeError, TypeError) as e:
            logger.warning(f"Could not parse snapshot for summary of {folder_name}: {e}")
            folders, tags, total_bookmarks = [], [], 0

    updated = (now or datetime.utcnow()).strftime("%B %d, %Y")
    lines = [
        f"# {folder_name}",
        "",
        "> Bookmark collection synced by marksync",
        "",
        f"This repository holds the **{folder_name}** bookmark folder as structured JSON. "
        "It is regenerated after every sync; edits made here are overwritten.",
        "",
    ]

    if folders:
        lines += ["## Folder Structure", "", "```", *_folder_tree(folder_name, folders), "```", ""]

    if total_bookmarks:
        lines += [
            "## Collection Stats",
            "",
            f"- **Total Bookmarks:** {total_bookmarks}",
            f"- **Folders:** {len(folders)}",
            f"- **Tags:** {', '.join(tags) if tags else 'None'}",
            f"- **Last Updated:** {updated}",
            "",
        ]

    lines += [
        "## Files",
        "",
        f"- `{SUMMARY_FILE}`: this file (auto-generated)",
        f"- `{file_path}`: the bookmarks of this folder",
        "",
        "## Data Format",
        "",
        "Each snapshot has a `version`, collection `metadata`, top-level `bookmarks` and a flat list "
        "of `folders`, each with its slash-joined `path` and its direct `bookmarks`.",
        "",
    ]
    return "\n".join(lines)
