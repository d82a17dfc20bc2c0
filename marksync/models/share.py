"""
Folder share model: the durable link between a local folder and a remote
snapshot location.
"""

import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

SNAPSHOT_DIR = "bookmarks"
COLLECTION_FILE = "bookmarks.json"
SUMMARY_FILE = "README.md"

_UNSAFE_CHARS = re.compile(r"[^a-z0-9\-_]")


class ResourceType(str, Enum):
    """Kind of remote collection a folder is linked to."""
    GIST = "gist"  # single managed file
    REPO = "repo"  # path inside a repository


def sanitize_folder_name(name: str) -> str:
    """Turn a folder title into a stable path segment.

    Lowercases, then replaces every character outside ``[a-z0-9-_]`` with
    ``-``. Inner runs of dashes are kept as-is; leading and trailing dashes
    are trimmed, so "Work Stuff!!" becomes "work-stuff". A name with no usable
    characters maps to "untitled".
    """
    sanitized = _UNSAFE_CHARS.sub("-", name.lower()).strip("-")
    return sanitized or "untitled"


def snapshot_path_for(name: str) -> str:
    """Repository path of the per-folder snapshot for a folder title."""
    return f"{SNAPSHOT_DIR}/{sanitize_folder_name(name)}.json"


@dataclass
class FolderShare:
    """A folder linked to a gist or to a file inside a repository."""
    folder_id: str
    resource_type: ResourceType
    resource_id: str  # gist id or "owner/repo"
    url: str
    name: str
    file_path: Optional[str] = None  # repo shares only
    last_synced_at: Optional[datetime] = field(default_factory=datetime.utcnow)

    @property
    def is_repo(self) -> bool:
        return self.resource_type == ResourceType.REPO

    def renamed(self, new_name: str) -> "FolderShare":
        """Copy of this share with a new display name and recomputed path."""
        file_path = snapshot_path_for(new_name) if self.is_repo else self.file_path
        return replace(self, name=new_name, file_path=file_path)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "folderId": self.folder_id,
            "type": self.resource_type.value,
            "resourceId": self.resource_id,
            "url": self.url,
            "name": self.name,
            "lastSynced": self.last_synced_at.isoformat() if self.last_synced_at else None,
        }
        if self.file_path is not None:
            data["filePath"] = self.file_path
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FolderShare":
        last_synced_at = None
        if data.get("lastSynced"):
            last_synced_at = datetime.fromisoformat(data["lastSynced"].replace("Z", "+00:00"))

        return cls(
            folder_id=data["folderId"],
            resource_type=ResourceType(data["type"]),
            resource_id=data["resourceId"],
            url=data.get("url", ""),
            name=data.get("name", ""),
            file_path=data.get("filePath"),
            last_synced_at=last_synced_at,
        )


@dataclass(frozen=True)
class RenameResult:
    """File paths of a share before and after a rename."""
    old_file_path: Optional[str]
    new_file_path: Optional[str]

    @property
    def path_changed(self) -> bool:
        return self.old_file_path != self.new_file_path
