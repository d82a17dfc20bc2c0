"""
Bookmark tree nodes as handed over by the tree provider.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class BookmarkNode:
    """A bookmark (has a url) or a folder (no url)."""
    id: str
    title: str
    url: Optional[str] = None
    parent_id: Optional[str] = None
    date_added: Optional[datetime] = None
    children: List["BookmarkNode"] = field(default_factory=list)

    @property
    def is_folder(self) -> bool:
        return self.url is None


@dataclass
class BookmarkMetadata:
    """User-maintained data attached to a bookmark id."""
    tags: List[str] = field(default_factory=list)
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"customTags": list(self.tags)}
        if self.notes:
            data["notes"] = self.notes
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookmarkMetadata":
        return cls(
            tags=list(data.get("customTags", [])),
            notes=data.get("notes"),
        )
