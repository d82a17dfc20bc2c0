"""
Snapshot document models.

The field names (and their camelCase aliases) are the stable wire format
shared with every client that reads or writes these collections.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

SNAPSHOT_VERSION = "1.0"


class SharedBookmark(BaseModel):
    """A bookmark as it appears in a shared collection."""
    model_config = ConfigDict(populate_by_name=True)

    title: str
    url: str
    date_added: Optional[str] = Field(default=None, alias="dateAdded")  # ISO 8601
    tags: Optional[List[str]] = None
    notes: Optional[str] = None


class SharedFolder(BaseModel):
    """A folder flattened to its slash-joined path and direct bookmarks."""
    name: str
    path: str  # e.g. "Development/React"
    bookmarks: List[SharedBookmark] = Field(default_factory=list)


class CollectionMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    author: str = ""
    created: str
    updated: str
    tags: List[str] = Field(default_factory=list)
    is_public: bool = Field(default=False, alias="isPublic")
    source: Literal["gist", "repo"] = "gist"
    source_id: Optional[str] = Field(default=None, alias="sourceId")
    source_url: Optional[str] = Field(default=None, alias="sourceUrl")


class SnapshotCollection(BaseModel):
    """Point-in-time export of one folder."""
    version: str = SNAPSHOT_VERSION
    metadata: CollectionMetadata
    bookmarks: List[SharedBookmark] = Field(default_factory=list)
    folders: List[SharedFolder] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)

    @property
    def bookmark_count(self) -> int:
        return len(self.bookmarks) + sum(len(f.bookmarks) for f in self.folders)
