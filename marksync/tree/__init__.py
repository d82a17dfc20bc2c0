"""
Bookmark tree collaborators.
"""

from .metadata import BookmarkMetadataStore
from .provider import (
    BOOKMARKS_BAR_ID,
    OTHER_BOOKMARKS_ID,
    ROOT_ID,
    BookmarkTreeProvider,
    ChangeListener,
    InMemoryBookmarkTree,
)

__all__ = [
    "BookmarkMetadataStore",
    "BOOKMARKS_BAR_ID",
    "OTHER_BOOKMARKS_ID",
    "ROOT_ID",
    "BookmarkTreeProvider",
    "ChangeListener",
    "InMemoryBookmarkTree",
]
