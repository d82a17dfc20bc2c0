"""
Bookmark tree provider interface and an in-memory implementation.

The real tree (a browser profile, a file, ...) lives outside marksync; the
engine only needs read access plus change notifications. The in-memory tree
backs the HTTP API when no other provider is plugged in.
"""

import copy
import itertools
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..models.bookmark import BookmarkNode
from ..models.events import ChangeEvent, NodeCreated, NodeMoved, NodeRemoved, NodeRenamed

logger = logging.getLogger(__name__)

ChangeListener = Callable[[ChangeEvent], None]

ROOT_ID = "0"
BOOKMARKS_BAR_ID = "1"
OTHER_BOOKMARKS_ID = "2"


class BookmarkTreeProvider(ABC):
    """Read/write access to a bookmark tree."""

    @abstractmethod
    async def get(self, node_id: str) -> Optional[BookmarkNode]:
        """Node with its full subtree, or None if the id is unknown."""
        pass

    @abstractmethod
    async def get_children(self, node_id: str) -> List[BookmarkNode]:
        """Direct children (each with its own subtree) in display order."""
        pass

    @abstractmethod
    async def create(
        self,
        parent_id: str,
        title: str,
        url: Optional[str] = None,
        date_added: Optional[datetime] = None,
    ) -> BookmarkNode:
        """Create a bookmark, or a folder when url is None."""
        pass

    @abstractmethod
    async def remove(self, node_id: str) -> None:
        """Remove a node and everything below it."""
        pass

    @abstractmethod
    async def search_by_url(self, url: str) -> List[BookmarkNode]:
        """All bookmarks with exactly this url."""
        pass

    @abstractmethod
    def subscribe(self, listener: ChangeListener) -> None:
        """Register a callback for structural changes."""
        pass


class InMemoryBookmarkTree(BookmarkTreeProvider):
    """Bookmark tree held in memory that reports every change to listeners."""

    def __init__(self):
        root = BookmarkNode(id=ROOT_ID, title="")
        self._nodes: Dict[str, BookmarkNode] = {ROOT_ID: root}
        self._ids = itertools.count(3)
        self._listeners: List[ChangeListener] = []

        for node_id, title in ((BOOKMARKS_BAR_ID, "Bookmarks Bar"), (OTHER_BOOKMARKS_ID, "Other Bookmarks")):
            node = BookmarkNode(id=node_id, title=title, parent_id=ROOT_ID)
            self._nodes[node_id] = node
            root.children.append(node)

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _notify(self, event: ChangeEvent) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Change listener failed for {event}: {e}")

    def _require(self, node_id: str) -> BookmarkNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise KeyError(f"Bookmark node not found: {node_id}")
        return node

    async def get(self, node_id: str) -> Optional[BookmarkNode]:
        node = self._nodes.get(node_id)
        return copy.deepcopy(node) if node else None

    async def get_children(self, node_id: str) -> List[BookmarkNode]:
        return copy.deepcopy(self._require(node_id).children)

    async def create(
        self,
        parent_id: str,
        title: str,
        url: Optional[str] = None,
        date_added: Optional[datetime] = None,
    ) -> BookmarkNode:
        parent = self._require(parent_id)
        if not parent.is_folder:
            raise ValueError(f"Cannot create a child under bookmark {parent_id}")

        node = BookmarkNode(
            id=str(next(self._ids)),
            title=title,
            url=url,
            parent_id=parent_id,
            date_added=date_added or datetime.utcnow(),
        )
        self._nodes[node.id] = node
        parent.children.append(node)

        self._notify(NodeCreated(node_id=node.id, parent_id=parent_id))
        return copy.deepcopy(node)

    async def update(self, node_id: str, title: str) -> BookmarkNode:
        node = self._require(node_id)
        changed = node.title != title
        node.title = title
        if changed:
            self._notify(NodeRenamed(node_id=node_id, title=title))
        return copy.deepcopy(node)

    async def move(self, node_id: str, parent_id: str, index: Optional[int] = None) -> BookmarkNode:
        node = self._require(node_id)
        new_parent = self._require(parent_id)

        ancestor: Optional[BookmarkNode] = new_parent
        while ancestor is not None:
            if ancestor.id == node_id:
                raise ValueError("Cannot move a folder into its own subtree")
            ancestor = self._nodes.get(ancestor.parent_id) if ancestor.parent_id else None

        old_parent_id = node.parent_id
        if old_parent_id:
            old_parent = self._nodes[old_parent_id]
            old_parent.children = [c for c in old_parent.children if c.id != node_id]

        if index is None:
            new_parent.children.append(node)
        else:
            new_parent.children.insert(index, node)
        node.parent_id = parent_id

        self._notify(NodeMoved(node_id=node_id, parent_id=parent_id, old_parent_id=old_parent_id))
        return copy.deepcopy(node)

    async def remove(self, node_id: str) -> None:
        if node_id in (ROOT_ID, BOOKMARKS_BAR_ID, OTHER_BOOKMARKS_ID):
            raise ValueError("Cannot remove a root folder")
        node = self._require(node_id)

        parent_id = node.parent_id
        if parent_id:
            parent = self._nodes[parent_id]
            parent.children = [c for c in parent.children if c.id != node_id]

        descendant_ids = []
        stack = [node]
        while stack:
            current = stack.pop()
            self._nodes.pop(current.id, None)
            if current is not node:
                descendant_ids.append(current.id)
            stack.extend(current.children)

        self._notify(NodeRemoved(node_id=node_id, parent_id=parent_id, descendant_ids=tuple(descendant_ids)))

    async def search_by_url(self, url: str) -> List[BookmarkNode]:
        return [copy.deepcopy(n) for n in self._nodes.values() if n.url == url]
