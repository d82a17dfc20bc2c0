"""
Tests for the in-memory bookmark tree.
"""

import pytest

from marksync.models.events import NodeRemoved
from marksync.tree.provider import BOOKMARKS_BAR_ID, BookmarkTreeProvider, InMemoryBookmarkTree


class TestBookmarkTreeProvider:
    def test_subscribe_is_required(self):
        class NoListeners(BookmarkTreeProvider):
            async def get(self, node_id):
                return None

            async def get_children(self, node_id):
                return []

            async def create(self, parent_id, title, url=None, date_added=None):
                raise NotImplementedError

            async def remove(self, node_id):
                pass

            async def search_by_url(self, url):
                return []

        with pytest.raises(TypeError):
            NoListeners()


class TestInMemoryBookmarkTree:
    @pytest.mark.asyncio
    async def test_remove_reports_whole_subtree(self):
        tree = InMemoryBookmarkTree()
        events = []
        tree.subscribe(events.append)

        outer = await tree.create(BOOKMARKS_BAR_ID, "Outer")
        inner = await tree.create(outer.id, "Inner")
        link = await tree.create(inner.id, "Link", url="https://link.test")
        await tree.remove(outer.id)

        removed = events[-1]
        assert isinstance(removed, NodeRemoved)
        assert removed.parent_id == BOOKMARKS_BAR_ID
        assert set(removed.descendant_ids) == {inner.id, link.id}
        assert await tree.get(link.id) is None

    @pytest.mark.asyncio
    async def test_remove_leaf_has_no_descendants(self):
        tree = InMemoryBookmarkTree()
        events = []
        tree.subscribe(events.append)

        link = await tree.create(BOOKMARKS_BAR_ID, "Link", url="https://link.test")
        await tree.remove(link.id)

        assert events[-1] == NodeRemoved(node_id=link.id, parent_id=BOOKMARKS_BAR_ID)
