"""
Tests for the sync trigger dispatcher: local changes -> remote writes.
"""

import json

import pytest
import pytest_asyncio

from marksync.exceptions import NetworkError
from marksync.models import ResourceType
from marksync.models.events import NodeCreated
from marksync.sync import SyncTriggerDispatcher
from marksync.tree.provider import BOOKMARKS_BAR_ID

from ..conftest import REPO


@pytest_asyncio.fixture
async def dispatcher(engine):
    dispatcher = SyncTriggerDispatcher(engine.registry, engine.tree, engine.service, debounce_seconds=0)
    engine.tree.subscribe(dispatcher.publish_nowait)
    dispatcher.start()
    yield dispatcher
    await dispatcher.stop()


async def share_repo_folder(engine, dispatcher, title, parent_id=BOOKMARKS_BAR_ID):
    """Create a folder, share it to the test repository and settle the resulting events."""
    folder = await engine.tree.create(parent_id, title)
    await engine.service.share_folder(folder.id, ResourceType.REPO, REPO)
    await dispatcher.drain()
    return folder


def snapshot_at(engine, path):
    return json.loads(engine.github.file(REPO, path))


class TestChangeResolution:
    """Tests for event -> intent resolution."""

    @pytest.mark.asyncio
    async def test_new_bookmark_resyncs_nearest_shared_ancestor(self, engine, dispatcher):
        work = await share_repo_folder(engine, dispatcher, "Work")

        dev = await engine.tree.create(work.id, "Dev")
        await engine.tree.create(dev.id, "Docs", url="https://docs.test")
        await dispatcher.drain()

        data = snapshot_at(engine, "bookmarks/work.json")
        assert data["folders"][0]["path"] == "Dev"
        assert data["folders"][0]["bookmarks"][0]["url"] == "https://docs.test"
        assert (await engine.registry.get(work.id)).last_synced_at is not None

    @pytest.mark.asyncio
    async def test_changes_outside_shared_folders_are_ignored(self, engine, dispatcher):
        await share_repo_folder(engine, dispatcher, "Work")
        writes = len(engine.github.requests)

        await engine.tree.create(BOOKMARKS_BAR_ID, "Loose", url="https://loose.test")
        await dispatcher.drain()

        assert len(engine.github.requests) == writes

    @pytest.mark.asyncio
    async def test_removed_folder_is_deleted_exactly_once(self, engine, dispatcher):
        gh = engine.github
        work = await share_repo_folder(engine, dispatcher, "Work")
        path = gh.contents_path("bookmarks/work.json")

        await engine.tree.remove(work.id)
        await dispatcher.drain()

        assert gh.count("DELETE", path) == 1
        assert gh.file(REPO, "bookmarks/work.json") is None
        assert await engine.registry.get(work.id) is None
        assert gh.files() == ["README.md"]

    @pytest.mark.asyncio
    async def test_nested_shares_go_with_removed_parent(self, engine, dispatcher):
        gh = engine.github
        outer = await engine.tree.create(BOOKMARKS_BAR_ID, "Outer")
        await share_repo_folder(engine, dispatcher, "Inner", parent_id=outer.id)

        await engine.tree.remove(outer.id)
        await dispatcher.drain()

        assert await engine.registry.all() == []
        assert gh.file(REPO, "bookmarks/inner.json") is None

    @pytest.mark.asyncio
    async def test_shares_from_other_devices_survive_unrelated_removal(self, engine, dispatcher):
        gh = engine.github
        gh.put_file(REPO, "bookmarks/laptop.json", "{}")
        await engine.registry.link(
            "999", ResourceType.REPO, REPO, "", "Laptop", file_path="bookmarks/laptop.json"
        )
        loose = await engine.tree.create(BOOKMARKS_BAR_ID, "Loose", url="https://loose.test")
        await dispatcher.drain()

        await engine.tree.remove(loose.id)
        await dispatcher.drain()

        assert await engine.registry.get("999") is not None
        assert gh.file(REPO, "bookmarks/laptop.json") == "{}"

    @pytest.mark.asyncio
    async def test_cascade_keeps_shares_missing_from_local_tree(self, engine, dispatcher):
        gh = engine.github
        gh.put_file(REPO, "bookmarks/laptop.json", "{}")
        await engine.registry.link(
            "999", ResourceType.REPO, REPO, "", "Laptop", file_path="bookmarks/laptop.json"
        )
        work = await share_repo_folder(engine, dispatcher, "Work")

        await engine.tree.remove(work.id)
        await dispatcher.drain()

        assert await engine.registry.get(work.id) is None
        assert await engine.registry.get("999") is not None
        assert gh.files() == ["README.md", "bookmarks/laptop.json"]

    @pytest.mark.asyncio
    async def test_cascade_keeps_snapshot_of_share_without_path(self, engine, dispatcher):
        gh = engine.github
        whole = await engine.tree.create(BOOKMARKS_BAR_ID, "Everything")
        await engine.registry.link(whole.id, ResourceType.REPO, REPO, "", "Everything")
        await engine.service.sync_folder(whole.id)
        home = await share_repo_folder(engine, dispatcher, "Home")

        await engine.tree.remove(home.id)
        await dispatcher.drain()

        assert gh.files() == ["README.md", "bookmarks.json"]
        assert await engine.registry.get(whole.id) is not None

    @pytest.mark.asyncio
    async def test_removed_bookmark_metadata_is_dropped(self, engine, dispatcher):
        work = await share_repo_folder(engine, dispatcher, "Work")
        sub = await engine.tree.create(work.id, "Sub")
        top = await engine.tree.create(work.id, "Top", url="https://top.test")
        nested = await engine.tree.create(sub.id, "Nested", url="https://nested.test")
        await engine.metadata.update(top.id, tags=["python"], notes="read later")
        await engine.metadata.update(nested.id, tags=["deep"])
        await dispatcher.drain()

        await engine.tree.remove(top.id)
        await engine.tree.remove(sub.id)
        await dispatcher.drain()

        assert await engine.metadata.get(top.id) is None
        assert await engine.metadata.get(nested.id) is None
        assert await engine.metadata.get_all() == {}

    @pytest.mark.asyncio
    async def test_removed_bookmark_resyncs_shared_parent(self, engine, dispatcher):
        work = await share_repo_folder(engine, dispatcher, "Work")
        link = await engine.tree.create(work.id, "Link", url="https://link.test")
        await dispatcher.drain()
        assert len(snapshot_at(engine, "bookmarks/work.json")["bookmarks"]) == 1

        await engine.tree.remove(link.id)
        await dispatcher.drain()

        assert snapshot_at(engine, "bookmarks/work.json")["bookmarks"] == []

    @pytest.mark.asyncio
    async def test_rename_moves_snapshot_to_new_path(self, engine, dispatcher):
        gh = engine.github
        work = await share_repo_folder(engine, dispatcher, "Work")

        await engine.tree.update(work.id, "Work Stuff!!")
        await dispatcher.drain()

        assert gh.files() == ["README.md", "bookmarks/work-stuff.json"]
        assert (await engine.registry.get(work.id)).file_path == "bookmarks/work-stuff.json"
        assert snapshot_at(engine, "bookmarks/work-stuff.json")["metadata"]["name"] == "Work Stuff!!"

    @pytest.mark.asyncio
    async def test_rename_cleanup_retries_failed_delete(self, engine, dispatcher, monkeypatch):
        gh = engine.github
        work = await share_repo_folder(engine, dispatcher, "Work")

        async def unavailable(share, path):
            raise NetworkError("GitHub unreachable")

        monkeypatch.setattr(engine.service, "delete_snapshot", unavailable)

        await engine.tree.update(work.id, "Work Stuff!!")
        await dispatcher.drain()

        assert gh.files() == ["README.md", "bookmarks/work-stuff.json"]

    @pytest.mark.asyncio
    async def test_move_resyncs_both_shared_folders(self, engine, dispatcher):
        work = await share_repo_folder(engine, dispatcher, "Work")
        home = await share_repo_folder(engine, dispatcher, "Home")
        link = await engine.tree.create(work.id, "Link", url="https://link.test")
        await dispatcher.drain()

        await engine.tree.move(link.id, home.id)
        await dispatcher.drain()

        assert snapshot_at(engine, "bookmarks/work.json")["bookmarks"] == []
        assert [b["url"] for b in snapshot_at(engine, "bookmarks/home.json")["bookmarks"]] == ["https://link.test"]


class TestScheduling:
    """Tests for debouncing and loop resilience."""

    @pytest.mark.asyncio
    async def test_burst_of_edits_produces_one_write(self, engine):
        dispatcher = SyncTriggerDispatcher(engine.registry, engine.tree, engine.service, debounce_seconds=0.05)
        engine.tree.subscribe(dispatcher.publish_nowait)
        dispatcher.start()
        try:
            work = await share_repo_folder(engine, dispatcher, "Work")
            path = engine.github.contents_path("bookmarks/work.json")
            assert engine.github.count("PUT", path) == 1

            for i in range(5):
                await engine.tree.create(work.id, f"Link {i}", url=f"https://{i}.test")
            await dispatcher.drain()

            assert engine.github.count("PUT", path) == 2
            assert len(snapshot_at(engine, "bookmarks/work.json")["bookmarks"]) == 5
        finally:
            await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_failing_event_does_not_stop_the_loop(self, engine, dispatcher, monkeypatch, caplog):
        work = await share_repo_folder(engine, dispatcher, "Work")
        path = engine.github.contents_path("bookmarks/work.json")

        original = dispatcher.nearest_share
        calls = []

        async def flaky(node_id):
            calls.append(node_id)
            if len(calls) == 1:
                raise RuntimeError("tree unavailable")
            return await original(node_id)

        monkeypatch.setattr(dispatcher, "nearest_share", flaky)

        await dispatcher.publish(NodeCreated(node_id="x", parent_id=work.id))
        await dispatcher.publish(NodeCreated(node_id="y", parent_id=work.id))
        await dispatcher.drain()

        assert "Failed to handle change event" in caplog.text
        assert engine.github.count("PUT", path) == 2

    @pytest.mark.asyncio
    async def test_failed_resync_is_logged_not_raised(self, engine, dispatcher, caplog):
        work = await share_repo_folder(engine, dispatcher, "Work")
        engine.github.failures[("PUT", engine.github.contents_path("bookmarks/work.json"))] = 500

        await engine.tree.create(work.id, "Link", url="https://link.test")
        await dispatcher.drain()

        assert f"Resync of folder {work.id} failed" in caplog.text

    @pytest.mark.asyncio
    async def test_full_queue_drops_event(self, engine):
        dispatcher = SyncTriggerDispatcher(engine.registry, engine.tree, engine.service, queue_size=1)

        assert dispatcher.publish_nowait(NodeCreated(node_id="a", parent_id=BOOKMARKS_BAR_ID))
        assert not dispatcher.publish_nowait(NodeCreated(node_id="b", parent_id=BOOKMARKS_BAR_ID))
