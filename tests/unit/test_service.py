"""
Tests for the folder sync service (explicit user actions).
"""

import json

import pytest

from marksync.exceptions import NotFoundError, ValidationError
from marksync.models import ResourceType
from marksync.sync import ImportOptions
from marksync.tree.provider import BOOKMARKS_BAR_ID, OTHER_BOOKMARKS_ID

from ..conftest import REPO, TOKEN


async def make_folder(engine, title, links=()):
    folder = await engine.tree.create(BOOKMARKS_BAR_ID, title)
    for name, url in links:
        await engine.tree.create(folder.id, name, url=url)
    return folder


class TestShareFolder:
    """Tests for linking folders to gists and repositories."""

    @pytest.mark.asyncio
    async def test_share_to_repo(self, engine):
        folder = await make_folder(engine, "Work", [("Docs", "https://docs.test")])
        bookmark = (await engine.tree.get_children(folder.id))[0]
        await engine.metadata.update(bookmark.id, tags=["python"])

        share = await engine.service.share_folder(folder.id, ResourceType.REPO, "https://github.com/octo/bookmarks")

        assert share.resource_id == REPO
        assert share.file_path == "bookmarks/work.json"
        assert share.url.endswith("bookmarks/work.json")

        data = json.loads(engine.github.file(REPO, "bookmarks/work.json"))
        assert data["metadata"]["name"] == "Work"
        assert data["metadata"]["author"] == "octo"
        assert data["metadata"]["sourceId"] == REPO
        assert data["bookmarks"][0]["tags"] == ["python"]
        assert engine.github.file(REPO, "README.md").startswith("# Work")

    @pytest.mark.asyncio
    async def test_share_to_new_gist(self, engine):
        folder = await make_folder(engine, "Links", [("A", "https://a.test")])

        share = await engine.service.share_folder(folder.id, ResourceType.GIST, public=True)

        assert share.resource_type == ResourceType.GIST
        assert share.file_path is None
        gist = engine.github.gists[share.resource_id]
        assert json.loads(gist["bookmarks.json"])["bookmarks"][0]["url"] == "https://a.test"

    @pytest.mark.asyncio
    async def test_share_to_existing_gist_by_url(self, engine):
        engine.github.add_gist("g1", {"links.json": "{}"})
        folder = await make_folder(engine, "Links", [("A", "https://a.test")])

        share = await engine.service.share_folder(
            folder.id, ResourceType.GIST, "https://gist.github.com/octo/g1"
        )

        assert share.resource_id == "g1"
        assert "https://a.test" in engine.github.gists["g1"]["links.json"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "resource_type,target",
        [
            (ResourceType.REPO, None),
            (ResourceType.REPO, "not-a-repo"),
            (ResourceType.GIST, "https://example.com/abc"),
        ],
    )
    async def test_bad_target(self, engine, resource_type, target):
        folder = await make_folder(engine, "Work")
        with pytest.raises(ValidationError):
            await engine.service.share_folder(folder.id, resource_type, target)
        assert await engine.registry.get(folder.id) is None

    @pytest.mark.asyncio
    async def test_unknown_folder(self, engine):
        with pytest.raises(NotFoundError) as exc_info:
            await engine.service.share_folder("999", ResourceType.REPO, REPO)
        assert exc_info.value.error_code == "FOLDER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unlink_with_remote_delete(self, engine):
        folder = await make_folder(engine, "Work")
        await engine.service.share_folder(folder.id, ResourceType.REPO, REPO)

        assert await engine.service.unlink(folder.id, delete_remote=True)
        assert engine.github.file(REPO, "bookmarks/work.json") is None
        assert await engine.service.get_share(folder.id) is None
        assert not await engine.service.unlink(folder.id)

    @pytest.mark.asyncio
    async def test_unlink_keeps_remote_by_default(self, engine):
        folder = await make_folder(engine, "Work")
        await engine.service.share_folder(folder.id, ResourceType.REPO, REPO)

        await engine.service.unlink(folder.id)
        assert engine.github.file(REPO, "bookmarks/work.json") is not None


class TestSync:
    """Tests for single and batch sync."""

    @pytest.mark.asyncio
    async def test_sync_unshared_folder(self, engine):
        folder = await make_folder(engine, "Work")
        with pytest.raises(NotFoundError) as exc_info:
            await engine.service.sync_folder(folder.id)
        assert exc_info.value.error_code == "NOT_SHARED"

    @pytest.mark.asyncio
    async def test_sync_pushes_current_contents(self, engine):
        folder = await make_folder(engine, "Work")
        await engine.service.share_folder(folder.id, ResourceType.REPO, REPO)
        await engine.tree.create(folder.id, "New", url="https://new.test")

        result = await engine.service.sync_folder(folder.id)

        assert not result.created
        data = json.loads(engine.github.file(REPO, "bookmarks/work.json"))
        assert [b["url"] for b in data["bookmarks"]] == ["https://new.test"]

    @pytest.mark.asyncio
    async def test_sync_all_counts_partial_failure(self, engine):
        for title in ("Work", "Home", "Reading"):
            folder = await make_folder(engine, title)
            await engine.service.share_folder(folder.id, ResourceType.REPO, REPO)
        engine.github.failures[("PUT", engine.github.contents_path("bookmarks/home.json"))] = 500

        result = await engine.service.sync_all()

        assert result.successes == 2
        assert result.failures == 1
        assert not result.auth_failed
        assert result.errors[0].startswith("Home:")

    @pytest.mark.asyncio
    async def test_sync_all_stops_on_auth_failure(self, engine):
        for title in ("Work", "Home"):
            folder = await make_folder(engine, title)
            await engine.service.share_folder(folder.id, ResourceType.REPO, REPO)
        del engine.github.tokens[TOKEN]
        before = len(engine.github.requests)

        result = await engine.service.sync_all()

        assert result.auth_failed
        assert result.successes == 0
        assert result.failures == 1
        assert len(engine.github.requests) == before + 1
        assert await engine.credentials.load() is None

    @pytest.mark.asyncio
    async def test_reconcile_rejects_gist_id(self, engine):
        with pytest.raises(ValidationError):
            await engine.service.reconcile("abc123")


class TestPullAndImport:
    """Tests for reading snapshots back into the tree."""

    @pytest.mark.asyncio
    async def test_pull_returns_remote_text(self, engine):
        folder = await make_folder(engine, "Work", [("A", "https://a.test")])
        await engine.service.share_folder(folder.id, ResourceType.REPO, REPO)

        assert await engine.service.pull(folder.id) == engine.github.file(REPO, "bookmarks/work.json")

    @pytest.mark.asyncio
    async def test_import_from_share(self, engine):
        folder = await make_folder(engine, "Work", [("A", "https://a.test"), ("B", "https://b.test")])
        await engine.service.share_folder(folder.id, ResourceType.REPO, REPO)

        result = await engine.service.import_from_share(
            folder.id, ImportOptions(target_folder_id=OTHER_BOOKMARKS_ID, skip_duplicates=False)
        )

        assert result.imported == 2
        titles = [c.title for c in await engine.tree.get_children(OTHER_BOOKMARKS_ID)]
        assert titles == ["A", "B"]

    @pytest.mark.asyncio
    async def test_import_from_unshared_folder(self, engine):
        with pytest.raises(NotFoundError):
            await engine.service.import_from_share("999")

    @pytest.mark.asyncio
    async def test_import_remote_gist(self, engine):
        snapshot = {
            "version": "1.0",
            "metadata": {"name": "Shared", "created": "c", "updated": "u"},
            "bookmarks": [{"title": "A", "url": "https://a.test"}],
            "folders": [{"name": "Sub", "path": "Sub", "bookmarks": [{"title": "B", "url": "https://b.test"}]}],
        }
        engine.github.add_gist("g1", {"bookmarks.json": json.dumps(snapshot)})

        result = await engine.service.import_remote(
            ResourceType.GIST, "https://gist.github.com/someone/g1",
            options=ImportOptions(target_folder_id=OTHER_BOOKMARKS_ID),
        )

        assert result.imported == 2
        children = await engine.tree.get_children(OTHER_BOOKMARKS_ID)
        assert [c.title for c in children] == ["A", "Sub"]
        assert children[1].children[0].url == "https://b.test"

    @pytest.mark.asyncio
    async def test_import_remote_repo_default_file(self, engine):
        folder = await make_folder(engine, "Source", [("A", "https://a.test")])
        text = await engine.service.export_folder(await engine.tree.get(folder.id), ResourceType.REPO)
        engine.github.put_file(REPO, "bookmarks.json", text)

        result = await engine.service.import_remote(
            ResourceType.REPO, REPO, options=ImportOptions(target_folder_id=OTHER_BOOKMARKS_ID, skip_duplicates=False)
        )
        assert result.imported == 1
