"""
Snapshot import: JSON document -> bookmark tree.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

import pydantic

from ..exceptions import ValidationError, create_error_context
from ..models.snapshot import SharedBookmark, SnapshotCollection
from ..tree.metadata import BookmarkMetadataStore
from ..tree.provider import BOOKMARKS_BAR_ID, BookmarkTreeProvider

logger = logging.getLogger(__name__)


class ImportStrategy(str, Enum):
    APPEND = "append"
    REPLACE = "replace"  # clears the target folder first


@dataclass
class ImportOptions:
    strategy: ImportStrategy = ImportStrategy.APPEND
    target_folder_id: str = BOOKMARKS_BAR_ID
    skip_duplicates: bool = True
    preserve_tags: bool = True


@dataclass
class ImportResult:
    imported: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {"imported": self.imported, "errors": list(self.errors)}


def parse_snapshot(text: str) -> SnapshotCollection:
    """
    Parse and validate a snapshot document.

    A document needs a non-empty ``version``, a non-empty ``metadata`` object
    and a ``bookmarks`` list; ``folders`` may be absent.

    Raises:
        ValidationError: If the text is not a valid snapshot
    """
    context = create_error_context(operation="parse_snapshot")
    try:
        data = json.loads(text)
    except ValueError as e:
        raise ValidationError(f"Snapshot is not valid JSON: {e}", context=context, cause=e)

    if not isinstance(data, dict):
        raise ValidationError("Snapshot must be a JSON object", context=context)
    missing = [key for key in ("version", "metadata") if not data.get(key)]
    if "bookmarks" not in data or data["bookmarks"] is None:
        missing.append("bookmarks")
    if missing:
        raise ValidationError(
            f"Invalid bookmark collection format: missing {', '.join(missing)}",
            context=context,
        )

    try:
        return SnapshotCollection.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"Invalid bookmark collection format: {e.error_count()} problems",
            context=create_error_context(operation="parse_snapshot", errors=e.errors(include_url=False)),
            cause=e,
        )


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None) if parsed.tzinfo else parsed


class SnapshotImporter:
    """Creates bookmarks and folders from a snapshot."""

    def __init__(self, tree: BookmarkTreeProvider, metadata: BookmarkMetadataStore):
        self.tree = tree
        self.metadata = metadata

    async def import_json(self, text: str, options: Optional[ImportOptions] = None) -> ImportResult:
        return await self.import_snapshot(parse_snapshot(text), options)

    async def import_snapshot(
        self,
        snapshot: SnapshotCollection,
        options: Optional[ImportOptions] = None,
    ) -> ImportResult:
        """
        Import a snapshot under the target folder.

        Per-item failures are collected in the result; the import goes on.

        Args:
            snapshot: Parsed snapshot
            options: Strategy, target folder and duplicate handling

        Returns:
            Number of bookmarks created and the errors met on the way
        """
        options = options or ImportOptions()
        result = ImportResult()
        target = options.target_folder_id

        if await self.tree.get(target) is None:
            raise ValidationError(
                f"Import target folder {target} does not exist",
                error_code="INVALID_TARGET",
                context=create_error_context(operation="import", folder_id=target),
            )

        if options.strategy == ImportStrategy.REPLACE:
            for child in await self.tree.get_children(target):
                try:
                    await self.tree.remove(child.id)
                except (KeyError, ValueError) as e:
                    result.errors.append(f'Failed to remove "{child.title}": {e}')

        for bookmark in snapshot.bookmarks:
            await self._import_bookmark(bookmark, target, options, result)

        folder_ids: Dict[str, str] = {}
        for folder in snapshot.folders:
            try:
                folder_id = await self._ensure_folder(folder.path or folder.name, target, folder_ids)
            except (KeyError, ValueError) as e:
                result.errors.append(f'Failed to create folder "{folder.name}": {e}')
                continue
            for bookmark in folder.bookmarks:
                await self._import_bookmark(bookmark, folder_id, options, result)

        logger.info(
            f"Imported {result.imported} bookmarks into {target} "
            f"({options.strategy.value}, {len(result.errors)} errors)"
        )
        return result

    async def _ensure_folder(self, path: str, target: str, folder_ids: Dict[str, str]) -> str:
        """Id of the folder at path below target, creating missing levels."""
        parent_id = target
        parts = [p for p in path.split("/") if p]
        for depth, part in enumerate(parts):
            current = "/".join(parts[: depth + 1])
            if current not in folder_ids:
                created = await self.tree.create(parent_id, part)
                folder_ids[current] = created.id
            parent_id = folder_ids[current]
        return parent_id

    async def _import_bookmark(
        self,
        bookmark: SharedBookmark,
        parent_id: str,
        options: ImportOptions,
        result: ImportResult,
    ) -> None:
        try:
            if options.skip_duplicates and await self.tree.search_by_url(bookmark.url):
                return

            created = await self.tree.create(
                parent_id,
                bookmark.title,
                url=bookmark.url,
                date_added=_parse_date(bookmark.date_added),
            )

            tags = bookmark.tags if options.preserve_tags and bookmark.tags else None
            if tags or bookmark.notes:
                await self.metadata.update(created.id, tags=tags, notes=bookmark.notes)
            result.imported += 1
        except (KeyError, ValueError) as e:
            result.errors.append(f'Failed to import "{bookmark.title}": {e}')
