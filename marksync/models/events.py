"""
Local change events and the sync intents derived from them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class NodeCreated:
    node_id: str
    parent_id: Optional[str]


@dataclass(frozen=True)
class NodeRemoved:
    node_id: str
    parent_id: Optional[str]
    descendant_ids: Tuple[str, ...] = ()  # every node that was below node_id


@dataclass(frozen=True)
class NodeRenamed:
    node_id: str
    title: str


@dataclass(frozen=True)
class NodeMoved:
    node_id: str
    parent_id: Optional[str]
    old_parent_id: Optional[str] = None


ChangeEvent = Union[NodeCreated, NodeRemoved, NodeRenamed, NodeMoved]


class SyncReason(str, Enum):
    """Why a folder needs to be pushed again."""
    CREATED = "created"
    REMOVED = "removed"
    RENAMED = "renamed"
    MOVED = "moved"


@dataclass
class SyncIntent:
    """Request to re-export and push one folder. Never persisted."""
    folder_id: str
    reason: SyncReason
    requested_at: datetime = field(default_factory=datetime.utcnow)
