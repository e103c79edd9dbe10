"""
Airlane column enumerations.

Stored as plain strings (guarded by CHECK constraints on the tables);
behaviour derives from the value through lookup tables, never subclassing.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet


class StorageItemType(str, Enum):
    FOLDER = "folder"
    FILE = "file"
    NOTE = "note"

    @property
    def has_binary_payload(self) -> bool:
        return self in _BINARY_TYPES

    @property
    def is_container(self) -> bool:
        return self in _CONTAINER_TYPES

    @property
    def supports_rich_content(self) -> bool:
        return self in _RICH_CONTENT_TYPES


_BINARY_TYPES: FrozenSet[StorageItemType] = frozenset({StorageItemType.FILE})
_CONTAINER_TYPES: FrozenSet[StorageItemType] = frozenset({StorageItemType.FOLDER})
_RICH_CONTENT_TYPES: FrozenSet[StorageItemType] = frozenset({StorageItemType.NOTE})


class StoragePermission(str, Enum):
    VIEWER = "viewer"
    EDITOR = "editor"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return _PERMISSION_RANK[self]

    @property
    def allows_write(self) -> bool:
        return self in (StoragePermission.EDITOR, StoragePermission.OWNER)

    @property
    def allows_share_management(self) -> bool:
        return self is StoragePermission.OWNER


_PERMISSION_RANK: Dict[StoragePermission, int] = {
    StoragePermission.VIEWER: 1,
    StoragePermission.EDITOR: 2,
    StoragePermission.OWNER: 3,
}

# Levels that may be granted to another user directly
ASSIGNABLE_PERMISSIONS = (StoragePermission.VIEWER, StoragePermission.EDITOR)


class StorageAudience(str, Enum):
    COMPANY = "company"
    TEAM = "team"

    @property
    def label(self) -> str:
        return _AUDIENCE_LABELS[self]


_AUDIENCE_LABELS: Dict[StorageAudience, str] = {
    StorageAudience.COMPANY: "Everyone in the company",
    StorageAudience.TEAM: "Everyone in the team",
}
