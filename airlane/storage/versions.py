"""
Airlane Version Store — Append-only, per-item numbered content revisions.

Version numbers start at 1 and are assigned as max(version) + 1 while the
item row is locked, so concurrent appends receive sequential numbers in
commit order. The item's size/mime/checksum/path columns mirror its latest
version and are updated on every append.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from airlane.db.models import StorageItem, StorageItemVersion, User
from airlane.storage.quota import QuotaLedger

logger = logging.getLogger("airlane.storage.versions")

# Item columns kept in sync with the latest version
_MIRRORED_FIELDS = ("size_bytes", "mime_type", "checksum", "disk", "stored_path")


class VersionStore:
    def __init__(self, session: Session):
        self._session = session

    def _lock_item(self, item: StorageItem) -> None:
        (
            self._session.query(StorageItem.id)
            .filter(StorageItem.id == item.id)
            .with_for_update()
            .one()
        )

    def next_version_number(self, item: StorageItem) -> int:
        current = (
            self._session.query(func.max(StorageItemVersion.version))
            .filter(StorageItemVersion.storage_item_id == item.id)
            .scalar()
        )
        return int(current or 0) + 1

    def append(
        self,
        item: StorageItem,
        author: Optional[User],
        *,
        size_bytes: int,
        disk: Optional[str] = None,
        stored_path: Optional[str] = None,
        mime_type: Optional[str] = None,
        checksum: Optional[str] = None,
        content: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StorageItemVersion:
        """
        Persist a new immutable version and point the item at it.

        Does not enforce the version cap or charge quota; callers do both.
        """
        self._lock_item(item)
        version = StorageItemVersion(
            storage_item_id=item.id,
            created_by=author.id if author is not None else None,
            version=self.next_version_number(item),
            disk=disk,
            stored_path=stored_path,
            mime_type=mime_type,
            size_bytes=size_bytes,
            checksum=checksum,
            content=content,
            meta=dict(metadata or {}),
        )
        self._session.add(version)
        self._session.flush()

        item.latest_version = version
        for field in _MIRRORED_FIELDS:
            setattr(item, field, getattr(version, field))
        self._session.flush()

        logger.debug(f"Appended v{version.version} to item {item.id} ({size_bytes} bytes)")
        return version

    def latest(self, item: StorageItem) -> Optional[StorageItemVersion]:
        return item.latest_version

    def history(self, item: StorageItem) -> List[StorageItemVersion]:
        return (
            self._session.query(StorageItemVersion)
            .filter(StorageItemVersion.storage_item_id == item.id)
            .order_by(StorageItemVersion.version.asc())
            .all()
        )

    def count(self, item: StorageItem) -> int:
        return (
            self._session.query(func.count(StorageItemVersion.id))
            .filter(StorageItemVersion.storage_item_id == item.id)
            .scalar()
        )

    def enforce_cap(self, item: StorageItem, ledger: QuotaLedger) -> List[int]:
        """
        Prune the oldest versions beyond the owner's version_cap.

        A cap of 0 or less means unlimited history. Each pruned version's
        bytes are credited back to the owner's ledger as it is removed.

        Returns:
            The pruned version numbers, oldest first.
        """
        owner = item.owner
        if owner is None:
            return []

        cap = int(owner.version_cap or 0)
        if cap <= 0:
            return []

        total = self.count(item)
        if total <= cap:
            return []

        excess = (
            self._session.query(StorageItemVersion)
            .filter(StorageItemVersion.storage_item_id == item.id)
            .order_by(StorageItemVersion.version.asc())
            .limit(total - cap)
            .all()
        )

        pruned: List[int] = []
        for version in excess:
            ledger.subtract_usage(owner, int(version.size_bytes or 0))
            pruned.append(version.version)
            self._session.delete(version)
        self._session.flush()
        self._session.expire(item, ["versions"])

        logger.info(f"Pruned versions {pruned} of item {item.id} (cap={cap})")
        return pruned
