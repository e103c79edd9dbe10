"""
Airlane Quota Ledger — Admission control and cached usage accounting.

The cached ``users.storage_used_bytes`` counter is adjusted with SQL-side
arithmetic so concurrent transactions never lose an update. Versions are the
only chargeable bytes; ``recalculate`` rebuilds the counter from them.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from airlane.db.models import StorageItem, StorageItemVersion, User
from airlane.engine.errors import QuotaExceededError
from airlane.engine.logging import log, log_quota_event

logger = logging.getLogger("airlane.storage.quota")


class QuotaLedger:
    """Tracks and enforces a user's consumed vs. allotted storage bytes."""

    def __init__(self, session: Session, trash_retention_days: int = 30):
        self._session = session
        self._trash_retention_days = trash_retention_days

    def remaining(self, user: User) -> int:
        return user.quota_remaining_bytes()

    def can_store(self, user: User, num_bytes: int) -> bool:
        return num_bytes <= self.remaining(user)

    def ensure_can_store(self, user: User, num_bytes: int) -> None:
        """Raise QuotaExceededError when num_bytes does not fit in the remaining quota."""
        if not self.can_store(user, num_bytes):
            remaining = self.remaining(user)
            log(log_quota_event(
                "quota_rejected", user.id, num_bytes,
                used_bytes=user.storage_used_bytes, max_bytes=user.max_storage_bytes,
            ))
            raise QuotaExceededError(num_bytes, remaining, user_id=user.id)

    def add_usage(self, user: User, num_bytes: int) -> None:
        if num_bytes <= 0:
            return
        user.storage_used_bytes = User.storage_used_bytes + num_bytes
        self._session.flush()
        log(log_quota_event("usage_added", user.id, num_bytes))

    def subtract_usage(self, user: User, num_bytes: int) -> None:
        """Credit bytes back; the counter never drops below zero."""
        if num_bytes <= 0:
            return
        user.storage_used_bytes = case(
            (User.storage_used_bytes - num_bytes < 0, 0),
            else_=User.storage_used_bytes - num_bytes,
        )
        self._session.flush()
        log(log_quota_event("usage_subtracted", user.id, -num_bytes))

    def recalculate(self, user: User) -> int:
        """
        Rebuild the cached counter from the versions of every item the user
        owns. Trashed items still count until physically purged.
        """
        total = (
            self._session.query(func.coalesce(func.sum(StorageItemVersion.size_bytes), 0))
            .join(StorageItem, StorageItem.id == StorageItemVersion.storage_item_id)
            .filter(StorageItem.user_id == user.id)
            .scalar()
        )
        total = int(total or 0)
        previous: Optional[int] = user.storage_used_bytes
        user.storage_used_bytes = total
        self._session.flush()

        if previous != total:
            logger.info(f"Recalculated usage for user {user.id}: {previous} → {total} bytes")
        log(log_quota_event(
            "usage_recalculated", user.id, total - int(previous or 0),
            used_bytes=total, max_bytes=user.max_storage_bytes,
        ))
        return total

    def summary(self, user: User) -> Dict[str, Any]:
        """Usage and limits snapshot for display."""
        return {
            "plan": user.plan,
            "usage": {
                "used_bytes": int(user.storage_used_bytes),
                "max_bytes": int(user.max_storage_bytes),
                "remaining_bytes": user.quota_remaining_bytes(),
                "percent": user.storage_usage_percent(),
            },
            "limits": {
                "max_file_bytes": int(user.max_file_size_bytes),
                "version_cap": int(user.version_cap),
                "trash_retention_days": self._trash_retention_days,
            },
        }
