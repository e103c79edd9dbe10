"""
Airlane Sharing & Permission Resolver — Effective access across grant channels.

Read access is resolved in this order:
    1. Ownership                       → owner
    2. Direct grant (not expired)      → viewer | editor
    3. Team audience, current member   → viewer
    4. Company audience (not expired)  → viewer
    5. Public link token (anonymous)   → viewer, resolved via resolve_link()

Share management is owner-only and never delegable. Every channel keeps at
most one row per key; re-sharing overwrites that row in place. Trashed
items are unreachable through shares and links.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from airlane.db.enums import ASSIGNABLE_PERMISSIONS, StorageAudience, StoragePermission
from airlane.db.models import (
    StorageItem,
    StorageItemAudience,
    StorageItemPermission,
    StorageShareLink,
    Team,
    User,
)
from airlane.engine.errors import NotFoundError, ValidationFailedError
from airlane.engine.logging import log, log_security_event
from airlane.storage.teams import TeamDirectory
from airlane.utilities.utils import as_utc, utcnow

logger = logging.getLogger("airlane.storage.sharing")

SHARED_LIST_LIMIT = 200


@dataclass
class SharedItems:
    """Items reachable by a user through other people's grants."""

    personal: List[StorageItem] = field(default_factory=list)
    teams: Dict[int, List[StorageItem]] = field(default_factory=dict)
    company: List[StorageItem] = field(default_factory=list)


def _unexpired(column, now: datetime):
    return or_(column.is_(None), column > now)


def _ordered(query):
    return query.order_by(
        StorageItem.is_pinned.desc(),
        StorageItem.is_favorite.desc(),
        StorageItem.type.asc(),
        StorageItem.name.asc(),
    )


class SharingResolver:
    def __init__(
        self,
        session: Session,
        teams: Optional[TeamDirectory] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._teams = teams or TeamDirectory(session)
        self._clock = clock

    # -------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------

    def ensure_owner(self, item: StorageItem, actor: Optional[User], operation: str) -> None:
        """Non-owners see the item as missing."""
        if actor is None or item.user_id != actor.id:
            actor_id = actor.id if actor is not None else None
            log(log_security_event(
                "share_management_denied", actor_id, item.id, reason=operation,
            ))
            raise NotFoundError("Item not found.", item_id=item.id, user_id=actor_id, operation=operation)

    def _validate_expiry(self, expires_at: Optional[datetime]) -> Optional[datetime]:
        if expires_at is None:
            return None
        expires_at = as_utc(expires_at)
        if expires_at <= self._clock():
            raise ValidationFailedError(
                "Expiry must be in the future.",
                validation_errors=[{"field": "expires_at", "error": "must be after now"}],
            )
        return expires_at

    @staticmethod
    def _validate_level(level: StoragePermission) -> StoragePermission:
        try:
            level = StoragePermission(level)
        except ValueError:
            level = None
        if level not in ASSIGNABLE_PERMISSIONS:
            shown = level.value if level is not None else "unknown"
            raise ValidationFailedError(
                f"Permission '{shown}' cannot be granted.",
                validation_errors=[{"field": "permission", "error": "must be viewer or editor"}],
            )
        return level

    # -------------------------------------------------------------------
    # Direct grants
    # -------------------------------------------------------------------

    def grant_permission(
        self,
        item: StorageItem,
        recipient: User,
        actor: User,
        level: StoragePermission,
        expires_at: Optional[datetime] = None,
    ) -> StorageItemPermission:
        self.ensure_owner(item, actor, "grant_permission")
        level = self._validate_level(level)
        if recipient.id == item.user_id:
            raise ValidationFailedError(
                "Cannot share an item with its owner.",
                item_id=item.id,
                validation_errors=[{"field": "recipient", "error": "is the owner"}],
            )
        expires_at = self._validate_expiry(expires_at)

        record = (
            self._session.query(StorageItemPermission)
            .filter(
                StorageItemPermission.storage_item_id == item.id,
                StorageItemPermission.user_id == recipient.id,
            )
            .with_for_update()
            .first()
        )
        if record is None:
            record = StorageItemPermission(storage_item_id=item.id, user_id=recipient.id)
            self._session.add(record)
        record.granted_by = actor.id
        record.permission = level.value
        record.expires_at = expires_at
        self._session.flush()
        return record

    def update_permission(
        self,
        permission: StorageItemPermission,
        actor: User,
        level: StoragePermission,
        expires_at: Optional[datetime] = None,
    ) -> StorageItemPermission:
        self.ensure_owner(permission.item, actor, "update_permission")
        permission.permission = self._validate_level(level).value
        permission.expires_at = self._validate_expiry(expires_at)
        self._session.flush()
        return permission

    def revoke_permission(self, permission: StorageItemPermission, actor: User) -> None:
        self.ensure_owner(permission.item, actor, "revoke_permission")
        self._session.delete(permission)
        self._session.flush()

    # -------------------------------------------------------------------
    # Audience grants
    # -------------------------------------------------------------------

    def _upsert_audience(
        self,
        item: StorageItem,
        audience: StorageAudience,
        team_id: Optional[int],
        actor: User,
        expires_at: Optional[datetime],
    ) -> StorageItemAudience:
        query = self._session.query(StorageItemAudience).filter(
            StorageItemAudience.storage_item_id == item.id,
            StorageItemAudience.audience == audience.value,
        )
        if team_id is None:
            query = query.filter(StorageItemAudience.team_id.is_(None))
        else:
            query = query.filter(StorageItemAudience.team_id == team_id)

        record = query.with_for_update().first()
        if record is None:
            record = StorageItemAudience(
                storage_item_id=item.id, audience=audience.value, team_id=team_id
            )
            self._session.add(record)
        record.created_by = actor.id
        record.permission = StoragePermission.VIEWER.value
        record.expires_at = expires_at
        self._session.flush()
        return record

    def share_with_company(
        self, item: StorageItem, actor: User, expires_at: Optional[datetime] = None
    ) -> StorageItemAudience:
        self.ensure_owner(item, actor, "share_with_company")
        expires_at = self._validate_expiry(expires_at)
        return self._upsert_audience(item, StorageAudience.COMPANY, None, actor, expires_at)

    def share_with_team(
        self,
        item: StorageItem,
        team: Optional[Team],
        actor: User,
        expires_at: Optional[datetime] = None,
    ) -> StorageItemAudience:
        self.ensure_owner(item, actor, "share_with_team")
        if team is None or team.id is None:
            raise ValidationFailedError(
                "A team is required for team sharing.",
                item_id=item.id,
                validation_errors=[{"field": "team", "error": "required"}],
            )
        expires_at = self._validate_expiry(expires_at)
        return self._upsert_audience(item, StorageAudience.TEAM, team.id, actor, expires_at)

    def revoke_audience(self, audience: StorageItemAudience, actor: User) -> None:
        self.ensure_owner(audience.item, actor, "revoke_audience")
        self._session.delete(audience)
        self._session.flush()

    # -------------------------------------------------------------------
    # Public links
    # -------------------------------------------------------------------

    @staticmethod
    def _validate_max_views(max_views: Optional[int]) -> Optional[int]:
        if max_views is not None and max_views < 1:
            raise ValidationFailedError(
                "max_views must be at least 1.",
                validation_errors=[{"field": "max_views", "error": "must be >= 1"}],
            )
        return max_views

    def enable_public_link(
        self,
        item: StorageItem,
        creator: User,
        permission: Optional[StoragePermission] = None,
        expires_at: Optional[datetime] = None,
        max_views: Optional[int] = None,
    ) -> StorageShareLink:
        """
        Create the item's public link, or update the existing one in place.

        The requested permission is ignored: public links are always viewer-only.
        """
        self.ensure_owner(item, creator, "enable_public_link")
        expires_at = self._validate_expiry(expires_at)
        max_views = self._validate_max_views(max_views)

        link = (
            self._session.query(StorageShareLink)
            .filter(StorageShareLink.storage_item_id == item.id)
            .with_for_update()
            .first()
        )
        if link is None:
            link = StorageShareLink(
                storage_item_id=item.id,
                created_by=creator.id,
                token=secrets.token_urlsafe(32),
                view_count=0,
            )
            self._session.add(link)
        link.permission = StoragePermission.VIEWER.value
        link.expires_at = expires_at
        link.max_views = max_views
        self._session.flush()
        return link

    def update_public_link(
        self,
        link: StorageShareLink,
        actor: User,
        permission: Optional[StoragePermission] = None,
        expires_at: Optional[datetime] = None,
        max_views: Optional[int] = None,
    ) -> StorageShareLink:
        self.ensure_owner(link.item, actor, "update_public_link")
        link.permission = StoragePermission.VIEWER.value
        link.expires_at = self._validate_expiry(expires_at)
        link.max_views = self._validate_max_views(max_views)
        self._session.flush()
        return link

    def disable_public_link(self, link: StorageShareLink, actor: User) -> None:
        self.ensure_owner(link.item, actor, "disable_public_link")
        self._session.delete(link)
        self._session.flush()

    def resolve_link(self, token: str) -> StorageShareLink:
        """
        Resolve a live link and count the view.

        Unknown, expired, exhausted, or trashed-item links are all NotFound.
        """
        link = (
            self._session.query(StorageShareLink)
            .join(StorageItem, StorageItem.id == StorageShareLink.storage_item_id)
            .filter(StorageShareLink.token == token, StorageItem.deleted_at.is_(None))
            .with_for_update(of=StorageShareLink)
            .first()
        )
        if link is None or link.is_expired(self._clock()):
            log(log_security_event(
                "share_link_rejected", None, link.storage_item_id if link else None,
                reason="unknown" if link is None else "expired",
            ))
            raise NotFoundError("Share link not found.", operation="resolve_link")

        link.view_count = StorageShareLink.view_count + 1
        self._session.flush()
        return link

    # -------------------------------------------------------------------
    # Access resolution
    # -------------------------------------------------------------------

    def effective_permission(
        self, user: Optional[User], item: StorageItem
    ) -> Optional[StoragePermission]:
        if user is None:
            return None
        if item.user_id == user.id:
            return StoragePermission.OWNER
        if item.deleted_at is not None:
            return None

        now = self._clock()

        direct = (
            self._session.query(StorageItemPermission)
            .filter(
                StorageItemPermission.storage_item_id == item.id,
                StorageItemPermission.user_id == user.id,
            )
            .first()
        )
        if direct is not None and direct.is_active(now):
            return direct.level

        audiences = (
            self._session.query(StorageItemAudience)
            .filter(StorageItemAudience.storage_item_id == item.id)
            .all()
        )
        active = [a for a in audiences if a.is_active(now)]
        if any(a.kind is StorageAudience.TEAM for a in active):
            team_ids = self._teams.team_ids_for(user)
            if any(a.kind is StorageAudience.TEAM and a.team_id in team_ids for a in active):
                return StoragePermission.VIEWER
        if any(a.kind is StorageAudience.COMPANY for a in active):
            return StoragePermission.VIEWER
        return None

    def can_read(self, user: Optional[User], item: StorageItem) -> bool:
        return self.effective_permission(user, item) is not None

    def can_write(self, user: Optional[User], item: StorageItem) -> bool:
        level = self.effective_permission(user, item)
        return level is not None and level.allows_write

    def shared_with(self, user: User, limit: int = SHARED_LIST_LIMIT) -> SharedItems:
        """Items other owners share with the user, grouped by channel."""
        now = self._clock()
        result = SharedItems()

        result.personal = _ordered(
            self._session.query(StorageItem)
            .join(StorageItemPermission, StorageItemPermission.storage_item_id == StorageItem.id)
            .filter(
                StorageItemPermission.user_id == user.id,
                StorageItem.user_id != user.id,
                StorageItem.deleted_at.is_(None),
                _unexpired(StorageItemPermission.expires_at, now),
            )
        ).limit(limit).all()

        team_ids = self._teams.team_ids_for(user)
        if team_ids:
            team_rows = _ordered(
                self._session.query(StorageItem, StorageItemAudience)
                .join(StorageItemAudience, StorageItemAudience.storage_item_id == StorageItem.id)
                .filter(
                    StorageItemAudience.audience == StorageAudience.TEAM.value,
                    StorageItemAudience.team_id.in_(team_ids),
                    StorageItem.user_id != user.id,
                    StorageItem.deleted_at.is_(None),
                    _unexpired(StorageItemAudience.expires_at, now),
                )
            ).limit(limit).all()
            for item, audience in team_rows:
                bucket = result.teams.setdefault(audience.team_id, [])
                if item not in bucket:
                    bucket.append(item)

        result.company = _ordered(
            self._session.query(StorageItem)
            .join(StorageItemAudience, StorageItemAudience.storage_item_id == StorageItem.id)
            .filter(
                StorageItemAudience.audience == StorageAudience.COMPANY.value,
                StorageItem.user_id != user.id,
                StorageItem.deleted_at.is_(None),
                _unexpired(StorageItemAudience.expires_at, now),
            )
        ).limit(limit).all()
        return result
