"""
Airlane Storage Service — Atomic user-facing storage operations.

Handles:
- Folder creation, rename, move, delete/restore, pin/favorite, tags
- File upload and new file versions with size/quota admission control
- Note creation and edits with inline versioned content
- Sharing with users, teams, the company, and public links
- Reads: listings, breadcrumbs, shared-with-me, public link resolution

Every mutation runs in a single transaction (commit on success, rollback on
any error) and leaves one storage_activities row plus a structured log
entry. Size and quota checks run before any payload is written.

Payload storage:
    {storage.root}/{disk}/users/{user_id}/{uuid}.{ext}
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Generator, Iterable, Iterator, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from airlane.db.enums import StorageItemType, StoragePermission
from airlane.db.models import (
    StorageActivity,
    StorageItem,
    StorageItemAudience,
    StorageItemPermission,
    StorageItemVersion,
    StorageShareLink,
    StorageTag,
    Team,
    TeamMember,
    User,
)
from airlane.engine.config import PlatformConfig
from airlane.engine.errors import (
    FileTooLargeError,
    InvalidPayloadError,
    NotANoteError,
    NotFoundError,
    ValidationFailedError,
)
from airlane.engine.logging import (
    get_file_logger,
    init_logging,
    log,
    log_security_event,
    log_storage_operation,
)
from airlane.storage.blobs import LocalBlobStore, StoredBlob, UploadedFile
from airlane.storage.plans import PlanCatalog, PlanManager
from airlane.storage.quota import QuotaLedger
from airlane.storage.sharing import SharedItems, SharingResolver
from airlane.storage.teams import TeamDirectory
from airlane.storage.tree import ItemTree
from airlane.storage.versions import VersionStore
from airlane.utilities.utils import slugify, utcnow

logger = logging.getLogger("airlane.storage.service")

NOTE_DISK = "database"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class _Operation:
    """Bookkeeping for one transactional operation."""

    action: str
    user_id: Optional[int]
    item_id: Optional[int] = None
    properties: Dict[str, Any] = field(default_factory=dict)

    def track(self, item: Optional[StorageItem], **properties: Any) -> None:
        if item is not None:
            self.item_id = item.id
        self.properties.update(properties)


class StorageService:
    """
    Facade over the item tree, version store, quota ledger and sharing resolver.

    One instance per session (typically per request).
    """

    def __init__(
        self,
        session: Session,
        blob_store: LocalBlobStore,
        plans: PlanCatalog,
        disk: str = "local",
        trash_retention_days: int = 30,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._blobs = blob_store
        self._disk = disk
        self._clock = clock
        self._catalog = plans

        self.tree = ItemTree(session, clock=clock)
        self.versions = VersionStore(session)
        self.quota = QuotaLedger(session, trash_retention_days=trash_retention_days)
        self.teams = TeamDirectory(session)
        self.sharing = SharingResolver(session, teams=self.teams, clock=clock)
        self.plans = PlanManager(session, plans)

    @classmethod
    def from_config(
        cls,
        session: Session,
        config: PlatformConfig,
        clock: Callable[[], datetime] = utcnow,
    ) -> "StorageService":
        """Build a service from platform config, starting structured logging if needed."""
        if get_file_logger() is None:
            init_logging(log_dir=config.logging.directory, level=config.logging.level)
        storage = config.storage
        return cls(
            session,
            LocalBlobStore(storage.root),
            PlanCatalog.from_config(storage),
            disk=storage.disk,
            trash_retention_days=storage.trash_retention_days,
            clock=clock,
        )

    # -------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------

    @contextmanager
    def _transaction(self, action: str, actor: Optional[User]) -> Generator[_Operation, None, None]:
        op = _Operation(action=action, user_id=actor.id if actor is not None else None)
        try:
            yield op
            if op.user_id is not None:
                self._session.add(StorageActivity(
                    user_id=op.user_id,
                    storage_item_id=op.item_id,
                    action=action,
                    properties=dict(op.properties),
                    occurred_at=self._clock(),
                ))
            self._session.commit()
        except Exception as e:
            self._session.rollback()
            logger.warning(f"Storage operation '{action}' rolled back: {e}")
            log(log_storage_operation(action, op.user_id, op.item_id, success=False, error=str(e)))
            raise
        log(log_storage_operation(action, op.user_id, op.item_id, **op.properties))

    # -------------------------------------------------------------------
    # Access guards
    # -------------------------------------------------------------------

    def _deny(self, user: Optional[User], item_id: Optional[int], operation: str) -> NotFoundError:
        user_id = user.id if user is not None else None
        log(log_security_event("access_denied", user_id, item_id, reason=operation))
        return NotFoundError("Item not found.", item_id=item_id, user_id=user_id, operation=operation)

    def _require_owner(self, user: Optional[User], item: StorageItem, operation: str) -> None:
        if user is not None and item.user_id != user.id:
            raise self._deny(user, item.id, operation)

    def _require_write(self, user: Optional[User], item: StorageItem, operation: str) -> None:
        if user is not None and not self.sharing.can_write(user, item):
            raise self._deny(user, item.id, operation)

    def _require_read(self, user: Optional[User], item: StorageItem, operation: str) -> None:
        if not self.sharing.can_read(user, item):
            raise self._deny(user, item.id, operation)

    # -------------------------------------------------------------------
    # Users, plans and teams
    # -------------------------------------------------------------------

    def create_user(self, name: str, email: str, plan_key: Optional[str] = None) -> User:
        with self._transaction("create_user", None):
            user = self.plans.create_user(name, email, plan_key)
        return user

    def assign_plan(self, user: User, plan_key: str) -> User:
        with self._transaction("assign_plan", user) as op:
            self.plans.assign(user, plan_key)
            op.track(None, plan=plan_key)
        return user

    def create_team(self, name: str, description: Optional[str] = None) -> Team:
        with self._transaction("create_team", None):
            team = self.teams.create_team(name, description)
        return team

    def add_team_member(self, team: Team, user: User, role: str = "member") -> TeamMember:
        with self._transaction("add_team_member", user) as op:
            member = self.teams.add_member(team, user, role)
            op.track(None, team_id=team.id, role=role)
        return member

    def remove_team_member(self, team: Team, user: User) -> bool:
        with self._transaction("remove_team_member", user) as op:
            removed = self.teams.remove_member(team, user)
            op.track(None, team_id=team.id)
        return removed

    # -------------------------------------------------------------------
    # Folders
    # -------------------------------------------------------------------

    def create_folder(
        self,
        user: User,
        name: str,
        parent: Optional[StorageItem] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StorageItem:
        self.tree.assert_parent(user.id, parent)
        with self._transaction("create_folder", user) as op:
            item = self.tree.create_folder(user, name, parent, metadata)
            op.track(item, name=name)
        return item

    # -------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------

    def _measure(self, user: User, upload: UploadedFile) -> int:
        """Size, per-file limit and quota checks; nothing is written yet."""
        size = upload.determine_size()
        if size <= 0:
            raise InvalidPayloadError(
                "Unable to determine uploaded file size.", user_id=user.id, filename=upload.filename
            )
        if size > user.max_file_size_bytes:
            raise FileTooLargeError(size, int(user.max_file_size_bytes), user_id=user.id)
        self.quota.ensure_can_store(user, size)
        return size

    def _store_blob(self, user: User, upload: UploadedFile, expected_size: int) -> StoredBlob:
        path = LocalBlobStore.generate_path(user.id, upload.extension)
        stored = self._blobs.write(self._disk, path, upload.stream)
        if stored.size_bytes != expected_size:
            self._blobs.delete(self._disk, path)
            raise InvalidPayloadError(
                f"Payload is {stored.size_bytes} bytes, expected {expected_size}.",
                user_id=user.id,
                filename=upload.filename,
            )
        return stored

    def _discard_blob(self, stored: StoredBlob) -> None:
        try:
            self._blobs.delete(stored.namespace, stored.path)
        except OSError as e:
            logger.error(f"Could not remove orphaned blob {stored.namespace}/{stored.path}: {e}")

    def upload_file(
        self,
        user: User,
        upload: UploadedFile,
        parent: Optional[StorageItem] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StorageItem:
        """
        Store a new file and its first version.

        1. Validate parent
        2. Determine size (> 0), check per-file limit, check quota
        3. Write payload to the blob store (checksum computed while writing)
        4. In one transaction: item, version 1, pointer, usage, version cap
        """
        self.tree.assert_parent(user.id, parent)
        size = self._measure(user, upload)
        stored = self._store_blob(user, upload, size)

        display_name = os.path.basename(upload.filename) or os.path.basename(stored.path)
        mime_type = upload.resolved_mime_type()
        item_metadata = dict(metadata or {})
        item_metadata.update({"original_name": display_name, "extension": upload.extension})

        try:
            with self._transaction("upload_file", user) as op:
                item = self.tree.add_item(
                    user,
                    StorageItemType.FILE,
                    display_name,
                    parent,
                    item_metadata,
                    disk=stored.namespace,
                    stored_path=stored.path,
                    mime_type=mime_type,
                    size_bytes=size,
                    checksum=stored.checksum,
                )
                self.versions.append(
                    item,
                    user,
                    size_bytes=size,
                    disk=stored.namespace,
                    stored_path=stored.path,
                    mime_type=mime_type,
                    checksum=stored.checksum,
                    metadata={**item_metadata, "uploaded_via": "app"},
                )
                self.quota.add_usage(user, size)
                self.versions.enforce_cap(item, self.quota)
                op.track(item, size_bytes=size, mime_type=mime_type)
        except Exception:
            self._discard_blob(stored)
            raise
        return item

    def upload_new_version(
        self,
        item: StorageItem,
        upload: UploadedFile,
        author: Optional[User] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StorageItemVersion:
        """Replace a file's content with a full new version."""
        if not item.is_file:
            raise InvalidPayloadError("Only files accept uploaded versions.", item_id=item.id)
        self._require_write(author, item, "upload_new_version")
        owner = item.owner
        size = self._measure(owner, upload)
        stored = self._store_blob(owner, upload, size)
        mime_type = upload.resolved_mime_type()

        try:
            with self._transaction("upload_new_version", author or owner) as op:
                version = self.versions.append(
                    item,
                    author or owner,
                    size_bytes=size,
                    disk=stored.namespace,
                    stored_path=stored.path,
                    mime_type=mime_type,
                    checksum=stored.checksum,
                    metadata={**(metadata or {}), "original_name": upload.filename, "uploaded_via": "app"},
                )
                self.quota.add_usage(owner, size)
                self.versions.enforce_cap(item, self.quota)
                op.track(item, version=version.version, size_bytes=size)
        except Exception:
            self._discard_blob(stored)
            raise
        return version

    # -------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------

    def create_note(
        self,
        user: User,
        name: str,
        content: str,
        parent: Optional[StorageItem] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StorageItem:
        self.tree.assert_parent(user.id, parent)
        size = len(content.encode("utf-8"))
        self.quota.ensure_can_store(user, size)

        with self._transaction("create_note", user) as op:
            item = self.tree.add_item(
                user, StorageItemType.NOTE, name, parent, metadata, size_bytes=size
            )
            self.versions.append(
                item, user, size_bytes=size, disk=NOTE_DISK, content=content, metadata=metadata
            )
            self.quota.add_usage(user, size)
            self.versions.enforce_cap(item, self.quota)
            op.track(item, size_bytes=size)
        return item

    def update_note(
        self,
        item: StorageItem,
        content: str,
        author: Optional[User] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StorageItemVersion:
        """
        Append a new note version.

        The quota check is additive: the new content must fit in the
        remaining quota without first crediting the previous version.
        """
        if not item.is_note:
            raise NotANoteError("Item is not a note.", item_id=item.id)
        self._require_write(author, item, "update_note")

        owner = item.owner
        size = len(content.encode("utf-8"))
        self.quota.ensure_can_store(owner, size)

        with self._transaction("update_note", author or owner) as op:
            version = self.versions.append(
                item, author or owner, size_bytes=size, disk=NOTE_DISK, content=content, metadata=metadata
            )
            self.quota.add_usage(owner, size)
            self.versions.enforce_cap(item, self.quota)
            op.track(item, version=version.version, size_bytes=size)
        return version

    # -------------------------------------------------------------------
    # Tree operations (no quota impact)
    # -------------------------------------------------------------------

    def rename(
        self,
        item: StorageItem,
        name: str,
        slug: Optional[str] = None,
        actor: Optional[User] = None,
    ) -> StorageItem:
        self._require_write(actor, item, "rename")
        with self._transaction("rename", actor or item.owner) as op:
            previous = item.name
            self.tree.rename(item, name, slug)
            op.track(item, previous_name=previous, name=name)
        return item

    def move(
        self,
        item: StorageItem,
        parent: Optional[StorageItem],
        actor: Optional[User] = None,
    ) -> StorageItem:
        self._require_owner(actor, item, "move")
        with self._transaction("move", actor or item.owner) as op:
            previous = item.parent_id
            self.tree.move(item, parent)
            op.track(item, from_parent_id=previous, to_parent_id=item.parent_id)
        return item

    def delete(self, item: StorageItem, actor: Optional[User] = None) -> StorageItem:
        self._require_owner(actor, item, "delete")
        with self._transaction("delete", actor or item.owner) as op:
            self.tree.delete(item, actor)
            op.track(item)
        return item

    def restore(self, item: StorageItem, actor: Optional[User] = None) -> StorageItem:
        self._require_owner(actor, item, "restore")
        with self._transaction("restore", actor or item.owner) as op:
            self.tree.restore(item)
            op.track(item)
        return item

    def set_pinned(self, item: StorageItem, pinned: bool, actor: Optional[User] = None) -> StorageItem:
        self._require_owner(actor, item, "set_pinned")
        with self._transaction("set_pinned", actor or item.owner) as op:
            self.tree.set_pinned(item, pinned)
            op.track(item, pinned=bool(pinned))
        return item

    def set_favorite(self, item: StorageItem, favorite: bool, actor: Optional[User] = None) -> StorageItem:
        self._require_owner(actor, item, "set_favorite")
        with self._transaction("set_favorite", actor or item.owner) as op:
            self.tree.set_favorite(item, favorite)
            op.track(item, favorite=bool(favorite))
        return item

    # -------------------------------------------------------------------
    # Tags
    # -------------------------------------------------------------------

    def _tag_for(self, user: User, name: str, color: Optional[str]) -> StorageTag:
        slug = slugify(name)
        if not slug:
            raise ValidationFailedError(
                f"Tag name '{name}' is empty.",
                validation_errors=[{"field": "tags", "error": "must contain letters or digits"}],
            )
        tag = (
            self._session.query(StorageTag)
            .filter(StorageTag.user_id == user.id, StorageTag.slug == slug)
            .first()
        )
        if tag is None:
            tag = StorageTag(user_id=user.id, name=name, slug=slug, color=color)
            self._session.add(tag)
            self._session.flush()
        return tag

    def tag_item(
        self, user: User, item: StorageItem, names: Iterable[str], color: Optional[str] = None
    ) -> List[StorageTag]:
        """Attach the user's tags (created on first use) to an owned item."""
        self._require_owner(user, item, "tag_item")
        with self._transaction("tag_item", user) as op:
            tags = [self._tag_for(user, name, color) for name in names]
            for tag in tags:
                if tag not in item.tags:
                    item.tags.append(tag)
            op.track(item, tags=[tag.slug for tag in tags])
        return list(item.tags)

    def untag_item(self, user: User, item: StorageItem, tag_slug: str) -> bool:
        self._require_owner(user, item, "untag_item")
        with self._transaction("untag_item", user) as op:
            matched = [tag for tag in item.tags if tag.slug == tag_slug]
            for tag in matched:
                item.tags.remove(tag)
            op.track(item, tag=tag_slug)
        return bool(matched)

    # -------------------------------------------------------------------
    # Quota
    # -------------------------------------------------------------------

    def recalculate_usage(self, user: User) -> int:
        with self._transaction("recalculate_usage", user) as op:
            total = self.quota.recalculate(user)
            op.track(None, used_bytes=total)
        return total

    def storage_summary(self, user: User) -> Dict[str, Any]:
        summary = self.quota.summary(user)
        plan_key = summary["plan"]
        plan_name = self._catalog.get(plan_key).name if plan_key in self._catalog else plan_key
        summary["plan"] = {"key": plan_key, "name": plan_name}
        return summary

    # -------------------------------------------------------------------
    # Sharing (owner-only management)
    # -------------------------------------------------------------------

    def grant_permission(
        self,
        item: StorageItem,
        recipient: User,
        actor: User,
        level: StoragePermission,
        expires_at: Optional[datetime] = None,
    ) -> StorageItemPermission:
        with self._transaction("grant_permission", actor) as op:
            record = self.sharing.grant_permission(item, recipient, actor, level, expires_at)
            op.track(item, recipient_id=recipient.id, permission=record.permission)
        return record

    def update_permission(
        self,
        permission: StorageItemPermission,
        actor: User,
        level: StoragePermission,
        expires_at: Optional[datetime] = None,
    ) -> StorageItemPermission:
        with self._transaction("update_permission", actor) as op:
            self.sharing.update_permission(permission, actor, level, expires_at)
            op.track(permission.item, recipient_id=permission.user_id, permission=permission.permission)
        return permission

    def revoke_permission(self, permission: StorageItemPermission, actor: User) -> None:
        with self._transaction("revoke_permission", actor) as op:
            item, recipient_id = permission.item, permission.user_id
            self.sharing.revoke_permission(permission, actor)
            op.track(item, recipient_id=recipient_id)

    def share_with_company(
        self, item: StorageItem, actor: User, expires_at: Optional[datetime] = None
    ) -> StorageItemAudience:
        with self._transaction("share_with_company", actor) as op:
            audience = self.sharing.share_with_company(item, actor, expires_at)
            op.track(item, audience="company")
        return audience

    def share_with_team(
        self,
        item: StorageItem,
        team: Optional[Team],
        actor: User,
        expires_at: Optional[datetime] = None,
    ) -> StorageItemAudience:
        with self._transaction("share_with_team", actor) as op:
            audience = self.sharing.share_with_team(item, team, actor, expires_at)
            op.track(item, audience="team", team_id=team.id)
        return audience

    def revoke_audience(self, audience: StorageItemAudience, actor: User) -> None:
        with self._transaction("revoke_audience", actor) as op:
            item, kind, team_id = audience.item, audience.audience, audience.team_id
            self.sharing.revoke_audience(audience, actor)
            op.track(item, audience=kind, team_id=team_id)

    def enable_public_link(
        self,
        item: StorageItem,
        creator: User,
        permission: Optional[StoragePermission] = None,
        expires_at: Optional[datetime] = None,
        max_views: Optional[int] = None,
    ) -> StorageShareLink:
        with self._transaction("enable_public_link", creator) as op:
            link = self.sharing.enable_public_link(item, creator, permission, expires_at, max_views)
            op.track(item, max_views=max_views, expires_at=_iso(expires_at))
        return link

    def update_public_link(
        self,
        link: StorageShareLink,
        actor: User,
        permission: Optional[StoragePermission] = None,
        expires_at: Optional[datetime] = None,
        max_views: Optional[int] = None,
    ) -> StorageShareLink:
        with self._transaction("update_public_link", actor) as op:
            self.sharing.update_public_link(link, actor, permission, expires_at, max_views)
            op.track(link.item, max_views=max_views, expires_at=_iso(expires_at))
        return link

    def disable_public_link(self, link: StorageShareLink, actor: User) -> None:
        with self._transaction("disable_public_link", actor) as op:
            item = link.item
            self.sharing.disable_public_link(link, actor)
            op.track(item)

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------

    def list_items(self, owner: User, parent: Optional[StorageItem] = None) -> List[StorageItem]:
        """Live items of an owner directly under a folder (or the root)."""
        self.tree.assert_parent(owner.id, parent)
        return self.tree.children(owner, parent)

    def list_trash(self, owner: User) -> List[StorageItem]:
        return self.tree.trashed(owner)

    def breadcrumbs(self, item: Optional[StorageItem]) -> List[Dict[str, Any]]:
        return self.tree.breadcrumbs(item)

    def list_shared_with(self, user: User) -> SharedItems:
        return self.sharing.shared_with(user)

    def get_item(self, user: Optional[User], item_id: int) -> StorageItem:
        """Fetch an item the user may read; anything else is NotFound."""
        item = self.tree.get(item_id)
        if item is None:
            raise NotFoundError("Item not found.", item_id=item_id, operation="get_item")
        self._require_read(user, item, "get_item")
        return item

    def history(self, user: Optional[User], item: StorageItem) -> List[StorageItemVersion]:
        self._require_read(user, item, "history")
        return self.versions.history(item)

    def _file_payload(self, item: StorageItem) -> Iterator[bytes]:
        version = self.versions.latest(item)
        if version is None or not version.stored_path:
            raise NotFoundError("File payload missing.", item_id=item.id, operation="read_file")
        if not self._blobs.exists(version.disk, version.stored_path):
            logger.error(f"Blob missing for item {item.id}: {version.disk}/{version.stored_path}")
            raise NotFoundError("File payload missing.", item_id=item.id, operation="read_file")
        return self._blobs.open(version.disk, version.stored_path)

    def _note_content(self, item: StorageItem) -> str:
        version = self.versions.latest(item)
        return version.content if version is not None and version.content is not None else ""

    def read_file(self, user: Optional[User], item: StorageItem) -> Iterator[bytes]:
        self._require_read(user, item, "read_file")
        if not item.is_file:
            raise NotFoundError("Item is not a file.", item_id=item.id, operation="read_file")
        return self._file_payload(item)

    def read_note(self, user: Optional[User], item: StorageItem) -> str:
        self._require_read(user, item, "read_note")
        if not item.is_note:
            raise NotANoteError("Item is not a note.", item_id=item.id)
        return self._note_content(item)

    def resolve_public_link(self, token: str) -> StorageItem:
        """Resolve a live public link to its item, counting the view."""
        with self._transaction("resolve_public_link", None) as op:
            link = self.sharing.resolve_link(token)
            item = link.item
            op.track(item)
        return item

    def read_public_link(self, token: str) -> Tuple[StorageItem, Union[Iterator[bytes], str]]:
        """
        Resolve a public link and return its payload.

        Files yield byte chunks, notes return their text; folders are NotFound.
        """
        item = self.resolve_public_link(token)
        if item.is_file:
            return item, self._file_payload(item)
        if item.is_note:
            return item, self._note_content(item)
        raise NotFoundError("Share link not found.", item_id=item.id, operation="read_public_link")
