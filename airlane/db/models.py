"""
Airlane Storage Models — All SQLAlchemy models for the storage database.

Tables defined here:
1.  users                     — Accounts with plan limits and cached usage
2.  teams                     — Named groups of users
3.  team_members              — User ↔ Team junction with role
4.  storage_items             — Folder / file / note tree nodes
5.  storage_item_versions     — Immutable content revisions
6.  storage_item_permissions  — Direct per-user grants
7.  storage_item_audiences    — Company / team audience grants
8.  storage_share_links       — Anonymous tokenized links
9.  storage_tags              — Per-user labels
10. storage_item_tags         — Item ↔ Tag junction
11. storage_activities        — Per-operation activity trail

Items reference their parent by id only; children are reconstructed by
query, never held as a back-reference.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from airlane.db.base import AuditMixin, Base, SoftDeleteMixin
from airlane.db.enums import StorageAudience, StorageItemType, StoragePermission
from airlane.utilities.utils import as_utc


# ---------------------------------------------------------------------------
# 1. Users
# ---------------------------------------------------------------------------

class User(Base, AuditMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    plan = Column(String(50), nullable=False, default="basic")

    # Limits are copied from the plan at assignment time
    storage_used_bytes = Column(BigInteger, default=0, nullable=False)
    max_storage_bytes = Column(BigInteger, default=0, nullable=False)
    max_file_size_bytes = Column(BigInteger, default=0, nullable=False)
    version_cap = Column(Integer, default=0, nullable=False)

    storage_items = relationship(
        "StorageItem",
        back_populates="owner",
        foreign_keys="StorageItem.user_id",
        passive_deletes=True,
    )
    memberships = relationship(
        "TeamMember",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def quota_remaining_bytes(self) -> int:
        return max(0, int(self.max_storage_bytes or 0) - int(self.storage_used_bytes or 0))

    def storage_usage_percent(self) -> float:
        if not self.max_storage_bytes:
            return 0.0
        return min(100.0, round(self.storage_used_bytes / self.max_storage_bytes * 100, 2))

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', plan='{self.plan}')>"


# ---------------------------------------------------------------------------
# 2. Teams
# ---------------------------------------------------------------------------

class Team(Base, AuditMixin):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(200), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)

    members = relationship(
        "TeamMember",
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, slug='{self.slug}')>"


# ---------------------------------------------------------------------------
# 3. Team Members Junction
# ---------------------------------------------------------------------------

class TeamMember(Base, AuditMixin):
    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), default="member", nullable=False)

    team = relationship("Team", back_populates="members")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_member"),
        CheckConstraint("role IN ('member', 'admin')", name="ck_team_members_role"),
        Index("idx_tm_user_id", "user_id"),
    )


# ---------------------------------------------------------------------------
# 4. Storage Items
# ---------------------------------------------------------------------------

class StorageItem(Base, AuditMixin, SoftDeleteMixin):
    __tablename__ = "storage_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    parent_id = Column(
        Integer, ForeignKey("storage_items.id", ondelete="CASCADE"), nullable=True, index=True
    )
    type = Column(String(20), nullable=False)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    size_bytes = Column(BigInteger, default=0, nullable=False)
    disk = Column(String(50), nullable=True)
    stored_path = Column(String(500), nullable=True)
    mime_type = Column(String(255), nullable=True)
    checksum = Column(String(128), nullable=True)
    meta = Column("metadata", JSON, default=dict, nullable=False)
    is_pinned = Column(Boolean, default=False, nullable=False)
    is_favorite = Column(Boolean, default=False, nullable=False)
    latest_version_id = Column(
        Integer,
        ForeignKey(
            "storage_item_versions.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_storage_items_latest_version",
        ),
        nullable=True,
    )

    owner = relationship("User", back_populates="storage_items", foreign_keys=[user_id])
    versions = relationship(
        "StorageItemVersion",
        back_populates="item",
        foreign_keys="StorageItemVersion.storage_item_id",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="StorageItemVersion.version",
    )
    latest_version = relationship(
        "StorageItemVersion",
        foreign_keys=[latest_version_id],
        post_update=True,
    )
    permissions = relationship(
        "StorageItemPermission",
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    audiences = relationship(
        "StorageItemAudience",
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    share_link = relationship(
        "StorageShareLink",
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )
    tags = relationship("StorageTag", secondary="storage_item_tags", back_populates="items")

    __table_args__ = (
        UniqueConstraint("user_id", "parent_id", "slug", name="uq_storage_item_slug"),
        CheckConstraint("type IN ('folder', 'file', 'note')", name="ck_storage_items_type"),
        Index("idx_si_user_type", "user_id", "type"),
    )

    @property
    def item_type(self) -> StorageItemType:
        return StorageItemType(self.type)

    @property
    def is_folder(self) -> bool:
        return self.item_type is StorageItemType.FOLDER

    @property
    def is_file(self) -> bool:
        return self.item_type is StorageItemType.FILE

    @property
    def is_note(self) -> bool:
        return self.item_type is StorageItemType.NOTE

    def __repr__(self) -> str:
        return f"<StorageItem(id={self.id}, type='{self.type}', slug='{self.slug}')>"


# ---------------------------------------------------------------------------
# 5. Storage Item Versions
# ---------------------------------------------------------------------------

class StorageItemVersion(Base):
    __tablename__ = "storage_item_versions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    storage_item_id = Column(
        Integer, ForeignKey("storage_items.id", ondelete="CASCADE"), nullable=False
    )
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    version = Column(Integer, nullable=False)
    disk = Column(String(50), nullable=True)
    stored_path = Column(String(500), nullable=True)
    mime_type = Column(String(255), nullable=True)
    size_bytes = Column(BigInteger, default=0, nullable=False)
    checksum = Column(String(128), nullable=True)
    content = Column(Text, nullable=True)
    meta = Column("metadata", JSON, default=dict, nullable=False)
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    item = relationship("StorageItem", back_populates="versions", foreign_keys=[storage_item_id])
    author = relationship("User", foreign_keys=[created_by])

    __table_args__ = (
        UniqueConstraint("storage_item_id", "version", name="uq_item_version"),
        Index("idx_siv_item_id", "storage_item_id"),
    )

    def __repr__(self) -> str:
        return f"<StorageItemVersion(item={self.storage_item_id}, v{self.version}, {self.size_bytes}B)>"


# ---------------------------------------------------------------------------
# 6. Direct Permissions
# ---------------------------------------------------------------------------

class StorageItemPermission(Base, AuditMixin):
    __tablename__ = "storage_item_permissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    storage_item_id = Column(
        Integer, ForeignKey("storage_items.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    granted_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    permission = Column(String(20), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    item = relationship("StorageItem", back_populates="permissions")
    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        UniqueConstraint("storage_item_id", "user_id", name="uq_item_permission"),
        CheckConstraint("permission IN ('viewer', 'editor')", name="ck_sip_permission"),
        Index("idx_sip_user_id", "user_id"),
    )

    @property
    def level(self) -> StoragePermission:
        return StoragePermission(self.permission)

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or as_utc(self.expires_at) > now


# ---------------------------------------------------------------------------
# 7. Audience Grants
# ---------------------------------------------------------------------------

class StorageItemAudience(Base, AuditMixin):
    __tablename__ = "storage_item_audiences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    storage_item_id = Column(
        Integer, ForeignKey("storage_items.id", ondelete="CASCADE"), nullable=False
    )
    audience = Column(String(20), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    permission = Column(String(20), default=StoragePermission.VIEWER.value, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    item = relationship("StorageItem", back_populates="audiences")
    team = relationship("Team")

    __table_args__ = (
        UniqueConstraint("storage_item_id", "audience", "team_id", name="uq_item_audience"),
        CheckConstraint("audience IN ('company', 'team')", name="ck_sia_audience"),
    )

    @property
    def kind(self) -> StorageAudience:
        return StorageAudience(self.audience)

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or as_utc(self.expires_at) > now


# ---------------------------------------------------------------------------
# 8. Public Share Links
# ---------------------------------------------------------------------------

class StorageShareLink(Base, AuditMixin):
    __tablename__ = "storage_share_links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    storage_item_id = Column(
        Integer, ForeignKey("storage_items.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    token = Column(String(100), unique=True, nullable=False, index=True)
    permission = Column(String(20), default=StoragePermission.VIEWER.value, nullable=False)
    max_views = Column(Integer, nullable=True)
    view_count = Column(Integer, default=0, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    item = relationship("StorageItem", back_populates="share_link")

    __table_args__ = (
        CheckConstraint("permission = 'viewer'", name="ck_ssl_permission"),
    )

    def is_expired(self, now: datetime) -> bool:
        """Dead once past expires_at or once view_count reaches max_views."""
        if self.expires_at is not None and now > as_utc(self.expires_at):
            return True
        if self.max_views is not None and self.view_count >= self.max_views:
            return True
        return False


# ---------------------------------------------------------------------------
# 9-10. Tags
# ---------------------------------------------------------------------------

class StorageTag(Base, AuditMixin):
    __tablename__ = "storage_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=False)
    slug = Column(String(100), nullable=False)
    color = Column(String(20), nullable=True)

    items = relationship("StorageItem", secondary="storage_item_tags", back_populates="tags")

    __table_args__ = (
        UniqueConstraint("user_id", "slug", name="uq_storage_tag_slug"),
    )


class StorageItemTag(Base):
    __tablename__ = "storage_item_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    storage_item_id = Column(
        Integer, ForeignKey("storage_items.id", ondelete="CASCADE"), nullable=False
    )
    storage_tag_id = Column(
        Integer, ForeignKey("storage_tags.id", ondelete="CASCADE"), nullable=False
    )
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("storage_item_id", "storage_tag_id", name="uq_item_tag"),
    )


# ---------------------------------------------------------------------------
# 11. Activity Trail
# ---------------------------------------------------------------------------

class StorageActivity(Base):
    __tablename__ = "storage_activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    storage_item_id = Column(
        Integer, ForeignKey("storage_items.id", ondelete="SET NULL"), nullable=True
    )
    action = Column(String(50), nullable=False)
    properties = Column(JSON, default=dict, nullable=False)
    occurred_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<StorageActivity(action='{self.action}', item={self.storage_item_id})>"

