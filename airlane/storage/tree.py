"""
Airlane Item Tree — Hierarchical folders, files and notes per owner.

Rules:
- Only folders may contain children, and only the owner's own folders.
- Slugs are unique per (owner, parent): ``foo``, ``foo-1``, ``foo-2`` …
- A move never places an item under itself or one of its descendants.
- Delete is a tombstone; payloads and quota are left untouched.

Parents are followed by id lookups; children are always a query.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from airlane.db.enums import StorageItemType
from airlane.db.models import StorageItem, User
from airlane.engine.errors import CyclicMoveError, InvalidParentError
from airlane.utilities.utils import random_slug, slugify, utcnow

logger = logging.getLogger("airlane.storage.tree")

# Guards the ancestor walk against corrupted data
MAX_TREE_DEPTH = 1000


class ItemTree:
    def __init__(self, session: Session, clock: Callable[[], datetime] = utcnow):
        self._session = session
        self._clock = clock

    # -------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------

    def assert_parent(self, owner_id: int, parent: Optional[StorageItem]) -> None:
        """Parent must be a folder belonging to the same owner."""
        if parent is None:
            return
        if not parent.item_type.is_container:
            raise InvalidParentError(
                "Parent must be a folder.", item_id=parent.id, user_id=owner_id
            )
        if parent.user_id != owner_id:
            raise InvalidParentError(
                "Parent item belongs to a different user.", item_id=parent.id, user_id=owner_id
            )

    # -------------------------------------------------------------------
    # Slugs
    # -------------------------------------------------------------------

    def unique_slug(
        self,
        owner_id: int,
        parent_id: Optional[int],
        base: str,
        exclude_id: Optional[int] = None,
    ) -> str:
        base = base or random_slug()
        slug = base
        suffix = 0
        while self._slug_taken(owner_id, parent_id, slug, exclude_id):
            suffix += 1
            slug = f"{base}-{suffix}"
        return slug

    def _slug_taken(
        self, owner_id: int, parent_id: Optional[int], slug: str, exclude_id: Optional[int]
    ) -> bool:
        query = self._session.query(StorageItem.id).filter(
            StorageItem.user_id == owner_id,
            StorageItem.slug == slug,
        )
        if parent_id is None:
            query = query.filter(StorageItem.parent_id.is_(None))
        else:
            query = query.filter(StorageItem.parent_id == parent_id)
        if exclude_id is not None:
            query = query.filter(StorageItem.id != exclude_id)
        return query.first() is not None

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------

    def add_item(
        self,
        owner: User,
        item_type: StorageItemType,
        name: str,
        parent: Optional[StorageItem] = None,
        metadata: Optional[Dict[str, Any]] = None,
        **fields: Any,
    ) -> StorageItem:
        """Insert a new node of any type after validating its parent."""
        self.assert_parent(owner.id, parent)
        parent_id = parent.id if parent is not None else None
        item = StorageItem(
            user_id=owner.id,
            parent_id=parent_id,
            type=item_type.value,
            name=name,
            slug=self.unique_slug(owner.id, parent_id, slugify(name)),
            meta=dict(metadata or {}),
            **fields,
        )
        self._session.add(item)
        self._session.flush()
        return item

    def create_folder(
        self,
        owner: User,
        name: str,
        parent: Optional[StorageItem] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StorageItem:
        return self.add_item(owner, StorageItemType.FOLDER, name, parent, metadata)

    def move(self, item: StorageItem, new_parent: Optional[StorageItem]) -> StorageItem:
        if new_parent is not None:
            self.assert_parent(item.user_id, new_parent)
            if new_parent.id == item.id:
                raise CyclicMoveError("Cannot move an item into itself.", item_id=item.id)
            for ancestor in self.ancestors(new_parent):
                if ancestor.id == item.id:
                    raise CyclicMoveError(
                        "Cannot move an item into its own descendant.", item_id=item.id
                    )

        new_parent_id = new_parent.id if new_parent is not None else None
        if new_parent_id != item.parent_id:
            item.slug = self.unique_slug(item.user_id, new_parent_id, item.slug, exclude_id=item.id)
            item.parent_id = new_parent_id
            self._session.flush()
        return item

    def rename(self, item: StorageItem, name: str, slug: Optional[str] = None) -> StorageItem:
        """
        Rename an item.

        The slug follows the name only when the name changes and no explicit
        slug is given; either way the result is unique in the item's scope.
        """
        if slug is not None:
            item.slug = self.unique_slug(item.user_id, item.parent_id, slugify(slug), exclude_id=item.id)
        elif name != item.name:
            item.slug = self.unique_slug(item.user_id, item.parent_id, slugify(name), exclude_id=item.id)
        item.name = name
        self._session.flush()
        return item

    def delete(self, item: StorageItem, actor: Optional[User] = None) -> StorageItem:
        if item.deleted_at is None:
            item.deleted_at = self._clock()
            item.deleted_by = actor.id if actor is not None else item.user_id
            self._session.flush()
        return item

    def restore(self, item: StorageItem) -> StorageItem:
        item.deleted_at = None
        item.deleted_by = None
        self._session.flush()
        return item

    def set_pinned(self, item: StorageItem, pinned: bool) -> StorageItem:
        item.is_pinned = bool(pinned)
        self._session.flush()
        return item

    def set_favorite(self, item: StorageItem, favorite: bool) -> StorageItem:
        item.is_favorite = bool(favorite)
        self._session.flush()
        return item

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------

    def get(self, item_id: int) -> Optional[StorageItem]:
        return self._session.get(StorageItem, item_id)

    def ancestors(self, item: StorageItem) -> List[StorageItem]:
        """Root-to-item chain, including the item itself."""
        chain: List[StorageItem] = []
        cursor: Optional[StorageItem] = item
        while cursor is not None:
            chain.append(cursor)
            if len(chain) > MAX_TREE_DEPTH:
                raise CyclicMoveError("Ancestor chain does not terminate.", item_id=item.id)
            cursor = self.get(cursor.parent_id) if cursor.parent_id is not None else None
        chain.reverse()
        return chain

    def breadcrumbs(self, item: Optional[StorageItem]) -> List[Dict[str, Any]]:
        if item is None:
            return []
        return [
            {"id": node.id, "name": node.name, "slug": node.slug}
            for node in self.ancestors(item)
        ]

    def children(
        self,
        owner: User,
        parent: Optional[StorageItem] = None,
        include_deleted: bool = False,
    ) -> List[StorageItem]:
        query = self._session.query(StorageItem).filter(StorageItem.user_id == owner.id)
        if parent is None:
            query = query.filter(StorageItem.parent_id.is_(None))
        else:
            query = query.filter(StorageItem.parent_id == parent.id)
        if not include_deleted:
            query = query.filter(StorageItem.deleted_at.is_(None))
        return query.order_by(
            StorageItem.is_pinned.desc(),
            StorageItem.is_favorite.desc(),
            StorageItem.type.asc(),
            StorageItem.name.asc(),
        ).all()

    def trashed(self, owner: User) -> List[StorageItem]:
        return (
            self._session.query(StorageItem)
            .filter(StorageItem.user_id == owner.id, StorageItem.deleted_at.isnot(None))
            .order_by(StorageItem.deleted_at.desc())
            .all()
        )
