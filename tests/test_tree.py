"""Unit tests for airlane.storage.tree — ItemTree hierarchy rules."""

import pytest

from airlane.db.enums import StorageItemType
from airlane.engine.errors import CyclicMoveError, InvalidParentError
from airlane.storage.tree import ItemTree


@pytest.fixture
def tree(session, clock):
    return ItemTree(session, clock=clock)


@pytest.fixture
def alice(make_user):
    return make_user("alice")


class TestCreate:
    def test_create_folder(self, tree, alice):
        folder = tree.create_folder(alice, "Quarterly Reports", metadata={"color": "blue"})
        assert folder.is_folder
        assert folder.slug == "quarterly-reports"
        assert folder.parent_id is None
        assert folder.meta == {"color": "blue"}
        assert folder.user_id == alice.id

    def test_duplicate_names_get_distinct_slugs(self, tree, alice):
        first = tree.create_folder(alice, "foo")
        second = tree.create_folder(alice, "foo")
        third = tree.create_folder(alice, "foo")
        assert [first.slug, second.slug, third.slug] == ["foo", "foo-1", "foo-2"]

    def test_slugs_scoped_per_parent(self, tree, alice):
        parent = tree.create_folder(alice, "docs")
        root_foo = tree.create_folder(alice, "foo")
        nested_foo = tree.create_folder(alice, "foo", parent)
        assert root_foo.slug == nested_foo.slug == "foo"

    def test_slugs_scoped_per_owner(self, tree, alice, make_user):
        bob = make_user("bob")
        assert tree.create_folder(alice, "foo").slug == tree.create_folder(bob, "foo").slug

    def test_unsluggable_name_gets_random_slug(self, tree, alice):
        folder = tree.create_folder(alice, "***")
        assert len(folder.slug) == 8

    def test_parent_must_be_folder(self, tree, alice):
        note = tree.add_item(alice, StorageItemType.NOTE, "todo")
        with pytest.raises(InvalidParentError, match="folder"):
            tree.create_folder(alice, "child", note)

    def test_parent_must_belong_to_owner(self, tree, alice, make_user):
        bob = make_user("bob")
        bobs = tree.create_folder(bob, "bob's")
        with pytest.raises(InvalidParentError, match="different user"):
            tree.create_folder(alice, "child", bobs)


class TestMove:
    def test_move_into_folder(self, tree, alice):
        target = tree.create_folder(alice, "target")
        item = tree.create_folder(alice, "item")
        tree.move(item, target)
        assert item.parent_id == target.id

    def test_move_to_root(self, tree, alice):
        parent = tree.create_folder(alice, "parent")
        child = tree.create_folder(alice, "child", parent)
        tree.move(child, None)
        assert child.parent_id is None

    def test_move_reuniquifies_slug(self, tree, alice):
        target = tree.create_folder(alice, "target")
        tree.create_folder(alice, "foo", target)
        other = tree.create_folder(alice, "foo")
        tree.move(other, target)
        assert other.slug == "foo-1"

    def test_move_into_itself(self, tree, alice):
        folder = tree.create_folder(alice, "a")
        with pytest.raises(CyclicMoveError):
            tree.move(folder, folder)
        assert folder.parent_id is None

    def test_move_into_descendant_leaves_tree_unchanged(self, tree, alice):
        a = tree.create_folder(alice, "a")
        b = tree.create_folder(alice, "b", a)
        c = tree.create_folder(alice, "c", b)
        with pytest.raises(CyclicMoveError, match="descendant"):
            tree.move(a, c)
        assert a.parent_id is None
        assert b.parent_id == a.id
        assert c.parent_id == b.id

    def test_move_under_non_folder(self, tree, alice):
        note = tree.add_item(alice, StorageItemType.NOTE, "n")
        folder = tree.create_folder(alice, "f")
        with pytest.raises(InvalidParentError):
            tree.move(folder, note)


class TestRename:
    def test_slug_follows_name(self, tree, alice):
        item = tree.create_folder(alice, "Draft")
        tree.rename(item, "Final Copy")
        assert (item.name, item.slug) == ("Final Copy", "final-copy")

    def test_same_name_keeps_slug(self, tree, alice):
        item = tree.create_folder(alice, "Draft")
        item.slug = "custom"
        tree.rename(item, "Draft")
        assert item.slug == "custom"

    def test_explicit_slug_is_uniquified(self, tree, alice):
        tree.create_folder(alice, "taken")
        item = tree.create_folder(alice, "other")
        tree.rename(item, "Other", slug="Taken")
        assert item.slug == "taken-1"

    def test_rename_to_own_slug(self, tree, alice):
        item = tree.create_folder(alice, "foo")
        tree.rename(item, "FOO")
        assert item.slug == "foo"


class TestTrash:
    def test_delete_is_tombstone(self, tree, alice, clock):
        item = tree.create_folder(alice, "old")
        tree.delete(item)
        assert item.is_trashed
        assert item.deleted_at == clock.now
        assert item.deleted_by == alice.id
        assert tree.get(item.id) is item

    def test_delete_twice_keeps_first_timestamp(self, tree, alice, clock):
        item = tree.create_folder(alice, "old")
        tree.delete(item)
        first = item.deleted_at
        clock.advance(hours=1)
        tree.delete(item)
        assert item.deleted_at == first

    def test_restore(self, tree, alice):
        item = tree.create_folder(alice, "old")
        tree.delete(item)
        tree.restore(item)
        assert not item.is_trashed
        assert item.deleted_by is None

    def test_trashed_newest_first(self, tree, alice, clock):
        first = tree.create_folder(alice, "first")
        second = tree.create_folder(alice, "second")
        tree.delete(first)
        clock.advance(minutes=5)
        tree.delete(second)
        assert tree.trashed(alice) == [second, first]


class TestReads:
    def test_children_ordering(self, tree, alice):
        note = tree.add_item(alice, StorageItemType.NOTE, "a note")
        folder_b = tree.create_folder(alice, "b")
        folder_a = tree.create_folder(alice, "a")
        favorite = tree.create_folder(alice, "z fav")
        pinned = tree.add_item(alice, StorageItemType.NOTE, "pinned")
        tree.set_favorite(favorite, True)
        tree.set_pinned(pinned, True)

        assert tree.children(alice) == [pinned, favorite, folder_a, folder_b, note]

    def test_children_excludes_trash(self, tree, alice):
        keep = tree.create_folder(alice, "keep")
        gone = tree.create_folder(alice, "gone")
        tree.delete(gone)
        assert tree.children(alice) == [keep]
        assert set(tree.children(alice, include_deleted=True)) == {keep, gone}

    def test_children_of_folder(self, tree, alice):
        parent = tree.create_folder(alice, "parent")
        child = tree.create_folder(alice, "child", parent)
        assert tree.children(alice, parent) == [child]

    def test_ancestors_and_breadcrumbs(self, tree, alice):
        a = tree.create_folder(alice, "A")
        b = tree.create_folder(alice, "B", a)
        c = tree.add_item(alice, StorageItemType.NOTE, "C", b)
        assert tree.ancestors(c) == [a, b, c]
        assert tree.breadcrumbs(c) == [
            {"id": a.id, "name": "A", "slug": "a"},
            {"id": b.id, "name": "B", "slug": "b"},
            {"id": c.id, "name": "C", "slug": "c"},
        ]

    def test_breadcrumbs_root(self, tree):
        assert tree.breadcrumbs(None) == []
