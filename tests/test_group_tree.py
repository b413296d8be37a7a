from __future__ import annotations

import pytest

from authcore.core.database import session_scope
from authcore.models.group import Group
from authcore.services.directory import DirectoryStore
from authcore.services.errors import ValidationError
from authcore.services.group_tree import GroupTree


def test_descendants_include_whole_subtree(directory) -> None:
    root = directory.group("Root")
    left = directory.group("Left", parent=root)
    right = directory.group("Right", parent=root)
    leaf = directory.group("Leaf", parent=left)

    with session_scope() as session:
        tree = GroupTree(DirectoryStore(session))
        assert tree.descendant_ids(root) == {left, right, leaf}
        assert tree.descendant_ids(root, include_self=True) == {root, left, right, leaf}
        assert tree.descendant_ids(leaf) == set()


def test_preloaded_tree_matches_read_through_walks(directory) -> None:
    root = directory.group("Root")
    child = directory.group("Child", parent=root)
    grandchild = directory.group("Grandchild", parent=child)

    with session_scope() as session:
        store = DirectoryStore(session)
        lazy = GroupTree(store)
        loaded = GroupTree(store).preload()
        assert [g.id for g in lazy.ancestors(grandchild)] == [grandchild, child, root]
        assert [g.id for g in loaded.ancestors(grandchild)] == [grandchild, child, root]
        assert lazy.descendant_ids(root) == loaded.descendant_ids(root)


def test_would_create_cycle_detects_descendant_parent(directory) -> None:
    root = directory.group("Root")
    child = directory.group("Child", parent=root)
    grandchild = directory.group("Grandchild", parent=child)
    other = directory.group("Other")

    with session_scope() as session:
        tree = GroupTree(DirectoryStore(session))
        assert tree.would_create_cycle(root, grandchild) is True
        assert tree.would_create_cycle(root, root) is True
        assert tree.would_create_cycle(child, other) is False
        assert tree.would_create_cycle(child, None) is False


def test_with_children_hangs_grandchildren_off_live_ancestor(directory) -> None:
    root = directory.group("Root")
    removed = directory.group("Removed", parent=root)
    orphan = directory.group("Orphan", parent=removed)

    with session_scope() as session:
        session.get(Group, removed).mark_deleted()

    with session_scope() as session:
        nodes = GroupTree(DirectoryStore(session)).with_children(root)
        assert [node.group.id for node in nodes] == [orphan]


def test_depth_cap_raises_validation_error(directory) -> None:
    parent = directory.group("Level 0")
    for level in range(1, 5):
        parent = directory.group(f"Level {level}", parent=parent)

    with session_scope() as session:
        tree = GroupTree(DirectoryStore(session), max_depth=2)
        with pytest.raises(ValidationError):
            tree.ancestors(parent)
