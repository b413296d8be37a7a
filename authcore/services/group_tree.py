"""Iterative walks over the group forest."""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from authcore.models.group import Group
from authcore.services.directory import DirectoryStore, GroupQuery
from authcore.services.errors import ValidationError

LOGGER = logging.getLogger("authcore.services.group_tree")


@dataclass
class GroupNode:
    """A group together with its live children, used for nested read views."""

    group: Group
    children: List["GroupNode"] = field(default_factory=list)


class GroupTree:
    """Ancestor/descendant traversal guarded by a visited set and a depth cap.

    Soft-deleted groups are transparent: the ancestor walk hops over them to
    their own parent and the descendant walk passes through them without
    reporting them.

    Walks read through the store one hop at a time until :meth:`preload` is
    called, after which they run against an in-memory arena indexed by id.
    """

    def __init__(self, store: DirectoryStore, *, max_depth: int = 256) -> None:
        self._store = store
        self._max_depth = max_depth
        self._arena: Optional[Dict[int, Group]] = None
        self._children_index: Dict[int, List[Group]] = {}

    def preload(self) -> "GroupTree":
        """Load every group row (deleted ones included) into the arena."""

        groups = self._store.list_groups(GroupQuery(include_deleted=True))
        self._arena = {group.id: group for group in groups}
        children_index: Dict[int, List[Group]] = defaultdict(list)
        for group in groups:
            if group.parent_id is not None:
                children_index[group.parent_id].append(group)
        self._children_index = dict(children_index)
        return self

    def snapshot(self) -> "GroupTree":
        """A preloaded copy for bulk walks; the original keeps reading through."""

        return GroupTree(self._store, max_depth=self._max_depth).preload()

    def get(self, group_id: int) -> Optional[Group]:
        """Live group by id."""

        group = self._lookup(group_id)
        if group is None or group.is_deleted:
            return None
        return group

    def ancestors(self, group_id: int, *, include_self: bool = True) -> List[Group]:
        """Live groups from ``group_id`` (optionally inclusive) up to its root."""

        start = self.get(group_id)
        if start is None:
            return []

        chain: List[Group] = [start] if include_self else []
        visited = {start.id}
        parent_id = start.parent_id
        hops = 0
        while parent_id is not None:
            if parent_id in visited:
                LOGGER.warning(
                    "group_tree_cycle_detected",
                    extra={"group_id": group_id, "repeated_id": parent_id},
                )
                break
            hops += 1
            self._check_depth(hops, group_id)
            visited.add(parent_id)
            parent = self._lookup(parent_id)
            if parent is None:
                break
            if not parent.is_deleted:
                chain.append(parent)
            parent_id = parent.parent_id
        return chain

    def descendant_ids(self, group_id: int, *, include_self: bool = False) -> Set[int]:
        """Breadth-first closure over the children of ``group_id``."""

        result: Set[int] = {group_id} if include_self else set()
        visited = {group_id}
        queue = deque([(group_id, 0)])
        while queue:
            current_id, depth = queue.popleft()
            self._check_depth(depth, group_id)
            for child in self._children(current_id):
                if child.id in visited:
                    LOGGER.warning(
                        "group_tree_cycle_detected",
                        extra={"group_id": group_id, "repeated_id": child.id},
                    )
                    continue
                visited.add(child.id)
                if not child.is_deleted:
                    result.add(child.id)
                queue.append((child.id, depth + 1))
        return result

    def descendant_ids_of_many(self, group_ids: Set[int], *, include_self: bool = True) -> Set[int]:
        result: Set[int] = set()
        for group_id in sorted(group_ids):
            if group_id in result:
                continue
            result |= self.descendant_ids(group_id, include_self=include_self)
        return result

    def would_create_cycle(self, group_id: int, new_parent_id: Optional[int]) -> bool:
        """True when ``new_parent_id`` is ``group_id`` or one of its descendants.

        Walks up from the candidate parent over raw parent pointers, deleted
        rows included, since those pointers still shape the stored tree.
        """

        if new_parent_id is None:
            return False
        visited: Set[int] = set()
        current_id: Optional[int] = new_parent_id
        hops = 0
        while current_id is not None:
            if current_id == group_id or current_id in visited:
                return True
            visited.add(current_id)
            hops += 1
            self._check_depth(hops, group_id)
            current = self._lookup(current_id)
            current_id = current.parent_id if current else None
        return False

    def with_children(self, group_id: int) -> List[GroupNode]:
        """Nested view of the live subtree below ``group_id``."""

        start = self.get(group_id)
        if start is None:
            return []
        root = GroupNode(group=start)
        visited = {group_id}
        queue = deque([(root, group_id, 0)])
        while queue:
            node, parent_id, depth = queue.popleft()
            self._check_depth(depth, group_id)
            for child in self._children(parent_id):
                if child.id in visited:
                    continue
                visited.add(child.id)
                if child.is_deleted:
                    # grandchildren hang off the nearest live ancestor
                    queue.append((node, child.id, depth + 1))
                    continue
                child_node = GroupNode(group=child)
                node.children.append(child_node)
                queue.append((child_node, child.id, depth + 1))
        return root.children

    def _lookup(self, group_id: int) -> Optional[Group]:
        if self._arena is not None:
            return self._arena.get(group_id)
        return self._store.get_group(group_id, include_deleted=True)

    def _children(self, parent_id: int) -> List[Group]:
        if self._arena is not None:
            return self._children_index.get(parent_id, [])
        return self._store.get_groups_by_parent(parent_id, include_deleted=True)

    def _check_depth(self, depth: int, group_id: int) -> None:
        if depth > self._max_depth:
            LOGGER.error(
                "group_tree_depth_exceeded",
                extra={"group_id": group_id, "max_depth": self._max_depth},
            )
            raise ValidationError(
                f"Group tree around group {group_id} exceeds the maximum depth of {self._max_depth}"
            )
