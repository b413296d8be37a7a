"""App inheritance projections for groups and users.

Both projections are pure functions of the current group/user/membership
rows and are recomputed on every read.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Collection, Dict, Iterable, List, Optional, Set

from authcore.core.config import get_settings
from authcore.models.user import User, UserType
from authcore.services.directory import DirectoryStore, GroupQuery, UserGroupQuery, UserQuery
from authcore.services.group_tree import GroupTree


class AppInheritanceProjector:
    """Computes the apps a group or user is entitled to through the tree."""

    def __init__(self, store: DirectoryStore, tree: Optional[GroupTree] = None) -> None:
        self._store = store
        self._tree = tree or GroupTree(store, max_depth=get_settings().max_tree_depth)
        self._logger = logging.getLogger("authcore.services.inheritance")

    @property
    def tree(self) -> GroupTree:
        return self._tree

    def inherited_apps_for_group(self, group_id: int, *, tree: Optional[GroupTree] = None) -> Set[int]:
        """Apps of the nearest live group, starting at ``group_id``, that has any."""

        for group in (tree or self._tree).ancestors(group_id):
            if group.apps_ids:
                return set(group.apps_ids)
        return set()

    def inherited_apps_for_groups(self, group_ids: Iterable[int]) -> Dict[int, Set[int]]:
        ids = set(group_ids)
        tree = self._tree.snapshot() if len(ids) > 1 else self._tree
        return {group_id: self.inherited_apps_for_group(group_id, tree=tree) for group_id in ids}

    def inherited_apps_for_user(self, user_id: int) -> Set[int]:
        user = self._store.get_user(user_id)
        if user is None:
            return set()
        return self.inherited_apps_for_users([user])[user.id]

    def inherited_apps_for_users(self, users: Collection[User]) -> Dict[int, Set[int]]:
        """Bulk variant of :meth:`inherited_apps_for_user` for already-loaded users."""

        result: Dict[int, Set[int]] = {}
        all_app_ids: Optional[Set[int]] = None
        pending: List[int] = []
        for user in users:
            if user.type == UserType.SUPER_ADMIN:
                if all_app_ids is None:
                    all_app_ids = set(self._store.list_app_ids())
                result[user.id] = set(all_app_ids)
            elif user.apps_ids:
                result[user.id] = set(user.apps_ids)
            else:
                pending.append(user.id)

        if not pending:
            return result

        groups_by_user: Dict[int, Set[int]] = defaultdict(set)
        for membership in self._store.find_user_groups(UserGroupQuery(user_ids=pending)):
            groups_by_user[membership.user_id].add(membership.group_id)

        group_apps = self.inherited_apps_for_groups(
            group_id for group_ids in groups_by_user.values() for group_id in group_ids
        )
        for user_id in pending:
            apps: Set[int] = set()
            for group_id in groups_by_user.get(user_id, ()):
                apps |= group_apps.get(group_id, set())
            result[user_id] = apps
        return result

    def group_ids_by_app(self, app_id: int, groups: Optional[Collection[int]] = None) -> Set[int]:
        """Live groups (optionally among ``groups``) whose inherited apps contain ``app_id``."""

        candidates = self._store.list_groups(GroupQuery(ids=groups))
        projections = self.inherited_apps_for_groups(group.id for group in candidates)
        return {group_id for group_id, apps in projections.items() if app_id in apps}

    def user_ids_by_app(
        self,
        app_id: int,
        users: Optional[Collection[int]] = None,
        user_type: Optional[UserType] = None,
    ) -> Set[int]:
        """Live users (optionally among ``users``/of ``user_type``) entitled to ``app_id``."""

        candidates = self._store.list_users(
            UserQuery(ids=users, types=[user_type] if user_type else None)
        )
        projections = self.inherited_apps_for_users(candidates)
        matched = {user_id for user_id, apps in projections.items() if app_id in apps}
        self._logger.debug(
            "user_ids_by_app_resolved",
            extra={"app_id": app_id, "candidates": len(candidates), "matched": len(matched)},
        )
        return matched
