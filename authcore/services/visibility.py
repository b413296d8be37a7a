"""Which groups and users an acting principal may see or edit within an app."""

from __future__ import annotations

import logging
from typing import Optional, Set

from authcore.models.app import App
from authcore.models.user import User, UserType
from authcore.models.user_group import UserGroupRole
from authcore.services.directory import DirectoryStore, GroupQuery, UserGroupQuery
from authcore.services.errors import NotFoundError, UnauthorizedError
from authcore.services.inheritance import AppInheritanceProjector


class VisibilityResolver:
    """Resolves visible group/user id sets for an ``(actor, app)`` pair.

    Passing ``actor_id=None`` resolves for an app-only context, which sees
    everything entitled to the app.
    """

    def __init__(self, store: DirectoryStore, projector: Optional[AppInheritanceProjector] = None) -> None:
        self._store = store
        self._projector = projector or AppInheritanceProjector(store)
        self._logger = logging.getLogger("authcore.services.visibility")

    @property
    def projector(self) -> AppInheritanceProjector:
        return self._projector

    def visible_group_ids(self, actor_id: Optional[int], app_id: int, *, edit: bool = False) -> Set[int]:
        app = self._require_app(app_id)
        actor = self._resolve_actor(actor_id)

        if actor is None or actor.type == UserType.SUPER_ADMIN:
            visible = self._projector.group_ids_by_app(app.id)
        else:
            candidates = self._member_group_closure(actor.id, edit=edit)
            if actor.type == UserType.ADMIN:
                candidates |= {
                    group.id
                    for group in self._store.list_groups(GroupQuery(company=True, direct_app_id=app.id))
                }
            if not candidates:
                visible = set()
            else:
                visible = self._projector.group_ids_by_app(app.id, groups=candidates)

        self._logger.debug(
            "visible_groups_resolved",
            extra={"actor_id": actor_id, "app_id": app_id, "edit": edit, "count": len(visible)},
        )
        return visible

    def visible_user_ids(self, actor_id: Optional[int], app_id: int, *, edit: bool = False) -> Set[int]:
        app = self._require_app(app_id)
        actor = self._resolve_actor(actor_id)

        if actor is None or actor.type == UserType.SUPER_ADMIN:
            visible = self._projector.user_ids_by_app(app.id)
        else:
            group_ids = self._member_group_closure(actor.id, edit=edit)
            candidates = {
                membership.user_id
                for membership in self._store.find_user_groups(UserGroupQuery(group_ids=group_ids))
            }
            candidates.add(actor.id)
            visible = self._projector.user_ids_by_app(app.id, users=candidates)
            if actor.type == UserType.ADMIN:
                visible |= self._projector.user_ids_by_app(app.id, user_type=UserType.USER)

        self._logger.debug(
            "visible_users_resolved",
            extra={"actor_id": actor_id, "app_id": app_id, "edit": edit, "count": len(visible)},
        )
        return visible

    def assert_group_visible(
        self, actor_id: Optional[int], app_id: int, group_id: int, *, edit: bool = False
    ) -> None:
        """Raise ``NotFound`` when unreadable and ``Unauthorized`` when read-only."""

        if group_id not in self.visible_group_ids(actor_id, app_id, edit=False):
            raise NotFoundError("Group not found.", {"group_id": group_id})
        if edit and group_id not in self.visible_group_ids(actor_id, app_id, edit=True):
            self._logger.info(
                "group_edit_denied",
                extra={"actor_id": actor_id, "app_id": app_id, "group_id": group_id},
            )
            raise UnauthorizedError("Do not have permissions", {"group_id": group_id})

    def assert_user_visible(
        self, actor_id: Optional[int], app_id: int, user_id: int, *, edit: bool = False
    ) -> None:
        if user_id not in self.visible_user_ids(actor_id, app_id, edit=False):
            raise NotFoundError("User not found.", {"user_id": user_id})
        if edit and user_id not in self.visible_user_ids(actor_id, app_id, edit=True):
            self._logger.info(
                "user_edit_denied",
                extra={"actor_id": actor_id, "app_id": app_id, "user_id": user_id},
            )
            raise UnauthorizedError("Do not have permissions", {"user_id": user_id})

    def can_edit_group(self, actor_id: Optional[int], app_id: int, group_id: Optional[int]) -> bool:
        if group_id is None:
            return False
        return group_id in self.visible_group_ids(actor_id, app_id, edit=True)

    def users_in_group_recursively(
        self,
        group_id: int,
        *,
        role: Optional[UserGroupRole] = None,
        actor_id: Optional[int] = None,
        app_id: Optional[int] = None,
    ) -> Set[int]:
        """Members of ``group_id`` and of every group below it.

        With ``role`` set, members of ``group_id`` itself must hold exactly that
        role, while members of descendant groups only count as ``USER``.
        With both ``actor_id`` and ``app_id`` the result is narrowed to users
        the actor can see.
        """

        group_ids = self._projector.tree.descendant_ids(group_id, include_self=True)
        memberships = self._store.find_user_groups(UserGroupQuery(group_ids=group_ids))

        allowed: Optional[Set[int]] = None
        if actor_id is not None and app_id is not None:
            allowed = self.visible_user_ids(actor_id, app_id, edit=False)

        result: Set[int] = set()
        for membership in memberships:
            if allowed is not None and membership.user_id not in allowed:
                continue
            if role is not None:
                if membership.group_id == group_id:
                    if membership.role != role:
                        continue
                elif role != UserGroupRole.USER:
                    continue
            result.add(membership.user_id)
        return result

    def _member_group_closure(self, user_id: int, *, edit: bool) -> Set[int]:
        query = UserGroupQuery(user_ids=[user_id], role=UserGroupRole.ADMIN if edit else None)
        direct = {membership.group_id for membership in self._store.find_user_groups(query)}
        if not direct:
            return set()
        return self._projector.tree.descendant_ids_of_many(direct, include_self=True)

    def _require_app(self, app_id: int) -> App:
        app = self._store.get_app(app_id)
        if app is None:
            raise NotFoundError("App not found", {"app_id": app_id})
        return app

    def _resolve_actor(self, actor_id: Optional[int]) -> Optional[User]:
        if actor_id is None:
            return None
        actor = self._store.get_user(actor_id)
        if actor is None:
            raise NotFoundError("User not found", {"user_id": actor_id})
        return actor
