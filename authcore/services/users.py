"""User and membership management."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from authcore.events_engine import EventDispatcher, get_event_dispatcher
from authcore.models.app import App
from authcore.models.user import User, UserType
from authcore.models.user_group import UserGroup, UserGroupRole
from authcore.schemas.user import MembershipRequest, UserCreate, UserUpdate
from authcore.services.directory import DirectoryStore, UserGroupQuery, UserQuery
from authcore.services.errors import NotFoundError, UnauthorizedError
from authcore.services.toggles import toggle_item
from authcore.services.visibility import VisibilityResolver


class UserService:
    """Creates and edits users and their group memberships.

    Reads and edits made with an ``actor_id`` are checked against what that
    actor can see inside ``app_id``; calls without an actor are trusted.
    """

    def __init__(
        self,
        session: Session,
        *,
        dispatcher: Optional[EventDispatcher] = None,
        store: Optional[DirectoryStore] = None,
        visibility: Optional[VisibilityResolver] = None,
    ) -> None:
        self._session = session
        self._store = store or DirectoryStore(session)
        self._visibility = visibility or VisibilityResolver(self._store)
        self._dispatcher = dispatcher or get_event_dispatcher()
        self._logger = logging.getLogger("authcore.services.users")

    # reads

    def get_user(self, user_id: int, *, actor_id: Optional[int] = None, app_id: Optional[int] = None) -> User:
        user = self._require_user(user_id)
        if actor_id is not None and app_id is not None:
            self._visibility.assert_user_visible(actor_id, app_id, user_id)
        return user

    def list_users(
        self,
        *,
        actor_id: Optional[int] = None,
        app_id: Optional[int] = None,
        group_id: Optional[int] = None,
        types: Optional[Sequence[UserType]] = None,
    ) -> List[User]:
        """Users visible to the actor.

        When no ``types`` are requested, the admin app lists administrators and
        every other app lists ordinary users.
        """

        app: Optional[App] = None
        if app_id is not None:
            app = self._store.get_app(app_id)
            if app is None:
                raise NotFoundError("App not found", {"app_id": app_id})
        if not types and app is not None:
            types = [UserType.ADMIN, UserType.SUPER_ADMIN] if app.is_admin else [UserType.USER]

        ids: Optional[set] = None
        if app is not None and actor_id is not None:
            ids = self._visibility.visible_user_ids(actor_id, app.id)
        if group_id is not None:
            members = {
                membership.user_id
                for membership in self._store.find_user_groups(UserGroupQuery(group_ids=[group_id]))
            }
            ids = members if ids is None else ids & members

        return self._store.list_users(UserQuery(ids=ids, types=types or None))

    def memberships(
        self, user_id: int, *, actor_id: Optional[int] = None, app_id: Optional[int] = None
    ) -> List[UserGroup]:
        """The user's memberships, limited to groups visible in ``app_id`` when one is given."""

        memberships = self._store.find_user_groups(UserGroupQuery(user_ids=[user_id]))
        if app_id is None:
            return memberships
        visible = self._visibility.visible_group_ids(actor_id, app_id, edit=False)
        return [membership for membership in memberships if membership.group_id in visible]

    # writes

    def create_user(
        self, payload: UserCreate, *, actor_id: Optional[int] = None, app_id: Optional[int] = None
    ) -> User:
        if actor_id is not None:
            actor = self._require_user(actor_id)
            if payload.type == UserType.SUPER_ADMIN and actor.type != UserType.SUPER_ADMIN:
                raise UnauthorizedError("Do not have permissions", {"type": payload.type.value})

        apps_ids = list(payload.apps_ids)
        if app_id is not None and not apps_ids and payload.type != UserType.USER:
            apps_ids = [app_id]

        user = User(
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=payload.email,
            phone=payload.phone,
            type=payload.type,
            apps_ids=apps_ids,
            created_by=actor_id,
        )
        self._session.add(user)
        self._session.flush()

        self._publish("users.created", user, actor_id)
        self._logger.info(
            "user_created",
            extra={"user_id": user.id, "type": user.type.value, "actor_id": actor_id},
        )
        return user

    def update_user(
        self,
        user_id: int,
        payload: UserUpdate,
        *,
        actor_id: Optional[int] = None,
        app_id: Optional[int] = None,
    ) -> User:
        user = self._require_user(user_id)
        if actor_id is not None and app_id is not None:
            self._visibility.assert_user_visible(actor_id, app_id, user_id, edit=True)

        updates = payload.model_dump(exclude_unset=True)
        if updates.get("type") == UserType.SUPER_ADMIN and actor_id is not None:
            if self._require_user(actor_id).type != UserType.SUPER_ADMIN:
                raise UnauthorizedError("Do not have permissions", {"type": UserType.SUPER_ADMIN.value})

        for key, value in updates.items():
            if value is None and key in ("type", "apps_ids"):
                continue
            setattr(user, key, list(value) if key == "apps_ids" else value)
        user.updated_by = actor_id
        self._session.flush()

        self._publish("users.updated", user, actor_id)
        self._logger.info("user_updated", extra={"user_id": user.id, "actor_id": actor_id, "fields": sorted(updates)})
        return user

    def remove_user(self, user_id: int, *, actor_id: Optional[int] = None, app_id: Optional[int] = None) -> User:
        user = self._require_user(user_id)
        if actor_id is not None and app_id is not None:
            self._visibility.assert_user_visible(actor_id, app_id, user_id, edit=True)

        user.mark_deleted(actor_id)
        self._session.flush()
        self._publish("users.removed", user, actor_id)
        self._logger.info("user_removed", extra={"user_id": user.id, "actor_id": actor_id})
        return user

    def toggle_app_on_user(
        self, user_id: int, app_id: int, append: bool = True, *, actor_id: Optional[int] = None
    ) -> bool:
        user = self._require_user(user_id)
        changed, items = toggle_item(user.apps_ids, app_id, append)
        if changed:
            user.apps_ids = items
            user.updated_by = actor_id
            self._session.flush()
            self._publish("users.updated", user, actor_id)
        self._logger.debug(
            "user_app_toggled",
            extra={"user_id": user_id, "app_id": app_id, "append": append, "changed": changed},
        )
        return changed

    def toggle_apps_on_user(
        self, user_id: int, apps_ids: Iterable[int], *, actor_id: Optional[int] = None
    ) -> bool:
        """Flip each app on the user; True when any of them was already held."""

        held = set(self._require_user(user_id).apps_ids)
        already_had = False
        for app_id in dict.fromkeys(int(value) for value in apps_ids):
            present = app_id in held
            already_had = already_had or present
            self.toggle_app_on_user(user_id, app_id, append=not present, actor_id=actor_id)
        return already_had

    def assign(
        self,
        user_id: int,
        group_id: int,
        role: UserGroupRole = UserGroupRole.USER,
        *,
        actor_id: Optional[int] = None,
    ) -> Tuple[UserGroup, bool]:
        """Create the membership or update its role; returns ``(membership, changed)``."""

        self._require_user(user_id)
        if self._store.get_group(group_id) is None:
            raise NotFoundError("Group not found.", {"group_id": group_id})

        membership = self._store.find_membership(user_id, group_id)
        if membership is None:
            membership = UserGroup(user_id=user_id, group_id=group_id, role=role, created_by=actor_id)
            self._session.add(membership)
            self._session.flush()
            self._publish_membership("user_groups.created", membership, actor_id)
            return membership, True

        if membership.role == role:
            return membership, False

        membership.role = role
        membership.updated_by = actor_id
        self._session.flush()
        self._publish_membership("user_groups.updated", membership, actor_id)
        return membership, True

    def unassign(self, user_id: int, group_id: int, *, actor_id: Optional[int] = None) -> bool:
        membership = self._store.find_membership(user_id, group_id)
        if membership is None:
            return False
        membership.mark_deleted(actor_id)
        self._session.flush()
        self._publish_membership("user_groups.removed", membership, actor_id)
        return True

    def assign_groups(
        self,
        user_id: int,
        groups: Sequence[MembershipRequest],
        *,
        unassign: bool = True,
        actor_id: Optional[int] = None,
        app_id: Optional[int] = None,
    ) -> bool:
        """Assign every listed membership and, with ``unassign``, drop the visible ones not listed."""

        self._require_user(user_id)
        existing = self.memberships(user_id, actor_id=actor_id, app_id=app_id)

        changed = False
        for request in groups:
            _, assigned = self.assign(user_id, request.group_id, request.role, actor_id=actor_id)
            changed = changed or assigned

        if unassign:
            wanted = {request.group_id for request in groups}
            for membership in existing:
                if membership.group_id not in wanted:
                    changed = self.unassign(user_id, membership.group_id, actor_id=actor_id) or changed

        self._logger.info(
            "user_groups_assigned",
            extra={"user_id": user_id, "groups": [request.group_id for request in groups], "changed": changed},
        )
        return changed

    # helpers

    def _require_user(self, user_id: int) -> User:
        user = self._store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found.", {"user_id": user_id})
        return user

    def _publish(self, event_type: str, user: User, actor_id: Optional[int]) -> None:
        self._dispatcher.publish_event(
            self._session,
            event_type=event_type,
            actor_id=actor_id,
            payload={"id": user.id, "type": user.type.value},
        )

    def _publish_membership(self, event_type: str, membership: UserGroup, actor_id: Optional[int]) -> None:
        self._dispatcher.publish_event(
            self._session,
            event_type=event_type,
            actor_id=actor_id,
            payload={
                "id": membership.id,
                "user_id": membership.user_id,
                "group_id": membership.group_id,
                "role": membership.role.value,
            },
        )
