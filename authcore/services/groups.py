"""Group management: tree edits, company upserts and app toggles."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from authcore.events_engine import EventDispatcher, get_event_dispatcher
from authcore.models.group import Group
from authcore.models.user import UserType
from authcore.models.user_group import UserGroup, UserGroupRole
from authcore.schemas.group import CompanyUpsert, GroupCreate, GroupUpdate
from authcore.services.directory import ANY, DirectoryStore, GroupQuery, UserGroupQuery
from authcore.services.errors import BadRequestError, NotFoundError, UnauthorizedError, ValidationError
from authcore.services.group_tree import GroupNode
from authcore.services.toggles import toggle_item
from authcore.services.visibility import VisibilityResolver


class GroupService:
    """Creates, edits and removes groups under the visibility rules of the acting user.

    Every operation takes an optional ``actor_id``/``app_id`` pair. Without an
    actor the call is trusted (system or app-only context) and no visibility
    checks apply.
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
        self._projector = self._visibility.projector
        self._tree = self._projector.tree
        self._dispatcher = dispatcher or get_event_dispatcher()
        self._logger = logging.getLogger("authcore.services.groups")

    # reads

    def get_group(self, group_id: int, *, actor_id: Optional[int] = None, app_id: Optional[int] = None) -> Group:
        group = self._store.get_group(group_id)
        if group is None:
            raise NotFoundError("Group not found.", {"group_id": group_id})
        if actor_id is not None:
            self._visibility.assert_group_visible(actor_id, self._require_app_context(app_id), group_id)
        return group

    def list_groups(
        self,
        *,
        actor_id: Optional[int] = None,
        app_id: Optional[int] = None,
        parent_id: Optional[int] = None,
        companies: bool = False,
    ) -> List[Group]:
        """List groups (or companies) the actor may see.

        Without ``parent_id`` a super admin gets the root groups carrying the
        app and any other actor gets the groups they administer.
        """

        query = GroupQuery(company=companies, parent_id=ANY if parent_id is None else parent_id)
        groups = self._store.list_groups(query)
        if actor_id is None:
            return groups

        app = self._require_app_context(app_id)
        actor = self._store.get_user(actor_id)
        if actor is None:
            raise NotFoundError("User not found", {"user_id": actor_id})

        if parent_id is None and not companies:
            if actor.type == UserType.SUPER_ADMIN:
                return [group for group in groups if group.parent_id is None and app in group.apps_ids]
            administered = {
                membership.group_id
                for membership in self._store.find_user_groups(
                    UserGroupQuery(user_ids=[actor.id], role=UserGroupRole.ADMIN)
                )
            }
            return [group for group in groups if group.id in administered]

        visible = self._visibility.visible_group_ids(actor.id, app, edit=False)
        return [group for group in groups if group.id in visible]

    def group_tree(self, group_id: int, **context: Optional[int]) -> List[GroupNode]:
        self.get_group(group_id, **context)
        return self._tree.with_children(group_id)

    def inherited_apps(self, group_id: int) -> List[int]:
        return sorted(self._projector.inherited_apps_for_group(group_id))

    def group_members(
        self, group_id: int, *, actor_id: Optional[int] = None, app_id: Optional[int] = None
    ) -> List[UserGroup]:
        """Direct memberships of the group, narrowed to users the actor can see."""

        self.get_group(group_id, actor_id=actor_id, app_id=app_id)
        memberships = self._store.find_user_groups(UserGroupQuery(group_ids=[group_id]))
        if actor_id is None:
            return memberships
        visible = self._visibility.visible_user_ids(actor_id, self._require_app_context(app_id))
        return [membership for membership in memberships if membership.user_id in visible]

    def users_count(self, group_id: int, *, actor_id: Optional[int] = None, app_id: Optional[int] = None) -> int:
        return len(self._visibility.users_in_group_recursively(group_id, actor_id=actor_id, app_id=app_id))

    # writes

    def create_group(
        self,
        payload: GroupCreate,
        *,
        actor_id: Optional[int] = None,
        app_id: Optional[int] = None,
    ) -> Group:
        if not payload.name and not payload.company_code:
            raise ValidationError("Group name is empty.", {"name": payload.name, "company_code": payload.company_code})

        if actor_id is not None:
            if not payload.apps_ids and payload.parent_id is None:
                raise BadRequestError("Cannot be created without apps or parent.")
            actor = self._store.get_user(actor_id)
            if actor is None:
                raise NotFoundError("User not found", {"user_id": actor_id})
            if actor.type != UserType.SUPER_ADMIN and not payload.company_code:
                app = self._require_app_context(app_id)
                if not self._visibility.can_edit_group(actor.id, app, payload.parent_id):
                    raise UnauthorizedError("Do not have permissions")

        if payload.parent_id is not None:
            self._require_parent(payload.parent_id)
            self._validate_apps(payload.apps_ids, payload.parent_id)
        if payload.company_code:
            self._validate_company_code(payload.company_code)

        group = Group(
            name=payload.name or f"Company: {payload.company_code}",
            parent_id=payload.parent_id,
            apps_ids=list(payload.apps_ids),
            company_code=payload.company_code,
            company_email=payload.company_email,
            company_phone=payload.company_phone,
            created_by=actor_id,
        )
        self._session.add(group)
        self._flush_unique(payload.company_code)

        self._publish("groups.created", group, actor_id)
        self._logger.info(
            "group_created",
            extra={"group_id": group.id, "parent_id": group.parent_id, "actor_id": actor_id},
        )
        return group

    def update_group(
        self,
        group_id: int,
        payload: GroupUpdate,
        *,
        actor_id: Optional[int] = None,
        app_id: Optional[int] = None,
    ) -> Group:
        group = self._require_group(group_id)
        self._authorize_edit(group_id, actor_id, app_id)
        updates = payload.model_dump(exclude_unset=True)

        if "parent_id" in updates and updates["parent_id"] != group.parent_id:
            new_parent_id = updates["parent_id"]
            if new_parent_id is not None:
                self._require_parent(new_parent_id)
            if self._tree.would_create_cycle(group.id, new_parent_id):
                self._logger.warning(
                    "group_reparent_rejected",
                    extra={"group_id": group.id, "parent_id": new_parent_id, "actor_id": actor_id},
                )
                raise ValidationError(
                    f"Parent '{new_parent_id}' cannot be assigned (recursively)",
                    {"group_id": group.id, "parent_id": new_parent_id},
                )

        parent_id = updates.get("parent_id", group.parent_id)
        new_apps = updates.get("apps_ids")
        if new_apps is not None and parent_id is not None and list(new_apps) != list(group.apps_ids):
            self._validate_apps(new_apps, parent_id)

        new_code = updates.get("company_code")
        if new_code and new_code != group.company_code:
            self._validate_company_code(new_code)

        if "parent_id" in updates:
            group.parent_id = updates["parent_id"]
        if new_apps is not None:
            group.apps_ids = list(new_apps)
        for key in ("name", "company_code", "company_email", "company_phone"):
            if key in updates and (updates[key] is not None or key != "name"):
                setattr(group, key, updates[key])
        group.updated_by = actor_id
        self._flush_unique(new_code)

        self._publish("groups.updated", group, actor_id)
        self._logger.info("group_updated", extra={"group_id": group.id, "actor_id": actor_id, "fields": sorted(updates)})
        return group

    def remove_group(
        self,
        group_id: int,
        *,
        actor_id: Optional[int] = None,
        app_id: Optional[int] = None,
        move_to_group: Optional[int] = None,
    ) -> Group:
        """Soft-delete a group; a company group only loses the acting app."""

        group = self._require_group(group_id)
        self._authorize_edit(group_id, actor_id, app_id)

        if group.is_company and app_id is not None:
            remaining = [value for value in sorted(self._projector.inherited_apps_for_group(group.id)) if value != app_id]
            group.apps_ids = remaining
            group.updated_by = actor_id
            self._session.flush()
            self._publish("groups.updated", group, actor_id)
            self._logger.info(
                "company_app_detached",
                extra={"group_id": group.id, "app_id": app_id, "actor_id": actor_id},
            )
            return group

        if move_to_group is not None:
            self._move_members(group, move_to_group, actor_id=actor_id, app_id=app_id)

        group.mark_deleted(actor_id)
        self._session.flush()
        self._publish("groups.removed", group, actor_id)
        self._logger.info("group_removed", extra={"group_id": group.id, "actor_id": actor_id})
        return group

    def find_or_create_company_group(
        self, payload: CompanyUpsert, *, actor_id: Optional[int] = None
    ) -> Tuple[Group, bool]:
        """Idempotent upsert keyed by ``company_code``."""

        group = self._store.find_group_by_company_code(payload.company_code)
        if group is None:
            created = self.create_group(
                GroupCreate(
                    name=payload.name,
                    company_code=payload.company_code,
                    company_email=payload.company_email,
                    company_phone=payload.company_phone,
                    apps_ids=payload.apps_ids or [],
                ),
            )
            return created, True

        updates = payload.model_dump(exclude_unset=True, exclude={"company_code"})
        updates = {key: value for key, value in updates.items() if value is not None}
        if updates:
            for key, value in updates.items():
                setattr(group, key, list(value) if key == "apps_ids" else value)
            group.updated_by = actor_id
            self._session.flush()
            self._publish("groups.updated", group, actor_id)
        return group, False

    def toggle_app_on_group(
        self, group_id: int, app_id: int, append: bool = True, *, actor_id: Optional[int] = None
    ) -> bool:
        group = self._require_group(group_id)
        changed, items = toggle_item(group.apps_ids, app_id, append)
        if changed:
            group.apps_ids = items
            group.updated_by = actor_id
            self._session.flush()
            self._publish("groups.updated", group, actor_id)
        self._logger.debug(
            "group_app_toggled",
            extra={"group_id": group_id, "app_id": app_id, "append": append, "changed": changed},
        )
        return changed

    # helpers

    def _move_members(
        self, group: Group, target_id: int, *, actor_id: Optional[int], app_id: Optional[int]
    ) -> None:
        target = self._store.get_group(target_id)
        if target is None:
            raise NotFoundError("Group not found.", {"group_id": target_id})
        if actor_id is not None and not self._visibility.can_edit_group(
            actor_id, self._require_app_context(app_id), target_id
        ):
            raise UnauthorizedError("Unauthorized to move users to this group.", {"group_id": target_id})

        moved = 0
        for membership in self._store.find_user_groups(UserGroupQuery(group_ids=[group.id])):
            if self._store.find_membership(membership.user_id, target_id) is not None:
                membership.mark_deleted(actor_id)
                event_type = "user_groups.removed"
            else:
                membership.group_id = target_id
                membership.updated_by = actor_id
                event_type = "user_groups.updated"
            self._session.flush()
            moved += 1
            self._dispatcher.publish_event(
                self._session,
                event_type=event_type,
                actor_id=actor_id,
                payload={
                    "id": membership.id,
                    "user_id": membership.user_id,
                    "group_id": target_id,
                    "previous_group_id": group.id,
                },
            )
        self._logger.info(
            "group_members_moved",
            extra={"group_id": group.id, "target_group_id": target_id, "count": moved},
        )

    def _authorize_edit(self, group_id: int, actor_id: Optional[int], app_id: Optional[int]) -> None:
        if actor_id is None:
            return
        if not self._visibility.can_edit_group(actor_id, self._require_app_context(app_id), group_id):
            raise UnauthorizedError("Do not have permissions", {"group_id": group_id})

    def _validate_apps(self, apps_ids: Sequence[int], parent_id: int) -> None:
        allowed = self._projector.inherited_apps_for_group(parent_id)
        if not all(app_id in allowed for app_id in apps_ids):
            raise ValidationError(
                f"Apps '{list(apps_ids)}' cannot be assigned",
                {"apps_ids": list(apps_ids), "parent_id": parent_id},
            )

    def _validate_company_code(self, company_code: str) -> None:
        if self._store.find_group_by_company_code(company_code) is not None:
            raise ValidationError(
                f"Company with company code '{company_code}' already exists.",
                {"company_code": company_code},
            )

    def _flush_unique(self, company_code: Optional[str]) -> None:
        try:
            self._session.flush()
        except IntegrityError as exc:
            self._session.rollback()
            raise ValidationError(
                f"Company with company code '{company_code}' already exists.",
                {"company_code": company_code},
            ) from exc

    def _require_group(self, group_id: int) -> Group:
        group = self._store.get_group(group_id)
        if group is None:
            raise NotFoundError("Group not found.", {"group_id": group_id})
        return group

    def _require_parent(self, parent_id: int) -> Group:
        parent = self._store.get_group(parent_id)
        if parent is None:
            raise NotFoundError("Parent group not found.", {"parent_id": parent_id})
        return parent

    @staticmethod
    def _require_app_context(app_id: Optional[int]) -> int:
        if app_id is None:
            raise BadRequestError("App context is required for this operation.")
        return app_id

    def _publish(self, event_type: str, group: Group, actor_id: Optional[int]) -> None:
        self._dispatcher.publish_event(
            self._session,
            event_type=event_type,
            actor_id=actor_id,
            payload={"id": group.id, "parent_id": group.parent_id, "company_code": group.company_code},
        )
