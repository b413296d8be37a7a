"""Effective permission merge and permission-record management."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy.orm import Session

from authcore.events_engine import EventDispatcher, get_event_dispatcher
from authcore.models.app import App, AppType
from authcore.models.group import Group
from authcore.models.permission import Permission, PermissionRole
from authcore.models.user import User, UserType
from authcore.models.user_group import UserGroupRole
from authcore.services.cache import (
    Dependency,
    EffectivePermissions,
    PermissionCache,
    PermissionCacheKey,
    get_permission_cache,
)
from authcore.services.directory import (
    ANY,
    DirectoryStore,
    PermissionQuery,
    UserGroupQuery,
    UserQuery,
)
from authcore.services.errors import BadRequestError, NotFoundError, UnauthorizedError
from authcore.services.inheritance import AppInheritanceProjector
from authcore.services.invalidation import pending_invalidations
from authcore.services.municipalities import MunicipalityCatalogue
from authcore.services.visibility import VisibilityResolver

WILDCARD = "*"
MANAGE_MUNICIPALITIES = "MANAGE_MUNICIPALITIES"


@dataclass
class _Grant:
    features: Set[str] = field(default_factory=set)
    accesses: Set[str] = field(default_factory=set)

    def add(self, permission: Permission) -> None:
        self.features.update(permission.features or [])
        self.accesses.update(permission.accesses or [])

    def absorb(self, lower: "_Grant") -> None:
        """Apply a lower-precedence level: features only fill a gap, accesses always merge."""

        if not self.features:
            self.features = set(lower.features)
        self.accesses |= lower.accesses


def _render(features: Iterable[str], accesses: Iterable[str]) -> EffectivePermissions:
    return {"features": sorted(features), "accesses": sorted(accesses)}


class PermissionService:
    """Computes effective permissions and manages scoped permission records."""

    def __init__(
        self,
        session: Session,
        *,
        cache: Optional[PermissionCache] = None,
        dispatcher: Optional[EventDispatcher] = None,
        catalogue: Optional[MunicipalityCatalogue] = None,
        store: Optional[DirectoryStore] = None,
        visibility: Optional[VisibilityResolver] = None,
    ) -> None:
        self._session = session
        self._store = store or DirectoryStore(session)
        self._visibility = visibility or VisibilityResolver(self._store)
        self._projector: AppInheritanceProjector = self._visibility.projector
        self._cache = cache or get_permission_cache()
        self._dispatcher = dispatcher or get_event_dispatcher()
        self._catalogue = catalogue or MunicipalityCatalogue()
        self._logger = logging.getLogger("authcore.services.permissions")

    @property
    def projector(self) -> AppInheritanceProjector:
        return self._projector

    # effective permissions

    def effective_permissions(self, user_id: int, app_id: int) -> EffectivePermissions:
        user = self._require_user(user_id)
        app = self._require_app(app_id)
        return self._effective_for(user, app)

    def permissions_by_app(self, user_id: int) -> Dict[str, EffectivePermissions]:
        """Effective permissions keyed by app type for every app the user can reach."""

        user = self._require_user(user_id)
        apps = self._store.get_apps_by_ids(self._projector.inherited_apps_for_user(user.id))

        is_group_admin = bool(
            self._store.find_user_groups(UserGroupQuery(user_ids=[user.id], role=UserGroupRole.ADMIN))
        )
        if user.is_super_admin or is_group_admin:
            users_app = self._store.get_app_by_type(AppType.USERS.value)
            if users_app is not None and all(app.id != users_app.id for app in apps):
                apps.append(users_app)

        return {app.type: self._effective_for(user, app) for app in apps}

    def validate_app_access(self, user_id: int, app_id: int) -> bool:
        user = self._store.get_user(user_id)
        app = self._store.get_app(app_id)
        if user is None or app is None:
            raise NotFoundError("App not found", {"user_id": user_id, "app_id": app_id})

        if app.id not in self._projector.inherited_apps_for_user(user.id):
            self._logger.info(
                "app_access_denied",
                extra={"user_id": user_id, "app_id": app_id},
            )
            raise UnauthorizedError("Unauthorized to access app", {"user_id": user_id, "app_id": app_id})
        return True

    def _effective_for(self, user: User, app: App) -> EffectivePermissions:
        cache_key: PermissionCacheKey = (app.id, user.id)
        cached = self._cache.get(cache_key)
        if cached is not None:
            self._logger.info(
                "effective_permissions_cache_hit",
                extra={"user_id": user.id, "app_id": app.id},
            )
            return cached

        result, dependencies = self._merge(user, app)

        if self._session_is_clean():
            self._cache.set(cache_key, result, depends_on=dependencies)
        else:
            self._logger.debug(
                "effective_permissions_cache_skipped",
                extra={"user_id": user.id, "app_id": app.id, "reason": "uncommitted_changes"},
            )

        self._logger.info(
            "effective_permissions_resolved",
            extra={
                "user_id": user.id,
                "app_id": app.id,
                "features": len(result["features"]),
                "accesses": len(result["accesses"]),
            },
        )
        return result

    def _merge(self, user: User, app: App) -> Tuple[EffectivePermissions, Set[Dependency]]:
        dependencies: Set[Dependency] = {("user", user.id), ("app", app.id)}

        if user.type == UserType.SUPER_ADMIN:
            return _render([WILDCARD], [WILDCARD]), dependencies

        merged = _Grant()

        # the user's own record
        for permission in self._store.find_permissions(
            PermissionQuery(user_id=user.id, group_id=None, app_id=app.id)
        ):
            merged.add(permission)

        memberships = self._store.find_user_groups(UserGroupQuery(user_ids=[user.id]))
        role_by_group: Dict[int, UserGroupRole] = {m.group_id: m.role for m in memberships}

        # records attached to the user's membership edges, role-filtered and unioned
        membership_level = _Grant()
        if role_by_group:
            for permission in self._store.find_permissions(
                PermissionQuery(user_id=user.id, group_ids=list(role_by_group), app_id=app.id)
            ):
                edge_role = role_by_group.get(permission.group_id)
                if permission.role and (edge_role is None or permission.role.value != edge_role.value):
                    continue
                membership_level.add(permission)
        merged.absorb(membership_level)

        # group records along each membership's ancestor chain
        groups_level = _Grant()
        if role_by_group:
            tree = self._projector.tree.snapshot() if len(role_by_group) > 1 else self._projector.tree
            chains = {group_id: tree.ancestors(group_id) for group_id in sorted(role_by_group)}
            chain_group_ids = {group.id for chain in chains.values() for group in chain}
            dependencies |= {("group", group_id) for group_id in chain_group_ids}
            dependencies |= {("group", group_id) for group_id in role_by_group}

            records_by_group: Dict[int, List[Permission]] = defaultdict(list)
            for permission in self._store.find_permissions(
                PermissionQuery(user_id=None, group_ids=list(chain_group_ids), app_id=app.id)
            ):
                records_by_group[permission.group_id].append(permission)

            for chain in chains.values():
                chain_grant = self._collect_chain(chain, role_by_group, records_by_group)
                groups_level.features |= chain_grant.features
                groups_level.accesses |= chain_grant.accesses
        merged.absorb(groups_level)

        # records granted to the user's type
        type_level = _Grant()
        for permission in self._store.find_permissions(
            PermissionQuery(
                user_id=None,
                group_id=None,
                app_id=app.id,
                role=PermissionRole(user.type.value),
            )
        ):
            type_level.add(permission)
        merged.absorb(type_level)

        return _render(merged.features or [WILDCARD], merged.accesses), dependencies

    @staticmethod
    def _collect_chain(
        chain: Sequence[Group],
        role_by_group: Dict[int, UserGroupRole],
        records_by_group: Dict[int, List[Permission]],
    ) -> _Grant:
        """Nearest non-empty features win along the chain; accesses are unioned."""

        grant = _Grant()
        for group in chain:
            # a role held below becomes USER at the parent
            role_in_group = role_by_group.get(group.id, UserGroupRole.USER)
            level = _Grant()
            for permission in records_by_group.get(group.id, []):
                if permission.role and permission.role.value != role_in_group.value:
                    continue
                level.add(permission)
            grant.absorb(level)
        return grant

    # lookups by access / municipality

    def find_users_by_access(self, access: str, municipality: Optional[int] = None) -> List[User]:
        """Users granted ``access`` directly or through a group record."""

        user_ids: Set[int] = set()
        for permission in self._store.find_permissions(PermissionQuery(access=access)):
            if permission.user_id is not None:
                user_ids.add(permission.user_id)
            elif permission.group_id is not None:
                role = UserGroupRole(permission.role.value) if permission.role else None
                user_ids |= self._visibility.users_in_group_recursively(permission.group_id, role=role)

        users = self._store.list_users(UserQuery(ids=user_ids))
        if municipality is not None:
            users = [user for user in users if municipality in self.user_municipalities(user.id)]

        self._logger.debug(
            "users_by_access_resolved",
            extra={"access": access, "municipality": municipality, "count": len(users)},
        )
        return users

    def user_municipalities(self, user_id: int) -> List[int]:
        user = self._require_user(user_id)

        if user.is_super_admin or self._can_manage_municipalities(user):
            return self._catalogue.ids()

        memberships = self._store.find_user_groups(UserGroupQuery(user_ids=[user.id]))
        if not memberships:
            return []

        chains = [self._projector.tree.ancestors(m.group_id) for m in memberships]
        chain_group_ids = {group.id for chain in chains for group in chain}
        by_group: Dict[int, List[int]] = defaultdict(list)
        for permission in self._store.find_permissions(
            PermissionQuery(user_id=None, group_ids=list(chain_group_ids), with_municipalities=True)
        ):
            by_group[permission.group_id].extend(permission.municipalities)

        result: Set[int] = set()
        for chain in chains:
            for group in chain:
                if by_group.get(group.id):
                    result.update(by_group[group.id])
                    break
        return sorted(result)

    def list_municipalities(self) -> List[Dict[str, object]]:
        return [{"id": item.id, "name": item.name} for item in self._catalogue.list()]

    def users_in_municipality(
        self,
        actor_id: Optional[int],
        app_id: int,
        municipality: int,
        role: Optional[UserGroupRole] = None,
    ) -> List[User]:
        """Visible members of groups (and their subtrees) assigned ``municipality``."""

        records = [
            permission
            for permission in self._store.find_permissions(
                PermissionQuery(group_id=ANY, with_municipalities=True)
            )
            if permission.group_id is not None and municipality in permission.municipalities
        ]
        if not records:
            return []

        group_ids = self._projector.tree.descendant_ids_of_many(
            {permission.group_id for permission in records}, include_self=True
        )
        visible = self._visibility.visible_user_ids(actor_id, app_id, edit=False)
        memberships = self._store.find_user_groups(
            UserGroupQuery(group_ids=group_ids, user_ids=visible, role=role)
        )
        return self._store.list_users(UserQuery(ids={m.user_id for m in memberships}))

    def _can_manage_municipalities(self, user: User) -> bool:
        users_app = self._store.get_app_by_type(AppType.USERS.value)
        if users_app is None:
            return False
        grants = self.permissions_by_app(user.id).get(users_app.type)
        if not grants:
            return False
        return any(access in (WILDCARD, MANAGE_MUNICIPALITIES) for access in grants["accesses"])

    # record management

    def upsert_permission(
        self,
        *,
        app_id: Optional[int],
        user_id: Optional[int] = None,
        group_id: Optional[int] = None,
        role: Optional[PermissionRole] = None,
        accesses: Optional[Sequence[str]] = None,
        features: Optional[Sequence[str]] = None,
        actor_id: Optional[int] = None,
    ) -> Tuple[Permission, bool]:
        """Find-or-create the record for an exact scope and overwrite its grants."""

        if user_id is None and group_id is None and role is None:
            raise BadRequestError("Group or/and user should be passed.")
        if user_id is not None:
            self._require_user(user_id)
        if group_id is not None and self._store.get_group(group_id) is None:
            raise NotFoundError("Group not found.", {"group_id": group_id})
        if app_id is not None:
            self._require_app(app_id)

        matches = self._store.find_permissions(
            PermissionQuery(user_id=user_id, group_id=group_id, app_id=app_id, role=role)
        )
        created = not matches
        if created:
            permission = Permission(
                user_id=user_id,
                group_id=group_id,
                app_id=app_id,
                role=role,
                created_by=actor_id,
            )
            self._session.add(permission)
        else:
            permission = matches[0]
            permission.updated_by = actor_id
        if accesses is not None:
            permission.accesses = list(accesses)
        if features is not None:
            permission.features = list(features)
        self._session.flush()

        self._publish("permissions.created" if created else "permissions.updated", permission, actor_id)
        self._logger.info(
            "permission_upserted",
            extra={
                "permission_id": permission.id,
                "permission_created": created,
                "user_id": user_id,
                "group_id": group_id,
                "app_id": app_id,
            },
        )
        return permission, created

    def set_group_municipalities(
        self,
        group_id: int,
        municipalities: Sequence[int],
        *,
        actor_id: Optional[int] = None,
    ) -> Permission:
        if self._store.get_group(group_id) is None:
            raise NotFoundError("Group not found.", {"group_id": group_id})

        existing = self._store.find_permissions(
            PermissionQuery(user_id=None, group_id=group_id, with_municipalities=True)
        )
        if existing:
            permission = existing[0]
            permission.municipalities = list(municipalities)
            permission.updated_by = actor_id
            event_type = "permissions.updated"
        else:
            permission = Permission(
                group_id=group_id,
                municipalities=list(municipalities),
                created_by=actor_id,
            )
            self._session.add(permission)
            event_type = "permissions.created"
        self._session.flush()
        self._publish(event_type, permission, actor_id)
        return permission

    def get_permission(self, permission_id: int) -> Permission:
        permission = self._session.get(Permission, permission_id)
        if permission is None or permission.is_deleted:
            raise NotFoundError("Permission not found.", {"permission_id": permission_id})
        return permission

    def list_permissions(
        self,
        *,
        user_id: Optional[int] = None,
        group_id: Optional[int] = None,
        app_id: Optional[int] = None,
    ) -> List[Permission]:
        return self._store.find_permissions(
            PermissionQuery(
                user_id=ANY if user_id is None else user_id,
                group_id=ANY if group_id is None else group_id,
                app_id=ANY if app_id is None else app_id,
            )
        )

    def remove_permission(self, permission_id: int, *, actor_id: Optional[int] = None) -> Permission:
        permission = self.get_permission(permission_id)
        permission.mark_deleted(actor_id)
        self._session.flush()
        self._publish("permissions.removed", permission, actor_id)
        return permission

    def _publish(self, event_type: str, permission: Permission, actor_id: Optional[int]) -> None:
        self._dispatcher.publish_event(
            self._session,
            event_type=event_type,
            actor_id=actor_id,
            payload={
                "id": permission.id,
                "user_id": permission.user_id,
                "group_id": permission.group_id,
                "app_id": permission.app_id,
            },
        )

    # helpers

    def _session_is_clean(self) -> bool:
        session = self._session
        return not (session.new or session.dirty or session.deleted or pending_invalidations(session))

    def _require_user(self, user_id: int) -> User:
        user = self._store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found.", {"user_id": user_id})
        return user

    def _require_app(self, app_id: int) -> App:
        app = self._store.get_app(app_id)
        if app is None:
            raise NotFoundError("App not found", {"app_id": app_id})
        return app
