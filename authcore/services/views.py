"""Composes the optional projections of a user into one response."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from authcore.schemas.permission import EffectivePermissionsResponse
from authcore.schemas.user import UserGroupView, UserViewResponse
from authcore.services.directory import DirectoryStore, UserGroupQuery
from authcore.services.errors import NotFoundError
from authcore.services.permissions import PermissionService
from authcore.services.visibility import VisibilityResolver


class UserViewResolver:
    """Each projection is computed only when its flag is set."""

    def __init__(
        self,
        session: Session,
        *,
        store: Optional[DirectoryStore] = None,
        permissions: Optional[PermissionService] = None,
    ) -> None:
        self._store = store or DirectoryStore(session)
        self._permissions = permissions or PermissionService(
            session, store=self._store, visibility=VisibilityResolver(self._store)
        )
        self._projector = self._permissions.projector

    def resolve_user_view(
        self,
        user_id: int,
        *,
        with_groups: bool = False,
        with_inherited_apps: bool = False,
        with_permissions: bool = False,
        with_municipalities: bool = False,
    ) -> UserViewResponse:
        user = self._store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found.", {"user_id": user_id})

        view = UserViewResponse.model_validate(user)

        if with_groups:
            memberships = self._store.find_user_groups(UserGroupQuery(user_ids=[user.id]))
            groups = self._store.groups_by_id(m.group_id for m in memberships)
            view.groups = [
                UserGroupView(
                    id=membership.group_id,
                    name=groups[membership.group_id].name,
                    role=membership.role,
                    company_code=groups[membership.group_id].company_code,
                )
                for membership in memberships
                if membership.group_id in groups
            ]
        if with_inherited_apps:
            view.inherited_apps_ids = sorted(self._projector.inherited_apps_for_user(user.id))
        if with_permissions:
            view.permissions = {
                app_type: EffectivePermissionsResponse(**grants)
                for app_type, grants in self._permissions.permissions_by_app(user.id).items()
            }
        if with_municipalities:
            view.municipalities = self._permissions.user_municipalities(user.id)
        return view
