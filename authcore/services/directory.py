"""Read access to groups, users, memberships, permissions and apps.

The resolution engine only ever needs a handful of filter shapes, so each one
is an explicit query struct rather than a free-form filter tree. ``ANY`` means
"do not filter on this column"; ``None`` means "the column must be empty".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Collection, Dict, Iterable, List, Optional, Union

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from authcore.models.app import App
from authcore.models.group import Group
from authcore.models.permission import Permission, PermissionRole
from authcore.models.user import User, UserType
from authcore.models.user_group import UserGroup, UserGroupRole


class _Any:
    def __repr__(self) -> str:
        return "ANY"


ANY = _Any()

IdFilter = Union[int, None, _Any]


@dataclass(frozen=True)
class GroupQuery:
    ids: Optional[Collection[int]] = None
    parent_id: IdFilter = ANY
    company: Optional[bool] = None
    direct_app_id: Optional[int] = None
    include_deleted: bool = False


@dataclass(frozen=True)
class UserQuery:
    ids: Optional[Collection[int]] = None
    types: Optional[Collection[UserType]] = None
    include_deleted: bool = False


@dataclass(frozen=True)
class UserGroupQuery:
    user_ids: Optional[Collection[int]] = None
    group_ids: Optional[Collection[int]] = None
    role: Optional[UserGroupRole] = None
    live_only: bool = True


@dataclass(frozen=True)
class PermissionQuery:
    user_id: IdFilter = ANY
    group_id: IdFilter = ANY
    group_ids: Optional[Collection[int]] = None
    app_id: IdFilter = ANY
    role: Union[PermissionRole, None, _Any] = ANY
    access: Optional[str] = None
    with_municipalities: bool = False


def _apply_id_filter(stmt: Select, column, value: IdFilter) -> Select:  # noqa: ANN001
    if isinstance(value, _Any):
        return stmt
    if value is None:
        return stmt.where(column.is_(None))
    return stmt.where(column == value)


class DirectoryStore:
    """Storage collaborator used by the resolution engine.

    Soft-deleted rows are excluded unless a query asks for them; memberships
    pointing at soft-deleted users or groups are never returned.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    # groups

    def get_group(self, group_id: int, *, include_deleted: bool = False) -> Optional[Group]:
        group = self._session.get(Group, group_id)
        if group is None or (group.is_deleted and not include_deleted):
            return None
        return group

    def get_groups_by_parent(self, parent_id: int, *, include_deleted: bool = False) -> List[Group]:
        return self.list_groups(GroupQuery(parent_id=parent_id, include_deleted=include_deleted))

    def list_groups(self, query: GroupQuery) -> List[Group]:
        stmt = select(Group)
        if not query.include_deleted:
            stmt = stmt.where(Group.deleted_at.is_(None))
        if query.ids is not None:
            if not query.ids:
                return []
            stmt = stmt.where(Group.id.in_(list(query.ids)))
        stmt = _apply_id_filter(stmt, Group.parent_id, query.parent_id)
        if query.company is True:
            stmt = stmt.where(Group.company_code.is_not(None))
        elif query.company is False:
            stmt = stmt.where(Group.company_code.is_(None))
        groups = list(self._session.scalars(stmt.order_by(Group.id)))
        if query.direct_app_id is not None:
            groups = [group for group in groups if query.direct_app_id in (group.apps_ids or [])]
        return groups

    def find_group_by_company_code(self, company_code: str) -> Optional[Group]:
        return self._session.scalar(
            select(Group).where(Group.company_code == company_code).where(Group.deleted_at.is_(None))
        )

    # users

    def get_user(self, user_id: int, *, include_deleted: bool = False) -> Optional[User]:
        user = self._session.get(User, user_id)
        if user is None or (user.is_deleted and not include_deleted):
            return None
        return user

    def list_users(self, query: UserQuery) -> List[User]:
        stmt = select(User)
        if not query.include_deleted:
            stmt = stmt.where(User.deleted_at.is_(None))
        if query.ids is not None:
            if not query.ids:
                return []
            stmt = stmt.where(User.id.in_(list(query.ids)))
        if query.types:
            stmt = stmt.where(User.type.in_(list(query.types)))
        return list(self._session.scalars(stmt.order_by(User.id)))

    # memberships

    def find_user_groups(self, query: UserGroupQuery) -> List[UserGroup]:
        stmt = select(UserGroup).where(UserGroup.deleted_at.is_(None))
        if query.live_only:
            stmt = (
                stmt.join(Group, Group.id == UserGroup.group_id)
                .join(User, User.id == UserGroup.user_id)
                .where(Group.deleted_at.is_(None))
                .where(User.deleted_at.is_(None))
            )
        if query.user_ids is not None:
            if not query.user_ids:
                return []
            stmt = stmt.where(UserGroup.user_id.in_(list(query.user_ids)))
        if query.group_ids is not None:
            if not query.group_ids:
                return []
            stmt = stmt.where(UserGroup.group_id.in_(list(query.group_ids)))
        if query.role is not None:
            stmt = stmt.where(UserGroup.role == query.role)
        return list(self._session.scalars(stmt.order_by(UserGroup.id)))

    def find_membership(self, user_id: int, group_id: int) -> Optional[UserGroup]:
        return self._session.scalar(
            select(UserGroup)
            .where(UserGroup.user_id == user_id)
            .where(UserGroup.group_id == group_id)
            .where(UserGroup.deleted_at.is_(None))
        )

    # permissions

    def find_permissions(self, query: PermissionQuery) -> List[Permission]:
        stmt = select(Permission).where(Permission.deleted_at.is_(None))
        stmt = _apply_id_filter(stmt, Permission.user_id, query.user_id)
        stmt = _apply_id_filter(stmt, Permission.group_id, query.group_id)
        stmt = _apply_id_filter(stmt, Permission.app_id, query.app_id)
        if query.group_ids is not None:
            if not query.group_ids:
                return []
            stmt = stmt.where(Permission.group_id.in_(list(query.group_ids)))
        if isinstance(query.role, PermissionRole):
            stmt = stmt.where(Permission.role == query.role)
        elif query.role is None:
            stmt = stmt.where(Permission.role.is_(None))
        permissions = list(self._session.scalars(stmt.order_by(Permission.id)))
        # JSON containment differs per dialect; these sets stay small.
        if query.access is not None:
            permissions = [p for p in permissions if query.access in (p.accesses or [])]
        if query.with_municipalities:
            permissions = [p for p in permissions if p.municipalities]
        return permissions

    # apps

    def get_app(self, app_id: int) -> Optional[App]:
        app = self._session.get(App, app_id)
        if app is None or app.is_deleted:
            return None
        return app

    def get_apps_by_ids(self, app_ids: Iterable[int]) -> List[App]:
        ids = list(app_ids)
        if not ids:
            return []
        stmt = select(App).where(App.id.in_(ids)).where(App.deleted_at.is_(None)).order_by(App.id)
        return list(self._session.scalars(stmt))

    def get_app_by_type(self, app_type: str) -> Optional[App]:
        return self._session.scalar(select(App).where(App.type == app_type).where(App.deleted_at.is_(None)))

    def list_apps(self) -> List[App]:
        return list(self._session.scalars(select(App).where(App.deleted_at.is_(None)).order_by(App.id)))

    def list_app_ids(self) -> List[int]:
        return list(self._session.scalars(select(App.id).where(App.deleted_at.is_(None)).order_by(App.id)))

    def groups_by_id(self, group_ids: Iterable[int]) -> Dict[int, Group]:
        return {group.id: group for group in self.list_groups(GroupQuery(ids=list(group_ids)))}
