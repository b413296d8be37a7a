from __future__ import annotations

import pytest
from sqlalchemy import select

from authcore.core.database import session_scope
from authcore.models.permission import Permission
from authcore.models.user import User, UserType
from authcore.models.user_group import UserGroup, UserGroupRole
from authcore.schemas.user import MembershipRequest, UserCreate, UserUpdate
from authcore.services.errors import NotFoundError, UnauthorizedError
from authcore.services.users import UserService
from authcore.services.views import UserViewResolver


def test_toggle_app_on_user_is_idempotent(directory) -> None:
    user = directory.user()

    with session_scope() as session:
        service = UserService(session)
        assert service.toggle_app_on_user(user, 3, append=True) is True
        assert service.toggle_app_on_user(user, 3, append=True) is False

    with session_scope() as session:
        assert session.get(User, user).apps_ids == [3]


def test_toggle_apps_reports_whether_any_app_was_held(directory) -> None:
    user = directory.user(apps=[1])

    with session_scope() as session:
        service = UserService(session)
        assert service.toggle_apps_on_user(user, [2]) is False
        assert service.toggle_apps_on_user(user, [1, 3]) is True

    with session_scope() as session:
        assert session.get(User, user).apps_ids == [2, 3]


def test_toggle_apps_flips_a_repeated_app_once(directory) -> None:
    user = directory.user(apps=[1])

    with session_scope() as session:
        assert UserService(session).toggle_apps_on_user(user, [2, 2, 1, 1]) is True

    with session_scope() as session:
        assert session.get(User, user).apps_ids == [2]


def test_assign_upserts_role_and_unassign_removes_edge(directory) -> None:
    group = directory.group("G")
    user = directory.user()

    with session_scope() as session:
        service = UserService(session)
        edge, changed = service.assign(user, group)
        assert changed is True
        same, changed = service.assign(user, group, UserGroupRole.USER)
        assert changed is False
        assert same.id == edge.id
        promoted, changed = service.assign(user, group, UserGroupRole.ADMIN)
        assert changed is True
        assert promoted.role == UserGroupRole.ADMIN
        assert service.unassign(user, group) is True
        assert service.unassign(user, group) is False


def test_assign_to_missing_group_raises_not_found(directory) -> None:
    user = directory.user()

    with session_scope() as session:
        with pytest.raises(NotFoundError):
            UserService(session).assign(user, 999)


def test_assign_groups_replaces_membership_set(directory) -> None:
    first = directory.group("First")
    second = directory.group("Second")
    third = directory.group("Third")
    user = directory.user()
    directory.member(user, first)
    directory.member(user, second)

    with session_scope() as session:
        changed = UserService(session).assign_groups(
            user,
            [MembershipRequest(group_id=second), MembershipRequest(group_id=third, role=UserGroupRole.ADMIN)],
        )
        assert changed is True

    with session_scope() as session:
        live = session.scalars(select(UserGroup).where(UserGroup.deleted_at.is_(None))).all()
        assert sorted((edge.group_id, edge.role) for edge in live) == [
            (second, UserGroupRole.USER),
            (third, UserGroupRole.ADMIN),
        ]


def test_assign_groups_without_unassign_keeps_existing(directory) -> None:
    first = directory.group("First")
    second = directory.group("Second")
    user = directory.user()
    directory.member(user, first)

    with session_scope() as session:
        UserService(session).assign_groups(user, [MembershipRequest(group_id=second)], unassign=False)

    with session_scope() as session:
        live = session.scalars(select(UserGroup).where(UserGroup.deleted_at.is_(None))).all()
        assert sorted(edge.group_id for edge in live) == [first, second]


def test_remove_user_cascades_memberships_and_permissions(directory) -> None:
    app = directory.app("PORTAL")
    group = directory.group("G", apps=[app])
    user = directory.user()
    directory.member(user, group)
    directory.permission(app, user=user, features=["F"])

    with session_scope() as session:
        UserService(session).remove_user(user)

    with session_scope() as session:
        assert session.get(User, user).is_deleted is True
        assert all(edge.is_deleted for edge in session.scalars(select(UserGroup)))
        assert all(record.is_deleted for record in session.scalars(select(Permission)))


def test_only_super_admin_creates_super_admins(directory) -> None:
    admin = directory.user(UserType.ADMIN)
    root = directory.user(UserType.SUPER_ADMIN)

    with session_scope() as session:
        service = UserService(session)
        with pytest.raises(UnauthorizedError):
            service.create_user(UserCreate(type=UserType.SUPER_ADMIN), actor_id=admin)
        created = service.create_user(UserCreate(type=UserType.SUPER_ADMIN, email="Root@Example.com"), actor_id=root)
        assert created.email == "root@example.com"
        assert created.created_by == root


def test_update_requires_edit_visibility(directory) -> None:
    app = directory.app("PORTAL")
    group = directory.group("G", apps=[app])
    member = directory.user()
    directory.member(member, group, UserGroupRole.USER)
    peer = directory.user()
    directory.member(peer, group, UserGroupRole.USER)

    with session_scope() as session:
        with pytest.raises(UnauthorizedError):
            UserService(session).update_user(peer, UserUpdate(first_name="Changed"), actor_id=member, app_id=app)


def test_list_users_filters_by_app_kind(directory) -> None:
    admin_app = directory.app("ADMIN")
    portal = directory.app("PORTAL")
    admin = directory.user(UserType.ADMIN, apps=[admin_app, portal])
    user = directory.user(apps=[portal])

    with session_scope() as session:
        service = UserService(session)
        assert [u.id for u in service.list_users(app_id=admin_app)] == [admin]
        assert [u.id for u in service.list_users(app_id=portal)] == [user]


def test_user_view_composes_requested_projections(directory) -> None:
    app = directory.app("PORTAL")
    group = directory.group("G", apps=[app])
    user = directory.user()
    directory.member(user, group, UserGroupRole.ADMIN)

    with session_scope() as session:
        resolver = UserViewResolver(session)
        bare = resolver.resolve_user_view(user)
        full = resolver.resolve_user_view(
            user,
            with_groups=True,
            with_inherited_apps=True,
            with_permissions=True,
            with_municipalities=True,
        )

    assert bare.groups is None
    assert bare.permissions is None
    assert [(item.id, item.role) for item in full.groups] == [(group, UserGroupRole.ADMIN)]
    assert full.inherited_apps_ids == [app]
    assert full.permissions["PORTAL"].features == ["*"]
    assert full.municipalities == []
