from __future__ import annotations

import logging

import pytest

from authcore.core.database import session_scope
from authcore.models.permission import PermissionRole
from authcore.models.user import UserType
from authcore.models.user_group import UserGroupRole
from authcore.services.errors import BadRequestError, NotFoundError, UnauthorizedError
from authcore.services.municipalities import MunicipalityCatalogue
from authcore.services.permissions import PermissionService


def effective(user_id: int, app_id: int) -> dict:
    with session_scope() as session:
        return PermissionService(session).effective_permissions(user_id, app_id)


def test_super_admin_always_gets_wildcards(directory) -> None:
    app = directory.app("PORTAL")
    admin = directory.user(UserType.SUPER_ADMIN)
    directory.permission(app, user=admin, features=["F1"], accesses=["X1"])

    assert effective(admin, app) == {"features": ["*"], "accesses": ["*"]}


def test_nearest_group_wins_features_while_accesses_union(directory) -> None:
    app = directory.app("PORTAL")
    a = directory.group("A", apps=[app])
    b = directory.group("B", parent=a)
    directory.permission(app, group=a, features=["F1"], accesses=["X1"])
    directory.permission(app, group=b, features=["F2"], accesses=["X2"])
    user = directory.user()
    directory.member(user, b)

    assert effective(user, app) == {"features": ["F2"], "accesses": ["X1", "X2"]}


def test_defaults_to_wildcard_features_and_no_accesses(directory) -> None:
    app = directory.app("PORTAL")
    user = directory.user(apps=[app])

    assert effective(user, app) == {"features": ["*"], "accesses": []}


def test_user_record_seeds_features_and_lower_levels_only_add_accesses(directory) -> None:
    app = directory.app("PORTAL")
    group = directory.group("G", apps=[app])
    user = directory.user()
    directory.member(user, group)
    directory.permission(app, user=user, features=["OWN"], accesses=["A1"])
    directory.permission(app, group=group, features=["GROUP"], accesses=["A2"])
    directory.permission(app, role=PermissionRole.USER, features=["TYPE"], accesses=["A3"])

    assert effective(user, app) == {"features": ["OWN"], "accesses": ["A1", "A2", "A3"]}


def test_membership_edge_records_are_role_filtered_and_unioned(directory) -> None:
    app = directory.app("PORTAL")
    first = directory.group("First", apps=[app])
    second = directory.group("Second", apps=[app])
    user = directory.user()
    directory.member(user, first, UserGroupRole.ADMIN)
    directory.member(user, second, UserGroupRole.USER)
    directory.permission(app, user=user, group=first, role=PermissionRole.ADMIN, features=["MANAGE"])
    directory.permission(app, user=user, group=second, features=["READ"], accesses=["R"])
    directory.permission(app, user=user, group=second, role=PermissionRole.ADMIN, features=["IGNORED"])

    assert effective(user, app) == {"features": ["MANAGE", "READ"], "accesses": ["R"]}


def test_admin_role_becomes_user_at_parent_group(directory) -> None:
    app = directory.app("PORTAL")
    parent = directory.group("Parent", apps=[app])
    child = directory.group("Child", parent=parent)
    directory.permission(app, group=parent, role=PermissionRole.ADMIN, features=["PARENT_ADMIN"])
    directory.permission(app, group=parent, role=PermissionRole.USER, features=["PARENT_USER"], accesses=["P"])
    directory.permission(app, group=child, role=PermissionRole.ADMIN, accesses=["C"])
    user = directory.user()
    directory.member(user, child, UserGroupRole.ADMIN)

    assert effective(user, app) == {"features": ["PARENT_USER"], "accesses": ["C", "P"]}


def test_user_type_records_apply_when_nothing_else_matches(directory) -> None:
    app = directory.app("PORTAL")
    admin = directory.user(UserType.ADMIN, apps=[app])
    directory.permission(app, role=PermissionRole.ADMIN, features=["ADMIN_F"], accesses=["ADMIN_A"])
    directory.permission(app, role=PermissionRole.USER, features=["USER_F"])

    assert effective(admin, app) == {"features": ["ADMIN_F"], "accesses": ["ADMIN_A"]}


def test_result_is_independent_of_membership_order(directory) -> None:
    app = directory.app("PORTAL")
    groups = [directory.group(f"G{i}", apps=[app]) for i in range(3)]
    for index, group in enumerate(groups):
        directory.permission(app, group=group, features=[f"F{index}"], accesses=[f"X{index}"])

    forward = directory.user()
    backward = directory.user()
    for group in groups:
        directory.member(forward, group)
    for group in reversed(groups):
        directory.member(backward, group)

    assert effective(forward, app) == effective(backward, app)
    assert effective(forward, app) == {"features": ["F0", "F1", "F2"], "accesses": ["X0", "X1", "X2"]}


def test_missing_user_or_app_raises_not_found(directory) -> None:
    app = directory.app("PORTAL")
    user = directory.user()

    with pytest.raises(NotFoundError):
        effective(user + 100, app)
    with pytest.raises(NotFoundError):
        effective(user, app + 100)


def test_upsert_requires_user_group_or_role(directory) -> None:
    app = directory.app("PORTAL")

    with session_scope() as session:
        with pytest.raises(BadRequestError):
            PermissionService(session).upsert_permission(app_id=app, accesses=["X"])


def test_upsert_overwrites_existing_record_for_same_scope(directory) -> None:
    app = directory.app("PORTAL")
    user = directory.user(apps=[app])

    with session_scope() as session:
        service = PermissionService(session)
        first, created = service.upsert_permission(app_id=app, user_id=user, features=["A"])
        second, created_again = service.upsert_permission(app_id=app, user_id=user, features=["B"])
        assert created is True
        assert created_again is False
        assert first.id == second.id
        assert second.features == ["B"]


def test_upsert_logs_structured_outcome(directory, caplog) -> None:
    app = directory.app("PORTAL")
    user = directory.user(apps=[app])
    caplog.set_level(logging.INFO, logger="authcore.services.permissions")

    with session_scope() as session:
        PermissionService(session).upsert_permission(app_id=app, user_id=user, features=["A"])

    records = [record for record in caplog.records if record.getMessage() == "permission_upserted"]
    assert len(records) == 1
    assert records[0].permission_created is True
    assert records[0].user_id == user


def test_permissions_by_app_adds_users_app_for_group_admin(directory) -> None:
    portal = directory.app("PORTAL")
    directory.app("USERS")
    group = directory.group("G", apps=[portal])
    admin = directory.user(UserType.ADMIN)
    directory.member(admin, group, UserGroupRole.ADMIN)

    with session_scope() as session:
        by_app = PermissionService(session).permissions_by_app(admin)

    assert set(by_app) == {"PORTAL", "USERS"}


def test_validate_app_access(directory) -> None:
    portal = directory.app("PORTAL")
    other = directory.app("OTHER")
    user = directory.user(apps=[portal])

    with session_scope() as session:
        service = PermissionService(session)
        assert service.validate_app_access(user, portal) is True
        with pytest.raises(UnauthorizedError):
            service.validate_app_access(user, other)


def test_find_users_by_access_follows_group_subtree(directory) -> None:
    app = directory.app("PORTAL")
    parent = directory.group("Parent", apps=[app])
    child = directory.group("Child", parent=parent)
    direct = directory.user(email="direct@example.com")
    nested = directory.user(email="nested@example.com")
    outsider = directory.user(email="outsider@example.com")
    directory.member(nested, child)
    directory.permission(app, user=direct, accesses=["REVIEW"])
    directory.permission(app, group=parent, accesses=["REVIEW"])
    directory.permission(app, user=outsider, accesses=["OTHER"])

    with session_scope() as session:
        users = PermissionService(session).find_users_by_access("REVIEW")
        assert sorted(user.id for user in users) == [direct, nested]


class StaticCatalogue(MunicipalityCatalogue):
    def __init__(self, ids: list[int]) -> None:
        super().__init__(host="")
        self._ids = ids

    def ids(self) -> list[int]:
        return list(self._ids)


def test_user_municipalities_take_nearest_group_level(directory) -> None:
    parent = directory.group("Parent")
    child = directory.group("Child", parent=parent)
    user = directory.user()
    directory.member(user, child)
    directory.permission(None, group=parent, municipalities=[10, 11])

    with session_scope() as session:
        service = PermissionService(session, catalogue=StaticCatalogue([10, 11, 12]))
        assert service.user_municipalities(user) == [10, 11]

    directory.permission(None, group=child, municipalities=[12])

    with session_scope() as session:
        service = PermissionService(session, catalogue=StaticCatalogue([10, 11, 12]))
        assert service.user_municipalities(user) == [12]


def test_super_admin_sees_every_municipality(directory) -> None:
    admin = directory.user(UserType.SUPER_ADMIN)

    with session_scope() as session:
        service = PermissionService(session, catalogue=StaticCatalogue([3, 1, 2]))
        assert service.user_municipalities(admin) == [3, 1, 2]


def test_users_in_municipality_respects_visibility(directory) -> None:
    app = directory.app("PORTAL")
    region = directory.group("Region", apps=[app])
    office = directory.group("Office", parent=region)
    elsewhere = directory.group("Elsewhere", apps=[app])
    directory.permission(None, group=region, municipalities=[42])
    member = directory.user()
    directory.member(member, office)
    stranger = directory.user()
    directory.member(stranger, elsewhere)

    with session_scope() as session:
        users = PermissionService(session).users_in_municipality(None, app, 42)
        assert [user.id for user in users] == [member]
