from __future__ import annotations

import pytest

from authcore.core.database import session_scope
from authcore.models.user import UserType
from authcore.models.user_group import UserGroupRole
from authcore.services.directory import DirectoryStore
from authcore.services.errors import NotFoundError, UnauthorizedError
from authcore.services.visibility import VisibilityResolver


@pytest.fixture()
def org(directory):
    """Two sibling subtrees of one app plus a company and an unrelated app."""

    app = directory.app("PORTAL")
    other_app = directory.app("OTHER")
    north = directory.group("North", apps=[app])
    north_office = directory.group("North office", parent=north)
    south = directory.group("South", apps=[app])
    company = directory.group("Company: 123", apps=[app], company_code="123")
    foreign = directory.group("Foreign", apps=[other_app])

    north_user = directory.user()
    directory.member(north_user, north_office)
    south_user = directory.user()
    directory.member(south_user, south)
    return {
        "app": app,
        "other_app": other_app,
        "north": north,
        "north_office": north_office,
        "south": south,
        "company": company,
        "foreign": foreign,
        "north_user": north_user,
        "south_user": south_user,
    }


def resolver(session) -> VisibilityResolver:  # noqa: ANN001
    return VisibilityResolver(DirectoryStore(session))


def test_app_only_context_sees_everything_entitled(org) -> None:
    with session_scope() as session:
        groups = resolver(session).visible_group_ids(None, org["app"])
        users = resolver(session).visible_user_ids(None, org["app"])

    assert groups == {org["north"], org["north_office"], org["south"], org["company"]}
    assert users == {org["north_user"], org["south_user"]}


def test_super_admin_sees_everything_entitled(org, directory) -> None:
    root = directory.user(UserType.SUPER_ADMIN)

    with session_scope() as session:
        groups = resolver(session).visible_group_ids(root, org["app"], edit=True)

    assert org["foreign"] not in groups
    assert org["south"] in groups


def test_admin_sees_own_subtree_companies_and_all_ordinary_users(org, directory) -> None:
    admin = directory.user(UserType.ADMIN)
    directory.member(admin, org["north"], UserGroupRole.ADMIN)

    with session_scope() as session:
        groups = resolver(session).visible_group_ids(admin, org["app"])
        users = resolver(session).visible_user_ids(admin, org["app"])

    assert groups == {org["north"], org["north_office"], org["company"]}
    assert users == {admin, org["north_user"], org["south_user"]}


def test_plain_member_cannot_edit_and_has_no_tenant_wide_view(org, directory) -> None:
    member = directory.user()
    directory.member(member, org["north"], UserGroupRole.USER)

    with session_scope() as session:
        read = resolver(session).visible_group_ids(member, org["app"], edit=False)
        edit = resolver(session).visible_group_ids(member, org["app"], edit=True)
        users = resolver(session).visible_user_ids(member, org["app"])

    assert read == {org["north"], org["north_office"]}
    assert edit == set()
    assert users == {member, org["north_user"]}


def test_admin_rights_are_transitive_downward(org, directory) -> None:
    manager = directory.user()
    directory.member(manager, org["north"], UserGroupRole.ADMIN)

    with session_scope() as session:
        assert resolver(session).can_edit_group(manager, org["app"], org["north_office"]) is True
        assert resolver(session).can_edit_group(manager, org["app"], org["south"]) is False


def test_assertions_distinguish_missing_from_forbidden(org, directory) -> None:
    member = directory.user()
    directory.member(member, org["north"], UserGroupRole.USER)

    with session_scope() as session:
        visibility = resolver(session)
        visibility.assert_group_visible(member, org["app"], org["north"])
        with pytest.raises(UnauthorizedError):
            visibility.assert_group_visible(member, org["app"], org["north"], edit=True)
        with pytest.raises(NotFoundError):
            visibility.assert_group_visible(member, org["app"], org["south"])


def test_unknown_app_or_actor_raise_not_found(org) -> None:
    with session_scope() as session:
        with pytest.raises(NotFoundError):
            resolver(session).visible_group_ids(None, org["app"] + 100)
        with pytest.raises(NotFoundError):
            resolver(session).visible_group_ids(org["north_user"] + 100, org["app"])


def test_users_in_group_recursively_with_role(org, directory) -> None:
    admin = directory.user()
    directory.member(admin, org["north"], UserGroupRole.ADMIN)

    with session_scope() as session:
        visibility = resolver(session)
        everyone = visibility.users_in_group_recursively(org["north"])
        admins = visibility.users_in_group_recursively(org["north"], role=UserGroupRole.ADMIN)
        users = visibility.users_in_group_recursively(org["north"], role=UserGroupRole.USER)

    assert everyone == {admin, org["north_user"]}
    assert admins == {admin}
    assert users == {org["north_user"]}
