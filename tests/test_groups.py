from __future__ import annotations

import pytest
from sqlalchemy import select

from authcore.core.database import session_scope
from authcore.models.group import Group
from authcore.models.permission import Permission
from authcore.models.user import User, UserType
from authcore.models.user_group import UserGroup, UserGroupRole
from authcore.schemas.group import CompanyUpsert, GroupCreate, GroupUpdate
from authcore.services.errors import BadRequestError, UnauthorizedError, ValidationError
from authcore.services.groups import GroupService
from authcore.services.invalidation import pending_invalidations


def test_reparenting_into_own_descendant_fails_and_leaves_tree_unchanged(directory) -> None:
    root = directory.group("Root")
    child = directory.group("Child", parent=root)
    grandchild = directory.group("Grandchild", parent=child)

    with pytest.raises(ValidationError):
        with session_scope() as session:
            GroupService(session).update_group(root, GroupUpdate(parent_id=grandchild))

    with session_scope() as session:
        parents = {group.id: group.parent_id for group in session.scalars(select(Group))}
    assert parents == {root: None, child: root, grandchild: child}


def test_create_requires_name_or_company_code() -> None:
    with session_scope() as session:
        with pytest.raises(ValidationError):
            GroupService(session).create_group(GroupCreate(name="  "))


def test_actor_cannot_create_orphan_group_without_apps(directory) -> None:
    app = directory.app("PORTAL")
    admin = directory.user(UserType.SUPER_ADMIN)

    with session_scope() as session:
        with pytest.raises(BadRequestError):
            GroupService(session).create_group(GroupCreate(name="Lonely"), actor_id=admin, app_id=app)


def test_create_under_parent_requires_edit_rights(directory) -> None:
    app = directory.app("PORTAL")
    parent = directory.group("Parent", apps=[app])
    reader = directory.user(UserType.ADMIN)
    directory.member(reader, parent, UserGroupRole.USER)
    manager = directory.user(UserType.ADMIN)
    directory.member(manager, parent, UserGroupRole.ADMIN)

    with session_scope() as session:
        service = GroupService(session)
        with pytest.raises(UnauthorizedError):
            service.create_group(GroupCreate(name="Child", parent_id=parent), actor_id=reader, app_id=app)
        group = service.create_group(GroupCreate(name="Child", parent_id=parent), actor_id=manager, app_id=app)
        assert group.parent_id == parent


def test_child_apps_must_be_subset_of_parent_inherited_apps(directory) -> None:
    portal = directory.app("PORTAL")
    other = directory.app("OTHER")
    parent = directory.group("Parent", apps=[portal])

    with session_scope() as session:
        service = GroupService(session)
        with pytest.raises(ValidationError):
            service.create_group(GroupCreate(name="Child", parent_id=parent, apps_ids=[other]))
        child = service.create_group(GroupCreate(name="Child", parent_id=parent, apps_ids=[portal]))
        assert child.apps_ids == [portal]


def test_company_code_must_be_unique(directory) -> None:
    directory.group("Company: 100", company_code="100")

    with session_scope() as session:
        with pytest.raises(ValidationError):
            GroupService(session).create_group(GroupCreate(name="Dup", company_code="100"))


def test_find_or_create_company_group_is_idempotent() -> None:
    with session_scope() as session:
        service = GroupService(session)
        created, was_created = service.find_or_create_company_group(CompanyUpsert(company_code="555"))
        updated, was_created_again = service.find_or_create_company_group(
            CompanyUpsert(company_code="555", company_email="INFO@Example.com")
        )

        assert was_created is True
        assert was_created_again is False
        assert created.id == updated.id
        assert updated.name == "Company: 555"
        assert updated.company_email == "info@example.com"


def test_company_code_is_reusable_after_company_removal(directory) -> None:
    company = directory.group("Company: 123456789", company_code="123456789")

    with session_scope() as session:
        GroupService(session).remove_group(company)

    with session_scope() as session:
        revived, created = GroupService(session).find_or_create_company_group(
            CompanyUpsert(company_code="123456789", name="Reopened")
        )
        assert created is True
        assert revived.id != company

    with session_scope() as session:
        rows = session.scalars(select(Group).where(Group.company_code == "123456789")).all()
        assert sorted((row.name, row.is_deleted) for row in rows) == [
            ("Company: 123456789", True),
            ("Reopened", False),
        ]


def test_conflicting_flush_rolls_back_the_session() -> None:
    with session_scope() as session:
        session.add(Group(name="Pending", company_code="77"))
        with pytest.raises(ValidationError):
            GroupService(session).create_group(GroupCreate(company_code="77"))
        assert not session.new
        assert pending_invalidations(session) == set()

    with session_scope() as session:
        assert session.scalars(select(Group).where(Group.company_code == "77")).all() == []


def test_toggle_app_on_group_reports_change_once(directory) -> None:
    group = directory.group("G")

    with session_scope() as session:
        service = GroupService(session)
        assert service.toggle_app_on_group(group, 5) is True
        assert service.toggle_app_on_group(group, 5) is False
        assert service.toggle_app_on_group(group, 5, append=False) is True


def test_remove_group_cascades_to_children_memberships_and_permissions(directory) -> None:
    app = directory.app("PORTAL")
    root = directory.group("Root", apps=[app])
    child = directory.group("Child", parent=root)
    user = directory.user(apps=[app])
    directory.member(user, child)
    directory.permission(app, group=child, accesses=["X"])

    with session_scope() as session:
        GroupService(session).remove_group(root)

    with session_scope() as session:
        assert all(group.is_deleted for group in session.scalars(select(Group)))
        assert all(edge.is_deleted for edge in session.scalars(select(UserGroup)))
        assert all(record.is_deleted for record in session.scalars(select(Permission)))
        assert session.get(User, user).is_deleted is False


def test_remove_group_emits_removal_events_for_subtree(directory, recording_dispatcher) -> None:
    root = directory.group("Root")
    child = directory.group("Child", parent=root)
    user = directory.user()
    directory.member(user, child)

    with session_scope() as session:
        GroupService(session).remove_group(root)

    assert recording_dispatcher.publisher.event_types() == [
        "groups.removed",
        "groups.removed",
        "user_groups.removed",
    ]


def test_orphaned_admin_is_removed_with_last_membership(directory) -> None:
    group = directory.group("G")
    admin = directory.user(UserType.ADMIN)
    directory.member(admin, group, UserGroupRole.ADMIN)

    with session_scope() as session:
        GroupService(session).remove_group(group)

    with session_scope() as session:
        assert session.get(User, admin).is_deleted is True


def test_remove_with_move_relocates_memberships(directory) -> None:
    app = directory.app("PORTAL")
    source = directory.group("Source", apps=[app])
    target = directory.group("Target", apps=[app])
    moved = directory.user()
    directory.member(moved, source)
    already_there = directory.user()
    directory.member(already_there, source)
    directory.member(already_there, target)

    with session_scope() as session:
        GroupService(session).remove_group(source, move_to_group=target)

    with session_scope() as session:
        live = session.scalars(select(UserGroup).where(UserGroup.deleted_at.is_(None))).all()
        assert sorted((edge.user_id, edge.group_id) for edge in live) == [(moved, target), (already_there, target)]


def test_removing_company_only_detaches_acting_app(directory) -> None:
    portal = directory.app("PORTAL")
    other = directory.app("OTHER")
    company = directory.group("Company: 9", apps=[portal, other], company_code="9")

    with session_scope() as session:
        group = GroupService(session).remove_group(company, app_id=portal)
        assert group.is_deleted is False
        assert group.apps_ids == [other]
