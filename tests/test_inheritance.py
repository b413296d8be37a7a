from __future__ import annotations

from datetime import datetime, timezone

from authcore.core.database import session_scope
from authcore.models.group import Group
from authcore.models.user import UserType
from authcore.services.directory import DirectoryStore
from authcore.services.inheritance import AppInheritanceProjector


def projector(session) -> AppInheritanceProjector:  # noqa: ANN001
    return AppInheritanceProjector(DirectoryStore(session))


def build_abc(directory) -> tuple[int, int, int]:  # noqa: ANN001
    a = directory.group("A", apps=[1, 2])
    b = directory.group("B", parent=a)
    c = directory.group("C", parent=b, apps=[3])
    return a, b, c


def test_group_with_empty_apps_inherits_from_nearest_ancestor(directory) -> None:
    a, b, c = build_abc(directory)

    with session_scope() as session:
        engine = projector(session)
        assert engine.inherited_apps_for_group(b) == {1, 2}
        assert engine.inherited_apps_for_group(b) == engine.inherited_apps_for_group(a)
        assert engine.inherited_apps_for_group(c) == {3}


def test_root_group_without_apps_inherits_nothing(directory) -> None:
    root = directory.group("Root")
    child = directory.group("Child", parent=root)

    with session_scope() as session:
        assert projector(session).inherited_apps_for_group(child) == set()


def test_soft_deleted_ancestor_is_skipped_not_treated_as_empty_hop(directory) -> None:
    top = directory.group("Top", apps=[7])
    middle = directory.group("Middle", parent=top, apps=[8])
    leaf = directory.group("Leaf", parent=middle)

    with session_scope() as session:
        session.get(Group, middle).deleted_at = datetime.now(timezone.utc)

    with session_scope() as session:
        assert projector(session).inherited_apps_for_group(leaf) == {7}


def test_user_inherits_union_of_membership_groups(directory) -> None:
    _, b, _ = build_abc(directory)
    d = directory.group("D", apps=[4])
    user = directory.user()
    directory.member(user, b)
    directory.member(user, d)

    with session_scope() as session:
        assert projector(session).inherited_apps_for_user(user) == {1, 2, 4}


def test_user_direct_apps_short_circuit_group_inheritance(directory) -> None:
    _, b, _ = build_abc(directory)
    user = directory.user(apps=[9])
    directory.member(user, b)

    with session_scope() as session:
        assert projector(session).inherited_apps_for_user(user) == {9}


def test_user_without_groups_or_apps_resolves_to_empty_set(directory) -> None:
    user = directory.user()

    with session_scope() as session:
        assert projector(session).inherited_apps_for_user(user) == set()


def test_super_admin_inherits_every_app(directory) -> None:
    first = directory.app("PORTAL")
    second = directory.app("REPORTS")
    admin = directory.user(UserType.SUPER_ADMIN)

    with session_scope() as session:
        assert projector(session).inherited_apps_for_user(admin) == {first, second}


def test_group_ids_by_app_follows_inheritance(directory) -> None:
    a, b, c = build_abc(directory)
    other = directory.group("Other", apps=[5])

    with session_scope() as session:
        engine = projector(session)
        assert engine.group_ids_by_app(1) == {a, b}
        assert engine.group_ids_by_app(3) == {c}
        assert engine.group_ids_by_app(5, groups=[a, other]) == {other}
