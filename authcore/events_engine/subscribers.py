"""In-process reactions to mutation events: removal cascades and cache invalidation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, List, Mapping, Set, Tuple

from sqlalchemy.orm import Session

from authcore.events_engine.schemas import EventEnvelope
from authcore.models.user import UserType
from authcore.services.cache import Dependency
from authcore.services.directory import DirectoryStore, GroupQuery, PermissionQuery, UserGroupQuery
from authcore.services.invalidation import FLUSH_ALL, schedule_invalidations

if TYPE_CHECKING:  # pragma: no cover
    from authcore.events_engine.dispatcher import EventDispatcher, Subscriber

LOGGER = logging.getLogger("authcore.events_engine.subscribers")


def dependencies_for_event(event_type: str, payload: Mapping[str, Any]) -> Set[Dependency]:
    """Cache dependencies touched by a mutation event."""

    collection = event_type.split(".", 1)[0]

    def _id(key: str) -> int | None:
        value = payload.get(key)
        return int(value) if value is not None else None

    if collection == "permissions":
        user_id, group_id, app_id = _id("user_id"), _id("group_id"), _id("app_id")
        if user_id is not None:
            return {("user", user_id)}
        if group_id is not None:
            return {("group", group_id)}
        if app_id is not None:
            return {("app", app_id)}
        return set()
    if collection == "user_groups":
        user_id = _id("user_id")
        return {("user", user_id)} if user_id is not None else set()
    if collection in ("groups", "users"):
        entity_id = _id("id")
        kind = "group" if collection == "groups" else "user"
        return {(kind, entity_id)} if entity_id is not None else set()
    if collection == "apps":
        if event_type == "apps.updated" and _id("id") is not None:
            return {("app", _id("id"))}
        return {FLUSH_ALL}
    return set()


def schedule_cache_invalidation(dispatcher: "EventDispatcher", session: Session, envelope: EventEnvelope) -> None:
    dependencies = dependencies_for_event(envelope.event_type, envelope.payload)
    if dependencies:
        schedule_invalidations(session, dependencies)


def cascade_group_removed(dispatcher: "EventDispatcher", session: Session, envelope: EventEnvelope) -> None:
    """Remove child groups, memberships and group-scoped permissions."""

    group_id = int(envelope.payload["id"])
    store = DirectoryStore(session)

    for child in store.list_groups(GroupQuery(parent_id=group_id)):
        child.mark_deleted(envelope.actor_id)
        session.flush()
        dispatcher.publish_event(
            session,
            event_type="groups.removed",
            actor_id=envelope.actor_id,
            payload={"id": child.id, "parent_id": child.parent_id},
            correlation_id=str(envelope.event_id),
        )

    for membership in store.find_user_groups(UserGroupQuery(group_ids=[group_id], live_only=False)):
        membership.mark_deleted(envelope.actor_id)
        session.flush()
        dispatcher.publish_event(
            session,
            event_type="user_groups.removed",
            actor_id=envelope.actor_id,
            payload={
                "id": membership.id,
                "user_id": membership.user_id,
                "group_id": membership.group_id,
                "role": membership.role.value,
            },
            correlation_id=str(envelope.event_id),
        )

    removed = _remove_permissions(store, PermissionQuery(group_id=group_id), envelope.actor_id)
    LOGGER.info(
        "group_removal_cascaded",
        extra={"group_id": group_id, "permissions_removed": removed},
    )


def cascade_user_removed(dispatcher: "EventDispatcher", session: Session, envelope: EventEnvelope) -> None:
    """Remove the user's memberships and user-scoped permissions."""

    user_id = int(envelope.payload["id"])
    store = DirectoryStore(session)

    memberships = store.find_user_groups(UserGroupQuery(user_ids=[user_id], live_only=False))
    for membership in memberships:
        membership.mark_deleted(envelope.actor_id)
    removed = _remove_permissions(store, PermissionQuery(user_id=user_id), envelope.actor_id)
    session.flush()
    LOGGER.info(
        "user_removal_cascaded",
        extra={"user_id": user_id, "memberships_removed": len(memberships), "permissions_removed": removed},
    )


def remove_orphaned_admin(dispatcher: "EventDispatcher", session: Session, envelope: EventEnvelope) -> None:
    """An ADMIN left without memberships and without direct apps is removed."""

    user_id = envelope.payload.get("user_id")
    if user_id is None:
        return
    store = DirectoryStore(session)
    user = store.get_user(int(user_id))
    if user is None or user.type != UserType.ADMIN or user.apps_ids:
        return
    if store.find_user_groups(UserGroupQuery(user_ids=[user.id])):
        return

    user.mark_deleted(envelope.actor_id)
    session.flush()
    LOGGER.info("orphaned_admin_removed", extra={"user_id": user.id})
    dispatcher.publish_event(
        session,
        event_type="users.removed",
        actor_id=envelope.actor_id,
        payload={"id": user.id},
        correlation_id=str(envelope.event_id),
    )


def _remove_permissions(store: DirectoryStore, query: PermissionQuery, actor_id: int | None) -> int:
    permissions = store.find_permissions(query)
    for permission in permissions:
        permission.mark_deleted(actor_id)
    store.session.flush()
    return len(permissions)


def default_subscribers() -> List[Tuple[str, "Subscriber"]]:
    return [
        ("*", schedule_cache_invalidation),
        ("groups.removed", cascade_group_removed),
        ("users.removed", cascade_user_removed),
        ("user_groups.removed", remove_orphaned_admin),
    ]
