"""Dependency injection helpers for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from authcore.core.database import get_session
from authcore.events_engine import get_event_dispatcher
from authcore.services.apps import AppService
from authcore.services.cache import get_permission_cache
from authcore.services.directory import DirectoryStore
from authcore.services.groups import GroupService
from authcore.services.permissions import PermissionService
from authcore.services.users import UserService
from authcore.services.views import UserViewResolver
from authcore.services.visibility import VisibilityResolver


@dataclass(frozen=True)
class RequestContext:
    """Acting principal and app; token parsing happens upstream of this service."""

    actor_id: Optional[int]
    app_id: Optional[int]


def get_db_session() -> Session:
    yield from get_session()


def get_request_context(
    x_actor_id: Optional[int] = Header(default=None, alias="X-Actor-Id"),
    x_app_id: Optional[int] = Header(default=None, alias="X-App-Id"),
) -> RequestContext:
    return RequestContext(actor_id=x_actor_id, app_id=x_app_id)


def get_store(session: Session = Depends(get_db_session)) -> DirectoryStore:
    return DirectoryStore(session)


def get_visibility_resolver(store: DirectoryStore = Depends(get_store)) -> VisibilityResolver:
    return VisibilityResolver(store)


def get_app_service(store: DirectoryStore = Depends(get_store)) -> AppService:
    return AppService(store.session, dispatcher=get_event_dispatcher(), store=store)


def get_group_service(
    store: DirectoryStore = Depends(get_store),
    visibility: VisibilityResolver = Depends(get_visibility_resolver),
) -> GroupService:
    return GroupService(store.session, dispatcher=get_event_dispatcher(), store=store, visibility=visibility)


def get_user_service(
    store: DirectoryStore = Depends(get_store),
    visibility: VisibilityResolver = Depends(get_visibility_resolver),
) -> UserService:
    return UserService(store.session, dispatcher=get_event_dispatcher(), store=store, visibility=visibility)


def get_permission_service(
    store: DirectoryStore = Depends(get_store),
    visibility: VisibilityResolver = Depends(get_visibility_resolver),
) -> PermissionService:
    return PermissionService(
        store.session,
        cache=get_permission_cache(),
        dispatcher=get_event_dispatcher(),
        store=store,
        visibility=visibility,
    )


def get_user_view_resolver(
    store: DirectoryStore = Depends(get_store),
    permissions: PermissionService = Depends(get_permission_service),
) -> UserViewResolver:
    return UserViewResolver(store.session, store=store, permissions=permissions)
