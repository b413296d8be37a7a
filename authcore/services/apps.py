"""App registry service."""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from authcore.events_engine import EventDispatcher, get_event_dispatcher
from authcore.models.app import App, AppType
from authcore.schemas.app import AppCreate, AppUpdate
from authcore.services.directory import DirectoryStore
from authcore.services.errors import NotFoundError, ValidationError
from authcore.services.inheritance import AppInheritanceProjector


class AppService:
    """Registers apps and answers which apps an actor may list."""

    def __init__(
        self,
        session: Session,
        *,
        dispatcher: Optional[EventDispatcher] = None,
        store: Optional[DirectoryStore] = None,
    ) -> None:
        self._session = session
        self._store = store or DirectoryStore(session)
        self._projector = AppInheritanceProjector(self._store)
        self._dispatcher = dispatcher or get_event_dispatcher()
        self._logger = logging.getLogger("authcore.services.apps")

    def create_app(self, payload: AppCreate, *, actor_id: Optional[int] = None) -> App:
        if self._store.get_app_by_type(payload.type) is not None:
            raise ValidationError(f"Type '{payload.type}' is not available.", {"type": payload.type})

        app = App(
            name=payload.name,
            type=payload.type,
            url=payload.url,
            settings=payload.settings,
            created_by=actor_id,
        )
        self._session.add(app)
        try:
            self._session.flush()
        except IntegrityError as exc:
            self._session.rollback()
            raise ValidationError(f"Type '{payload.type}' is not available.", {"type": payload.type}) from exc

        self._publish("apps.created", app, actor_id)
        self._logger.info("app_created", extra={"app_id": app.id, "type": app.type, "actor_id": actor_id})
        return app

    def update_app(self, app_id: int, payload: AppUpdate, *, actor_id: Optional[int] = None) -> App:
        app = self.get_app(app_id)
        updates = payload.model_dump(exclude_unset=True)
        for key in ("name", "url"):
            if key in updates and updates[key] is not None:
                setattr(app, key, updates[key])
        if updates.get("settings") is not None:
            app.settings = updates["settings"]
        app.updated_by = actor_id
        self._session.flush()

        self._publish("apps.updated", app, actor_id)
        self._logger.info("app_updated", extra={"app_id": app.id, "actor_id": actor_id})
        return app

    def remove_app(self, app_id: int, *, actor_id: Optional[int] = None) -> App:
        app = self.get_app(app_id)
        app.mark_deleted(actor_id)
        self._session.flush()
        self._publish("apps.removed", app, actor_id)
        self._logger.info("app_removed", extra={"app_id": app.id, "actor_id": actor_id})
        return app

    def ensure_reserved_apps(self) -> List[App]:
        """Register the `ADMIN` and `USERS` apps when they are missing."""

        apps = []
        for app_type in (AppType.ADMIN, AppType.USERS):
            app = self._store.get_app_by_type(app_type.value)
            if app is None:
                app = self.create_app(AppCreate(name=app_type.value.title(), type=app_type.value))
            apps.append(app)
        return apps

    def get_app(self, app_id: int) -> App:
        app = self._store.get_app(app_id)
        if app is None:
            raise NotFoundError("App not found", {"app_id": app_id})
        return app

    def visible_apps(self, actor_id: Optional[int] = None, *, group_id: Optional[int] = None) -> List[App]:
        """Apps other than ``USERS``, narrowed to a group's or the actor's inherited apps."""

        apps = [app for app in self._store.list_apps() if app.type != AppType.USERS.value]
        if group_id is not None:
            allowed = self._projector.inherited_apps_for_group(group_id)
        elif actor_id is not None:
            allowed = self._projector.inherited_apps_for_user(actor_id)
        else:
            return apps
        return [app for app in apps if app.id in allowed]

    def _publish(self, event_type: str, app: App, actor_id: Optional[int]) -> None:
        self._dispatcher.publish_event(
            self._session,
            event_type=event_type,
            actor_id=actor_id,
            payload={"id": app.id, "type": app.type},
        )
