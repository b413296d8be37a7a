"""Event dispatcher that stores mutation events, runs local subscribers and publishes."""

from __future__ import annotations

import fnmatch
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

from authcore.core.config import get_settings
from authcore.events_engine.config import get_event_engine_config
from authcore.events_engine.publisher import EventPublisher, NullEventPublisher, SnsEventPublisher
from authcore.events_engine.schemas import EventEnvelope
from authcore.models.platform_event import PlatformEvent

_dispatcher: Optional["EventDispatcher"] = None

LOGGER = logging.getLogger("authcore.events_engine.dispatcher")

_OUTBOX_KEY = "authcore.outbound_events"

Subscriber = Callable[["EventDispatcher", Session, EventEnvelope], None]


class EventDispatcher:
    """Coordinates persistence, in-process fan-out and delivery of mutation events.

    Subscribers run synchronously inside the caller's session, so their
    writes commit or roll back together with the mutation that raised the
    event. External delivery is deferred until that session commits.
    """

    def __init__(
        self,
        *,
        publisher: EventPublisher,
        default_source: str,
        subscribers: Optional[Sequence[Tuple[str, Subscriber]]] = None,
    ) -> None:
        self._publisher = publisher
        self._default_source = default_source
        self._subscribers: List[Tuple[str, Subscriber]] = []
        if subscribers is None:
            from authcore.events_engine.subscribers import default_subscribers

            subscribers = default_subscribers()
        for pattern, handler in subscribers:
            self.subscribe(pattern, handler)

    @property
    def publisher(self) -> EventPublisher:
        return self._publisher

    def subscribe(self, pattern: str, handler: Subscriber) -> None:
        """Register ``handler`` for event types matching the glob ``pattern``."""

        self._subscribers.append((pattern, handler))

    def publish_event(
        self,
        session: Session,
        *,
        event_type: str,
        payload: Dict[str, object],
        actor_id: Optional[int] = None,
        source: Optional[str] = None,
        correlation_id: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
        schema_version: str = "v1",
        metadata: Optional[Dict[str, object]] = None,
    ) -> PlatformEvent:
        """Persist an event record, notify subscribers and queue it for delivery."""

        envelope = EventEnvelope(
            event_type=event_type,
            payload=payload,
            actor_id=actor_id,
            source=source or self._default_source,
            correlation_id=correlation_id,
            occurred_at=occurred_at or datetime.now(timezone.utc),
            schema_version=schema_version,
            metadata=metadata or {},
        )

        record = PlatformEvent(
            event_id=str(envelope.event_id),
            event_type=envelope.event_type,
            source=envelope.source,
            occurred_at=envelope.occurred_at,
            actor_id=envelope.actor_id,
            payload=envelope.model_dump(mode="json")["payload"],
            context={
                **envelope.metadata,
                "schema_version": envelope.schema_version,
                "correlation_id": envelope.correlation_id,
            },
        )
        session.add(record)
        session.flush()

        # outbox order: an event precedes the events its subscribers raise
        session.info.setdefault(_OUTBOX_KEY, []).append((self._publisher, envelope))

        for pattern, handler in list(self._subscribers):
            if fnmatch.fnmatchcase(envelope.event_type, pattern):
                handler(self, session, envelope)

        LOGGER.info(
            "events_engine_dispatched",
            extra={
                "event_id": str(envelope.event_id),
                "event_type": envelope.event_type,
                "source": envelope.source,
            },
        )
        return record


@event.listens_for(Session, "after_commit")
def _deliver_after_commit(session: Session) -> None:
    outbox = session.info.pop(_OUTBOX_KEY, None)
    if not outbox:
        return
    for publisher, envelope in outbox:
        try:
            publisher.publish(envelope)
        except Exception:  # noqa: BLE001 - the mutation is already committed
            LOGGER.exception(
                "events_engine_delivery_failed",
                extra={"event_id": str(envelope.event_id), "event_type": envelope.event_type},
            )


@event.listens_for(Session, "after_soft_rollback")
def _discard_after_rollback(session: Session, previous_transaction: SessionTransaction) -> None:
    if previous_transaction.parent is None:
        session.info.pop(_OUTBOX_KEY, None)


def get_event_dispatcher() -> EventDispatcher:
    """Return the singleton event dispatcher for the application."""

    global _dispatcher
    if _dispatcher is not None:
        return _dispatcher

    settings = get_settings()
    config = get_event_engine_config(settings)

    if config.topic_arn:
        publisher: EventPublisher = SnsEventPublisher(topic_arn=config.topic_arn, region_name=config.region_name)
    else:
        publisher = NullEventPublisher()

    _dispatcher = EventDispatcher(publisher=publisher, default_source=config.source)
    return _dispatcher


def set_event_dispatcher(dispatcher: Optional[EventDispatcher]) -> None:
    """Override the cached dispatcher (primarily for tests)."""

    global _dispatcher
    _dispatcher = dispatcher
