from __future__ import annotations

import pytest
from sqlalchemy import select

from authcore.core.database import session_scope
from authcore.events_engine.dispatcher import EventDispatcher
from authcore.events_engine.publisher import RecordingEventPublisher
from authcore.models.platform_event import PlatformEvent


def test_dispatcher_persists_and_publishes_after_commit() -> None:
    publisher = RecordingEventPublisher()
    dispatcher = EventDispatcher(publisher=publisher, default_source="test-service", subscribers=[])

    with session_scope() as session:
        dispatcher.publish_event(
            session,
            event_type="groups.created",
            payload={"id": 12, "parent_id": None},
            actor_id=3,
            metadata={"origin": "unit-test"},
        )

        records = session.execute(select(PlatformEvent)).scalars().all()
        assert len(records) == 1
        record = records[0]
        assert record.event_type == "groups.created"
        assert record.payload["id"] == 12
        assert record.actor_id == 3
        assert record.context["origin"] == "unit-test"
        assert publisher.envelopes == []

    assert publisher.event_types() == ["groups.created"]
    assert publisher.envelopes[0].source == "test-service"


def test_rolled_back_events_are_not_delivered() -> None:
    publisher = RecordingEventPublisher()
    dispatcher = EventDispatcher(publisher=publisher, default_source="test-service", subscribers=[])

    with pytest.raises(RuntimeError):
        with session_scope() as session:
            dispatcher.publish_event(session, event_type="users.removed", payload={"id": 1})
            raise RuntimeError("abort")

    assert publisher.envelopes == []
    with session_scope() as session:
        assert session.execute(select(PlatformEvent)).scalars().all() == []


def test_subscribers_match_by_glob_and_raise_follow_up_events() -> None:
    publisher = RecordingEventPublisher()
    seen = []

    def on_group_event(dispatcher, session, envelope):  # noqa: ANN001
        seen.append(envelope.event_type)
        if envelope.event_type == "groups.removed":
            dispatcher.publish_event(
                session,
                event_type="user_groups.removed",
                payload={"user_id": 5, "group_id": envelope.payload["id"]},
                correlation_id=str(envelope.event_id),
            )

    dispatcher = EventDispatcher(
        publisher=publisher,
        default_source="test-service",
        subscribers=[("groups.*", on_group_event)],
    )

    with session_scope() as session:
        dispatcher.publish_event(session, event_type="users.updated", payload={"id": 5})
        dispatcher.publish_event(session, event_type="groups.removed", payload={"id": 9})

    assert seen == ["groups.removed"]
    assert publisher.event_types() == ["users.updated", "groups.removed", "user_groups.removed"]
    cause, follow_up = publisher.envelopes[1], publisher.envelopes[2]
    assert follow_up.correlation_id == str(cause.event_id)


def test_delivery_failure_does_not_break_commit() -> None:
    class FailingPublisher:
        def publish(self, envelope):  # noqa: ANN001
            raise ConnectionError("topic unreachable")

    dispatcher = EventDispatcher(publisher=FailingPublisher(), default_source="test-service", subscribers=[])

    with session_scope() as session:
        dispatcher.publish_event(session, event_type="apps.created", payload={"id": 1})

    with session_scope() as session:
        assert len(session.execute(select(PlatformEvent)).scalars().all()) == 1
