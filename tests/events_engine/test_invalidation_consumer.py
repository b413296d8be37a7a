from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest

from authcore.core.config import get_settings
from authcore.events_engine.consumers.invalidation import (
    InvalidationSQSEventConsumer,
    build_invalidation_consumer,
)
from authcore.events_engine.schemas import EventEnvelope
from authcore.services.cache import get_permission_cache


class FakeSQS:
    def __init__(self, bodies: List[str]) -> None:
        self._messages = [
            {"ReceiptHandle": f"handle-{index}", "Body": body} for index, body in enumerate(bodies)
        ]
        self.deleted: List[str] = []

    def receive_message(self, **kwargs: Any) -> Dict[str, Any]:
        messages, self._messages = self._messages, []
        return {"Messages": messages}

    def delete_message(self, *, QueueUrl: str, ReceiptHandle: str) -> None:  # noqa: N803
        self.deleted.append(ReceiptHandle)


def _sns_body(event_type: str, payload: Dict[str, Any]) -> str:
    envelope = EventEnvelope(event_type=event_type, source="authcore-other", payload=payload)
    return json.dumps({"Message": json.dumps(envelope.model_dump(mode="json"))})


def test_remote_event_invalidates_dependent_entries() -> None:
    cache = get_permission_cache()
    cache.set((1, 7), {"features": ["*"], "accesses": []}, depends_on=[("user", 7)])
    cache.set((1, 8), {"features": ["*"], "accesses": []}, depends_on=[("user", 8)])

    sqs = FakeSQS([_sns_body("users.updated", {"id": 7})])
    consumer = InvalidationSQSEventConsumer(queue_url="https://sqs.local/queue", client=sqs)

    assert consumer.poll_once() == 1
    assert sqs.deleted == ["handle-0"]
    assert cache.get((1, 7)) is None
    assert cache.get((1, 8)) is not None


def test_app_removal_flushes_everything() -> None:
    cache = get_permission_cache()
    cache.set((1, 7), {"features": ["*"], "accesses": []}, depends_on=[("user", 7)])

    consumer = InvalidationSQSEventConsumer(
        queue_url="https://sqs.local/queue", client=FakeSQS([_sns_body("apps.removed", {"id": 1})])
    )
    consumer.poll_once()

    assert cache.get((1, 7)) is None


def test_malformed_message_is_left_on_the_queue() -> None:
    sqs = FakeSQS(["not json", _sns_body("groups.updated", {"id": 2})])
    consumer = InvalidationSQSEventConsumer(queue_url="https://sqs.local/queue", client=sqs)

    assert consumer.poll_once() == 1
    assert sqs.deleted == ["handle-1"]


def test_builder_requires_queue_url() -> None:
    settings = get_settings().model_copy(update={"event_queue_url": None})
    with pytest.raises(RuntimeError):
        build_invalidation_consumer(settings)
