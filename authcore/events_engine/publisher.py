"""Publishers responsible for delivering events to external transports."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from authcore.events_engine.schemas import EventEnvelope

LOGGER = logging.getLogger("authcore.events_engine.publisher")


class EventPublisher(Protocol):
    """Transport abstraction for event delivery."""

    def publish(self, envelope: EventEnvelope) -> None:
        ...


class NullEventPublisher(EventPublisher):
    """No-op publisher used when no topic is configured."""

    def publish(self, envelope: EventEnvelope) -> None:  # noqa: D401
        LOGGER.debug(
            "events_engine_publish_skipped",
            extra={"event_id": str(envelope.event_id), "event_type": envelope.event_type},
        )


class RecordingEventPublisher(EventPublisher):
    """Keeps published envelopes in memory."""

    def __init__(self) -> None:
        self.envelopes: List[EventEnvelope] = []

    def publish(self, envelope: EventEnvelope) -> None:
        self.envelopes.append(envelope)

    def event_types(self) -> List[str]:
        return [envelope.event_type for envelope in self.envelopes]


def message_attributes(envelope: EventEnvelope) -> Dict[str, Dict[str, str]]:
    """SNS attributes that subscription filter policies can match on.

    Cache-invalidation queues subscribe by ``collection``; ``actor_id`` is
    only present when the mutation had an acting user.
    """

    attributes = {
        "event_type": {"DataType": "String", "StringValue": envelope.event_type},
        "collection": {"DataType": "String", "StringValue": envelope.collection},
        "action": {"DataType": "String", "StringValue": envelope.action},
        "source": {"DataType": "String", "StringValue": envelope.source},
    }
    if envelope.actor_id is not None:
        attributes["actor_id"] = {"DataType": "Number", "StringValue": str(envelope.actor_id)}
    return attributes


class SnsEventPublisher(EventPublisher):
    """Publishes mutation events to an AWS SNS topic."""

    def __init__(self, *, topic_arn: str, region_name: str, client: Optional[Any] = None) -> None:
        self._topic_arn = topic_arn
        self._client = client or boto3.client("sns", region_name=region_name)

    def publish(self, envelope: EventEnvelope) -> None:
        message = json.dumps(envelope.model_dump(mode="json"))
        try:
            self._client.publish(
                TopicArn=self._topic_arn,
                Message=message,
                Subject=envelope.event_type,
                MessageAttributes=message_attributes(envelope),
            )
        except (BotoCoreError, ClientError):
            LOGGER.exception(
                "events_engine_publish_failed",
                extra={
                    "event_id": str(envelope.event_id),
                    "event_type": envelope.event_type,
                    "topic_arn": self._topic_arn,
                },
            )
            raise
        LOGGER.debug(
            "events_engine_published",
            extra={"event_id": str(envelope.event_id), "collection": envelope.collection},
        )
