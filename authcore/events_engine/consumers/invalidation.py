"""Cache invalidation driven by mutation events from other service instances."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from authcore.core.config import AuthCoreSettings, get_settings
from authcore.events_engine.consumers.base import SQSEventConsumer
from authcore.events_engine.schemas import EventEnvelope
from authcore.events_engine.subscribers import dependencies_for_event
from authcore.services.invalidation import apply_invalidations

LOGGER = logging.getLogger("authcore.events_engine.consumers.invalidation")


def handle_invalidation_message(payload: Dict[str, Any]) -> None:
    envelope = EventEnvelope.model_validate(payload)
    dependencies = dependencies_for_event(envelope.event_type, envelope.payload)
    apply_invalidations(dependencies)
    LOGGER.info(
        "remote_event_invalidated",
        extra={
            "event_id": str(envelope.event_id),
            "event_type": envelope.event_type,
            "dependencies": len(dependencies),
        },
    )


class InvalidationSQSEventConsumer(SQSEventConsumer):
    """SQS consumer that keeps the local permission cache coherent."""

    def __init__(
        self,
        *,
        queue_url: str,
        region_name: str | None = None,
        wait_time_seconds: int = 20,
        visibility_timeout: int | None = None,
        max_messages: int = 10,
        client: Any = None,
    ) -> None:
        super().__init__(
            queue_url=queue_url,
            handler=handle_invalidation_message,
            region_name=region_name,
            wait_time_seconds=wait_time_seconds,
            visibility_timeout=visibility_timeout,
            max_messages=max_messages,
            client=client,
        )


def build_invalidation_consumer(settings: Optional[AuthCoreSettings] = None) -> InvalidationSQSEventConsumer:
    """Construct the consumer from ``AUTHCORE_EVENT_QUEUE_URL`` and friends."""

    settings = settings or get_settings()
    if not settings.event_queue_url:
        raise RuntimeError("AUTHCORE_EVENT_QUEUE_URL is not configured")
    return InvalidationSQSEventConsumer(queue_url=settings.event_queue_url, region_name=settings.aws_region)
