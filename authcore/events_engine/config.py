"""Configuration helpers for the events engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from authcore.core.config import AuthCoreSettings, get_settings


@dataclass
class EventEngineConfig:
    """Resolved configuration values for the events engine."""

    topic_arn: Optional[str]
    queue_url: Optional[str]
    source: str
    region_name: str


def get_event_engine_config(settings: Optional[AuthCoreSettings] = None) -> EventEngineConfig:
    """Materialize events engine configuration from application settings."""

    settings = settings or get_settings()
    return EventEngineConfig(
        topic_arn=settings.event_topic_arn,
        queue_url=settings.event_queue_url,
        source=settings.event_source,
        region_name=settings.aws_region,
    )
