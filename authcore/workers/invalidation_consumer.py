"""Runs the cache invalidation consumer as a standalone worker."""

from __future__ import annotations

from authcore.core.config import get_settings
from authcore.core.logging import configure_logging
from authcore.events_engine.consumers.invalidation import build_invalidation_consumer


def main() -> None:
    settings = get_settings()
    configure_logging(settings)
    consumer = build_invalidation_consumer(settings)
    consumer.run_forever()


if __name__ == "__main__":
    main()
