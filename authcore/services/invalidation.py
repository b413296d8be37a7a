"""Invalidate-after-commit bookkeeping for the effective-permission cache.

Writers schedule the dependencies they touched on the SQLAlchemy session.
Nothing reaches the cache until the outermost transaction commits; a
rollback discards the schedule.
"""

from __future__ import annotations

import logging
from typing import Iterable, Set, Tuple

from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

from authcore.services import cache as cache_module
from authcore.services.cache import Dependency

LOGGER = logging.getLogger("authcore.services.invalidation")

_PENDING_KEY = "authcore.pending_invalidations"
FLUSH_ALL: Dependency = ("*", 0)


def _pending(session: Session) -> Set[Dependency]:
    return session.info.setdefault(_PENDING_KEY, set())


def schedule_invalidation(session: Session, kind: str, entity_id: int) -> None:
    """Queue ``(kind, entity_id)`` for invalidation once ``session`` commits."""

    _pending(session).add((kind, int(entity_id)))


def schedule_invalidations(session: Session, dependencies: Iterable[Tuple[str, int]]) -> None:
    for kind, entity_id in dependencies:
        schedule_invalidation(session, kind, entity_id)


def pending_invalidations(session: Session) -> Set[Dependency]:
    return set(session.info.get(_PENDING_KEY, set()))


def apply_invalidations(dependencies: Iterable[Dependency]) -> None:
    """Push dependencies to the process-wide cache immediately."""

    dependencies = set(dependencies)
    if not dependencies:
        return
    cache = cache_module.get_permission_cache()
    if FLUSH_ALL in dependencies:
        cache.invalidate()
        LOGGER.info("permission_cache_flushed", extra={"reason": "full_flush"})
        return
    for kind, entity_id in sorted(dependencies):
        cache.invalidate_dependency(kind, entity_id)
    LOGGER.debug(
        "permission_cache_invalidated",
        extra={"dependencies": [f"{kind}:{entity_id}" for kind, entity_id in sorted(dependencies)]},
    )


@event.listens_for(Session, "after_commit")
def _flush_after_commit(session: Session) -> None:
    dependencies = session.info.pop(_PENDING_KEY, None)
    if dependencies:
        apply_invalidations(dependencies)


@event.listens_for(Session, "after_soft_rollback")
def _discard_after_rollback(session: Session, previous_transaction: SessionTransaction) -> None:
    if previous_transaction.parent is None:
        discarded = session.info.pop(_PENDING_KEY, None)
        if discarded:
            LOGGER.debug("permission_cache_invalidation_discarded", extra={"count": len(discarded)})
