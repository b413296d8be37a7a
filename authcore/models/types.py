"""Custom SQLAlchemy column types for portability."""

from __future__ import annotations

from typing import Any, Iterable, List, Optional

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON, TypeDecorator


class JSONType(TypeDecorator):
    """JSON type that uses JSONB when supported."""

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return super().load_dialect_impl(dialect)


def _dedupe(values: Iterable[Any]) -> List[Any]:
    seen: set = set()
    result: List[Any] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


class IdList(JSONType):
    """JSON array of integer ids, deduplicated in insertion order."""

    cache_ok = True

    def process_bind_param(self, value: Optional[Iterable[Any]], dialect) -> Optional[List[int]]:
        if value is None:
            return None
        return _dedupe(int(item) for item in value)

    def process_result_value(self, value: Any, dialect) -> List[int]:
        if not value:
            return []
        return [int(item) for item in value]


class StringList(JSONType):
    """JSON array of strings, deduplicated in insertion order."""

    cache_ok = True

    def process_bind_param(self, value: Optional[Iterable[Any]], dialect) -> Optional[List[str]]:
        if value is None:
            return None
        return _dedupe(str(item) for item in value)

    def process_result_value(self, value: Any, dialect) -> List[str]:
        if not value:
            return []
        return [str(item) for item in value]
