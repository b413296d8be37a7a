"""Effective-permission cache powered by Upstash Redis with in-memory fallback."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from threading import RLock
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple, cast

import httpx

from authcore.core.config import get_settings

PermissionCacheKey = Tuple[int, int]
"""``(app_id, user_id)``."""

Dependency = Tuple[str, int]
"""``(kind, id)`` where kind is ``user``, ``group`` or ``app``."""

EffectivePermissions = Dict[str, List[str]]


class PermissionCache(Protocol):
    """Contract for caching effective permission sets."""

    def get(self, key: PermissionCacheKey) -> Optional[EffectivePermissions]:
        ...

    def set(
        self,
        key: PermissionCacheKey,
        value: EffectivePermissions,
        *,
        depends_on: Iterable[Dependency],
    ) -> None:
        ...

    def invalidate(self) -> None:
        ...

    def invalidate_dependency(self, kind: str, entity_id: int) -> None:
        ...


@dataclass
class InMemoryPermissionCache(PermissionCache):
    """Thread-safe in-memory cache with dependency-level invalidation."""

    ttl_seconds: Optional[int] = None
    _store: Dict[PermissionCacheKey, Tuple[EffectivePermissions, float]] = field(
        default_factory=dict, init=False, repr=False
    )
    _dependency_index: Dict[Dependency, Set[PermissionCacheKey]] = field(
        default_factory=dict, init=False, repr=False
    )

    def __post_init__(self) -> None:
        self._lock = RLock()

    def get(self, key: PermissionCacheKey) -> Optional[EffectivePermissions]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at and expires_at < time.monotonic():
                self._forget(key)
                return None
            return {name: list(items) for name, items in value.items()}

    def set(
        self,
        key: PermissionCacheKey,
        value: EffectivePermissions,
        *,
        depends_on: Iterable[Dependency],
    ) -> None:
        expires_at = time.monotonic() + self.ttl_seconds if self.ttl_seconds else 0.0
        with self._lock:
            self._store[key] = ({name: list(items) for name, items in value.items()}, expires_at)
            for dependency in depends_on:
                self._dependency_index.setdefault(dependency, set()).add(key)

    def invalidate(self) -> None:
        with self._lock:
            self._store.clear()
            self._dependency_index.clear()

    def invalidate_dependency(self, kind: str, entity_id: int) -> None:
        with self._lock:
            keys = self._dependency_index.pop((kind, int(entity_id)), set())
            for key in keys:
                self._forget(key)

    def _forget(self, key: PermissionCacheKey) -> None:
        self._store.pop(key, None)
        for dependency, keys in list(self._dependency_index.items()):
            keys.discard(key)
            if not keys:
                del self._dependency_index[dependency]

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


class RedisPermissionCache(PermissionCache):
    """Redis-backed cache using Upstash REST API."""

    def __init__(self, *, url: str, token: str, prefix: str, ttl_seconds: int) -> None:
        self._client = httpx.Client(
            base_url=url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=5.0,
        )
        self._ttl_ms = max(ttl_seconds, 1) * 1000
        self._prefix = prefix
        self._registry_key = f"{self._prefix}:dependencies"

    def get(self, key: PermissionCacheKey) -> Optional[EffectivePermissions]:
        result = self._execute("GET", self._entry_key(key))
        if result is None:
            return None
        return cast(EffectivePermissions, json.loads(str(result)))

    def set(
        self,
        key: PermissionCacheKey,
        value: EffectivePermissions,
        *,
        depends_on: Iterable[Dependency],
    ) -> None:
        entry_key = self._entry_key(key)
        self._execute("SET", entry_key, json.dumps(value, sort_keys=True), "PX", str(self._ttl_ms))

        ttl_seconds = str(max(self._ttl_ms // 1000, 1))
        for kind, entity_id in depends_on:
            index_key = self._dependency_key(kind, entity_id)
            self._execute("SADD", index_key, entry_key)
            self._execute("EXPIRE", index_key, ttl_seconds)
            self._execute("SADD", self._registry_key, f"{kind}:{entity_id}")
        self._execute("EXPIRE", self._registry_key, ttl_seconds)

    def invalidate(self) -> None:
        dependencies = cast(Sequence[str], self._execute("SMEMBERS", self._registry_key) or [])
        for dependency in dependencies:
            kind, _, entity_id = dependency.partition(":")
            self.invalidate_dependency(kind, int(entity_id))
        if dependencies:
            self._execute("DEL", self._registry_key)

    def invalidate_dependency(self, kind: str, entity_id: int) -> None:
        index_key = self._dependency_key(kind, entity_id)
        keys = list(cast(Sequence[str], self._execute("SMEMBERS", index_key) or []))
        if keys:
            self._execute("DEL", index_key, *keys)
        else:
            self._execute("DEL", index_key)
        self._execute("SREM", self._registry_key, f"{kind}:{entity_id}")

    def _entry_key(self, key: PermissionCacheKey) -> str:
        app_id, user_id = key
        return f"{self._prefix}:effective:{app_id}:{user_id}"

    def _dependency_key(self, kind: str, entity_id: int) -> str:
        return f"{self._prefix}:dep:{kind}:{entity_id}"

    def _execute(self, *command: str) -> Optional[object]:
        response = self._client.post("/", json=list(command))
        response.raise_for_status()
        payload = response.json()
        return payload.get("result")


_shared_cache: Optional[PermissionCache] = None


def get_permission_cache() -> PermissionCache:
    """Return the process-wide permission cache instance."""

    global _shared_cache
    if _shared_cache is not None:
        return _shared_cache

    settings = get_settings()
    redis_url = settings.redis_url
    redis_token = settings.redis_token

    if redis_url and redis_token:
        _shared_cache = RedisPermissionCache(
            url=redis_url,
            token=redis_token,
            prefix=settings.redis_cache_prefix,
            ttl_seconds=settings.permission_cache_ttl,
        )
    else:
        _shared_cache = InMemoryPermissionCache(ttl_seconds=settings.permission_cache_ttl)

    return _shared_cache
