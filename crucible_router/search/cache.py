from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Protocol

from pydantic import ValidationError

from crucible_router.search.models import SearchQuery, SearchResult

_redis_from_url: Any | None

try:
    from redis.asyncio import from_url as _redis_from_url
except ImportError:  # pragma: no cover - optional dependency.
    _redis_from_url = None

logger = logging.getLogger("crucible_router")

CACHE_KEY_PREFIX = "crucible:search"


class SearchCache(Protocol):
    async def get(self, key: str) -> SearchResult | None: ...

    async def set(self, key: str, value: SearchResult) -> None: ...


class RedisClientFactory(Protocol):
    def __call__(self, redis_url: str) -> Any: ...


def canonical_query(query: SearchQuery) -> str:
    return json.dumps(
        query.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
    )


def build_search_cache_key(query: SearchQuery) -> str:
    fingerprint = hashlib.sha256(canonical_query(query).encode("utf-8")).hexdigest()
    return f"{CACHE_KEY_PREFIX}|sha256:{fingerprint}"


class InMemorySearchCache:
    """Process-local cache; ``ttl_seconds=None`` keeps entries for the process lifetime."""

    def __init__(
        self,
        *,
        ttl_seconds: float | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_entries = max(1, int(max_entries)) if max_entries else None
        self._clock = clock
        self._lock = asyncio.Lock()
        self._entries: OrderedDict[str, tuple[float | None, SearchResult]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> SearchResult | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at is not None and self._clock() >= expires_at:
                self._entries.pop(key, None)
                return None
            return value

    async def set(self, key: str, value: SearchResult) -> None:
        expires_at = (
            self._clock() + self._ttl_seconds if self._ttl_seconds is not None else None
        )
        async with self._lock:
            # Last write wins for concurrent misses on the same key.
            self._entries[key] = (expires_at, value)
            self._entries.move_to_end(key)
            if self._max_entries is not None:
                while len(self._entries) > self._max_entries:
                    self._entries.popitem(last=False)


class RedisSearchCache:
    def __init__(self, redis_client: Any, *, ttl_seconds: float | None = None) -> None:
        self._redis = redis_client
        self._ttl_seconds = ttl_seconds

    async def get(self, key: str) -> SearchResult | None:
        raw = await self._redis.get(key)
        if raw is None:
            return None
        try:
            return SearchResult.model_validate_json(raw)
        except ValidationError as exc:
            logger.debug("search_cache_decode_failed key=%s error=%s", key, exc)
            return None

    async def set(self, key: str, value: SearchResult) -> None:
        expiry = max(1, int(self._ttl_seconds)) if self._ttl_seconds is not None else None
        await self._redis.set(key, value.model_dump_json(), ex=expiry)


def build_redis_client(redis_url: str) -> Any:
    if _redis_from_url is None:  # pragma: no cover - covered by fallback tests.
        msg = "redis package is not installed"
        raise RuntimeError(msg)
    return _redis_from_url(redis_url, decode_responses=False)


def build_search_cache(
    *,
    redis_url: str | None = None,
    ttl_seconds: float | None = None,
    max_entries: int | None = None,
    create_redis_client: RedisClientFactory | None = None,
) -> SearchCache:
    if not redis_url:
        return InMemorySearchCache(ttl_seconds=ttl_seconds, max_entries=max_entries)

    factory = create_redis_client or build_redis_client
    try:
        return RedisSearchCache(factory(redis_url), ttl_seconds=ttl_seconds)
    except RuntimeError as exc:
        logger.warning("search_cache_redis_unavailable reason=%s fallback=in_memory", exc)
        return InMemorySearchCache(ttl_seconds=ttl_seconds, max_entries=max_entries)
