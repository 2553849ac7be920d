from __future__ import annotations

import logging
from dataclasses import dataclass

from crucible_router.search.cache import (
    InMemorySearchCache,
    SearchCache,
    build_search_cache_key,
)
from crucible_router.search.lexical import SearchEngine
from crucible_router.search.models import QueryType, SearchQuery, SearchResult
from crucible_router.search.performance_monitor import Monitor
from crucible_router.search.rag import VectorRAGSystem

logger = logging.getLogger("crucible_router")


@dataclass(slots=True)
class CacheCounters:
    hits: int = 0
    misses: int = 0


class HybridSearchCoordinator:
    """Cache-aside dispatch between semantic retrieval and lexical search."""

    def __init__(
        self,
        engine: SearchEngine,
        *,
        rag_system: VectorRAGSystem | None = None,
        cache: SearchCache | None = None,
        monitor: Monitor | None = None,
    ) -> None:
        self._engine = engine
        self._rag_system = rag_system
        self._cache = cache if cache is not None else InMemorySearchCache()
        self._monitor = monitor
        self.counters = CacheCounters()

    async def search(self, query: SearchQuery) -> SearchResult:
        handle = self._monitor.start_timer("hybrid_search") if self._monitor else None
        try:
            return await self._lookup(query)
        finally:
            if self._monitor is not None and handle is not None:
                self._monitor.end_timer(handle)

    async def _lookup(self, query: SearchQuery) -> SearchResult:
        key = build_search_cache_key(query)
        cached = await self._cache.get(key)
        if cached is not None:
            self.counters.hits += 1
            logger.debug("search_cache_hit key=%s", key)
            return cached

        self.counters.misses += 1
        if query.query_type == QueryType.SEMANTIC and self._rag_system is not None:
            result = await self._rag_system.search(query)
        else:
            result = await self._engine.search(query)
        await self._cache.set(key, result)
        logger.debug(
            "search_cache_store key=%s method=%s documents=%d",
            key,
            result.metadata.search_method.value,
            len(result.documents),
        )
        return result
