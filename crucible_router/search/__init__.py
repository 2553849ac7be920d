from crucible_router.search.cache import (
    InMemorySearchCache,
    RedisSearchCache,
    SearchCache,
    build_search_cache,
    build_search_cache_key,
)
from crucible_router.search.coordinator import HybridSearchCoordinator
from crucible_router.search.lexical import LexicalSearchEngine, SearchEngine
from crucible_router.search.models import (
    QueryType,
    SearchDocument,
    SearchMetadata,
    SearchMethod,
    SearchQuery,
    SearchResult,
)
from crucible_router.search.performance_monitor import PerformanceMonitor
from crucible_router.search.rag import VectorRAGSystem

__all__ = [
    "HybridSearchCoordinator",
    "InMemorySearchCache",
    "LexicalSearchEngine",
    "PerformanceMonitor",
    "QueryType",
    "RedisSearchCache",
    "SearchCache",
    "SearchDocument",
    "SearchEngine",
    "SearchMetadata",
    "SearchMethod",
    "SearchQuery",
    "SearchResult",
    "VectorRAGSystem",
    "build_search_cache",
    "build_search_cache_key",
]
