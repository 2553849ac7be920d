from __future__ import annotations

import logging
from pathlib import Path

from crucible_router.audit import JsonlAuditLogger
from crucible_router.config import RouterConfig, load_router_config
from crucible_router.routing.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)
from crucible_router.routing.registry import ProviderRegistry
from crucible_router.routing.request_router import BackendInvoker, RequestRouter
from crucible_router.search.cache import RedisClientFactory, build_search_cache
from crucible_router.search.coordinator import HybridSearchCoordinator
from crucible_router.search.lexical import LexicalSearchEngine
from crucible_router.search.performance_monitor import PerformanceMonitor
from crucible_router.search.rag import VectorRAGSystem
from crucible_router.settings import Settings
from crucible_router.streaming.coordinator import OutputCoordinator

logger = logging.getLogger("crucible_router")


def build_search_coordinator(
    settings: Settings,
    *,
    root: str | Path | None = None,
    create_redis_client: RedisClientFactory | None = None,
) -> HybridSearchCoordinator:
    engine = LexicalSearchEngine(root if root is not None else settings.search_workspace)
    cache = build_search_cache(
        redis_url=settings.redis_url,
        ttl_seconds=settings.search_cache_ttl_seconds,
        max_entries=settings.search_cache_max_entries,
        create_redis_client=create_redis_client,
    )
    return HybridSearchCoordinator(
        engine,
        rag_system=VectorRAGSystem(engine),
        cache=cache,
        monitor=PerformanceMonitor(),
    )


def build_circuit_breakers(settings: Settings) -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(
        CircuitBreakerConfig(
            enabled=settings.circuit_breaker_enabled,
            failure_threshold=settings.circuit_breaker_failure_threshold,
            recovery_timeout_seconds=settings.circuit_breaker_recovery_timeout_seconds,
            half_open_max_requests=settings.circuit_breaker_half_open_max_requests,
        )
    )


def build_router(
    invoker: BackendInvoker,
    *,
    settings: Settings,
    config: RouterConfig | None = None,
    audit_logger: JsonlAuditLogger | None = None,
) -> RequestRouter:
    """Assemble a ``RequestRouter`` from settings and a router config.

    When ``config`` is omitted it is loaded from ``settings.routing_config_path``.
    An audit logger is created from settings unless one is passed in; callers
    own closing it.
    """
    resolved = config if config is not None else load_router_config(
        settings.routing_config_path
    )
    registry = ProviderRegistry.from_config(resolved)
    if audit_logger is None and settings.audit_log_enabled:
        audit_logger = JsonlAuditLogger(settings.audit_log_path)
    logger.info(
        "router_built backends=%s fallback_chain=%s audit=%s",
        ",".join(registry.ids()),
        ",".join(registry.get_fallback_chain()),
        audit_logger is not None,
    )
    return RequestRouter(
        registry,
        invoker,
        output=OutputCoordinator(max_buffer_bytes=settings.max_buffer_bytes),
        search=build_search_coordinator(settings),
        circuit_breakers=build_circuit_breakers(settings),
        audit_hook=audit_logger,
    )
