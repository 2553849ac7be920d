from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from crucible_router.config import RouterConfig, default_config_document
from crucible_router.routing.circuit_breaker import CircuitState
from crucible_router.routing.selector import RoutingRequest
from crucible_router.search.cache import InMemorySearchCache, RedisSearchCache
from crucible_router.search.models import QueryType, SearchMethod, SearchQuery
from crucible_router.settings import Settings
from crucible_router.utils.yaml_utils import write_yaml_dict
from crucible_router.wiring import (
    build_circuit_breakers,
    build_router,
    build_search_coordinator,
)
from tests.routing_test_utils import FakeInvoker


def test_build_router_loads_config_from_settings(tmp_path: Path) -> None:
    config_path = tmp_path / "crucible.router.yaml"
    write_yaml_dict(config_path, default_config_document())
    (tmp_path / "main.py").write_text("def entry():\n    pass\n", encoding="utf-8")
    settings = Settings(
        routing_config_path=str(config_path),
        search_workspace=str(tmp_path),
        max_buffer_bytes=4,
    )
    invoker = FakeInvoker({"ollama": ["abcdef"]})

    router = build_router(invoker, settings=settings)
    response = asyncio.run(
        router.route(
            RoutingRequest(
                context_query=SearchQuery(query="entry", query_type=QueryType.FUNCTION)
            )
        )
    )

    assert router.registry.ids() == ["ollama", "lm-studio"]
    assert response.text == "abcd"
    assert response.output.truncated is True
    assert response.context is not None
    assert response.context.documents[0].path == "main.py"


def test_build_router_writes_audit_log_when_enabled(tmp_path: Path) -> None:
    audit_path = tmp_path / "logs" / "audit.jsonl"
    settings = Settings(audit_log_enabled=True, audit_log_path=str(audit_path))
    config = RouterConfig.model_validate(default_config_document())

    router = build_router(FakeInvoker({"ollama": ["ok"]}), settings=settings, config=config)
    asyncio.run(router.route(RoutingRequest()))
    hook: Any = router._audit_hook
    hook.close()

    assert "route_complete" in audit_path.read_text(encoding="utf-8")


def test_build_search_coordinator_uses_rag_for_semantic_queries(tmp_path: Path) -> None:
    (tmp_path / "notes.md").write_text("retry budget lives here\n", encoding="utf-8")
    coordinator = build_search_coordinator(Settings(), root=tmp_path)

    result = asyncio.run(
        coordinator.search(SearchQuery(query="retry budget", query_type=QueryType.SEMANTIC))
    )

    assert result.metadata.search_method == SearchMethod.RAG
    assert [doc.path for doc in result.documents] == ["notes.md"]


def test_build_search_coordinator_selects_cache_backend(tmp_path: Path) -> None:
    class FakeRedis:
        async def get(self, key: str) -> Any:
            return None

        async def set(self, key: str, value: Any, ex: int | None = None) -> None:
            return None

    shared = build_search_coordinator(
        Settings(redis_url="redis://cache:6379/0"),
        root=tmp_path,
        create_redis_client=lambda url: FakeRedis(),
    )
    local = build_search_coordinator(Settings(), root=tmp_path)

    assert isinstance(shared._cache, RedisSearchCache)
    assert isinstance(local._cache, InMemorySearchCache)


def test_build_circuit_breakers_follow_settings() -> None:
    breakers = build_circuit_breakers(Settings(circuit_breaker_failure_threshold=1))

    breakers.on_failure("ollama")

    assert breakers.state("ollama") == CircuitState.OPEN
