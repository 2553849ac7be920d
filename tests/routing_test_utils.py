from __future__ import annotations

from typing import Any, AsyncIterator

from crucible_router.routing.registry import (
    Backend,
    BackendType,
    ModelSpec,
    ProviderRegistry,
)
from crucible_router.search.models import SearchResult


def make_backend(
    backend_id: str,
    *,
    local: bool = True,
    weight: float = 1.0,
    capabilities: tuple[str, ...] = ("streaming",),
    models: tuple[str, ...] | None = None,
) -> Backend:
    return Backend(
        id=backend_id,
        type=BackendType.LOCAL if local else BackendType.REMOTE,
        weight=weight,
        capabilities=frozenset(capabilities),
        models=tuple(ModelSpec(name=name) for name in (models or (f"{backend_id}-model",))),
    )


def make_registry(*backends: Backend, fallback_chain: list[str] | None = None) -> ProviderRegistry:
    registry = ProviderRegistry()
    for backend in backends:
        registry.register(backend)
    registry.set_fallback_chain(
        fallback_chain if fallback_chain is not None else [backend.id for backend in backends]
    )
    return registry


async def stream_of(*chunks: str | bytes) -> AsyncIterator[str | bytes]:
    for chunk in chunks:
        yield chunk


class FakeInvoker:
    """Serves canned chunks per backend id; ids listed in ``failing`` raise on open."""

    def __init__(
        self,
        chunks: dict[str, list[str]],
        *,
        failing: set[str] | None = None,
    ) -> None:
        self._chunks = chunks
        self._failing = failing or set()
        self.calls: list[str] = []
        self.contexts: list[SearchResult | None] = []

    async def open_stream(
        self,
        backend: Backend,
        model: ModelSpec,
        payload: Any,
        *,
        context: SearchResult | None = None,
    ) -> AsyncIterator[str | bytes]:
        self.calls.append(backend.id)
        self.contexts.append(context)
        if backend.id in self._failing:
            raise ConnectionError(f"{backend.id} is unreachable")
        return stream_of(*self._chunks.get(backend.id, []))
