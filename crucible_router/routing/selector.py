from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from crucible_router.routing.registry import (
    Backend,
    Capability,
    ModelSpec,
    ProviderRegistry,
)

if TYPE_CHECKING:
    from crucible_router.search.models import SearchQuery


@dataclass(frozen=True, slots=True)
class RoutingConstraints:
    require_local: bool = False
    require_streaming: bool = False
    require_function_calling: bool = False

    def describe(self) -> list[str]:
        active = []
        if self.require_local:
            active.append("require_local")
        if self.require_streaming:
            active.append("require_streaming")
        if self.require_function_calling:
            active.append("require_function_calling")
        return active

    def to_dict(self) -> dict[str, bool]:
        return {
            "require_local": self.require_local,
            "require_streaming": self.require_streaming,
            "require_function_calling": self.require_function_calling,
        }


@dataclass(slots=True)
class RoutingRequest:
    constraints: RoutingConstraints = field(default_factory=RoutingConstraints)
    payload: Any = None
    context_query: SearchQuery | None = None


@dataclass(frozen=True, slots=True)
class RoutingDecision:
    backend: Backend
    model: ModelSpec
    reasons: tuple[str, ...] = ()
    estimated_latency: float | None = None


class NoEligibleProviderError(LookupError):
    def __init__(self, constraints: RoutingConstraints, registered: list[str]):
        self.constraints = constraints
        self.registered = registered
        active = ", ".join(constraints.describe()) or "none"
        super().__init__(
            f"No registered backend satisfies routing constraints ({active}); "
            f"registered backends: {', '.join(registered) or 'none'}."
        )


def meets_constraints(backend: Backend, constraints: RoutingConstraints) -> bool:
    if constraints.require_local and not backend.is_local:
        return False
    if constraints.require_streaming and not backend.supports(Capability.STREAMING):
        return False
    if constraints.require_function_calling and not backend.supports(
        Capability.FUNCTION_CALLING
    ):
        return False
    return True


class ModelSelector:
    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        latency_estimator: Callable[[str], float | None] | None = None,
    ) -> None:
        self._registry = registry
        self._latency_estimator = latency_estimator

    def eligible_backends(self, constraints: RoutingConstraints) -> list[Backend]:
        return [
            backend
            for backend in self._registry.backends()
            if meets_constraints(backend, constraints)
        ]

    def select(self, request: RoutingRequest) -> RoutingDecision:
        constraints = request.constraints
        registered = self._registry.ids()
        eligible = self.eligible_backends(constraints)
        if not eligible:
            raise NoEligibleProviderError(constraints, registered)

        # sorted() is stable, so equal weights keep registration order.
        ranked = sorted(eligible, key=lambda backend: backend.weight, reverse=True)
        chosen = ranked[0]
        reasons = [
            f"eligible {len(eligible)}/{len(registered)} backends",
            f"constraints: {', '.join(constraints.describe()) or 'none'}",
            f"selected '{chosen.id}' with highest weight {chosen.weight:g}",
            f"model '{chosen.default_model.name}' is the first declared model",
        ]
        estimated_latency = self.estimated_latency_for(chosen.id)
        if estimated_latency is not None:
            reasons.append(f"estimated latency {estimated_latency:.1f}ms")
        return RoutingDecision(
            backend=chosen,
            model=chosen.default_model,
            reasons=tuple(reasons),
            estimated_latency=estimated_latency,
        )

    def estimated_latency_for(self, backend_id: str) -> float | None:
        if self._latency_estimator is None:
            return None
        return self._latency_estimator(backend_id)
