from crucible_router.routing.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from crucible_router.routing.load_balancer import (
    LoadBalancer,
    RotationCursor,
    rotate_candidates,
)
from crucible_router.routing.performance_tracker import (
    PerformanceRecord,
    PerformanceTracker,
)
from crucible_router.routing.registry import (
    Backend,
    BackendType,
    Capability,
    ModelSpec,
    ProviderRegistry,
)
from crucible_router.routing.request_router import (
    BackendInvoker,
    FallbackExhaustedError,
    RequestRouter,
    RouteAttempt,
    RoutedResponse,
    RouteState,
)
from crucible_router.routing.selector import (
    ModelSelector,
    NoEligibleProviderError,
    RoutingConstraints,
    RoutingDecision,
    RoutingRequest,
)

__all__ = [
    "Backend",
    "BackendInvoker",
    "BackendType",
    "Capability",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitState",
    "FallbackExhaustedError",
    "LoadBalancer",
    "ModelSelector",
    "ModelSpec",
    "NoEligibleProviderError",
    "PerformanceRecord",
    "PerformanceTracker",
    "ProviderRegistry",
    "RequestRouter",
    "RouteAttempt",
    "RouteState",
    "RoutedResponse",
    "RotationCursor",
    "RoutingConstraints",
    "RoutingDecision",
    "RoutingRequest",
    "rotate_candidates",
]
