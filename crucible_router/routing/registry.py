from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from crucible_router.utils.sequence_utils import dedupe_preserving_order

if TYPE_CHECKING:
    from crucible_router.config import RouterConfig


class BackendType(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class Capability(str, Enum):
    STREAMING = "streaming"
    FUNCTION_CALLING = "function_calling"
    VISION = "vision"
    EMBEDDINGS = "embeddings"


@dataclass(frozen=True, slots=True)
class ModelSpec:
    name: str
    context_window: int | None = None


@dataclass(frozen=True, slots=True)
class Backend:
    id: str
    type: BackendType
    models: tuple[ModelSpec, ...]
    weight: float = 1.0
    capabilities: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.id.strip():
            raise ValueError("Backend id must be a non-empty string.")
        if not self.models:
            raise ValueError(f"Backend '{self.id}' must declare at least one model.")

    @property
    def is_local(self) -> bool:
        return self.type == BackendType.LOCAL

    def supports(self, capability: Capability | str) -> bool:
        value = capability.value if isinstance(capability, Capability) else capability
        return value in self.capabilities

    @property
    def default_model(self) -> ModelSpec:
        return self.models[0]


class ProviderRegistry:
    def __init__(self) -> None:
        self._backends: dict[str, Backend] = {}
        self._fallback_chain: list[str] = []

    @classmethod
    def from_config(cls, config: RouterConfig) -> ProviderRegistry:
        registry = cls()
        for backend in config.to_backends():
            registry.register(backend)
        registry.set_fallback_chain(config.resolved_fallback_chain())
        return registry

    def register(self, backend: Backend) -> None:
        # Re-registering an id replaces the descriptor but keeps its original slot.
        self._backends[backend.id] = backend

    def get(self, backend_id: str) -> Backend | None:
        return self._backends.get(backend_id)

    def backends(self) -> list[Backend]:
        return list(self._backends.values())

    def ids(self) -> list[str]:
        return list(self._backends)

    def __contains__(self, backend_id: object) -> bool:
        return backend_id in self._backends

    def __len__(self) -> int:
        return len(self._backends)

    def get_fallback_chain(self) -> list[str]:
        return list(self._fallback_chain)

    def set_fallback_chain(self, backend_ids: list[str]) -> None:
        self._fallback_chain = dedupe_preserving_order(
            item.strip() for item in backend_ids if item and item.strip()
        )
