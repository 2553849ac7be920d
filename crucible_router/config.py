from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from crucible_router.routing.registry import Backend, BackendType, ModelSpec
from crucible_router.utils.sequence_utils import dedupe_preserving_order
from crucible_router.utils.yaml_utils import load_yaml_dict


class ConfigError(ValueError):
    def __init__(self, path: Path, detail: str):
        self.path = path
        self.detail = detail
        super().__init__(f"Invalid router config '{path}': {detail}")


class ModelConfig(BaseModel):
    name: str
    context_window: int | None = None


class BackendConfig(BaseModel):
    id: str
    type: Literal["local", "remote"] = "remote"
    weight: float = Field(default=1.0, ge=0.0)
    capabilities: list[str] = Field(default_factory=list)
    models: list[ModelConfig] = Field(min_length=1)
    enabled: bool = True

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Backend id must not be empty.")
        return normalized

    @field_validator("capabilities", mode="before")
    @classmethod
    def _normalize_capabilities(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if isinstance(value, dict):
            # Capability records may be given as {streaming: true, tool_calling: false}.
            value = [name for name, enabled in value.items() if enabled]
        if not isinstance(value, list):
            raise ValueError("Expected 'capabilities' to be a list or a mapping.")
        return [_normalize_capability(str(item)) for item in value if str(item).strip()]

    @field_validator("models", mode="before")
    @classmethod
    def _coerce_models(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"name": item} if isinstance(item, str) else item for item in value]
        return value

    def to_backend(self) -> Backend:
        return Backend(
            id=self.id,
            type=BackendType(self.type),
            weight=self.weight,
            capabilities=frozenset(self.capabilities),
            models=tuple(
                ModelSpec(name=model.name, context_window=model.context_window)
                for model in self.models
            ),
        )


_CAPABILITY_ALIASES = {
    "tool_calling": "function_calling",
    "tools": "function_calling",
    "function-calling": "function_calling",
    "functioncalling": "function_calling",
    "stream": "streaming",
}


def _normalize_capability(value: str) -> str:
    normalized = value.strip().lower().replace(" ", "_")
    normalized = _CAPABILITY_ALIASES.get(normalized, normalized)
    return normalized.replace("-", "_")


class RouterConfig(BaseModel):
    backends: list[BackendConfig] = Field(default_factory=list)
    fallback_chain: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_references(self) -> RouterConfig:
        ids = [backend.id for backend in self.backends]
        duplicates = sorted({item for item in ids if ids.count(item) > 1})
        if duplicates:
            raise ValueError(f"Duplicate backend ids: {', '.join(duplicates)}.")
        unknown = [item for item in self.fallback_chain if item not in ids]
        if unknown:
            raise ValueError(
                f"fallback_chain references unknown backends: {', '.join(unknown)}."
            )
        return self

    def to_backends(self) -> list[Backend]:
        return [backend.to_backend() for backend in self.backends if backend.enabled]

    def resolved_fallback_chain(self) -> list[str]:
        enabled = {backend.id for backend in self.backends if backend.enabled}
        chain = self.fallback_chain or [backend.id for backend in self.backends]
        return [item for item in dedupe_preserving_order(chain) if item in enabled]


def load_router_config(config_path: str | Path) -> RouterConfig:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Router config not found at '{config_path}'. "
            "Create it with 'crucible-router init' or set CRUCIBLE_ROUTING_CONFIG_PATH."
        )
    try:
        raw = load_yaml_dict(path)
        return RouterConfig.model_validate(raw)
    except (ValidationError, ValueError, yaml.YAMLError) as exc:
        raise ConfigError(path, str(exc)) from exc


def default_config_document() -> dict[str, Any]:
    return {
        "backends": [
            {
                "id": "ollama",
                "type": "local",
                "weight": 2,
                "capabilities": ["streaming"],
                "models": ["qwen2.5-coder:7b"],
            },
            {
                "id": "lm-studio",
                "type": "local",
                "weight": 1,
                "capabilities": ["streaming", "function_calling"],
                "models": ["codellama-7b-instruct"],
            },
        ],
        "fallback_chain": ["ollama", "lm-studio"],
    }
