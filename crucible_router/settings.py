from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    routing_config_path: str = "crucible.router.yaml"
    log_level: str = "INFO"
    max_buffer_bytes: int = 1024 * 1024
    search_workspace: str = "."
    search_cache_ttl_seconds: float | None = None
    search_cache_max_entries: int | None = 2048
    redis_url: str | None = None
    audit_log_enabled: bool = False
    audit_log_path: str = "logs/route_decisions.jsonl"
    circuit_breaker_enabled: bool = True
    circuit_breaker_failure_threshold: int = 3
    circuit_breaker_recovery_timeout_seconds: float = 30.0
    circuit_breaker_half_open_max_requests: int = 1

    model_config = SettingsConfigDict(
        env_prefix="CRUCIBLE_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def search_cache_is_shared(self) -> bool:
        return bool(self.redis_url)


@lru_cache
def get_settings() -> Settings:
    return Settings()
