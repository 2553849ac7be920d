from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger("crucible_router")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(slots=True)
class CircuitBreakerConfig:
    enabled: bool = True
    failure_threshold: int = 3
    recovery_timeout_seconds: float = 30.0
    half_open_max_requests: int = 1


@dataclass(slots=True)
class _BackendCircuit:
    """Breaker state of one backend; transitions are driven by the registry clock."""

    state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = 0
    opened_at: float = 0.0
    probes_in_flight: int = 0

    def admit(self, now: float, config: CircuitBreakerConfig) -> bool:
        if self.state == CircuitState.CLOSED:
            return True
        if self.state == CircuitState.OPEN:
            if now - self.opened_at < config.recovery_timeout_seconds:
                return False
            self.state = CircuitState.HALF_OPEN
            self.probes_in_flight = 0
        if self.probes_in_flight >= config.half_open_max_requests:
            return False
        self.probes_in_flight += 1
        return True

    def release(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self.probes_in_flight = max(0, self.probes_in_flight - 1)

    def close(self) -> None:
        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.opened_at = 0.0
        self.probes_in_flight = 0

    def record_failure(self, now: float, config: CircuitBreakerConfig) -> bool:
        """Count a failure; returns True when this failure opened the circuit."""
        if self.state == CircuitState.HALF_OPEN:
            self.consecutive_failures = max(
                self.consecutive_failures, config.failure_threshold
            )
        else:
            self.consecutive_failures += 1
            if self.consecutive_failures < config.failure_threshold:
                return False
        self.state = CircuitState.OPEN
        self.opened_at = now
        self.probes_in_flight = 0
        return True


class CircuitBreakerRegistry:
    """Per-backend breakers consulted before each routing attempt.

    Every admitted attempt must end in exactly one of ``on_success``,
    ``on_failure`` or ``release``; the last one frees a half-open trial slot
    without judging the backend, e.g. when the caller cancelled the attempt.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._clock = clock
        self._circuits: dict[str, _BackendCircuit] = {}

    def _circuit(self, backend_id: str) -> _BackendCircuit:
        return self._circuits.setdefault(backend_id, _BackendCircuit())

    def allow_request(self, backend_id: str) -> bool:
        if not self._config.enabled:
            return True
        circuit = self._circuit(backend_id)
        was_open = circuit.state == CircuitState.OPEN
        allowed = circuit.admit(self._clock(), self._config)
        if was_open and circuit.state == CircuitState.HALF_OPEN:
            logger.info("circuit_half_open backend=%s", backend_id)
        return allowed

    def release(self, backend_id: str) -> None:
        if self._config.enabled and backend_id in self._circuits:
            self._circuits[backend_id].release()

    def on_success(self, backend_id: str) -> None:
        if not self._config.enabled:
            return
        circuit = self._circuit(backend_id)
        if circuit.state != CircuitState.CLOSED:
            logger.info("circuit_closed backend=%s", backend_id)
        circuit.close()

    def on_failure(self, backend_id: str) -> None:
        if not self._config.enabled:
            return
        circuit = self._circuit(backend_id)
        if circuit.record_failure(self._clock(), self._config):
            logger.warning(
                "circuit_opened backend=%s failures=%d",
                backend_id,
                circuit.consecutive_failures,
            )

    def state(self, backend_id: str) -> CircuitState:
        circuit = self._circuits.get(backend_id)
        return circuit.state if circuit is not None else CircuitState.CLOSED

    def snapshot(self, backend_id: str) -> dict[str, int | float | str]:
        circuit = self._circuits.get(backend_id) or _BackendCircuit()
        return {
            "state": circuit.state.value,
            "consecutive_failures": circuit.consecutive_failures,
            "opened_at": round(circuit.opened_at, 3),
            "probes_in_flight": circuit.probes_in_flight,
        }
