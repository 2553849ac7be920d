from __future__ import annotations

from crucible_router.routing.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)


def test_circuit_breaker_opens_after_threshold_and_recovers_to_half_open() -> None:
    breakers = CircuitBreakerRegistry(
        CircuitBreakerConfig(
            enabled=True,
            failure_threshold=2,
            recovery_timeout_seconds=0.0,
            half_open_max_requests=1,
        )
    )
    key = "ollama"

    assert breakers.allow_request(key) is True
    breakers.on_failure(key)
    assert breakers.allow_request(key) is True
    breakers.on_failure(key)

    # With a zero recovery timeout the next call is a half-open trial request.
    assert breakers.allow_request(key) is True
    snapshot = breakers.snapshot(key)
    assert snapshot["state"] == "half_open"
    assert snapshot["probes_in_flight"] == 1
    assert breakers.allow_request(key) is False


def test_circuit_breaker_stays_open_until_recovery_timeout() -> None:
    now = {"value": 100.0}
    breakers = CircuitBreakerRegistry(
        CircuitBreakerConfig(failure_threshold=1, recovery_timeout_seconds=30.0),
        clock=lambda: now["value"],
    )

    breakers.on_failure("lm-studio")
    assert breakers.state("lm-studio") == CircuitState.OPEN
    assert breakers.allow_request("lm-studio") is False

    now["value"] = 131.0
    assert breakers.allow_request("lm-studio") is True
    assert breakers.state("lm-studio") == CircuitState.HALF_OPEN


def test_circuit_breaker_half_open_success_closes_breaker() -> None:
    breakers = CircuitBreakerRegistry(
        CircuitBreakerConfig(
            enabled=True,
            failure_threshold=1,
            recovery_timeout_seconds=0.0,
            half_open_max_requests=1,
        )
    )
    key = "lm-studio"

    breakers.on_failure(key)
    assert breakers.allow_request(key) is True
    breakers.on_success(key)

    snapshot = breakers.snapshot(key)
    assert snapshot["state"] == "closed"
    assert snapshot["consecutive_failures"] == 0
    assert breakers.allow_request(key) is True


def test_circuit_breaker_half_open_failure_reopens_breaker() -> None:
    breakers = CircuitBreakerRegistry(
        CircuitBreakerConfig(
            enabled=True,
            failure_threshold=1,
            recovery_timeout_seconds=0.0,
            half_open_max_requests=1,
        )
    )
    key = "remote"

    breakers.on_failure(key)
    assert breakers.allow_request(key) is True
    breakers.on_failure(key)

    assert breakers.snapshot(key)["state"] == "open"


def test_disabled_circuit_breaker_always_allows() -> None:
    breakers = CircuitBreakerRegistry(
        CircuitBreakerConfig(enabled=False, failure_threshold=1)
    )

    for _ in range(5):
        breakers.on_failure("a")
    assert breakers.allow_request("a") is True
    assert breakers.state("a") == CircuitState.CLOSED


def test_released_half_open_slot_can_be_retried() -> None:
    breakers = CircuitBreakerRegistry(
        CircuitBreakerConfig(failure_threshold=1, recovery_timeout_seconds=0.0)
    )
    key = "ollama"

    breakers.on_failure(key)
    assert breakers.allow_request(key) is True
    assert breakers.allow_request(key) is False

    breakers.release(key)

    assert breakers.snapshot(key)["probes_in_flight"] == 0
    assert breakers.state(key) == CircuitState.HALF_OPEN
    assert breakers.allow_request(key) is True


def test_release_on_closed_breaker_is_a_no_op() -> None:
    breakers = CircuitBreakerRegistry(CircuitBreakerConfig())

    breakers.release("unknown")
    assert breakers.allow_request("unknown") is True
    breakers.release("unknown")

    assert breakers.snapshot("unknown")["state"] == "closed"
