from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Protocol
from uuid import uuid4

from crucible_router.routing.circuit_breaker import CircuitBreakerRegistry
from crucible_router.routing.load_balancer import LoadBalancer
from crucible_router.routing.performance_tracker import PerformanceTracker
from crucible_router.routing.registry import Backend, ModelSpec, ProviderRegistry
from crucible_router.routing.selector import (
    ModelSelector,
    RoutingConstraints,
    RoutingDecision,
    RoutingRequest,
    meets_constraints,
)
from crucible_router.search.coordinator import HybridSearchCoordinator
from crucible_router.search.models import SearchResult
from crucible_router.streaming.coordinator import (
    OutputCoordinator,
    OutputOptions,
    OutputResult,
)
from crucible_router.streaming.processor import ChunkSource, StreamChunk

logger = logging.getLogger("crucible_router")


class RouteState(str, Enum):
    INIT = "init"
    SELECTING = "selecting"
    STREAMING = "streaming"
    ASSEMBLING = "assembling"
    TRUNCATED = "truncated"
    COMPLETE = "complete"
    FORMATTING = "formatting"
    DONE = "done"
    FALLBACK_SELECTION = "fallback_selection"
    FAILED = "failed"


class BackendInvoker(Protocol):
    async def open_stream(
        self,
        backend: Backend,
        model: ModelSpec,
        payload: Any,
        *,
        context: SearchResult | None = None,
    ) -> ChunkSource | AsyncIterator[StreamChunk]: ...


class FallbackExhaustedError(RuntimeError):
    def __init__(
        self,
        *,
        constraints: RoutingConstraints,
        attempted: list[str],
        skipped: list[str],
        last_error: BaseException | None,
    ):
        self.constraints = constraints
        self.attempted = attempted
        self.skipped = skipped
        self.last_error = last_error
        detail = f"; last error: {last_error}" if last_error is not None else ""
        super().__init__(
            f"All backends failed (attempted: {', '.join(attempted) or 'none'}; "
            f"skipped: {', '.join(skipped) or 'none'}; constraints: "
            f"{', '.join(constraints.describe()) or 'none'}){detail}"
        )


@dataclass(slots=True)
class RouteAttempt:
    backend_id: str
    model: str
    latency_ms: float
    error: str | None = None


@dataclass(slots=True)
class RoutedResponse:
    request_id: str
    decision: RoutingDecision
    output: OutputResult
    attempts: list[RouteAttempt] = field(default_factory=list)
    context: SearchResult | None = None
    states: list[RouteState] = field(default_factory=list)

    @property
    def text(self) -> str:
        return self.output.text


class RequestRouter:
    def __init__(
        self,
        registry: ProviderRegistry,
        invoker: BackendInvoker,
        *,
        tracker: PerformanceTracker | None = None,
        selector: ModelSelector | None = None,
        load_balancer: LoadBalancer | None = None,
        output: OutputCoordinator | None = None,
        search: HybridSearchCoordinator | None = None,
        circuit_breakers: CircuitBreakerRegistry | None = None,
        audit_hook: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.registry = registry
        self.tracker = tracker or PerformanceTracker()
        self.selector = selector or ModelSelector(
            registry, latency_estimator=self.tracker.estimate_latency
        )
        self.load_balancer = load_balancer or LoadBalancer(registry)
        self._invoker = invoker
        self._output = output or OutputCoordinator()
        self._search = search
        self._circuit_breakers = circuit_breakers
        self._audit_hook = audit_hook

    def _audit(self, event: str, **fields: Any) -> None:
        if self._audit_hook is None:
            return
        try:
            self._audit_hook({"event": event, **fields})
        except Exception as exc:
            logger.debug("audit_write_failed event=%s error=%s", event, exc)

    async def route(
        self,
        request: RoutingRequest,
        options: OutputOptions | None = None,
    ) -> RoutedResponse:
        options = options or OutputOptions()
        request_id = uuid4().hex[:12]
        states: list[RouteState] = [RouteState.INIT]

        context: SearchResult | None = None
        if request.context_query is not None and self._search is not None:
            context = await self._search.search(request.context_query)

        states.append(RouteState.SELECTING)
        try:
            selected = self.selector.select(request)
        except LookupError:
            states.append(RouteState.FAILED)
            raise
        self._record_decision(request_id, selected)
        decision: RoutingDecision | None = selected

        max_attempts = max(1, len(self.registry.get_fallback_chain()))
        attempts: list[RouteAttempt] = []
        skipped: list[str] = []
        last_error: Exception | None = None

        while decision is not None and len(attempts) < max_attempts:
            backend = decision.backend
            if self._circuit_open(request_id, backend.id):
                skipped.append(backend.id)
            else:
                states.append(RouteState.STREAMING)
                started = time.perf_counter()
                try:
                    output = await self._stream(decision, request, context, options, states)
                except asyncio.CancelledError:
                    self._release_attempt(request_id, backend.id)
                    raise
                except Exception as exc:
                    latency_ms = (time.perf_counter() - started) * 1000.0
                    attempts.append(
                        RouteAttempt(
                            backend_id=backend.id,
                            model=decision.model.name,
                            latency_ms=round(latency_ms, 3),
                            error=f"{type(exc).__name__}: {exc}",
                        )
                    )
                    self._record_failure(request_id, backend.id, latency_ms, exc)
                    last_error = exc
                else:
                    latency_ms = (time.perf_counter() - started) * 1000.0
                    attempts.append(
                        RouteAttempt(
                            backend_id=backend.id,
                            model=decision.model.name,
                            latency_ms=round(latency_ms, 3),
                        )
                    )
                    self._record_success(request_id, backend.id, latency_ms, output)
                    states.append(
                        RouteState.TRUNCATED if output.truncated else RouteState.COMPLETE
                    )
                    if options.format is not None:
                        states.append(RouteState.FORMATTING)
                        output.text = self._output.render(output.raw_text, options.format)
                        output.format = str(getattr(options.format, "value", options.format))
                    states.append(RouteState.DONE)
                    return RoutedResponse(
                        request_id=request_id,
                        decision=decision,
                        output=output,
                        attempts=attempts,
                        context=context,
                        states=states,
                    )

            if len(attempts) >= max_attempts:
                break
            states.append(RouteState.FALLBACK_SELECTION)
            decision = self._next_candidate(
                request_id,
                constraints=request.constraints,
                current_id=backend.id,
                excluded={*(item.backend_id for item in attempts), *skipped},
            )

        states.append(RouteState.FAILED)
        attempted_ids = [item.backend_id for item in attempts]
        logger.error(
            "route_exhausted request_id=%s attempted=%s skipped=%s max_attempts=%d",
            request_id,
            ",".join(attempted_ids),
            ",".join(skipped),
            max_attempts,
        )
        self._audit(
            "route_exhausted",
            request_id=request_id,
            attempted=attempted_ids,
            skipped=skipped,
            constraints=request.constraints.to_dict(),
        )
        raise FallbackExhaustedError(
            constraints=request.constraints,
            attempted=attempted_ids,
            skipped=skipped,
            last_error=last_error,
        ) from last_error

    async def _stream(
        self,
        decision: RoutingDecision,
        request: RoutingRequest,
        context: SearchResult | None,
        options: OutputOptions,
        states: list[RouteState],
    ) -> OutputResult:
        source = await self._invoker.open_stream(
            decision.backend,
            decision.model,
            request.payload,
            context=context,
        )
        states.append(RouteState.ASSEMBLING)
        # Formatting happens after the attempt so a renderer error never triggers fallback.
        return await self._output.process(source, dataclasses.replace(options, format=None))

    def _next_candidate(
        self,
        request_id: str,
        *,
        constraints: RoutingConstraints,
        current_id: str,
        excluded: set[str],
    ) -> RoutingDecision | None:
        offset = self.load_balancer.cursor.offset
        candidates = self.load_balancer.get_fallback_providers(
            current_id, count=len(self.registry)
        )
        for backend in candidates:
            if backend.id in excluded or not meets_constraints(backend, constraints):
                continue
            estimated_latency = self.selector.estimated_latency_for(backend.id)
            decision = RoutingDecision(
                backend=backend,
                model=backend.default_model,
                reasons=(
                    f"fallback from '{current_id}'",
                    f"rotation offset {offset}",
                    f"model '{backend.default_model.name}' is the first declared model",
                ),
                estimated_latency=estimated_latency,
            )
            logger.info(
                "route_fallback request_id=%s from=%s to=%s",
                request_id,
                current_id,
                backend.id,
            )
            self._record_decision(request_id, decision)
            return decision
        return None

    def _circuit_open(self, request_id: str, backend_id: str) -> bool:
        if self._circuit_breakers is None:
            return False
        if self._circuit_breakers.allow_request(backend_id):
            return False
        snapshot = self._circuit_breakers.snapshot(backend_id)
        logger.info(
            "route_skip_circuit_open request_id=%s backend=%s failures=%s",
            request_id,
            backend_id,
            snapshot.get("consecutive_failures"),
        )
        self._audit(
            "route_skip_circuit_open",
            request_id=request_id,
            backend=backend_id,
            breaker=snapshot,
        )
        return True

    def _release_attempt(self, request_id: str, backend_id: str) -> None:
        if self._circuit_breakers is not None:
            self._circuit_breakers.release(backend_id)
        logger.info("route_attempt_cancelled request_id=%s backend=%s", request_id, backend_id)
        self._audit("route_attempt_cancelled", request_id=request_id, backend=backend_id)

    def _record_decision(self, request_id: str, decision: RoutingDecision) -> None:
        self.tracker.record_decision(decision)
        logger.info(
            "route_decision request_id=%s backend=%s model=%s weight=%g",
            request_id,
            decision.backend.id,
            decision.model.name,
            decision.backend.weight,
        )
        self._audit(
            "route_decision",
            request_id=request_id,
            backend=decision.backend.id,
            model=decision.model.name,
            reasons=list(decision.reasons),
            estimated_latency_ms=decision.estimated_latency,
        )

    def _record_failure(
        self, request_id: str, backend_id: str, latency_ms: float, exc: Exception
    ) -> None:
        self.tracker.record_outcome(backend_id, latency_ms=latency_ms, success=False)
        if self._circuit_breakers is not None:
            self._circuit_breakers.on_failure(backend_id)
        logger.warning(
            "route_attempt_failed request_id=%s backend=%s error_type=%s error=%s",
            request_id,
            backend_id,
            type(exc).__name__,
            exc,
        )
        self._audit(
            "route_attempt_failed",
            request_id=request_id,
            backend=backend_id,
            latency_ms=round(latency_ms, 3),
            error_type=type(exc).__name__,
            error=str(exc),
        )

    def _record_success(
        self,
        request_id: str,
        backend_id: str,
        latency_ms: float,
        output: OutputResult,
    ) -> None:
        self.tracker.record_outcome(backend_id, latency_ms=latency_ms, success=True)
        if self._circuit_breakers is not None:
            self._circuit_breakers.on_success(backend_id)
        logger.info(
            "route_complete request_id=%s backend=%s latency_ms=%.3f size_bytes=%d truncated=%s",
            request_id,
            backend_id,
            latency_ms,
            output.size_bytes,
            output.truncated,
        )
        self._audit(
            "route_complete",
            request_id=request_id,
            backend=backend_id,
            latency_ms=round(latency_ms, 3),
            size_bytes=output.size_bytes,
            chunks=output.chunks,
            truncated=output.truncated,
        )
