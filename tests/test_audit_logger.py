from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path

from crucible_router.audit import JsonlAuditLogger
from crucible_router.routing.request_router import RequestRouter
from crucible_router.routing.selector import RoutingRequest
from tests.routing_test_utils import FakeInvoker, make_backend, make_registry


def _read_lines(path: Path, expected: int) -> list[dict]:
    deadline = time.time() + 1.0
    lines: list[str] = []
    while time.time() < deadline:
        if path.exists():
            lines = path.read_text(encoding="utf-8").strip().splitlines()
            if len(lines) >= expected:
                break
        time.sleep(0.02)
    return [json.loads(line) for line in lines]


def test_audit_logger_writes_records_before_close(tmp_path: Path) -> None:
    log_path = tmp_path / "route_decisions.jsonl"
    logger = JsonlAuditLogger(log_path, enabled=True)
    try:
        logger.log({"event": "route_decision", "request_id": "req-1"})

        records = _read_lines(log_path, 1)
        assert records[0]["event"] == "route_decision"
        assert records[0]["request_id"] == "req-1"
        assert "ts" in records[0]
    finally:
        logger.close()


def test_disabled_audit_logger_writes_nothing(tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "audit.jsonl"
    logger = JsonlAuditLogger(log_path, enabled=False)

    logger.log({"event": "route_decision"})
    logger.close()

    assert not log_path.exists()


def test_router_events_flow_into_audit_log(tmp_path: Path) -> None:
    log_path = tmp_path / "route_decisions.jsonl"
    audit = JsonlAuditLogger(log_path)
    router = RequestRouter(
        make_registry(make_backend("a", weight=2), make_backend("b")),
        FakeInvoker({"b": ["ok"]}, failing={"a"}),
        audit_hook=audit,
    )
    try:
        asyncio.run(router.route(RoutingRequest()))
    finally:
        audit.close()

    events = [record["event"] for record in _read_lines(log_path, 4)]
    assert events == [
        "route_decision",
        "route_attempt_failed",
        "route_decision",
        "route_complete",
    ]


def test_full_queue_counts_dropped_records(tmp_path: Path) -> None:
    audit = JsonlAuditLogger(tmp_path / "audit.jsonl", max_queue_size=1)
    audit.close()

    audit.log({"event": "queued"})
    audit.log({"event": "dropped"})
    audit.log({"event": "dropped"})

    assert audit.dropped_records == 2
