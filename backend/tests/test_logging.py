from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import pytest

from app.logging_utils import (
    LOG_FILE_NAME,
    SERVICE_NAME,
    _parse_level,
    configure_logging,
    log_event,
    request_context,
)
from app.settings import Settings


class _Capture(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def captured(tmp_path: Path):
    logger = configure_logging(Settings(OUT_DIR=str(tmp_path), LOG_LEVEL="INFO"), force=True)
    handler = _Capture()
    logger.addHandler(handler)
    yield handler
    configure_logging(force=True)


def test_log_event_carries_event_service_and_fields(captured: _Capture) -> None:
    log_event("graph_built", node_count=3, edge_count=3)

    (record,) = captured.records
    assert record.getMessage() == "graph_built"
    assert record.event == "graph_built"
    assert record.service == SERVICE_NAME
    assert record.node_count == 3
    assert not hasattr(record, "request_id")


def test_request_context_stamps_nested_events(captured: _Capture) -> None:
    with request_context("req-1", "/routes/optimize"):
        log_event("sweep_no_path", level=logging.WARNING, combination=2)
    log_event("after_request")

    inside, after = captured.records
    assert inside.request_id == "req-1"
    assert inside.endpoint == "/routes/optimize"
    assert inside.levelno == logging.WARNING
    assert not hasattr(after, "request_id")


def test_explicit_fields_win_over_request_context(captured: _Capture) -> None:
    with request_context("req-1", "/routes/optimize"):
        log_event("exposure_lookup", endpoint="/exposure")
    assert captured.records[0].endpoint == "/exposure"
    assert captured.records[0].request_id == "req-1"


def test_request_context_reaches_concurrent_tasks(captured: _Capture) -> None:
    async def _lookup(i: int) -> None:
        await asyncio.sleep(0)
        log_event("tile_lookup", tile=i)

    async def _run() -> None:
        with request_context("req-2", "/routes/optimize/od"):
            await asyncio.gather(*(_lookup(i) for i in range(3)))

    asyncio.run(_run())
    assert sorted(r.tile for r in captured.records) == [0, 1, 2]
    assert {r.request_id for r in captured.records} == {"req-2"}


def test_events_are_written_as_json_lines(tmp_path: Path, captured: _Capture) -> None:
    with request_context("req-3", "/routes/optimize"):
        log_event("optimize_request", route_count=2)
    log_event("debug_only", level=logging.DEBUG)

    lines = (tmp_path / "logs" / LOG_FILE_NAME).read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["event"] == "optimize_request"
    assert entry["level"] == "INFO"
    assert entry["request_id"] == "req-3"
    assert entry["service"] == SERVICE_NAME
    assert entry["route_count"] == 2
    assert "ts" in entry


def test_unknown_level_name_defaults_to_info() -> None:
    assert _parse_level("debug") == logging.DEBUG
    assert _parse_level("chatty") == logging.INFO
