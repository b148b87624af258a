from __future__ import annotations

import pytest

from app.metrics_store import MetricsStore, ProviderStatsStore


def test_endpoint_metrics_aggregate_counts_and_durations() -> None:
    store = MetricsStore()
    store.record("/routes/optimize", duration_ms=10.0)
    store.record("/routes/optimize", duration_ms=30.0, error=True)
    store.record("/exposure", duration_ms=-5.0)

    snap = store.snapshot()
    assert snap["total_requests"] == 3
    assert snap["total_errors"] == 1
    assert list(snap["endpoints"]) == ["/exposure", "/routes/optimize"]
    optimize = snap["endpoints"]["/routes/optimize"]
    assert optimize["request_count"] == 2
    assert optimize["error_count"] == 1
    assert optimize["avg_duration_ms"] == pytest.approx(20.0)
    assert optimize["max_duration_ms"] == pytest.approx(30.0)
    assert snap["endpoints"]["/exposure"]["max_duration_ms"] == 0.0

    store.reset()
    assert store.snapshot()["total_requests"] == 0


def test_provider_stats_track_success_rate_and_last_error() -> None:
    stats = ProviderStatsStore()
    stats.record_success("waqi", latency_ms=100.0)
    stats.record_success("waqi", latency_ms=50.0)
    stats.record_failure("waqi", latency_ms=300.0, error="timeout (ReadTimeout)")
    stats.record_failure("openweather", latency_ms=10.0, error="x" * 500)

    snap = stats.snapshot()
    assert list(snap) == ["openweather", "waqi"]
    assert snap["waqi"]["request_count"] == 3
    assert snap["waqi"]["success_rate"] == pytest.approx(0.6667)
    assert snap["waqi"]["avg_latency_ms"] == pytest.approx(150.0)
    assert snap["waqi"]["last_error"] == "timeout (ReadTimeout)"
    assert len(snap["openweather"]["last_error"]) == 240


def test_provider_stats_get_returns_copy() -> None:
    stats = ProviderStatsStore()
    stats.record_success("open_meteo", latency_ms=5.0)
    copy = stats.get("open_meteo")
    copy.success_count = 99
    assert stats.get("open_meteo").success_count == 1
    assert stats.get("unknown").request_count == 0
