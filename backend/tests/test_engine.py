from __future__ import annotations

import asyncio

import pytest

from app.engine import optimize_routes
from app.engine_errors import EngineError
from app.exposure import ExposureSample, fallback_sample
from app.models import BaselineRoute, LatLng, RoutePreferences, RouteSummary


class FakeEstimator:
    def __init__(self, *, fallback_west_of: float | None = None) -> None:
        self.fallback_west_of = fallback_west_of
        self.calls = 0

    async def estimate_many(self, points: list[tuple[float, float]]) -> list[ExposureSample]:
        self.calls += 1
        out: list[ExposureSample] = []
        for lat, lng in points:
            key = f"{lat:.3f}_{lng:.3f}"
            if self.fallback_west_of is not None and lng < self.fallback_west_of:
                out.append(fallback_sample(key, now=0.0))
                continue
            out.append(
                ExposureSample(
                    tile_key=key,
                    level=5 if lng < -0.18 else 1,
                    confidence="medium",
                    sources=("fake",),
                    timestamp=0.0,
                )
            )
        return out


A = (51.50, -0.20)
B = (51.55, -0.10)
C = (51.60, -0.20)


def _route(*points: tuple[float, float]) -> BaselineRoute:
    return BaselineRoute(
        coordinates=[LatLng(lat=lat, lng=lng) for lat, lng in points],
        summary=RouteSummary(total_distance=1.0, total_time=1.0),
    )


def _run(routes: list[BaselineRoute], start: tuple[float, float], end: tuple[float, float], **prefs):
    estimator = prefs.pop("estimator", None) or FakeEstimator()
    return asyncio.run(
        optimize_routes(
            baseline_routes=routes,
            start=LatLng(lat=start[0], lng=start[1]),
            end=LatLng(lat=end[0], lng=end[1]),
            preferences=RoutePreferences(**prefs),
            estimator=estimator,
        )
    )


def test_clean_detour_and_short_polluted_route_are_both_offered() -> None:
    result = _run([_route(A, B, C), _route(A, C)], A, C)

    assert result.graph_stats == {"node_count": 3, "edge_count": 3}
    assert len(result.routes) == 2
    best, other = result.routes
    assert [c.as_tuple() for c in best.coordinates] == [A, B, C]
    assert best.pareto_rank == 1
    assert best.is_recommended is True
    assert best.route_type == "aqi-optimized"
    assert best.peak_aqi == 1
    assert best.health_risk == "very_low"
    assert [c.as_tuple() for c in other.coordinates] == [A, C]
    assert other.is_recommended is False
    assert other.peak_aqi == 5
    assert other.total_distance < best.total_distance
    assert other.total_exposure_dose > best.total_exposure_dose
    assert result.diagnostics.combinations_tried == 5
    assert result.warnings == []


def test_distance_preference_reorders_ranking() -> None:
    result = _run([_route(A, B, C), _route(A, C)], A, C, aqi_weight=0.0, distance_weight=1.0)
    assert [c.as_tuple() for c in result.routes[0].coordinates] == [A, C]


def test_max_alternatives_limits_output() -> None:
    result = _run([_route(A, B, C), _route(A, C)], A, C, max_alternatives=1)
    assert len(result.routes) == 1


def test_endpoints_snap_to_nearest_nodes() -> None:
    result = _run([_route(A, B, C), _route(A, C)], (51.5001, -0.2001), (51.5999, -0.1999))
    assert result.routes[0].coordinates[0].as_tuple() == A
    assert result.routes[0].coordinates[-1].as_tuple() == C


def test_fallback_tiles_are_reported_as_warning() -> None:
    estimator = FakeEstimator(fallback_west_of=-0.18)
    result = _run([_route(A, B, C), _route(A, C)], A, C, estimator=estimator)
    assert result.warnings == ["exposure_fallback_tiles:1"]
    assert estimator.calls == 1


def test_single_point_route_is_an_empty_graph() -> None:
    with pytest.raises(EngineError) as exc_info:
        _run([_route(A, A)], A, C)
    assert exc_info.value.reason_code == "empty_graph"


def test_start_and_end_on_same_node_is_degenerate() -> None:
    with pytest.raises(EngineError) as exc_info:
        _run([_route(A, B, C)], A, (51.5001, -0.2))
    assert exc_info.value.reason_code == "degenerate_endpoints"


def test_disconnected_routes_raise() -> None:
    far_a = (52.40, 1.30)
    far_b = (52.45, 1.35)
    with pytest.raises(EngineError) as exc_info:
        _run([_route(A, B), _route(far_a, far_b)], A, far_b)
    assert exc_info.value.reason_code == "disconnected_graph"
    assert exc_info.value.details["no_path_count"] == 5
    assert exc_info.value.details["last_no_path"] == "no path"
