from __future__ import annotations

from collections.abc import Mapping, Sequence

from .exposure import ExposureSample
from .health import assess_health_risk, health_recommendation
from .models import LatLng, OptimizedRoute, WeightCombination
from .route_graph import EdgeKey, RouteGraph, edge_key
from .sweep import CandidateRoute, route_type_label


def path_aqi_profile(
    graph: RouteGraph,
    node_path: Sequence[int],
    edge_samples: Mapping[EdgeKey, ExposureSample],
) -> tuple[float | None, int | None]:
    """(time-weighted average AQI, peak AQI) over the edges of a path."""
    weighted = 0.0
    total_time = 0.0
    peak: int | None = None
    for a, b in zip(node_path, node_path[1:]):
        sample = edge_samples.get(edge_key(a, b))
        if sample is None:
            continue
        t_s = graph.adjacency[a][b].travel_time_s
        weighted += sample.level * t_s
        total_time += t_s
        peak = sample.level if peak is None else max(peak, sample.level)
    if total_time <= 0.0:
        return None, peak
    return weighted / total_time, peak


def assemble_route(
    graph: RouteGraph,
    candidate: CandidateRoute,
    edge_samples: Mapping[EdgeKey, ExposureSample],
) -> OptimizedRoute:
    avg_aqi, peak_aqi = path_aqi_profile(graph, candidate.node_path, edge_samples)
    health_risk = None
    if avg_aqi is not None and peak_aqi is not None:
        health_risk = assess_health_risk(avg_aqi, peak_aqi, candidate.total_time_s)
    rank = candidate.pareto_rank or 1
    return OptimizedRoute(
        coordinates=[LatLng(lat=lat, lng=lng) for lat, lng in graph.path_coordinates(candidate.node_path)],
        total_distance=round(candidate.total_distance_m, 2),
        total_time=round(candidate.total_time_s, 2),
        total_exposure_dose=round(candidate.total_exposure_dose, 4),
        avg_aqi=round(avg_aqi, 3) if avg_aqi is not None else None,
        peak_aqi=peak_aqi,
        weight_combination=WeightCombination(**candidate.weight_combination.as_dict()),
        route_type=route_type_label(candidate.weight_combination),
        pareto_rank=rank,
        health_risk=health_risk,
        health_advice=health_recommendation(avg_aqi),
        is_recommended=rank == 1,
    )


def assemble_routes(
    graph: RouteGraph,
    selected: Sequence[CandidateRoute],
    edge_samples: Mapping[EdgeKey, ExposureSample],
) -> list[OptimizedRoute]:
    return [assemble_route(graph, candidate, edge_samples) for candidate in selected]
