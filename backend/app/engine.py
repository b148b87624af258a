from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from .assembler import assemble_routes
from .engine_errors import EngineError
from .exposure import ExposureEstimator
from .logging_utils import log_event
from .models import BaselineRoute, LatLng, OptimizedRoute, RoutePreferences
from .route_graph import build_route_graph
from .shortest_path import normalize_no_path_reason
from .sweep import WEIGHT_SWEEP, SweepDiagnostics, run_weight_sweep, select_pareto_routes


@dataclass
class OptimizationResult:
    routes: list[OptimizedRoute]
    graph_stats: dict[str, int]
    diagnostics: SweepDiagnostics
    warnings: list[str] = field(default_factory=list)


async def optimize_routes(
    *,
    baseline_routes: Sequence[BaselineRoute],
    start: LatLng,
    end: LatLng,
    preferences: RoutePreferences,
    estimator: ExposureEstimator,
) -> OptimizationResult:
    """Build the route graph, sweep weightings and return the ranked Pareto set.

    Raises EngineError when no route can be produced at all; per-edge and
    per-combination failures are absorbed.
    """
    t0 = time.perf_counter()
    graph = build_route_graph([c.as_tuple() for c in route.coordinates] for route in baseline_routes)
    stats = graph.stats()
    if graph.is_empty() or graph.edge_count == 0:
        raise EngineError("empty_graph", "no routable graph could be built from the baseline routes", stats)

    start_id = graph.nearest_node(start.lat, start.lng)
    end_id = graph.nearest_node(end.lat, end.lng)
    if start_id is None or end_id is None:
        raise EngineError("endpoint_unresolved", "could not resolve start/end to graph nodes", stats)
    if start_id == end_id:
        raise EngineError(
            "degenerate_endpoints",
            "start and end resolve to the same graph node",
            {**stats, "node_id": start_id},
        )

    edges = graph.undirected_edges()
    samples = await estimator.estimate_many([e.midpoint for e in edges])
    edge_samples = {e.key: s for e, s in zip(edges, samples, strict=True)}
    t_exposure = time.perf_counter()

    diagnostics = SweepDiagnostics()
    candidates = run_weight_sweep(
        graph,
        start=start_id,
        goal=end_id,
        edge_samples=edge_samples,
        max_aqi_threshold=preferences.max_aqi_threshold,
        combinations=WEIGHT_SWEEP,
        diagnostics=diagnostics,
    )
    if not candidates:
        raise EngineError(
            normalize_no_path_reason(diagnostics.last_no_path),
            f"no weight combination produced a path between start and end ({diagnostics.last_no_path})",
            {**stats, **diagnostics.as_dict()},
        )

    selected = select_pareto_routes(
        candidates,
        aqi_weight=preferences.aqi_weight,
        distance_weight=preferences.distance_weight,
        max_alternatives=preferences.max_alternatives,
        diagnostics=diagnostics,
    )
    routes = assemble_routes(graph, selected, edge_samples)

    warnings: list[str] = []
    fallback_tiles = {s.tile_key for s in samples if s.fallback}
    if fallback_tiles:
        warnings.append(f"exposure_fallback_tiles:{len(fallback_tiles)}")

    log_event(
        "route_optimization",
        node_count=stats["node_count"],
        edge_count=stats["edge_count"],
        start_node=start_id,
        end_node=end_id,
        tile_count=len({s.tile_key for s in samples}),
        fallback_tile_count=len(fallback_tiles),
        candidate_count=len(candidates),
        route_count=len(routes),
        exposure_ms=round((t_exposure - t0) * 1000, 2),
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
        **diagnostics.as_dict(),
    )
    return OptimizationResult(routes=routes, graph_stats=stats, diagnostics=diagnostics, warnings=warnings)
