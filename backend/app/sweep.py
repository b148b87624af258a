from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace

from .aqi_providers import AQI_MAX
from .exposure import ExposureSample, fallback_sample
from .logging_utils import log_event
from .pareto import dedupe_similar, pareto_filter
from .route_graph import EdgeKey, RouteGraph, edge_key
from .shortest_path import PathNotFoundError, dijkstra_shortest_path, weighted_adjacency
from .weighting import WeightPair, composite_weight, exposure_dose

# Pure exposure minimisation through to pure distance minimisation.
WEIGHT_SWEEP: tuple[WeightPair, ...] = (
    WeightPair(aqi_weight=1.0, distance_weight=0.0),
    WeightPair(aqi_weight=0.8, distance_weight=0.2),
    WeightPair(aqi_weight=0.6, distance_weight=0.4),
    WeightPair(aqi_weight=0.4, distance_weight=0.6),
    WeightPair(aqi_weight=0.0, distance_weight=1.0),
)

DUPLICATE_REL_TOL = 0.05

_MISSING_SAMPLE = fallback_sample("", now=0.0)


@dataclass(frozen=True)
class CandidateRoute:
    node_path: tuple[int, ...]
    total_distance_m: float
    total_time_s: float
    total_exposure_dose: float
    weight_combination: WeightPair
    solver_cost: float
    pareto_rank: int | None = None

    def objectives(self) -> tuple[float, float]:
        return (self.total_distance_m, self.total_exposure_dose)


@dataclass
class SweepDiagnostics:
    combinations_tried: int = 0
    paths_found: int = 0
    no_path_count: int = 0
    duplicates_removed: int = 0
    dominated_removed: int = 0
    explored_states: int = 0
    last_no_path: str = ""

    def as_dict(self) -> dict[str, int | str]:
        return dict(vars(self))


def _sample(edge_samples: Mapping[EdgeKey, ExposureSample], a: int, b: int) -> ExposureSample:
    return edge_samples.get(edge_key(a, b), _MISSING_SAMPLE)


def evaluate_path(
    graph: RouteGraph,
    node_path: Sequence[int],
    edge_samples: Mapping[EdgeKey, ExposureSample],
    *,
    weights: WeightPair,
    solver_cost: float,
) -> CandidateRoute:
    total_distance = 0.0
    total_time = 0.0
    total_exposure = 0.0
    for a, b in zip(node_path, node_path[1:]):
        edge = graph.adjacency[a][b]
        total_distance += edge.distance_m
        total_time += edge.travel_time_s
        total_exposure += exposure_dose(edge, _sample(edge_samples, a, b))
    return CandidateRoute(
        node_path=tuple(node_path),
        total_distance_m=total_distance,
        total_time_s=total_time,
        total_exposure_dose=total_exposure,
        weight_combination=weights,
        solver_cost=solver_cost,
    )


def run_weight_sweep(
    graph: RouteGraph,
    *,
    start: int,
    goal: int,
    edge_samples: Mapping[EdgeKey, ExposureSample],
    max_aqi_threshold: int = AQI_MAX,
    combinations: Sequence[WeightPair] = WEIGHT_SWEEP,
    diagnostics: SweepDiagnostics | None = None,
) -> list[CandidateRoute]:
    """Solve once per weight pair; combinations without a path are skipped."""
    diag = diagnostics if diagnostics is not None else SweepDiagnostics()
    explored = [0]
    candidates: list[CandidateRoute] = []

    for weights in combinations:
        diag.combinations_tried += 1

        def _weight(a: int, b: int, _w: WeightPair = weights) -> float:
            return composite_weight(
                graph.adjacency[a][b],
                _sample(edge_samples, a, b),
                _w,
                max_aqi_threshold=max_aqi_threshold,
            )

        adjacency = weighted_adjacency(graph.adjacency, _weight)
        try:
            result = dijkstra_shortest_path(
                adjacency=adjacency,
                start=start,
                goal=goal,
                explored_counter=explored,
            )
        except PathNotFoundError as exc:
            diag.no_path_count += 1
            diag.last_no_path = str(exc)
            log_event(
                "sweep_no_path",
                level=logging.WARNING,
                weights=weights.as_dict(),
                reason=str(exc),
            )
            continue

        diag.paths_found += 1
        candidates.append(
            evaluate_path(
                graph,
                result.nodes,
                edge_samples,
                weights=weights,
                solver_cost=result.cost,
            )
        )

    diag.explored_states += explored[0]
    return candidates


def preference_score(candidate: CandidateRoute, *, aqi_weight: float, distance_weight: float) -> float:
    """Lower is better."""
    return (candidate.total_exposure_dose * aqi_weight) + (
        (candidate.total_distance_m / 1000.0) * distance_weight
    )


def select_pareto_routes(
    candidates: Sequence[CandidateRoute],
    *,
    aqi_weight: float,
    distance_weight: float,
    max_alternatives: int = 5,
    diagnostics: SweepDiagnostics | None = None,
) -> list[CandidateRoute]:
    """Dedupe near-identical results, drop dominated ones, rank the rest.

    Ranking uses the caller's preference score; ties keep sweep order.
    """
    unique = dedupe_similar(candidates, key=CandidateRoute.objectives, rel_tol=DUPLICATE_REL_TOL)
    frontier = pareto_filter(unique, key=CandidateRoute.objectives)
    if diagnostics is not None:
        diagnostics.duplicates_removed += len(candidates) - len(unique)
        diagnostics.dominated_removed += len(unique) - len(frontier)

    ranked = sorted(
        frontier,
        key=lambda c: preference_score(c, aqi_weight=aqi_weight, distance_weight=distance_weight),
    )
    top = ranked[: max(1, int(max_alternatives))]
    return [replace(c, pareto_rank=idx + 1) for idx, c in enumerate(top)]


def route_type_label(weights: WeightPair | None) -> str:
    if weights is None:
        return "balanced"
    if weights.aqi_weight >= 0.9:
        return "aqi-optimized"
    if weights.aqi_weight >= 0.7:
        return "aqi-focused"
    if weights.distance_weight >= 0.9:
        return "distance-optimized"
    if weights.distance_weight >= 0.7:
        return "distance-focused"
    return "balanced"
