from __future__ import annotations

import math
from collections.abc import Sequence

from .exposure import ExposureEstimator
from .health import health_recommendation
from .models import BaselineRoute, OptimizedRoute, RoutePreferences
from .settings import settings

BALANCED_AQI_SHARE = 0.7
BALANCED_DISTANCE_SHARE = 0.3
HIGH_AQI_AVERAGE = 4.0
UNKNOWN_AQI_SCORE = 5.0


def sample_indices(point_count: int, max_samples: int) -> list[int]:
    if point_count <= 0:
        return []
    step = max(1, math.ceil(point_count / max(1, max_samples)))
    return list(range(0, point_count, step))


def pick_best_baseline(
    avg_aqis: Sequence[float | None],
    distances_m: Sequence[float],
    *,
    mode: str,
    avoid_high_aqi: bool,
) -> int | None:
    """Index of the best baseline route for the mode, or None.

    The best score seen so far is tracked explicitly rather than read back
    through the route list.
    """
    best_index: int | None = None
    best_score = math.inf
    for idx, (avg_aqi, distance_m) in enumerate(zip(avg_aqis, distances_m, strict=True)):
        if avoid_high_aqi and avg_aqi is not None and avg_aqi >= HIGH_AQI_AVERAGE:
            continue
        if mode == "aqi":
            if avg_aqi is None:
                continue
            score = avg_aqi
        elif mode == "distance":
            score = distance_m
        else:
            aqi_score = avg_aqi if avg_aqi is not None else UNKNOWN_AQI_SCORE
            score = (aqi_score * BALANCED_AQI_SHARE) + ((distance_m / 1000.0) * BALANCED_DISTANCE_SHARE)
        if score < best_score:
            best_score = score
            best_index = idx
    return best_index


async def score_baseline_routes(
    routes: Sequence[BaselineRoute],
    preferences: RoutePreferences,
    estimator: ExposureEstimator | None,
    *,
    max_samples: int | None = None,
) -> list[OptimizedRoute]:
    """Present baseline routes unmodified, annotated with sampled AQI."""
    n_samples = int(max_samples or settings.baseline_aqi_sample_points)
    avg_aqis: list[float | None] = []
    for route in routes:
        avg: float | None = None
        if estimator is not None:
            points = [route.coordinates[i].as_tuple() for i in sample_indices(len(route.coordinates), n_samples)]
            samples = await estimator.estimate_many(points)
            levels = [s.level for s in samples if not s.fallback]
            avg = sum(levels) / len(levels) if levels else None
        avg_aqis.append(avg)

    best = pick_best_baseline(
        avg_aqis,
        [r.summary.total_distance for r in routes],
        mode=preferences.route_type,
        avoid_high_aqi=preferences.avoid_high_aqi,
    )
    return [
        OptimizedRoute(
            coordinates=list(route.coordinates),
            total_distance=route.summary.total_distance,
            total_time=route.summary.total_time,
            avg_aqi=round(avg, 3) if avg is not None else None,
            route_type="baseline",
            pareto_rank=idx + 1,
            health_advice=health_recommendation(avg),
            is_recommended=idx == best,
        )
        for idx, (route, avg) in enumerate(zip(routes, avg_aqis, strict=True))
    ]
