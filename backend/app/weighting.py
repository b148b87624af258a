from __future__ import annotations

from dataclasses import dataclass

from .aqi_providers import AQI_MAX, pollutant_level
from .exposure import ExposureSample
from .route_graph import Edge

MIN_EDGE_WEIGHT = 0.001
HIGH_AQI_PENALTY = 10.0
EXPOSURE_NORMALIZER = 10.0
DISTANCE_NORMALIZER_M = 1000.0

LOW_CONFIDENCE_UPLIFT = 1.1
HIGH_CONFIDENCE_DISCOUNT = 0.95
PARTICULATE_UPLIFT = 1.2


@dataclass(frozen=True)
class WeightPair:
    aqi_weight: float
    distance_weight: float

    def as_dict(self) -> dict[str, float]:
        return {"aqi_weight": self.aqi_weight, "distance_weight": self.distance_weight}


def particulate_level(sample: ExposureSample) -> int:
    """Worse of the PM2.5 and PM10 categories; 0 when neither was reported."""
    levels = [0]
    if sample.pm2_5 is not None:
        levels.append(pollutant_level(sample.pm2_5, "pm2_5"))
    if sample.pm10 is not None:
        levels.append(pollutant_level(sample.pm10, "pm10"))
    return max(levels)


def exposure_dose(edge: Edge, sample: ExposureSample) -> float:
    """AQI level x minutes on the edge, adjusted for estimate quality."""
    dose = float(sample.level) * edge.travel_time_min
    if sample.confidence == "low":
        dose *= LOW_CONFIDENCE_UPLIFT
    elif sample.confidence == "high":
        dose *= HIGH_CONFIDENCE_DISCOUNT
    if particulate_level(sample) >= 4:
        dose *= PARTICULATE_UPLIFT
    return dose


def exceeds_threshold(sample: ExposureSample, max_aqi_threshold: int) -> bool:
    return max_aqi_threshold < AQI_MAX and sample.level > max_aqi_threshold


def composite_weight(
    edge: Edge,
    sample: ExposureSample,
    weights: WeightPair,
    *,
    max_aqi_threshold: int = AQI_MAX,
) -> float:
    """Blend normalised exposure and distance into one positive edge cost.

    Edges above the AQI threshold are penalised rather than removed so the
    graph stays connected.
    """
    normalized_exposure = exposure_dose(edge, sample) / EXPOSURE_NORMALIZER
    normalized_distance = edge.distance_m / DISTANCE_NORMALIZER_M
    if exceeds_threshold(sample, max_aqi_threshold):
        normalized_exposure *= HIGH_AQI_PENALTY
    cost = (normalized_exposure * weights.aqi_weight) + (normalized_distance * weights.distance_weight)
    # NaN fails the comparison and falls through to the floor as well.
    return cost if cost > MIN_EDGE_WEIGHT else MIN_EDGE_WEIGHT
