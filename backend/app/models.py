from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from .settings import settings

HealthRisk = Literal["very_low", "low", "moderate", "high", "very_high"]
ExposureConfidence = Literal["low", "medium", "high"]


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    @model_validator(mode="before")
    @classmethod
    def accept_lon_alias(cls, value: object) -> object:
        if isinstance(value, dict) and "lng" not in value and "lon" in value:
            data = dict(value)
            data["lng"] = data.pop("lon")
            return data
        return value

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lng)


class RouteSummary(BaseModel):
    total_distance: float = Field(..., ge=0, description="metres")
    total_time: float = Field(..., ge=0, description="seconds")


class BaselineRoute(BaseModel):
    """A candidate route from the baseline router, used as graph input."""

    coordinates: list[LatLng] = Field(..., min_length=2)
    summary: RouteSummary


class RoutePreferences(BaseModel):
    """User preference weights for ranking the final route set."""

    aqi_weight: float = Field(default=0.7, ge=0)
    distance_weight: float = Field(default=0.3, ge=0)
    max_aqi_threshold: int = Field(default=5, ge=1, le=5)
    max_alternatives: int = Field(default_factory=lambda: settings.max_alternatives, ge=1, le=20)
    route_type: Literal["aqi", "distance", "balanced"] = "balanced"

    @field_validator("aqi_weight", "distance_weight")
    @classmethod
    def finite(cls, v: float) -> float:
        if v != v or v in (float("inf"), float("-inf")):
            raise ValueError("weight must be finite")
        return v

    @property
    def avoid_high_aqi(self) -> bool:
        return self.max_aqi_threshold < 5


class OptimizeRequest(BaseModel):
    baseline_routes: list[BaselineRoute] = Field(..., min_length=1, max_length=12)
    start: LatLng | None = None
    end: LatLng | None = None
    preferences: RoutePreferences = Field(default_factory=RoutePreferences)

    def resolved_endpoints(self) -> tuple[LatLng, LatLng]:
        first = self.baseline_routes[0].coordinates
        return (self.start or first[0], self.end or first[-1])


class ODOptimizeRequest(BaseModel):
    origin: LatLng
    destination: LatLng
    max_baseline_routes: int = Field(default=3, ge=1, le=5)
    preferences: RoutePreferences = Field(default_factory=RoutePreferences)


class WeightCombination(BaseModel):
    aqi_weight: float
    distance_weight: float


class OptimizedRoute(BaseModel):
    coordinates: list[LatLng]
    total_distance: float
    total_time: float
    total_exposure_dose: float | None = None
    avg_aqi: float | None = None
    peak_aqi: int | None = None
    weight_combination: WeightCombination | None = None
    route_type: str
    pareto_rank: int = Field(..., ge=1)
    health_risk: HealthRisk | None = None
    health_advice: str | None = None
    is_recommended: bool = False


class GraphStats(BaseModel):
    node_count: int = 0
    edge_count: int = 0


class OptimizeResponse(BaseModel):
    routes: list[OptimizedRoute]
    graph_stats: GraphStats = Field(default_factory=GraphStats)
    fallback_used: bool = False
    fallback_reason: str | None = None
    warnings: list[str] = Field(default_factory=list)
    diagnostics: dict[str, int | float | str] = Field(default_factory=dict)


class ExposureResponse(BaseModel):
    tile_key: str
    level: int
    confidence: ExposureConfidence
    sources: list[str]
    fallback: bool
    pm2_5: float | None = None
    pm10: float | None = None
    health_advice: str
