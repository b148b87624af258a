from __future__ import annotations

import time
import uuid
from collections.abc import Sequence
from contextlib import asynccontextmanager
from typing import Annotated

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .aqi_providers import build_providers
from .baseline_scoring import score_baseline_routes
from .engine import optimize_routes
from .engine_errors import EngineError, normalize_reason_code
from .exposure import ExposureEstimator
from .health import health_recommendation
from .logging_utils import configure_logging, log_event, request_context
from .metrics_store import metrics_snapshot, record_request
from .models import (
    BaselineRoute,
    ExposureResponse,
    GraphStats,
    LatLng,
    ODOptimizeRequest,
    OptimizeRequest,
    OptimizeResponse,
    RoutePreferences,
)
from .routing_osrm import OSRMClient, OSRMError, to_baseline_route
from .settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    app.state.osrm = OSRMClient(
        base_url=settings.osrm_base_url,
        profile=settings.osrm_profile,
        max_retries=settings.osrm_max_retries,
    )
    app.state.aqi_http = httpx.AsyncClient(headers={"accept": "application/json"})
    app.state.estimator = ExposureEstimator(client=app.state.aqi_http, providers=build_providers())
    yield
    await app.state.aqi_http.aclose()
    await app.state.osrm.aclose()


app = FastAPI(title="Clean-Air Route Optimiser", version="0.3.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def osrm_client(request: Request) -> OSRMClient:
    osrm: OSRMClient | None = getattr(request.app.state, "osrm", None)
    if osrm is None:
        raise HTTPException(status_code=503, detail="OSRM client not initialised")
    return osrm


def exposure_estimator(request: Request) -> ExposureEstimator:
    estimator: ExposureEstimator | None = getattr(request.app.state, "estimator", None)
    if estimator is None:
        raise HTTPException(status_code=503, detail="exposure estimator not initialised")
    return estimator


OSRMDep = Annotated[OSRMClient, Depends(osrm_client)]
EstimatorDep = Annotated[ExposureEstimator, Depends(exposure_estimator)]


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Backend is running. Visit /docs for the API UI.", "docs": "/docs"}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


async def _optimize_or_fallback(
    *,
    endpoint: str,
    baseline_routes: Sequence[BaselineRoute],
    start: LatLng,
    end: LatLng,
    preferences: RoutePreferences,
    estimator: ExposureEstimator,
) -> OptimizeResponse:
    request_id = str(uuid.uuid4())
    with request_context(request_id, endpoint):
        t0 = time.perf_counter()

        try:
            result = await optimize_routes(
                baseline_routes=baseline_routes,
                start=start,
                end=end,
                preferences=preferences,
                estimator=estimator,
            )
        except EngineError as e:
            reason = normalize_reason_code(e.reason_code)
            routes = await score_baseline_routes(baseline_routes, preferences, estimator)
            details = e.details or {}
            duration_ms = round((time.perf_counter() - t0) * 1000, 2)
            log_event(
                "optimize_fallback",
                reason_code=reason,
                detail=str(e),
                baseline_count=len(baseline_routes),
                duration_ms=duration_ms,
            )
            record_request(endpoint, duration_ms=duration_ms, error=True)
            return OptimizeResponse(
                routes=routes,
                graph_stats=GraphStats(
                    node_count=int(details.get("node_count", 0)),
                    edge_count=int(details.get("edge_count", 0)),
                ),
                fallback_used=True,
                fallback_reason=reason,
                warnings=[str(e)],
            )

        duration_ms = round((time.perf_counter() - t0) * 1000, 2)
        log_event(
            "optimize_request",
            preferences=preferences.model_dump(),
            start=start.model_dump(),
            end=end.model_dump(),
            baseline_count=len(baseline_routes),
            route_count=len(result.routes),
            duration_ms=duration_ms,
        )
        record_request(endpoint, duration_ms=duration_ms)
        return OptimizeResponse(
            routes=result.routes,
            graph_stats=GraphStats(**result.graph_stats),
            warnings=result.warnings,
            diagnostics=result.diagnostics.as_dict(),
        )


@app.post("/routes/optimize", response_model=OptimizeResponse)
async def optimize(req: OptimizeRequest, estimator: EstimatorDep) -> OptimizeResponse:
    start, end = req.resolved_endpoints()
    return await _optimize_or_fallback(
        endpoint="/routes/optimize",
        baseline_routes=req.baseline_routes,
        start=start,
        end=end,
        preferences=req.preferences,
        estimator=estimator,
    )


@app.post("/routes/optimize/od", response_model=OptimizeResponse)
async def optimize_od(req: ODOptimizeRequest, osrm: OSRMDep, estimator: EstimatorDep) -> OptimizeResponse:
    try:
        raw = await osrm.fetch_routes(
            origin=req.origin,
            destination=req.destination,
            alternatives=req.max_baseline_routes,
        )
        baselines = [to_baseline_route(r) for r in raw]
    except OSRMError as e:
        record_request("/routes/optimize/od", duration_ms=0.0, error=True)
        raise HTTPException(status_code=502, detail=str(e)) from e

    return await _optimize_or_fallback(
        endpoint="/routes/optimize/od",
        baseline_routes=baselines,
        start=req.origin,
        end=req.destination,
        preferences=req.preferences,
        estimator=estimator,
    )


@app.get("/exposure", response_model=ExposureResponse)
async def exposure(
    estimator: EstimatorDep,
    lat: Annotated[float, Query(ge=-90, le=90)],
    lng: Annotated[float, Query(ge=-180, le=180)],
) -> ExposureResponse:
    sample = await estimator.estimate(lat, lng)
    return ExposureResponse(
        tile_key=sample.tile_key,
        level=sample.level,
        confidence=sample.confidence,
        sources=list(sample.sources),
        fallback=sample.fallback,
        pm2_5=sample.pm2_5,
        pm10=sample.pm10,
        health_advice=health_recommendation(sample.level),
    )


@app.get("/cache/stats")
async def cache_stats(estimator: EstimatorDep) -> dict[str, int | float]:
    return estimator.cache.snapshot()


@app.delete("/cache")
async def clear_cache(estimator: EstimatorDep) -> dict[str, int]:
    return {"cleared": estimator.cache.clear()}


@app.get("/providers/stats")
async def provider_stats(estimator: EstimatorDep) -> dict[str, object]:
    return {
        "configured": [p.name for p in estimator.providers],
        "providers": estimator.provider_stats.snapshot(),
    }


@app.get("/metrics")
async def metrics() -> dict[str, object]:
    return metrics_snapshot()
