from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

import httpx

from .aqi_providers import (
    AQI_MAX,
    AQI_MIN,
    AirQualityProvider,
    Confidence,
    ProviderReading,
)
from .engine_errors import ProviderUnavailable
from .exposure_cache import TileCacheStore, new_exposure_cache
from .logging_utils import log_event
from .metrics_store import ProviderStatsStore
from .settings import settings

FALLBACK_LEVEL = 3

_CONFIDENCE_WEIGHT: dict[str, float] = {
    "high": 1.5,
    "medium": 1.0,
    "low": 0.7,
}


@dataclass(frozen=True)
class ExposureSample:
    tile_key: str
    level: int
    confidence: Confidence
    sources: tuple[str, ...]
    timestamp: float
    pm2_5: float | None = None
    pm10: float | None = None
    fallback: bool = False


def tile_key(lat: float, lng: float, tile_size_deg: float = 0.02) -> str:
    return f"{math.floor(lat / tile_size_deg)}_{math.floor(lng / tile_size_deg)}"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def fallback_sample(key: str, *, now: float) -> ExposureSample:
    return ExposureSample(
        tile_key=key,
        level=FALLBACK_LEVEL,
        confidence="low",
        sources=(),
        timestamp=now,
        fallback=True,
    )


def aggregate_readings(
    readings: Sequence[ProviderReading],
    *,
    key: str,
    now: float,
    trust_weights: Mapping[str, float] | None = None,
) -> ExposureSample:
    """Fuse provider readings into one tile estimate.

    Invalid readings are ignored. No readings -> moderate/low fallback; one
    reading -> passed through; several -> confidence and trust weighted mean.
    """
    valid = [r for r in readings if r.is_valid]
    if not valid:
        return fallback_sample(key, now=now)

    pm_values = [r.pm2_5 for r in valid if r.pm2_5 is not None]
    pm2_5 = max(pm_values) if pm_values else None
    pm10_values = [r.pm10 for r in valid if r.pm10 is not None]
    pm10 = max(pm10_values) if pm10_values else None

    if len(valid) == 1:
        only = valid[0]
        return ExposureSample(
            tile_key=key,
            level=only.level,
            confidence=only.confidence,
            sources=(only.provider,),
            timestamp=now,
            pm2_5=pm2_5,
            pm10=pm10,
        )

    trust = trust_weights or {}
    weighted_sum = 0.0
    weight_total = 0.0
    for r in valid:
        w = 1.0 * _CONFIDENCE_WEIGHT.get(r.confidence, 1.0) * float(trust.get(r.provider, 1.0))
        weighted_sum += r.level * w
        weight_total += w
    level = _round_half_up(weighted_sum / weight_total)
    level = max(AQI_MIN, min(AQI_MAX, level))

    # Sources that agree within one level corroborate each other.
    spread = max(r.level for r in valid) - min(r.level for r in valid)
    confidence: Confidence = "high" if spread <= 1 else "medium"

    return ExposureSample(
        tile_key=key,
        level=level,
        confidence=confidence,
        sources=tuple(r.provider for r in valid),
        timestamp=now,
        pm2_5=pm2_5,
        pm10=pm10,
    )


class ExposureEstimator:
    """Resolves coordinates to tile exposure samples.

    Owns nothing global: the tile cache and provider counters are injected so
    callers decide their lifetime (one per app, one per test).
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        providers: Sequence[AirQualityProvider],
        cache: TileCacheStore | None = None,
        provider_stats: ProviderStatsStore | None = None,
        tile_size_deg: float | None = None,
        fallback_ttl_s: float | None = None,
        concurrency: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self.providers = list(providers)
        self.cache = cache if cache is not None else new_exposure_cache()
        self.provider_stats = provider_stats if provider_stats is not None else ProviderStatsStore()
        self.tile_size_deg = float(tile_size_deg or settings.exposure_tile_size_deg)
        self.fallback_ttl_s = float(fallback_ttl_s or settings.exposure_fallback_ttl_s)
        self.concurrency = max(1, int(concurrency or settings.exposure_concurrency))
        self._clock = clock
        self._trust = {p.name: float(p.trust_weight) for p in self.providers}

    def tile_key(self, lat: float, lng: float) -> str:
        return tile_key(lat, lng, self.tile_size_deg)

    async def _fetch_one(
        self,
        provider: AirQualityProvider,
        lat: float,
        lng: float,
        limiter: asyncio.Semaphore | None,
    ) -> ProviderReading | None:
        t0 = time.perf_counter()
        try:
            if limiter is None:
                reading = await provider.fetch(self._client, lat, lng)
            else:
                async with limiter:
                    reading = await provider.fetch(self._client, lat, lng)
        except ProviderUnavailable as exc:
            latency_ms = (time.perf_counter() - t0) * 1000
            self.provider_stats.record_failure(provider.name, latency_ms=latency_ms, error=exc.detail)
            log_event(
                "aqi_provider_unavailable",
                level=logging.WARNING,
                provider=provider.name,
                detail=exc.detail,
                latency_ms=round(latency_ms, 2),
            )
            return None
        self.provider_stats.record_success(provider.name, latency_ms=(time.perf_counter() - t0) * 1000)
        return reading

    async def _query_providers(
        self,
        lat: float,
        lng: float,
        limiter: asyncio.Semaphore | None,
    ) -> list[ProviderReading]:
        results = await asyncio.gather(
            *[self._fetch_one(p, lat, lng, limiter) for p in self.providers],
            return_exceptions=True,
        )
        readings: list[ProviderReading] = []
        for provider, r in zip(self.providers, results, strict=True):
            if isinstance(r, BaseException):
                self.provider_stats.record_failure(provider.name, latency_ms=0.0, error=repr(r))
                log_event(
                    "aqi_provider_error",
                    level=logging.ERROR,
                    provider=provider.name,
                    error_type=type(r).__name__,
                    detail=str(r),
                )
                continue
            if r is not None:
                readings.append(r)
        return readings

    async def estimate(
        self,
        lat: float,
        lng: float,
        *,
        limiter: asyncio.Semaphore | None = None,
    ) -> ExposureSample:
        key = self.tile_key(lat, lng)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        readings = await self._query_providers(lat, lng, limiter)
        sample = aggregate_readings(readings, key=key, now=self._clock(), trust_weights=self._trust)
        if sample.fallback:
            log_event(
                "exposure_fallback",
                level=logging.WARNING,
                tile_key=key,
                provider_count=len(self.providers),
            )
            self.cache.set(key, sample, ttl_s=self.fallback_ttl_s)
        else:
            self.cache.set(key, sample)
        return sample

    async def estimate_many(self, points: Sequence[tuple[float, float]]) -> list[ExposureSample]:
        """Estimate a batch of (lat, lng) points, one lookup per distinct tile.

        Outbound provider calls for the batch share one semaphore so at most
        `concurrency` requests are in flight at once.
        """
        if not points:
            return []
        limiter = asyncio.Semaphore(self.concurrency)

        representative: dict[str, tuple[float, float]] = {}
        keys: list[str] = []
        for lat, lng in points:
            key = self.tile_key(lat, lng)
            keys.append(key)
            representative.setdefault(key, (lat, lng))

        unique_keys = list(representative)
        samples = await asyncio.gather(
            *[self.estimate(*representative[k], limiter=limiter) for k in unique_keys]
        )
        by_key = dict(zip(unique_keys, samples, strict=True))
        return [by_key[k] for k in keys]

    def reset(self) -> None:
        self.cache.reset()
        self.provider_stats.reset()
