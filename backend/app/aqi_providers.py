from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Final, Literal

import httpx

from .engine_errors import ProviderUnavailable
from .settings import Settings, settings

Confidence = Literal["low", "medium", "high"]

AQI_UNAVAILABLE: Final[int] = -1
AQI_MIN: Final[int] = 1
AQI_MAX: Final[int] = 5

# Upper bounds of a 0-500 style index mapped onto the 1-5 scale.
_INDEX_BREAKPOINTS: Final[tuple[tuple[float, int], ...]] = (
    (50.0, 1),
    (100.0, 2),
    (150.0, 3),
    (200.0, 4),
)

_PM25_BREAKPOINTS: Final[tuple[tuple[float, int], ...]] = (
    (12.0, 1),
    (35.4, 2),
    (55.4, 3),
    (150.4, 4),
)

_PM10_BREAKPOINTS: Final[tuple[tuple[float, int], ...]] = (
    (54.0, 1),
    (154.0, 2),
    (254.0, 3),
    (354.0, 4),
)


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if math.isfinite(out) else None


def _bucket(value: float, breakpoints: tuple[tuple[float, int], ...]) -> int:
    for upper, level in breakpoints:
        if value <= upper:
            return level
    return AQI_MAX


def index_to_level(value: Any) -> int:
    """Map a 0-500 style index (US EPA / WAQI) onto the 1-5 scale."""
    v = _to_float(value)
    if v is None or v <= 0:
        return AQI_UNAVAILABLE
    return _bucket(v, _INDEX_BREAKPOINTS)


def native_level(value: Any) -> int:
    """Validate a value already reported on the 1-5 scale."""
    v = _to_float(value)
    if v is None or v <= 0:
        return AQI_UNAVAILABLE
    level = int(round(v))
    if level < AQI_MIN or level > AQI_MAX:
        return AQI_UNAVAILABLE
    return level


def pollutant_level(value: Any, pollutant: str) -> int:
    """Categorise a pollutant concentration (ug/m3) onto the 1-5 scale."""
    v = _to_float(value)
    if v is None or v < 0:
        return AQI_MIN
    if pollutant == "pm2_5":
        return _bucket(v, _PM25_BREAKPOINTS)
    if pollutant == "pm10":
        return _bucket(v, _PM10_BREAKPOINTS)
    return 3


@dataclass(frozen=True)
class ProviderReading:
    """One provider's answer, already normalised to the common scale."""

    provider: str
    level: int
    confidence: Confidence
    raw_value: float
    pm2_5: float | None = None
    pm10: float | None = None

    @property
    def is_valid(self) -> bool:
        return AQI_MIN <= self.level <= AQI_MAX


class AirQualityProvider:
    name: str = "provider"
    # Empirical accuracy boost applied during aggregation.
    trust_weight: float = 1.0

    def __init__(self, *, timeout_s: float) -> None:
        self.timeout_s = float(timeout_s)

    def request(self, lat: float, lng: float) -> tuple[str, dict[str, str]]:
        raise NotImplementedError

    def parse(self, payload: Any) -> ProviderReading:
        raise NotImplementedError

    def _unavailable(self, detail: str) -> ProviderUnavailable:
        return ProviderUnavailable(self.name, detail)

    async def fetch(self, client: httpx.AsyncClient, lat: float, lng: float) -> ProviderReading:
        url, params = self.request(lat, lng)
        try:
            resp = await client.get(url, params=params, timeout=self.timeout_s)
        except httpx.TimeoutException as exc:
            raise self._unavailable(f"timeout ({type(exc).__name__})") from exc
        except httpx.HTTPError as exc:
            raise self._unavailable(f"{type(exc).__name__}: {exc}") from exc

        if not resp.is_success:
            raise self._unavailable(f"HTTP {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise self._unavailable("response is not JSON") from exc

        reading = self.parse(payload)
        if not reading.is_valid:
            raise self._unavailable(f"invalid value {reading.raw_value!r}")
        return reading


class OpenWeatherProvider(AirQualityProvider):
    """OpenWeather air pollution API; reports natively on the 1-5 scale."""

    name = "openweather"
    trust_weight = 1.3

    def __init__(self, *, api_key: str, url: str, timeout_s: float) -> None:
        super().__init__(timeout_s=timeout_s)
        self._api_key = api_key
        self._url = url

    def request(self, lat: float, lng: float) -> tuple[str, dict[str, str]]:
        return self._url, {"lat": f"{lat:.5f}", "lon": f"{lng:.5f}", "appid": self._api_key}

    def parse(self, payload: Any) -> ProviderReading:
        try:
            item = payload["list"][0]
            raw = item["main"]["aqi"]
        except (KeyError, IndexError, TypeError) as exc:
            raise self._unavailable("payload missing list[0].main.aqi") from exc
        components = item.get("components") if isinstance(item, dict) else None
        if not isinstance(components, dict):
            components = {}
        return ProviderReading(
            provider=self.name,
            level=native_level(raw),
            confidence="high",
            raw_value=_to_float(raw) or 0.0,
            pm2_5=_to_float(components.get("pm2_5")),
            pm10=_to_float(components.get("pm10")),
        )


class WaqiProvider(AirQualityProvider):
    """World Air Quality Index station feed (0-500 index)."""

    name = "waqi"
    trust_weight = 1.2

    def __init__(self, *, token: str, url: str, timeout_s: float) -> None:
        super().__init__(timeout_s=timeout_s)
        self._token = token
        self._url = url

    def request(self, lat: float, lng: float) -> tuple[str, dict[str, str]]:
        return self._url.format(lat=f"{lat:.5f}", lng=f"{lng:.5f}"), {"token": self._token}

    def parse(self, payload: Any) -> ProviderReading:
        if not isinstance(payload, dict) or payload.get("status") != "ok":
            status = payload.get("status") if isinstance(payload, dict) else None
            raise self._unavailable(f"status={status!r}")
        data = payload.get("data")
        if not isinstance(data, dict):
            raise self._unavailable("payload missing data")
        # Stations without a current reading report aqi as "-".
        raw = data.get("aqi")
        return ProviderReading(
            provider=self.name,
            level=index_to_level(raw),
            confidence="medium",
            raw_value=_to_float(raw) or 0.0,
        )


class OpenMeteoProvider(AirQualityProvider):
    """Open-Meteo modelled air quality (US AQI 0-500 plus PM2.5); needs no key."""

    name = "open_meteo"
    trust_weight = 1.0

    def __init__(self, *, url: str, timeout_s: float) -> None:
        super().__init__(timeout_s=timeout_s)
        self._url = url

    def request(self, lat: float, lng: float) -> tuple[str, dict[str, str]]:
        return self._url, {
            "latitude": f"{lat:.5f}",
            "longitude": f"{lng:.5f}",
            "current": "us_aqi,pm2_5,pm10",
        }

    def parse(self, payload: Any) -> ProviderReading:
        current = payload.get("current") if isinstance(payload, dict) else None
        if not isinstance(current, dict):
            raise self._unavailable("payload missing current")
        raw = current.get("us_aqi")
        return ProviderReading(
            provider=self.name,
            level=index_to_level(raw),
            confidence="low",
            raw_value=_to_float(raw) or 0.0,
            pm2_5=_to_float(current.get("pm2_5")),
            pm10=_to_float(current.get("pm10")),
        )


def build_providers(config: Settings | None = None) -> list[AirQualityProvider]:
    """Instantiate the enabled providers that have the credentials they need."""
    cfg = config or settings
    timeout_s = cfg.provider_request_timeout_s
    providers: list[AirQualityProvider] = []
    for name in cfg.enabled_provider_names():
        if name == "openweather" and cfg.openweather_api_key:
            providers.append(
                OpenWeatherProvider(
                    api_key=cfg.openweather_api_key,
                    url=cfg.openweather_air_pollution_url,
                    timeout_s=timeout_s,
                )
            )
        elif name == "waqi" and cfg.waqi_api_token:
            providers.append(WaqiProvider(token=cfg.waqi_api_token, url=cfg.waqi_feed_url, timeout_s=timeout_s))
        elif name == "open_meteo":
            providers.append(OpenMeteoProvider(url=cfg.open_meteo_air_quality_url, timeout_s=timeout_s))
    return providers
