from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from app.aqi_providers import (
    AQI_UNAVAILABLE,
    OpenMeteoProvider,
    OpenWeatherProvider,
    WaqiProvider,
    build_providers,
    index_to_level,
    native_level,
    pollutant_level,
)
from app.engine_errors import ProviderUnavailable
from app.settings import Settings


def _client(handler) -> httpx.AsyncClient:  # noqa: ANN001
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _fetch(provider, handler) -> Any:  # noqa: ANN001
    async def _run() -> Any:
        async with _client(handler) as client:
            return await provider.fetch(client, 51.5, -0.12)

    return asyncio.run(_run())


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (1, 1),
        (50, 1),
        (50.5, 2),
        (100, 2),
        (150, 3),
        (200, 4),
        (201, 5),
        (499, 5),
        (0, AQI_UNAVAILABLE),
        (-3, AQI_UNAVAILABLE),
        ("-", AQI_UNAVAILABLE),
        (None, AQI_UNAVAILABLE),
    ],
)
def test_index_breakpoints(value: Any, expected: int) -> None:
    assert index_to_level(value) == expected


def test_native_level_rejects_out_of_scale_values() -> None:
    assert native_level(3) == 3
    assert native_level(0) == AQI_UNAVAILABLE
    assert native_level(7) == AQI_UNAVAILABLE
    assert native_level("x") == AQI_UNAVAILABLE


def test_pollutant_level_categories() -> None:
    assert pollutant_level(10.0, "pm2_5") == 1
    assert pollutant_level(40.0, "pm2_5") == 3
    assert pollutant_level(100.0, "pm2_5") == 4
    assert pollutant_level(300.0, "pm2_5") == 5
    assert pollutant_level(200.0, "pm10") == 3
    assert pollutant_level(None, "pm2_5") == 1


def test_openweather_parses_native_scale_and_components() -> None:
    seen: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(dict(request.url.params))
        body = {"list": [{"main": {"aqi": 4}, "components": {"pm2_5": 61.2, "pm10": 88.0}}]}
        return httpx.Response(200, json=body)

    provider = OpenWeatherProvider(api_key="k", url="https://aq.example/air_pollution", timeout_s=2.0)
    reading = _fetch(provider, handler)
    assert reading.provider == "openweather"
    assert reading.level == 4
    assert reading.confidence == "high"
    assert reading.pm2_5 == pytest.approx(61.2)
    assert reading.pm10 == pytest.approx(88.0)
    assert seen["appid"] == "k"
    assert seen["lat"] == "51.50000"


def test_waqi_maps_index_and_rejects_missing_station_value() -> None:
    provider = WaqiProvider(token="t", url="https://waqi.example/feed/geo:{lat};{lng}/", timeout_s=2.0)

    def ok(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/feed/geo:51.50000;-0.12000/"
        return httpx.Response(200, json={"status": "ok", "data": {"aqi": 120}})

    reading = _fetch(provider, ok)
    assert reading.level == 3
    assert reading.confidence == "medium"

    def dash(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "ok", "data": {"aqi": "-"}})

    with pytest.raises(ProviderUnavailable):
        _fetch(provider, dash)

    def error_status(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "error", "data": "Invalid key"})

    with pytest.raises(ProviderUnavailable):
        _fetch(provider, error_status)


def test_open_meteo_reads_current_us_aqi() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"current": {"us_aqi": 42, "pm2_5": 8.5, "pm10": 14.0}})

    reading = _fetch(OpenMeteoProvider(url="https://om.example/air-quality", timeout_s=2.0), handler)
    assert reading.level == 1
    assert reading.confidence == "low"
    assert reading.pm2_5 == pytest.approx(8.5)
    assert reading.pm10 == pytest.approx(14.0)


def test_non_success_status_and_transport_errors_raise_provider_unavailable() -> None:
    provider = OpenMeteoProvider(url="https://om.example/air-quality", timeout_s=2.0)

    def server_error(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="busy")

    with pytest.raises(ProviderUnavailable) as exc_info:
        _fetch(provider, server_error)
    assert exc_info.value.provider == "open_meteo"
    assert "503" in exc_info.value.detail

    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ProviderUnavailable) as exc_info:
        _fetch(provider, timeout)
    assert "timeout" in exc_info.value.detail

    def not_json(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    with pytest.raises(ProviderUnavailable):
        _fetch(provider, not_json)


def test_zero_value_is_treated_as_invalid() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"list": [{"main": {"aqi": 0}}]})

    provider = OpenWeatherProvider(api_key="k", url="https://aq.example/air_pollution", timeout_s=2.0)
    with pytest.raises(ProviderUnavailable):
        _fetch(provider, handler)


def test_build_providers_skips_unkeyed_providers() -> None:
    cfg = Settings(AQI_PROVIDERS_ENABLED="openweather,waqi,open_meteo")
    cfg.openweather_api_key = ""
    cfg.waqi_api_token = ""
    assert [p.name for p in build_providers(cfg)] == ["open_meteo"]

    cfg.openweather_api_key = "k"
    cfg.waqi_api_token = "t"
    providers = build_providers(cfg)
    assert [p.name for p in providers] == ["openweather", "waqi", "open_meteo"]
    assert [p.trust_weight for p in providers] == [1.3, 1.2, 1.0]
