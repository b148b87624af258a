from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

import app.routing_osrm as routing_osrm
from app.models import LatLng
from app.routing_osrm import OSRMClient, OSRMError, to_baseline_route

ORIGIN = LatLng(lat=51.5, lng=-0.12)
DESTINATION = LatLng(lat=51.52, lng=-0.08)


def _ok_payload(count: int = 2) -> dict[str, Any]:
    return {
        "code": "Ok",
        "routes": [
            {
                "distance": 3000.0 + i,
                "duration": 400.0,
                "geometry": {"type": "LineString", "coordinates": [[-0.12, 51.5], [-0.1, 51.51], [-0.08, 51.52]]},
            }
            for i in range(count)
        ],
    }


def _fetch(handler, **kwargs: Any) -> list[dict[str, Any]]:  # noqa: ANN001
    async def _run() -> list[dict[str, Any]]:
        client = OSRMClient(base_url="http://osrm.test/", transport=httpx.MockTransport(handler), **kwargs)
        try:
            return await client.fetch_routes(origin=ORIGIN, destination=DESTINATION, alternatives=3)
        finally:
            await client.aclose()

    return asyncio.run(_run())


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _sleep(_seconds: float) -> None:
        return None

    monkeypatch.setattr(routing_osrm.asyncio, "sleep", _sleep)


def test_fetch_routes_builds_lon_lat_url() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_ok_payload())

    routes = _fetch(handler)
    assert len(routes) == 2
    assert seen[0].url.path == "/route/v1/driving/-0.12,51.5;-0.08,51.52"
    assert seen[0].url.params["geometries"] == "geojson"
    assert seen[0].url.params["alternatives"] == "true"


def test_transient_errors_are_retried() -> None:
    attempts = {"n": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        attempts["n"] += 1
        if attempts["n"] < 3:
            return httpx.Response(503, json={"code": "Busy", "message": "try later"})
        return httpx.Response(200, json=_ok_payload(1))

    assert len(_fetch(handler, max_retries=3)) == 1
    assert attempts["n"] == 3


def test_retries_exhausted_raise() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(OSRMError, match="after 2 attempts"):
        _fetch(handler, max_retries=2)


def test_client_errors_fail_fast() -> None:
    attempts = {"n": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        attempts["n"] += 1
        return httpx.Response(400, json={"code": "InvalidQuery", "message": "bad"})

    with pytest.raises(OSRMError, match="InvalidQuery"):
        _fetch(handler, max_retries=3)
    assert attempts["n"] == 1


def test_no_route_code_is_an_error() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": "NoRoute", "message": "Impossible route"})

    with pytest.raises(OSRMError, match="NoRoute"):
        _fetch(handler)


def test_malformed_response_body_is_an_osrm_error() -> None:
    def html(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>proxy</html>")

    with pytest.raises(OSRMError, match="not JSON"):
        _fetch(html)

    def json_list(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=["Ok"])

    with pytest.raises(OSRMError, match="not an object"):
        _fetch(json_list)


def test_to_baseline_route_swaps_to_lat_lng() -> None:
    route = to_baseline_route(_ok_payload(1)["routes"][0])
    assert route.coordinates[0].as_tuple() == (51.5, -0.12)
    assert route.coordinates[-1].as_tuple() == (51.52, -0.08)
    assert route.summary.total_distance == 3000.0
    assert route.summary.total_time == 400.0


def test_to_baseline_route_rejects_bad_geometry() -> None:
    with pytest.raises(OSRMError):
        to_baseline_route({"geometry": {"coordinates": [[-0.12, 51.5]]}})
    with pytest.raises(OSRMError):
        to_baseline_route({"geometry": None})
