# backend/app/routing_osrm.py
from __future__ import annotations

import asyncio
from typing import Any, Final

import httpx

from .models import BaselineRoute, LatLng, RouteSummary


class OSRMError(RuntimeError):
    pass


class OSRMRetryableError(OSRMError):
    """An OSRM error that is likely transient and safe to retry."""

    pass


_RETRYABLE_STATUS: Final[set[int]] = {408, 425, 429, 500, 502, 503, 504}


def _format_osrm_error(resp: httpx.Response) -> str:
    """Best-effort decode of OSRM JSON error payloads."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        code = data.get("code")
        message = data.get("message")
        if code and message:
            return f"OSRM {resp.status_code} {code}: {message}"
        if code or message:
            return f"OSRM {resp.status_code} {code or message}"

    body = (resp.text or "").strip().replace("\n", " ")
    if len(body) > 240:
        body = body[:240] + "..."
    if body:
        return f"OSRM {resp.status_code}: {body}"
    return f"OSRM HTTP {resp.status_code}"


class OSRMClient:
    """Baseline route source: asks OSRM for a route plus alternatives."""

    def __init__(
        self,
        *,
        base_url: str,
        profile: str = "driving",
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.max_retries = max(1, int(max_retries))

        # trust_env=False prevents proxy env vars from hijacking requests to docker service names.
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(30.0, connect=5.0),
            trust_env=False,
            headers={"accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_routes(
        self,
        *,
        origin: LatLng,
        destination: LatLng,
        alternatives: int = 3,
    ) -> list[dict[str, Any]]:
        coords = f"{origin.lng},{origin.lat};{destination.lng},{destination.lat}"
        url = f"{self.base_url}/route/v1/{self.profile}/{coords}"
        params = {
            "overview": "full",
            "geometries": "geojson",
            "alternatives": "true" if alternatives > 1 else "false",
        }

        last_err: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                resp = await self._client.get(url, params=params)

                # Fast-fail on most 4xx: these are usually request errors.
                if 400 <= resp.status_code < 500 and resp.status_code not in _RETRYABLE_STATUS:
                    raise OSRMError(_format_osrm_error(resp))
                if resp.status_code in _RETRYABLE_STATUS:
                    raise OSRMRetryableError(_format_osrm_error(resp))

                resp.raise_for_status()
                try:
                    data = resp.json()
                except ValueError as e:
                    raise OSRMError("OSRM response is not JSON") from e
                if not isinstance(data, dict):
                    raise OSRMError(f"OSRM response is not an object (got {type(data).__name__})")

                if data.get("code") != "Ok":
                    raise OSRMError(f"OSRM error code={data.get('code')} message={data.get('message')}")

                routes = data.get("routes", [])
                if not isinstance(routes, list) or not routes:
                    raise OSRMError("OSRM returned no routes")
                return routes[: max(1, alternatives)]

            except OSRMRetryableError as e:
                last_err = e
            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_err = e
            except httpx.HTTPStatusError as e:
                raise OSRMError(str(e)) from e

            if attempt < self.max_retries - 1:
                await asyncio.sleep(min(0.25 * (2**attempt), 2.0))

        # httpx exceptions can stringify to "" (e.g. some timeouts), so include the type.
        detail = "unknown error" if last_err is None else f"{type(last_err).__name__}: {last_err}"
        raise OSRMError(f"OSRM request failed after {self.max_retries} attempts (base={self.base_url}): {detail}")


def to_baseline_route(route: dict[str, Any]) -> BaselineRoute:
    """Convert one OSRM route (GeoJSON geometry, [lon, lat]) to the baseline shape."""
    geom = route.get("geometry")
    coords = geom.get("coordinates") if isinstance(geom, dict) else None
    if not isinstance(coords, list):
        raise OSRMError("OSRM route missing geometry coordinates")

    points: list[LatLng] = []
    for pt in coords:
        if (
            isinstance(pt, (list, tuple))
            and len(pt) >= 2
            and isinstance(pt[0], (int, float))
            and isinstance(pt[1], (int, float))
        ):
            points.append(LatLng(lat=float(pt[1]), lng=float(pt[0])))
    if len(points) < 2:
        raise OSRMError("OSRM geometry invalid")

    return BaselineRoute(
        coordinates=points,
        summary=RouteSummary(
            total_distance=max(float(route.get("distance", 0.0) or 0.0), 0.0),
            total_time=max(float(route.get("duration", 0.0) or 0.0), 0.0),
        ),
    )
