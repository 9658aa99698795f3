from __future__ import annotations

import abc
import logging
import math
from typing import Any

import httpx

from triproute.core.config import Settings, get_settings
from triproute.core.enums import OsrmProfile, TransportMode
from triproute.core.exceptions import NoRouteFound, ProviderError, ProviderUnavailable, RateLimited
from triproute.services.geometry import decode_polyline
from triproute.services.models import Coordinates, ProviderRoute

logger = logging.getLogger(__name__)

ProviderResult = ProviderRoute | ProviderError


def _safe_float(value: Any) -> float | None:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _lonlat_to_coordinates(raw_coords: Any) -> list[Coordinates] | None:
    if not isinstance(raw_coords, list):
        return None
    points: list[Coordinates] = []
    for item in raw_coords:
        if not isinstance(item, (list, tuple)) or len(item) < 2:
            continue
        lon = _safe_float(item[0])
        lat = _safe_float(item[1])
        if lon is None or lat is None:
            continue
        point = Coordinates(lat=lat, lon=lon)
        if point.is_valid():
            points.append(point)
    return points if len(points) >= 2 else None


def _to_route(distance_m: Any, duration_sec: Any, path: list[Coordinates] | None) -> ProviderRoute | None:
    distance = _safe_float(distance_m)
    duration = _safe_float(duration_sec)
    if distance is None or duration is None or distance < 0 or duration < 0:
        return None
    return ProviderRoute(distance_km=distance / 1000, duration_min=round(duration / 60), path=path)


class RouteProvider(abc.ABC):
    """One external routing backend for one mode family.

    ``fetch`` never raises for backend trouble: failures come back as a
    ``ProviderError`` value so the caller can fall back.
    """

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abc.abstractmethod
    async def fetch(self, origin: Coordinates, destination: Coordinates) -> ProviderResult:
        raise NotImplementedError


class HttpRouteProvider(RouteProvider):
    def __init__(self, *, timeout_sec: float = 8, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.timeout_sec = timeout_sec
        self._transport = transport

    async def _get_json(
        self, url: str, params: dict[str, Any] | None = None, headers: dict[str, str] | None = None
    ) -> Any | ProviderError:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_sec, transport=self._transport) as client:
                response = await client.get(url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            return ProviderUnavailable(self.name, f"Request failed: {exc}")

        if response.status_code == 429:
            return RateLimited(self.name, "Rate limited by routing backend", {"status_code": 429})
        if response.is_error:
            return ProviderUnavailable(
                self.name,
                f"Routing backend returned HTTP {response.status_code}",
                {"status_code": response.status_code},
            )
        try:
            return response.json()
        except ValueError as exc:
            return ProviderUnavailable(self.name, f"Malformed response: {exc}")


class GoogleDirectionsProvider(HttpRouteProvider):
    base_url = "https://maps.googleapis.com/maps/api/directions/json"

    _travel_modes = {
        TransportMode.DRIVING: "driving",
        TransportMode.BICYCLE: "bicycling",
        TransportMode.PUBLIC_TRANSPORT: "transit",
    }

    def __init__(self, api_key: str, mode: TransportMode, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if mode not in self._travel_modes:
            raise ValueError(f"Unsupported Google Directions mode: {mode.value}")
        self.api_key = api_key
        self.mode = mode

    async def fetch(self, origin: Coordinates, destination: Coordinates) -> ProviderResult:
        if not self.api_key:
            return ProviderUnavailable(self.name, "Google Maps API key is not configured")

        params = {
            "origin": f"{origin.lat},{origin.lon}",
            "destination": f"{destination.lat},{destination.lon}",
            "mode": self._travel_modes[self.mode],
            "key": self.api_key,
        }
        payload = await self._get_json(self.base_url, params=params)
        if isinstance(payload, ProviderError):
            return payload
        if not isinstance(payload, dict):
            return ProviderUnavailable(self.name, "Unexpected response payload")

        status = payload.get("status")
        if status in {"ZERO_RESULTS", "NOT_FOUND"}:
            return NoRouteFound(self.name, f"No {self.mode.value} route found", {"status": status})
        if status == "OVER_QUERY_LIMIT":
            return RateLimited(self.name, "Google Directions quota exceeded", {"status": status})
        routes = payload.get("routes")
        if status != "OK" or not isinstance(routes, list) or not routes:
            return ProviderUnavailable(self.name, f"Google Directions status {status}", {"status": status})

        route = _mapping(routes[0])
        legs = route.get("legs")
        leg = _mapping(legs[0]) if isinstance(legs, list) and legs else {}
        encoded = _mapping(route.get("overview_polyline")).get("points")
        try:
            path = decode_polyline(encoded) if isinstance(encoded, str) and encoded else None
        except ValueError:
            path = None

        result = _to_route(
            _mapping(leg.get("distance")).get("value"),
            _mapping(leg.get("duration")).get("value"),
            path,
        )
        if result is None:
            return ProviderUnavailable(self.name, "Route leg is missing distance or duration")
        return result


class KomootProvider(HttpRouteProvider):
    base_url = "https://api.komoot.de/v007/routing"

    def __init__(self, api_key: str, *, sport: str = "hike", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key
        self.sport = sport

    async def fetch(self, origin: Coordinates, destination: Coordinates) -> ProviderResult:
        if not self.api_key:
            return ProviderUnavailable(self.name, "Komoot API key is not configured")

        params = {
            "waypoints": f"{origin.lat},{origin.lon}|{destination.lat},{destination.lon}",
            "sport": self.sport,
            "key": self.api_key,
        }
        payload = await self._get_json(self.base_url, params=params)
        if isinstance(payload, ProviderError):
            return payload
        if not isinstance(payload, dict):
            return ProviderUnavailable(self.name, "Unexpected response payload")

        features = payload.get("features")
        if not isinstance(features, list) or not features or not isinstance(features[0], dict):
            return NoRouteFound(self.name, "No hiking route found")

        feature = features[0]
        properties = _mapping(feature.get("properties"))
        geometry = _mapping(feature.get("geometry"))
        result = _to_route(
            properties.get("distance"),
            properties.get("time"),
            _lonlat_to_coordinates(geometry.get("coordinates")),
        )
        if result is None:
            return ProviderUnavailable(self.name, "Route feature is missing distance or time")
        return result


class OsrmRouteProvider(HttpRouteProvider):
    """Queries each configured OSRM server once, in order, until one answers."""

    def __init__(self, profile: OsrmProfile, base_urls: list[str], *, user_agent: str = "", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.profile = profile
        self.base_urls = list(base_urls)
        self.user_agent = user_agent

    async def _fetch_from(self, base_url: str, origin: Coordinates, destination: Coordinates) -> ProviderResult:
        url = (
            f"{base_url}/route/v1/{self.profile.value}/"
            f"{origin.lon},{origin.lat};{destination.lon},{destination.lat}"
        )
        params = {"overview": "full", "geometries": "geojson", "steps": "false", "alternatives": "false"}
        headers = {"User-Agent": self.user_agent} if self.user_agent else None
        payload = await self._get_json(url, params=params, headers=headers)
        if isinstance(payload, ProviderError):
            return payload
        if not isinstance(payload, dict):
            return ProviderUnavailable(self.name, "Unexpected response payload")

        code = payload.get("code")
        if code == "NoRoute":
            return NoRouteFound(self.name, f"No {self.profile.value} route found", {"server": base_url})
        routes = payload.get("routes")
        if code != "Ok" or not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
            return ProviderUnavailable(self.name, f"OSRM returned code {code}", {"server": base_url})

        route = routes[0]
        result = _to_route(
            route.get("distance"),
            route.get("duration"),
            _lonlat_to_coordinates(_mapping(route.get("geometry")).get("coordinates")),
        )
        if result is None:
            return ProviderUnavailable(self.name, "Route is missing distance or duration", {"server": base_url})
        return result

    async def fetch(self, origin: Coordinates, destination: Coordinates) -> ProviderResult:
        last_error: ProviderError = ProviderUnavailable(self.name, "No OSRM servers configured")
        for index, base_url in enumerate(self.base_urls):
            result = await self._fetch_from(base_url, origin, destination)
            if not isinstance(result, ProviderError):
                return result
            last_error = result
            logger.info(
                "OSRM server failed",
                extra={
                    "server": base_url,
                    "server_index": index + 1,
                    "servers": len(self.base_urls),
                    "profile": self.profile.value,
                    "error": result.code,
                },
            )
        return last_error


class ProviderChain(RouteProvider):
    def __init__(self, providers: list[RouteProvider]) -> None:
        if not providers:
            raise ValueError("ProviderChain needs at least one provider")
        self.providers = list(providers)

    @property
    def name(self) -> str:
        return "+".join(provider.name for provider in self.providers)

    async def fetch(self, origin: Coordinates, destination: Coordinates) -> ProviderResult:
        last_error: ProviderError = ProviderUnavailable(self.name, "Provider chain is empty")
        for index, provider in enumerate(self.providers):
            result = await provider.fetch(origin, destination)
            if not isinstance(result, ProviderError):
                return result
            last_error = result
            if index + 1 < len(self.providers):
                logger.info(
                    "Route provider failed, trying next in chain",
                    extra={
                        "provider": provider.name,
                        "next_provider": self.providers[index + 1].name,
                        "error": result.code,
                    },
                )
        return last_error


def build_default_providers(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[TransportMode, RouteProvider]:
    settings = settings or get_settings()
    http_kwargs: dict[str, Any] = {"timeout_sec": settings.route_request_timeout_sec, "transport": transport}

    def _osrm(profile: OsrmProfile) -> OsrmRouteProvider | None:
        if not settings.osrm_base_urls:
            return None
        return OsrmRouteProvider(
            profile, settings.osrm_base_urls, user_agent=settings.osrm_user_agent, **http_kwargs
        )

    def _google(mode: TransportMode) -> GoogleDirectionsProvider | None:
        if not settings.google_maps_api_key:
            return None
        return GoogleDirectionsProvider(settings.google_maps_api_key, mode, **http_kwargs)

    komoot = KomootProvider(settings.komoot_api_key, **http_kwargs) if settings.komoot_api_key else None
    candidates: dict[TransportMode, list[RouteProvider | None]] = {
        TransportMode.DRIVING: [_google(TransportMode.DRIVING), _osrm(OsrmProfile.CAR)],
        TransportMode.BICYCLE: [_google(TransportMode.BICYCLE), _osrm(OsrmProfile.BIKE)],
        TransportMode.WALKING: [komoot, _osrm(OsrmProfile.FOOT)],
        TransportMode.PUBLIC_TRANSPORT: [_google(TransportMode.PUBLIC_TRANSPORT)],
    }

    providers: dict[TransportMode, RouteProvider] = {}
    for mode, items in candidates.items():
        configured = [item for item in items if item is not None]
        if len(configured) == 1:
            providers[mode] = configured[0]
        elif configured:
            providers[mode] = ProviderChain(configured)
    return providers
