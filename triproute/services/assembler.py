from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import replace

from triproute.core.config import Settings, get_settings
from triproute.core.enums import TransportMode
from triproute.core.exceptions import (
    CalculationCancelledError,
    MissingCoordinatesError,
    ProviderError,
    ProviderUnavailable,
)
from triproute.services.cache import RouteCache, SegmentStore
from triproute.services.fallback import FallbackEstimator
from triproute.services.models import CacheKey, ProviderRoute, RouteSegment, Stop, TripRouteCalculation
from triproute.integrations.redis import get_redis
from triproute.services.providers import ProviderResult, RouteProvider, build_default_providers
from triproute.services.resolver import EXCURSION_MODES, TransportModeResolver, infer_transport_mode

logger = logging.getLogger(__name__)


def with_fallback(
    result: ProviderResult,
    origin: Stop,
    destination: Stop,
    mode: TransportMode,
    estimator: FallbackEstimator,
) -> RouteSegment:
    """Bind a provider result to its stops, or estimate the leg if the provider failed."""
    if isinstance(result, ProviderError):
        logger.warning(
            "Route provider failed, using fallback estimate",
            extra={
                "provider": result.provider,
                "mode": mode.value,
                "origin_id": origin.id,
                "destination_id": destination.id,
                "error": result.code,
                "reason": result.message,
            },
        )
        return estimator.estimate(origin, destination, mode)
    return _bind_route(result, origin, destination, mode)


def _bind_route(route: ProviderRoute, origin: Stop, destination: Stop, mode: TransportMode) -> RouteSegment:
    return RouteSegment(
        origin=origin,
        destination=destination,
        mode=mode,
        distance_km=max(route.distance_km, 0.0),
        duration_min=max(route.duration_min, 0),
        path=route.path,
    )


def car_accessible_indices(modes: list[TransportMode]) -> list[int]:
    """Indices of stops a car can reach: the first stop and every stop entered by a driving leg."""
    return [0] + [index + 1 for index, mode in enumerate(modes) if mode == TransportMode.DRIVING]


def continuity_gaps(modes: list[TransportMode]) -> list[tuple[int, int]]:
    """Pairs of car-accessible stops separated by a walking or cycling detour.

    ``modes[i]`` is the mode of the leg arriving at stop ``i + 1``.
    """
    accessible = car_accessible_indices(modes)
    gaps: list[tuple[int, int]] = []
    for start, end in zip(accessible, accessible[1:]):
        if end - start < 2:
            continue
        skipped_arrivals = modes[start : end - 1]
        if any(mode in EXCURSION_MODES for mode in skipped_arrivals):
            gaps.append((start, end))
    return gaps


class TripRouteAssembler:
    """Computes segments for an ordered itinerary.

    Legs go through the in-session ``RouteCache``, then the optional
    ``SegmentStore``, then the mode's provider, and finally the fallback
    estimator, so every calculation completes even with no provider at all.
    """

    def __init__(
        self,
        providers: Mapping[TransportMode, RouteProvider] | None = None,
        *,
        estimator: FallbackEstimator | None = None,
        resolver: TransportModeResolver | None = None,
        cache: RouteCache | None = None,
        store: SegmentStore | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.providers: dict[TransportMode, RouteProvider] = dict(providers or {})
        self.estimator = estimator or FallbackEstimator()
        self.resolver = resolver or TransportModeResolver()
        self.cache = cache or RouteCache()
        self.store = store
        self.max_concurrency = max_concurrency or get_settings().route_max_concurrency
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def cancel(self) -> None:
        """Invalidate every calculation started before this call."""
        self._generation += 1
        logger.info("Route calculations cancelled", extra={"generation": self._generation})

    def clear_cache(self) -> None:
        self.cache.clear()

    def _ensure_current(self, token: int) -> None:
        if token != self._generation:
            raise CalculationCancelledError(details={"generation": token, "current_generation": self._generation})

    async def _compute_segment(self, origin: Stop, destination: Stop, mode: TransportMode, token: int) -> RouteSegment:
        if self.store is not None:
            stored = await self.store.load(origin, destination, mode)
            if stored is not None:
                return stored

        provider = self.providers.get(mode)
        if provider is None:
            return self.estimator.estimate(origin, destination, mode)

        if origin.coordinates is None or destination.coordinates is None:
            raise MissingCoordinatesError(details={"origin_id": origin.id, "destination_id": destination.id})

        try:
            result = await provider.fetch(origin.coordinates, destination.coordinates)
        except Exception as exc:
            result = ProviderUnavailable(
                provider.name, f"Provider raised {exc.__class__.__name__}: {exc}", {"exception": exc.__class__.__name__}
            )
        segment = with_fallback(result, origin, destination, mode, self.estimator)
        if self.store is not None and token == self._generation:
            await self.store.save(segment)
        return segment

    async def _segment(self, origin: Stop, destination: Stop, mode: TransportMode, token: int) -> RouteSegment:
        key = CacheKey(origin.id, destination.id, mode)
        segment = await self.cache.get_or_compute(
            key,
            lambda: self._compute_segment(origin, destination, mode, token),
            is_current=lambda: token == self._generation,
        )
        if segment.origin is not origin or segment.destination is not destination:
            # Same ids, different stop objects from an earlier call.
            segment = replace(segment, origin=origin, destination=destination)
        return segment

    async def calculate_route(
        self, origin: Stop, destination: Stop, mode: TransportMode | None = None
    ) -> RouteSegment:
        if origin.coordinates is None or destination.coordinates is None:
            raise MissingCoordinatesError(details={"origin_id": origin.id, "destination_id": destination.id})

        resolved_mode = mode or infer_transport_mode(origin) or TransportMode.DRIVING
        token = self._generation
        segment = await self._segment(origin, destination, resolved_mode, token)
        self._ensure_current(token)
        return segment

    async def calculate_trip_route(self, stops: list[Stop]) -> TripRouteCalculation:
        token = self._generation
        routable = [stop for stop in stops if stop.is_routable]
        calculation = TripRouteCalculation()
        if len(routable) < 2:
            return calculation

        modes = self.resolver.resolve_sequence(routable)
        legs = [(routable[index], routable[index + 1], mode) for index, mode in enumerate(modes)]
        gaps = continuity_gaps(modes)
        continuity_legs = [(routable[start], routable[end], TransportMode.DRIVING) for start, end in gaps]

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(origin: Stop, destination: Stop, mode: TransportMode) -> RouteSegment:
            async with semaphore:
                return await self._segment(origin, destination, mode, token)

        results = await asyncio.gather(*(_bounded(*leg) for leg in legs + continuity_legs))
        self._ensure_current(token)

        primary = results[: len(legs)]
        for segment in primary:
            calculation.segments.append(segment)
            calculation.add_to_totals(segment)

        for cached in results[len(legs) :]:
            segment = replace(cached, continuity=True)
            calculation.segments.append(segment)
            calculation.add_to_totals(segment)
            logger.info(
                "Added continuity driving segment",
                extra={
                    "origin_id": segment.origin.id,
                    "destination_id": segment.destination.id,
                    "distance_km": round(segment.distance_km, 3),
                },
            )
        return calculation


async def build_trip_route_assembler(settings: Settings | None = None) -> TripRouteAssembler:
    """Assembler wired from configuration: configured providers plus the Redis store when available."""
    settings = settings or get_settings()
    redis = await get_redis()
    store = SegmentStore(redis, ttl_sec=settings.routes_cache_ttl_sec) if redis is not None else None
    return TripRouteAssembler(
        build_default_providers(settings),
        store=store,
        max_concurrency=settings.route_max_concurrency,
    )
