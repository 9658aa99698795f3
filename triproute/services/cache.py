from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from triproute.core.enums import TransportMode
from triproute.services.models import CacheKey, Coordinates, RouteSegment, Stop

logger = logging.getLogger(__name__)


class RouteCache:
    """Per-session memo of computed segments.

    Concurrent callers asking for the same key share one computation: the
    first caller registers an in-flight future and runs ``compute``, the
    others await that future. Registration happens without an ``await`` in
    between, so the check-and-claim is atomic on the event loop. If the
    first caller is cancelled, a waiting caller claims the key and computes
    it itself.
    """

    def __init__(self) -> None:
        self._entries: dict[CacheKey, RouteSegment] = {}
        self._in_flight: dict[CacheKey, asyncio.Future[RouteSegment]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: CacheKey) -> RouteSegment | None:
        return self._entries.get(key)

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_compute(
        self,
        key: CacheKey,
        compute: Callable[[], Awaitable[RouteSegment]],
        *,
        is_current: Callable[[], bool] | None = None,
    ) -> RouteSegment:
        while True:
            cached = self._entries.get(key)
            if cached is not None:
                logger.debug("Route cache hit", extra={"key": _key_repr(key)})
                return cached

            pending = self._in_flight.get(key)
            if pending is None:
                break
            logger.debug("Awaiting in-flight route computation", extra={"key": _key_repr(key)})
            # wait() leaves ``pending`` alone if this caller is cancelled.
            await asyncio.wait((pending,))
            if not pending.cancelled():
                return pending.result()
            logger.debug("In-flight route computation was cancelled", extra={"key": _key_repr(key)})

        logger.debug("Route cache miss", extra={"key": _key_repr(key)})
        future: asyncio.Future[RouteSegment] = asyncio.get_running_loop().create_future()
        # Keeps an unawaited failure from being reported as never retrieved.
        future.add_done_callback(lambda done: done.cancelled() or done.exception())
        self._in_flight[key] = future
        try:
            segment = await compute()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            raise
        finally:
            if self._in_flight.get(key) is future:
                del self._in_flight[key]

        if is_current is None or is_current():
            self._entries[key] = segment
        else:
            logger.debug("Discarding stale route computation", extra={"key": _key_repr(key)})
        future.set_result(segment)
        return segment


def _key_repr(key: CacheKey) -> str:
    return f"{key.origin_id}-{key.destination_id}-{key.mode.value}"


class SegmentStore:
    """Redis-backed store of provider segments shared across sessions."""

    def __init__(self, redis: Redis, ttl_sec: int = 900) -> None:
        self.redis = redis
        self.ttl_sec = ttl_sec

    @staticmethod
    def _key(mode: TransportMode, origin: Coordinates, destination: Coordinates) -> str:
        return (
            f"route:{mode.value}:{origin.lat:.5f},{origin.lon:.5f}:"
            f"{destination.lat:.5f},{destination.lon:.5f}"
        )

    @staticmethod
    def _serialize(segment: RouteSegment) -> str:
        payload: dict[str, Any] = {
            "mode": segment.mode.value,
            "distance_km": segment.distance_km,
            "duration_min": segment.duration_min,
            "path": [[point.lat, point.lon] for point in segment.path] if segment.path else None,
        }
        return json.dumps(payload)

    @staticmethod
    def _deserialize(raw: str, origin: Stop, destination: Stop) -> RouteSegment:
        payload = json.loads(raw)
        path = payload.get("path")
        return RouteSegment(
            origin=origin,
            destination=destination,
            mode=TransportMode(payload["mode"]),
            distance_km=float(payload["distance_km"]),
            duration_min=int(payload["duration_min"]),
            path=[Coordinates(lat=lat, lon=lon) for lat, lon in path] if path else None,
        )

    async def load(self, origin: Stop, destination: Stop, mode: TransportMode) -> RouteSegment | None:
        if origin.coordinates is None or destination.coordinates is None:
            return None
        key = self._key(mode, origin.coordinates, destination.coordinates)
        try:
            cached = await self.redis.get(key)
        except RedisError as exc:
            logger.warning("Segment store read failed", extra={"key": key, "error": str(exc)})
            return None
        if not cached:
            return None
        try:
            return self._deserialize(cached, origin, destination)
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding unreadable stored segment", extra={"key": key, "error": str(exc)})
            return None

    async def save(self, segment: RouteSegment) -> None:
        # Estimates are not shared so that the next session asks the provider again.
        if segment.estimated or segment.origin.coordinates is None or segment.destination.coordinates is None:
            return
        key = self._key(segment.mode, segment.origin.coordinates, segment.destination.coordinates)
        try:
            await self.redis.setex(key, self.ttl_sec, self._serialize(segment))
        except RedisError as exc:
            logger.warning("Segment store write failed", extra={"key": key, "error": str(exc)})
