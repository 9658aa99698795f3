from __future__ import annotations

from triproute.core.enums import TransportMode
from triproute.core.exceptions import MissingCoordinatesError
from triproute.services.geometry import haversine_distance_km
from triproute.services.models import RouteSegment, Stop

DEFAULT_INDIRECTION_FACTOR = 1.4
DEFAULT_SPEED_KMH = 50.0
DEFAULT_MIN_DURATION_MIN = 10

_indirection_factor = {
    TransportMode.DRIVING: 1.4,
    TransportMode.WALKING: 1.2,
    TransportMode.BICYCLE: 1.3,
    TransportMode.PUBLIC_TRANSPORT: 1.6,
}

# (upper bound of straight-line km, km/h); the last bucket has no bound.
_speed_buckets: dict[TransportMode, list[tuple[float | None, float]]] = {
    TransportMode.DRIVING: [(5, 30), (50, 60), (200, 80), (None, 90)],
    TransportMode.WALKING: [(None, 4.5)],
    TransportMode.BICYCLE: [(5, 12), (20, 15), (None, 18)],
    TransportMode.PUBLIC_TRANSPORT: [(10, 20), (50, 35), (None, 50)],
}

_min_duration = {
    TransportMode.WALKING: 5,
}


def average_speed_kmh(mode: TransportMode, straight_distance_km: float) -> float:
    for upper_bound, speed in _speed_buckets.get(mode, [(None, DEFAULT_SPEED_KMH)]):
        if upper_bound is None or straight_distance_km < upper_bound:
            return speed
    return DEFAULT_SPEED_KMH


class FallbackEstimator:
    """Geometry-based estimate used when no provider answers. Never fails on routable stops."""

    def estimate(self, origin: Stop, destination: Stop, mode: TransportMode) -> RouteSegment:
        if origin.coordinates is None or destination.coordinates is None:
            raise MissingCoordinatesError(details={"origin_id": origin.id, "destination_id": destination.id})

        straight_distance = haversine_distance_km(origin.coordinates, destination.coordinates)
        distance = straight_distance * _indirection_factor.get(mode, DEFAULT_INDIRECTION_FACTOR)
        speed = average_speed_kmh(mode, straight_distance)
        duration = round(distance / speed * 60)
        return RouteSegment(
            origin=origin,
            destination=destination,
            mode=mode,
            distance_km=distance,
            duration_min=max(_min_duration.get(mode, DEFAULT_MIN_DURATION_MIN), duration),
            path=None,
            estimated=True,
        )
