from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NamedTuple

from triproute.core.enums import TransportMode


@dataclass(frozen=True, slots=True)
class Coordinates:
    lat: float
    lon: float

    def is_valid(self) -> bool:
        return -90 <= self.lat <= 90 and -180 <= self.lon <= 180


@dataclass(frozen=True, slots=True)
class TransportPresent:
    mode: TransportMode
    duration_min: int | None = None
    distance_km: float | None = None
    note: str | None = None


@dataclass(frozen=True, slots=True)
class TransportAbsent:
    pass


TransportAnnotation = TransportPresent | TransportAbsent


@dataclass(slots=True)
class Stop:
    id: str
    name: str
    coordinates: Coordinates | None = None
    arrival_transport: TransportAnnotation = field(default_factory=TransportAbsent)
    return_to_id: str | None = None
    notes: str | None = None
    tags: tuple[str, ...] = ()

    @property
    def arrival_mode(self) -> TransportMode | None:
        if isinstance(self.arrival_transport, TransportPresent):
            return self.arrival_transport.mode
        return None

    @property
    def is_routable(self) -> bool:
        return self.coordinates is not None


@dataclass(slots=True)
class ProviderRoute:
    distance_km: float
    duration_min: int
    path: list[Coordinates] | None = None


@dataclass(slots=True)
class RouteSegment:
    origin: Stop
    destination: Stop
    mode: TransportMode
    distance_km: float
    duration_min: int
    path: list[Coordinates] | None = None
    estimated: bool = False
    continuity: bool = False

    def path_or_straight_line(self) -> list[Coordinates]:
        if self.path:
            return list(self.path)
        points = [self.origin.coordinates, self.destination.coordinates]
        return [point for point in points if point is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "origin_id": self.origin.id,
            "destination_id": self.destination.id,
            "mode": self.mode.value,
            "distance_km": self.distance_km,
            "duration_min": self.duration_min,
            "path": [[point.lat, point.lon] for point in self.path] if self.path else None,
            "estimated": self.estimated,
            "continuity": self.continuity,
        }


class CacheKey(NamedTuple):
    origin_id: str
    destination_id: str
    mode: TransportMode


@dataclass(slots=True)
class TripRouteCalculation:
    segments: list[RouteSegment] = field(default_factory=list)
    distance_by_mode: dict[TransportMode, float] = field(default_factory=dict)
    duration_by_mode: dict[TransportMode, int] = field(default_factory=dict)

    @property
    def primary_segments(self) -> list[RouteSegment]:
        return [segment for segment in self.segments if not segment.continuity]

    @property
    def continuity_segments(self) -> list[RouteSegment]:
        return [segment for segment in self.segments if segment.continuity]

    @property
    def total_distance_km(self) -> float:
        return sum(segment.distance_km for segment in self.primary_segments)

    @property
    def total_duration_min(self) -> int:
        return sum(segment.duration_min for segment in self.primary_segments)

    def add_to_totals(self, segment: RouteSegment) -> None:
        self.distance_by_mode[segment.mode] = self.distance_by_mode.get(segment.mode, 0.0) + segment.distance_km
        self.duration_by_mode[segment.mode] = self.duration_by_mode.get(segment.mode, 0) + segment.duration_min

    def to_dict(self) -> dict[str, Any]:
        return {
            "segments": [segment.to_dict() for segment in self.segments],
            "distance_by_mode": {mode.value: value for mode, value in self.distance_by_mode.items()},
            "duration_by_mode": {mode.value: value for mode, value in self.duration_by_mode.items()},
            "total_distance_km": self.total_distance_km,
            "total_duration_min": self.total_duration_min,
        }
