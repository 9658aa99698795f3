"""Multi-modal trip route computation.

Example:
    from triproute import Coordinates, Stop, TransportPresent, TripRouteAssembler
    from triproute.core.enums import TransportMode

    stops = [
        Stop("hotel", "Hotel", Coordinates(47.55, 10.75)),
        Stop("lake", "Alpsee", Coordinates(47.56, 10.73), TransportPresent(TransportMode.WALKING)),
    ]
    calculation = await TripRouteAssembler().calculate_trip_route(stops)
"""

from triproute.core.enums import TransportMode
from triproute.services.assembler import TripRouteAssembler, build_trip_route_assembler
from triproute.services.models import (
    Coordinates,
    RouteSegment,
    Stop,
    TransportAbsent,
    TransportPresent,
    TripRouteCalculation,
)

__all__ = [
    "Coordinates",
    "RouteSegment",
    "Stop",
    "TransportAbsent",
    "TransportMode",
    "TransportPresent",
    "TripRouteAssembler",
    "TripRouteCalculation",
    "build_trip_route_assembler",
]
