from __future__ import annotations

import math

from triproute.services.models import Coordinates

EARTH_RADIUS_KM = 6371.0
POLYLINE_PRECISION = 1e5


def haversine_distance_km(a: Coordinates, b: Coordinates) -> float:
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.lon - a.lon)

    x = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(x), math.sqrt(1 - x))


def _decode_value(encoded: str, index: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if index >= len(encoded):
            raise ValueError("Truncated polyline")
        chunk = ord(encoded[index]) - 63
        index += 1
        result |= (chunk & 0x1F) << shift
        shift += 5
        if chunk < 0x20:
            break
    value = ~(result >> 1) if result & 1 else result >> 1
    return value, index


def decode_polyline(encoded: str) -> list[Coordinates]:
    """Decode an encoded polyline (5 decimal places) into coordinates.

    Each point is stored as a latitude delta followed by a longitude delta,
    both zigzag-encoded and split into 5-bit chunks offset by 63.
    """
    coordinates: list[Coordinates] = []
    index = 0
    lat = 0
    lon = 0
    while index < len(encoded):
        d_lat, index = _decode_value(encoded, index)
        d_lon, index = _decode_value(encoded, index)
        lat += d_lat
        lon += d_lon
        coordinates.append(Coordinates(lat=lat / POLYLINE_PRECISION, lon=lon / POLYLINE_PRECISION))
    return coordinates
