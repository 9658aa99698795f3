import pytest

from triproute.core.enums import TransportMode
from triproute.core.exceptions import MissingCoordinatesError
from triproute.services.fallback import FallbackEstimator, average_speed_kmh
from triproute.services.geometry import haversine_distance_km
from triproute.services.models import Coordinates, Stop

BERLIN = Stop("berlin", "Berlin", Coordinates(lat=52.5200, lon=13.4050))
MUNICH = Stop("munich", "Munich", Coordinates(lat=48.1351, lon=11.5820))


def test_driving_estimate_berlin_munich():
    segment = FallbackEstimator().estimate(BERLIN, MUNICH, TransportMode.DRIVING)

    straight = haversine_distance_km(BERLIN.coordinates, MUNICH.coordinates)
    assert segment.distance_km == pytest.approx(straight * 1.4)
    assert segment.duration_min == round(straight * 1.4 / 90 * 60)
    assert 465 <= segment.duration_min <= 475
    assert segment.path is None
    assert segment.estimated is True
    assert segment.mode == TransportMode.DRIVING


def test_estimate_is_deterministic():
    estimator = FallbackEstimator()
    first = estimator.estimate(BERLIN, MUNICH, TransportMode.PUBLIC_TRANSPORT)
    second = estimator.estimate(BERLIN, MUNICH, TransportMode.PUBLIC_TRANSPORT)
    assert (first.distance_km, first.duration_min) == (second.distance_km, second.duration_min)


@pytest.mark.parametrize(
    ("mode", "distance", "speed"),
    [
        (TransportMode.DRIVING, 4.9, 30),
        (TransportMode.DRIVING, 5, 60),
        (TransportMode.DRIVING, 199, 80),
        (TransportMode.DRIVING, 200, 90),
        (TransportMode.WALKING, 300, 4.5),
        (TransportMode.BICYCLE, 4, 12),
        (TransportMode.BICYCLE, 19, 15),
        (TransportMode.BICYCLE, 20, 18),
        (TransportMode.PUBLIC_TRANSPORT, 9, 20),
        (TransportMode.PUBLIC_TRANSPORT, 49, 35),
        (TransportMode.PUBLIC_TRANSPORT, 50, 50),
        (TransportMode.FLIGHT, 1, 50),
        (TransportMode.TRAIN, 1000, 50),
    ],
)
def test_average_speed_buckets(mode, distance, speed):
    assert average_speed_kmh(mode, distance) == speed


def test_minimum_durations_for_short_legs():
    estimator = FallbackEstimator()
    a = Stop("a", "A", Coordinates(47.0, 11.0))
    b = Stop("b", "B", Coordinates(47.0001, 11.0))

    assert estimator.estimate(a, b, TransportMode.WALKING).duration_min == 5
    assert estimator.estimate(a, b, TransportMode.DRIVING).duration_min == 10
    assert estimator.estimate(a, b, TransportMode.BICYCLE).duration_min == 10
    assert estimator.estimate(a, a, TransportMode.FLIGHT).duration_min == 10
    assert estimator.estimate(a, a, TransportMode.FLIGHT).distance_km == 0


def test_unlisted_mode_uses_generic_factor():
    segment = FallbackEstimator().estimate(BERLIN, MUNICH, TransportMode.TRAIN)
    straight = haversine_distance_km(BERLIN.coordinates, MUNICH.coordinates)
    assert segment.distance_km == pytest.approx(straight * 1.4)
    assert segment.duration_min == round(straight * 1.4 / 50 * 60)


def test_estimate_requires_coordinates():
    with pytest.raises(MissingCoordinatesError):
        FallbackEstimator().estimate(BERLIN, Stop("x", "Nowhere"), TransportMode.DRIVING)
