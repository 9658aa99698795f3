from enum import Enum


class TransportMode(str, Enum):
    WALKING = "walking"
    DRIVING = "driving"
    PUBLIC_TRANSPORT = "public_transport"
    BICYCLE = "bicycle"
    FLIGHT = "flight"
    TRAIN = "train"


class OsrmProfile(str, Enum):
    CAR = "car"
    BIKE = "bike"
    FOOT = "foot"
