from __future__ import annotations

from triproute.core.enums import TransportMode
from triproute.services.models import Stop, TransportAbsent, TransportPresent

EXCURSION_MODES = frozenset({TransportMode.WALKING, TransportMode.BICYCLE})

# Checked in order; the first group with a matching keyword wins.
_mode_keywords: list[tuple[TransportMode, tuple[str, ...]]] = [
    (TransportMode.WALKING, ("wanderung", "hiking", "walking")),
    (TransportMode.BICYCLE, ("fahrrad", "bicycle", "bike")),
    (TransportMode.PUBLIC_TRANSPORT, ("öffentlich", "public", "transport")),
    (TransportMode.DRIVING, ("auto", "car", "driving")),
]


def excursion_mode(stop: Stop) -> TransportMode | None:
    """Mode of the round-trip excursion leaving ``stop``, if it starts one."""
    annotation = stop.arrival_transport
    if stop.return_to_id is None or not isinstance(annotation, TransportPresent):
        return None
    if annotation.mode in EXCURSION_MODES:
        return annotation.mode
    return None


class TransportModeResolver:
    """Decides the transport mode of the leg between two consecutive stops."""

    def resolve(self, prev: Stop | None, origin: Stop, destination: Stop) -> TransportMode:
        """Mode of the leg ``origin -> destination``; ``prev`` is accepted but not consulted."""
        outbound = excursion_mode(origin)
        if outbound is not None:
            return outbound

        annotation = destination.arrival_transport
        if isinstance(annotation, TransportPresent):
            return annotation.mode
        if isinstance(annotation, TransportAbsent):
            return TransportMode.DRIVING
        raise TypeError(f"Unknown transport annotation: {annotation!r}")

    def resolve_sequence(self, stops: list[Stop]) -> list[TransportMode]:
        """Modes for each leg ``stops[i] -> stops[i + 1]``."""
        modes: list[TransportMode] = []
        for index in range(len(stops) - 1):
            prev = stops[index - 1] if index > 0 else None
            modes.append(self.resolve(prev, stops[index], stops[index + 1]))
        return modes


def infer_transport_mode(stop: Stop) -> TransportMode | None:
    text = f"{stop.notes or ''} {' '.join(stop.tags)}".lower()
    for mode, keywords in _mode_keywords:
        if any(keyword in text for keyword in keywords):
            return mode
    return None
