from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True, slots=True)
class Position:
    """A single location sample. Superseded by the next sample, never mutated.

    Attributes:
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        accuracy: Horizontal accuracy in meters, when the source reports one.
        timestamp_ms: Sample time in epoch milliseconds.
    """

    latitude: float
    longitude: float
    accuracy: float | None
    timestamp_ms: int


class PermissionStatus(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UNAVAILABLE = "unavailable"


class TrackingMode(str, Enum):
    POLL = "poll"
    WATCH = "watch"


class TrackingState(str, Enum):
    ACTIVE = "active"
    STOPPED = "stopped"
    DENIED = "denied"


@dataclass(frozen=True)
class TrackingOptions:
    enable_high_accuracy: bool = False
    timeout_seconds: float = 15.0
    maximum_age_seconds: float = 30.0
    mode: TrackingMode = TrackingMode.POLL
