"""Zone classification and the events emitted by the evaluator."""

from dataclasses import dataclass, field
from enum import Enum

from landmarks.models import Landmark
from settings import ProximitySettings


class Zone(str, Enum):
    FAR = "far"
    OUTER = "outer"
    INNER = "inner"
    CARD = "card"


class TransitionKind(str, Enum):
    ENTER = "enter"
    EXIT = "exit"


# Rank of the nested zones; CARD is tracked separately because its
# threshold is independent of inner/outer.
_ZONE_RANK = {Zone.FAR: 0, Zone.OUTER: 1, Zone.INNER: 2}

# Order in which exits are emitted when a landmark leaves every zone
EXIT_ORDER = (Zone.INNER, Zone.OUTER, Zone.CARD)


def zone_rank(zone: Zone) -> int:
    return _ZONE_RANK[zone]


def classify_zone(distance_m: float, settings: ProximitySettings) -> Zone:
    """Classify a distance into the nested inner/outer/far zones.

    Boundaries are inclusive: a landmark exactly at a threshold is inside.
    """
    if distance_m <= settings.inner_distance:
        return Zone.INNER
    if distance_m <= settings.outer_distance:
        return Zone.OUTER
    return Zone.FAR


def reset_boundary(settings: ProximitySettings) -> float:
    """Distance past which a landmark counts as left behind."""
    return max(settings.outer_distance, settings.card_distance)


@dataclass
class ZoneState:
    """Retained per-landmark state between evaluations."""

    zone: Zone = Zone.FAR
    in_card: bool = False
    notified: set[Zone] = field(default_factory=set)


@dataclass(frozen=True, slots=True)
class LandmarkWithDistance:
    landmark: Landmark
    distance_m: float


@dataclass(frozen=True)
class ZoneTransition:
    kind: TransitionKind
    zone: Zone
    landmark: Landmark
    distance_m: float

    @property
    def label(self) -> str:
        return f"{self.kind.value}:{self.zone.value}"


@dataclass(frozen=True)
class ClosestChanged:
    """The nearest in-range landmark changed. ``landmark`` is None when none is in range."""

    landmark: Landmark | None
    distance_m: float | None
    previous_id: str | None


ProximityEvent = ZoneTransition | ClosestChanged


@dataclass(frozen=True)
class ProximityResult:
    landmarks: list[LandmarkWithDistance] = field(default_factory=list)
    closest: LandmarkWithDistance | None = None
    events: list[ProximityEvent] = field(default_factory=list)
    # Distance to the nearest landmark regardless of max_distance
    nearest_distance_m: float | None = None
