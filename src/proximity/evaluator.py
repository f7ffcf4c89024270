"""Proximity evaluator: distance sorting, zone transitions and closest tracking."""

import logging
from collections.abc import Callable, Sequence

from geo.distance import haversine_distance_m
from landmarks.models import Landmark
from location.models import Position
from metrics import record_closest_change, record_zone_transition
from proximity.zones import (
    EXIT_ORDER,
    ClosestChanged,
    LandmarkWithDistance,
    ProximityEvent,
    ProximityResult,
    TransitionKind,
    Zone,
    ZoneState,
    ZoneTransition,
    classify_zone,
    reset_boundary,
    zone_rank,
)
from settings import ProximitySettings

logger = logging.getLogger(__name__)

DistanceFn = Callable[[float, float, float, float], float]
ProximityListener = Callable[[ProximityEvent], None]


class ProximityEvaluator:
    """Reconciles the latest position against the landmark set.

    ``evaluate`` runs to completion synchronously. Retained state (closest id
    and per-landmark zone state) is only written here; listeners receive the
    events after the state is updated.
    """

    def __init__(self, distance_fn: DistanceFn = haversine_distance_m) -> None:
        self._distance_fn = distance_fn
        self._closest_id: str | None = None
        self._zone_states: dict[str, ZoneState] = {}
        self._distance_overrides: dict[str, float] = {}
        self._listeners: list[ProximityListener] = []

    @property
    def closest_id(self) -> str | None:
        return self._closest_id

    def zone_state(self, landmark_id: str) -> ZoneState | None:
        """Retained zone state for a landmark. Read-only for callers."""
        return self._zone_states.get(landmark_id)

    def subscribe(self, listener: ProximityListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: ProximityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_distance_override(self, landmark_id: str, distance_m: float) -> None:
        """Force the computed distance of one landmark (QA/debug)."""
        self._distance_overrides[landmark_id] = distance_m

    def clear_distance_override(self, landmark_id: str | None = None) -> None:
        if landmark_id is None:
            self._distance_overrides.clear()
        else:
            self._distance_overrides.pop(landmark_id, None)

    def reset(self) -> None:
        self._closest_id = None
        self._zone_states.clear()

    def evaluate(
        self,
        position: Position | None,
        landmarks: Sequence[Landmark],
        settings: ProximitySettings,
        max_distance: float | None = None,
    ) -> ProximityResult:
        """Compute distance-sorted landmarks and emit zone/closest transitions.

        Args:
            position: Latest position; evaluation is a no-op without one.
            landmarks: Validated landmarks.
            settings: Zone thresholds.
            max_distance: When given, only landmarks within this many meters
                are returned and considered for closest.

        Returns:
            The sorted (and range-limited) landmarks, the closest one and the
            events emitted by this evaluation.
        """
        if position is None or not settings.is_enabled:
            return ProximityResult()

        if not landmarks:
            cleared: list[ProximityEvent] = []
            if self._closest_id is not None:
                cleared.append(ClosestChanged(None, None, previous_id=self._closest_id))
            self.reset()
            self._dispatch(cleared)
            return ProximityResult(events=cleared)

        measured = [
            LandmarkWithDistance(landmark, self.distance_to(position, landmark))
            for landmark in landmarks
        ]
        measured.sort(key=lambda item: (item.distance_m, item.landmark.id))

        if max_distance is None:
            in_range = measured
        else:
            in_range = [item for item in measured if item.distance_m <= max_distance]

        closest = in_range[0] if in_range else None
        events: list[ProximityEvent] = []

        closest_id = closest.landmark.id if closest else None
        if closest_id != self._closest_id:
            events.append(
                ClosestChanged(
                    landmark=closest.landmark if closest else None,
                    distance_m=closest.distance_m if closest else None,
                    previous_id=self._closest_id,
                )
            )
            self._closest_id = closest_id

        boundary = reset_boundary(settings)
        live_ids: set[str] = set()
        for item in measured:
            live_ids.add(item.landmark.id)
            events.extend(self._update_zone(item, settings, boundary))

        for stale_id in self._zone_states.keys() - live_ids:
            del self._zone_states[stale_id]

        self._dispatch(events)
        return ProximityResult(
            landmarks=in_range,
            closest=closest,
            events=events,
            nearest_distance_m=measured[0].distance_m,
        )

    def distance_to(self, position: Position, landmark: Landmark) -> float:
        """Distance in meters, honoring any debug override for the landmark."""
        override = self._distance_overrides.get(landmark.id)
        if override is not None:
            return override
        return self._distance_fn(
            position.latitude, position.longitude, landmark.latitude, landmark.longitude
        )

    def _update_zone(
        self, item: LandmarkWithDistance, settings: ProximitySettings, boundary: float
    ) -> list[ZoneTransition]:
        landmark = item.landmark
        distance = item.distance_m
        state = self._zone_states.get(landmark.id)

        if distance > boundary:
            if state is None:
                return []
            # Every zone entered since the last reset gets exactly one exit,
            # and the notified flags clear so a future approach re-triggers.
            exits = [
                ZoneTransition(TransitionKind.EXIT, zone, landmark, distance)
                for zone in EXIT_ORDER
                if zone in state.notified
            ]
            del self._zone_states[landmark.id]
            return exits

        if state is None:
            state = ZoneState()
            self._zone_states[landmark.id] = state

        transitions: list[ZoneTransition] = []

        zone = classify_zone(distance, settings)
        if zone_rank(zone) > zone_rank(state.zone) and zone not in state.notified:
            transitions.append(ZoneTransition(TransitionKind.ENTER, zone, landmark, distance))
            state.notified.add(zone)
        state.zone = zone

        in_card = distance <= settings.card_distance
        if in_card and not state.in_card and Zone.CARD not in state.notified:
            transitions.append(ZoneTransition(TransitionKind.ENTER, Zone.CARD, landmark, distance))
            state.notified.add(Zone.CARD)
        state.in_card = in_card

        return transitions

    def _dispatch(self, events: list[ProximityEvent]) -> None:
        for event in events:
            if isinstance(event, ZoneTransition):
                record_zone_transition(event.kind.value, event.zone.value)
                logger.debug(
                    f"{event.label} for {event.landmark.name} at {event.distance_m:.0f}m",
                    extra={
                        "landmark_id": event.landmark.id,
                        "zone": event.zone.value,
                        "transition": event.kind.value,
                        "distance_m": event.distance_m,
                    },
                )
            else:
                record_closest_change()
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception(f"Proximity listener failed for {type(event).__name__}")
