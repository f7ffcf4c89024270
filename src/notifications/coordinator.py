"""Turns zone transitions into user-visible notifications."""

import logging
from collections import OrderedDict, deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from geo.distance import UnitSystem, format_distance
from landmarks.catalog import MarkerSurface
from landmarks.models import Landmark
from metrics import record_notification, record_suppressed
from notifications.cooldown import CooldownTracker, cooldown_key
from proximity.zones import (
    ClosestChanged,
    ProximityEvent,
    TransitionKind,
    Zone,
    ZoneTransition,
)
from proximity_logging import log_landmark_context
from settings import NotificationSettings

logger = logging.getLogger(__name__)

HIGHLIGHT_CLOSEST = "closest"
HIGHLIGHT_DEFAULT = "default"


class NotificationKind(str, Enum):
    ALERT = "alert"
    TOAST = "toast"
    CARD = "card"


ZONE_NOTIFICATION_KIND = {
    Zone.INNER: NotificationKind.ALERT,
    Zone.OUTER: NotificationKind.TOAST,
    Zone.CARD: NotificationKind.CARD,
}

# Zone entries that warm the preloaders
PRELOAD_ZONES = frozenset({Zone.INNER, Zone.CARD})


class NotificationSurface(Protocol):
    def show_toast(self, message: str, variant: str, duration_ms: int) -> None: ...

    def show_card(self, landmark: Landmark, on_dismiss: Callable[[], None]) -> None: ...

    def play_chime(self) -> None: ...


@dataclass(frozen=True)
class NotificationRecord:
    landmark_id: str
    landmark_name: str
    kind: NotificationKind
    distance_m: float | None
    fired_at_ms: int


class NotificationCoordinator:
    """Consumes the evaluator's event stream and surfaces at most one effect per entry.

    Each (landmark, kind) pair is gated by the cooldown table. Only one card
    is displayed at a time; landmarks that become card-eligible meanwhile
    wait in a FIFO queue until the displayed card is dismissed.
    """

    def __init__(
        self,
        surface: NotificationSurface,
        cooldowns: CooldownTracker,
        settings: NotificationSettings | None = None,
        unit_system: UnitSystem = UnitSystem.METRIC,
        marker_surface: MarkerSurface | None = None,
        on_preload: Callable[[Landmark, Zone], None] | None = None,
        is_relevant: Callable[[Landmark], bool] | None = None,
    ) -> None:
        self._surface = surface
        self._cooldowns = cooldowns
        self._settings = settings or NotificationSettings()
        self.unit_system = UnitSystem(unit_system)
        self._marker_surface = marker_surface
        self._on_preload = on_preload
        self._is_relevant = is_relevant
        self._active_card: Landmark | None = None
        self._card_queue: OrderedDict[str, tuple[Landmark, float | None]] = OrderedDict()
        self._history: deque[NotificationRecord] = deque(maxlen=self._settings.history_limit)

    @property
    def active_card(self) -> Landmark | None:
        return self._active_card

    @property
    def queued_cards(self) -> list[Landmark]:
        return [landmark for landmark, _ in self._card_queue.values()]

    @property
    def history(self) -> list[NotificationRecord]:
        """Fired notifications, newest first."""
        return list(self._history)

    def handle(self, event: ProximityEvent) -> None:
        """Evaluator listener."""
        if isinstance(event, ClosestChanged):
            self.on_closest_changed(event)
            return
        with log_landmark_context(event.landmark.id):
            if event.kind is TransitionKind.ENTER:
                self.on_zone_enter(event.landmark, event.zone, event.distance_m)
            else:
                self.on_zone_exit(event)

    def on_zone_enter(
        self, landmark: Landmark, zone: Zone, distance_m: float | None = None
    ) -> bool:
        """Fire the notification for a zone entry unless suppressed.

        Returns:
            True if a user-visible effect fired.
        """
        kind = ZONE_NOTIFICATION_KIND.get(zone)
        if kind is None:
            return False

        key = cooldown_key(landmark)
        if self._cooldowns.is_in_cooldown(key, kind.value):
            logger.debug(f"Suppressed {kind.value} for {landmark.name}: in cooldown")
            record_suppressed("cooldown")
            return False

        if kind is NotificationKind.CARD and self._active_card is not None:
            if landmark.id != self._active_card.id and landmark.id not in self._card_queue:
                self._card_queue[landmark.id] = (landmark, distance_m)
                logger.debug(f"Queued card for {landmark.name} behind {self._active_card.name}")
                record_suppressed("card_active")
            return False

        self._fire(landmark, kind, distance_m)
        if zone in PRELOAD_ZONES:
            self._trigger_preload(landmark, zone)
        return True

    def on_zone_exit(self, event: ZoneTransition) -> None:
        if event.zone is Zone.CARD:
            self._card_queue.pop(event.landmark.id, None)

    def on_closest_changed(self, event: ClosestChanged) -> None:
        if self._marker_surface is None:
            return
        if event.previous_id is not None:
            self._marker_surface.highlight(event.previous_id, HIGHLIGHT_DEFAULT)
        if event.landmark is not None:
            self._marker_surface.highlight(event.landmark.id, HIGHLIGHT_CLOSEST)

    def dismiss_card(self, landmark_id: str | None = None) -> None:
        """Close the displayed card and show the next eligible queued one.

        A dismissal for a card that is no longer displayed is ignored.
        """
        if self._active_card is None:
            return
        if landmark_id is not None and landmark_id != self._active_card.id:
            return
        self._active_card = None

        while self._card_queue:
            _, (landmark, distance_m) = self._card_queue.popitem(last=False)
            if self._is_relevant is not None and not self._is_relevant(landmark):
                logger.debug(f"Dropping queued card for {landmark.name}: no longer nearby")
                continue
            if self._cooldowns.is_in_cooldown(cooldown_key(landmark), NotificationKind.CARD.value):
                record_suppressed("cooldown")
                continue
            self._fire(landmark, NotificationKind.CARD, distance_m)
            self._trigger_preload(landmark, Zone.CARD)
            break

    def reset(self) -> None:
        self._active_card = None
        self._card_queue.clear()
        self._history.clear()

    def _trigger_preload(self, landmark: Landmark, zone: Zone) -> None:
        if self._on_preload is None:
            return
        try:
            self._on_preload(landmark, zone)
        except Exception:
            logger.exception(f"Preload trigger failed for {landmark.name}")

    def _fire(self, landmark: Landmark, kind: NotificationKind, distance_m: float | None) -> None:
        fired = self._cooldowns.record(cooldown_key(landmark), kind.value)
        distance_text = (
            format_distance(distance_m, self.unit_system) if distance_m is not None else None
        )

        if kind is NotificationKind.ALERT:
            message = f"You're near {landmark.name}"
            if distance_text:
                message = f"{message} ({distance_text} away)"
            self._surface.show_toast(message, "alert", self._settings.toast_duration_ms)
            if self._settings.chime_enabled:
                self._surface.play_chime()
        elif kind is NotificationKind.TOAST:
            message = f"{landmark.name} is nearby"
            if distance_text:
                message = f"{landmark.name} is {distance_text} away"
            self._surface.show_toast(message, "info", self._settings.toast_duration_ms)
        else:
            self._active_card = landmark
            landmark_id = landmark.id
            self._surface.show_card(landmark, lambda: self.dismiss_card(landmark_id))

        self._history.appendleft(
            NotificationRecord(
                landmark_id=landmark.id,
                landmark_name=landmark.name,
                kind=kind,
                distance_m=distance_m,
                fired_at_ms=fired.fired_at_ms,
            )
        )
        record_notification(kind.value)
        logger.info(
            f"Notified {kind.value} for {landmark.name}",
            extra={"notification_kind": kind.value, "distance_m": distance_m},
        )
