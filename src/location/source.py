"""Location source contracts.

A source wraps whichever device or browser geolocation API is available.
``get_current_position`` raises ``LocationPermissionError`` when access is
denied, and ``LocationTimeoutError`` or ``PositionUnavailableError`` for
transient failures.
"""

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from core.exceptions import ProximityEngineError
from location.models import PermissionStatus, Position, TrackingOptions


@runtime_checkable
class LocationSource(Protocol):
    def request_permission(self) -> PermissionStatus: ...

    def get_current_position(self, options: TrackingOptions) -> Position: ...


@runtime_checkable
class WatchableLocationSource(LocationSource, Protocol):
    """A source that pushes samples instead of being polled."""

    def watch_position(
        self,
        callback: Callable[[Position], None],
        error_callback: Callable[[ProximityEngineError], None],
        options: TrackingOptions,
    ) -> int: ...

    def clear_watch(self, watch_id: int) -> None: ...
