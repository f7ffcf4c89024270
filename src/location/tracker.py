"""Location tracking service with adaptive sampling."""

import logging
from collections.abc import Callable, Generator
from dataclasses import dataclass
from typing import Any

import simpy

from core.exceptions import LocationPermissionError, ProximityEngineError, TransientError
from geo.distance import haversine_distance_m, is_valid_coordinate
from location.models import (
    PermissionStatus,
    Position,
    TrackingMode,
    TrackingOptions,
    TrackingState,
)
from location.source import LocationSource, WatchableLocationSource
from metrics import record_position_sample
from settings import TrackingSettings

logger = logging.getLogger(__name__)

PositionCallback = Callable[[Position], None]
ErrorCallback = Callable[[ProximityEngineError], None]


@dataclass
class TrackingHandle:
    handle_id: int
    callback: PositionCallback
    error_callback: ErrorCallback | None
    options: TrackingOptions
    state: TrackingState = TrackingState.ACTIVE
    process: simpy.Process | None = None
    watch_id: int | None = None
    last_delivered_at: float | None = None
    error_reported: bool = False

    @property
    def active(self) -> bool:
        return self.state is TrackingState.ACTIVE


class LocationTracker:
    """Produces a live stream of positions from a location source.

    Polling runs as a SimPy process; push-style sources are throttled to the
    same adaptive interval. The interval lengthens while the device is
    stationary, far from every landmark or in the background, and shortens
    near landmarks.
    """

    def __init__(
        self,
        env: simpy.Environment,
        source: LocationSource,
        settings: TrackingSettings | None = None,
    ) -> None:
        self._env = env
        self._source = source
        self._settings = settings or TrackingSettings()
        self._handles: dict[int, TrackingHandle] = {}
        self._next_handle_id = 1
        self._last_position: Position | None = None
        self._is_moving = True
        self._is_background = False
        self._closest_distance_m: float | None = None
        self._near_radius_m: float | None = None

    @property
    def last_position(self) -> Position | None:
        return self._last_position

    @property
    def is_moving(self) -> bool:
        return self._is_moving

    @property
    def active_handles(self) -> list[TrackingHandle]:
        return list(self._handles.values())

    def default_options(self) -> TrackingOptions:
        return TrackingOptions(
            enable_high_accuracy=self._settings.enable_high_accuracy,
            timeout_seconds=self._settings.timeout_seconds,
            maximum_age_seconds=self._settings.maximum_age_seconds,
        )

    def start(
        self,
        callback: PositionCallback,
        error_callback: ErrorCallback | None = None,
        options: TrackingOptions | None = None,
    ) -> TrackingHandle:
        """Start delivering positions to callback.

        A denied or unavailable permission is reported once through
        error_callback and the returned handle is never active.
        """
        options = options or self.default_options()
        handle = TrackingHandle(
            handle_id=self._next_handle_id,
            callback=callback,
            error_callback=error_callback,
            options=options,
        )
        self._next_handle_id += 1

        status = self._request_permission()
        if status is not PermissionStatus.GRANTED:
            self._deny(
                handle,
                LocationPermissionError(
                    f"Location permission {status.value}", details={"status": status.value}
                ),
            )
            return handle

        self._handles[handle.handle_id] = handle

        if options.mode is TrackingMode.WATCH:
            if isinstance(self._source, WatchableLocationSource):
                self._start_watch(handle, self._source)
                logger.info(f"Location tracking started (handle={handle.handle_id}, mode=watch)")
                return handle
            logger.info("Location source cannot push samples, falling back to polling")

        handle.process = self._env.process(self._poll_loop(handle))
        logger.info(f"Location tracking started (handle={handle.handle_id}, mode=poll)")
        return handle

    def stop(self, handle: TrackingHandle) -> None:
        """Stop a tracking handle. Safe to call any number of times."""
        if not handle.active:
            return
        handle.state = TrackingState.STOPPED
        self._teardown(handle)
        logger.info(f"Location tracking stopped (handle={handle.handle_id})")

    def stop_all(self) -> None:
        for handle in list(self._handles.values()):
            self.stop(handle)

    def set_background(self, is_background: bool) -> None:
        self._is_background = is_background

    def update_landmark_proximity(
        self, closest_distance_m: float | None, outer_distance_m: float
    ) -> None:
        """Feed the distance of the closest landmark into interval selection."""
        self._closest_distance_m = closest_distance_m
        self._near_radius_m = outer_distance_m * self._settings.near_landmark_multiplier

    def current_interval(self) -> float:
        """Return the sampling interval in seconds for the current conditions."""
        s = self._settings
        if self._is_background:
            return s.background_interval_seconds
        if self._closest_distance_m is not None and self._near_radius_m is not None:
            if self._closest_distance_m <= self._near_radius_m:
                return s.near_landmark_interval_seconds
            if self._closest_distance_m > s.far_landmark_threshold_m:
                return s.far_landmark_interval_seconds
        if not self._is_moving:
            return s.stationary_interval_seconds
        return s.base_interval_seconds

    def _request_permission(self) -> PermissionStatus:
        try:
            return self._source.request_permission()
        except ProximityEngineError as e:
            logger.warning(f"Permission request failed: {e.message}")
            return PermissionStatus.UNAVAILABLE
        except Exception:
            logger.exception("Permission request failed unexpectedly")
            return PermissionStatus.UNAVAILABLE

    def _poll_loop(self, handle: TrackingHandle) -> Generator[simpy.Event, Any]:
        """Sample loop that runs while the handle is active."""
        try:
            while handle.active:
                self._sample(handle)
                if not handle.active:
                    break
                yield self._env.timeout(self.current_interval())
        except simpy.Interrupt:
            pass

    def _sample(self, handle: TrackingHandle) -> None:
        try:
            position = self._source.get_current_position(handle.options)
        except LocationPermissionError as e:
            self._deny(handle, e)
        except TransientError as e:
            # Retried at the next scheduled sample, never immediately
            logger.info(
                f"Location sample failed, next attempt in {self.current_interval():.0f}s: "
                f"{e.message}"
            )
        except Exception:
            logger.exception(
                f"Location source failed unexpectedly (handle={handle.handle_id}), "
                f"retrying in {self.current_interval():.0f}s"
            )
        else:
            self._deliver(handle, position)

    def _start_watch(self, handle: TrackingHandle, source: WatchableLocationSource) -> None:
        def on_position(position: Position) -> None:
            if not handle.active:
                return
            if (
                handle.last_delivered_at is not None
                and self._env.now - handle.last_delivered_at < self.current_interval()
            ):
                return
            self._deliver(handle, position)

        def on_error(error: ProximityEngineError) -> None:
            if not handle.active:
                return
            if isinstance(error, LocationPermissionError):
                self._deny(handle, error)
            else:
                logger.info(f"Watched location source reported: {error.message}")

        handle.watch_id = source.watch_position(on_position, on_error, handle.options)

    def _deliver(self, handle: TrackingHandle, position: Position) -> None:
        if not handle.active:
            return
        if not is_valid_coordinate(position.latitude, position.longitude):
            logger.warning(
                f"Ignoring location sample with invalid coordinates "
                f"({position.latitude}, {position.longitude})"
            )
            return

        self._record_sample(position)
        handle.last_delivered_at = self._env.now
        try:
            handle.callback(position)
        except Exception:
            logger.exception(f"Position callback failed (handle={handle.handle_id})")

    def _record_sample(self, position: Position) -> None:
        previous = self._last_position
        if previous is None:
            self._is_moving = True
        else:
            displacement = haversine_distance_m(
                previous.latitude, previous.longitude, position.latitude, position.longitude
            )
            self._is_moving = displacement >= self._settings.movement_threshold_m
        self._last_position = position
        record_position_sample(self._is_moving)

    def _deny(self, handle: TrackingHandle, error: LocationPermissionError) -> None:
        logger.warning(f"Location tracking denied: {error.message}")
        handle.state = TrackingState.DENIED
        self._teardown(handle)
        if handle.error_reported or handle.error_callback is None:
            return
        handle.error_reported = True
        try:
            handle.error_callback(error)
        except Exception:
            logger.exception(f"Location error callback failed (handle={handle.handle_id})")

    def _teardown(self, handle: TrackingHandle) -> None:
        self._handles.pop(handle.handle_id, None)
        process = handle.process
        if (
            process is not None
            and process.is_alive
            and self._env.active_process is not process
        ):
            process.interrupt()
        if handle.watch_id is not None and isinstance(self._source, WatchableLocationSource):
            self._source.clear_watch(handle.watch_id)
            handle.watch_id = None
