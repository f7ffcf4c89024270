"""Simulated location source that walks a route with GPS noise."""

import bisect
import math
import random
from collections.abc import Callable, Generator
from typing import Any

import simpy

from core.exceptions import LocationPermissionError, PositionUnavailableError, ProximityEngineError
from geo.distance import haversine_distance_m
from location.models import PermissionStatus, Position, TrackingOptions

METERS_PER_DEGREE_LAT = 111_000


def precompute_cumulative_distances(route: list[tuple[float, float]]) -> list[float]:
    """Cumulative Haversine distances along a route of (lat, lon) points.

    Entry i is the distance from route[0] to route[i + 1] in meters. Returns
    an empty list for routes shorter than 2 points.
    """
    if len(route) < 2:
        return []

    cumulative: list[float] = []
    total = 0.0
    for i in range(len(route) - 1):
        total += haversine_distance_m(route[i][0], route[i][1], route[i + 1][0], route[i + 1][1])
        cumulative.append(total)
    return cumulative


def interpolate_position(
    route: list[tuple[float, float]],
    traveled_m: float,
    cumulative_distances: list[float],
) -> tuple[float, float]:
    """Point reached after walking ``traveled_m`` meters along the route."""
    if traveled_m <= 0.0 or not cumulative_distances:
        return route[0]
    if traveled_m >= cumulative_distances[-1]:
        return route[-1]

    idx = bisect.bisect_left(cumulative_distances, traveled_m)
    prev_cumulative = cumulative_distances[idx - 1] if idx > 0 else 0.0
    segment_distance = cumulative_distances[idx] - prev_cumulative
    if segment_distance == 0.0:
        return route[idx]

    progress = (traveled_m - prev_cumulative) / segment_distance
    start, end = route[idx], route[idx + 1]
    return (
        start[0] + (end[0] - start[0]) * progress,
        start[1] + (end[1] - start[1]) * progress,
    )


class SimulatedLocationSource:
    """Walks a route at constant speed on the SimPy clock.

    Supports both polling and push (watch) delivery. Noise and dropouts use
    a private seeded ``random.Random`` so runs are reproducible.
    """

    def __init__(
        self,
        env: simpy.Environment,
        route: list[tuple[float, float]],
        speed_mps: float = 1.4,
        noise_meters: float = 0.0,
        dropout_probability: float = 0.0,
        permission: PermissionStatus = PermissionStatus.GRANTED,
        watch_interval_seconds: float = 1.0,
        seed: int | None = None,
    ):
        if not route:
            raise ValueError("route must contain at least one point")
        self.env = env
        self.route = list(route)
        self.speed_mps = speed_mps
        self.noise_meters = noise_meters
        self.dropout_probability = dropout_probability
        self.permission = permission
        self.watch_interval_seconds = watch_interval_seconds
        self._rng = random.Random(seed)
        self._cumulative = precompute_cumulative_distances(self.route)
        self._watches: dict[int, simpy.Process] = {}
        self._next_watch_id = 1

    @property
    def route_length_m(self) -> float:
        return self._cumulative[-1] if self._cumulative else 0.0

    def request_permission(self) -> PermissionStatus:
        return self.permission

    def get_current_position(self, options: TrackingOptions) -> Position:
        if self.permission is not PermissionStatus.GRANTED:
            raise LocationPermissionError(f"Location permission {self.permission.value}")
        if self._rng.random() < self.dropout_probability:
            raise PositionUnavailableError("Simulated GPS dropout")

        lat, lon = interpolate_position(
            self.route, self.speed_mps * self.env.now, self._cumulative
        )
        lat, lon = self._add_noise(lat, lon)
        return Position(
            latitude=lat,
            longitude=lon,
            accuracy=self._accuracy(options),
            timestamp_ms=int(self.env.now * 1000),
        )

    def watch_position(
        self,
        callback: Callable[[Position], None],
        error_callback: Callable[[ProximityEngineError], None],
        options: TrackingOptions,
    ) -> int:
        watch_id = self._next_watch_id
        self._next_watch_id += 1
        self._watches[watch_id] = self.env.process(
            self._watch_loop(callback, error_callback, options)
        )
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        process = self._watches.pop(watch_id, None)
        if process is not None and process.is_alive and self.env.active_process is not process:
            process.interrupt()

    def _watch_loop(
        self,
        callback: Callable[[Position], None],
        error_callback: Callable[[ProximityEngineError], None],
        options: TrackingOptions,
    ) -> Generator[simpy.Event, Any]:
        try:
            while True:
                try:
                    position = self.get_current_position(options)
                except ProximityEngineError as e:
                    error_callback(e)
                else:
                    callback(position)
                yield self.env.timeout(self.watch_interval_seconds)
        except simpy.Interrupt:
            pass

    def _add_noise(
        self, lat: float, lon: float, max_noise_meters: float = 15.0
    ) -> tuple[float, float]:
        if self.noise_meters == 0:
            return lat, lon

        # Gaussian noise clamped to the max value
        noise_lat = max(
            -max_noise_meters, min(max_noise_meters, self._rng.gauss(0, self.noise_meters))
        )
        noise_lon = max(
            -max_noise_meters, min(max_noise_meters, self._rng.gauss(0, self.noise_meters))
        )

        lat_offset = noise_lat / METERS_PER_DEGREE_LAT
        lon_offset = noise_lon / (METERS_PER_DEGREE_LAT * math.cos(math.radians(lat)))
        return lat + lat_offset, lon + lon_offset

    def _accuracy(self, options: TrackingOptions) -> float:
        base = self.noise_meters if self.noise_meters > 0 else 5.0
        if not options.enable_high_accuracy:
            base *= 2
        return base * (1 + self._rng.uniform(-0.2, 0.2))
