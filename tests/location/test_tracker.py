import logging
from unittest.mock import Mock

import pytest

from core.exceptions import LocationPermissionError, PositionUnavailableError
from location.models import (
    PermissionStatus,
    Position,
    TrackingMode,
    TrackingOptions,
    TrackingState,
)
from location.simulated import SimulatedLocationSource
from location.tracker import LocationTracker
from tests.factories import ScriptedLocationSource


def walking_script(landmark_factory, count: int = 20, step_m: float = 20.0) -> list[Position]:
    return [
        landmark_factory.position(distance_m=i * step_m, timestamp_ms=i * 1000)
        for i in range(count)
    ]


@pytest.mark.unit
class TestPolling:
    def test_samples_immediately_then_every_base_interval(
        self, env, tracking_settings, landmark_factory
    ):
        source = ScriptedLocationSource(walking_script(landmark_factory))
        tracker = LocationTracker(env, source, tracking_settings)
        callback = Mock()

        tracker.start(callback)
        env.run(until=61)

        # t=0, t=30, t=60
        assert callback.call_count == 3

    def test_stationary_device_samples_less_often(self, env, tracking_settings, landmark_factory):
        source = ScriptedLocationSource([landmark_factory.position()])
        tracker = LocationTracker(env, source, tracking_settings)
        callback = Mock()

        tracker.start(callback)
        env.run(until=149)

        # t=0 (first sample counts as moving), t=30 (stationary), next at t=150
        assert callback.call_count == 2
        assert tracker.is_moving is False
        assert tracker.current_interval() == tracking_settings.stationary_interval_seconds

    def test_transient_error_retried_at_next_interval(
        self, env, tracking_settings, landmark_factory
    ):
        source = ScriptedLocationSource(
            [PositionUnavailableError("no fix"), landmark_factory.position()]
        )
        tracker = LocationTracker(env, source, tracking_settings)
        callback = Mock()
        error_callback = Mock()

        tracker.start(callback, error_callback)
        env.run(until=29)
        assert callback.call_count == 0
        assert source.calls == 1

        env.run(until=31)
        assert callback.call_count == 1
        error_callback.assert_not_called()

    def test_unexpected_source_error_retried_at_next_interval(
        self, env, tracking_settings, landmark_factory, caplog
    ):
        source = ScriptedLocationSource(
            [RuntimeError("native bridge"), landmark_factory.position()]
        )
        tracker = LocationTracker(env, source, tracking_settings)
        callback = Mock()

        with caplog.at_level(logging.ERROR):
            handle = tracker.start(callback)
            env.run(until=31)

        assert callback.call_count == 1
        assert handle.active
        assert "Location source failed unexpectedly" in caplog.text

    def test_invalid_coordinates_never_delivered(self, env, tracking_settings, caplog):
        bad = Position(latitude=float("nan"), longitude=0.0, accuracy=None, timestamp_ms=0)
        source = ScriptedLocationSource([bad])
        tracker = LocationTracker(env, source, tracking_settings)
        callback = Mock()

        with caplog.at_level(logging.WARNING):
            tracker.start(callback)
            env.run(until=1)

        callback.assert_not_called()
        assert "invalid coordinates" in caplog.text

    def test_callback_exception_does_not_stop_tracking(
        self, env, tracking_settings, landmark_factory
    ):
        source = ScriptedLocationSource(walking_script(landmark_factory))
        tracker = LocationTracker(env, source, tracking_settings)
        callback = Mock(side_effect=RuntimeError("ui broke"))

        handle = tracker.start(callback)
        env.run(until=31)

        assert callback.call_count == 2
        assert handle.active


@pytest.mark.unit
class TestPermission:
    @pytest.mark.parametrize("status", [PermissionStatus.DENIED, PermissionStatus.UNAVAILABLE])
    def test_denied_reported_once_and_never_active(self, env, tracking_settings, status):
        source = ScriptedLocationSource(permission=status)
        tracker = LocationTracker(env, source, tracking_settings)
        callback = Mock()
        error_callback = Mock()

        handle = tracker.start(callback, error_callback)
        env.run(until=300)

        assert handle.state is TrackingState.DENIED
        assert not handle.active
        error_callback.assert_called_once()
        assert isinstance(error_callback.call_args[0][0], LocationPermissionError)
        callback.assert_not_called()
        assert source.calls == 0

    def test_crashing_permission_request_is_unavailable(self, env, tracking_settings):
        source = ScriptedLocationSource()
        source.request_permission = Mock(side_effect=RuntimeError("native bridge"))
        tracker = LocationTracker(env, source, tracking_settings)
        error_callback = Mock()

        handle = tracker.start(Mock(), error_callback)
        env.run(until=100)

        assert handle.state is TrackingState.DENIED
        error = error_callback.call_args[0][0]
        assert error.details == {"status": PermissionStatus.UNAVAILABLE.value}

    def test_revoked_mid_session_stops_tracking(self, env, tracking_settings, landmark_factory):
        source = ScriptedLocationSource(
            [landmark_factory.position(), LocationPermissionError("revoked")]
        )
        tracker = LocationTracker(env, source, tracking_settings)
        callback = Mock()
        error_callback = Mock()

        handle = tracker.start(callback, error_callback)
        env.run(until=200)

        assert callback.call_count == 1
        error_callback.assert_called_once()
        assert handle.state is TrackingState.DENIED
        # No automatic retry after denial
        assert source.calls == 2


@pytest.mark.unit
class TestStop:
    def test_stop_is_idempotent(self, env, tracking_settings, landmark_factory):
        source = ScriptedLocationSource(walking_script(landmark_factory))
        tracker = LocationTracker(env, source, tracking_settings)
        handle = tracker.start(Mock())

        env.run(until=1)
        tracker.stop(handle)
        tracker.stop(handle)

        assert handle.state is TrackingState.STOPPED
        assert tracker.active_handles == []

    def test_no_callbacks_after_stop(self, env, tracking_settings, landmark_factory):
        source = ScriptedLocationSource(walking_script(landmark_factory))
        tracker = LocationTracker(env, source, tracking_settings)
        callback = Mock()
        handle = tracker.start(callback)

        env.run(until=1)
        tracker.stop(handle)
        env.run(until=500)

        assert callback.call_count == 1

    def test_stop_from_inside_callback(self, env, tracking_settings, landmark_factory):
        source = ScriptedLocationSource(walking_script(landmark_factory))
        tracker = LocationTracker(env, source, tracking_settings)
        holder = {}

        def callback(position):
            tracker.stop(holder["handle"])

        holder["handle"] = tracker.start(callback)
        env.run(until=100)

        assert holder["handle"].state is TrackingState.STOPPED
        assert source.calls == 1

    def test_stop_all(self, env, tracking_settings, landmark_factory):
        source = ScriptedLocationSource(walking_script(landmark_factory))
        tracker = LocationTracker(env, source, tracking_settings)
        first = tracker.start(Mock())
        second = tracker.start(Mock())

        tracker.stop_all()

        assert not first.active
        assert not second.active


@pytest.mark.unit
class TestAdaptiveInterval:
    def test_base_interval_by_default(self, env, tracking_settings):
        tracker = LocationTracker(env, ScriptedLocationSource(), tracking_settings)
        assert tracker.current_interval() == tracking_settings.base_interval_seconds

    def test_near_landmark_interval(self, env, tracking_settings):
        tracker = LocationTracker(env, ScriptedLocationSource(), tracking_settings)
        # Near radius is outer * multiplier = 500 m
        tracker.update_landmark_proximity(480.0, outer_distance_m=250.0)
        assert tracker.current_interval() == tracking_settings.near_landmark_interval_seconds

    def test_far_from_all_landmarks_interval(self, env, tracking_settings):
        tracker = LocationTracker(env, ScriptedLocationSource(), tracking_settings)
        tracker.update_landmark_proximity(6000.0, outer_distance_m=250.0)
        assert tracker.current_interval() == tracking_settings.far_landmark_interval_seconds

    def test_between_near_and_far_uses_base(self, env, tracking_settings):
        tracker = LocationTracker(env, ScriptedLocationSource(), tracking_settings)
        tracker.update_landmark_proximity(1000.0, outer_distance_m=250.0)
        assert tracker.current_interval() == tracking_settings.base_interval_seconds

    def test_background_takes_priority(self, env, tracking_settings):
        tracker = LocationTracker(env, ScriptedLocationSource(), tracking_settings)
        tracker.update_landmark_proximity(10.0, outer_distance_m=250.0)
        tracker.set_background(True)
        assert tracker.current_interval() == tracking_settings.background_interval_seconds

    def test_near_landmark_shortens_polling(self, env, tracking_settings, landmark_factory):
        source = ScriptedLocationSource(walking_script(landmark_factory))
        tracker = LocationTracker(env, source, tracking_settings)
        tracker.update_landmark_proximity(100.0, outer_distance_m=250.0)
        callback = Mock()

        tracker.start(callback)
        env.run(until=31)

        # t=0, 10, 20, 30
        assert callback.call_count == 4


@pytest.mark.unit
class TestWatchMode:
    def test_watch_samples_are_throttled(self, env, tracking_settings, landmark_factory):
        source = SimulatedLocationSource(
            env, landmark_factory.route(0, 2000), speed_mps=1.4, watch_interval_seconds=1.0
        )
        tracker = LocationTracker(env, source, tracking_settings)
        callback = Mock()

        handle = tracker.start(callback, options=TrackingOptions(mode=TrackingMode.WATCH))
        env.run(until=65)

        assert handle.watch_id is not None
        assert handle.process is None
        # t=0, 30, 60
        assert callback.call_count == 3

    def test_stop_clears_watch(self, env, tracking_settings, landmark_factory):
        source = SimulatedLocationSource(env, landmark_factory.route(0, 2000))
        tracker = LocationTracker(env, source, tracking_settings)
        callback = Mock()

        handle = tracker.start(callback, options=TrackingOptions(mode=TrackingMode.WATCH))
        env.run(until=1)
        tracker.stop(handle)
        env.run(until=120)

        assert callback.call_count == 1
        assert handle.watch_id is None

    def test_falls_back_to_polling_for_poll_only_source(
        self, env, tracking_settings, landmark_factory
    ):
        source = ScriptedLocationSource(walking_script(landmark_factory))
        tracker = LocationTracker(env, source, tracking_settings)

        handle = tracker.start(Mock(), options=TrackingOptions(mode=TrackingMode.WATCH))

        assert handle.process is not None
        assert handle.watch_id is None
