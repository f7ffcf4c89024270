from unittest.mock import Mock

import pytest
import simpy

from landmarks.catalog import MarkerSurface
from notifications.coordinator import NotificationSurface
from proximity_logging import LogContext
from settings import NotificationSettings, ProximitySettings, TrackingSettings
from tests.factories import LandmarkFactory


@pytest.fixture
def env() -> simpy.Environment:
    return simpy.Environment()


@pytest.fixture
def landmark_factory() -> LandmarkFactory:
    """Factory for landmarks placed at exact distances from the origin."""
    return LandmarkFactory()


@pytest.fixture
def proximity_settings() -> ProximitySettings:
    return ProximitySettings(
        inner_distance=50.0,
        outer_distance=250.0,
        card_distance=50.0,
        default_distance=1000.0,
    )


@pytest.fixture
def tracking_settings() -> TrackingSettings:
    return TrackingSettings()


@pytest.fixture
def notification_settings() -> NotificationSettings:
    return NotificationSettings(cooldown_seconds=600, prune_interval_seconds=60)


@pytest.fixture
def mock_marker_surface():
    """Mock map surface recording add/remove/highlight calls."""
    return Mock(spec=MarkerSurface)


@pytest.fixture
def mock_notification_surface():
    """Mock notification surface recording toasts, cards and chimes."""
    return Mock(spec=NotificationSurface)


@pytest.fixture
def mock_redis_client():
    """Mock Redis client for offline cache tests."""
    return Mock()


@pytest.fixture(autouse=True)
def clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()
