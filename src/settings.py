from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SessionSettings(BaseSettings):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["text", "json"] = "text"
    environment: str = "development"
    unit_system: Literal["metric", "imperial"] = "metric"

    model_config = SettingsConfigDict(env_prefix="SESSION_")


class ProximitySettings(BaseSettings):
    """Per-user proximity thresholds, all in meters."""

    inner_distance: float = Field(
        default=50.0,
        gt=0.0,
        description="Distance at which a landmark triggers the prominent alert",
    )
    outer_distance: float = Field(
        default=250.0,
        gt=0.0,
        description="Distance at which a landmark enters the preparation zone",
    )
    card_distance: float = Field(
        default=50.0,
        gt=0.0,
        description="Distance at which a floating card is offered",
    )
    default_distance: float = Field(
        default=1000.0,
        gt=0.0,
        description="Range of the nearby-landmarks list",
    )
    is_enabled: bool = True

    model_config = SettingsConfigDict(env_prefix="PROXIMITY_")

    @model_validator(mode="after")
    def validate_zone_nesting(self) -> "ProximitySettings":
        if self.inner_distance > self.outer_distance:
            raise ValueError(
                f"inner_distance ({self.inner_distance}) must not exceed "
                f"outer_distance ({self.outer_distance})"
            )
        return self


class TrackingSettings(BaseSettings):
    """Location sampling intervals (seconds) and movement heuristics."""

    base_interval_seconds: float = Field(default=30.0, ge=1.0, le=600.0)
    stationary_interval_seconds: float = Field(default=120.0, ge=1.0, le=1800.0)
    near_landmark_interval_seconds: float = Field(default=10.0, ge=1.0, le=600.0)
    far_landmark_interval_seconds: float = Field(default=120.0, ge=1.0, le=1800.0)
    background_interval_seconds: float = Field(default=300.0, ge=1.0, le=3600.0)

    movement_threshold_m: float = Field(
        default=5.0,
        gt=0.0,
        le=100.0,
        description="Displacement between two samples below which the device is stationary",
    )
    near_landmark_multiplier: float = Field(default=2.0, ge=1.0, le=10.0)
    far_landmark_threshold_m: float = Field(default=5000.0, gt=0.0)

    timeout_seconds: float = Field(default=15.0, ge=1.0, le=120.0)
    maximum_age_seconds: float = Field(default=30.0, ge=0.0, le=600.0)
    enable_high_accuracy: bool = False

    model_config = SettingsConfigDict(env_prefix="TRACKING_")


class NotificationSettings(BaseSettings):
    cooldown_seconds: float = Field(default=600.0, ge=1.0, le=86_400.0)
    prune_interval_seconds: float = Field(default=60.0, ge=1.0, le=3600.0)
    toast_duration_ms: int = Field(default=5000, ge=500, le=60_000)
    chime_enabled: bool = True
    history_limit: int = Field(default=20, ge=1, le=500)

    model_config = SettingsConfigDict(env_prefix="NOTIFY_")


class CacheSettings(BaseSettings):
    offline_enabled: bool = True
    memory_max_items: int = Field(default=100, ge=1)
    memory_max_age_seconds: float = Field(default=3600.0, gt=0.0)
    offline_max_items: int = Field(default=200, ge=1)
    offline_max_age_seconds: float = Field(default=7 * 24 * 60 * 60.0, gt=0.0)
    version: str = "1.0"
    key_prefix: str = "offline"

    model_config = SettingsConfigDict(env_prefix="CACHE_")


class RedisSettings(BaseSettings):
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: str | None = None
    ssl: bool = False

    model_config = SettingsConfigDict(env_prefix="REDIS_")


class PlacesSettings(BaseSettings):
    base_url: str = "https://maps.googleapis.com/maps/api"
    api_key: str = ""
    timeout_seconds: float = Field(default=5.0, gt=0.0, le=60.0)

    model_config = SettingsConfigDict(env_prefix="PLACES_")

    @field_validator("base_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("Places base URL must start with http:// or https://")
        return v.rstrip("/")


class Settings(BaseSettings):
    session: SessionSettings = Field(default_factory=SessionSettings)
    proximity: ProximitySettings = Field(default_factory=ProximitySettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    places: PlacesSettings = Field(default_factory=PlacesSettings)

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        case_sensitive=False,
    )


def get_settings() -> Settings:
    """Load and validate settings from environment variables."""
    return Settings()
