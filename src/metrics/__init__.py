"""Proximity engine metrics."""

from .prometheus_exporter import (
    generate_metrics,
    record_cache_lookup,
    record_closest_change,
    record_notification,
    record_position_sample,
    record_suppressed,
    record_zone_transition,
    set_cooldown_entries,
)

__all__ = [
    "generate_metrics",
    "record_cache_lookup",
    "record_closest_change",
    "record_notification",
    "record_position_sample",
    "record_suppressed",
    "record_zone_transition",
    "set_cooldown_entries",
]
