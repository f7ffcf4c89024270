"""Prometheus metrics for the proximity engine.

Counters are updated in-process by the tracker, evaluator, coordinator and
preloaders; ``generate_metrics`` renders them for a scrape endpoint owned
by the host application.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

# Use a separate registry to avoid default Python metrics
REGISTRY = CollectorRegistry()

proximity_position_samples = Counter(
    "proximity_position_samples_total",
    "Location samples accepted by the tracker",
    ["movement"],
    registry=REGISTRY,
)

proximity_zone_transitions = Counter(
    "proximity_zone_transitions_total",
    "Zone transitions emitted by the evaluator",
    ["direction", "zone"],
    registry=REGISTRY,
)

proximity_closest_changes = Counter(
    "proximity_closest_changes_total",
    "Closest-landmark changes emitted by the evaluator",
    registry=REGISTRY,
)

proximity_notifications = Counter(
    "proximity_notifications_total",
    "User-visible notifications fired",
    ["kind"],
    registry=REGISTRY,
)

proximity_notifications_suppressed = Counter(
    "proximity_notifications_suppressed_total",
    "Notifications suppressed before reaching the user",
    ["reason"],
    registry=REGISTRY,
)

proximity_cache_requests = Counter(
    "proximity_cache_requests_total",
    "Preloader cache lookups",
    ["layer", "result"],
    registry=REGISTRY,
)

proximity_cooldown_entries = Gauge(
    "proximity_cooldown_entries",
    "Cooldown entries currently retained",
    registry=REGISTRY,
)


def record_position_sample(is_moving: bool) -> None:
    proximity_position_samples.labels(movement="moving" if is_moving else "stationary").inc()


def record_zone_transition(direction: str, zone: str) -> None:
    proximity_zone_transitions.labels(direction=direction, zone=zone).inc()


def record_closest_change() -> None:
    proximity_closest_changes.inc()


def record_notification(kind: str) -> None:
    proximity_notifications.labels(kind=kind).inc()


def record_suppressed(reason: str) -> None:
    proximity_notifications_suppressed.labels(reason=reason).inc()


def record_cache_lookup(layer: str, hit: bool) -> None:
    proximity_cache_requests.labels(layer=layer, result="hit" if hit else "miss").inc()


def set_cooldown_entries(count: int) -> None:
    proximity_cooldown_entries.set(count)


def generate_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)
