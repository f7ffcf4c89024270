"""Log formatters for JSON and human-readable output."""

import json
import logging
from datetime import UTC, datetime
from typing import Any

CONTEXT_FIELDS = ("session_id", "landmark_id", "correlation_id")

# Structured extras attached by the evaluator, coordinator and preloaders
EVENT_FIELDS = ("zone", "transition", "notification_kind", "distance_m", "preloader")


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Context and event fields present on a record, in a stable order."""
    fields: dict[str, Any] = {}
    for name in CONTEXT_FIELDS + EVENT_FIELDS:
        value = getattr(record, name, None)
        if value is None:
            continue
        if name == "distance_m":
            value = round(float(value), 1)
        fields[name] = value
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per record, timestamped at record creation."""

    def __init__(self, environment: str = "development"):
        super().__init__()
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "env": self.environment,
        }
        fields = record_fields(record)
        # The placeholder correlation id carries no information
        if fields.get("correlation_id") == "-":
            del fields["correlation_id"]
        log_data.update(fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


class DevFormatter(logging.Formatter):
    """Human-readable single line with the landmark context appended.

    Example:
        2024-05-01 10:00:00 [    INFO] notifications.coordinator: Notified alert
        for Zócalo {landmark=top-zocalo kind=alert 40.0m}
    """

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s [%(levelname)8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        suffix = self._suffix(record)
        if not suffix:
            return line
        # Keep tracebacks after the context suffix on the first line
        first, sep, rest = line.partition("\n")
        return f"{first} {{{suffix}}}{sep}{rest}"

    @staticmethod
    def _suffix(record: logging.LogRecord) -> str:
        fields = record_fields(record)
        parts = []
        if "landmark_id" in fields:
            parts.append(f"landmark={fields['landmark_id']}")
        if "transition" in fields and "zone" in fields:
            parts.append(f"{fields['transition']}:{fields['zone']}")
        elif "zone" in fields:
            parts.append(f"zone={fields['zone']}")
        if "notification_kind" in fields:
            parts.append(f"kind={fields['notification_kind']}")
        if "preloader" in fields:
            parts.append(f"preloader={fields['preloader']}")
        if "distance_m" in fields:
            parts.append(f"{fields['distance_m']}m")
        return " ".join(parts)
