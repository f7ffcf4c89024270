"""Log filters for PII masking and correlation ID injection."""

import logging
import re

# Three decimals is roughly 100 m, enough to debug zones without tracking a user
COORDINATE_DECIMALS = 3


class PIIFilter(logging.Filter):
    """Masks e-mails and phone numbers and coarsens precise coordinate pairs."""

    EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+")
    PHONE_PATTERN = re.compile(r"\b\d{3}[-.\s]\d{3}[-.\s]\d{4}\b")
    COORDINATE_PATTERN = re.compile(r"(-?\d{1,3}\.\d{4,}),\s*(-?\d{1,3}\.\d{4,})")

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            msg = record.msg
            if "@" in msg:
                msg = self.EMAIL_PATTERN.sub("[EMAIL]", msg)
            if any(c.isdigit() for c in msg):
                msg = self.COORDINATE_PATTERN.sub(self._coarsen, msg)
                msg = self.PHONE_PATTERN.sub("[PHONE]", msg)
            record.msg = msg
        return True

    @staticmethod
    def _coarsen(match: re.Match[str]) -> str:
        lat, lon = (round(float(group), COORDINATE_DECIMALS) for group in match.groups())
        return f"{lat:.{COORDINATE_DECIMALS}f}, {lon:.{COORDINATE_DECIMALS}f}"


class DefaultCorrelationFilter(logging.Filter):
    """Adds default correlation_id if not present."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        return True
