from dataclasses import dataclass

SLOW_EFFECTIVE_TYPES = frozenset({"slow-2g", "2g"})
SLOW_DOWNLINK_MBPS = 1.0


@dataclass
class NetworkStatus:
    """Connectivity as last reported by the host platform."""

    is_online: bool = True
    is_slow_connection: bool = False
    effective_type: str = "unknown"
    downlink_mbps: float | None = None

    @classmethod
    def from_connection(
        cls, is_online: bool, effective_type: str = "unknown", downlink_mbps: float | None = None
    ) -> "NetworkStatus":
        """Build a status from connection info; 2g or under 1 Mbps counts as slow."""
        is_slow = effective_type in SLOW_EFFECTIVE_TYPES or (
            downlink_mbps is not None and downlink_mbps < SLOW_DOWNLINK_MBPS
        )
        return cls(
            is_online=is_online,
            is_slow_connection=is_slow,
            effective_type=effective_type,
            downlink_mbps=downlink_mbps,
        )

    @property
    def allows_preload(self) -> bool:
        return self.is_online and not self.is_slow_connection
