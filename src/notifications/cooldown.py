"""Per-landmark notification cooldowns with periodic pruning."""

import logging
from collections.abc import Generator
from dataclasses import dataclass
from typing import Any

import simpy

from landmarks.models import Landmark
from metrics import set_cooldown_entries

logger = logging.getLogger(__name__)


def cooldown_key(landmark: Landmark) -> str:
    """Stable external identifier: place id, then landmark id, then name."""
    return landmark.place_id or landmark.id or landmark.name


@dataclass(frozen=True)
class CooldownEntry:
    landmark_key: str
    kind: str
    fired_at_ms: int


class CooldownTracker:
    """Cooldown table keyed by (landmark key, notification kind).

    Pruning runs as a SimPy process on a fixed interval and never as a side
    effect of evaluation.
    """

    def __init__(
        self,
        env: simpy.Environment,
        cooldown_seconds: float = 600.0,
        prune_interval_seconds: float = 60.0,
    ) -> None:
        self.env = env
        self.cooldown_ms = int(cooldown_seconds * 1000)
        self.prune_interval_seconds = prune_interval_seconds
        self._entries: dict[tuple[str, str], CooldownEntry] = {}
        self._prune_process: simpy.Process | None = None

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[CooldownEntry]:
        return list(self._entries.values())

    def now_ms(self) -> int:
        return int(self.env.now * 1000)

    def is_in_cooldown(self, landmark_key: str, kind: str, now_ms: int | None = None) -> bool:
        entry = self._entries.get((landmark_key, kind))
        if entry is None:
            return False
        now = self.now_ms() if now_ms is None else now_ms
        return now - entry.fired_at_ms < self.cooldown_ms

    def record(self, landmark_key: str, kind: str, now_ms: int | None = None) -> CooldownEntry:
        entry = CooldownEntry(
            landmark_key=landmark_key,
            kind=kind,
            fired_at_ms=self.now_ms() if now_ms is None else now_ms,
        )
        self._entries[(landmark_key, kind)] = entry
        set_cooldown_entries(len(self._entries))
        return entry

    def prune(self, now_ms: int | None = None) -> int:
        """Remove expired entries and return how many were removed."""
        now = self.now_ms() if now_ms is None else now_ms
        expired = [
            key
            for key, entry in self._entries.items()
            if now - entry.fired_at_ms >= self.cooldown_ms
        ]
        for key in expired:
            del self._entries[key]
        set_cooldown_entries(len(self._entries))
        if expired:
            logger.debug(f"Pruned {len(expired)} expired cooldown entries")
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        set_cooldown_entries(0)

    def start_pruning(self) -> None:
        if self._prune_process is not None and self._prune_process.is_alive:
            return
        self._prune_process = self.env.process(self._prune_loop())

    def stop_pruning(self) -> None:
        process = self._prune_process
        self._prune_process = None
        if process is not None and process.is_alive and self.env.active_process is not process:
            process.interrupt()

    def _prune_loop(self) -> Generator[simpy.Event, Any]:
        try:
            while True:
                yield self.env.timeout(self.prune_interval_seconds)
                self.prune()
        except simpy.Interrupt:
            pass
