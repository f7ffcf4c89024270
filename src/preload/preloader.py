"""Cache-fronted fetchers for landmark detail content."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Generator, Iterable
from typing import Any, Generic, TypeVar

import simpy
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import CacheError, NotFoundError, ProximityEngineError
from landmarks.models import Landmark
from metrics import record_cache_lookup
from preload.cache import MemoryCache, OfflineCache
from preload.network import NetworkStatus

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class Preloader(Generic[T]):
    """Looks content up in memory, then the offline cache, then the network.

    Fetched values are written through to both caches unless a landmark that
    was relevant when the fetch was requested stopped being relevant while it
    was in flight. Landmarks whose fetch came back not-found are remembered
    and never re-fetched in this session. Failures never propagate: lookups
    return None.
    """

    def __init__(
        self,
        name: str,
        model_type: type[T],
        fetch: Callable[[Landmark], T],
        memory_cache: MemoryCache,
        offline_cache: OfflineCache | None = None,
        network_status: NetworkStatus | None = None,
        is_relevant: Callable[[Landmark], bool] | None = None,
        afetch: Callable[[Landmark], Awaitable[T]] | None = None,
    ):
        self.name = name
        self._model_type = model_type
        self._fetch = fetch
        self._afetch = afetch
        self._memory = memory_cache
        self._offline = offline_cache
        self.network_status = network_status or NetworkStatus()
        self.is_relevant = is_relevant
        self._unavailable: set[str] = set()
        self._in_flight: dict[str, asyncio.Task] = {}
        self.requests = 0
        self.hits = 0
        self.fetches = 0
        self.failures = 0

    def is_known_unavailable(self, landmark: Landmark) -> bool:
        return landmark.id in self._unavailable

    def get_cached(self, landmark: Landmark) -> T | None:
        """Memory then offline cache, without touching the network."""
        key = landmark.id

        value = self._memory.get(key)
        record_cache_lookup("memory", value is not None)
        if value is not None:
            return value

        if self._offline is None:
            return None

        try:
            raw = self._offline.get(key)
        except CacheError as e:
            logger.warning(f"{self.name} offline cache unavailable, treating as miss: {e.message}")
            record_cache_lookup("offline", False)
            return None

        if raw is not None:
            try:
                value = self._model_type.model_validate(raw)
            except PydanticValidationError:
                logger.warning(f"{self.name} offline entry for {key} is malformed, discarding")
                self._discard_offline(key)
                value = None

        record_cache_lookup("offline", value is not None)
        if value is not None:
            self._memory.set(key, value)
        return value

    def get(self, landmark: Landmark) -> T | None:
        return self._get(landmark, self._relevant_now(landmark))

    def _get(self, landmark: Landmark, was_relevant: bool) -> T | None:
        self.requests += 1
        cached = self.get_cached(landmark)
        if cached is not None:
            self.hits += 1
            return cached
        if not self._should_fetch(landmark):
            return None

        self.fetches += 1
        try:
            value = self._fetch(landmark)
        except ProximityEngineError as e:
            self._on_fetch_error(landmark, e)
            return None

        self._store(landmark, value, was_relevant)
        return value

    async def aget(self, landmark: Landmark) -> T | None:
        """Async lookup. Concurrent lookups for one landmark share a single fetch."""
        self.requests += 1
        cached = self.get_cached(landmark)
        if cached is not None:
            self.hits += 1
            return cached
        if not self._should_fetch(landmark):
            return None

        key = landmark.id
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(
                self._afetch_and_store(landmark, self._relevant_now(landmark))
            )
            self._in_flight[key] = task
            task.add_done_callback(lambda _: self._in_flight.pop(key, None))
        return await task

    def preload(
        self, landmarks: Iterable[Landmark], relevant_ids: set[str] | None = None
    ) -> int:
        """Best-effort cache fill; returns how many landmarks now have content.

        Skipped entirely while offline or on a slow connection. ``relevant_ids``
        records which landmarks were relevant when the preload was requested;
        without it relevance is read at fetch time.
        """
        if not self.network_status.allows_preload:
            logger.debug(f"{self.name} preload skipped: network not suitable")
            return 0

        loaded = 0
        for landmark in landmarks:
            if relevant_ids is None:
                was_relevant = self._relevant_now(landmark)
            else:
                was_relevant = landmark.id in relevant_ids
            try:
                if self._get(landmark, was_relevant) is not None:
                    loaded += 1
            except Exception:
                logger.warning(f"{self.name} preload failed for {landmark.name}", exc_info=True)
        return loaded

    def schedule_preload(
        self, env: simpy.Environment, landmarks: Iterable[Landmark]
    ) -> simpy.Process:
        """Run ``preload`` as a fire-and-forget SimPy process."""
        batch = list(landmarks)
        relevant_ids = {landmark.id for landmark in batch if self._relevant_now(landmark)}
        return env.process(self._preload_process(env, batch, relevant_ids))

    def get_stats(self) -> dict[str, Any]:
        hit_rate = self.hits / self.requests if self.requests > 0 else 0.0
        return {
            "requests": self.requests,
            "hits": self.hits,
            "fetches": self.fetches,
            "failures": self.failures,
            "hit_rate": hit_rate,
            "memory_size": len(self._memory),
            "known_unavailable": len(self._unavailable),
        }

    def clear(self) -> None:
        self._memory.clear()
        self._unavailable.clear()

    def _preload_process(
        self, env: simpy.Environment, batch: list[Landmark], relevant_ids: set[str]
    ) -> Generator[simpy.Event, Any]:
        yield env.timeout(0)
        self.preload(batch, relevant_ids)

    def _relevant_now(self, landmark: Landmark) -> bool:
        return self.is_relevant is not None and self.is_relevant(landmark)

    def _should_fetch(self, landmark: Landmark) -> bool:
        if not self.network_status.is_online:
            return False
        if landmark.id in self._unavailable:
            logger.debug(f"{self.name} known unavailable for {landmark.name}")
            return False
        return True

    async def _afetch_and_store(self, landmark: Landmark, was_relevant: bool) -> T | None:
        self.fetches += 1
        try:
            if self._afetch is not None:
                value = await self._afetch(landmark)
            else:
                value = await asyncio.to_thread(self._fetch, landmark)
        except ProximityEngineError as e:
            self._on_fetch_error(landmark, e)
            return None

        self._store(landmark, value, was_relevant)
        return value

    def _on_fetch_error(self, landmark: Landmark, error: ProximityEngineError) -> None:
        self.failures += 1
        if isinstance(error, NotFoundError):
            self._unavailable.add(landmark.id)
            logger.info(
                f"{self.name} not available for {landmark.name}",
                extra={"preloader": self.name, "landmark_id": landmark.id},
            )
            return
        logger.warning(
            f"{self.name} fetch failed for {landmark.name}: {error.message}",
            extra={"preloader": self.name, "landmark_id": landmark.id},
        )

    def _store(self, landmark: Landmark, value: T, was_relevant: bool) -> None:
        if was_relevant and not self._relevant_now(landmark):
            logger.debug(f"{self.name} result for {landmark.name} discarded: no longer relevant")
            return

        self._memory.set(landmark.id, value)
        if self._offline is None:
            return
        try:
            self._offline.set(landmark.id, value.model_dump(mode="json"))
        except CacheError as e:
            logger.warning(f"{self.name} offline cache write failed: {e.message}")

    def _discard_offline(self, key: str) -> None:
        try:
            self._offline.delete(key)
        except CacheError as e:
            logger.warning(f"{self.name} offline cache delete failed: {e.message}")
