"""One user's proximity session: owns and wires every pipeline component."""

import logging
import uuid
from collections.abc import Iterable

import redis
import simpy

from core.exceptions import ProximityEngineError
from geo.distance import UnitSystem
from landmarks.catalog import LandmarkCatalog, LandmarkInput, MarkerSurface
from landmarks.models import Landmark
from location.models import Position, TrackingOptions
from location.source import LocationSource
from location.tracker import LocationTracker, TrackingHandle
from notifications.coordinator import NotificationCoordinator, NotificationSurface
from notifications.cooldown import CooldownTracker
from preload.cache import MemoryCache, OfflineCache, create_redis_client
from preload.clients import LandmarkImage, PlacesClient, StreetViewData
from preload.network import NetworkStatus
from preload.preloader import Preloader
from proximity.evaluator import ProximityEvaluator
from proximity.zones import ProximityResult, TransitionKind, Zone, ZoneTransition
from proximity_logging import log_context, setup_logging
from settings import ProximitySettings, SessionSettings, Settings, get_settings

logger = logging.getLogger(__name__)


def configure_logging(settings: SessionSettings) -> None:
    setup_logging(
        level=settings.log_level,
        json_output=settings.log_format == "json",
        environment=settings.environment,
    )


STREET_VIEW_PRELOADER = "streetview"
IMAGE_PRELOADER = "photos"


def build_preloaders(
    settings: Settings,
    redis_client: redis.Redis | None = None,
    places_client: PlacesClient | None = None,
    network_status: NetworkStatus | None = None,
) -> list[Preloader]:
    """Street view and landmark image preloaders sharing one network status.

    Without an explicit client, the offline tier connects to the Redis from
    settings unless it is disabled there.
    """
    cache = settings.cache
    places = places_client or PlacesClient.from_settings(settings.places)
    status = network_status or NetworkStatus()
    if redis_client is None and cache.offline_enabled:
        redis_client = create_redis_client(settings.redis)

    def caches(namespace: str) -> tuple[MemoryCache, OfflineCache | None]:
        memory = MemoryCache(cache.memory_max_items, cache.memory_max_age_seconds)
        if redis_client is None or not cache.offline_enabled:
            return memory, None
        return memory, OfflineCache.from_settings(redis_client, namespace, cache)

    street_view = Preloader(
        STREET_VIEW_PRELOADER,
        StreetViewData,
        places.get_street_view_sync,
        *caches(STREET_VIEW_PRELOADER),
        network_status=status,
        afetch=places.get_street_view,
    )
    images = Preloader(
        IMAGE_PRELOADER,
        LandmarkImage,
        places.get_landmark_image_sync,
        *caches(IMAGE_PRELOADER),
        network_status=status,
        afetch=places.get_landmark_image,
    )
    return [street_view, images]


class TourSession:
    """Builds the pipeline for one session and tears it down at the end.

    Positions flow from the tracker into the evaluator, whose single event
    stream feeds the notification coordinator. Every evaluation reads the
    latest retained position and landmark set.
    """

    def __init__(
        self,
        env: simpy.Environment,
        location_source: LocationSource,
        notification_surface: NotificationSurface,
        settings: Settings | None = None,
        marker_surface: MarkerSurface | None = None,
        preloaders: Iterable[Preloader] = (),
        session_id: str | None = None,
        tracking_options: TrackingOptions | None = None,
    ):
        self.env = env
        self.settings = settings or get_settings()
        self.session_id = session_id or str(uuid.uuid4())
        self._tracking_options = tracking_options

        self.catalog = LandmarkCatalog(marker_surface, on_select=self._on_landmark_selected)
        self.evaluator = ProximityEvaluator()
        self.tracker = LocationTracker(env, location_source, self.settings.tracking)
        self.cooldowns = CooldownTracker(
            env,
            cooldown_seconds=self.settings.notifications.cooldown_seconds,
            prune_interval_seconds=self.settings.notifications.prune_interval_seconds,
        )
        self.coordinator = NotificationCoordinator(
            notification_surface,
            self.cooldowns,
            settings=self.settings.notifications,
            unit_system=UnitSystem(self.settings.session.unit_system),
            marker_surface=marker_surface,
            on_preload=self._on_preload,
            is_relevant=self._is_card_eligible,
        )
        self.preloaders = list(preloaders)
        for preloader in self.preloaders:
            if preloader.is_relevant is None:
                preloader.is_relevant = self.is_relevant

        self.evaluator.subscribe(self.coordinator.handle)
        self.catalog.subscribe(self._on_catalog_changed)

        self._position: Position | None = None
        self._handle: TrackingHandle | None = None
        self.last_result = ProximityResult()
        self.location_error: ProximityEngineError | None = None
        self.selected_landmark: Landmark | None = None

    @classmethod
    def from_settings(
        cls,
        env: simpy.Environment,
        location_source: LocationSource,
        notification_surface: NotificationSurface,
        settings: Settings | None = None,
        marker_surface: MarkerSurface | None = None,
        redis_client: redis.Redis | None = None,
        places_client: PlacesClient | None = None,
        network_status: NetworkStatus | None = None,
    ) -> "TourSession":
        """Configure logging and assemble a session with its preloaders from settings."""
        settings = settings or get_settings()
        configure_logging(settings.session)
        preloaders = build_preloaders(settings, redis_client, places_client, network_status)
        session = cls(
            env,
            location_source,
            notification_surface,
            settings=settings,
            marker_surface=marker_surface,
            preloaders=preloaders,
        )
        logger.info(
            f"Session {session.session_id} assembled with "
            f"{', '.join(p.name for p in preloaders)} preloaders"
        )
        return session

    @property
    def position(self) -> Position | None:
        return self._position

    @property
    def is_tracking(self) -> bool:
        return self._handle is not None and self._handle.active

    @property
    def nearby_landmarks(self) -> list[Landmark]:
        return [item.landmark for item in self.last_result.landmarks]

    @property
    def preload_radius_m(self) -> float:
        proximity = self.settings.proximity
        return proximity.outer_distance * self.settings.tracking.near_landmark_multiplier

    def start(self) -> None:
        with log_context(session_id=self.session_id):
            if self.is_tracking:
                return
            self.location_error = None
            self.cooldowns.start_pruning()
            self._handle = self.tracker.start(
                self.on_position, self._on_location_error, self._tracking_options
            )
            logger.info("Proximity session started")

    def stop(self) -> None:
        """Stop tracking and timers and drop all retained proximity state."""
        with log_context(session_id=self.session_id):
            if self._handle is not None:
                self.tracker.stop(self._handle)
                self._handle = None
            self.cooldowns.stop_pruning()
            self.cooldowns.clear()
            self.evaluator.reset()
            self.coordinator.reset()
            self._position = None
            self.last_result = ProximityResult()
            logger.info("Proximity session stopped")

    def set_top_landmarks(self, items: Iterable[LandmarkInput]) -> None:
        self.catalog.set_top_landmarks(items)

    def set_experience_landmarks(self, items: Iterable[LandmarkInput]) -> None:
        self.catalog.set_experience_landmarks(items)

    def replace_tour_landmarks(self, items: Iterable[LandmarkInput]) -> list[Landmark]:
        return self.catalog.replace_tour_landmarks(items)

    def update_proximity_settings(self, settings: ProximitySettings) -> None:
        self.settings.proximity = settings
        self.evaluate()

    def set_unit_system(self, unit_system: UnitSystem | str) -> None:
        self.coordinator.unit_system = UnitSystem(unit_system)

    def set_background(self, is_background: bool) -> None:
        self.tracker.set_background(is_background)

    def on_position(self, position: Position) -> None:
        """Tracker callback. Samples older than the latest processed one are ignored."""
        latest = self._position
        if latest is not None and position.timestamp_ms < latest.timestamp_ms:
            logger.debug(
                f"Ignoring stale position ({position.timestamp_ms} < {latest.timestamp_ms})"
            )
            return
        self._position = position
        self.evaluate()

    def evaluate(self) -> ProximityResult:
        """Re-run the evaluator against the latest position and landmarks."""
        with log_context(session_id=self.session_id):
            proximity = self.settings.proximity
            result = self.evaluator.evaluate(
                self._position,
                self.catalog.landmarks,
                proximity,
                max_distance=proximity.default_distance,
            )
            if self._position is not None:
                self.last_result = result
                self.tracker.update_landmark_proximity(
                    result.nearest_distance_m, proximity.outer_distance
                )
            if any(self._is_outer_entry(event) for event in result.events):
                self._preload_approaching(result)
            return result

    def is_relevant(self, landmark: Landmark) -> bool:
        """Whether the landmark is selected or within preload range of the latest position."""
        selected = self.selected_landmark
        if selected is not None and selected.id == landmark.id:
            return True
        if self._position is None:
            return False
        distance = self.evaluator.distance_to(self._position, landmark)
        return distance <= self.preload_radius_m

    def _is_card_eligible(self, landmark: Landmark) -> bool:
        state = self.evaluator.zone_state(landmark.id)
        return state is not None and state.in_card

    @staticmethod
    def _is_outer_entry(event: object) -> bool:
        return (
            isinstance(event, ZoneTransition)
            and event.kind is TransitionKind.ENTER
            and event.zone is Zone.OUTER
        )

    def _preload_approaching(self, result: ProximityResult) -> None:
        radius = self.preload_radius_m
        batch = [item.landmark for item in result.landmarks if item.distance_m <= radius]
        if not batch:
            return
        for preloader in self.preloaders:
            preloader.schedule_preload(self.env, batch)

    def _on_preload(self, landmark: Landmark, zone: Zone) -> None:
        for preloader in self.preloaders:
            preloader.schedule_preload(self.env, [landmark])

    def _on_catalog_changed(self) -> None:
        if self._position is not None:
            self.evaluate()

    def _on_location_error(self, error: ProximityEngineError) -> None:
        self.location_error = error
        logger.warning(f"Proximity features disabled: {error.message}")

    def _on_landmark_selected(self, landmark: Landmark) -> None:
        self.selected_landmark = landmark
        logger.info(f"Landmark selected: {landmark.name}")
        for preloader in self.preloaders:
            preloader.schedule_preload(self.env, [landmark])
