"""Landmark catalog merging the top, tour and experience sources."""

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Protocol

from core.exceptions import DataValidationError
from landmarks.models import (
    ExperienceLandmarkRecord,
    Landmark,
    LandmarkSourceKind,
    TopLandmarkRecord,
    TourLandmarkRecord,
    normalize_record,
    parse_record,
)

logger = logging.getLogger(__name__)

LandmarkInput = (
    Landmark | TopLandmarkRecord | TourLandmarkRecord | ExperienceLandmarkRecord | Mapping[str, Any]
)


class MarkerSurface(Protocol):
    """Map rendering surface. The catalog never reaches into map internals."""

    def add_marker(
        self,
        marker_id: str,
        coordinates: tuple[float, float],
        on_click: Callable[[], None],
    ) -> None: ...

    def remove_marker(self, marker_id: str) -> None: ...

    def highlight(self, marker_id: str, style_variant: str) -> None: ...


def coerce_landmark(
    item: LandmarkInput, default_kind: LandmarkSourceKind | None = None
) -> Landmark:
    """Turn any accepted landmark input into a canonical Landmark.

    Raises:
        DataValidationError: If the input cannot be normalized.
    """
    if isinstance(item, Landmark):
        return item
    if isinstance(item, (TopLandmarkRecord, TourLandmarkRecord, ExperienceLandmarkRecord)):
        return normalize_record(item)
    if isinstance(item, Mapping):
        return normalize_record(parse_record(dict(item), default_kind))
    raise DataValidationError(f"Unsupported landmark input: {type(item).__name__}")


def merge(
    sources: Iterable[Iterable[LandmarkInput]],
    default_kind: LandmarkSourceKind | None = None,
) -> list[Landmark]:
    """Concatenate landmark sources into one validated, de-duplicated list.

    Invalid entries are dropped with a warning and never propagate. When two
    entries share an id, the first one wins.
    """
    merged: list[Landmark] = []
    seen: set[str] = set()

    for source in sources:
        for index, item in enumerate(source):
            try:
                landmark = coerce_landmark(item, default_kind)
            except DataValidationError as e:
                logger.warning(f"Dropping invalid landmark at index {index}: {e.message}")
                continue

            if landmark.id in seen:
                logger.debug(f"Skipping duplicate landmark id {landmark.id}")
                continue
            seen.add(landmark.id)
            merged.append(landmark)

    return merged


class LandmarkCatalog:
    """Owns the landmark collections of one session.

    Tour landmarks are always replaced wholesale: every marker added for the
    previous tour is removed before the new tour's markers are added.
    """

    def __init__(
        self,
        marker_surface: MarkerSurface | None = None,
        on_select: Callable[[Landmark], None] | None = None,
    ) -> None:
        self._marker_surface = marker_surface
        self._on_select = on_select
        self._top: list[Landmark] = []
        self._tour: list[Landmark] = []
        self._experience: list[Landmark] = []
        self._tour_markers: list[str] = []
        self._listeners: list[Callable[[], None]] = []
        self._landmarks: list[Landmark] = []
        self.version = 0

    @property
    def landmarks(self) -> list[Landmark]:
        return list(self._landmarks)

    @property
    def tour_landmarks(self) -> list[Landmark]:
        return list(self._tour)

    def get(self, landmark_id: str) -> Landmark | None:
        for landmark in self._landmarks:
            if landmark.id == landmark_id:
                return landmark
        return None

    def __len__(self) -> int:
        return len(self._landmarks)

    def subscribe(self, listener: Callable[[], None]) -> None:
        """Register a callback invoked after every catalog change."""
        self._listeners.append(listener)

    def set_top_landmarks(self, items: Iterable[LandmarkInput]) -> None:
        self._top = merge([items], LandmarkSourceKind.TOP)
        self._rebuild()

    def set_experience_landmarks(self, items: Iterable[LandmarkInput]) -> None:
        self._experience = merge([items], LandmarkSourceKind.EXPERIENCE)
        self._rebuild()

    def replace_tour_landmarks(self, items: Iterable[LandmarkInput]) -> list[Landmark]:
        """Clear the previous tour and install a new one.

        New landmarks are validated before anything is cleared. Removal
        callbacks for every previously added tour marker are drained
        synchronously before the first new marker is added. A marker whose
        removal fails stays tracked and is retried on the next replacement.
        """
        new_tour = merge([items], LandmarkSourceKind.TOUR)

        stale_markers = self._tour_markers
        self._tour_markers = []
        self._tour = []
        for marker_id in stale_markers:
            try:
                self._remove_marker(marker_id)
            except Exception:
                logger.exception(f"Failed to remove tour marker {marker_id}")
                self._tour_markers.append(marker_id)
        if stale_markers:
            cleared = len(stale_markers) - len(self._tour_markers)
            logger.info(f"Cleared {cleared} of {len(stale_markers)} tour markers")

        self._tour = new_tour
        for landmark in new_tour:
            self._add_marker(landmark)
        logger.info(f"Installed {len(new_tour)} tour landmarks")

        self._rebuild()
        return list(new_tour)

    def clear_tour_landmarks(self) -> None:
        self.replace_tour_landmarks([])

    def _add_marker(self, landmark: Landmark) -> None:
        if self._marker_surface is None:
            return
        self._marker_surface.add_marker(
            landmark.id, landmark.coordinates, self._click_handler(landmark)
        )
        self._tour_markers.append(landmark.id)

    def _remove_marker(self, marker_id: str) -> None:
        if self._marker_surface is None:
            return
        self._marker_surface.remove_marker(marker_id)

    def _click_handler(self, landmark: Landmark) -> Callable[[], None]:
        def on_click() -> None:
            if self._on_select is not None:
                self._on_select(landmark)

        return on_click

    def _rebuild(self) -> None:
        self._landmarks = merge([self._top, self._tour, self._experience])
        self.version += 1
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Catalog listener failed")
