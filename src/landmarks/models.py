"""Landmark models and source-record normalization.

Every source (static top list, AI tour, experience database) has its own
record shape. Records are normalized at the catalog boundary into the
canonical ``Landmark`` that everything downstream consumes.
"""

import re
from enum import Enum
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import DataValidationError
from geo.distance import is_valid_coordinate

TOP_ID_PREFIX = "top-"
TOUR_ID_PREFIX = "tour-landmark-"

_SLUG_PATTERN = re.compile(r"[^a-z0-9]")


class LandmarkSourceKind(str, Enum):
    TOP = "top"
    TOUR = "tour"
    EXPERIENCE = "experience"


def slugify(name: str) -> str:
    """Lowercase and replace every character outside [a-z0-9] with '-'."""
    return _SLUG_PATTERN.sub("-", name.lower())


def provenance_of(landmark_id: str) -> LandmarkSourceKind:
    """Classify a landmark id back into the source that produced it."""
    if landmark_id.startswith(TOUR_ID_PREFIX):
        return LandmarkSourceKind.TOUR
    if landmark_id.startswith(TOP_ID_PREFIX):
        return LandmarkSourceKind.TOP
    return LandmarkSourceKind.EXPERIENCE


class Landmark(BaseModel):
    """Canonical landmark. Coordinates are (lng, lat)."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    coordinates: tuple[float, float]
    description: str = ""
    source: LandmarkSourceKind
    rating: float | None = None
    photos: tuple[str, ...] = ()
    types: tuple[str, ...] = ()
    place_id: str | None = None
    formatted_address: str | None = None
    tour_id: str | None = None

    @field_validator("coordinates")
    @classmethod
    def validate_coordinates(cls, v: tuple[float, float]) -> tuple[float, float]:
        lng, lat = v
        if not is_valid_coordinate(lat, lng):
            raise ValueError(f"invalid coordinates (lng={lng}, lat={lat})")
        return v

    @property
    def longitude(self) -> float:
        return self.coordinates[0]

    @property
    def latitude(self) -> float:
        return self.coordinates[1]


class TopLandmarkRecord(BaseModel):
    """Entry of the bundled top-landmarks list."""

    kind: Literal["top"] = "top"
    name: str
    coordinates: tuple[float, float]
    description: str = ""


class TourLandmarkRecord(BaseModel):
    """Landmark produced by AI tour generation, keyed by its place id."""

    kind: Literal["tour"] = "tour"
    name: str
    coordinates: tuple[float, float]
    description: str = ""
    place_id: str | None = None
    rating: float | None = None
    photos: list[str] = Field(default_factory=list)
    types: list[str] = Field(default_factory=list)
    formatted_address: str | None = None
    tour_id: str | None = None


class ExperienceLandmarkRecord(BaseModel):
    """Landmark row fetched from the experience database."""

    kind: Literal["experience"] = "experience"
    id: UUID
    name: str
    coordinates: tuple[float, float]
    description: str = ""
    photos: list[str] = Field(default_factory=list)
    tour_id: str | None = None


LandmarkRecord = Annotated[
    TopLandmarkRecord | TourLandmarkRecord | ExperienceLandmarkRecord,
    Field(discriminator="kind"),
]

_record_adapter: TypeAdapter[
    TopLandmarkRecord | TourLandmarkRecord | ExperienceLandmarkRecord
] = TypeAdapter(LandmarkRecord)


def parse_record(
    data: dict, default_kind: LandmarkSourceKind | None = None
) -> TopLandmarkRecord | TourLandmarkRecord | ExperienceLandmarkRecord:
    """Validate a raw mapping into its tagged source record.

    Raises:
        DataValidationError: If the mapping does not match any record shape.
    """
    if "kind" not in data and default_kind is not None:
        data = {**data, "kind": default_kind.value}
    try:
        return _record_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise DataValidationError(
            f"Invalid landmark record: {data.get('name', '<unnamed>')}",
            details={"errors": e.errors(include_url=False)},
        ) from e


def normalize_record(
    record: TopLandmarkRecord | TourLandmarkRecord | ExperienceLandmarkRecord,
) -> Landmark:
    """Convert a source record into the canonical Landmark with a provenance-tagged id.

    Raises:
        DataValidationError: If the record's name or coordinates are invalid.
    """
    try:
        if isinstance(record, TopLandmarkRecord):
            return Landmark(
                id=f"{TOP_ID_PREFIX}{slugify(record.name)}",
                name=record.name,
                coordinates=record.coordinates,
                description=record.description,
                source=LandmarkSourceKind.TOP,
            )
        if isinstance(record, TourLandmarkRecord):
            return Landmark(
                id=f"{TOUR_ID_PREFIX}{slugify(record.name)}",
                name=record.name,
                coordinates=record.coordinates,
                description=record.description,
                source=LandmarkSourceKind.TOUR,
                rating=record.rating,
                photos=tuple(record.photos),
                types=tuple(record.types),
                place_id=record.place_id,
                formatted_address=record.formatted_address,
                tour_id=record.tour_id,
            )
        return Landmark(
            id=str(record.id),
            name=record.name,
            coordinates=record.coordinates,
            description=record.description,
            source=LandmarkSourceKind.EXPERIENCE,
            photos=tuple(record.photos),
            tour_id=record.tour_id,
        )
    except PydanticValidationError as e:
        raise DataValidationError(
            f"Invalid landmark {record.name!r}",
            details={"errors": e.errors(include_url=False)},
        ) from e
