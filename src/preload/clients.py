"""HTTP clients for place photos and street-level imagery."""

from typing import Any, Literal

import httpx
import requests
from pydantic import BaseModel

from core.exceptions import (
    ConfigurationError,
    NetworkError,
    NotFoundError,
    RateLimitedError,
    ServiceUnavailableError,
)
from geo.distance import initial_bearing_deg
from landmarks.models import Landmark
from settings import PlacesSettings

STREET_VIEW_SIZE = "640x640"
STREET_VIEW_PITCH = 0.0
STREET_VIEW_FOV = 90.0
PHOTO_MAX_WIDTH = 800

_NOT_FOUND_STATUSES = frozenset({"ZERO_RESULTS", "NOT_FOUND"})
_CONFIG_STATUSES = frozenset({"REQUEST_DENIED", "INVALID_REQUEST"})


class StreetViewData(BaseModel):
    image_url: str
    pano_id: str | None = None
    heading: float
    pitch: float = STREET_VIEW_PITCH
    fov: float = STREET_VIEW_FOV
    location: tuple[float, float]  # (lat, lng) of the panorama
    landmark_name: str
    status: str = "OK"
    copyright: str | None = None


class LandmarkImage(BaseModel):
    landmark_id: str
    url: str
    source: Literal["landmark", "places"]
    attribution: str | None = None


def check_response(status_code: int, data: dict[str, Any] | None) -> dict[str, Any]:
    """Map HTTP and API status codes onto the engine's error taxonomy."""
    if status_code == 404:
        raise NotFoundError(f"Places API returned {status_code}")
    if status_code == 429:
        raise RateLimitedError("Places API rate limit exceeded")
    if status_code >= 500:
        raise ServiceUnavailableError(f"Places API server error: {status_code}")
    if status_code >= 400:
        raise ConfigurationError(f"Places API rejected request: {status_code}")
    if data is None:
        raise ServiceUnavailableError("Places API returned an unreadable body")

    status = data.get("status", "OK")
    if status in _NOT_FOUND_STATUSES:
        raise NotFoundError(f"Places API status {status}")
    if status == "OVER_QUERY_LIMIT":
        raise RateLimitedError("Places API quota exceeded")
    if status in _CONFIG_STATUSES:
        raise ConfigurationError(
            f"Places API status {status}", details={"error": data.get("error_message")}
        )
    if status != "OK":
        raise ServiceUnavailableError(f"Places API status {status}")
    return data


class PlacesClient:
    """Client for the place photo and street view endpoints.

    ``get_*`` coroutines use httpx for callers running an asyncio loop; the
    ``*_sync`` variants use requests for SimPy processes.
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: PlacesSettings) -> "PlacesClient":
        return cls(settings.base_url, settings.api_key, settings.timeout_seconds)

    async def get_street_view(self, landmark: Landmark) -> StreetViewData:
        url, params = self._street_view_request(landmark)
        data = await self._get_json(url, params)
        return self._parse_street_view(data, landmark)

    def get_street_view_sync(self, landmark: Landmark) -> StreetViewData:
        url, params = self._street_view_request(landmark)
        data = self._get_json_sync(url, params)
        return self._parse_street_view(data, landmark)

    async def get_landmark_image(self, landmark: Landmark) -> LandmarkImage:
        if landmark.photos:
            return LandmarkImage(landmark_id=landmark.id, url=landmark.photos[0], source="landmark")
        url, params = self._image_request(landmark)
        data = await self._get_json(url, params)
        return self._parse_image(data, landmark)

    def get_landmark_image_sync(self, landmark: Landmark) -> LandmarkImage:
        if landmark.photos:
            return LandmarkImage(landmark_id=landmark.id, url=landmark.photos[0], source="landmark")
        url, params = self._image_request(landmark)
        data = self._get_json_sync(url, params)
        return self._parse_image(data, landmark)

    async def _get_json(self, url: str, params: dict[str, str]) -> dict[str, Any]:
        self._require_key()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Network error: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None
        return check_response(response.status_code, data)

    def _get_json_sync(self, url: str, params: dict[str, str]) -> dict[str, Any]:
        """Synchronous fetch for use inside SimPy processes."""
        self._require_key()
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
        except requests.Timeout as e:
            raise NetworkError(f"Request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise NetworkError(f"Network error: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None
        return check_response(response.status_code, data)

    def _require_key(self) -> None:
        if not self.api_key:
            raise ConfigurationError("PLACES_API_KEY is not set")

    def _street_view_request(self, landmark: Landmark) -> tuple[str, dict[str, str]]:
        return f"{self.base_url}/streetview/metadata", {
            "location": f"{landmark.latitude},{landmark.longitude}",
            "key": self.api_key,
        }

    def _parse_street_view(self, data: dict[str, Any], landmark: Landmark) -> StreetViewData:
        location = data.get("location") or {}
        pano_lat = float(location.get("lat", landmark.latitude))
        pano_lng = float(location.get("lng", landmark.longitude))
        # Face the landmark from where the panorama was captured
        heading = initial_bearing_deg(pano_lat, pano_lng, landmark.latitude, landmark.longitude)
        pano_id = data.get("pano_id")

        target = f"pano={pano_id}" if pano_id else f"location={pano_lat},{pano_lng}"
        image_url = (
            f"{self.base_url}/streetview?size={STREET_VIEW_SIZE}&{target}"
            f"&heading={heading:.0f}&pitch={STREET_VIEW_PITCH:.0f}&fov={STREET_VIEW_FOV:.0f}"
            f"&key={self.api_key}"
        )
        return StreetViewData(
            image_url=image_url,
            pano_id=pano_id,
            heading=heading,
            location=(pano_lat, pano_lng),
            landmark_name=landmark.name,
            status=data.get("status", "OK"),
            copyright=data.get("copyright"),
        )

    def _image_request(self, landmark: Landmark) -> tuple[str, dict[str, str]]:
        if landmark.place_id:
            return f"{self.base_url}/place/details/json", {
                "place_id": landmark.place_id,
                "fields": "photos",
                "key": self.api_key,
            }
        return f"{self.base_url}/place/findplacefromtext/json", {
            "input": landmark.name,
            "inputtype": "textquery",
            "fields": "photos,place_id",
            "locationbias": f"point:{landmark.latitude},{landmark.longitude}",
            "key": self.api_key,
        }

    def _parse_image(self, data: dict[str, Any], landmark: Landmark) -> LandmarkImage:
        if "result" in data:
            photos = data["result"].get("photos") or []
        else:
            candidates = data.get("candidates") or []
            photos = (candidates[0].get("photos") or []) if candidates else []

        if not photos:
            raise NotFoundError(f"No photos for {landmark.name}", details={"id": landmark.id})

        photo = photos[0]
        attributions = photo.get("html_attributions") or []
        return LandmarkImage(
            landmark_id=landmark.id,
            url=(
                f"{self.base_url}/place/photo?maxwidth={PHOTO_MAX_WIDTH}"
                f"&photo_reference={photo['photo_reference']}&key={self.api_key}"
            ),
            source="places",
            attribution=attributions[0] if attributions else None,
        )
