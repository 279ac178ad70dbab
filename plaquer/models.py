from __future__ import annotations

import math
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Coordinate(BaseModel):
    """A WGS84 (lat, lon) pair in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)

    @classmethod
    def parse(cls, lat: Any, lon: Any) -> Optional["Coordinate"]:
        """Build a coordinate from raw values (numbers or numeric strings); None if invalid."""
        lat_f = _to_float(lat)
        lon_f = _to_float(lon)
        if lat_f is None or lon_f is None:
            return None
        if not (-90.0 <= lat_f <= 90.0 and -180.0 <= lon_f <= 180.0):
            return None
        return cls(lat=lat_f, lon=lon_f)

    def as_pair(self) -> tuple[float, float]:
        return (self.lat, self.lon)


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


class Marker(BaseModel):
    """A historical plaque. Coordinates may be missing in source data."""

    model_config = ConfigDict(frozen=True)

    id: int
    title: str = "Unnamed Plaque"
    inscription: str = ""
    profession: str = ""
    color: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: str = ""
    location: str = ""
    postcode: str = ""
    visited: bool = False
    favorite: bool = False

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_coordinate(cls, value: Any) -> Optional[float]:
        return _to_float(value)

    @field_validator("title", "inscription", "profession", "color", "address", "location", "postcode", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def coordinate(self) -> Optional[Coordinate]:
        return Coordinate.parse(self.latitude, self.longitude)


class DistanceFilterState(BaseModel):
    model_config = ConfigDict(frozen=True)

    center: Optional[Coordinate] = None
    radius_km: float = Field(1.0, gt=0)
    visible: bool = False

    @model_validator(mode="after")
    def _visible_needs_center(self) -> "DistanceFilterState":
        if self.visible and self.center is None:
            raise ValueError("a visible distance filter needs a center")
        return self


class MapViewState(BaseModel):
    model_config = ConfigDict(frozen=True)

    center: Coordinate = Coordinate(lat=51.505, lon=-0.09)
    zoom: int = Field(13, ge=0, le=22)
    distance_filter: DistanceFilterState = DistanceFilterState()
    search_location: Optional[Coordinate] = None


class Notice(BaseModel):
    """Advisory message surfaced to the caller instead of an exception."""

    level: Literal["info", "warning", "error"] = "info"
    message: str


# --- search results (tagged by `type`) ---


class LocationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["location"] = "location"
    title: str
    subtitle: str = "Location"
    coordinate: Coordinate
    place_type: str = ""


class PlaqueResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["plaque"] = "plaque"
    title: str
    subtitle: str = ""
    marker: Marker
    coordinate: Optional[Coordinate] = None


class CategoryResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["category"] = "category"
    title: str
    subtitle: str = ""
    count: int = Field(0, ge=0)


SearchResult = Annotated[Union[LocationResult, PlaqueResult, CategoryResult], Field(discriminator="type")]


# --- route outputs ---


class RouteStats(BaseModel):
    stops: int
    distance_km: float
    duration_minutes: int
    duration_label: str
    distance_label: str


class RouteSegment(BaseModel):
    origin_id: int
    destination_id: int
    path: List[Coordinate]
    distance_m: float
    duration_s: float
    estimated: bool = False


class WalkingRoute(BaseModel):
    segments: List[RouteSegment] = []
    total_distance_m: float = 0.0
    total_duration_s: float = 0.0
    has_estimates: bool = False


# --- cluster outputs ---


class ClusterTier(BaseModel):
    name: Literal["small", "medium", "large", "xlarge"]
    size_px: int
    font_px: int
    display_count: str


class PreviewLine(BaseModel):
    label: str
    detail: str = ""
    count: Optional[int] = None


class ClusterPreview(BaseModel):
    kind: Literal["empty", "titles", "categories"]
    total: int = 0
    heading: str = ""
    lines: List[PreviewLine] = []
    more: Optional[str] = None


# --- geolocation ---


class Position(BaseModel):
    coordinate: Coordinate
    accuracy_m: float = Field(0.0, ge=0)


# --- HTTP facade payloads ---


class RouteRequest(BaseModel):
    marker_ids: List[int] = Field(..., min_length=1)
    walking: bool = False


class RouteResponse(BaseModel):
    marker_ids: List[int]
    stats: RouteStats
    notices: List[Notice] = []


class ClusterRequest(BaseModel):
    marker_ids: List[int]


class ClusterResponse(BaseModel):
    tier: ClusterTier
    preview: ClusterPreview
