from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import aiohttp

from plaquer.config import Settings, get_settings
from plaquer.errors import ProviderError
from plaquer.models import Coordinate, Marker, RouteSegment, WalkingRoute
from plaquer.services.cache import TTLCache, segment_cache_key
from plaquer.services.geo import distance_km

logger = logging.getLogger(__name__)

# Streets are rarely straight: estimated walking distance = straight line * factor.
WALKING_FACTOR = 1.4
WALKING_SPEED_M_S = 1.39


@dataclass
class DirectionsResult:
    path: List[Coordinate]
    distance_m: float
    duration_s: float


Directions = Callable[[Coordinate, Coordinate], Awaitable[DirectionsResult]]


class OpenRouteServiceDirections:
    """foot-walking directions from OpenRouteService. Raises ProviderError when disabled."""

    def __init__(self, session: aiohttp.ClientSession, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()

    @property
    def enabled(self) -> bool:
        return bool(self.settings.ors_api_key)

    async def __call__(self, origin: Coordinate, destination: Coordinate) -> DirectionsResult:
        if not self.enabled:
            raise ProviderError("walking directions are not configured")

        settings = self.settings
        payload = {
            # ORS expects [lon, lat]
            "coordinates": [[origin.lon, origin.lat], [destination.lon, destination.lat]],
            "instructions": False,
            "units": "m",
        }
        headers = {
            "Authorization": settings.ors_api_key,
            "Accept": "application/json, application/geo+json",
            "User-Agent": settings.user_agent,
        }
        timeout = aiohttp.ClientTimeout(total=settings.http_timeout_s)

        async with self.session.post(
            f"{str(settings.ors_base_url).rstrip('/')}/geojson", json=payload, headers=headers, timeout=timeout
        ) as resp:
            resp.raise_for_status()
            data = await resp.json(content_type=None)

        return parse_directions(data)


def parse_directions(data: Any) -> DirectionsResult:
    """Read the first feature of an ORS GeoJSON response."""
    try:
        feature = data["features"][0]
        summary = feature["properties"]["summary"]
        path: List[Coordinate] = []
        for point in feature["geometry"]["coordinates"]:
            if not isinstance(point, (list, tuple)) or len(point) < 2:
                continue
            c = Coordinate.parse(point[1], point[0])
            if c is not None:
                path.append(c)
        distance = float(summary.get("distance", 0.0)) if isinstance(summary, dict) else 0.0
        duration = float(summary.get("duration", 0.0)) if isinstance(summary, dict) else 0.0
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise ProviderError(f"malformed directions payload: {e!r}") from e

    if len(path) < 2:
        raise ProviderError("directions geometry has fewer than 2 points")
    return DirectionsResult(path=path, distance_m=distance, duration_s=duration)


def estimated_segment(origin: Marker, destination: Marker) -> RouteSegment:
    a, b = origin.coordinate, destination.coordinate
    distance = distance_km(a, b) * 1000 * WALKING_FACTOR
    return RouteSegment(
        origin_id=origin.id,
        destination_id=destination.id,
        path=[a, b],
        distance_m=round(distance),
        duration_s=round(distance / WALKING_SPEED_M_S),
        estimated=True,
    )


class WalkingRouteAdapter:
    """Builds per-segment walking geometry for a route.

    Each segment is fetched on its own; a failed segment becomes a straight-line
    estimate without affecting the others.
    """

    def __init__(self, directions: Optional[Directions] = None, *, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        self._directions = directions
        self._cache: TTLCache[RouteSegment] = TTLCache(ttl_s=settings.cache_ttl_s, max_size=settings.cache_max_size)
        self.provider_calls = 0

    async def build(self, points: Sequence[Marker], *, walking: bool = False) -> WalkingRoute:
        pairs = []
        for i, (origin, destination) in enumerate(zip(points, points[1:])):
            if origin.coordinate is None or destination.coordinate is None:
                logger.warning("Skipping route segment %d: missing coordinates", i)
                continue
            pairs.append((origin, destination))

        if walking and self._directions is not None:
            segments = list(await asyncio.gather(*(self._walking_segment(o, d) for o, d in pairs)))
        else:
            segments = [estimated_segment(o, d) for o, d in pairs]

        return WalkingRoute(
            segments=segments,
            total_distance_m=round(sum(s.distance_m for s in segments)),
            total_duration_s=round(sum(s.duration_s for s in segments)),
            has_estimates=any(s.estimated for s in segments),
        )

    async def _walking_segment(self, origin: Marker, destination: Marker) -> RouteSegment:
        key = segment_cache_key(origin.coordinate, destination.coordinate)
        cached = self._cache.get(key)
        if cached is not None:
            return cached.model_copy(update={"origin_id": origin.id, "destination_id": destination.id})

        self.provider_calls += 1
        try:
            result = await self._directions(origin.coordinate, destination.coordinate)
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ProviderError, ValueError, TypeError) as e:
            logger.warning("Walking directions %s -> %s failed, using estimate: %s", origin.id, destination.id, e)
            return estimated_segment(origin, destination)

        segment = RouteSegment(
            origin_id=origin.id,
            destination_id=destination.id,
            path=result.path,
            distance_m=result.distance_m,
            duration_s=result.duration_s,
        )
        self._cache.set(key, segment)
        return segment
