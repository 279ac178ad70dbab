from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from plaquer.models import Marker, Notice, RouteStats
from plaquer.services.geo import KM_PER_MILE, distance_km, format_distance, route_length_km

logger = logging.getLogger(__name__)

MINUTES_PER_KM = 12
MINUTES_PER_MILE = 20


def walking_minutes(distance_km_: float, imperial: bool = False) -> int:
    if distance_km_ <= 0:
        return 0
    if imperial:
        return round(distance_km_ / KM_PER_MILE * MINUTES_PER_MILE)
    return round(distance_km_ * MINUTES_PER_KM)


def format_duration(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} min"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m" if mins else f"{hours}h"


def optimize_route(points: Sequence[Marker]) -> List[Marker]:
    """Nearest-neighbour ordering of the interior points; first and last stay put.

    Ties go to the earlier point. Points without coordinates sort as infinitely far.
    """
    if len(points) < 3:
        return list(points)

    start, end = points[0], points[-1]
    remaining = list(points[1:-1])
    ordered = [start]
    current = start

    while remaining:
        best_index = 0
        best_distance = math.inf
        here = current.coordinate
        for i, candidate in enumerate(remaining):
            there = candidate.coordinate
            if here is None or there is None:
                continue
            d = distance_km(here, there)
            if d < best_distance:
                best_distance = d
                best_index = i
        current = remaining.pop(best_index)
        ordered.append(current)

    ordered.append(end)
    return ordered


class RouteEngine:
    """Ordered, duplicate-free list of route stops.

    Every edit goes through `_replace`, which enforces uniqueness and refreshes the stats.
    """

    def __init__(self, points: Iterable[Marker] = (), *, imperial: bool = False) -> None:
        self.imperial = imperial
        self._points: Tuple[Marker, ...] = ()
        self._stats = self._compute_stats()
        self._replace(points)

    @property
    def points(self) -> Tuple[Marker, ...]:
        return self._points

    @property
    def ids(self) -> List[int]:
        return [p.id for p in self._points]

    @property
    def start(self) -> Optional[Marker]:
        return self._points[0] if len(self._points) >= 2 else None

    @property
    def end(self) -> Optional[Marker]:
        return self._points[-1] if len(self._points) >= 2 else None

    def __len__(self) -> int:
        return len(self._points)

    def __contains__(self, marker_id: object) -> bool:
        return any(p.id == marker_id for p in self._points)

    def add(self, marker: Marker) -> Optional[Notice]:
        if marker.id in self:
            return Notice(level="info", message=f'"{marker.title}" is already in your route')
        if marker.coordinate is None:
            return Notice(level="warning", message=f'"{marker.title}" has no location and cannot be routed')
        self._replace(self._points + (marker,))
        return None

    def remove(self, marker_id: int) -> None:
        if marker_id not in self:
            return
        self._replace(p for p in self._points if p.id != marker_id)

    def reorder(self, sequence: Iterable[Marker]) -> None:
        self._replace(sequence)

    def move(self, from_index: int, to_index: int) -> None:
        points = list(self._points)
        if not (0 <= from_index < len(points) and 0 <= to_index < len(points)):
            return
        points.insert(to_index, points.pop(from_index))
        self._replace(points)

    def clear(self) -> None:
        self._replace(())

    def optimize(self) -> Optional[Notice]:
        if len(self._points) < 3:
            return Notice(level="info", message="Add at least 3 stops to optimize the route")
        self._replace(optimize_route(self._points))
        return None

    def stats(self) -> RouteStats:
        return self._stats

    def to_geojson(self) -> Optional[Dict[str, Any]]:
        valid = [p for p in self._points if p.coordinate is not None]
        if len(valid) < 2:
            return None
        line = [[p.coordinate.lon, p.coordinate.lat] for p in valid]
        features: List[Dict[str, Any]] = [
            {
                "type": "Feature",
                "properties": {
                    "name": "Plaque Route",
                    "description": f"Route with {len(valid)} plaques",
                    "pointCount": len(valid),
                    "distance": route_length_km(valid),
                },
                "geometry": {"type": "LineString", "coordinates": line},
            }
        ]
        for index, (p, coords) in enumerate(zip(valid, line), start=1):
            features.append(
                {
                    "type": "Feature",
                    "properties": {"name": p.title, "id": p.id, "index": index},
                    "geometry": {"type": "Point", "coordinates": coords},
                }
            )
        return {"type": "FeatureCollection", "features": features}

    def _replace(self, points: Iterable[Marker]) -> None:
        seen: set[int] = set()
        unique: List[Marker] = []
        for p in points:
            if p.id in seen:
                logger.debug("Dropping duplicate route stop %s", p.id)
                continue
            seen.add(p.id)
            unique.append(p)
        self._points = tuple(unique)
        self._stats = self._compute_stats()

    def _compute_stats(self) -> RouteStats:
        km = route_length_km(self._points)
        minutes = walking_minutes(km, self.imperial)
        return RouteStats(
            stops=len(self._points),
            distance_km=km,
            duration_minutes=minutes,
            duration_label=format_duration(minutes),
            distance_label=format_distance(km, self.imperial),
        )
