from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Optional, Sequence

from plaquer.models import Coordinate, Marker

EARTH_RADIUS_KM = 6371.0
KM_PER_MILE = 1.609344


def is_valid_coordinate(lat: Any, lon: Any) -> bool:
    return Coordinate.parse(lat, lon) is not None


def parse_coordinate(lat: Any, lon: Any) -> Optional[Coordinate]:
    return Coordinate.parse(lat, lon)


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle (haversine) distance in kilometres. Callers guard invalid input."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlambda = math.radians(b.lon - a.lon)

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # rounding can push h a hair past 1 for antipodal points
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def valid_coordinates(points: Iterable[Marker | Coordinate]) -> List[Coordinate]:
    coords: List[Coordinate] = []
    for p in points:
        c = p if isinstance(p, Coordinate) else p.coordinate
        if c is not None:
            coords.append(c)
    return coords


def route_length_km(points: Sequence[Marker | Coordinate]) -> float:
    """Sum of consecutive distances, skipping points without a valid coordinate."""
    coords = valid_coordinates(points)
    if len(coords) < 2:
        return 0.0
    return sum(distance_km(a, b) for a, b in zip(coords, coords[1:]))


def bounds(points: Iterable[Marker | Coordinate]) -> Optional[Dict[str, float]]:
    coords = valid_coordinates(points)
    if not coords:
        return None
    return {
        "south": min(c.lat for c in coords),
        "west": min(c.lon for c in coords),
        "north": max(c.lat for c in coords),
        "east": max(c.lon for c in coords),
    }


def viewport_bounds(center: Coordinate, zoom: int) -> Dict[str, float]:
    """Rough viewport box for a zoom level (no projection, good enough for prefetching)."""
    lat_delta = 180 / math.pow(2, zoom)
    lon_delta = 360 / math.pow(2, zoom)
    return {
        "south": max(-90.0, center.lat - lat_delta / 2),
        "west": max(-180.0, center.lon - lon_delta / 2),
        "north": min(90.0, center.lat + lat_delta / 2),
        "east": min(180.0, center.lon + lon_delta / 2),
    }


def midpoint(a: Coordinate, b: Coordinate) -> Coordinate:
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    lambda1 = math.radians(a.lon)
    dlambda = math.radians(b.lon - a.lon)

    bx = math.cos(phi2) * math.cos(dlambda)
    by = math.cos(phi2) * math.sin(dlambda)
    phi_m = math.atan2(math.sin(phi1) + math.sin(phi2), math.sqrt((math.cos(phi1) + bx) ** 2 + by ** 2))
    lambda_m = lambda1 + math.atan2(by, math.cos(phi1) + bx)
    lon = (math.degrees(lambda_m) + 540) % 360 - 180
    return Coordinate(lat=math.degrees(phi_m), lon=lon)


def format_distance(km: float, imperial: bool = False) -> str:
    if imperial:
        return f"{km / KM_PER_MILE:.1f} mi"
    return f"{km:.1f} km"
