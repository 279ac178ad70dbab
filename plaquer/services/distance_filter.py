from __future__ import annotations

import logging
import math
from typing import Callable, Iterable, List, Optional

from plaquer.models import Coordinate, DistanceFilterState, Marker, Notice
from plaquer.services.geo import distance_km

logger = logging.getLogger(__name__)

MIN_RADIUS_KM = 0.1
MAX_RADIUS_KM = 10.0
DEFAULT_RADIUS_KM = 1.0


def clamp_radius(radius_km: float) -> float:
    """UI-side clamp for radius sliders; the filter itself accepts any positive radius."""
    return max(MIN_RADIUS_KM, min(MAX_RADIUS_KM, radius_km))


class DistanceFilter:
    """Center + radius predicate over the marker set.

    Every mutation hands the new state to `on_change` (the map store persists it).
    """

    def __init__(
        self,
        state: Optional[DistanceFilterState] = None,
        *,
        on_change: Optional[Callable[[DistanceFilterState], None]] = None,
    ) -> None:
        self._state = state or DistanceFilterState()
        self._on_change = on_change

    @property
    def state(self) -> DistanceFilterState:
        return self._state

    @property
    def center(self) -> Optional[Coordinate]:
        return self._state.center

    @property
    def radius_km(self) -> float:
        return self._state.radius_km

    def is_active(self) -> bool:
        return self._state.center is not None and self._state.visible

    def set(
        self, center: Optional[Coordinate], radius_km: float = DEFAULT_RADIUS_KM, visible: bool = True
    ) -> Optional[Notice]:
        if not _valid_radius(radius_km):
            return Notice(level="warning", message="Distance radius must be greater than zero")
        if center is None and visible:
            return Notice(level="info", message="Choose a location before showing the distance filter")
        self._replace(DistanceFilterState(center=center, radius_km=radius_km, visible=visible))
        return None

    def update_radius(self, radius_km: float) -> Optional[Notice]:
        if not _valid_radius(radius_km):
            return Notice(level="warning", message="Distance radius must be greater than zero")
        self._replace(self._state.model_copy(update={"radius_km": radius_km}))
        return None

    def toggle_visibility(self) -> Optional[Notice]:
        if self._state.center is None:
            return Notice(level="info", message="Choose a location before showing the distance filter")
        self._replace(self._state.model_copy(update={"visible": not self._state.visible}))
        return None

    def clear(self) -> None:
        self._replace(DistanceFilterState())

    def apply(self, markers: Iterable[Marker]) -> List[Marker]:
        """Markers within radius (inclusive), in input order. Inactive filter passes everything."""
        if not self.is_active():
            return list(markers)
        return filter_by_distance(markers, self._state.center, self._state.radius_km)

    def _replace(self, state: DistanceFilterState) -> None:
        self._state = state
        if self._on_change is not None:
            self._on_change(state)


def _valid_radius(radius_km: float) -> bool:
    return math.isfinite(radius_km) and radius_km > 0


def filter_by_distance(markers: Iterable[Marker], center: Coordinate, radius_km: float) -> List[Marker]:
    result: List[Marker] = []
    skipped = 0
    for marker in markers:
        coord = marker.coordinate
        if coord is None:
            skipped += 1
            continue
        if distance_km(center, coord) <= radius_km:
            result.append(marker)
    if skipped:
        logger.debug("Distance filter skipped %d markers without coordinates", skipped)
    return result
