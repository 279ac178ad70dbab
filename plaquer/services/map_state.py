from __future__ import annotations

import json
import logging
from typing import Optional

from pydantic import ValidationError

from plaquer.config import Settings, get_settings
from plaquer.models import Coordinate, DistanceFilterState, MapViewState
from plaquer.services.distance_filter import DistanceFilter
from plaquer.services.storage import KeyValueStorage, safe_read, safe_write
from plaquer.services.tasks import Debouncer

logger = logging.getLogger(__name__)

STORAGE_KEY = "plaquer-map-state"
SEARCH_LOCATION_ZOOM = 14


def default_state(settings: Optional[Settings] = None) -> MapViewState:
    settings = settings or get_settings()
    return MapViewState(
        center=Coordinate(lat=settings.default_center_lat, lon=settings.default_center_lon),
        zoom=settings.default_zoom,
    )


class MapViewStore:
    """Owner of the single MapViewState.

    Other components only read `snapshot()`. Each mutation schedules a debounced
    write so a continuous pan/zoom ends in one storage write.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        settings: Optional[Settings] = None,
        debounce_s: Optional[float] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._storage = storage
        self._defaults = default_state(self._settings)
        self._state = self._defaults
        delay = self._settings.persist_debounce_s if debounce_s is None else debounce_s
        self._debouncer = Debouncer(delay, self._persist_async)
        self.writes = 0

    def snapshot(self) -> MapViewState:
        return self._state

    @property
    def center(self) -> Coordinate:
        return self._state.center

    @property
    def zoom(self) -> int:
        return self._state.zoom

    @property
    def distance_filter(self) -> DistanceFilterState:
        return self._state.distance_filter

    @property
    def search_location(self) -> Optional[Coordinate]:
        return self._state.search_location

    # --- mutations ---

    def set_center(self, center: Coordinate) -> None:
        self._update(center=center)

    def set_zoom(self, zoom: int) -> None:
        self._update(zoom=max(0, min(22, int(zoom))))

    def set_view(self, center: Coordinate, zoom: int) -> None:
        self._update(center=center, zoom=max(0, min(22, int(zoom))))

    def set_distance_filter(self, state: DistanceFilterState) -> None:
        self._update(distance_filter=state)

    def clear_distance_filter(self) -> None:
        self._update(distance_filter=DistanceFilterState())

    def set_search_location(self, location: Coordinate) -> None:
        self._update(search_location=location, center=location, zoom=SEARCH_LOCATION_ZOOM)

    def clear_search_location(self) -> None:
        self._update(search_location=None)

    def reset(self) -> None:
        self._state = self._defaults
        self.schedule_persist()

    def bind_distance_filter(self) -> DistanceFilter:
        """A DistanceFilter seeded from the current state that writes back through this store."""
        return DistanceFilter(self._state.distance_filter, on_change=self.set_distance_filter)

    def _update(self, **changes) -> None:
        self._state = self._state.model_copy(update=changes)
        self.schedule_persist()

    # --- persistence ---

    def restore(self) -> MapViewState:
        raw = safe_read(self._storage, STORAGE_KEY)
        if raw is None:
            self._state = self._defaults
            return self._state
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("stored map state is not an object")
            # partial documents keep defaults for the missing fields
            merged = self._defaults.model_dump(mode="json")
            merged.update({k: v for k, v in data.items() if k in merged})
            self._state = MapViewState.model_validate(merged)
        except (ValueError, ValidationError) as e:
            logger.warning("Failed to restore map state, using defaults: %s", e)
            self._state = self._defaults
        return self._state

    def persist(self) -> bool:
        self.writes += 1
        return safe_write(self._storage, STORAGE_KEY, self._state.model_dump_json())

    def schedule_persist(self) -> None:
        try:
            self._debouncer.trigger()
        except RuntimeError:
            # no running event loop: synchronous host, write through
            self.persist()

    async def flush(self) -> None:
        await self._debouncer.flush()

    async def _persist_async(self) -> None:
        self.persist()
