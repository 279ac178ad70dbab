from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from plaquer.config import Settings, get_settings
from plaquer.models import Coordinate, LocationResult, Marker, Notice, PlaqueResult, WalkingRoute
from plaquer.services.cluster import ClusterPresenter
from plaquer.services.geolocation import PositionProvider, PositionResult, locate
from plaquer.services.map_state import MapViewStore
from plaquer.services.route import RouteEngine
from plaquer.services.search import PlaceSearch, RecentSelections, SearchClassifier, SearchSession
from plaquer.services.storage import KeyValueStorage
from plaquer.services.tasks import LatestTaskRunner
from plaquer.services.walking import Directions, WalkingRouteAdapter
from plaquer.surface import MapSurfaceHandle

logger = logging.getLogger(__name__)


class DiscoveryEngine:
    """Wires the discovery components around one marker snapshot and one map state."""

    def __init__(
        self,
        markers: Iterable[Marker],
        storage: KeyValueStorage,
        *,
        place_search: Optional[PlaceSearch] = None,
        directions: Optional[Directions] = None,
        position_provider: Optional[PositionProvider] = None,
        surface: Optional[MapSurfaceHandle] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._markers: Tuple[Marker, ...] = tuple(markers)

        self.map_state = MapViewStore(storage, settings=self.settings)
        self.map_state.restore()
        self.distance_filter = self.map_state.bind_distance_filter()

        self.classifier = SearchClassifier(self._markers, place_search, region_name=self.settings.region_name)
        self.search = SearchSession(
            self.classifier,
            recent=RecentSelections(storage),
            debounce_s=self.settings.search_debounce_s,
        )
        self.route = RouteEngine()
        self.walking = WalkingRouteAdapter(directions, settings=self.settings)
        self.clusters = ClusterPresenter()
        self.surface = surface
        self._position_provider = position_provider
        self._walking_runner: LatestTaskRunner[WalkingRoute] = LatestTaskRunner()
        self.walking_mode = False
        self.walking_route: Optional[WalkingRoute] = None

    @property
    def markers(self) -> Tuple[Marker, ...]:
        return self._markers

    def replace_markers(self, markers: Iterable[Marker]) -> None:
        """Swap the whole dataset; derived views recompute from the new snapshot."""
        self._markers = tuple(markers)
        self.classifier.update_markers(self._markers)

    def visible_markers(self) -> List[Marker]:
        # one snapshot per recomputation so a concurrent replace_markers cannot tear it
        markers = self._markers
        return self.distance_filter.apply(markers)

    def marker(self, marker_id: int) -> Optional[Marker]:
        for m in self._markers:
            if m.id == marker_id:
                return m
        return None

    async def use_current_position(self, radius_km: Optional[float] = None) -> PositionResult:
        result = await locate(self._position_provider, self.settings.geolocation_timeout_s)
        if result.position is None:
            return result
        center = result.position.coordinate
        self.distance_filter.set(center, radius_km or self.distance_filter.radius_km, visible=True)
        self.map_state.set_center(center)
        self._redraw_circle()
        return result

    def set_distance_center(self, center: Coordinate, radius_km: Optional[float] = None) -> Optional[Notice]:
        notice = self.distance_filter.set(center, radius_km or self.distance_filter.radius_km, visible=True)
        self._redraw_circle()
        return notice

    def select_result(self, result: Any, radius_km: Optional[float] = None) -> Optional[Notice]:
        """Apply a picked search result: a location recentres the map and the distance filter."""
        self.search.select(result)
        if isinstance(result, LocationResult):
            self.map_state.set_search_location(result.coordinate)
            return self.set_distance_center(result.coordinate, radius_km)
        if isinstance(result, PlaqueResult) and result.coordinate is not None:
            self.map_state.set_center(result.coordinate)
        return None

    def clear_distance_filter(self) -> None:
        self.distance_filter.clear()
        self._redraw_circle()

    def exit_route_mode(self) -> None:
        self.route.clear()
        self._walking_runner.cancel()
        self.walking_route = None
        if self.surface is not None and self.surface.ready:
            self.surface.clear_group("route")

    async def refresh_walking_route(self) -> Optional[WalkingRoute]:
        """Rebuild segment geometry for the current route; a newer call supersedes this one."""
        points: Sequence[Marker] = self.route.points
        walking = self.walking_mode
        route = await self._walking_runner.run(lambda: self.walking.build(points, walking=walking))
        if route is None:
            return None
        self.walking_route = route
        if self.surface is not None and self.surface.ready:
            self.surface.draw_route(route)
        return route

    def redraw_clusters(self, groups: Iterable[Sequence[Marker]]) -> None:
        if self.surface is not None and self.surface.ready:
            self.surface.draw_clusters(groups, self.clusters)

    async def close(self) -> None:
        self.search.cancel()
        self._walking_runner.cancel()
        await self.map_state.flush()
        if self.surface is not None:
            self.surface.teardown()

    def _redraw_circle(self) -> None:
        if self.surface is not None and self.surface.ready:
            self.surface.draw_distance_circle(self.distance_filter.state)
