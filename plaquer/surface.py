from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from plaquer.models import Coordinate, DistanceFilterState, Marker, WalkingRoute
from plaquer.services.cluster import ClusterPresenter
from plaquer.services.geo import valid_coordinates

logger = logging.getLogger(__name__)

ROUTE_COLOR = "#10b981"
CIRCLE_COLOR = "#3b82f6"


@dataclass(frozen=True)
class PolylineOverlay:
    path: List[Coordinate]
    color: str = ROUTE_COLOR
    weight: int = 4
    dashed: bool = False


@dataclass(frozen=True)
class CircleOverlay:
    center: Coordinate
    radius_m: float
    color: str = CIRCLE_COLOR


@dataclass(frozen=True)
class ClusterIconOverlay:
    center: Coordinate
    size_px: int
    label: str
    color: str
    member_ids: List[int] = field(default_factory=list)


class MapSurface(Protocol):
    """The third-party rendering surface. Opaque and side-effect only."""

    def add_layer(self, overlay: Any) -> Any: ...

    def remove_layer(self, layer: Any) -> None: ...

    def release(self) -> None: ...


class MapSurfaceHandle:
    """Explicit handle to the single rendering surface and the overlays this engine owns.

    Overlays are kept per group ("route", "distance_circle", "clusters") so each group
    can be redrawn on its own. `teardown` removes every owned overlay, then releases
    the surface; the handle cannot be initialized again afterwards.
    """

    def __init__(self) -> None:
        self._surface: Optional[MapSurface] = None
        self._layers: Dict[str, List[Any]] = {}
        self._released = False

    @property
    def ready(self) -> bool:
        return self._surface is not None

    def initialize(self, factory: Callable[[], MapSurface]) -> MapSurface:
        if self._released:
            raise RuntimeError("map surface was already released")
        if self._surface is not None:
            logger.warning("Map surface already initialized; ignoring second initialization")
            return self._surface
        self._surface = factory()
        return self._surface

    def layer_count(self, group: Optional[str] = None) -> int:
        if group is not None:
            return len(self._layers.get(group, ()))
        return sum(len(layers) for layers in self._layers.values())

    def add(self, group: str, overlay: Any) -> Any:
        if self._surface is None:
            raise RuntimeError("map surface is not initialized")
        layer = self._surface.add_layer(overlay)
        self._layers.setdefault(group, []).append(layer)
        return layer

    def clear_group(self, group: str) -> None:
        layers = self._layers.pop(group, [])
        if self._surface is None:
            return
        for layer in layers:
            self._surface.remove_layer(layer)

    def draw_route(self, route: WalkingRoute, color: str = ROUTE_COLOR) -> None:
        self.clear_group("route")
        for segment in route.segments:
            # estimated segments are dashed so they read as straight-line guesses
            self.add("route", PolylineOverlay(path=list(segment.path), color=color, dashed=segment.estimated))

    def draw_distance_circle(self, state: DistanceFilterState) -> None:
        self.clear_group("distance_circle")
        if state.center is None or not state.visible:
            return
        self.add("distance_circle", CircleOverlay(center=state.center, radius_m=state.radius_km * 1000))

    def draw_clusters(self, groups: Iterable[Sequence[Marker]], presenter: ClusterPresenter) -> None:
        self.clear_group("clusters")
        for group in groups:
            coords = valid_coordinates(group)
            if not coords:
                continue
            center = Coordinate(
                lat=sum(c.lat for c in coords) / len(coords),
                lon=sum(c.lon for c in coords) / len(coords),
            )
            tier = presenter.tier(group)
            self.add(
                "clusters",
                ClusterIconOverlay(
                    center=center,
                    size_px=tier.size_px,
                    label=tier.display_count,
                    color=presenter.color,
                    member_ids=[m.id for m in group],
                ),
            )

    def teardown(self) -> None:
        for group in list(self._layers):
            self.clear_group(group)
        if self._surface is not None:
            self._surface.release()
        self._surface = None
        self._released = True
