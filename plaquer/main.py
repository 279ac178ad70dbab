from __future__ import annotations

from functools import lru_cache
from typing import Dict, List, Tuple

import aiohttp
from fastapi import Depends, FastAPI, HTTPException, Query

from plaquer.config import get_settings
from plaquer.models import (
    ClusterRequest,
    ClusterResponse,
    Coordinate,
    Marker,
    Notice,
    RouteRequest,
    RouteResponse,
    SearchResult,
    WalkingRoute,
)
from plaquer.services.cluster import ClusterPresenter, category_counts
from plaquer.services.distance_filter import MAX_RADIUS_KM, MIN_RADIUS_KM, filter_by_distance
from plaquer.services.markers import index_by_id, load_markers_file
from plaquer.services.route import RouteEngine
from plaquer.services.search import NominatimPlaceSearch, SearchClassifier
from plaquer.services.walking import OpenRouteServiceDirections, WalkingRouteAdapter

settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Search, distance filtering and walking-route planning over historical plaques.",
)


@lru_cache
def get_markers() -> Tuple[Marker, ...]:
    if not settings.markers_path:
        return ()
    return load_markers_file(settings.markers_path)


def _resolve(markers: Tuple[Marker, ...], ids: List[int]) -> List[Marker]:
    by_id = index_by_id(markers)
    missing = [i for i in ids if i not in by_id]
    if missing:
        raise HTTPException(status_code=404, detail=f"Unknown marker ids: {missing}")
    return [by_id[i] for i in ids]


@app.get("/", tags=["Root"])
async def root():
    return {"ok": True, "service": settings.app_name, "version": settings.version}


@app.get("/health", tags=["Healthcheck"])
async def health():
    return {"ok": True}


@app.get("/api/categories", tags=["Api Categories"])
async def api_categories(markers: Tuple[Marker, ...] = Depends(get_markers)) -> Dict[str, int]:
    return dict(category_counts(markers))


@app.get("/api/search", response_model=List[SearchResult], tags=["Api Search"])
async def api_search(
    q: str = Query(..., min_length=1, description="Free-text query: place, plaque or category"),
    markers: Tuple[Marker, ...] = Depends(get_markers),
):
    async with aiohttp.ClientSession() as session:
        classifier = SearchClassifier(markers, NominatimPlaceSearch(session, settings), region_name=settings.region_name)
        return await classifier.search(q)


@app.get("/api/markers/nearby", response_model=List[Marker], tags=["Api Markers"])
async def api_nearby(
    lat: float = Query(..., ge=-90.0, le=90.0),
    lon: float = Query(..., ge=-180.0, le=180.0),
    radius_km: float = Query(1.0, ge=MIN_RADIUS_KM, le=MAX_RADIUS_KM),
    limit: int = Query(100, ge=1, le=1000),
    markers: Tuple[Marker, ...] = Depends(get_markers),
):
    return filter_by_distance(markers, Coordinate(lat=lat, lon=lon), radius_km)[:limit]


@app.post("/api/route/optimize", response_model=RouteResponse, tags=["Api Route"])
async def api_route_optimize(req: RouteRequest, markers: Tuple[Marker, ...] = Depends(get_markers)):
    route = RouteEngine()
    notices: List[Notice] = []
    for marker in _resolve(markers, req.marker_ids):
        notice = route.add(marker)
        if notice is not None:
            notices.append(notice)
    notice = route.optimize()
    if notice is not None:
        notices.append(notice)
    return RouteResponse(marker_ids=route.ids, stats=route.stats(), notices=notices)


@app.post("/api/route/walking", response_model=WalkingRoute, tags=["Api Route"])
async def api_route_walking(req: RouteRequest, markers: Tuple[Marker, ...] = Depends(get_markers)):
    points = _resolve(markers, req.marker_ids)
    async with aiohttp.ClientSession() as session:
        adapter = WalkingRouteAdapter(OpenRouteServiceDirections(session, settings), settings=settings)
        return await adapter.build(points, walking=req.walking)


@app.post("/api/clusters/preview", response_model=ClusterResponse, tags=["Api Clusters"])
async def api_cluster_preview(req: ClusterRequest, markers: Tuple[Marker, ...] = Depends(get_markers)):
    tier, preview = ClusterPresenter().present(_resolve(markers, req.marker_ids))
    return ClusterResponse(tier=tier, preview=preview)
