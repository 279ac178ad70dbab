from __future__ import annotations

import asyncio

import aiohttp
import pytest

from plaquer.config import Settings
from plaquer.errors import ProviderError
from plaquer.models import Coordinate
from plaquer.services.geo import distance_km
from plaquer.services.walking import (
    DirectionsResult,
    OpenRouteServiceDirections,
    WalkingRouteAdapter,
    parse_directions,
)


@pytest.fixture
def stops(marker_factory):
    return [marker_factory(i, 51.50 + i / 100, -0.12) for i in range(1, 5)]


class StubDirections:
    def __init__(self, fail_on=()) -> None:
        self.fail_on = set(fail_on)
        self.calls = []

    async def __call__(self, origin: Coordinate, destination: Coordinate) -> DirectionsResult:
        self.calls.append((origin, destination))
        if len(self.calls) in self.fail_on:
            raise aiohttp.ClientConnectionError("boom")
        mid = Coordinate(lat=(origin.lat + destination.lat) / 2, lon=origin.lon + 0.001)
        return DirectionsResult(path=[origin, mid, destination], distance_m=1300.0, duration_s=960.0)


def ors_payload(coords, distance=1250.0, duration=900.0):
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "geometry": {"type": "LineString", "coordinates": coords},
                "properties": {"summary": {"distance": distance, "duration": duration}},
            }
        ],
    }


def test_straight_lines_without_walking_mode(stops):
    directions = StubDirections()
    adapter = WalkingRouteAdapter(directions)

    route = asyncio.run(adapter.build(stops, walking=False))

    assert directions.calls == []
    assert len(route.segments) == 3
    assert all(s.estimated for s in route.segments)
    assert route.has_estimates
    first = route.segments[0]
    assert (first.origin_id, first.destination_id) == (1, 2)
    assert first.path == [stops[0].coordinate, stops[1].coordinate]
    expected = distance_km(stops[0].coordinate, stops[1].coordinate) * 1000 * 1.4
    assert first.distance_m == pytest.approx(expected, abs=1)
    assert first.duration_s == pytest.approx(expected / 1.39, abs=1)


def test_walking_mode_uses_provider_per_segment(stops):
    directions = StubDirections()
    route = asyncio.run(WalkingRouteAdapter(directions).build(stops, walking=True))

    assert len(directions.calls) == 3
    assert not route.has_estimates
    assert [len(s.path) for s in route.segments] == [3, 3, 3]
    assert route.total_distance_m == 3900
    assert route.total_duration_s == 2880


def test_one_failed_segment_does_not_abort_the_rest(stops):
    directions = StubDirections(fail_on={2})
    route = asyncio.run(WalkingRouteAdapter(directions).build(stops, walking=True))

    assert len(route.segments) == 3
    assert [s.estimated for s in route.segments].count(True) == 1
    assert route.has_estimates


def test_segments_with_missing_coordinates_are_skipped(stops, marker_factory):
    points = [stops[0], marker_factory(99, None, None), stops[1], stops[2]]
    route = asyncio.run(WalkingRouteAdapter().build(points, walking=True))
    assert [(s.origin_id, s.destination_id) for s in route.segments] == [(2, 3)]


def test_fewer_than_two_points_is_empty(stops):
    route = asyncio.run(WalkingRouteAdapter(StubDirections()).build(stops[:1], walking=True))
    assert route.segments == []
    assert route.total_distance_m == 0


def test_provider_results_are_cached(stops):
    directions = StubDirections()
    adapter = WalkingRouteAdapter(directions)

    asyncio.run(adapter.build(stops, walking=True))
    again = asyncio.run(adapter.build(stops, walking=True))

    assert len(directions.calls) == 3
    assert adapter.provider_calls == 3
    assert [s.origin_id for s in again.segments] == [1, 2, 3]


def test_failed_segments_are_not_cached(stops):
    directions = StubDirections(fail_on={1})
    adapter = WalkingRouteAdapter(directions)
    asyncio.run(adapter.build(stops[:2], walking=True))
    route = asyncio.run(adapter.build(stops[:2], walking=True))
    assert len(directions.calls) == 2
    assert not route.has_estimates


def test_parse_directions_swaps_lon_lat():
    result = parse_directions(ors_payload([[-0.12, 51.50], [-0.121, 51.505], [-0.12, 51.51]]))
    assert result.path[0] == Coordinate(lat=51.50, lon=-0.12)
    assert len(result.path) == 3
    assert result.distance_m == 1250.0
    assert result.duration_s == 900.0


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"features": []},
        {"features": [{"geometry": {}}]},
        [],
        None,
        ors_payload([[-0.12, 51.5]]),
        ors_payload(None),
        ors_payload([[-0.12, 51.5], [-0.13, 51.51]], distance=None),
        ors_payload([[-0.12, 51.5], [-0.13, 51.51]], duration="slow"),
    ],
)
def test_parse_directions_rejects_malformed(payload):
    with pytest.raises(ProviderError):
        parse_directions(payload)


def test_ors_disabled_without_key_falls_back(stops, fake_session):
    session = fake_session(ors_payload([[-0.12, 51.51], [-0.12, 51.52]]))
    directions = OpenRouteServiceDirections(session, Settings(ors_api_key=None))

    route = asyncio.run(WalkingRouteAdapter(directions).build(stops[:2], walking=True))

    assert session.calls == []
    assert route.segments[0].estimated


def test_ors_request(stops, fake_session):
    session = fake_session(ors_payload([[-0.12, 51.51], [-0.1205, 51.515], [-0.12, 51.52]]))
    settings = Settings(ors_api_key="secret")
    directions = OpenRouteServiceDirections(session, settings)

    route = asyncio.run(WalkingRouteAdapter(directions, settings=settings).build(stops[:2], walking=True))

    assert not route.segments[0].estimated
    assert route.segments[0].distance_m == 1250.0
    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert url.endswith("/foot-walking/geojson")
    assert kwargs["headers"]["Authorization"] == "secret"
    assert kwargs["json"]["coordinates"] == [[m.longitude, m.latitude] for m in stops[:2]]


def test_ors_http_error_falls_back(stops, fake_session):
    session = fake_session({"error": "quota"}, status=429)
    directions = OpenRouteServiceDirections(session, Settings(ors_api_key="secret"))
    route = asyncio.run(WalkingRouteAdapter(directions).build(stops[:2], walking=True))
    assert route.segments[0].estimated


def test_malformed_directions_payload_only_affects_its_segment(stops):
    bad_payloads = {2: ors_payload(None), 3: ors_payload([[-0.12, 51.5], [-0.13, 51.51]], distance=None)}
    calls = []

    async def directions(origin: Coordinate, destination: Coordinate) -> DirectionsResult:
        calls.append(origin)
        payload = bad_payloads.get(len(calls), ors_payload([[origin.lon, origin.lat], [destination.lon, destination.lat]]))
        return parse_directions(payload)

    route = asyncio.run(WalkingRouteAdapter(directions).build(stops, walking=True))

    assert len(route.segments) == 3
    assert [s.estimated for s in route.segments] == [False, True, True]
    assert route.segments[0].distance_m == 1250.0
    assert route.has_estimates
