from __future__ import annotations

from typing import Any, List, Optional

import aiohttp
import pytest

from plaquer.models import Marker


def make_marker(marker_id: int, lat: Any = 51.5074, lon: Any = -0.1278, **fields: Any) -> Marker:
    fields.setdefault("title", f"Plaque {marker_id}")
    return Marker(id=marker_id, latitude=lat, longitude=lon, **fields)


class FakeResponse:
    def __init__(self, payload: Any, status: int = 200) -> None:
        self.payload = payload
        self.status = status

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc: Any) -> bool:
        return False

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise aiohttp.ClientConnectionError(f"HTTP {self.status}")

    async def json(self, content_type: Optional[str] = "application/json") -> Any:
        return self.payload


class FakeSession:
    """Stands in for aiohttp.ClientSession; records every request."""

    def __init__(self, response: FakeResponse) -> None:
        self.response = response
        self.calls: List[tuple] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append(("GET", url, kwargs))
        return self.response

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append(("POST", url, kwargs))
        return self.response


@pytest.fixture
def london_markers() -> List[Marker]:
    return [
        make_marker(1, 51.5074, -0.1278, title="Charles Dickens", profession="Novelist",
                    address="48 Doughty Street, WC1N 2LX", location="Bloomsbury"),
        make_marker(2, 51.5115, -0.1160, title="William Shakespeare", profession="Playwright",
                    inscription="Shakespeare lived near here", location="Southwark"),
        make_marker(3, 51.5154, -0.1410, title="Ada Lovelace", profession="Mathematician",
                    address="12 St James's Square", location="St James's"),
        make_marker(4, 51.5250, -0.0870, title="John Keats", profession="Poet", location="Moorgate"),
        make_marker(5, None, None, title="Lost Plaque", profession="Novelist", location="Unknown"),
        make_marker(6, "not-a-number", "-0.1", title="Broken Coordinates", profession="Poet"),
    ]


@pytest.fixture
def marker_factory():
    return make_marker


@pytest.fixture
def fake_session():
    def build(payload: Any, status: int = 200) -> FakeSession:
        return FakeSession(FakeResponse(payload, status))

    return build
