from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple

import aiohttp
from pydantic import TypeAdapter, ValidationError

from plaquer.config import Settings, get_settings
from plaquer.errors import ProviderError
from plaquer.models import CategoryResult, Coordinate, LocationResult, Marker, PlaqueResult, SearchResult
from plaquer.services.cache import TTLCache, make_cache_key
from plaquer.services.storage import KeyValueStorage, safe_read, safe_write
from plaquer.services.tasks import Debouncer

logger = logging.getLogger(__name__)

MAX_RESULTS = 8
PLACE_LIMIT = 4
MARKER_LIMIT = 6
MARKER_LIMIT_WHEN_PLACE = 3
CATEGORY_LIMIT = 2
RECENT_LIMIT = 5
RECENT_STORAGE_KEY = "plaquer-recent-searches"

# UK postcode, e.g. "SW1A 1AA", "N1 9GU"
_POSTCODE_RE = re.compile(r"^[a-z]{1,2}\d{1,2}[a-z]?\s?\d[a-z]{2}$", re.IGNORECASE)
_COORDINATES_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$")
_PLACE_KEYWORDS = (
    "street", "road", "avenue", "lane", "square", "park", "way", "place", "court",
    "close", "drive", "garden", "gardens", "borough", "area",
)
_SHORT_QUERY_LEN = 15
PLACE_THRESHOLD = 0.5

_results_adapter = TypeAdapter(List[SearchResult])


@dataclass(frozen=True)
class QueryIntent:
    """How much a query looks like a place name, and why."""

    weight: float
    signals: Tuple[str, ...] = ()
    has_digits: bool = False

    @property
    def likely_place(self) -> bool:
        return self.weight >= PLACE_THRESHOLD


def classify_query(query: str, region_name: str = "London") -> QueryIntent:
    term = query.strip().lower()
    if not term:
        return QueryIntent(weight=0.0)

    weights = {
        "postcode": 1.0 if _POSTCODE_RE.match(term) else 0.0,
        "coordinates": 1.0 if _COORDINATES_RE.match(term) else 0.0,
    }
    has_digits = any(ch.isdigit() for ch in term)
    if has_digits and len(term) <= _SHORT_QUERY_LEN:
        weights["short_numeric"] = 0.6
    elif has_digits:
        weights["digits"] = 0.2
    keywords = _PLACE_KEYWORDS + ((region_name.lower(),) if region_name else ())
    if re.search(r"\b(" + "|".join(re.escape(k) for k in keywords) + r")\b", term):
        weights["place_keyword"] = 0.6

    signals = tuple(name for name, w in weights.items() if w > 0)
    return QueryIntent(weight=min(1.0, sum(weights.values())), signals=signals, has_digits=has_digits)


def parse_coordinate_query(query: str) -> Optional[Coordinate]:
    m = _COORDINATES_RE.match(query)
    if not m:
        return None
    return Coordinate.parse(m.group(1), m.group(2))


def _marker_haystack(marker: Marker) -> Iterable[str]:
    return (marker.title, marker.inscription, marker.location, marker.address, marker.profession)


def match_markers(markers: Iterable[Marker], term: str, limit: int) -> List[PlaqueResult]:
    """Substring match (term already lowercased), in dataset order."""
    results: List[PlaqueResult] = []
    if limit <= 0:
        return results
    for marker in markers:
        if any(term in value.lower() for value in _marker_haystack(marker) if value):
            place = marker.location or marker.address or "Unknown location"
            results.append(
                PlaqueResult(
                    title=marker.title or "Unnamed Plaque",
                    subtitle=f"{marker.profession or 'Unknown'} • {place}",
                    marker=marker,
                    coordinate=marker.coordinate,
                )
            )
            if len(results) >= limit:
                break
    return results


def match_categories(markers: Sequence[Marker], term: str, limit: int = CATEGORY_LIMIT) -> List[CategoryResult]:
    counts: dict[str, int] = {}
    for marker in markers:
        if marker.profession:
            counts[marker.profession] = counts.get(marker.profession, 0) + 1
    results: List[CategoryResult] = []
    for profession, count in counts.items():
        if term in profession.lower():
            results.append(CategoryResult(title=profession, subtitle=f"{count} plaques", count=count))
            if len(results) >= limit:
                break
    return results


def _result_key(result: Any) -> tuple:
    if isinstance(result, PlaqueResult):
        return ("plaque", result.marker.id)
    if isinstance(result, LocationResult):
        return ("location", result.title.lower(), round(result.coordinate.lat, 5), round(result.coordinate.lon, 5))
    return ("category", result.title.lower())


def dedupe(results: Iterable[Any]) -> List[Any]:
    seen: set[tuple] = set()
    out: List[Any] = []
    for result in results:
        key = _result_key(result)
        if key in seen:
            continue
        seen.add(key)
        out.append(result)
    return out


PlaceSearch = Callable[[str, int], Awaitable[List[LocationResult]]]


class NominatimPlaceSearch:
    """Region-bounded place search against Nominatim."""

    def __init__(self, session: aiohttp.ClientSession, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self._cache: TTLCache[List[LocationResult]] = TTLCache(
            ttl_s=self.settings.cache_ttl_s, max_size=self.settings.cache_max_size
        )

    async def __call__(self, query: str, limit: int = PLACE_LIMIT) -> List[LocationResult]:
        settings = self.settings
        cache_key = make_cache_key("places", query.strip().lower(), limit)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        west, south, east, north = settings.region_viewbox
        q = f"{query}, {settings.region_name}" if settings.region_name else query
        params = {
            "q": q,
            "format": "jsonv2",
            "limit": limit,
            "addressdetails": 1,
            "bounded": 1,
            "viewbox": f"{west},{south},{east},{north}",
        }
        if settings.region_country_codes:
            params["countrycodes"] = settings.region_country_codes
        if settings.nominatim_email:
            params["email"] = settings.nominatim_email

        headers = {"User-Agent": settings.user_agent}
        timeout = aiohttp.ClientTimeout(total=settings.http_timeout_s)

        async with self.session.get(
            str(settings.nominatim_base_url), params=params, headers=headers, timeout=timeout
        ) as resp:
            resp.raise_for_status()
            data = await resp.json(content_type=None)

        results = parse_place_results(data)[:limit]
        self._cache.set(cache_key, results)
        return results


def parse_place_results(data: Any) -> List[LocationResult]:
    if not isinstance(data, list):
        raise ProviderError("place search returned a non-list payload")
    results: List[LocationResult] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        coordinate = Coordinate.parse(item.get("lat"), item.get("lon"))
        if coordinate is None:
            continue
        display_name = str(item.get("display_name") or "").strip()
        title = ", ".join(part.strip() for part in display_name.split(",")[:2]) or "Unnamed place"
        place_type = str(item.get("type") or "")
        results.append(
            LocationResult(
                title=title,
                subtitle=f"Location • {place_type}" if place_type else "Location",
                coordinate=coordinate,
                place_type=place_type,
            )
        )
    return results


class SearchClassifier:
    """Merges place, plaque and category matches for a free-text query."""

    def __init__(
        self,
        markers: Sequence[Marker],
        place_search: Optional[PlaceSearch] = None,
        *,
        region_name: str = "London",
    ) -> None:
        self._markers: Tuple[Marker, ...] = tuple(markers)
        self._place_search = place_search
        self.region_name = region_name

    def update_markers(self, markers: Sequence[Marker]) -> None:
        self._markers = tuple(markers)

    async def search(self, query: str) -> List[Any]:
        term = query.strip().lower()
        if not term:
            return []

        markers = self._markers
        intent = classify_query(term, self.region_name)
        limit = MARKER_LIMIT_WHEN_PLACE if intent.likely_place else MARKER_LIMIT
        results: List[Any] = list(match_markers(markers, term, limit))

        if intent.likely_place or len(term) >= 3:
            places = await self._search_places(query.strip())
            results = places[:PLACE_LIMIT] + results

        if len(term) >= 3 and not intent.has_digits:
            results.extend(match_categories(markers, term))

        return dedupe(results)[:MAX_RESULTS]

    async def _search_places(self, query: str) -> List[LocationResult]:
        places: List[LocationResult] = []
        pinned = parse_coordinate_query(query)
        if pinned is not None:
            places.append(LocationResult(title=f"{pinned.lat:.5f}, {pinned.lon:.5f}", subtitle="Coordinates", coordinate=pinned))
        if self._place_search is None:
            return places
        try:
            places.extend(await self._place_search(query, PLACE_LIMIT))
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ProviderError, ValueError, KeyError, TypeError) as e:
            logger.warning("Location search failed for %r: %s", query, e)
        return places


class RecentSelections:
    """Most-recent-first list of picked results, persisted across sessions."""

    def __init__(self, storage: KeyValueStorage, *, limit: int = RECENT_LIMIT) -> None:
        self._storage = storage
        self.limit = limit
        self._items: List[Any] = self._load()

    @property
    def items(self) -> List[Any]:
        return list(self._items)

    def add(self, result: Any) -> None:
        items = [result] + [r for r in self._items if r.title != result.title]
        self._items = items[: self.limit]
        safe_write(self._storage, RECENT_STORAGE_KEY, _results_adapter.dump_json(self._items).decode())

    def clear(self) -> None:
        self._items = []
        safe_write(self._storage, RECENT_STORAGE_KEY, "[]")

    def _load(self) -> List[Any]:
        raw = safe_read(self._storage, RECENT_STORAGE_KEY)
        if not raw:
            return []
        try:
            return _results_adapter.validate_json(raw)[: self.limit]
        except ValidationError as e:
            logger.warning("Ignoring unreadable recent searches: %s", e.error_count())
            return []


@dataclass
class SearchState:
    query: str = ""
    results: List[Any] = field(default_factory=list)
    searching: bool = False


class SearchSession:
    """Debounced, last-request-wins search over a classifier.

    Each keystroke bumps the generation; a result is applied only if its generation
    is still current when it arrives.
    """

    def __init__(
        self,
        classifier: SearchClassifier,
        *,
        recent: Optional[RecentSelections] = None,
        debounce_s: Optional[float] = None,
    ) -> None:
        self.classifier = classifier
        self.recent = recent
        delay = get_settings().search_debounce_s if debounce_s is None else debounce_s
        self._debouncer = Debouncer(delay, self._run)
        self._generation = 0
        self.state = SearchState()
        self.passes = 0
        self.last_pass_query: Optional[str] = None

    @property
    def results(self) -> List[Any]:
        return list(self.state.results)

    @property
    def suggestions(self) -> List[Any]:
        """Results for a non-empty query, recent selections otherwise."""
        if not self.state.query.strip():
            return self.recent.items if self.recent is not None else []
        return self.results

    def submit(self, query: str) -> None:
        self._generation += 1
        self.state.query = query
        if not query.strip():
            self._debouncer.cancel()
            self.state.results = []
            self.state.searching = False
            return
        self.state.searching = True
        self._debouncer.trigger(query, self._generation)

    def select(self, result: Any) -> None:
        if self.recent is not None:
            self.recent.add(result)

    async def wait_idle(self) -> None:
        await self._debouncer.wait()

    def cancel(self) -> None:
        self._generation += 1
        self._debouncer.cancel()
        self.state.searching = False

    async def _run(self, query: str, generation: int) -> None:
        self.passes += 1
        self.last_pass_query = query
        results = await self.classifier.search(query)
        if generation != self._generation:
            logger.debug("Dropping stale results for %r", query)
            return
        self.state.results = results
        self.state.searching = False
