from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Tuple

from pydantic import ValidationError

from plaquer.models import Marker

logger = logging.getLogger(__name__)

# Source datasets use a few alternative spellings for the same fields.
_FIELD_ALIASES = {
    "lat": "latitude",
    "lng": "longitude",
    "lon": "longitude",
    "name": "title",
    "lead_subject_primary_role": "profession",
    "colour": "color",
}


def _normalize_record(record: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in record.items():
        target = _FIELD_ALIASES.get(key, key)
        # explicit field names win over aliases
        if target in out and key != target:
            continue
        out[target] = value
    return out


def load_markers(records: Iterable[Mapping[str, Any]]) -> Tuple[Marker, ...]:
    """Adapt raw records into markers, skipping unusable records and duplicate ids."""
    markers: List[Marker] = []
    seen: set[int] = set()
    for record in records:
        try:
            marker = Marker.model_validate(_normalize_record(record))
        except ValidationError as e:
            logger.warning("Skipping marker record %r: %s", record.get("id"), e.error_count())
            continue
        if marker.id in seen:
            logger.debug("Skipping duplicate marker id %s", marker.id)
            continue
        seen.add(marker.id)
        markers.append(marker)
    return tuple(markers)


def load_markers_file(path: str | Path) -> Tuple[Marker, ...]:
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if isinstance(data, dict):
        data = data.get("plaques") or data.get("markers") or []
    return load_markers(data)


def index_by_id(markers: Iterable[Marker]) -> dict[int, Marker]:
    return {m.id: m for m in markers}
