from __future__ import annotations

from typing import List, Sequence, Tuple

from plaquer.models import ClusterPreview, ClusterTier, Marker, PreviewLine

# (upper bound exclusive, tier name, icon px, font px)
_TIERS: Tuple[Tuple[float, str, int, int], ...] = (
    (5, "small", 36, 12),
    (20, "medium", 44, 14),
    (50, "large", 52, 16),
    (float("inf"), "xlarge", 60, 18),
)

MAX_TITLES = 5
MAX_CATEGORIES = 4
TITLE_CHARS = 35
DETAIL_CHARS = 25
CATEGORY_CHARS = 20
# clusters bigger than this are summarised by category
TITLE_LIST_LIMIT = 50


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def display_count(count: int) -> str:
    return "999+" if count > 999 else str(count)


def cluster_tier(count: int) -> ClusterTier:
    for bound, name, size_px, font_px in _TIERS:
        if count < bound:
            return ClusterTier(name=name, size_px=size_px, font_px=font_px, display_count=display_count(count))
    raise AssertionError("unreachable: last tier is unbounded")


def category_counts(markers: Sequence[Marker]) -> List[Tuple[str, int]]:
    """Profession counts, largest first; equal counts keep first-seen order."""
    counts: dict[str, int] = {}
    for marker in markers:
        name = marker.profession or "Other"
        counts[name] = counts.get(name, 0) + 1
    return sorted(counts.items(), key=lambda item: -item[1])


def cluster_preview(markers: Sequence[Marker]) -> ClusterPreview:
    total = len(markers)
    if total == 0:
        return ClusterPreview(kind="empty")

    if total > TITLE_LIST_LIMIT:
        categories = category_counts(markers)
        hidden = len(categories) - MAX_CATEGORIES
        return ClusterPreview(
            kind="categories",
            total=total,
            heading=f"{total} Plaques",
            lines=[
                PreviewLine(label=truncate(name, CATEGORY_CHARS), count=count)
                for name, count in categories[:MAX_CATEGORIES]
            ],
            more=f"+ {hidden} more categories" if hidden > 0 else None,
        )

    hidden = total - MAX_TITLES
    return ClusterPreview(
        kind="titles",
        total=total,
        heading=f"{total} Plaques in this area",
        lines=[
            PreviewLine(
                label=truncate(m.title or "Unnamed Plaque", TITLE_CHARS),
                detail=truncate(m.profession, DETAIL_CHARS) if m.profession else "",
            )
            for m in markers[:MAX_TITLES]
        ],
        more=f"+ {hidden} more plaques" if hidden > 0 else None,
    )


class ClusterPresenter:
    """Icon tier and hover preview for a group of markers shown as one cluster."""

    def __init__(self, color: str = "#3b82f6") -> None:
        self.color = color

    def tier(self, markers: Sequence[Marker]) -> ClusterTier:
        return cluster_tier(len(markers))

    def preview(self, markers: Sequence[Marker]) -> ClusterPreview:
        return cluster_preview(markers)

    def present(self, markers: Sequence[Marker]) -> Tuple[ClusterTier, ClusterPreview]:
        markers = tuple(markers)
        return self.tier(markers), self.preview(markers)
