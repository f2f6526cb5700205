"""Data-quality patch: bounding boxes for provinces with defective geometry.

Some imported province polygons are present but unreliable for containment
(self-intersections collapsed by repair, rings truncated at export). For
those provinces only, point lookups that find no province at all consult the
boxes below. The table is consulted after, never instead of, the geometric
lookup; remove an entry once the province's source geometry is fixed.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .geometry import BBox

__all__ = ["DEFECTIVE_PROVINCE_BBOXES", "fallback_table", "match_fallback"]

# name -> (min_lng, min_lat, max_lng, max_lat)
DEFECTIVE_PROVINCE_BBOXES: Mapping[str, BBox] = MappingProxyType(
    {
        "Tehran": (50.33, 34.88, 53.18, 36.35),
    }
)


def fallback_table(extra: Optional[Mapping[str, BBox]] = None) -> Mapping[str, BBox]:
    """Built-in entries overlaid with configured ones."""
    if not extra:
        return DEFECTIVE_PROVINCE_BBOXES
    merged = dict(DEFECTIVE_PROVINCE_BBOXES)
    merged.update(extra)
    return MappingProxyType(merged)


def match_fallback(
    lat: float, lng: float, table: Mapping[str, BBox] = DEFECTIVE_PROVINCE_BBOXES
) -> Optional[Tuple[str, BBox]]:
    # Sorted so overlapping boxes resolve the same way every time
    for name in sorted(table):
        min_lng, min_lat, max_lng, max_lat = table[name]
        if min_lng <= lng <= max_lng and min_lat <= lat <= max_lat:
            return name, table[name]
    return None
