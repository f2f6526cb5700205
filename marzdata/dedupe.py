"""Collapse features that describe the same named region into one Boundary."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Dict, Iterable, List, Optional

from .entities import Boundary
from .geometry import merge_geometries, to_geojson

logger = logging.getLogger(__name__)

__all__ = ["DedupeStrategy", "DedupeResult", "deduplicate", "name_keys"]


class DedupeStrategy(str, Enum):
    # Union the geometry of later duplicates into the retained record.
    UNION = "union"
    # Drop later duplicates entirely, geometry included. Loses islands and
    # exclaves of multi-part regions; kept only for reproducing legacy imports.
    FIRST_SEEN = "first-seen"

    @classmethod
    def parse(cls, value: "DedupeStrategy | str") -> "DedupeStrategy":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower().replace("_", "-"))


@dataclass
class DedupeResult:
    boundaries: List[Boundary] = field(default_factory=list)
    merged: int = 0
    dropped: int = 0


def name_keys(boundary: Boundary) -> tuple[str, ...]:
    """Case-insensitive keys for both spellings of ``boundary``'s name."""
    return tuple(dict.fromkeys(s.strip().lower() for s in boundary.spellings() if s.strip()))


def deduplicate(
    boundaries: Iterable[Boundary],
    strategy: DedupeStrategy | str = DedupeStrategy.UNION,
) -> DedupeResult:
    strategy = DedupeStrategy.parse(strategy)
    result = DedupeResult()
    index: Dict[str, int] = {}

    for boundary in boundaries:
        slot: Optional[int] = None
        for key in name_keys(boundary):
            if key in index:
                slot = index[key]
                break

        if slot is None:
            slot = len(result.boundaries)
            result.boundaries.append(boundary)
            for key in name_keys(boundary):
                index.setdefault(key, slot)
            continue

        kept = result.boundaries[slot]
        if strategy is DedupeStrategy.FIRST_SEEN:
            result.dropped += 1
            logger.warning(
                "dedupe.dropped level=%s name=%s strategy=%s",
                boundary.level.value,
                boundary.name,
                strategy.value,
            )
            continue

        merged = kept.with_geometry(
            to_geojson(merge_geometries(kept.geometry, boundary.geometry))
        )
        if merged.parent is None and boundary.parent is not None:
            merged = merged.with_parent(boundary.parent)
        result.boundaries[slot] = merged
        for key in name_keys(boundary):
            index.setdefault(key, slot)
        result.merged += 1
        logger.info(
            "dedupe.merged level=%s name=%s geometry=%s",
            merged.level.value,
            merged.name,
            merged.geometry.get("type"),
        )

    return result
