"""Backfill ``parent`` for boundaries whose source data did not carry one.

Each boundary is placed in the level above by testing its approximate
centroid for containment; when the centroid falls outside every candidate
(concave or multi-part shapes) the first vertex of its outer ring is tried.
Passes run top-down so a county's province is known before bakhsh records are
matched against counties.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Tuple

from .boundary_store import BoundaryStore
from .entities import Boundary
from .exceptions import MalformedGeometryError
from .geometry import compute_centroid, first_vertex
from .levels import Level, coerce_level, parent_level

logger = logging.getLogger(__name__)

__all__ = ["ParentResolution", "ParentResolver", "RESOLUTION_ORDER"]

RESOLUTION_ORDER: Tuple[Level, ...] = (Level.COUNTY, Level.BAKHSH, Level.CITY)


@dataclass
class ParentResolution:
    level: Level
    candidates: int = 0
    updated: int = 0
    unresolved: int = 0
    errors: int = 0
    via_centroid: int = 0
    via_vertex: int = 0
    unresolved_names: List[str] = field(default_factory=list)


class ParentResolver:
    def __init__(self, store: BoundaryStore, *, workers: int = 1, progress_every: int = 50):
        self.store = store
        self.workers = max(1, int(workers))
        self.progress_every = max(1, int(progress_every))

    def _lookup(self, boundary: Boundary, above: Level) -> Tuple[Optional[str], Optional[str]]:
        """Return ``(parent_name, method)`` for one boundary; pure read."""
        centroid = compute_centroid(boundary.geometry)
        found = self.store.find_containing(above, centroid)
        if found is not None:
            return found.name, "centroid"
        sample = first_vertex(boundary.geometry)
        if sample is not None:
            found = self.store.find_containing(above, sample)
            if found is not None:
                return found.name, "vertex"
        return None, None

    def _safe_lookup(self, boundary: Boundary, above: Level):
        try:
            return self._lookup(boundary, above), None
        except (MalformedGeometryError, ValueError) as exc:
            return (None, None), exc

    def resolve_level(self, level: Level | str) -> ParentResolution:
        level = coerce_level(level)
        above = parent_level(level)
        if above is None:
            raise ValueError("province boundaries have no parent to resolve")
        report = ParentResolution(level)
        pending = self.store.unresolved(level)
        report.candidates = len(pending)
        if not pending:
            logger.info("parents.nothing_to_do level=%s", level.value)
            return report
        if self.store.count(above) == 0:
            logger.warning("parents.no_parent_level level=%s parent_level=%s", level.value, above.value)
            report.unresolved = len(pending)
            report.unresolved_names = [b.name for b in pending]
            return report

        # Build the index before threads share it
        self.store.warm([above])
        if self.workers > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                outcomes = list(pool.map(lambda b: self._safe_lookup(b, above), pending))
        else:
            outcomes = [self._safe_lookup(b, above) for b in pending]

        assignments: List[Tuple[str, str]] = []
        for i, (boundary, ((parent, method), error)) in enumerate(zip(pending, outcomes), 1):
            if error is not None:
                report.errors += 1
                logger.error(
                    "parents.lookup_failed level=%s name=%s error=%s",
                    level.value,
                    boundary.name,
                    error,
                )
            elif parent is None:
                report.unresolved += 1
                report.unresolved_names.append(boundary.name)
                logger.warning("parents.unresolved level=%s name=%s", level.value, boundary.name)
            else:
                assignments.append((boundary.name, parent))
                if method == "centroid":
                    report.via_centroid += 1
                else:
                    report.via_vertex += 1
            if i % self.progress_every == 0:
                logger.info("parents.progress level=%s done=%s total=%s", level.value, i, len(pending))

        report.updated = self.store.set_parents(level, assignments)
        logger.info(
            "parents.resolved level=%s updated=%s unresolved=%s errors=%s",
            level.value,
            report.updated,
            report.unresolved,
            report.errors,
        )
        return report

    def resolve_all(self) -> Dict[Level, ParentResolution]:
        """County to province, then bakhsh to county (then city to bakhsh when present)."""
        results: Dict[Level, ParentResolution] = {}
        for level in RESOLUTION_ORDER:
            if level is Level.CITY and self.store.count(level) == 0:
                continue
            results[level] = self.resolve_level(level)
        return results
