from __future__ import annotations

from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, field
import logging
from pathlib import Path
import threading
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry
from shapely.prepared import prep
from shapely.strtree import STRtree
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from .entities import Boundary, RegionMatch
from .exceptions import StoreUnavailableError
from .geometry import ensure_coordinate_range
from .levels import Level, child_level, coerce_level, parent_level
from .persistence.sqlalchemy_store import (
    BoundaryRecord,
    _load_polygon,
    boundary_to_record,
    create_engine,
    create_sessionmaker,
    ensure_schema,
    record_to_boundary,
)

logger = logging.getLogger(__name__)

__all__ = ["BoundaryStore", "as_point"]

_UNSET_PARENTS = ("", "null")


def as_point(point: Any) -> Point:
    if isinstance(point, Point):
        return point
    lng, lat = point
    return Point(float(lng), float(lat))


@dataclass
class _LevelIndex:
    boundaries: List[Boundary]
    geoms: List[BaseGeometry]
    tree: Optional[STRtree]
    prepared: List[Any]

    def containing(self, pt: Point) -> Optional[Boundary]:
        if self.tree is None:
            return None
        # STRtree narrows by envelope; covers() decides, so edge points count as inside
        for i in sorted(int(i) for i in self.tree.query(pt)):
            if self.prepared[i].covers(pt):
                return self.boundaries[i]
        return None


@dataclass
class BoundaryStore:
    """Boundary persistence plus per-level spatial indexes.

    Indexes are built lazily per level, held in a bounded LRU cache and
    dropped whenever the level's records change.
    """

    session_factory: sessionmaker
    max_cache: int = 4
    engine: Optional[Engine] = field(default=None, repr=False)
    _cache: "OrderedDict[Level, _LevelIndex]" = field(
        default_factory=OrderedDict, init=False, repr=False
    )
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @classmethod
    def from_url(cls, url: str, *, max_cache: int = 4, echo: bool = False) -> "BoundaryStore":
        parsed = make_url(url)
        if parsed.drivername.startswith("sqlite") and parsed.database not in (None, "", ":memory:"):
            try:
                Path(parsed.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StoreUnavailableError(f"cannot create store directory: {exc}") from exc
        engine = create_engine(url, echo=echo)
        try:
            ensure_schema(engine)
        except (OperationalError, InterfaceError) as exc:
            engine.dispose()
            raise StoreUnavailableError(f"cannot open boundary store {parsed!r}: {exc.orig}") from exc
        logger.info("boundary_store.opened url=%r", parsed)
        return cls(create_sessionmaker(engine), max_cache=max_cache, engine=engine)

    def close(self) -> None:
        self.invalidate()
        if self.engine is not None:
            self.engine.dispose()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Transactional session; connection failures surface as StoreUnavailableError."""
        try:
            with self.session_factory.begin() as session:
                yield session
        except (OperationalError, InterfaceError) as exc:
            logger.error("boundary_store.unavailable error=%s", exc.orig)
            raise StoreUnavailableError(f"boundary store unavailable: {exc.orig}") from exc

    # ------------------------------------------------------------------
    # Spatial index cache
    # ------------------------------------------------------------------

    def invalidate(self, level: Optional[Level | str] = None) -> None:
        with self._lock:
            if level is None:
                self._cache.clear()
            else:
                self._cache.pop(coerce_level(level), None)

    def _build_index(self, level: Level) -> _LevelIndex:
        boundaries: List[Boundary] = []
        geoms: List[BaseGeometry] = []
        with self.session() as session:
            rows = session.scalars(
                select(BoundaryRecord)
                .where(BoundaryRecord.level == level.value)
                .order_by(BoundaryRecord.id)
            ).all()
            for row in rows:
                boundaries.append(record_to_boundary(row))
                geoms.append(_load_polygon(row.geometry_wkb, row.geometry_geojson))
        tree = STRtree(geoms) if geoms else None
        logger.debug("boundary_store.index_built level=%s size=%s", level.value, len(geoms))
        return _LevelIndex(boundaries, geoms, tree, [prep(g) for g in geoms])

    def _level_index(self, level: Level) -> _LevelIndex:
        with self._lock:
            cached = self._cache.get(level)
            if cached is not None:
                self._cache.move_to_end(level)
                return cached
            index = self._build_index(level)
            self._cache[level] = index
            if len(self._cache) > self.max_cache:
                self._cache.popitem(last=False)
            return index

    def warm(self, levels: Iterable[Level | str]) -> None:
        """Build indexes up front, e.g. before fanning lookups out to threads."""
        for level in levels:
            self._level_index(coerce_level(level))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_containing(self, level: Level | str, point: Any) -> Optional[Boundary]:
        """Boundary of ``level`` covering ``point`` (lng, lat), or ``None``."""
        return self._level_index(coerce_level(level)).containing(as_point(point))

    def find_all_containing_regions(self, point: Any) -> RegionMatch:
        pt = as_point(point)
        return RegionMatch(
            province=self._level_index(Level.PROVINCE).containing(pt),
            county=self._level_index(Level.COUNTY).containing(pt),
            bakhsh=self._level_index(Level.BAKHSH).containing(pt),
        )

    def find_by_name_and_level(self, name: str, level: Level | str) -> Optional[Boundary]:
        """Match either the canonical or the localized spelling, ignoring case."""
        if not name or not name.strip():
            return None
        key = name.strip().lower()
        level = coerce_level(level)
        with self.session() as session:
            row = session.scalars(
                select(BoundaryRecord)
                .where(BoundaryRecord.level == level.value)
                .where(
                    or_(
                        func.lower(BoundaryRecord.name) == key,
                        func.lower(BoundaryRecord.name_fa) == key,
                    )
                )
                .order_by(BoundaryRecord.id)
                .limit(1)
            ).first()
            return record_to_boundary(row) if row is not None else None

    def find_children(self, parent_name: str, parent_level: Level | str) -> List[Boundary]:
        parent_level = coerce_level(parent_level)
        child = child_level(parent_level)
        if child is None or not parent_name:
            return []
        spellings = {parent_name.strip()}
        parent = self.find_by_name_and_level(parent_name, parent_level)
        if parent is not None:
            spellings.update(parent.spellings())
        with self.session() as session:
            rows = session.scalars(
                select(BoundaryRecord)
                .where(BoundaryRecord.level == child.value)
                .where(BoundaryRecord.parent.in_(sorted(spellings)))
                .order_by(BoundaryRecord.name)
            ).all()
            return [record_to_boundary(r) for r in rows]

    def boundaries(self, level: Level | str) -> List[Boundary]:
        level = coerce_level(level)
        with self.session() as session:
            rows = session.scalars(
                select(BoundaryRecord)
                .where(BoundaryRecord.level == level.value)
                .order_by(BoundaryRecord.id)
            ).all()
            return [record_to_boundary(r) for r in rows]

    def unresolved(self, level: Level | str) -> List[Boundary]:
        """Boundaries of ``level`` whose parent has not been assigned yet."""
        level = coerce_level(level)
        with self.session() as session:
            rows = session.scalars(
                select(BoundaryRecord)
                .where(BoundaryRecord.level == level.value)
                .where(
                    or_(
                        BoundaryRecord.parent.is_(None),
                        BoundaryRecord.parent.in_(_UNSET_PARENTS),
                    )
                )
                .order_by(BoundaryRecord.id)
            ).all()
            return [record_to_boundary(r) for r in rows]

    def count(self, level: Level | str) -> int:
        level = coerce_level(level)
        with self.session() as session:
            return int(
                session.scalar(
                    select(func.count()).select_from(BoundaryRecord).where(
                        BoundaryRecord.level == level.value
                    )
                )
                or 0
            )

    def levels_summary(self) -> Dict[str, Dict[str, int]]:
        summary: Dict[str, Dict[str, int]] = {}
        for level in Level:
            total = self.count(level)
            pending = len(self.unresolved(level)) if parent_level(level) else 0
            summary[level.value] = {"count": total, "unresolved": pending}
        return summary

    def duplicate_report(self, level: Level | str) -> List[Dict[str, Any]]:
        """Groups of boundaries sharing a localized name (case-insensitive)."""
        level = coerce_level(level)
        key = func.lower(BoundaryRecord.name_fa)
        with self.session() as session:
            dup_keys = session.scalars(
                select(key)
                .where(BoundaryRecord.level == level.value)
                .group_by(key)
                .having(func.count() > 1)
                .order_by(key)
            ).all()
            report: List[Dict[str, Any]] = []
            for dup in dup_keys:
                names = session.scalars(
                    select(BoundaryRecord.name)
                    .where(BoundaryRecord.level == level.value)
                    .where(key == dup)
                    .order_by(BoundaryRecord.id)
                ).all()
                report.append({"name_fa": dup, "names": list(names)})
            return report

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def replace_level(self, level: Level | str, boundaries: Sequence[Boundary]) -> int:
        """Atomically swap every boundary of ``level`` for ``boundaries``."""
        level = coerce_level(level)
        seen: set[str] = set()
        for b in boundaries:
            if b.level is not level:
                raise ValueError(f"cannot store {b.level.value} boundary {b.name!r} as {level.value}")
            if b.key in seen:
                raise ValueError(f"duplicate {level.value} name {b.name!r}")
            seen.add(b.key)
            ensure_coordinate_range(b.geometry)

        records = [boundary_to_record(b) for b in boundaries]
        with self.session() as session:
            removed = session.execute(
                delete(BoundaryRecord).where(BoundaryRecord.level == level.value)
            ).rowcount
            session.add_all(records)
        self.invalidate(level)
        logger.info(
            "boundary_store.replace_level level=%s removed=%s inserted=%s",
            level.value,
            removed,
            len(records),
        )
        return len(records)

    def set_parents(self, level: Level | str, assignments: Iterable[Tuple[str, str]]) -> int:
        """Apply ``(name, parent)`` pairs in order within one transaction."""
        level = coerce_level(level)
        above = parent_level(level)
        if above is None:
            raise ValueError("province boundaries have no parent")
        updated = 0
        with self.session() as session:
            for name, parent in assignments:
                result = session.execute(
                    update(BoundaryRecord)
                    .where(BoundaryRecord.level == level.value)
                    .where(BoundaryRecord.name == name)
                    .values(parent=parent, parent_level=above.value)
                )
                updated += result.rowcount or 0
        if updated:
            self.invalidate(level)
        return updated

    def set_parent(self, level: Level | str, name: str, parent: str) -> bool:
        return self.set_parents(level, [(name, parent)]) > 0
