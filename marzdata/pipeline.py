"""Batch ingestion: source file -> normalized, deduplicated boundaries -> store.

A level is imported as a whole. Features with malformed geometry are skipped
and counted; a layer that needs reprojection which cannot be performed is
aborted before anything is written, leaving the stored level untouched.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .boundary_store import BoundaryStore
from .config import Settings
from .crs import Reprojector
from .dedupe import DedupeStrategy, deduplicate
from .entities import Boundary
from .exceptions import MalformedGeometryError, ReprojectionUnavailableError
from .geometry import ensure_coordinate_range, to_geojson, to_polygonal
from .levels import HIERARCHY, Level, coerce_level
from .normalize import BoundaryNormalizer
from .parents import ParentResolution, ParentResolver
from .sources import is_canonical_json, iter_features, read_canonical_records, write_canonical_json

logger = logging.getLogger(__name__)

__all__ = ["ImportReport", "load_boundaries", "import_level", "import_all"]


@dataclass
class ImportReport:
    level: Level
    source: str
    read: int = 0
    skipped: int = 0
    reprojected: int = 0
    text_repairs: int = 0
    merged: int = 0
    dropped: int = 0
    stored: int = 0
    dry_run: bool = False
    emitted: Optional[str] = None
    skipped_reasons: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["level"] = self.level.value
        return out


def _reprojector_for(path: Path, settings: Settings) -> Reprojector:
    if path.suffix.lower() == ".shp":
        return Reprojector.for_shapefile(path, default=settings.source_projection)
    return Reprojector(settings.source_projection)


def _skip(report: ImportReport, index: int, exc: Exception) -> None:
    report.skipped += 1
    report.skipped_reasons.append(f"feature {index}: {exc}")
    logger.warning(
        "pipeline.skipped_feature level=%s index=%s error=%s", report.level.value, index, exc
    )


def _canonical_boundary(item: Mapping[str, Any], level: Level) -> Boundary:
    boundary = Boundary.from_dict(dict(item), level=level)
    ensure_coordinate_range(boundary.geometry)
    polygonal = to_polygonal(boundary.geometry)
    if polygonal is None:
        raise MalformedGeometryError(f"{boundary.name} has no polygonal area")
    return boundary.with_geometry(to_geojson(polygonal))


def load_boundaries(
    level: Level | str,
    path: str | Path,
    settings: Settings,
    *,
    strategy: Optional[DedupeStrategy | str] = None,
) -> tuple[List[Boundary], ImportReport]:
    """Read, normalize and deduplicate one source file without touching a store."""
    level = coerce_level(level)
    path = Path(path)
    report = ImportReport(level=level, source=str(path))

    if is_canonical_json(path):
        _, records = read_canonical_records(path, level=level)
        raw = []
        for i, item in enumerate(records):
            report.read += 1
            try:
                raw.append(_canonical_boundary(item, level))
            except KeyError as exc:
                _skip(report, i, MalformedGeometryError(f"missing field {exc}"))
            except (MalformedGeometryError, ValueError, TypeError) as exc:
                _skip(report, i, exc)
    else:
        normalizer = BoundaryNormalizer(
            level,
            reprojector=_reprojector_for(path, settings),
            legacy_codepage=settings.legacy_codepage,
        )
        raw = []
        for i, feature in enumerate(iter_features(path, encoding=settings.dbf_encoding)):
            report.read += 1
            try:
                result = normalizer.normalize(feature)
            except MalformedGeometryError as exc:
                _skip(report, i, exc)
                continue
            except ReprojectionUnavailableError:
                logger.error("pipeline.aborted level=%s path=%s reason=reprojection_unavailable", level.value, path)
                raise
            raw.append(result.boundary)
            report.reprojected += int(result.reprojected)
            report.text_repairs += len(result.repairs)

    deduped = deduplicate(raw, strategy or settings.dedupe_strategy)
    report.merged = deduped.merged
    report.dropped = deduped.dropped
    return deduped.boundaries, report


def import_level(
    store: Optional[BoundaryStore],
    level: Level | str,
    path: str | Path,
    settings: Settings,
    *,
    emit: Optional[str | Path] = None,
    dry_run: bool = False,
    strategy: Optional[DedupeStrategy | str] = None,
) -> ImportReport:
    level = coerce_level(level)
    logger.info("pipeline.import_start level=%s path=%s", level.value, path)
    boundaries, report = load_boundaries(level, path, settings, strategy=strategy)

    if emit is not None:
        report.emitted = str(write_canonical_json(emit, level, boundaries, source=str(path)))

    report.dry_run = dry_run or store is None
    if not report.dry_run:
        report.stored = store.replace_level(level, boundaries)

    logger.info(
        "pipeline.import_done level=%s read=%s skipped=%s reprojected=%s merged=%s stored=%s",
        level.value,
        report.read,
        report.skipped,
        report.reprojected,
        report.merged,
        report.stored,
    )
    return report


def import_all(
    store: BoundaryStore,
    sources: Mapping[Level | str, str | Path],
    settings: Settings,
    *,
    strategy: Optional[DedupeStrategy | str] = None,
) -> tuple[Dict[Level, ImportReport], Dict[Level, ParentResolution]]:
    """Import levels top-down, then backfill parents across the hierarchy."""
    by_level = {coerce_level(k): v for k, v in sources.items()}
    reports: Dict[Level, ImportReport] = {}
    for level in HIERARCHY:
        if level in by_level:
            reports[level] = import_level(store, level, by_level[level], settings, strategy=strategy)
    resolver = ParentResolver(store, workers=settings.parent_workers)
    return reports, resolver.resolve_all()
