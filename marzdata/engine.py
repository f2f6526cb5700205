"""High-level facade consumed by listings, map rendering and selection UIs."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Optional, Sequence

from .boundary_store import BoundaryStore
from .config import Settings, load_settings
from .entities import AdministrativeRegion, LocatedEntity
from .entity_store import EntityStore
from .fallbacks import fallback_table
from .levels import Level
from .regions import RegionResolution, resolve_region_at_point
from .viewport import BoundingBox, RegionFilter, ViewportPage, ViewportQuery

logger = logging.getLogger(__name__)

__all__ = ["GeoEngine", "RegionRefresh"]


@dataclass
class RegionRefresh:
    total: int = 0
    updated: int = 0
    unchanged: int = 0
    not_found: int = 0
    dry_run: bool = False


def _brief(boundary) -> Dict[str, str]:
    return {"name": boundary.name, "nameFa": boundary.name_fa, "level": boundary.level.value}


class GeoEngine:
    def __init__(self, store: BoundaryStore, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.store = store
        self.entities = EntityStore(store.session_factory)
        self.viewport = ViewportQuery(
            self.entities,
            default_limit=self.settings.default_page_size,
            max_limit=self.settings.max_page_size,
        )
        self.fallbacks = fallback_table(self.settings.fallback_bboxes)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "GeoEngine":
        settings = settings or load_settings()
        store = BoundaryStore.from_url(settings.database_url, max_cache=settings.index_cache_levels)
        return cls(store, settings)

    def close(self) -> None:
        self.store.close()

    # ------------------------------------------------------------------
    # External operations
    # ------------------------------------------------------------------

    def _canonical_filter(self, filters: Optional[RegionFilter]) -> RegionFilter:
        # Callers may pass either spelling; entities store canonical names
        if filters is None:
            return RegionFilter()
        resolved: Dict[str, Optional[str]] = {}
        for level in (Level.PROVINCE, Level.COUNTY, Level.BAKHSH):
            value = getattr(filters, level.value)
            if value:
                found = self.store.find_by_name_and_level(value, level)
                value = found.name if found is not None else value
            resolved[level.value] = value
        return RegionFilter(**resolved)

    def query_viewport(
        self,
        bbox: BoundingBox | Sequence[Any] | str,
        filters: Optional[RegionFilter] = None,
        page: int = 1,
        limit: Optional[int] = None,
        *,
        active_only: bool = True,
    ) -> ViewportPage:
        box = BoundingBox.from_sequence(bbox)
        return self.viewport.query(
            box, self._canonical_filter(filters), page, limit, active_only=active_only
        )

    def get_boundary_geometry(self, name: str, level: Level | str) -> Optional[Dict[str, Any]]:
        """GeoJSON Feature for map borders; ``None`` when nothing is stored."""
        boundary = self.store.find_by_name_and_level(name, level)
        if boundary is None:
            logger.debug("engine.boundary_missing name=%s level=%s", name, level)
            return None
        return {
            "type": "Feature",
            "properties": _brief(boundary),
            "geometry": boundary.geometry,
            "bbox": list(boundary.bbox),
        }

    def resolve_region_at_point(self, lat: float, lng: float) -> RegionResolution:
        return resolve_region_at_point(self.store, lat, lng, fallbacks=self.fallbacks)

    def list_children(self, parent_name: str, parent_level: Level | str) -> List[Dict[str, str]]:
        return [_brief(b) for b in self.store.find_children(parent_name, parent_level)]

    def list_provinces(self) -> List[Dict[str, str]]:
        """Provinces deduplicated by localized name, sorted by it."""
        seen: Dict[str, Dict[str, str]] = {}
        for b in self.store.boundaries(Level.PROVINCE):
            seen.setdefault(b.name_fa.strip().lower(), _brief(b))
        return sorted(seen.values(), key=lambda d: d["nameFa"])

    def list_sections(self, province: str) -> List[Dict[str, str]]:
        """Counties of ``province`` followed by the bakhsh of those counties."""
        counties = self.store.find_children(province, Level.PROVINCE)
        sections: Dict[str, Dict[str, str]] = {}
        for county in counties:
            sections.setdefault(f"county:{county.name_fa.lower()}", _brief(county))
        for county in counties:
            for bakhsh in self.store.find_children(county.name, Level.COUNTY):
                sections.setdefault(f"bakhsh:{bakhsh.name_fa.lower()}", _brief(bakhsh))
        return list(sections.values())

    # ------------------------------------------------------------------
    # Located entities
    # ------------------------------------------------------------------

    def locate(self, lng: float, lat: float) -> AdministrativeRegion:
        return self.resolve_region_at_point(lat, lng).region()

    def add_entity(self, name: str, lng: float, lat: float, **kwargs: Any) -> LocatedEntity:
        """Store an entity with its region triple computed at write time."""
        entity = LocatedEntity(name=name, lng=lng, lat=lat, region=self.locate(lng, lat), **kwargs)
        return self.entities.add(entity)

    def refresh_entity_regions(self, *, dry_run: bool = False) -> RegionRefresh:
        """Recompute stored region triples, e.g. after a boundary re-import."""
        report = RegionRefresh(dry_run=dry_run)
        for entity in list(self.entities.iter_all()):
            report.total += 1
            region = self.locate(entity.lng, entity.lat)
            if region.province is None and region.county is None:
                report.not_found += 1
                logger.warning("engine.region_not_found id=%s lng=%s lat=%s", entity.id, entity.lng, entity.lat)
                continue
            if region == entity.region:
                report.unchanged += 1
                continue
            report.updated += 1
            if dry_run:
                logger.info("engine.region_change id=%s old=%s new=%s dry_run=1", entity.id, entity.region, region)
            else:
                self.entities.set_region(entity.id, region)
        logger.info(
            "engine.refresh_regions total=%s updated=%s unchanged=%s not_found=%s dry_run=%s",
            report.total,
            report.updated,
            report.unchanged,
            report.not_found,
            dry_run,
        )
        return report
