"""Point to province/county/bakhsh resolution for map clicks and entity writes."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Mapping, Optional

from .boundary_store import BoundaryStore
from .entities import AdministrativeRegion
from .fallbacks import DEFECTIVE_PROVINCE_BBOXES, match_fallback
from .geometry import BBox, probably_lonlat

logger = logging.getLogger(__name__)

__all__ = ["RegionResolution", "resolve_region_at_point"]

SOURCE_GEOMETRY = "geometry"
SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True, slots=True)
class RegionResolution:
    province: Optional[str] = None
    county: Optional[str] = None
    bakhsh: Optional[str] = None
    province_fa: Optional[str] = None
    county_fa: Optional[str] = None
    bakhsh_fa: Optional[str] = None
    source: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.source is not None

    def region(self) -> AdministrativeRegion:
        return AdministrativeRegion(self.province, self.county, self.bakhsh)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "province": self.province,
            "county": self.county,
            "bakhsh": self.bakhsh,
            "provinceFa": self.province_fa,
            "countyFa": self.county_fa,
            "bakhshFa": self.bakhsh_fa,
            "source": self.source,
        }


def resolve_region_at_point(
    store: BoundaryStore,
    lat: float,
    lng: float,
    *,
    fallbacks: Mapping[str, BBox] = DEFECTIVE_PROVINCE_BBOXES,
) -> RegionResolution:
    """Containing regions of ``(lat, lng)``; an empty result is not an error."""
    lat = float(lat)
    lng = float(lng)
    if not probably_lonlat(lng, lat):
        raise ValueError(f"coordinates out of range: lat={lat} lng={lng}")

    match = store.find_all_containing_regions((lng, lat))
    if match.province is not None:
        return RegionResolution(
            province=match.province.name,
            county=match.county.name if match.county else None,
            bakhsh=match.bakhsh.name if match.bakhsh else None,
            province_fa=match.province.name_fa,
            county_fa=match.county.name_fa if match.county else None,
            bakhsh_fa=match.bakhsh.name_fa if match.bakhsh else None,
            source=SOURCE_GEOMETRY,
        )

    patched = match_fallback(lat, lng, fallbacks)
    if patched is not None:
        name, _ = patched
        stored = store.find_by_name_and_level(name, "province")
        logger.info("regions.fallback_bbox province=%s lat=%s lng=%s", name, lat, lng)
        return RegionResolution(
            province=stored.name if stored else name,
            county=match.county.name if match.county else None,
            bakhsh=match.bakhsh.name if match.bakhsh else None,
            province_fa=stored.name_fa if stored else None,
            county_fa=match.county.name_fa if match.county else None,
            bakhsh_fa=match.bakhsh.name_fa if match.bakhsh else None,
            source=SOURCE_FALLBACK,
        )

    if match.county is not None or match.bakhsh is not None:
        return RegionResolution(
            county=match.county.name if match.county else None,
            bakhsh=match.bakhsh.name if match.bakhsh else None,
            county_fa=match.county.name_fa if match.county else None,
            bakhsh_fa=match.bakhsh.name_fa if match.bakhsh else None,
            source=SOURCE_GEOMETRY,
        )

    logger.debug("regions.not_found lat=%s lng=%s", lat, lng)
    return RegionResolution()
