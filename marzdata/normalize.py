"""Turn raw shapefile/GeoJSON features into :class:`~marzdata.entities.Boundary` records."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .crs import ReprojectionStatus, Reprojector, reproject_geometry
from .entities import Boundary
from .exceptions import MalformedGeometryError, ReprojectionUnavailableError
from .geometry import POLYGONAL_TYPES, ensure_coordinate_range, to_geojson, to_polygonal
from .levels import Level, coerce_level, parent_level
from .text import DEFAULT_LEGACY_CODEPAGE, TextRepair, repair_text

logger = logging.getLogger(__name__)

__all__ = [
    "LOCALIZED_LEVEL_FIELDS",
    "LOCALIZED_FIELDS",
    "LATIN_LEVEL_FIELDS",
    "LATIN_FIELDS",
    "PARENT_FIELDS",
    "NormalizedFeature",
    "BoundaryNormalizer",
    "extract_name",
]

# Ordered attribute names; source tables disagree on which are populated, and
# similarly named columns (OSTAN vs Ostan_Name) carry different content.
LOCALIZED_LEVEL_FIELDS: Dict[Level, Tuple[str, ...]] = {
    Level.PROVINCE: ("Ostan_Name", "OSTAN_NAME"),
    Level.COUNTY: ("Shahrestan_Name", "SHAHRESTAN_NAME"),
    Level.BAKHSH: ("Bakhsh_Name", "BAKHSH_NAME"),
    Level.CITY: ("Shahr_Name", "SHAHR_NAME"),
}
LOCALIZED_FIELDS: Tuple[str, ...] = ("NAME_FA", "Name_FA", "name_fa", "NAME_FARSI", "name_farsi")
LATIN_LEVEL_FIELDS: Dict[Level, Tuple[str, ...]] = {
    Level.PROVINCE: ("Province", "PROVINCE", "Ostan", "OSTAN"),
    Level.COUNTY: ("County", "COUNTY", "Shahrestan", "SHAHRESTAN"),
    Level.BAKHSH: ("Bakhsh", "BAKHSH"),
    Level.CITY: ("City", "CITY", "Shahr", "SHAHR"),
}
LATIN_FIELDS: Tuple[str, ...] = ("NAME", "Name", "name", "NAME_EN", "Name_EN", "name_en")
# Explicit parent columns: localized spelling first, then Latin
PARENT_FIELDS: Dict[Level, Tuple[str, ...]] = {
    Level.COUNTY: ("Ostan_Name", "OSTAN_NAME", "OSTAN", "PROVINCE", "Province"),
    Level.BAKHSH: ("Shahrestan_Name", "SHAHRESTAN_NAME", "SHAHRESTAN", "COUNTY", "County"),
    Level.CITY: ("Bakhsh_Name", "BAKHSH_NAME", "BAKHSH", "Bakhsh"),
}


def _clean(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, bytes):
        value = value.decode("latin-1")
    text = str(value).strip().strip("\x00").strip()
    return text or None


class _Repairs:
    def __init__(self, legacy_codepage: str):
        self.legacy_codepage = legacy_codepage
        self.corrections: List[TextRepair] = []

    def __call__(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        result = repair_text(value, legacy_codepage=self.legacy_codepage)
        if result.corrected:
            self.corrections.append(result)
        return _clean(result.text)


def _first(props: Mapping[str, Any], names: Sequence[str], repair: _Repairs) -> Optional[str]:
    for name in names:
        text = repair(_clean(props.get(name)))
        if text:
            return text
    return None


def _first_string(props: Mapping[str, Any], repair: _Repairs) -> Optional[str]:
    for value in props.values():
        if isinstance(value, str):
            text = repair(_clean(value))
            if text:
                return text
    return None


def _localized(props, level, repair) -> Optional[str]:
    return _first(props, LOCALIZED_LEVEL_FIELDS[level], repair) or _first(
        props, LOCALIZED_FIELDS, repair
    )


def _latin(props, level, repair) -> Optional[str]:
    return _first(props, LATIN_LEVEL_FIELDS[level], repair) or _first(
        props, LATIN_FIELDS, repair
    )


def extract_name(
    props: Mapping[str, Any],
    level: Level | str,
    *,
    legacy_codepage: str = DEFAULT_LEGACY_CODEPAGE,
) -> str:
    """Pick a display name from ``props`` with the ordered fallback policy.

    Level-specific localized fields, then generic localized fields, then
    level-specific Latin fields, then generic name fields, then the first
    non-empty string attribute, then ``"Unknown <level>"``.
    """
    level = coerce_level(level)
    repair = _Repairs(legacy_codepage)
    return (
        _localized(props, level, repair)
        or _latin(props, level, repair)
        or _first_string(props, repair)
        or f"Unknown {level.value}"
    )


@dataclass
class NormalizedFeature:
    boundary: Boundary
    reprojection: ReprojectionStatus
    repairs: List[TextRepair] = field(default_factory=list)

    @property
    def reprojected(self) -> bool:
        return self.reprojection is ReprojectionStatus.REPROJECTED


class BoundaryNormalizer:
    """Normalize features of one administrative level.

    ``reprojector`` may be ``None``; a feature that turns out to carry
    projected coordinates then raises :class:`ReprojectionUnavailableError`.
    """

    def __init__(
        self,
        level: Level | str,
        *,
        reprojector: Optional[Reprojector] = None,
        legacy_codepage: str = DEFAULT_LEGACY_CODEPAGE,
    ):
        self.level = coerce_level(level)
        self.reprojector = reprojector
        self.legacy_codepage = legacy_codepage

    def _names(self, props: Mapping[str, Any], repair: _Repairs) -> Tuple[str, str]:
        localized = _localized(props, self.level, repair)
        latin = _latin(props, self.level, repair)
        name = latin or localized
        if name is None:
            name = _first_string(props, repair) or f"Unknown {self.level.value}"
        return name, localized or name

    def _parent(self, props: Mapping[str, Any], repair: _Repairs) -> Optional[str]:
        if parent_level(self.level) is None:
            return None
        return _first(props, PARENT_FIELDS[self.level], repair)

    def _geometry(self, geometry: Any) -> Tuple[Dict[str, Any], ReprojectionStatus]:
        if not isinstance(geometry, Mapping):
            raise MalformedGeometryError("feature has no geometry")
        gtype = geometry.get("type")
        if gtype not in POLYGONAL_TYPES:
            raise MalformedGeometryError(f"unsupported geometry type {gtype!r}")
        if not geometry.get("coordinates"):
            raise MalformedGeometryError(f"empty {gtype} geometry")

        result = reproject_geometry(geometry, self.reprojector)
        if result.status is ReprojectionStatus.UNAVAILABLE:
            raise ReprojectionUnavailableError(
                f"{self.level.value} geometry is projected but no transformation is available"
            )
        ensure_coordinate_range(result.geometry)
        polygonal = to_polygonal(result.geometry)
        if polygonal is None:
            raise MalformedGeometryError(f"{gtype} geometry has no polygonal area")
        return to_geojson(polygonal), result.status

    def normalize(self, feature: Mapping[str, Any]) -> NormalizedFeature:
        props = dict(feature.get("properties") or {})
        repair = _Repairs(self.legacy_codepage)
        name, name_fa = self._names(props, repair)
        parent = self._parent(props, repair)
        geometry, status = self._geometry(feature.get("geometry"))
        boundary = Boundary(
            level=self.level,
            name=name,
            name_fa=name_fa,
            parent=parent,
            geometry=geometry,
            metadata=props,
        )
        if status is ReprojectionStatus.REPROJECTED:
            logger.debug(
                "normalize.reprojected level=%s name=%s bbox=%s",
                self.level.value,
                name,
                boundary.bbox,
            )
        return NormalizedFeature(boundary, status, repair.corrections)
