"""Projected-coordinate detection and reprojection to WGS84.

Several provincial shapefiles are delivered in a national Lambert Conformal
Conic projection (metres) instead of longitude/latitude. A geometry is
classified as projected as soon as a single vertex leaves the WGS84 range;
such geometries are transformed ring by ring with :mod:`pyproj`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

import numpy as np

from .geometry import BBox, compute_bbox, iter_vertices, probably_lonlat

try:
    from pyproj import CRS, Transformer
    from pyproj.exceptions import CRSError

    PYPROJ = True
except Exception:  # pragma: no cover - optional dependency
    CRS = Transformer = None  # type: ignore
    CRSError = ValueError  # type: ignore
    PYPROJ = False

logger = logging.getLogger(__name__)

__all__ = [
    "IRAN_LCC",
    "WGS84",
    "PYPROJ",
    "ReprojectionStatus",
    "ReprojectionResult",
    "Reprojector",
    "is_projected_coordinate",
    "needs_reprojection",
    "reproject_geometry",
    "read_prj",
]

IRAN_LCC = (
    "+proj=lcc +lat_1=30 +lat_2=36 +lat_0=24 +lon_0=54 "
    "+x_0=0 +y_0=0 +datum=WGS84 +units=m +no_defs"
)
WGS84 = "EPSG:4326"


class ReprojectionStatus(str, Enum):
    ALREADY_WGS84 = "already_wgs84"
    REPROJECTED = "reprojected"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, slots=True)
class ReprojectionResult:
    status: ReprojectionStatus
    geometry: dict[str, Any]
    bbox: Optional[BBox] = None

    @property
    def ok(self) -> bool:
        return self.status is not ReprojectionStatus.UNAVAILABLE


def is_projected_coordinate(x: float, y: float) -> bool:
    return not probably_lonlat(x, y)


def needs_reprojection(geometry: Mapping[str, Any]) -> bool:
    """True when any vertex lies outside the longitude/latitude range."""
    for x, y in iter_vertices(geometry.get("coordinates")):
        if is_projected_coordinate(x, y):
            return True
    return False


def read_prj(shapefile: str | Path) -> Optional[str]:
    """Return the WKT of the ``.prj`` sidecar next to ``shapefile``, if any."""
    prj = Path(shapefile).with_suffix(".prj")
    if not prj.exists():
        return None
    text = prj.read_text(encoding="utf-8", errors="replace").strip()
    return text or None


class Reprojector:
    """Source-CRS to WGS84 transformer with ``always_xy`` axis order."""

    def __init__(self, definition: str = IRAN_LCC):
        self.definition = definition
        self._transformer = None
        if not PYPROJ:
            logger.warning("crs.pyproj_missing definition=%s", definition)
            return
        try:
            source = CRS.from_user_input(definition)
        except CRSError as exc:
            logger.error("crs.invalid_definition definition=%s error=%s", definition, exc)
            return
        self._transformer = Transformer.from_crs(source, WGS84, always_xy=True)

    @classmethod
    def for_shapefile(cls, shapefile: str | Path, default: str = IRAN_LCC) -> "Reprojector":
        """Prefer a projected CRS declared by the ``.prj`` sidecar over ``default``."""
        wkt = read_prj(shapefile)
        if wkt and PYPROJ:
            try:
                crs = CRS.from_wkt(wkt)
            except CRSError as exc:
                logger.warning("crs.prj_unreadable path=%s error=%s", shapefile, exc)
            else:
                if crs.is_projected:
                    logger.info("crs.prj_projection path=%s name=%s", shapefile, crs.name)
                    return cls(wkt)
        return cls(default)

    @property
    def available(self) -> bool:
        return self._transformer is not None

    def transform_ring(self, ring: Any) -> list[list[float]]:
        xy = np.asarray([[float(p[0]), float(p[1])] for p in ring], dtype=float)
        if xy.size == 0:
            return []
        lng, lat = self._transformer.transform(xy[:, 0], xy[:, 1])
        return [[float(x), float(y)] for x, y in zip(np.atleast_1d(lng), np.atleast_1d(lat))]

    def transform_coordinates(self, coordinates: Any) -> Any:
        if not isinstance(coordinates, (list, tuple)) or not coordinates:
            return coordinates
        head = coordinates[0]
        if isinstance(head, (int, float)):
            return self.transform_ring([coordinates])[0]
        if isinstance(head, (list, tuple)) and head and isinstance(head[0], (int, float)):
            return self.transform_ring(coordinates)
        return [self.transform_coordinates(part) for part in coordinates]


def reproject_geometry(
    geometry: Mapping[str, Any], reprojector: Optional[Reprojector]
) -> ReprojectionResult:
    """Reproject ``geometry`` when it carries projected coordinates.

    The result states explicitly whether the geometry was already in WGS84,
    was transformed, or needed a transformation that could not be performed.
    """
    if not needs_reprojection(geometry):
        return ReprojectionResult(
            ReprojectionStatus.ALREADY_WGS84, dict(geometry), compute_bbox(geometry)
        )
    if reprojector is None or not reprojector.available:
        return ReprojectionResult(ReprojectionStatus.UNAVAILABLE, dict(geometry), None)

    transformed = {
        "type": geometry.get("type"),
        "coordinates": reprojector.transform_coordinates(geometry.get("coordinates")),
    }
    return ReprojectionResult(
        ReprojectionStatus.REPROJECTED, transformed, compute_bbox(transformed)
    )
