"""Geometry helpers shared by ingestion and query code.

Geometries travel through the package as GeoJSON-style mappings
(``{"type": ..., "coordinates": ...}``) and are turned into Shapely objects
only where a spatial predicate is evaluated.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Optional, Tuple

import numpy as np

from shapely.geometry import MultiPolygon, Polygon, mapping, shape
from shapely.errors import ShapelyError
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union
from shapely.validation import make_valid

from .exceptions import MalformedGeometryError

__all__ = [
    "BBox",
    "POLYGONAL_TYPES",
    "iter_vertices",
    "vertex_array",
    "compute_bbox",
    "compute_centroid",
    "first_vertex",
    "probably_lonlat",
    "validate_coordinate_range",
    "ensure_coordinate_range",
    "to_shape",
    "to_geojson",
    "to_polygonal",
    "merge_geometries",
]

BBox = Tuple[float, float, float, float]

POLYGONAL_TYPES = ("Polygon", "MultiPolygon")


def _is_position(value: Any) -> bool:
    return (
        isinstance(value, (list, tuple))
        and len(value) >= 2
        and isinstance(value[0], (int, float))
        and isinstance(value[1], (int, float))
    )


def iter_vertices(coordinates: Any) -> Iterator[Tuple[float, float]]:
    """Yield every (x, y) position in a coordinate array of any nesting depth."""
    if _is_position(coordinates):
        yield float(coordinates[0]), float(coordinates[1])
        return
    if isinstance(coordinates, (list, tuple)):
        for item in coordinates:
            yield from iter_vertices(item)


def _coordinates_of(geometry: Any) -> Any:
    if isinstance(geometry, BaseGeometry):
        geometry = mapping(geometry)
    if isinstance(geometry, Mapping):
        if geometry.get("type") == "GeometryCollection":
            return [_coordinates_of(g) for g in geometry.get("geometries") or []]
        return geometry.get("coordinates")
    return geometry


def vertex_array(geometry: Any) -> np.ndarray:
    xy = list(iter_vertices(_coordinates_of(geometry)))
    if not xy:
        return np.empty((0, 2), dtype=float)
    return np.asarray(xy, dtype=float)


def compute_bbox(geometry: Any) -> BBox:
    """``(min_lng, min_lat, max_lng, max_lat)`` over every vertex."""
    xy = vertex_array(geometry)
    if xy.size == 0:
        raise MalformedGeometryError("geometry has no coordinates")
    mins = xy.min(axis=0)
    maxs = xy.max(axis=0)
    return float(mins[0]), float(mins[1]), float(maxs[0]), float(maxs[1])


def compute_centroid(geometry: Any) -> Tuple[float, float]:
    """Arithmetic mean of all vertices across all rings.

    This is an approximation and not the area-weighted centroid: for concave
    or multi-part shapes the returned point can fall outside the geometry,
    which is why parent resolution falls back to :func:`first_vertex`.
    Closing vertices are counted twice, matching how the rings are stored.
    """
    xy = vertex_array(geometry)
    if xy.size == 0:
        raise MalformedGeometryError("geometry has no coordinates")
    mean = xy.mean(axis=0)
    return float(mean[0]), float(mean[1])


def first_vertex(geometry: Any) -> Optional[Tuple[float, float]]:
    """First vertex of the first outer ring, used as an in-boundary sample point."""
    for xy in iter_vertices(_coordinates_of(geometry)):
        return xy
    return None


def probably_lonlat(x: float, y: float) -> bool:
    return -180.0 <= x <= 180.0 and -90.0 <= y <= 90.0


def validate_coordinate_range(geometry: Any) -> bool:
    xy = vertex_array(geometry)
    if xy.size == 0:
        return False
    return bool(
        np.all(np.abs(xy[:, 0]) <= 180.0) and np.all(np.abs(xy[:, 1]) <= 90.0)
    )


def ensure_coordinate_range(geometry: Any) -> None:
    if not validate_coordinate_range(geometry):
        raise MalformedGeometryError("coordinates outside WGS84 range")


def to_shape(geometry: Any) -> BaseGeometry:
    if isinstance(geometry, BaseGeometry):
        return geometry
    if not isinstance(geometry, Mapping) or "type" not in geometry:
        raise MalformedGeometryError(f"not a GeoJSON geometry: {type(geometry).__name__}")
    try:
        return shape(geometry)
    except (ShapelyError, ValueError, TypeError, AttributeError, KeyError, IndexError) as exc:
        raise MalformedGeometryError(f"unparsable {geometry.get('type')} geometry: {exc}") from exc


def to_geojson(geom: BaseGeometry) -> dict[str, Any]:
    """Plain-list GeoJSON mapping (Shapely returns nested tuples)."""
    out = mapping(geom)

    def _listify(value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return [_listify(v) for v in value]
        return value

    return {"type": out["type"], "coordinates": _listify(out["coordinates"])}


def _polygonal_part(geom: BaseGeometry) -> Optional[BaseGeometry]:
    if isinstance(geom, (Polygon, MultiPolygon)):
        return geom
    parts = [
        g
        for g in getattr(geom, "geoms", [])
        if isinstance(g, (Polygon, MultiPolygon)) and not g.is_empty
    ]
    if not parts:
        return None
    polys: list[Polygon] = []
    for part in parts:
        polys.extend(part.geoms if isinstance(part, MultiPolygon) else [part])
    return polys[0] if len(polys) == 1 else MultiPolygon(polys)


def to_polygonal(geometry: Any) -> Optional[BaseGeometry]:
    """Repair ``geometry`` and keep only its Polygon/MultiPolygon parts."""
    geom = to_shape(geometry)
    if geom.is_empty:
        return None
    if not geom.is_valid:
        geom = make_valid(geom)
    return _polygonal_part(geom)


def merge_geometries(first: Any, second: Any) -> BaseGeometry:
    """Union two polygonal geometries, preserving disjoint parts as a MultiPolygon."""
    merged = unary_union([to_shape(first), to_shape(second)])
    polygonal = _polygonal_part(merged)
    if polygonal is None:
        raise MalformedGeometryError("union produced no polygonal area")
    return polygonal
