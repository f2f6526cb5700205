"""Readers for boundary source files and the canonical boundary JSON format.

Supported inputs:
- ESRI shapefiles (``.shp`` + ``.dbf`` [+ ``.prj``]) via pyshp
- GeoJSON FeatureCollections
- canonical boundary JSON previously written by :func:`write_canonical_json`
"""

from __future__ import annotations

from datetime import date, datetime, timezone
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import shapefile  # pyshp

from .entities import Boundary
from .levels import Level, coerce_level

logger = logging.getLogger(__name__)

__all__ = [
    "iter_shapefile_features",
    "iter_geojson_features",
    "iter_features",
    "is_canonical_json",
    "read_canonical_records",
    "write_canonical_json",
    "inspect_shapefile",
]


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("latin-1")
    if isinstance(value, Mapping):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    return str(value)


def iter_shapefile_features(
    path: str | Path, *, encoding: str = "latin-1"
) -> Iterator[Dict[str, Any]]:
    """Yield GeoJSON-like features with attributes decoded using ``encoding``.

    The default single-byte encoding never fails to decode, which leaves
    mis-encoded Persian text intact for :mod:`marzdata.text` to repair.
    """
    path = Path(path)
    with shapefile.Reader(str(path), encoding=encoding) as reader:
        logger.info(
            "sources.shapefile path=%s records=%s shape_type=%s",
            path,
            len(reader),
            reader.shapeTypeName,
        )
        for sr in reader.iterShapeRecords():
            if sr.shape.shapeType == shapefile.NULL:
                geometry = None
            else:
                geometry = sr.shape.__geo_interface__
            yield {
                "type": "Feature",
                "properties": _json_safe(sr.record.as_dict()),
                "geometry": geometry,
            }


def _load_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def iter_geojson_features(path: str | Path) -> Iterator[Dict[str, Any]]:
    data = _load_json(Path(path))
    if isinstance(data, Mapping) and data.get("type") == "FeatureCollection":
        yield from data.get("features") or []
    elif isinstance(data, Mapping) and data.get("type") == "Feature":
        yield data
    else:
        raise ValueError(f"{path} is not a GeoJSON Feature or FeatureCollection")


def iter_features(path: str | Path, *, encoding: str = "latin-1") -> Iterator[Dict[str, Any]]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    if path.suffix.lower() == ".shp":
        return iter_shapefile_features(path, encoding=encoding)
    return iter_geojson_features(path)


def is_canonical_json(path: str | Path) -> bool:
    path = Path(path)
    if path.suffix.lower() != ".json":
        return False
    data = _load_json(path)
    return isinstance(data, Mapping) and "boundaries" in data and "level" in data


def read_canonical_records(
    path: str | Path, *, level: Optional[Level | str] = None
) -> Tuple[Level, List[Dict[str, Any]]]:
    """Raw boundary records of a canonical file, unvalidated."""
    data = _load_json(Path(path))
    file_level = coerce_level(data["level"])
    if level is not None and coerce_level(level) is not file_level:
        raise ValueError(f"{path} holds {file_level.value} boundaries, not {level}")
    return file_level, list(data.get("boundaries") or [])


def write_canonical_json(
    path: str | Path,
    level: Level | str,
    boundaries: List[Boundary],
    *,
    source: Optional[str] = None,
) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "level": coerce_level(level).value,
        "source": source,
        "convertedAt": datetime.now(timezone.utc).isoformat(),
        "boundaries": [_json_safe(b.to_dict()) for b in boundaries],
    }
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info("sources.wrote path=%s level=%s count=%s", path, payload["level"], len(boundaries))
    return path


def inspect_shapefile(
    path: str | Path, *, encoding: str = "latin-1", samples: int = 3
) -> Dict[str, Any]:
    """Field definitions plus the first few attribute rows of a shapefile."""
    with shapefile.Reader(str(path), encoding=encoding) as reader:
        fields = [
            {"name": f[0], "type": str(f[1]), "size": int(f[2]), "decimal": int(f[3])}
            for f in reader.fields[1:]
        ]
        rows = [
            _json_safe(reader.record(i).as_dict())
            for i in range(min(samples, len(reader)))
        ]
        return {
            "path": str(path),
            "shape_type": reader.shapeTypeName,
            "records": len(reader),
            "bbox": list(reader.bbox) if len(reader) else None,
            "fields": fields,
            "samples": rows,
        }
