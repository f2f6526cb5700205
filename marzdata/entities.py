"""Domain entities: boundaries, located entities and region matches."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
import uuid

from .geometry import BBox, compute_bbox
from .levels import Level, coerce_level, parent_level

__all__ = [
    "Boundary",
    "AdministrativeRegion",
    "RegionMatch",
    "LocatedEntity",
    "validate_non_empty_str",
]


def validate_non_empty_str(name: str):
    """Decorator factory: enforce non-empty string attribute on __post_init__."""

    def deco(cls):
        orig_post = getattr(cls, "__post_init__", None)

        def post(self):
            if not getattr(self, name) or not isinstance(getattr(self, name), str):
                raise ValueError(f"{cls.__name__}.{name} must be a non-empty string")
            if orig_post:
                orig_post(self)

        cls.__post_init__ = post
        return cls

    return deco


@validate_non_empty_str("name")
@dataclass(slots=True)
class Boundary:
    level: Level
    name: str
    geometry: Dict[str, Any]
    name_fa: str = ""
    parent: Optional[str] = None
    parent_level: Optional[Level] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    bbox: Optional[BBox] = field(default=None, init=False)

    def __post_init__(self):
        self.level = coerce_level(self.level)
        if not self.name_fa:
            self.name_fa = self.name
        if self.parent in ("", "null"):
            self.parent = None
        expected = parent_level(self.level)
        if self.parent is None:
            self.parent_level = None
        elif expected is None:
            raise ValueError(f"{self.level.value} boundaries cannot have a parent")
        elif self.parent_level is None:
            self.parent_level = expected
        elif coerce_level(self.parent_level) is not expected:
            raise ValueError(
                f"{self.level.value} parent must be a {expected.value}, "
                f"got {self.parent_level}"
            )
        else:
            self.parent_level = expected
        self.bbox = compute_bbox(self.geometry)

    @property
    def key(self) -> str:
        return self.name.strip().lower()

    def spellings(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(s for s in (self.name, self.name_fa) if s))

    def with_geometry(self, geometry: Dict[str, Any]) -> "Boundary":
        """Copy with a new geometry; the bounding box is recomputed from it."""
        return replace(self, geometry=geometry)

    def with_parent(self, parent: Optional[str]) -> "Boundary":
        return replace(self, parent=parent, parent_level=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "name": self.name,
            "nameFa": self.name_fa,
            "parent": self.parent,
            "parentLevel": self.parent_level.value if self.parent_level else None,
            "geometry": self.geometry,
            "bbox": list(self.bbox) if self.bbox else None,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], *, level: Optional[Level] = None) -> "Boundary":
        return cls(
            level=level or data["level"],
            name=data.get("name") or data.get("nameFa") or "",
            name_fa=data.get("nameFa") or data.get("name_fa") or "",
            parent=data.get("parent"),
            parent_level=data.get("parentLevel") or data.get("parent_level"),
            geometry=data["geometry"],
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True, slots=True)
class AdministrativeRegion:
    """Denormalized province/county/bakhsh names attached to an entity."""

    province: Optional[str] = None
    county: Optional[str] = None
    bakhsh: Optional[str] = None

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {"province": self.province, "county": self.county, "bakhsh": self.bakhsh}


@dataclass(frozen=True, slots=True)
class RegionMatch:
    province: Optional[Boundary] = None
    county: Optional[Boundary] = None
    bakhsh: Optional[Boundary] = None

    def region(self) -> AdministrativeRegion:
        return AdministrativeRegion(
            province=self.province.name if self.province else None,
            county=self.county.name if self.county else None,
            bakhsh=self.bakhsh.name if self.bakhsh else None,
        )


@validate_non_empty_str("name")
@dataclass(slots=True)
class LocatedEntity:
    name: str
    lng: float
    lat: float
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    region: AdministrativeRegion = field(default_factory=AdministrativeRegion)
    is_active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    payload: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.lng = float(self.lng)
        self.lat = float(self.lat)

    @property
    def location(self) -> Tuple[float, float]:
        return self.lng, self.lat

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "location": {"type": "Point", "coordinates": [self.lng, self.lat]},
            "administrativeRegion": self.region.as_dict(),
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat(),
            "payload": self.payload,
        }
