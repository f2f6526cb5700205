"""Bounding-box listing queries over located entities.

Region filters are matched against the region names stored on each entity
when it was written, not recomputed from boundaries per query.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import math
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
from sqlalchemy import func, select

from .entities import LocatedEntity
from .entity_store import EntityStore
from .exceptions import InvalidBoundingBoxError
from .persistence.sqlalchemy_store import LocatedEntityRecord, record_to_entity

logger = logging.getLogger(__name__)

__all__ = [
    "BoundingBox",
    "RegionFilter",
    "ViewportPage",
    "ViewportQuery",
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
]

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


@dataclass(frozen=True, slots=True)
class BoundingBox:
    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float

    def __post_init__(self):
        for name in ("min_lng", "min_lat", "max_lng", "max_lat"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or math.isnan(value):
                raise InvalidBoundingBoxError(f"{name} must be a number, got {value!r}")
        if not (-180 <= self.min_lng <= 180 and -180 <= self.max_lng <= 180):
            raise InvalidBoundingBoxError("longitude must be within [-180, 180]")
        if not (-90 <= self.min_lat <= 90 and -90 <= self.max_lat <= 90):
            raise InvalidBoundingBoxError("latitude must be within [-90, 90]")
        if self.min_lng >= self.max_lng:
            raise InvalidBoundingBoxError("min_lng must be less than max_lng")
        if self.min_lat >= self.max_lat:
            raise InvalidBoundingBoxError("min_lat must be less than max_lat")

    @classmethod
    def from_sequence(cls, values: Sequence[Any] | str) -> "BoundingBox":
        """Accept ``[minLng, minLat, maxLng, maxLat]`` or the same as a comma-separated string."""
        if isinstance(values, BoundingBox):
            return values
        if isinstance(values, str):
            values = [v for v in values.split(",")]
        if len(values) != 4:
            raise InvalidBoundingBoxError("bounding box needs exactly four values")
        try:
            numbers = [float(v) for v in values]
        except (TypeError, ValueError) as exc:
            raise InvalidBoundingBoxError(f"bounding box values must be numeric: {values!r}") from exc
        return cls(*numbers)

    def as_tuple(self) -> tuple[float, float, float, float]:
        return self.min_lng, self.min_lat, self.max_lng, self.max_lat


@dataclass(frozen=True, slots=True)
class RegionFilter:
    province: Optional[str] = None
    county: Optional[str] = None
    bakhsh: Optional[str] = None

    def active(self) -> Dict[str, str]:
        return {
            k: v.strip()
            for k, v in (("province", self.province), ("county", self.county), ("bakhsh", self.bakhsh))
            if v and v.strip()
        }


@dataclass
class ViewportPage:
    items: List[LocatedEntity]
    page: int
    limit: int
    total: int
    bbox: Optional[BoundingBox] = None
    filters: RegionFilter = field(default_factory=RegionFilter)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1

    @property
    def pagination(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
            "hasNextPage": self.has_next_page,
            "hasPrevPage": self.has_prev_page,
        }

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.items]

    def to_df(self) -> pd.DataFrame:
        rows = [
            {
                "id": str(e.id),
                "name": e.name,
                "lng": e.lng,
                "lat": e.lat,
                "province": e.region.province,
                "county": e.region.county,
                "bakhsh": e.region.bakhsh,
                "is_active": e.is_active,
                "created_at": e.created_at,
            }
            for e in self.items
        ]
        columns = ["id", "name", "lng", "lat", "province", "county", "bakhsh", "is_active", "created_at"]
        return pd.DataFrame(rows, columns=columns)


class ViewportQuery:
    def __init__(
        self,
        entities: EntityStore,
        *,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ):
        self.entities = entities
        self.default_limit = default_limit
        self.max_limit = max_limit

    def _check_paging(self, page: Any, limit: Any) -> tuple[int, int]:
        limit = self.default_limit if limit is None else limit
        try:
            page = int(page)
            limit = int(limit)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"page and limit must be integers: page={page!r} limit={limit!r}") from exc
        if page < 1:
            raise ValueError("page must be >= 1")
        if not 1 <= limit <= self.max_limit:
            raise ValueError(f"limit must be between 1 and {self.max_limit}")
        return page, limit

    def query(
        self,
        bbox: BoundingBox | Sequence[Any] | str,
        filters: Optional[RegionFilter] = None,
        page: int = 1,
        limit: Optional[int] = None,
        *,
        active_only: bool = True,
    ) -> ViewportPage:
        box = BoundingBox.from_sequence(bbox)
        filters = filters or RegionFilter()
        page, limit = self._check_paging(page, limit)

        rec = LocatedEntityRecord
        conditions = [
            rec.lng >= box.min_lng,
            rec.lng <= box.max_lng,
            rec.lat >= box.min_lat,
            rec.lat <= box.max_lat,
        ]
        if active_only:
            conditions.append(rec.is_active.is_(True))
        for column, value in filters.active().items():
            conditions.append(getattr(rec, column) == value)

        with self.entities.session() as session:
            total = int(session.scalar(select(func.count()).select_from(rec).where(*conditions)) or 0)
            rows = session.scalars(
                select(rec)
                .where(*conditions)
                .order_by(rec.created_at.desc(), rec.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            items = [record_to_entity(r) for r in rows]

        logger.debug(
            "viewport.query bbox=%s filters=%s page=%s limit=%s total=%s",
            box.as_tuple(),
            filters.active(),
            page,
            limit,
            total,
        )
        return ViewportPage(items, page, limit, total, box, filters)
