"""SQLAlchemy persistence for boundaries and located entities.

Boundaries are stored one row per (level, canonical name). Geometry is kept
both as WKB (for spatial tooling and fast Shapely loading) and as GeoJSON (for
serving map borders without a round trip through Shapely). The bounding box is
stored in four indexed float columns so that candidate boundaries and entities
can be prefiltered in SQL before any exact containment test.

Located entities carry a denormalized province/county/bakhsh triple which is
what the viewport filters match against.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
import json
import uuid
from typing import Any, Mapping, Optional

from shapely import wkb as shapely_wkb
from shapely.geometry import shape as shapely_shape
from shapely.geometry.base import BaseGeometry
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    LargeBinary,
    MetaData,
    String,
    UniqueConstraint,
    Uuid,
    create_engine as _sa_create_engine,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from ..entities import AdministrativeRegion, Boundary, LocatedEntity
from ..geometry import to_shape

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests and local runs)
_JSONType = JSON().with_variant(JSONB(), "postgresql")

# ---------------------------------------------------------------------------
# SQLAlchemy ORM models
# ---------------------------------------------------------------------------

_naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=_naming_convention)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BoundaryRecord(Base):
    __tablename__ = "boundaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_fa: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    parent: Mapped[str | None] = mapped_column(String(255), index=True)
    parent_level: Mapped[str | None] = mapped_column(String(16))
    min_lng: Mapped[float] = mapped_column(Float, nullable=False)
    min_lat: Mapped[float] = mapped_column(Float, nullable=False)
    max_lng: Mapped[float] = mapped_column(Float, nullable=False)
    max_lat: Mapped[float] = mapped_column(Float, nullable=False)
    geometry_wkb: Mapped[bytes | None] = mapped_column(LargeBinary)
    geometry_geojson: Mapped[dict[str, Any]] = mapped_column(_JSONType, nullable=False)
    meta: Mapped[dict[str, Any] | None] = mapped_column(_JSONType)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("level", "name", name="uq_boundaries_level_name"),
        Index("ix_boundaries_level_bbox", "level", "min_lng", "max_lng", "min_lat", "max_lat"),
        Index("ix_boundaries_parent_level_parent", "parent_level", "parent"),
    )


class LocatedEntityRecord(Base):
    __tablename__ = "located_entities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    province: Mapped[str | None] = mapped_column(String(255), index=True)
    county: Mapped[str | None] = mapped_column(String(255), index=True)
    bakhsh: Mapped[str | None] = mapped_column(String(255), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False, index=True
    )
    payload: Mapped[dict[str, Any] | None] = mapped_column(_JSONType)

    __table_args__ = (
        Index("ix_located_entities_lng_lat", "lng", "lat"),
        Index("ix_located_entities_active_created", "is_active", "created_at"),
    )


# ---------------------------------------------------------------------------
# Engine / session helpers
# ---------------------------------------------------------------------------


def create_engine(url: str, *, echo: bool = False, **kwargs):
    """Wrapper around :func:`sqlalchemy.create_engine` for convenience."""

    return _sa_create_engine(url, echo=echo, **kwargs)


def create_sqlite_memory_engine(echo: bool = False):
    """Quick helper for unit tests or experimenting without PostgreSQL."""

    return create_engine("sqlite+pysqlite:///:memory:", echo=echo)


def create_sessionmaker(engine, *, expire_on_commit: bool = False, **kwargs):
    """Return a configured ``sessionmaker`` factory for the given engine."""

    return sessionmaker(bind=engine, expire_on_commit=expire_on_commit, class_=Session, **kwargs)


def ensure_schema(engine) -> None:
    """Create the database schema if it does not already exist."""

    Base.metadata.create_all(engine)


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def _clean_meta(meta: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if not isinstance(meta, Mapping):
        return None

    def _coerce(value: Any) -> Any:
        if value is None or isinstance(value, (bool, int, float, str)):
            return value
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        if isinstance(value, Mapping):
            return {str(k): _coerce(v) for k, v in value.items()}
        if isinstance(value, (list, tuple, set)):
            return [_coerce(v) for v in value]
        try:
            json.dumps(value)
            return value
        except TypeError:
            return repr(value)

    return {str(k): _coerce(v) for k, v in meta.items()}


def _dump_polygon(geometry: Mapping[str, Any]) -> tuple[bytes, dict[str, Any]]:
    geom = to_shape(geometry)
    return geom.wkb, _clean_meta(geometry)  # type: ignore[return-value]


def _load_polygon(wkb_bytes: bytes | None, geojson: Mapping[str, Any] | None) -> BaseGeometry:
    if wkb_bytes:
        return shapely_wkb.loads(wkb_bytes)
    return shapely_shape(geojson)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timezone-aware columns back as naive values
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def boundary_to_record(boundary: Boundary) -> BoundaryRecord:
    wkb_bytes, geojson = _dump_polygon(boundary.geometry)
    min_lng, min_lat, max_lng, max_lat = boundary.bbox
    return BoundaryRecord(
        level=boundary.level.value,
        name=boundary.name,
        name_fa=boundary.name_fa,
        parent=boundary.parent,
        parent_level=boundary.parent_level.value if boundary.parent_level else None,
        min_lng=min_lng,
        min_lat=min_lat,
        max_lng=max_lng,
        max_lat=max_lat,
        geometry_wkb=wkb_bytes,
        geometry_geojson=geojson,
        meta=_clean_meta(boundary.metadata),
    )


def record_to_boundary(record: BoundaryRecord) -> Boundary:
    return Boundary(
        level=record.level,
        name=record.name,
        name_fa=record.name_fa,
        parent=record.parent,
        parent_level=record.parent_level,
        geometry=dict(record.geometry_geojson),
        metadata=dict(record.meta or {}),
    )


def entity_to_record(entity: LocatedEntity) -> LocatedEntityRecord:
    return LocatedEntityRecord(
        id=entity.id,
        name=entity.name,
        lng=entity.lng,
        lat=entity.lat,
        province=entity.region.province,
        county=entity.region.county,
        bakhsh=entity.region.bakhsh,
        is_active=entity.is_active,
        created_at=entity.created_at,
        payload=_clean_meta(entity.payload),
    )


def record_to_entity(record: LocatedEntityRecord) -> LocatedEntity:
    return LocatedEntity(
        id=record.id,
        name=record.name,
        lng=record.lng,
        lat=record.lat,
        region=AdministrativeRegion(record.province, record.county, record.bakhsh),
        is_active=record.is_active,
        created_at=_as_utc(record.created_at),
        payload=dict(record.payload or {}),
    )
