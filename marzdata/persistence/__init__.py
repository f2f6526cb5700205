"""Persistence helpers for working with relational databases."""

from .sqlalchemy_store import (
    Base,
    BoundaryRecord,
    LocatedEntityRecord,
    boundary_to_record,
    create_engine,
    create_sessionmaker,
    create_sqlite_memory_engine,
    ensure_schema,
    entity_to_record,
    record_to_boundary,
    record_to_entity,
)

__all__ = [
    "Base",
    "BoundaryRecord",
    "LocatedEntityRecord",
    "boundary_to_record",
    "create_engine",
    "create_sessionmaker",
    "create_sqlite_memory_engine",
    "ensure_schema",
    "entity_to_record",
    "record_to_boundary",
    "record_to_entity",
]
