from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
import logging
from typing import Iterable, Iterator, List, Optional
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from .entities import AdministrativeRegion, LocatedEntity
from .exceptions import StoreUnavailableError
from .persistence.sqlalchemy_store import (
    LocatedEntityRecord,
    entity_to_record,
    record_to_entity,
)

logger = logging.getLogger(__name__)

__all__ = ["EntityStore"]


@dataclass
class EntityStore:
    """Located entities with their denormalized administrative region."""

    session_factory: sessionmaker

    @contextmanager
    def session(self) -> Iterator[Session]:
        try:
            with self.session_factory.begin() as session:
                yield session
        except (OperationalError, InterfaceError) as exc:
            logger.error("entity_store.unavailable error=%s", exc.orig)
            raise StoreUnavailableError(f"entity store unavailable: {exc.orig}") from exc

    def add(self, entity: LocatedEntity) -> LocatedEntity:
        return self.add_many([entity])[0]

    def add_many(self, entities: Iterable[LocatedEntity]) -> List[LocatedEntity]:
        items = list(entities)
        with self.session() as session:
            for entity in items:
                session.merge(entity_to_record(entity))
        logger.debug("entity_store.saved count=%s", len(items))
        return items

    def get(self, entity_id: uuid.UUID | str) -> Optional[LocatedEntity]:
        if not isinstance(entity_id, uuid.UUID):
            entity_id = uuid.UUID(str(entity_id))
        with self.session() as session:
            row = session.get(LocatedEntityRecord, entity_id)
            return record_to_entity(row) if row is not None else None

    def iter_all(self, *, batch_size: int = 500) -> Iterator[LocatedEntity]:
        """Every entity ordered by id, fetched in batches."""
        last: Optional[uuid.UUID] = None
        while True:
            stmt = select(LocatedEntityRecord).order_by(LocatedEntityRecord.id).limit(batch_size)
            if last is not None:
                stmt = stmt.where(LocatedEntityRecord.id > last)
            with self.session() as session:
                batch = [record_to_entity(r) for r in session.scalars(stmt).all()]
            if not batch:
                return
            yield from batch
            last = batch[-1].id

    def set_region(self, entity_id: uuid.UUID, region: AdministrativeRegion) -> bool:
        with self.session() as session:
            result = session.execute(
                update(LocatedEntityRecord)
                .where(LocatedEntityRecord.id == entity_id)
                .values(province=region.province, county=region.county, bakhsh=region.bakhsh)
            )
            return bool(result.rowcount)
