"""SCOREVIEW — Service Layer.

Entity writes:  trigger → unique-index check → persist → update indexes
Record writes:  delegated to the aggregation engine
"""

import threading
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from scoreview.config import settings
from scoreview.core.exceptions import EntityNotFound, ValidationFailed
from scoreview.core.logging import get_logger
from scoreview.engine.aggregation import AggregationEngine
from scoreview.engine.index import LookupIndex, build_index
from scoreview.engine.triggers import ConsistencyTrigger
from scoreview.models.entity_models import Entity
from scoreview.models.view_models import (
    EntityIn,
    EntityUpdate,
    IndexDescriptor,
    RankedSummary,
    ReconcileReport,
    ScoreRecordIn,
    SummaryView,
)

logger = get_logger("service")


class ScoreViewService:
    """Host-facing API over the aggregation engine, index and trigger."""

    def __init__(
        self,
        engine: Engine,
        policy: Optional[str] = None,
        trigger: Optional[ConsistencyTrigger] = None,
    ):
        self.engine = engine
        self.aggregation = AggregationEngine(
            engine, policy=policy or settings.recompute_policy
        )
        self.locks = self.aggregation.locks
        self.trigger = trigger or ConsistencyTrigger()
        self.indexes: Dict[str, LookupIndex] = {}
        self._index_lock = threading.RLock()

    # ── Entities ──

    def create_entity(self, data: EntityIn) -> Entity:
        with self.locks.hold(data.id):
            with Session(self.engine) as session:
                if session.get(Entity, data.id) is not None:
                    raise ValidationFailed(
                        "id", "an entity with this id already exists", entity_id=data.id
                    )
                entity = self.trigger.before_write(None, Entity(**data.model_dump()))
                return self._persist(session, entity)

    def update_entity(self, entity_id: str, changes: EntityUpdate) -> Entity:
        with self.locks.hold(entity_id):
            with Session(self.engine) as session:
                current = session.get(Entity, entity_id)
                if current is None:
                    raise EntityNotFound(entity_id)
                old = Entity(**current.model_dump())
                proposed = Entity(
                    **{**old.model_dump(), **changes.model_dump(exclude_unset=True)}
                )
                entity = self.trigger.before_write(old, proposed)
                return self._persist(session, entity, current=current)

    def delete_entity(self, entity_id: str) -> int:
        """Delete an entity with its records and summary; returns records removed."""
        with self.locks.hold(entity_id):
            with Session(self.engine) as session:
                entity = session.get(Entity, entity_id)
                if entity is None:
                    raise EntityNotFound(entity_id)
                removed = self.aggregation.purge(session, entity_id)
                session.delete(entity)
                session.commit()
            with self._index_lock:
                for index in self.indexes.values():
                    index.on_entity_removed(entity_id)
        logger.info(
            f"Deleted entity with {removed} records", extra={"entity_id": entity_id}
        )
        return removed

    def get_entity(self, entity_id: str) -> Entity:
        with Session(self.engine) as session:
            entity = session.get(Entity, entity_id)
            if entity is None:
                raise EntityNotFound(entity_id)
            return entity

    def list_entities(self) -> List[Entity]:
        with Session(self.engine) as session:
            return list(session.exec(select(Entity).order_by(Entity.id)).all())

    def _persist(
        self, session: Session, entity: Entity, current: Optional[Entity] = None
    ) -> Entity:
        with self._index_lock:
            for index in self.indexes.values():
                index.check(entity)
            if current is None:
                session.add(entity)
                target = entity
            else:
                for field, value in entity.model_dump().items():
                    setattr(current, field, value)
                session.add(current)
                target = current
            session.commit()
            session.refresh(target)
            for index in self.indexes.values():
                index.on_entity_changed(target)
        logger.info("Entity written", extra={"entity_id": target.id})
        return target

    # ── Score records ──

    def upsert_record(self, record: ScoreRecordIn) -> SummaryView:
        return self.aggregation.record_upserted(record)

    def delete_record(self, entity_id: str, record_id: str) -> SummaryView:
        return self.aggregation.record_deleted(entity_id, record_id)

    def get_summary(self, entity_id: str) -> SummaryView:
        return self.aggregation.get(entity_id)

    def summary_snapshot(self, entity_id: str) -> SummaryView:
        return self.aggregation.snapshot(entity_id)

    def top(self, limit: int = 10, descending: bool = True) -> List[RankedSummary]:
        return self.aggregation.top(limit=limit, descending=descending)

    def below(self, threshold: float) -> List[RankedSummary]:
        return self.aggregation.below(threshold)

    def reconcile(self) -> ReconcileReport:
        return self.aggregation.recompute_all()

    # ── Indexes ──

    def register_index(self, spec: Union[str, IndexDescriptor]) -> LookupIndex:
        """Build an index over all current entities and keep it maintained."""
        with self._index_lock:
            index = build_index(spec, self.list_entities())
            self.indexes[index.name] = index
        return index

    def _index(self, name: str) -> LookupIndex:
        index = self.indexes.get(name)
        if index is None:
            raise KeyError(f"No index named {name!r}")
        return index

    def lookup(self, index_name: str, key: Any) -> List[str]:
        with self._index_lock:
            return self._index(index_name).lookup(key)

    def lookup_range(
        self, index_name: str, low: Any = None, high: Any = None
    ) -> List[str]:
        with self._index_lock:
            return self._index(index_name).lookup_range(low, high)
