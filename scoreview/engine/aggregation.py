"""SCOREVIEW — Aggregation Engine.

Keeps one DerivedSummary per entity consistent with that entity's
ScoreRecords:

    weighted_average = Σ(score·weight) / Σ(weight)

Every record write and the summary update that follows it share one
database transaction and run under the owning entity's lock, so a
reader never sees a record set and a summary that disagree.

Two recompute policies, identical in result:
  full         rebuild both sums from the entity's records, O(k)
  incremental  adjust the stored running sums, O(1)

Both accumulate exact rationals (every float is one), so no rounding
happens before the single final division and the stored running sums
never drift.
"""

import math
import time
from fractions import Fraction
from typing import List, Optional, Tuple

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from scoreview.core.exceptions import EntityNotFound, InvalidWeight, NoData
from scoreview.core.locks import EntityLockRegistry
from scoreview.core.logging import get_logger
from scoreview.models.entity_models import (
    DerivedSummary,
    Entity,
    ScoreRecord,
    utcnow,
)
from scoreview.models.view_models import (
    RankedSummary,
    ReconcileReport,
    ScoreRecordIn,
    SummaryStatus,
    SummaryView,
)

logger = get_logger("engine.aggregation")

POLICIES = ("full", "incremental")

# (score, weight) of one record
Contribution = Tuple[float, float]
Sums = Tuple[Fraction, Fraction, int]


def to_fraction(value: float) -> Fraction:
    """Exact rational value of a float."""
    return Fraction(float(value))


def safe_divide(numerator: Fraction, denominator: Fraction) -> Optional[Fraction]:
    """Divide, returning None on a zero divisor.

    None is the "no data" state. It is never coerced to 0, which would be
    indistinguishable from a real average of 0.
    """
    if denominator == 0:
        return None
    return numerator / denominator


def check_weight(weight: float, entity_id: Optional[str] = None) -> None:
    if isinstance(weight, bool) or not isinstance(weight, (int, float)):
        raise InvalidWeight(weight, entity_id=entity_id)
    if not math.isfinite(weight) or weight <= 0:
        raise InvalidWeight(weight, entity_id=entity_id)


def to_view(entity_id: str, summary: Optional[DerivedSummary]) -> SummaryView:
    if summary is None or summary.record_count == 0:
        return SummaryView(
            entity_id=entity_id,
            status=SummaryStatus.NO_DATA,
            version=summary.version if summary else 0,
        )
    return SummaryView(
        entity_id=entity_id,
        status=SummaryStatus.OK,
        weighted_average=summary.weighted_average,
        record_count=summary.record_count,
        weight_total=float(Fraction(summary.weight_total)),
        version=summary.version,
    )


class AggregationEngine:
    """Owns every write to DerivedSummary."""

    def __init__(
        self,
        engine: Engine,
        policy: str = "full",
        locks: Optional[EntityLockRegistry] = None,
    ):
        if policy not in POLICIES:
            raise ValueError(f"Unknown recompute policy {policy!r}")
        self.engine = engine
        self.policy = policy
        self.locks = locks or EntityLockRegistry()

    # ── Write path ──

    def record_upserted(self, record: ScoreRecordIn) -> SummaryView:
        """Insert or replace a score record and refresh the owning summary."""
        check_weight(record.weight, entity_id=record.entity_id)

        while True:
            previous_owner = self._current_owner(record.id)
            owners = {record.entity_id}
            if previous_owner is not None:
                owners.add(previous_owner)

            with self.locks.hold(*owners):
                with Session(self.engine) as session:
                    if session.get(Entity, record.entity_id) is None:
                        raise EntityNotFound(record.entity_id)

                    existing = session.get(ScoreRecord, record.id)
                    owner_now = existing.entity_id if existing else None
                    if owner_now != previous_owner:
                        # Moved by another writer between the peek and the lock
                        continue

                    added: Contribution = (record.score, record.weight)
                    if existing is None:
                        session.add(
                            ScoreRecord(
                                id=record.id,
                                entity_id=record.entity_id,
                                score=record.score,
                                weight=record.weight,
                            )
                        )
                        session.flush()
                        summary = self._apply(session, record.entity_id, added=added)
                    else:
                        removed: Contribution = (existing.score, existing.weight)
                        existing.entity_id = record.entity_id
                        existing.score = record.score
                        existing.weight = record.weight
                        existing.updated_at = utcnow()
                        session.add(existing)
                        session.flush()
                        if owner_now != record.entity_id:
                            self._apply(session, owner_now, removed=removed)
                            summary = self._apply(
                                session, record.entity_id, added=added
                            )
                        else:
                            summary = self._apply(
                                session, record.entity_id, added=added, removed=removed
                            )

                    session.commit()
                    view = to_view(record.entity_id, summary)

            logger.info(
                f"Upserted record {record.id}",
                extra={
                    "entity_id": record.entity_id,
                    "record_id": record.id,
                    "version": view.version,
                },
            )
            return view

    def record_deleted(self, entity_id: str, record_id: str) -> SummaryView:
        """Remove a score record and refresh the owning summary."""
        with self.locks.hold(entity_id):
            with Session(self.engine) as session:
                if session.get(Entity, entity_id) is None:
                    raise EntityNotFound(entity_id)
                record = session.get(ScoreRecord, record_id)
                if record is None or record.entity_id != entity_id:
                    raise EntityNotFound(entity_id, record_id=record_id)

                removed: Contribution = (record.score, record.weight)
                session.delete(record)
                session.flush()
                summary = self._apply(session, entity_id, removed=removed)
                session.commit()
                view = to_view(entity_id, summary)

        logger.info(
            f"Deleted record {record_id}",
            extra={"entity_id": entity_id, "record_id": record_id, "version": view.version},
        )
        return view

    # ── Read path ──

    def snapshot(self, entity_id: str) -> SummaryView:
        """Current summary, with no-data reported as a status."""
        with self.locks.hold(entity_id):
            with Session(self.engine) as session:
                if session.get(Entity, entity_id) is None:
                    raise EntityNotFound(entity_id)
                return to_view(entity_id, session.get(DerivedSummary, entity_id))

    def get(self, entity_id: str) -> SummaryView:
        """Current summary; raises NoData when the entity has no records."""
        view = self.snapshot(entity_id)
        if view.status == SummaryStatus.NO_DATA:
            raise NoData(entity_id)
        return view

    def top(self, limit: int = 10, descending: bool = True) -> List[RankedSummary]:
        """Entities with data ranked by weighted average."""
        order = DerivedSummary.weighted_average
        order = order.desc() if descending else order.asc()  # type: ignore
        with Session(self.engine) as session:
            rows = session.exec(
                select(DerivedSummary, Entity.name)
                .join(Entity, Entity.id == DerivedSummary.entity_id)
                .where(DerivedSummary.record_count > 0)
                .order_by(order, DerivedSummary.entity_id)
                .limit(limit)
            ).all()
        return _ranked(rows)

    def below(self, threshold: float) -> List[RankedSummary]:
        """Entities whose weighted average is strictly below threshold."""
        with Session(self.engine) as session:
            rows = session.exec(
                select(DerivedSummary, Entity.name)
                .join(Entity, Entity.id == DerivedSummary.entity_id)
                .where(
                    DerivedSummary.record_count > 0,
                    DerivedSummary.weighted_average < threshold,  # type: ignore
                )
                .order_by(DerivedSummary.weighted_average, DerivedSummary.entity_id)
            ).all()
        return _ranked(rows)

    # ── Reconciliation ──

    def recompute_all(self) -> ReconcileReport:
        """Rebuild every summary from its records and report drift."""
        started = time.perf_counter()
        with Session(self.engine) as session:
            entity_ids = list(session.exec(select(Entity.id)).all())

        corrected: List[str] = []
        for entity_id in entity_ids:
            with self.locks.hold(entity_id):
                with Session(self.engine) as session:
                    if session.get(Entity, entity_id) is None:
                        continue  # deleted meanwhile
                    if self._reconcile_one(session, entity_id):
                        corrected.append(entity_id)
                    session.commit()

        report = ReconcileReport(
            entities_checked=len(entity_ids),
            summaries_corrected=len(corrected),
            corrected_entity_ids=corrected,
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
        )
        logger.info(
            f"Reconciled {report.entities_checked} summaries, "
            f"{report.summaries_corrected} corrected",
            extra={"duration_ms": report.duration_ms},
        )
        return report

    def purge(self, session: Session, entity_id: str) -> int:
        """Delete an entity's records and summary inside the caller's transaction.

        The caller must hold the entity lock.
        """
        records = session.exec(
            select(ScoreRecord).where(ScoreRecord.entity_id == entity_id)
        ).all()
        for record in records:
            session.delete(record)
        summary = session.get(DerivedSummary, entity_id)
        if summary is not None:
            session.delete(summary)
        session.flush()
        return len(records)

    # ── Internals ──

    def _current_owner(self, record_id: str) -> Optional[str]:
        with Session(self.engine) as session:
            existing = session.get(ScoreRecord, record_id)
            return existing.entity_id if existing else None

    def _sums_from_records(self, session: Session, entity_id: str) -> Sums:
        rows = session.exec(
            select(ScoreRecord.score, ScoreRecord.weight).where(
                ScoreRecord.entity_id == entity_id
            )
        ).all()
        weighted_sum = Fraction(0)
        weight_total = Fraction(0)
        for score, weight in rows:
            w = to_fraction(weight)
            weighted_sum += to_fraction(score) * w
            weight_total += w
        return weighted_sum, weight_total, len(rows)

    def _apply(
        self,
        session: Session,
        entity_id: str,
        added: Optional[Contribution] = None,
        removed: Optional[Contribution] = None,
    ) -> DerivedSummary:
        summary = session.get(DerivedSummary, entity_id)

        if self.policy == "full" or summary is None:
            weighted_sum, weight_total, count = self._sums_from_records(
                session, entity_id
            )
        else:
            weighted_sum = Fraction(summary.weighted_sum)
            weight_total = Fraction(summary.weight_total)
            count = summary.record_count
            if removed is not None:
                w = to_fraction(removed[1])
                weighted_sum -= to_fraction(removed[0]) * w
                weight_total -= w
                count -= 1
            if added is not None:
                w = to_fraction(added[1])
                weighted_sum += to_fraction(added[0]) * w
                weight_total += w
                count += 1

        if summary is None:
            summary = DerivedSummary(entity_id=entity_id)
        _store_sums(summary, weighted_sum, weight_total, count)
        session.add(summary)
        session.flush()
        return summary

    def _reconcile_one(self, session: Session, entity_id: str) -> bool:
        weighted_sum, weight_total, count = self._sums_from_records(session, entity_id)
        summary = session.get(DerivedSummary, entity_id)
        if summary is None:
            if count == 0:
                return False
            summary = DerivedSummary(entity_id=entity_id)
        elif (
            Fraction(summary.weighted_sum) == weighted_sum
            and Fraction(summary.weight_total) == weight_total
            and summary.record_count == count
            and summary.weighted_average == _average(weighted_sum, weight_total, count)
        ):
            return False

        logger.warning(
            f"Summary drift repaired for {entity_id}", extra={"entity_id": entity_id}
        )
        _store_sums(summary, weighted_sum, weight_total, count)
        session.add(summary)
        return True


def _average(weighted_sum: Fraction, weight_total: Fraction, count: int) -> Optional[float]:
    if count == 0:
        return None
    quotient = safe_divide(weighted_sum, weight_total)
    return float(quotient) if quotient is not None else None


def _store_sums(
    summary: DerivedSummary, weighted_sum: Fraction, weight_total: Fraction, count: int
) -> None:
    if count == 0:
        weighted_sum = weight_total = Fraction(0)
    summary.weighted_sum = str(weighted_sum)
    summary.weight_total = str(weight_total)
    summary.record_count = count
    summary.weighted_average = _average(weighted_sum, weight_total, count)
    summary.version += 1
    summary.updated_at = utcnow()


def _ranked(rows) -> List[RankedSummary]:
    return [
        RankedSummary(
            rank=i,
            entity_id=summary.entity_id,
            entity_name=name,
            weighted_average=summary.weighted_average,
            record_count=summary.record_count,
        )
        for i, (summary, name) in enumerate(rows, start=1)
    ]
