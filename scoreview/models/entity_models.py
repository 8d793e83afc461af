"""SCOREVIEW — Persistent Models.

Entity rows are written by callers through the consistency trigger.
ScoreRecord rows are written by callers through the aggregation engine.
DerivedSummary rows are owned by the aggregation engine and read-only
for everyone else.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Entity(SQLModel, table=True):
    """The subject that owns zero or more score records."""

    __tablename__ = "entities"

    id: str = Field(primary_key=True, description="Immutable once assigned")
    name: str = Field(index=True, description="Display name")
    email: Optional[str] = Field(default=None, index=True)
    email_verified: bool = Field(
        default=False, description="Reset whenever the email changes"
    )
    created_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None)


class ScoreRecord(SQLModel, table=True):
    """One weighted observation belonging to an entity."""

    __tablename__ = "score_records"

    id: str = Field(primary_key=True)
    entity_id: str = Field(foreign_key="entities.id", index=True)
    score: float = Field(description="Observed value")
    weight: float = Field(description="Strictly positive")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class DerivedSummary(SQLModel, table=True):
    """Materialized weighted average per entity.

    The two running sums are stored as exact rational text ("p/q") so the
    incremental policy never rounds; weighted_average is None while the entity
    has no records.
    """

    __tablename__ = "derived_summaries"

    entity_id: str = Field(primary_key=True, foreign_key="entities.id")
    weighted_sum: str = Field(default="0", description="Σ(score·weight) as a fraction")
    weight_total: str = Field(default="0", description="Σ(weight)")
    record_count: int = Field(default=0)
    weighted_average: Optional[float] = Field(default=None, index=True)
    version: int = Field(default=0, description="Bumped on every mutation")
    updated_at: datetime = Field(default_factory=utcnow)
