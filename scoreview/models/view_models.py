"""SCOREVIEW — Read/Write Schemas (Pydantic)."""

import math
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


# ─────────────────────────────────────────────
# ENTITY
# ─────────────────────────────────────────────


class EntityIn(BaseModel):
    """Body for creating an entity."""

    id: str = Field(min_length=1)
    name: str
    email: Optional[str] = None


class EntityUpdate(BaseModel):
    """Partial update. Unset fields keep their stored value."""

    name: Optional[str] = None
    email: Optional[str] = None
    email_verified: Optional[bool] = None


class EntityOut(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    email_verified: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ─────────────────────────────────────────────
# SCORE RECORDS
# ─────────────────────────────────────────────


class ScoreRecordIn(BaseModel):
    """A score record as submitted by a caller.

    Weight is checked by the aggregation engine, not here, so that an
    invalid weight always surfaces as InvalidWeight.
    """

    id: str = Field(min_length=1)
    entity_id: str = Field(min_length=1)
    score: float
    weight: float

    @field_validator("score")
    @classmethod
    def _finite_score(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("score must be finite")
        return v


class RecordBody(BaseModel):
    """PUT body when ids come from the URL."""

    score: float
    weight: float


# ─────────────────────────────────────────────
# SUMMARIES
# ─────────────────────────────────────────────


class SummaryStatus(str, Enum):
    OK = "ok"
    NO_DATA = "no_data"


class SummaryView(BaseModel):
    """Snapshot of one entity's derived summary."""

    entity_id: str
    status: SummaryStatus
    weighted_average: Optional[float] = None
    record_count: int = 0
    weight_total: float = 0.0
    version: int = 0


class RankedSummary(BaseModel):
    rank: int
    entity_id: str
    entity_name: str = ""
    weighted_average: float
    record_count: int


class ReconcileReport(BaseModel):
    """Outcome of a full recomputation pass."""

    entities_checked: int = 0
    summaries_corrected: int = 0
    corrected_entity_ids: List[str] = []
    duration_ms: float = 0.0


# ─────────────────────────────────────────────
# INDEXES
# ─────────────────────────────────────────────


class IndexDescriptor(BaseModel):
    """Which entity attribute(s) an index covers.

    Expresses an access-pattern optimization only. prefix_length keys
    string values by their first N characters (e.g. first letter of name).
    """

    name: str
    attributes: List[str] = Field(min_length=1)
    prefix_length: Optional[int] = Field(default=None, ge=1)
    unique: bool = False
