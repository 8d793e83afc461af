"""SCOREVIEW — Error Kinds.

Every error here describes a caller input problem. They are raised
synchronously and never retried internally.

  ScoreViewError
  ├── InvalidWeight      weight <= 0 or not finite
  ├── EntityNotFound     unknown entity (or record)
  ├── NoData             entity exists but has zero score records
  └── ValidationFailed   a consistency trigger rejected the write
"""

from typing import Optional


class ScoreViewError(Exception):
    """Base class for all scoreview errors."""

    def __init__(
        self, message: str, entity_id: Optional[str] = None, detail: str = ""
    ):
        self.entity_id = entity_id
        self.detail = detail or message
        super().__init__(message)


class InvalidWeight(ScoreViewError):
    """Raised when a score record carries a non-positive weight."""

    def __init__(self, weight: float, entity_id: Optional[str] = None):
        self.weight = weight
        super().__init__(
            f"Weight must be a finite number > 0, got {weight!r}",
            entity_id=entity_id,
        )


class EntityNotFound(ScoreViewError):
    """Raised when an entity (or one of its records) does not exist."""

    def __init__(self, entity_id: str, record_id: Optional[str] = None):
        self.record_id = record_id
        if record_id is None:
            message = f"Entity {entity_id!r} not found"
        else:
            message = f"Record {record_id!r} of entity {entity_id!r} not found"
        super().__init__(message, entity_id=entity_id)


class NoData(ScoreViewError):
    """Raised when an entity exists but has no score records to average."""

    def __init__(self, entity_id: str):
        super().__init__(
            f"Entity {entity_id!r} has no score records", entity_id=entity_id
        )


class ValidationFailed(ScoreViewError):
    """Raised when a consistency trigger rejects a write."""

    def __init__(self, field: str, reason: str, entity_id: Optional[str] = None):
        self.field = field
        self.reason = reason
        super().__init__(
            f"Validation failed on {field!r}: {reason}", entity_id=entity_id
        )
