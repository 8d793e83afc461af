"""SCOREVIEW — Consistency Trigger.

before_write(old, new) runs inline with every entity create/update and
either returns the entity to persist or raises ValidationFailed. Hooks
run in order on a copy; the inputs are never mutated, so a rejected
write leaves nothing behind.
"""

import re
from datetime import datetime
from typing import Callable, List, Optional

from scoreview.config import settings
from scoreview.core.exceptions import ValidationFailed
from scoreview.core.logging import get_logger
from scoreview.models.entity_models import Entity, utcnow

logger = get_logger("engine.triggers")

Clock = Callable[[], datetime]
Hook = Callable[[Optional[Entity], Entity, datetime], None]


def immutable_id(old: Optional[Entity], new: Entity, now: datetime) -> None:
    if not new.id or not new.id.strip():
        raise ValidationFailed("id", "must not be empty")
    if old is not None and old.id != new.id:
        raise ValidationFailed("id", "is immutable once assigned", entity_id=old.id)


def name_required(old: Optional[Entity], new: Entity, now: datetime) -> None:
    name = (new.name or "").strip()
    if not name:
        raise ValidationFailed("name", "must not be empty", entity_id=new.id)
    new.name = name


def make_email_format(pattern: str) -> Hook:
    compiled = re.compile(pattern)

    def email_format(old: Optional[Entity], new: Entity, now: datetime) -> None:
        if new.email is None:
            return
        email = new.email.strip()
        if not compiled.fullmatch(email):
            raise ValidationFailed(
                "email", f"{email!r} is not a valid address", entity_id=new.id
            )
        new.email = email

    return email_format


def reset_verification_on_email_change(
    old: Optional[Entity], new: Entity, now: datetime
) -> None:
    if old is None:
        new.email_verified = False
    elif old.email != new.email:
        new.email_verified = False


def stamp_timestamps(old: Optional[Entity], new: Entity, now: datetime) -> None:
    new.created_at = old.created_at if old is not None and old.created_at else now
    new.updated_at = now


class ConsistencyTrigger:
    """Ordered chain of before-write hooks."""

    def __init__(
        self,
        hooks: Optional[List[Hook]] = None,
        clock: Clock = utcnow,
        email_pattern: str = settings.email_pattern,
    ):
        self.clock = clock
        self.hooks: List[Hook] = (
            hooks
            if hooks is not None
            else [
                immutable_id,
                name_required,
                make_email_format(email_pattern),
                reset_verification_on_email_change,
                stamp_timestamps,
            ]
        )

    def before_write(self, old: Optional[Entity], new: Entity) -> Entity:
        candidate = Entity(**new.model_dump())
        now = self.clock()
        try:
            for hook in self.hooks:
                hook(old, candidate, now)
        except ValidationFailed as e:
            logger.warning(
                f"Write rejected: {e}", extra={"entity_id": e.entity_id or new.id}
            )
            raise
        return candidate
