"""SCOREVIEW — Shared API Dependencies."""

from functools import lru_cache

from scoreview.database import engine
from scoreview.service import ScoreViewService


@lru_cache(maxsize=1)
def get_service() -> ScoreViewService:
    """Dependency — the process-wide service bound to the configured engine."""
    return ScoreViewService(engine)
