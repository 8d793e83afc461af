"""SCOREVIEW — Summary Views & Index Routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from scoreview.api.deps import get_service
from scoreview.core.exceptions import ValidationFailed
from scoreview.core.logging import get_logger
from scoreview.models.view_models import (
    IndexDescriptor,
    RankedSummary,
    ReconcileReport,
)
from scoreview.service import ScoreViewService

logger = get_logger("api.summaries")

router = APIRouter(tags=["Summaries"])


@router.get("/summaries/top", response_model=List[RankedSummary])
async def top_summaries(
    limit: int = Query(10, ge=1, le=100),
    ascending: bool = Query(False),
    service: ScoreViewService = Depends(get_service),
):
    """Entities ranked by weighted average."""
    return service.top(limit=limit, descending=not ascending)


@router.get("/summaries/below", response_model=List[RankedSummary])
async def summaries_below(
    threshold: float = Query(..., description="Strict upper bound"),
    service: ScoreViewService = Depends(get_service),
):
    """Entities whose weighted average is under the threshold."""
    return service.below(threshold)


@router.post("/summaries/reconcile", response_model=ReconcileReport)
async def reconcile(service: ScoreViewService = Depends(get_service)):
    """Recompute every summary from its records and repair drift."""
    return service.reconcile()


@router.post("/indexes", status_code=201)
async def register_index(
    descriptor: IndexDescriptor, service: ScoreViewService = Depends(get_service)
):
    try:
        index = service.register_index(descriptor)
    except ValidationFailed as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"status": "success", "name": index.name, "size": len(index)}


@router.get("/indexes/{name}/lookup")
async def index_lookup(
    name: str,
    key: Optional[str] = Query(None, description="Exact key"),
    low: Optional[str] = Query(None, description="Range start (inclusive)"),
    high: Optional[str] = Query(None, description="Range end (inclusive)"),
    service: ScoreViewService = Depends(get_service),
):
    """Point lookup by key, or range lookup by low/high, over string keys."""
    try:
        if key is not None:
            ids = service.lookup(name, key)
        else:
            ids = service.lookup_range(name, low, high)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"No index named {name!r}")
    return {"status": "success", "count": len(ids), "entity_ids": ids}
