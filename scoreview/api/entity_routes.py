"""SCOREVIEW — Entity & Score Record Routes."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from scoreview.api.deps import get_service
from scoreview.core.exceptions import (
    EntityNotFound,
    InvalidWeight,
    ValidationFailed,
)
from scoreview.core.logging import get_logger
from scoreview.models.view_models import (
    EntityIn,
    EntityOut,
    EntityUpdate,
    RecordBody,
    ScoreRecordIn,
    SummaryView,
)
from scoreview.service import ScoreViewService

logger = get_logger("api.entities")

router = APIRouter(prefix="/entities", tags=["Entities"])


@router.post("", response_model=EntityOut, status_code=201)
async def create_entity(
    body: EntityIn, service: ScoreViewService = Depends(get_service)
):
    """Create an entity. The consistency trigger validates and stamps it."""
    try:
        return service.create_entity(body)
    except ValidationFailed as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("", response_model=List[EntityOut])
async def list_entities(service: ScoreViewService = Depends(get_service)):
    return service.list_entities()


@router.get("/{entity_id}", response_model=EntityOut)
async def get_entity(entity_id: str, service: ScoreViewService = Depends(get_service)):
    try:
        return service.get_entity(entity_id)
    except EntityNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/{entity_id}", response_model=EntityOut)
async def update_entity(
    entity_id: str,
    body: EntityUpdate,
    service: ScoreViewService = Depends(get_service),
):
    try:
        return service.update_entity(entity_id, body)
    except EntityNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationFailed as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.delete("/{entity_id}")
async def delete_entity(
    entity_id: str, service: ScoreViewService = Depends(get_service)
):
    """Delete an entity along with its score records and summary."""
    try:
        removed = service.delete_entity(entity_id)
    except EntityNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "success", "entity_id": entity_id, "records_removed": removed}


@router.put("/{entity_id}/records/{record_id}", response_model=SummaryView)
async def upsert_record(
    entity_id: str,
    record_id: str,
    body: RecordBody,
    service: ScoreViewService = Depends(get_service),
):
    """Insert or replace a score record; returns the refreshed summary."""
    try:
        record = ScoreRecordIn(
            id=record_id, entity_id=entity_id, score=body.score, weight=body.weight
        )
        return service.upsert_record(record)
    except InvalidWeight as e:
        raise HTTPException(status_code=422, detail=str(e))
    except EntityNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.delete("/{entity_id}/records/{record_id}", response_model=SummaryView)
async def delete_record(
    entity_id: str,
    record_id: str,
    service: ScoreViewService = Depends(get_service),
):
    try:
        return service.delete_record(entity_id, record_id)
    except EntityNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{entity_id}/summary", response_model=SummaryView)
async def get_summary(
    entity_id: str, service: ScoreViewService = Depends(get_service)
):
    """Current weighted average. An entity without records reports no_data."""
    try:
        return service.summary_snapshot(entity_id)
    except EntityNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
