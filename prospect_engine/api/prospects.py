"""Prospect engagement API — create prospects, ingest events, manual status actions, timelines."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from prospect_engine.database import get_db
from prospect_engine.schemas import (
    EngagementEventCreate,
    EngagementEventOut,
    EventOutcomeOut,
    ProspectCreate,
    ProspectScoreOut,
    ScoreChangeOut,
    StatusActionRequest,
)
from prospect_engine.services.engagement import (
    ConcurrentUpdateError,
    EngagementService,
    ProspectNotFoundError,
)
from prospect_engine.services.scoring_policy import PolicyError, resolve_policy

router = APIRouter(prefix="/prospects", tags=["prospects"])


@router.post("/", response_model=ProspectScoreOut, status_code=201)
async def create_prospect(data: ProspectCreate, db: AsyncSession = Depends(get_db)):
    service = EngagementService(db)
    try:
        prospect = await service.create_prospect(
            email=data.email,
            name=data.name,
            tenant_id=data.tenant_id,
            current_stage=data.current_stage,
        )
        policy = await resolve_policy(db, prospect.tenant_id)
    except PolicyError as e:
        raise HTTPException(422, str(e))
    return ProspectScoreOut.from_model(prospect, policy)


@router.get("/{prospect_id}", response_model=ProspectScoreOut)
async def get_prospect(prospect_id: str, db: AsyncSession = Depends(get_db)):
    service = EngagementService(db)
    try:
        prospect = await service.get_prospect(prospect_id)
        policy = await resolve_policy(db, prospect.tenant_id)
    except ProspectNotFoundError as e:
        raise HTTPException(404, str(e))
    except PolicyError as e:
        raise HTTPException(422, str(e))
    return ProspectScoreOut.from_model(prospect, policy)


@router.post("/{prospect_id}/events", response_model=EventOutcomeOut)
async def record_event(
    prospect_id: str,
    data: EngagementEventCreate,
    db: AsyncSession = Depends(get_db),
):
    """Append an engagement event and apply it to the prospect's score."""
    service = EngagementService(db)
    try:
        outcome = await service.record_event(
            prospect_id,
            data.event_type,
            occurred_at=data.occurred_at,
            description=data.description,
            metadata=data.metadata,
            event_id=data.event_id,
        )
    except ProspectNotFoundError as e:
        raise HTTPException(404, str(e))
    except PolicyError as e:
        raise HTTPException(422, str(e))
    except ConcurrentUpdateError as e:
        raise HTTPException(409, str(e))
    return outcome.to_dict()


@router.post("/{prospect_id}/status", response_model=EventOutcomeOut)
async def set_status(
    prospect_id: str,
    data: StatusActionRequest,
    db: AsyncSession = Depends(get_db),
):
    service = EngagementService(db)
    try:
        outcome = await service.set_status(prospect_id, data.status)
    except ProspectNotFoundError as e:
        raise HTTPException(404, str(e))
    except PolicyError as e:
        raise HTTPException(422, str(e))
    except ConcurrentUpdateError as e:
        raise HTTPException(409, str(e))
    return outcome.to_dict()


@router.get("/{prospect_id}/events", response_model=list[EngagementEventOut])
async def list_events(
    prospect_id: str,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    service = EngagementService(db)
    try:
        await service.get_prospect(prospect_id)
    except ProspectNotFoundError as e:
        raise HTTPException(404, str(e))
    events = await service.list_events(prospect_id, limit=limit)
    return [EngagementEventOut.from_model(e) for e in events]


@router.get("/{prospect_id}/history", response_model=list[ScoreChangeOut])
async def score_history(
    prospect_id: str,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    service = EngagementService(db)
    try:
        await service.get_prospect(prospect_id)
    except ProspectNotFoundError as e:
        raise HTTPException(404, str(e))
    history = await service.score_history(prospect_id, limit=limit)
    return [ScoreChangeOut.model_validate(c) for c in history]
