"""Scoring policy, engagement report, and the on-demand decay sweep."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from prospect_engine.config import get_settings
from prospect_engine.database import get_db
from prospect_engine.schemas import DecaySweepRequest, PolicyOut, PolicyUpdate
from prospect_engine.services.decay_sweep import DecaySweeper
from prospect_engine.services.engagement import get_engagement_report
from prospect_engine.services.scoring_policy import PolicyError, resolve_policy, save_policy

router = APIRouter(tags=["scoring"])


def _policy_out(tenant_id: str, policy) -> dict:
    return {"tenant_id": tenant_id, **policy.to_dict()}


@router.get("/scoring/policy", response_model=PolicyOut)
async def get_policy(tenant_id: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    tenant_id = tenant_id or get_settings().default_tenant_id
    try:
        policy = await resolve_policy(db, tenant_id)
    except PolicyError as e:
        raise HTTPException(422, str(e))
    return _policy_out(tenant_id, policy)


@router.put("/scoring/policy", response_model=PolicyOut)
async def update_policy(
    data: PolicyUpdate,
    tenant_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Partial update; the result is validated as a whole before it is stored."""
    tenant_id = tenant_id or get_settings().default_tenant_id
    try:
        policy = await save_policy(db, tenant_id, data.model_dump(exclude_none=True))
    except PolicyError as e:
        raise HTTPException(422, str(e))
    return _policy_out(tenant_id, policy)


@router.get("/scoring/report")
async def engagement_report(tenant_id: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    try:
        return await get_engagement_report(db, tenant_id)
    except PolicyError as e:
        raise HTTPException(422, str(e))


@router.post("/jobs/score-decay")
async def run_score_decay(data: Optional[DecaySweepRequest] = None):
    """Run one decay sweep now (the daily beat job does the same)."""
    now = data.now if data else None
    report = await DecaySweeper().run(now=now)
    return report.to_dict()
