"""Pydantic schemas for API request/response."""

import json
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from prospect_engine.services.lifecycle import next_status, status_label


# ── Prospect ─────────────────────────────────────────────
class ProspectCreate(BaseModel):
    email: EmailStr
    name: str = ""
    tenant_id: Optional[str] = None
    current_stage: int = Field(0, ge=0)


class ProspectScoreOut(BaseModel):
    id: str
    tenant_id: str
    email: str
    name: str
    score: int
    group: int
    group_label: str = ""
    status: str
    status_label: str
    next_status: Optional[str] = None
    opens: int
    clicks: int
    replies: int
    current_stage: int
    last_engagement_at: Optional[datetime] = None
    last_decay_at: Optional[datetime] = None
    policy_version: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_model(cls, prospect, policy=None):
        # Stored groups may predate a policy change; the group always follows the score
        group = policy.group_for(prospect.score or 0) if policy else (prospect.engagement_group or 0)
        return cls(
            id=prospect.id,
            tenant_id=prospect.tenant_id,
            email=prospect.email,
            name=prospect.name or "",
            score=prospect.score or 0,
            group=group,
            group_label=policy.group_label(group) if policy else "",
            status=prospect.status,
            status_label=status_label(prospect.status),
            next_status=next_status(prospect.status),
            opens=prospect.opens or 0,
            clicks=prospect.clicks or 0,
            replies=prospect.replies or 0,
            current_stage=prospect.current_stage or 0,
            last_engagement_at=prospect.last_engagement_at,
            last_decay_at=prospect.last_decay_at,
            policy_version=prospect.policy_version,
            created_at=prospect.created_at,
            updated_at=prospect.updated_at,
        )


# ── Engagement events ────────────────────────────────────
class EngagementEventCreate(BaseModel):
    # Free-form: unknown types are ledgered but not scored
    event_type: str = Field(..., min_length=1, max_length=50)
    occurred_at: Optional[datetime] = None
    description: str = ""
    metadata: dict = Field(default_factory=dict)
    event_id: Optional[str] = Field(None, max_length=64)


class EngagementEventOut(BaseModel):
    id: str
    prospect_id: str
    event_type: str
    occurred_at: datetime
    description: str
    metadata: dict
    score_delta: int
    applied: bool
    created_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_model(cls, event):
        metadata = event.metadata_
        if isinstance(metadata, str):
            try:
                metadata = json.loads(metadata)
            except (json.JSONDecodeError, TypeError):
                metadata = {}
        return cls(
            id=event.id,
            prospect_id=event.prospect_id,
            event_type=event.event_type,
            occurred_at=event.occurred_at,
            description=event.description or "",
            metadata=metadata or {},
            score_delta=event.score_delta or 0,
            applied=bool(event.applied),
            created_at=event.created_at,
        )


class EventOutcomeOut(BaseModel):
    prospect_id: str
    event_id: Optional[str] = None
    score: int
    group: int
    status: str
    opens: int
    clicks: int
    replies: int
    delta: int
    applied: bool
    status_changed: bool
    reason: str
    duplicate: bool


# ── Manual status actions ────────────────────────────────
class StatusActionRequest(BaseModel):
    # bounced is only reachable through an email_bounced event
    status: Literal["cold", "contacted", "replied", "interested", "qualified", "handoff"]


class ScoreChangeOut(BaseModel):
    id: str
    prospect_id: str
    event_id: Optional[str] = None
    trigger: str
    delta: int
    previous_score: int
    new_score: int
    previous_group: int
    new_group: int
    previous_status: str
    new_status: str
    policy_version: Optional[int] = None
    reason: str
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Scoring policy ───────────────────────────────────────
class GroupBandSchema(BaseModel):
    lower: int
    upper: int
    group: int
    label: str = ""


class PolicyOut(BaseModel):
    tenant_id: str
    version: int
    points: dict[str, int]
    decay_after_days: int
    decay_amount: int
    min_score: int
    max_score: int
    group_bands: list[GroupBandSchema]
    status_by_group: dict[str, str]
    event_status: dict[str, str]


class PolicyUpdate(BaseModel):
    points: Optional[dict[str, int]] = None
    decay_after_days: Optional[int] = None
    decay_amount: Optional[int] = None
    min_score: Optional[int] = None
    max_score: Optional[int] = None
    group_bands: Optional[list[GroupBandSchema]] = None
    status_by_group: Optional[dict[int, str]] = None
    event_status: Optional[dict[str, str]] = None


# ── Jobs ─────────────────────────────────────────────────
class DecaySweepRequest(BaseModel):
    now: Optional[datetime] = None
