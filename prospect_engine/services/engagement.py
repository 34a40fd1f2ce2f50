"""Engagement ingestion — ledger append plus serialized read-modify-write of prospect scores."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from prospect_engine.config import get_settings
from prospect_engine.constants import DECAY_EXEMPT_STATUSES, EventType, ProspectStatus
from prospect_engine.models import EngagementEvent, Prospect
from prospect_engine.models.scoring import ScoreChange
from prospect_engine.services.lifecycle import apply_status_action
from prospect_engine.services.scoring_engine import apply_event, state_for_new_prospect
from prospect_engine.services.scoring_policy import ScoringPolicy, resolve_policy
from prospect_engine.services.scoring_state import Engagement, ScoreResult, ScoringState, as_utc

logger = logging.getLogger(__name__)


class ProspectNotFoundError(ValueError):
    pass


class ConcurrentUpdateError(RuntimeError):
    """Write retries were exhausted while other writers kept updating the prospect."""


# ── Row <-> state mapping ─────────────────────────────
def state_from_prospect(prospect: Prospect) -> ScoringState:
    return ScoringState(
        prospect_id=prospect.id,
        score=prospect.score or 0,
        group=prospect.engagement_group or 0,
        status=prospect.status or ProspectStatus.COLD.value,
        opens=prospect.opens or 0,
        clicks=prospect.clicks or 0,
        replies=prospect.replies or 0,
        last_engagement_at=as_utc(prospect.last_engagement_at),
        last_decay_at=as_utc(prospect.last_decay_at),
        created_at=as_utc(prospect.created_at),
        current_stage=prospect.current_stage or 0,
    )


def write_state(prospect: Prospect, state: ScoringState, policy_version: Optional[int] = None):
    # current_stage is owned by the outreach app and never written back
    prospect.score = state.score
    prospect.engagement_group = state.group
    prospect.status = state.status
    prospect.opens = state.opens
    prospect.clicks = state.clicks
    prospect.replies = state.replies
    prospect.last_engagement_at = state.last_engagement_at
    prospect.last_decay_at = state.last_decay_at
    if policy_version is not None:
        prospect.policy_version = policy_version


def score_change_for(
    result: ScoreResult,
    policy_version: Optional[int] = None,
    event_id: Optional[str] = None,
) -> ScoreChange:
    return ScoreChange(
        prospect_id=result.state.prospect_id,
        event_id=event_id,
        trigger=result.trigger.value,
        delta=result.delta,
        previous_score=result.previous.score,
        new_score=result.state.score,
        previous_group=result.previous.group,
        new_group=result.state.group,
        previous_status=result.previous.status,
        new_status=result.state.status,
        policy_version=policy_version,
        reason=result.reason[:500],
    )


@dataclass
class EventOutcome:
    """What happened to one ingestion or manual action."""

    prospect: Prospect
    result: Optional[ScoreResult] = None
    event: Optional[EngagementEvent] = None
    duplicate: bool = False

    def to_dict(self) -> dict:
        p = self.prospect
        return {
            "prospect_id": p.id,
            "event_id": self.event.id if self.event is not None else None,
            "score": p.score,
            "group": p.engagement_group,
            "status": p.status,
            "opens": p.opens,
            "clicks": p.clicks,
            "replies": p.replies,
            "delta": self.result.delta if self.result else 0,
            "applied": self.result.applied if self.result else False,
            "status_changed": self.result.status_changed if self.result else False,
            "reason": self.result.reason if self.result else "duplicate event",
            "duplicate": self.duplicate,
        }


# ── Service ────────────────────────────────────────────
class EngagementService:
    """Applies events and manual status actions to persisted prospects."""

    def __init__(self, db: AsyncSession, max_retries: Optional[int] = None):
        self.db = db
        self.max_retries = max_retries or get_settings().max_write_retries

    async def create_prospect(
        self,
        email: str,
        name: str = "",
        tenant_id: Optional[str] = None,
        current_stage: int = 0,
    ) -> Prospect:
        tenant_id = tenant_id or get_settings().default_tenant_id
        policy = await resolve_policy(self.db, tenant_id)

        prospect = Prospect(
            email=email.lower(),
            name=name,
            tenant_id=tenant_id,
            current_stage=current_stage,
        )
        initial = state_for_new_prospect(prospect.id, prospect.created_at, current_stage, policy)
        write_state(prospect, initial, policy.version)
        self.db.add(prospect)
        await self.db.flush()

        # Timeline entry only; creation is not an engagement
        self.db.add(EngagementEvent(
            prospect_id=prospect.id,
            tenant_id=tenant_id,
            event_type=EventType.NOTE_ADDED.value,
            description="Prospect added to system",
        ))
        await self.db.commit()
        return prospect

    async def get_prospect(self, prospect_id: str) -> Prospect:
        result = await self.db.execute(select(Prospect).where(Prospect.id == prospect_id))
        prospect = result.scalar_one_or_none()
        if not prospect:
            raise ProspectNotFoundError(f"Prospect {prospect_id} not found")
        return prospect

    async def _load_prospect(self, prospect_id: str) -> Prospect:
        result = await self.db.execute(
            select(Prospect)
            .where(Prospect.id == prospect_id)
            .execution_options(populate_existing=True)
        )
        prospect = result.scalar_one_or_none()
        if not prospect:
            raise ProspectNotFoundError(f"Prospect {prospect_id} not found")
        return prospect

    async def _find_event(self, event_id: Optional[str]) -> Optional[EngagementEvent]:
        if not event_id:
            return None
        result = await self.db.execute(select(EngagementEvent).where(EngagementEvent.id == event_id))
        return result.scalar_one_or_none()

    async def apply_transition(
        self,
        prospect_id: str,
        compute: Callable[[ScoringState, ScoringPolicy], ScoreResult],
        build_event: Optional[Callable[[Prospect, ScoreResult], EngagementEvent]] = None,
        event_id: Optional[str] = None,
        policy: Optional[ScoringPolicy] = None,
    ) -> EventOutcome:
        """
        Read, score and write one prospect, retrying the whole cycle on stale reads.

        `policy` overrides the tenant policy (used by ad-hoc decay runs).
        """
        for attempt in range(1, self.max_retries + 1):
            existing = await self._find_event(event_id)
            if existing is not None:
                logger.info(f"Duplicate event {event_id} for prospect {prospect_id}, skipping")
                prospect = await self._load_prospect(prospect_id)
                return EventOutcome(prospect=prospect, event=existing, duplicate=True)

            prospect = await self._load_prospect(prospect_id)
            active_policy = policy or await resolve_policy(self.db, prospect.tenant_id)
            result = compute(state_from_prospect(prospect), active_policy)

            ledger = build_event(prospect, result) if build_event else None
            if ledger is not None:
                self.db.add(ledger)
            if result.changed:
                write_state(prospect, result.state, active_policy.version)
                self.db.add(score_change_for(result, active_policy.version, ledger.id if ledger is not None else None))

            try:
                await self.db.commit()
            except StaleDataError:
                await self.db.rollback()
                logger.warning(
                    f"Stale write for prospect {prospect_id} "
                    f"(attempt {attempt}/{self.max_retries}), retrying"
                )
                continue
            except IntegrityError:
                await self.db.rollback()
                existing = await self._find_event(event_id)
                if existing is None:
                    raise
                logger.info(f"Duplicate event {event_id} for prospect {prospect_id}, skipping")
                prospect = await self._load_prospect(prospect_id)
                return EventOutcome(prospect=prospect, event=existing, duplicate=True)

            if not result.applied:
                logger.info(f"No-op for prospect {prospect_id}: {result.reason}")
            elif result.status_changed:
                logger.info(
                    f"Prospect {prospect_id}: {result.previous.status} -> {result.state.status} "
                    f"(score {result.previous.score} -> {result.state.score})"
                )
            return EventOutcome(prospect=prospect, result=result, event=ledger)

        raise ConcurrentUpdateError(
            f"Prospect {prospect_id} changed concurrently {self.max_retries} times; giving up"
        )

    async def record_event(
        self,
        prospect_id: str,
        event_type: str,
        occurred_at: Optional[datetime] = None,
        description: str = "",
        metadata: Optional[dict] = None,
        event_id: Optional[str] = None,
    ) -> EventOutcome:
        """
        Append an engagement event to the ledger and apply it to the prospect's score.

        Events are ledgered even when they score as no-ops (bounced prospect,
        unrecognized type). A repeated `event_id` is reported as a duplicate
        and changes nothing.
        """
        occurred_at = as_utc(occurred_at) or datetime.now(timezone.utc)
        metadata = metadata or {}
        engagement = Engagement(
            id=event_id,
            prospect_id=prospect_id,
            type=event_type,
            occurred_at=occurred_at,
            description=description,
            metadata=metadata,
        )

        def compute(state: ScoringState, policy: ScoringPolicy) -> ScoreResult:
            return apply_event(state, engagement, policy)

        def build_event(prospect: Prospect, result: ScoreResult) -> EngagementEvent:
            kwargs = {"id": event_id} if event_id else {}
            return EngagementEvent(
                prospect_id=prospect.id,
                tenant_id=prospect.tenant_id,
                event_type=event_type,
                occurred_at=occurred_at,
                description=description,
                metadata_=json.dumps(metadata),
                score_delta=result.delta,
                applied=result.applied,
                **kwargs,
            )

        return await self.apply_transition(prospect_id, compute, build_event, event_id)

    async def set_status(self, prospect_id: str, status: str) -> EventOutcome:
        """Manual status action, e.g. "mark contacted" from the dashboard."""

        def compute(state: ScoringState, policy: ScoringPolicy) -> ScoreResult:
            return apply_status_action(state, status, policy)

        return await self.apply_transition(prospect_id, compute)

    async def list_events(self, prospect_id: str, limit: int = 50) -> list[EngagementEvent]:
        result = await self.db.execute(
            select(EngagementEvent)
            .where(EngagementEvent.prospect_id == prospect_id)
            .order_by(EngagementEvent.occurred_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def score_history(self, prospect_id: str, limit: int = 50) -> list[ScoreChange]:
        result = await self.db.execute(
            select(ScoreChange)
            .where(ScoreChange.prospect_id == prospect_id)
            .order_by(ScoreChange.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


# ── Reporting ─────────────────────────────────────────
async def get_engagement_report(db: AsyncSession, tenant_id: Optional[str] = None) -> dict:
    """
    Funnel and engagement-group distribution for a tenant.

    Returns:
        {
            "total_prospects": int,
            "by_status": {"cold": N, ...},
            "groups": [{"group": 0, "label": "Cold", "count": N}, ...],
            "active": int,        # neither bounced nor handed off
            "handoff": int,
            "bounced": int,
            "conversion_rate": float,  # % handed off
        }
    """
    tenant_id = tenant_id or get_settings().default_tenant_id
    policy = await resolve_policy(db, tenant_id)

    stmt = (
        select(Prospect.status, Prospect.score, func.count(Prospect.id))
        .where(Prospect.tenant_id == tenant_id)
        .group_by(Prospect.status, Prospect.score)
    )
    result = await db.execute(stmt)
    rows = result.all()

    by_status = {status.value: 0 for status in ProspectStatus}
    by_group = {band.group: 0 for band in policy.group_bands}
    total = 0
    for status, score, count in rows:
        # Group from the current bands, not the value stored under an older policy
        group = policy.group_for(score or 0)
        by_status[status] = by_status.get(status, 0) + count
        by_group[group] += count
        total += count

    handoff = by_status[ProspectStatus.HANDOFF.value]
    inactive = sum(by_status[s] for s in DECAY_EXEMPT_STATUSES)

    return {
        "total_prospects": total,
        "by_status": by_status,
        "groups": [
            {"group": group, "label": policy.group_label(group), "count": count}
            for group, count in sorted(by_group.items())
        ],
        "active": total - inactive,
        "handoff": handoff,
        "bounced": by_status[ProspectStatus.BOUNCED.value],
        "conversion_rate": round((handoff / max(total, 1)) * 100, 1),
    }
