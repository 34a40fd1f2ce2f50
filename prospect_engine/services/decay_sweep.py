"""Score decay — pure eligibility/step functions plus the batch sweeper that applies them."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import select

from prospect_engine.config import get_settings
from prospect_engine.constants import DECAY_EXEMPT_STATUSES, Trigger
from prospect_engine.database import async_session
from prospect_engine.models import Prospect
from prospect_engine.services.engagement import (
    ConcurrentUpdateError,
    EngagementService,
    ProspectNotFoundError,
)
from prospect_engine.services.scoring_engine import apply_decay
from prospect_engine.services.scoring_policy import PolicyError, ScoringPolicy
from prospect_engine.services.scoring_state import ScoreResult, ScoringState, as_utc

logger = logging.getLogger(__name__)


# ── Pure planning ──────────────────────────────────────
def decay_anchor(state: ScoringState) -> Optional[datetime]:
    """Start of the current quiet period: last engagement (or creation), pushed forward by the last decay."""
    anchors = [a for a in (state.last_engagement_at or state.created_at, state.last_decay_at) if a]
    return max(anchors) if anchors else None


def is_decay_due(state: ScoringState, policy: ScoringPolicy, now: datetime) -> bool:
    if state.status in DECAY_EXEMPT_STATUSES:
        return False
    if state.score <= policy.min_score:
        return False
    anchor = decay_anchor(state)
    if anchor is None:
        return False
    return as_utc(now) - anchor >= timedelta(days=policy.decay_after_days)


def decay_step(state: ScoringState, policy: ScoringPolicy, now: datetime) -> ScoreResult:
    """Decay if due, otherwise a no-op carrying the reason."""
    if not is_decay_due(state, policy, now):
        return ScoreResult.noop(state, Trigger.DECAY, "not due for decay")
    return apply_decay(state, policy, now)


def plan_decay(
    states: Iterable[ScoringState],
    policy: ScoringPolicy,
    now: datetime,
) -> list[tuple[str, ScoringState]]:
    """Decayed states for every prospect that is due; the rest are left out."""
    planned = []
    for state in states:
        result = decay_step(state, policy, now)
        if result.applied:
            planned.append((state.prospect_id, result.state))
    return planned


# ── Sweeper ────────────────────────────────────────────
@dataclass
class SweepReport:
    started_at: datetime
    scanned: int = 0
    decayed: list[tuple[str, ScoringState]] = field(default_factory=list)
    skipped: int = 0
    conflicts: int = 0
    cancelled: bool = False

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "scanned": self.scanned,
            "decayed": [
                {"prospect_id": prospect_id, "score": state.score, "group": state.group, "status": state.status}
                for prospect_id, state in self.decayed
            ],
            "decayed_count": len(self.decayed),
            "skipped": self.skipped,
            "conflicts": self.conflicts,
            "cancelled": self.cancelled,
        }


class DecaySweeper:
    """
    Walks every decayable prospect and applies at most one decay step each.

    Each prospect is decayed in its own session and transaction through
    `EngagementService.apply_transition`, so a sweep racing live events
    retries on stale reads exactly like event ingestion does. Re-running
    a sweep for the same `now` is a no-op because the step moves
    `last_decay_at` forward.
    """

    def __init__(self, session_factory=async_session, batch_size: Optional[int] = None,
                 max_retries: Optional[int] = None):
        settings = get_settings()
        self.session_factory = session_factory
        self.batch_size = batch_size or settings.decay_batch_size
        self.max_retries = max_retries or settings.max_write_retries

    async def _next_batch(self, after_id: Optional[str]) -> list[str]:
        stmt = (
            select(Prospect.id)
            .where(Prospect.status.notin_(sorted(DECAY_EXEMPT_STATUSES)))
            .order_by(Prospect.id)
            .limit(self.batch_size)
        )
        if after_id is not None:
            stmt = stmt.where(Prospect.id > after_id)
        async with self.session_factory() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def _decay_one(self, prospect_id: str, now: datetime,
                         policy: Optional[ScoringPolicy]) -> Optional[ScoreResult]:
        def compute(state: ScoringState, active: ScoringPolicy) -> ScoreResult:
            return decay_step(state, active, now)

        async with self.session_factory() as db:
            service = EngagementService(db, max_retries=self.max_retries)
            outcome = await service.apply_transition(prospect_id, compute, policy=policy)
            return outcome.result

    async def run(
        self,
        now: Optional[datetime] = None,
        policy: Optional[ScoringPolicy] = None,
        stop: Optional[asyncio.Event] = None,
    ) -> SweepReport:
        """Run one sweep. `policy` overrides every tenant's policy; `stop` cancels between prospects."""
        now = as_utc(now) or datetime.now(timezone.utc)
        report = SweepReport(started_at=now)

        after_id = None
        while not report.cancelled:
            batch = await self._next_batch(after_id)
            if not batch:
                break
            after_id = batch[-1]

            for prospect_id in batch:
                if stop is not None and stop.is_set():
                    report.cancelled = True
                    break
                report.scanned += 1
                try:
                    result = await self._decay_one(prospect_id, now, policy)
                except ConcurrentUpdateError as e:
                    logger.warning(f"Decay skipped for prospect {prospect_id}: {e}")
                    report.conflicts += 1
                    continue
                except ProspectNotFoundError:
                    report.skipped += 1
                    continue
                except PolicyError as e:
                    logger.error(f"Decay skipped for prospect {prospect_id}, invalid policy: {e}")
                    report.skipped += 1
                    continue

                if result is not None and result.applied:
                    report.decayed.append((prospect_id, result.state))
                else:
                    report.skipped += 1

        logger.info(
            f"Decay sweep at {now.isoformat()}: scanned={report.scanned} "
            f"decayed={len(report.decayed)} skipped={report.skipped} "
            f"conflicts={report.conflicts} cancelled={report.cancelled}"
        )
        return report
