"""Engagement scoring engine — pure transitions from (state, event, policy) to the next state."""

from dataclasses import replace
from datetime import datetime
from typing import Optional

from prospect_engine.constants import (
    COUNTER_FIELDS,
    DECAY_EXEMPT_STATUSES,
    KNOWN_EVENT_TYPES,
    EventType,
    ProspectStatus,
    Trigger,
)
from prospect_engine.services.lifecycle import derive_status
from prospect_engine.services.scoring_policy import ScoringPolicy
from prospect_engine.services.scoring_state import Engagement, ScoreResult, ScoringState, as_utc


def state_for_new_prospect(
    prospect_id: str,
    created_at: Optional[datetime] = None,
    current_stage: int = 0,
    policy: Optional[ScoringPolicy] = None,
) -> ScoringState:
    """Initial state: bottom score, its group, status cold."""
    policy = policy or ScoringPolicy()
    return ScoringState(
        prospect_id=prospect_id,
        score=policy.min_score,
        group=policy.group_for(policy.min_score),
        status=ProspectStatus.COLD.value,
        created_at=as_utc(created_at),
        current_stage=current_stage,
    )


# ── Live events ────────────────────────────────────────
def apply_event(state: ScoringState, event: Engagement, policy: ScoringPolicy) -> ScoreResult:
    """
    Score one engagement event.

    Bounced prospects and unrecognized event types are no-ops with delta 0;
    the caller still appends the event to the ledger.
    """
    if state.is_bounced:
        return ScoreResult.noop(state, Trigger.EVENT, "prospect is bounced", event.type)
    if event.type not in KNOWN_EVENT_TYPES:
        return ScoreResult.noop(state, Trigger.EVENT, f"unrecognized event type {event.type!r}", event.type)

    if event.type == EventType.EMAIL_BOUNCED.value:
        # Score and group freeze at their current values
        status = derive_status(state, state, policy, Trigger.EVENT, event_type=event.type)
        return ScoreResult(
            previous=state,
            state=replace(state, status=status),
            trigger=Trigger.EVENT,
            applied=True,
            reason="Email bounced",
            event_type=event.type,
        )

    delta = policy.points_for(event.type)
    score = policy.clamp(state.score + delta)

    counters = {}
    counter = COUNTER_FIELDS.get(event.type)
    if counter:
        counters[counter] = getattr(state, counter) + 1

    occurred_at = as_utc(event.occurred_at)
    last_engagement = state.last_engagement_at
    if occurred_at and (last_engagement is None or occurred_at > last_engagement):
        last_engagement = occurred_at

    scored = replace(
        state,
        score=score,
        group=policy.group_for(score),
        last_engagement_at=last_engagement,
        **counters,
    )
    status = derive_status(state, scored, policy, Trigger.EVENT, event_type=event.type)

    return ScoreResult(
        previous=state,
        state=replace(scored, status=status),
        trigger=Trigger.EVENT,
        delta=delta,
        applied=True,
        reason=f"{event.type} ({delta:+d})",
        event_type=event.type,
    )


# ── Decay ──────────────────────────────────────────────
def apply_decay(state: ScoringState, policy: ScoringPolicy, now: datetime) -> ScoreResult:
    """
    One decay step. Quiet-period eligibility is the sweeper's call; this only
    guards the states decay must never touch.
    """
    if state.status in DECAY_EXEMPT_STATUSES:
        return ScoreResult.noop(state, Trigger.DECAY, f"status {state.status} does not decay")
    if state.score <= policy.min_score:
        return ScoreResult.noop(state, Trigger.DECAY, "score already at minimum")

    # A score stored under a wider range is clamped to the active policy first
    score = policy.clamp(policy.clamp(state.score) - policy.decay_amount)
    scored = replace(
        state,
        score=score,
        group=policy.group_for(score),
        last_decay_at=as_utc(now),
    )
    status = derive_status(state, scored, policy, Trigger.DECAY)

    return ScoreResult(
        previous=state,
        state=replace(scored, status=status),
        trigger=Trigger.DECAY,
        delta=score - state.score,
        applied=True,
        reason=f"No engagement for {policy.decay_after_days}+ days",
    )
