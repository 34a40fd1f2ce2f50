"""Prospect lifecycle — the single place where status transitions are decided.

Funnel: cold → contacted → replied → interested → qualified → handoff,
plus the absorbing ``bounced`` state reachable from any other status.
"""

from dataclasses import replace
from typing import Optional

from prospect_engine.constants import (
    KNOWN_STATUSES,
    STATUS_LABELS,
    STATUS_ORDER,
    EventType,
    ProspectStatus,
    Trigger,
)
from prospect_engine.services.scoring_policy import ScoringPolicy
from prospect_engine.services.scoring_state import ScoreResult, ScoringState


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def next_status(status: str) -> Optional[str]:
    """Next step along the forward chain, or None at handoff/bounced."""
    rank = STATUS_ORDER.get(status, -1)
    if rank < 0:
        return None
    for candidate, candidate_rank in STATUS_ORDER.items():
        if candidate_rank == rank + 1:
            return candidate
    return None


def _furthest(*statuses: Optional[str]) -> str:
    candidates = [s for s in statuses if s in KNOWN_STATUSES and s != ProspectStatus.BOUNCED.value]
    return max(candidates, key=lambda s: STATUS_ORDER[s], default=ProspectStatus.COLD.value)


def derive_status(
    previous: ScoringState,
    scored: ScoringState,
    policy: ScoringPolicy,
    trigger: Trigger,
    event_type: Optional[str] = None,
    requested: Optional[str] = None,
) -> str:
    """
    Compute the status that follows a scoring step.

    `previous` is the state before the step, `scored` carries the new
    score/group. Rules are evaluated in order; the first match wins.
    """
    # 1. Terminal: nothing leaves bounced
    if previous.is_bounced:
        return ProspectStatus.BOUNCED.value

    # 2. A bounce overrides every other rule
    if event_type == EventType.EMAIL_BOUNCED.value:
        return ProspectStatus.BOUNCED.value

    # 3. Top group hands the prospect off; decay only ever lowers the group
    if trigger != Trigger.DECAY and scored.group >= policy.max_group:
        return ProspectStatus.HANDOFF.value

    # 4. Gone fully quiet: back to the top of the funnel
    if trigger == Trigger.DECAY and scored.score <= policy.min_score:
        return ProspectStatus.COLD.value

    # 5. Forward only, as far as the group (or an explicit action) justifies
    candidates = [previous.status]
    if trigger != Trigger.DECAY:
        candidates.append(policy.status_for_group(scored.group))
    if event_type:
        candidates.append(policy.event_status.get(event_type))
    if trigger == Trigger.MANUAL and requested:
        candidates.append(requested)
    return _furthest(*candidates)


def apply_status_action(state: ScoringState, requested: str, policy: ScoringPolicy) -> ScoreResult:
    """Manual status change ("mark contacted", "hand off") without a score delta."""
    if state.is_bounced:
        return ScoreResult.noop(state, Trigger.MANUAL, "prospect is bounced")
    if requested not in KNOWN_STATUSES:
        return ScoreResult.noop(state, Trigger.MANUAL, f"unknown status {requested!r}")
    if requested == ProspectStatus.BOUNCED.value:
        return ScoreResult.noop(state, Trigger.MANUAL, "bounced is only reachable through an email_bounced event")
    if STATUS_ORDER[requested] <= STATUS_ORDER[state.status]:
        return ScoreResult.noop(
            state, Trigger.MANUAL, f"status {state.status} is already at or past {requested}"
        )

    status = derive_status(state, state, policy, Trigger.MANUAL, requested=requested)
    return ScoreResult(
        previous=state,
        state=replace(state, status=status),
        trigger=Trigger.MANUAL,
        applied=True,
        reason=f"Marked {status_label(status)}",
    )
