"""Immutable snapshots passed through the scoring engine and lifecycle state machine."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from prospect_engine.constants import ProspectStatus, Trigger


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (as SQLite returns them) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class ScoringState:
    """The scoring-relevant subset of a prospect record."""

    prospect_id: str
    score: int = 0
    group: int = 0
    status: str = ProspectStatus.COLD.value
    opens: int = 0
    clicks: int = 0
    replies: int = 0
    last_engagement_at: Optional[datetime] = None
    last_decay_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    current_stage: int = 0

    def __post_init__(self):
        for name in ("last_engagement_at", "last_decay_at", "created_at"):
            object.__setattr__(self, name, as_utc(getattr(self, name)))

    @property
    def is_bounced(self) -> bool:
        return self.status == ProspectStatus.BOUNCED.value

    def to_dict(self) -> dict:
        return {
            "prospect_id": self.prospect_id,
            "score": self.score,
            "group": self.group,
            "status": self.status,
            "opens": self.opens,
            "clicks": self.clicks,
            "replies": self.replies,
            "current_stage": self.current_stage,
            "last_engagement_at": self.last_engagement_at.isoformat() if self.last_engagement_at else None,
            "last_decay_at": self.last_decay_at.isoformat() if self.last_decay_at else None,
        }


@dataclass(frozen=True)
class Engagement:
    """One interaction to score. `type` may be a value the policy does not know."""

    type: str
    occurred_at: datetime
    prospect_id: str = ""
    id: Optional[str] = None
    description: str = ""
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ScoreResult:
    """Outcome of one engine step: the next state plus what was applied."""

    previous: ScoringState
    state: ScoringState
    trigger: Trigger
    delta: int = 0
    applied: bool = False
    reason: str = ""
    event_type: Optional[str] = None

    @classmethod
    def noop(cls, state: ScoringState, trigger: Trigger, reason: str, event_type: Optional[str] = None):
        return cls(previous=state, state=state, trigger=trigger, reason=reason, event_type=event_type)

    @property
    def changed(self) -> bool:
        return self.state != self.previous

    @property
    def status_changed(self) -> bool:
        return self.state.status != self.previous.status

    @property
    def score_change(self) -> int:
        return self.state.score - self.previous.score

    def to_dict(self) -> dict:
        return {
            "prospect_id": self.state.prospect_id,
            "trigger": self.trigger.value,
            "event_type": self.event_type,
            "delta": self.delta,
            "applied": self.applied,
            "previous_score": self.previous.score,
            "new_score": self.state.score,
            "previous_group": self.previous.group,
            "new_group": self.state.group,
            "previous_status": self.previous.status,
            "new_status": self.state.status,
            "status_changed": self.status_changed,
            "reason": self.reason,
        }
