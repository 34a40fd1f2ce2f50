"""Scoring policy — point values, decay parameters, group bands and status ladders.

A policy is an immutable, versioned value passed into every scoring call.
It is validated when constructed, so an inconsistent threshold table is
rejected at load time instead of surfacing as an arbitrary group later.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prospect_engine.config import Settings, get_settings
from prospect_engine.constants import (
    KNOWN_EVENT_TYPES,
    KNOWN_STATUSES,
    STATUS_ORDER,
    EventType,
    ProspectStatus,
)
from prospect_engine.models.scoring import ScoringPolicyRecord

logger = logging.getLogger(__name__)


class PolicyError(ValueError):
    """Raised when a scoring policy is misconfigured."""


# ── Defaults ────────────────────────────────────────────
DEFAULT_POINTS = {
    EventType.EMAIL_SENT.value: 0,
    EventType.EMAIL_OPENED.value: 1,
    EventType.EMAIL_CLICKED.value: 1,
    EventType.EMAIL_REPLIED.value: 3,
    EventType.EMAIL_BOUNCED.value: 0,  # terminal, handled outside the numeric delta
    EventType.CALL_MADE.value: 0,
    EventType.MEETING_SCHEDULED.value: 0,
    EventType.NOTE_ADDED.value: 0,
}

GROUP_LABELS = ["Cold", "Warming", "Warming", "Interested", "Interested", "Hot Lead", "Hot Lead"]

# Furthest status automatic scoring may reach for a group; the top group is always handoff
DEFAULT_STATUS_BY_GROUP = {
    0: ProspectStatus.COLD.value,
    1: ProspectStatus.CONTACTED.value,
    2: ProspectStatus.CONTACTED.value,
    3: ProspectStatus.REPLIED.value,
    4: ProspectStatus.INTERESTED.value,
    5: ProspectStatus.QUALIFIED.value,
}

DEFAULT_EVENT_STATUS = {
    EventType.EMAIL_SENT.value: ProspectStatus.CONTACTED.value,
    EventType.CALL_MADE.value: ProspectStatus.CONTACTED.value,
    EventType.EMAIL_REPLIED.value: ProspectStatus.REPLIED.value,
    EventType.MEETING_SCHEDULED.value: ProspectStatus.INTERESTED.value,
}

_TERMINAL = {ProspectStatus.BOUNCED.value}


@dataclass(frozen=True)
class GroupBand:
    """Inclusive score range mapped to one engagement group."""

    lower: int
    upper: int
    group: int
    label: str = ""

    def contains(self, score: int) -> bool:
        return self.lower <= score <= self.upper

    def to_dict(self) -> dict:
        return {"lower": self.lower, "upper": self.upper, "group": self.group, "label": self.label}


def score_bands(min_score: int, max_score: int) -> tuple[GroupBand, ...]:
    """One band per score value, group numbered from zero."""
    bands = []
    for score in range(min_score, max_score + 1):
        group = score - min_score
        label = GROUP_LABELS[min(group, len(GROUP_LABELS) - 1)]
        bands.append(GroupBand(score, score, group, label))
    return tuple(bands)


DEFAULT_GROUP_BANDS = score_bands(0, 6)


@dataclass(frozen=True)
class ScoringPolicy:
    points: dict = field(default_factory=lambda: dict(DEFAULT_POINTS))
    decay_after_days: int = 10
    decay_amount: int = 1
    min_score: int = 0
    max_score: int = 6
    group_bands: tuple = DEFAULT_GROUP_BANDS
    status_by_group: dict = field(default_factory=lambda: dict(DEFAULT_STATUS_BY_GROUP))
    event_status: dict = field(default_factory=lambda: dict(DEFAULT_EVENT_STATUS))
    version: int = 1

    def __post_init__(self):
        object.__setattr__(self, "group_bands", tuple(self.group_bands))
        errors = self._validate()
        if errors:
            raise PolicyError("; ".join(errors))

    def _validate(self) -> list[str]:
        errors = []
        if self.min_score >= self.max_score:
            errors.append(f"min_score ({self.min_score}) must be below max_score ({self.max_score})")
        if self.decay_after_days < 1:
            errors.append("decay_after_days must be at least 1")
        if self.decay_amount < 1:
            errors.append("decay_amount must be at least 1")

        unknown = sorted(set(self.points) - KNOWN_EVENT_TYPES)
        if unknown:
            errors.append(f"points reference unknown event types: {', '.join(unknown)}")

        errors.extend(self._validate_bands())
        if errors:
            return errors

        groups = {band.group for band in self.group_bands}
        previous_rank = -1
        for group in sorted(self.status_by_group):
            status = self.status_by_group[group]
            if group not in groups:
                errors.append(f"status_by_group references undefined group {group}")
            if status not in KNOWN_STATUSES or status in _TERMINAL:
                errors.append(f"status_by_group[{group}] has invalid status {status!r}")
                continue
            if STATUS_ORDER[status] < previous_rank:
                errors.append("status_by_group must not move backwards as groups increase")
            previous_rank = STATUS_ORDER[status]

        for event_type, status in self.event_status.items():
            if event_type not in KNOWN_EVENT_TYPES:
                errors.append(f"event_status references unknown event type {event_type!r}")
            if status not in KNOWN_STATUSES or status in _TERMINAL:
                errors.append(f"event_status[{event_type}] has invalid status {status!r}")
        return errors

    def _validate_bands(self) -> list[str]:
        bands = self.group_bands
        if not bands:
            return ["group_bands must not be empty"]
        errors = []
        for band in bands:
            if band.lower > band.upper:
                errors.append(f"band for group {band.group} has lower > upper")
        if bands[0].lower != self.min_score:
            errors.append(f"group bands are non-exhaustive: first band starts at {bands[0].lower}, not {self.min_score}")
        if bands[-1].upper != self.max_score:
            errors.append(f"group bands are non-exhaustive: last band ends at {bands[-1].upper}, not {self.max_score}")
        for prev, nxt in zip(bands, bands[1:]):
            if nxt.lower > prev.upper + 1:
                errors.append(f"group bands are non-exhaustive: gap between {prev.upper} and {nxt.lower}")
            elif nxt.lower <= prev.upper:
                errors.append(f"group bands are overlapping: group {prev.group} and group {nxt.group}")
            if nxt.group <= prev.group:
                errors.append("group numbers must increase with score")
        return errors

    # ── Lookups ───────────────────────────────────────
    @property
    def max_group(self) -> int:
        return self.group_bands[-1].group

    def clamp(self, score: int) -> int:
        return max(self.min_score, min(self.max_score, score))

    def points_for(self, event_type: str) -> int:
        return self.points.get(event_type, 0)

    def group_for(self, score: int) -> int:
        score = self.clamp(score)
        for band in self.group_bands:
            if band.contains(score):
                return band.group
        # Unreachable for a validated policy
        raise PolicyError(f"no group band covers score {score}")

    def group_label(self, group: int) -> str:
        for band in self.group_bands:
            if band.group == group:
                return band.label
        return "Unknown"

    def status_for_group(self, group: int) -> str:
        status = ProspectStatus.COLD.value
        for key in sorted(self.status_by_group):
            if key > group:
                break
            status = self.status_by_group[key]
        return status

    # ── Serialization ─────────────────────────────────
    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "points": dict(self.points),
            "decay_after_days": self.decay_after_days,
            "decay_amount": self.decay_amount,
            "min_score": self.min_score,
            "max_score": self.max_score,
            "group_bands": [band.to_dict() for band in self.group_bands],
            "status_by_group": {str(k): v for k, v in self.status_by_group.items()},
            "event_status": dict(self.event_status),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScoringPolicy":
        allowed = {
            "version", "points", "decay_after_days", "decay_amount", "min_score",
            "max_score", "group_bands", "status_by_group", "event_status",
        }
        extra = sorted(set(data) - allowed)
        if extra:
            raise PolicyError(f"unknown policy fields: {', '.join(extra)}")

        kwargs = {k: v for k, v in data.items() if k != "group_bands" and k != "status_by_group"}
        try:
            if "group_bands" in data:
                kwargs["group_bands"] = tuple(
                    GroupBand(
                        lower=int(b["lower"]),
                        upper=int(b["upper"]),
                        group=int(b["group"]),
                        label=str(b.get("label", "")),
                    )
                    for b in data["group_bands"]
                )
            if "status_by_group" in data:
                kwargs["status_by_group"] = {int(k): v for k, v in data["status_by_group"].items()}
            for key in ("version", "decay_after_days", "decay_amount", "min_score", "max_score"):
                if key in kwargs:
                    kwargs[key] = int(kwargs[key])
            if "points" in kwargs:
                kwargs["points"] = {k: int(v) for k, v in kwargs["points"].items()}
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise PolicyError(f"malformed policy: {e}") from e

        if "group_bands" not in kwargs and ("min_score" in kwargs or "max_score" in kwargs):
            kwargs["group_bands"] = score_bands(kwargs.get("min_score", 0), kwargs.get("max_score", 6))
        if "status_by_group" not in kwargs:
            groups = {band.group for band in kwargs.get("group_bands", DEFAULT_GROUP_BANDS)}
            kwargs["status_by_group"] = {
                g: s for g, s in DEFAULT_STATUS_BY_GROUP.items() if g in groups
            }
        return cls(**kwargs)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ScoringPolicy":
        settings = settings or get_settings()
        points = dict(DEFAULT_POINTS)
        points[EventType.EMAIL_OPENED.value] = settings.open_points
        points[EventType.EMAIL_CLICKED.value] = settings.click_points
        points[EventType.EMAIL_REPLIED.value] = settings.reply_points
        return cls.from_dict({
            "points": points,
            "decay_after_days": settings.decay_after_days,
            "decay_amount": settings.decay_amount,
            "min_score": settings.min_score,
            "max_score": settings.max_score,
        })


# ── Persistence ────────────────────────────────────────
async def resolve_policy(db: AsyncSession, tenant_id: Optional[str] = None) -> ScoringPolicy:
    """Return the tenant's persisted policy, or the settings default."""
    tenant_id = tenant_id or get_settings().default_tenant_id
    result = await db.execute(
        select(ScoringPolicyRecord).where(ScoringPolicyRecord.tenant_id == tenant_id)
    )
    record = result.scalar_one_or_none()
    if record is None:
        return ScoringPolicy.from_settings()

    try:
        data = json.loads(record.config or "{}")
    except (json.JSONDecodeError, TypeError) as e:
        raise PolicyError(f"stored policy for tenant {tenant_id} is not valid JSON") from e
    data["version"] = record.version
    return ScoringPolicy.from_dict(data)


async def save_policy(db: AsyncSession, tenant_id: str, updates: dict) -> ScoringPolicy:
    """Merge updates into the tenant's policy, validate, and persist with a version bump."""
    current = await resolve_policy(db, tenant_id)
    merged = {**current.to_dict(), **updates}
    # Point and event-status tables are merged key by key
    for key in ("points", "event_status"):
        if key in updates:
            merged[key] = {**current.to_dict()[key], **updates[key]}
    if ("min_score" in updates or "max_score" in updates) and "group_bands" not in updates:
        merged.pop("group_bands", None)
        merged.pop("status_by_group", None)
    merged["version"] = current.version + 1
    policy = ScoringPolicy.from_dict(merged)

    result = await db.execute(
        select(ScoringPolicyRecord).where(ScoringPolicyRecord.tenant_id == tenant_id)
    )
    record = result.scalar_one_or_none()
    if record is None:
        record = ScoringPolicyRecord(tenant_id=tenant_id)
        db.add(record)
    record.version = policy.version
    record.config = json.dumps(policy.to_dict())
    await db.commit()

    logger.info(f"Scoring policy for tenant {tenant_id} updated to version {policy.version}")
    return policy
