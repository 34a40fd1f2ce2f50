"""SQLAlchemy models — portable across SQLite and PostgreSQL."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)

from prospect_engine.database import Base


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ── Prospect ────────────────────────────────────────────
class Prospect(Base):
    """Prospect record; only the scoring-relevant subset is owned by this service."""

    __tablename__ = "prospects"

    id = Column(String(36), primary_key=True, default=new_uuid)
    tenant_id = Column(String(36), nullable=False, default="default", index=True)
    email = Column(String(320), nullable=False, index=True)
    name = Column(String(200), default="")
    score = Column(Integer, default=0)
    engagement_group = Column(Integer, default=0)
    status = Column(String(20), default="cold", index=True)  # cold|contacted|replied|interested|qualified|handoff|bounced
    opens = Column(Integer, default=0)
    clicks = Column(Integer, default=0)
    replies = Column(Integer, default=0)
    current_stage = Column(Integer, default=0)  # sequence position, advanced by the outreach app
    last_engagement_at = Column(DateTime(timezone=True), nullable=True)
    last_decay_at = Column(DateTime(timezone=True), nullable=True)
    policy_version = Column(Integer, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Optimistic concurrency: stale UPDATEs raise StaleDataError
    __mapper_args__ = {"version_id_col": version}


# ── Engagement Event ────────────────────────────────────
class EngagementEvent(Base):
    """Append-only ledger of prospect interactions, scored or not."""

    __tablename__ = "engagement_events"

    id = Column(String(64), primary_key=True, default=new_uuid)
    prospect_id = Column(String(36), ForeignKey("prospects.id"), nullable=False, index=True)
    tenant_id = Column(String(36), nullable=False, default="default")
    event_type = Column(String(50), nullable=False)
    occurred_at = Column(DateTime(timezone=True), default=utcnow)
    description = Column(Text, default="")
    metadata_ = Column("metadata", Text, default="{}")
    score_delta = Column(Integer, default=0)
    applied = Column(Boolean, default=False)  # False for neutral/no-op events
    created_at = Column(DateTime(timezone=True), default=utcnow)
