"""Scoring models — per-tenant policy overrides and the score audit trail."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from prospect_engine.database import Base
from prospect_engine.models import new_uuid, utcnow


class ScoringPolicyRecord(Base):
    """Persisted scoring policy for one tenant (JSON config + version)."""

    __tablename__ = "scoring_policies"

    id = Column(String(36), primary_key=True, default=new_uuid)
    tenant_id = Column(String(36), unique=True, nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)
    config = Column(Text, default="{}")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ScoreChange(Base):
    """Audit trail of every score/group/status transition."""

    __tablename__ = "score_changes"

    id = Column(String(36), primary_key=True, default=new_uuid)
    prospect_id = Column(String(36), ForeignKey("prospects.id"), nullable=False, index=True)
    event_id = Column(String(64), nullable=True)  # null for decay steps
    trigger = Column(String(20), nullable=False)  # event|decay|manual
    delta = Column(Integer, default=0)
    previous_score = Column(Integer, default=0)
    new_score = Column(Integer, default=0)
    previous_group = Column(Integer, default=0)
    new_group = Column(Integer, default=0)
    previous_status = Column(String(20), default="cold")
    new_status = Column(String(20), default="cold")
    policy_version = Column(Integer, nullable=True)
    reason = Column(String(500), default="")
    created_at = Column(DateTime(timezone=True), default=utcnow)
