"""SQLAlchemy model for call analyses."""

from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, String, Uuid

from callcoach.models.base import Base
from callcoach.models.call import utc_now


class Analysis(Base):
    __tablename__ = "analyses"

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    call_id = Column(
        ForeignKey("calls.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    user_id = Column(String(64), nullable=False, index=True)
    scores = Column(JSON, nullable=False)
    overall_score = Column(Float, nullable=False)
    strengths = Column(JSON, nullable=False, default=list)
    improvement_areas = Column(JSON, nullable=False, default=list)
    key_insights = Column(JSON, nullable=False, default=list)
    provider = Column(String(128), nullable=False)
    provenance = Column(String(16), nullable=False)
    confidence = Column(Float, nullable=True)
    analyzed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        index=True,
    )
    analysis_version = Column(String(16), nullable=False, default="1.0")
    processing_time_ms = Column(Integer, nullable=True)
