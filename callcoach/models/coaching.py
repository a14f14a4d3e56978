"""SQLAlchemy model for coaching plans and learner progress."""

from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Uuid

from callcoach.models.base import Base
from callcoach.models.call import utc_now


class Coaching(Base):
    __tablename__ = "coachings"

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    analysis_id = Column(
        ForeignKey("analyses.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    call_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    personalized_feedback = Column(JSON, nullable=False)
    recommended_resources = Column(JSON, nullable=False)
    quiz = Column(JSON, nullable=False)
    completion_criteria = Column(JSON, nullable=False)
    progress = Column(JSON, nullable=False)
    provider = Column(String(128), nullable=False)
    provenance = Column(String(16), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )
