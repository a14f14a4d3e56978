"""SQLAlchemy model for uploaded calls."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Enum as SqlEnum, Float, Integer, String, Text, Uuid

from callcoach.domain.models import CallStatus
from callcoach.models.base import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Call(Base):
    __tablename__ = "calls"

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    user_id = Column(String(64), nullable=False, index=True)
    storage_ref = Column(String(512), nullable=False)
    file_name = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String(64), nullable=False)
    duration_seconds = Column(Float, nullable=True)
    status = Column(
        SqlEnum(
            CallStatus,
            name="call_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=CallStatus.UPLOADED,
        index=True,
    )
    transcript = Column(Text, nullable=True)
    transcription_provider = Column(String(128), nullable=True)
    transcribed_at = Column(DateTime(timezone=True), nullable=True)
    # ``metadata`` is reserved on declarative classes.
    call_metadata = Column("metadata", JSON, nullable=False, default=dict)
    error = Column(JSON, nullable=True)
    uploaded_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        index=True,
    )
