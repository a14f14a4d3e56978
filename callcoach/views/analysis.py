"""Pydantic schemas for transcription and analysis endpoints."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from callcoach.domain.models import AnalysisRecord, CoachingRecord
from callcoach.pipelines.calls import StageAck

from .common import Pagination


class StageAckResponse(BaseModel):
    """Answer to a stage trigger; the stage keeps running after this is sent."""

    success: bool = True
    message: str
    call_id: str = Field(..., alias="callId")
    status: str
    started: bool = Field(..., description="False when the stage output already existed")
    transcript: Optional[str] = None
    analysis: Optional[dict[str, Any]] = None
    coaching: Optional[dict[str, Any]] = None

    class Config:
        populate_by_name = True


class AnalysisDetailResponse(BaseModel):
    success: bool = True
    analysis: dict[str, Any]


class AnalysisListResponse(BaseModel):
    success: bool = True
    analyses: list[dict[str, Any]]
    pagination: Pagination


def stage_ack_view(ack: StageAck) -> StageAckResponse:
    """Shape a stage acknowledgement, attaching the cached output on short-circuit."""

    response = StageAckResponse(
        message=ack.message,
        call_id=str(ack.call_id),
        status=ack.status.value,
        started=ack.started,
    )
    cached = ack.cached
    if isinstance(cached, str):
        response.transcript = cached
    elif isinstance(cached, AnalysisRecord):
        response.analysis = cached.to_wire()
    elif isinstance(cached, CoachingRecord):
        response.coaching = cached.to_wire()
    return response
