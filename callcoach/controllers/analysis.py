"""Transcription and analysis endpoints.

Both triggers answer immediately; the stage itself runs in the background
(see `callcoach.pipelines.calls.flow.CallCoachingPipeline`) and reports
progress on the call's event topic, ``/ws/calls/{call_id}``.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from callcoach.controllers.dependencies import CurrentUserDep, RepositoriesDep, StageRunnerDep
from callcoach.domain.models import Stage
from callcoach.views import (
    AnalysisDetailResponse,
    AnalysisListResponse,
    StageAckResponse,
    stage_ack_view,
)
from callcoach.views.common import Pagination

router = APIRouter(prefix="/analysis", tags=["analysis"])

logger = logging.getLogger(__name__)


@router.post("/transcribe/{call_id}", response_model_exclude_none=True)
async def transcribe_call(
    current_user: CurrentUserDep,
    runner: StageRunnerDep,
    call_id: UUID,
) -> StageAckResponse:
    """Start transcription, or return the transcript when one already exists."""

    ack = await runner.begin_stage(Stage.TRANSCRIBE, call_id, current_user)
    return stage_ack_view(ack)


@router.post("/analyze/{call_id}", response_model_exclude_none=True)
async def analyze_call(
    current_user: CurrentUserDep,
    runner: StageRunnerDep,
    call_id: UUID,
) -> StageAckResponse:
    """Start analysis of a transcribed call, or return the existing analysis."""

    ack = await runner.begin_stage(Stage.ANALYZE, call_id, current_user)
    return stage_ack_view(ack)


@router.get("/{call_id}")
async def get_analysis(
    current_user: CurrentUserDep,
    repositories: RepositoriesDep,
    call_id: UUID,
) -> AnalysisDetailResponse:
    analysis = await repositories.analyses.get_by_call(call_id)
    if analysis is None or analysis.user_id != current_user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Analysis not found",
        )
    return AnalysisDetailResponse(analysis=analysis.to_wire())


@router.get("")
async def list_analyses(
    current_user: CurrentUserDep,
    repositories: RepositoriesDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> AnalysisListResponse:
    analyses, total = await repositories.analyses.list_for_owner(
        current_user, page=page, limit=limit
    )
    return AnalysisListResponse(
        analyses=[analysis.to_wire() for analysis in analyses],
        pagination=Pagination.build(page, limit, total),
    )
