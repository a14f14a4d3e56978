"""Coaching plan endpoints: generation, retrieval and learner progress."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from callcoach.application.interfaces import Repositories
from callcoach.controllers.dependencies import CurrentUserDep, RepositoriesDep, StageRunnerDep
from callcoach.domain.models import CoachingRecord, Stage
from callcoach.services.progress import record_resource, submit_quiz
from callcoach.views import (
    CoachingDetailResponse,
    CoachingListResponse,
    ProgressUpdateRequest,
    ProgressUpdateResponse,
    QuizResultResponse,
    QuizSubmissionRequest,
    StageAckResponse,
    stage_ack_view,
)
from callcoach.views.common import Pagination

router = APIRouter(prefix="/coaching", tags=["coaching"])

logger = logging.getLogger(__name__)


async def _owned_coaching(
    repositories: Repositories, call_id: UUID, user_id: str
) -> CoachingRecord:
    coaching = await repositories.coachings.get_by_call(call_id)
    if coaching is None or coaching.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Coaching plan not found",
        )
    return coaching


@router.post("/generate/{call_id}", response_model_exclude_none=True)
async def generate_coaching(
    current_user: CurrentUserDep,
    runner: StageRunnerDep,
    call_id: UUID,
    force: bool = Query(False, description="Replace an existing coaching plan"),
) -> StageAckResponse:
    """Start coaching generation for an analyzed call."""

    ack = await runner.begin_stage(Stage.COACH, call_id, current_user, force=force)
    return stage_ack_view(ack)


@router.get("/{call_id}")
async def get_coaching(
    current_user: CurrentUserDep,
    repositories: RepositoriesDep,
    call_id: UUID,
) -> CoachingDetailResponse:
    coaching = await _owned_coaching(repositories, call_id, current_user)
    return CoachingDetailResponse(coaching=coaching.to_wire())


@router.get("")
async def list_coaching_plans(
    current_user: CurrentUserDep,
    repositories: RepositoriesDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> CoachingListResponse:
    plans, total = await repositories.coachings.list_for_owner(
        current_user, page=page, limit=limit
    )
    return CoachingListResponse(
        coaching_plans=[plan.to_wire() for plan in plans],
        pagination=Pagination.build(page, limit, total),
    )


@router.post("/{call_id}/progress")
async def update_progress(
    current_user: CurrentUserDep,
    repositories: RepositoriesDep,
    call_id: UUID,
    payload: ProgressUpdateRequest,
) -> ProgressUpdateResponse:
    """Mark a recommended article, video or call example as completed."""

    coaching = await _owned_coaching(repositories, call_id, current_user)
    record_resource(coaching, payload.type, payload.resource_id)
    await repositories.coachings.save(coaching)

    logger.info(
        "Progress for call=%s: %s %s, overall=%s",
        call_id,
        payload.type.value,
        payload.resource_id,
        coaching.completion_criteria.overall_progress,
    )
    return ProgressUpdateResponse(
        progress=coaching.progress.to_wire(),
        completion_criteria=coaching.completion_criteria.to_wire(),
    )


@router.post("/{call_id}/quiz")
async def submit_coaching_quiz(
    current_user: CurrentUserDep,
    repositories: RepositoriesDep,
    call_id: UUID,
    payload: QuizSubmissionRequest,
) -> QuizResultResponse:
    """Score a quiz attempt against the plan's questions."""

    coaching = await _owned_coaching(repositories, call_id, current_user)
    outcome = submit_quiz(
        coaching,
        [answer.model_dump(by_alias=True) for answer in payload.answers],
    )
    await repositories.coachings.save(coaching)

    logger.info(
        "Quiz for call=%s scored %s (best %s, completed=%s)",
        call_id,
        outcome.score,
        outcome.best_score,
        outcome.is_completed,
    )
    return QuizResultResponse(
        score=outcome.score,
        passed=outcome.passed,
        best_score=outcome.best_score,
        is_completed=outcome.is_completed,
        answers=[answer.to_wire() for answer in outcome.answers],
    )
