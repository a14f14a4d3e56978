"""Pydantic schemas for coaching plan endpoints."""

from typing import Any

from pydantic import BaseModel, Field

from callcoach.domain.models import ResourceKind

from .common import Pagination


class CoachingDetailResponse(BaseModel):
    success: bool = True
    coaching: dict[str, Any]


class CoachingListResponse(BaseModel):
    success: bool = True
    coaching_plans: list[dict[str, Any]] = Field(..., alias="coachingPlans")
    pagination: Pagination

    class Config:
        populate_by_name = True


class ProgressUpdateRequest(BaseModel):
    """Mark one recommended resource as completed."""

    type: ResourceKind = Field(..., description="article, video or callExample")
    resource_id: str = Field(..., min_length=1, alias="resourceId")

    class Config:
        populate_by_name = True


class ProgressUpdateResponse(BaseModel):
    success: bool = True
    message: str = "Progress updated successfully"
    progress: dict[str, Any]
    completion_criteria: dict[str, Any] = Field(..., alias="completionCriteria")

    class Config:
        populate_by_name = True


class QuizAnswerSubmission(BaseModel):
    question_id: str = Field(..., alias="questionId")
    answer: str

    class Config:
        populate_by_name = True


class QuizSubmissionRequest(BaseModel):
    answers: list[QuizAnswerSubmission] = Field(default_factory=list)


class QuizResultResponse(BaseModel):
    success: bool = True
    message: str = "Quiz submitted successfully"
    score: int
    passed: bool
    best_score: int = Field(..., alias="bestScore")
    is_completed: bool = Field(..., alias="isCompleted")
    answers: list[dict[str, Any]]

    class Config:
        populate_by_name = True
