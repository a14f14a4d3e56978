"""Pydantic schemas used as views in the MVC architecture."""

from .analysis import (
    AnalysisDetailResponse,
    AnalysisListResponse,
    StageAckResponse,
    stage_ack_view,
)
from .calls import CallDetailResponse, CallListResponse, CallUploadResponse, call_view
from .coaching import (
    CoachingDetailResponse,
    CoachingListResponse,
    ProgressUpdateRequest,
    ProgressUpdateResponse,
    QuizAnswerSubmission,
    QuizResultResponse,
    QuizSubmissionRequest,
)
from .common import ErrorResponse, Pagination, SuccessResponse

__all__ = [
    "AnalysisDetailResponse",
    "AnalysisListResponse",
    "CallDetailResponse",
    "CallListResponse",
    "CallUploadResponse",
    "CoachingDetailResponse",
    "CoachingListResponse",
    "ErrorResponse",
    "Pagination",
    "ProgressUpdateRequest",
    "ProgressUpdateResponse",
    "QuizAnswerSubmission",
    "QuizResultResponse",
    "QuizSubmissionRequest",
    "StageAckResponse",
    "SuccessResponse",
    "call_view",
    "stage_ack_view",
]
