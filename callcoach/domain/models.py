"""Domain records for calls, analyses and coaching plans.

Field names are snake_case in Python and camelCase on the wire; every record
accepts either form so provider JSON and persisted JSON columns validate the
same way.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, float(value)))


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Return a JSON-compatible dict using camelCase keys."""

        return self.model_dump(mode="json", by_alias=True)


class CallStatus(str, Enum):
    UPLOADED = "uploaded"
    TRANSCRIBING = "transcribing"
    TRANSCRIBED = "transcribed"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"
    GENERATING_COACHING = "generating-coaching"
    COACHING_GENERATED = "coaching-generated"
    FAILED = "failed"


class Stage(str, Enum):
    TRANSCRIBE = "transcribe"
    ANALYZE = "analyze"
    COACH = "coach"

    @property
    def step(self) -> str:
        """Name recorded in ``CallError.step`` when this stage fails."""

        return _STAGE_STEPS[self]

    @property
    def label(self) -> str:
        return _STAGE_LABELS[self]


_STAGE_STEPS = {
    Stage.TRANSCRIBE: "transcription",
    Stage.ANALYZE: "analysis",
    Stage.COACH: "coaching",
}

_STAGE_LABELS = {
    Stage.TRANSCRIBE: "Transcription",
    Stage.ANALYZE: "Analysis",
    Stage.COACH: "Coaching generation",
}


class Provenance(str, Enum):
    """How an analysis or coaching result was obtained from the provider output."""

    STRUCTURED = "structured"
    HEURISTIC = "heuristic"
    DEFAULT = "default"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class Tone(str, Enum):
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    NEUTRAL = "neutral"
    TENSE = "tense"
    HOSTILE = "hostile"


class ResourceKind(str, Enum):
    ARTICLE = "article"
    VIDEO = "video"
    CALL_EXAMPLE = "callExample"


# --------------------------------------------------------------------------- calls


class CallError(CamelModel):
    message: str
    step: Literal["transcription", "analysis", "coaching"]
    timestamp: datetime = Field(default_factory=utc_now)


class CallMetadata(CamelModel):
    customer_info: dict[str, Any] = Field(default_factory=dict)
    agent_info: dict[str, Any] = Field(default_factory=dict)
    call_date: Optional[datetime] = None
    call_type: Optional[Literal["inbound", "outbound"]] = None


class CallRecord(CamelModel):
    """A recorded support call and its pipeline state."""

    id: UUID = Field(default_factory=uuid4)
    user_id: str
    storage_ref: str
    file_name: str
    original_name: str
    file_size: int = Field(ge=0)
    mime_type: str
    duration_seconds: Optional[float] = None
    status: CallStatus = CallStatus.UPLOADED
    transcript: Optional[str] = None
    transcription_provider: Optional[str] = None
    transcribed_at: Optional[datetime] = None
    metadata: CallMetadata = Field(default_factory=CallMetadata)
    error: Optional[CallError] = None
    uploaded_at: datetime = Field(default_factory=utc_now)


# ------------------------------------------------------------------------ analysis


class DimensionScore(CamelModel):
    score: float = 0.0
    feedback: str = ""
    criteria: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def clamp_score(self) -> "DimensionScore":
        self.score = _clamp(self.score, 0, 100)
        return self


class SentimentScore(CamelModel):
    agent_sentiment: Sentiment = Sentiment.NEUTRAL
    customer_sentiment: Sentiment = Sentiment.NEUTRAL
    overall_tone: Tone = Tone.PROFESSIONAL
    feedback: str = ""

    @field_validator("agent_sentiment", "customer_sentiment", mode="before")
    @classmethod
    def normalise_sentiment(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return lowered if lowered in Sentiment._value2member_map_ else Sentiment.NEUTRAL
        return value

    @field_validator("overall_tone", mode="before")
    @classmethod
    def normalise_tone(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return lowered if lowered in Tone._value2member_map_ else Tone.NEUTRAL
        return value


class CsatScore(CamelModel):
    predicted_score: float = 3.0
    confidence: float = 0.0
    indicators: list[str] = Field(default_factory=list)
    feedback: str = ""

    @model_validator(mode="after")
    def clamp_ranges(self) -> "CsatScore":
        self.predicted_score = _clamp(self.predicted_score, 1, 5)
        self.confidence = _clamp(self.confidence, 0, 100)
        return self


class ResolutionScore(CamelModel):
    score: float = 0.0
    is_resolved: bool = False
    fcr: bool = False
    feedback: str = ""

    @model_validator(mode="after")
    def clamp_score(self) -> "ResolutionScore":
        self.score = _clamp(self.score, 0, 100)
        return self


class AnalysisScores(CamelModel):
    call_opening: DimensionScore
    issue_understanding: DimensionScore
    sentiment: SentimentScore = Field(default_factory=SentimentScore)
    csat: CsatScore = Field(default_factory=CsatScore)
    resolution_quality: ResolutionScore

    @model_validator(mode="before")
    @classmethod
    def expand_bare_numbers(cls, data: Any) -> Any:
        """Accept ``{"callOpening": 80}`` as shorthand for ``{"callOpening": {"score": 80}}``."""

        if not isinstance(data, dict):
            return data
        expanded = dict(data)
        for key in (
            "callOpening",
            "call_opening",
            "issueUnderstanding",
            "issue_understanding",
            "resolutionQuality",
            "resolution_quality",
        ):
            if isinstance(expanded.get(key), (int, float)):
                expanded[key] = {"score": expanded[key]}
        if isinstance(expanded.get("csat"), (int, float)):
            expanded["csat"] = {"predictedScore": expanded["csat"]}
        return expanded


class AnalysisResult(CamelModel):
    """Canonical structure expected from the analysis model."""

    scores: AnalysisScores
    overall_score: float = 0.0
    strengths: list[str] = Field(default_factory=list)
    improvement_areas: list[str] = Field(default_factory=list)
    key_insights: list[str] = Field(default_factory=list)
    provider: str = "unknown"

    @model_validator(mode="after")
    def clamp_overall(self) -> "AnalysisResult":
        self.overall_score = _clamp(self.overall_score, 0, 100)
        return self


class AnalysisRecord(AnalysisResult):
    """Persisted analysis of one call. Never modified after creation."""

    id: UUID = Field(default_factory=uuid4)
    call_id: UUID
    user_id: str
    provenance: Provenance = Provenance.STRUCTURED
    confidence: Optional[float] = None
    analyzed_at: datetime = Field(default_factory=utc_now)
    analysis_version: str = "1.0"
    processing_time_ms: Optional[int] = None


# ------------------------------------------------------------------------ coaching


class PersonalizedFeedback(CamelModel):
    summary: str = ""
    detailed_feedback: str = ""
    priority_areas: list[str] = Field(default_factory=list)
    action_items: list[str] = Field(default_factory=list)


class ArticleResource(CamelModel):
    id: Optional[str] = None
    title: str
    description: str = ""
    url: str = "#"
    estimated_read_time: Optional[int] = None
    category: str = "general"


class VideoResource(CamelModel):
    id: Optional[str] = None
    title: str
    description: str = ""
    url: str = "#"
    duration: Optional[int] = None
    category: str = "general"
    thumbnail: Optional[str] = None


class CallExampleResource(CamelModel):
    id: Optional[str] = None
    title: str
    description: str = ""
    audio_url: Optional[str] = None
    transcript_url: Optional[str] = None
    category: str = "general"
    scores: dict[str, float] = Field(default_factory=dict)


class RecommendedResources(CamelModel):
    articles: list[ArticleResource] = Field(default_factory=list)
    videos: list[VideoResource] = Field(default_factory=list)
    call_examples: list[CallExampleResource] = Field(default_factory=list)

    @model_validator(mode="after")
    def assign_ids(self) -> "RecommendedResources":
        """Give every resource a stable completion key."""

        for prefix, items in (
            ("article", self.articles),
            ("video", self.videos),
            ("example", self.call_examples),
        ):
            for index, item in enumerate(items, start=1):
                if not item.id:
                    item.id = f"{prefix}-{index}"
        return self

    def ids_for(self, kind: ResourceKind) -> list[str]:
        items = {
            ResourceKind.ARTICLE: self.articles,
            ResourceKind.VIDEO: self.videos,
            ResourceKind.CALL_EXAMPLE: self.call_examples,
        }[kind]
        return [item.id for item in items if item.id]


class QuizQuestion(CamelModel):
    id: Optional[str] = None
    type: Literal["multiple-choice", "true-false", "scenario"] = "multiple-choice"
    question: str
    options: list[str] = Field(default_factory=list)
    correct_answer: Optional[str] = None
    explanation: str = ""
    category: str = "general"
    difficulty: Literal["easy", "medium", "hard"] = "medium"

    @field_validator("correct_answer", mode="before")
    @classmethod
    def stringify_answer(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class Quiz(CamelModel):
    questions: list[QuizQuestion] = Field(default_factory=list)
    passing_score: int = 80
    estimated_time: int = 10

    @model_validator(mode="after")
    def assign_ids(self) -> "Quiz":
        for index, question in enumerate(self.questions, start=1):
            if not question.id:
                question.id = f"q{index}"
        self.passing_score = int(_clamp(self.passing_score, 0, 100))
        return self


class CoachingPlan(CamelModel):
    """Canonical structure expected from the coaching model."""

    personalized_feedback: PersonalizedFeedback
    recommended_resources: RecommendedResources = Field(
        default_factory=RecommendedResources
    )
    quiz: Quiz = Field(default_factory=Quiz)
    provider: str = "unknown"


class CompletionCriteria(CamelModel):
    read_articles: bool = False
    watch_videos: bool = False
    review_call_examples: bool = False
    pass_quiz: bool = False
    overall_progress: int = 0

    @property
    def all_met(self) -> bool:
        return (
            self.read_articles
            and self.watch_videos
            and self.review_call_examples
            and self.pass_quiz
        )


class QuizAnswer(CamelModel):
    question_id: str
    answer: str
    is_correct: bool = False


class QuizAttempt(CamelModel):
    attempt_date: datetime = Field(default_factory=utc_now)
    score: int
    answers: list[QuizAnswer] = Field(default_factory=list)


class CoachingProgress(CamelModel):
    articles_read: list[str] = Field(default_factory=list)
    videos_watched: list[str] = Field(default_factory=list)
    call_examples_reviewed: list[str] = Field(default_factory=list)
    quiz_attempts: list[QuizAttempt] = Field(default_factory=list)
    best_quiz_score: int = 0
    is_completed: bool = False
    completed_at: Optional[datetime] = None

    def completed_for(self, kind: ResourceKind) -> list[str]:
        return {
            ResourceKind.ARTICLE: self.articles_read,
            ResourceKind.VIDEO: self.videos_watched,
            ResourceKind.CALL_EXAMPLE: self.call_examples_reviewed,
        }[kind]


class CoachingRecord(CoachingPlan):
    """Persisted coaching plan for one analysis, including learner progress."""

    id: UUID = Field(default_factory=uuid4)
    analysis_id: UUID
    call_id: UUID
    user_id: str
    completion_criteria: CompletionCriteria = Field(default_factory=CompletionCriteria)
    progress: CoachingProgress = Field(default_factory=CoachingProgress)
    provenance: Provenance = Provenance.STRUCTURED
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


__all__ = [
    "AnalysisRecord",
    "AnalysisResult",
    "AnalysisScores",
    "ArticleResource",
    "CallError",
    "CallExampleResource",
    "CallMetadata",
    "CallRecord",
    "CallStatus",
    "CamelModel",
    "CoachingPlan",
    "CoachingProgress",
    "CoachingRecord",
    "CompletionCriteria",
    "CsatScore",
    "DimensionScore",
    "PersonalizedFeedback",
    "Provenance",
    "Quiz",
    "QuizAnswer",
    "QuizAttempt",
    "QuizQuestion",
    "RecommendedResources",
    "ResolutionScore",
    "ResourceKind",
    "Sentiment",
    "SentimentScore",
    "Stage",
    "Tone",
    "VideoResource",
    "utc_now",
]
