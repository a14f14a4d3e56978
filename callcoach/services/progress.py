"""Learner progress through a coaching plan: resources, quiz attempts, completion."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Mapping

from callcoach.domain.models import (
    CoachingRecord,
    QuizAnswer,
    QuizAttempt,
    ResourceKind,
    utc_now,
)
from callcoach.errors import PreconditionError

logger = logging.getLogger(__name__)

RESOURCE_WEIGHT = 70
QUIZ_WEIGHT = 30


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class QuizOutcome:
    score: int
    passed: bool
    best_score: int
    is_completed: bool
    answers: list[QuizAnswer]


def _refresh_criteria(coaching: CoachingRecord) -> None:
    """Recompute the resource flags and the overall progress percentage."""

    resources = coaching.recommended_resources
    progress = coaching.progress
    criteria = coaching.completion_criteria

    total = 0
    completed = 0
    done_by_kind: dict[ResourceKind, bool] = {}
    for kind in ResourceKind:
        available = resources.ids_for(kind)
        finished = set(progress.completed_for(kind)) & set(available)
        total += len(available)
        completed += len(finished)
        done_by_kind[kind] = len(finished) == len(available)

    criteria.read_articles = done_by_kind[ResourceKind.ARTICLE]
    criteria.watch_videos = done_by_kind[ResourceKind.VIDEO]
    criteria.review_call_examples = done_by_kind[ResourceKind.CALL_EXAMPLE]

    if progress.is_completed:
        criteria.overall_progress = 100
        return

    resource_part = completed / total * RESOURCE_WEIGHT if total else 0
    quiz_part = QUIZ_WEIGHT if progress.best_quiz_score >= coaching.quiz.passing_score else 0
    criteria.overall_progress = _round_half_up(resource_part + quiz_part)


def record_resource(
    coaching: CoachingRecord,
    kind: ResourceKind,
    resource_id: str,
) -> CoachingRecord:
    """Mark one recommended resource as completed; repeated marks are no-ops."""

    if resource_id not in coaching.recommended_resources.ids_for(kind):
        raise PreconditionError(f"Unknown {kind.value} resource: {resource_id}")

    completed = coaching.progress.completed_for(kind)
    if resource_id not in completed:
        completed.append(resource_id)

    _refresh_criteria(coaching)
    coaching.updated_at = utc_now()
    return coaching


def submit_quiz(
    coaching: CoachingRecord,
    answers: Iterable[Mapping[str, str]],
) -> QuizOutcome:
    """Score a quiz attempt, keep the best score and detect plan completion."""

    questions = {question.id: question for question in coaching.quiz.questions}
    scored: list[QuizAnswer] = []
    for answer in answers:
        question_id = str(answer.get("questionId", answer.get("question_id", "")))
        given = str(answer.get("answer", ""))
        question = questions.get(question_id)
        is_correct = question is not None and question.correct_answer == given
        scored.append(QuizAnswer(question_id=question_id, answer=given, is_correct=is_correct))

    correct = sum(1 for answer in scored if answer.is_correct)
    total_questions = len(coaching.quiz.questions)
    score = _round_half_up(correct / total_questions * 100) if total_questions else 0

    progress = coaching.progress
    progress.quiz_attempts.append(QuizAttempt(score=score, answers=scored))
    progress.best_quiz_score = max(progress.best_quiz_score, score)

    passing = coaching.quiz.passing_score
    criteria = coaching.completion_criteria
    criteria.pass_quiz = score >= passing
    _refresh_criteria(coaching)

    if criteria.all_met and not progress.is_completed:
        progress.is_completed = True
        progress.completed_at = utc_now()
        criteria.overall_progress = 100
        logger.info("Coaching plan %s completed", coaching.id)

    coaching.updated_at = utc_now()
    return QuizOutcome(
        score=score,
        passed=score >= passing,
        best_score=progress.best_quiz_score,
        is_completed=progress.is_completed,
        answers=scored,
    )


__all__ = ["QuizOutcome", "record_resource", "submit_quiz"]
