"""Resource tracking, quiz scoring and plan completion."""

from __future__ import annotations

import pytest

from conftest import make_analysis, make_call, make_coaching

from callcoach.domain.models import CallStatus, CoachingRecord, ResourceKind
from callcoach.errors import PreconditionError
from callcoach.services.progress import record_resource, submit_quiz


def _plan(articles: int, videos: int, examples: int, questions: int = 5) -> CoachingRecord:
    call = make_call(status=CallStatus.COACHING_GENERATED, transcript="hello")
    analysis = make_analysis(call)
    return make_coaching(
        analysis,
        recommendedResources={
            "articles": [{"title": f"Article {n}"} for n in range(articles)],
            "videos": [{"title": f"Video {n}"} for n in range(videos)],
            "callExamples": [{"title": f"Example {n}"} for n in range(examples)],
        },
        quiz={
            "questions": [
                {
                    "question": f"Question {n}?",
                    "options": ["right", "wrong"],
                    "correctAnswer": "right",
                }
                for n in range(questions)
            ],
            "passingScore": 80,
            "estimatedTime": 10,
        },
    )


def _answers(correct: int, total: int = 5) -> list[dict[str, str]]:
    return [
        {"questionId": f"q{n}", "answer": "right" if n <= correct else "wrong"}
        for n in range(1, total + 1)
    ]


def test_overall_progress_weights_resources_and_quiz():
    coaching = _plan(articles=5, videos=3, examples=2)
    done = [
        (ResourceKind.ARTICLE, "article-1"),
        (ResourceKind.ARTICLE, "article-2"),
        (ResourceKind.ARTICLE, "article-3"),
        (ResourceKind.ARTICLE, "article-4"),
        (ResourceKind.VIDEO, "video-1"),
        (ResourceKind.VIDEO, "video-2"),
        (ResourceKind.CALL_EXAMPLE, "example-1"),
    ]
    for kind, resource_id in done:
        record_resource(coaching, kind, resource_id)

    assert coaching.completion_criteria.overall_progress == 49

    outcome = submit_quiz(coaching, _answers(correct=4))

    assert outcome.score == 80
    assert outcome.passed is True
    assert coaching.completion_criteria.overall_progress == 79
    assert coaching.progress.is_completed is False


def test_resource_flags_follow_each_kind():
    coaching = _plan(articles=2, videos=1, examples=0)

    record_resource(coaching, ResourceKind.VIDEO, "video-1")
    assert coaching.completion_criteria.watch_videos is True
    assert coaching.completion_criteria.read_articles is False
    assert coaching.completion_criteria.review_call_examples is True

    record_resource(coaching, ResourceKind.ARTICLE, "article-1")
    record_resource(coaching, ResourceKind.ARTICLE, "article-2")
    assert coaching.completion_criteria.read_articles is True


def test_marking_a_resource_twice_is_a_no_op():
    coaching = _plan(articles=2, videos=0, examples=0)

    record_resource(coaching, ResourceKind.ARTICLE, "article-2")
    record_resource(coaching, ResourceKind.ARTICLE, "article-2")

    assert coaching.progress.articles_read == ["article-2"]
    assert coaching.completion_criteria.overall_progress == 35


def test_unknown_resource_is_rejected():
    coaching = _plan(articles=1, videos=0, examples=0)

    with pytest.raises(PreconditionError):
        record_resource(coaching, ResourceKind.VIDEO, "video-1")
    with pytest.raises(PreconditionError):
        record_resource(coaching, ResourceKind.ARTICLE, "article-9")

    assert coaching.progress.articles_read == []


def test_quiz_scores_each_answer():
    coaching = _plan(articles=1, videos=0, examples=0)

    outcome = submit_quiz(coaching, _answers(correct=3))

    assert outcome.score == 60
    assert outcome.passed is False
    assert [answer.is_correct for answer in outcome.answers] == [True, True, True, False, False]
    assert coaching.completion_criteria.pass_quiz is False
    assert len(coaching.progress.quiz_attempts) == 1


def test_unknown_question_ids_count_as_wrong():
    coaching = _plan(articles=1, videos=0, examples=0, questions=2)

    outcome = submit_quiz(
        coaching,
        [{"questionId": "q1", "answer": "right"}, {"questionId": "q99", "answer": "right"}],
    )

    assert outcome.score == 50
    assert outcome.answers[1].is_correct is False


def test_best_score_never_decreases():
    coaching = _plan(articles=1, videos=0, examples=0)

    submit_quiz(coaching, _answers(correct=5))
    outcome = submit_quiz(coaching, _answers(correct=1))

    assert outcome.score == 20
    assert outcome.best_score == 100
    assert coaching.progress.best_quiz_score == 100
    assert len(coaching.progress.quiz_attempts) == 2


def test_plan_completes_when_every_criterion_is_met():
    coaching = _plan(articles=1, videos=1, examples=1)
    record_resource(coaching, ResourceKind.ARTICLE, "article-1")
    record_resource(coaching, ResourceKind.VIDEO, "video-1")
    record_resource(coaching, ResourceKind.CALL_EXAMPLE, "example-1")

    outcome = submit_quiz(coaching, _answers(correct=4))

    assert outcome.is_completed is True
    assert coaching.progress.is_completed is True
    assert coaching.progress.completed_at is not None
    assert coaching.completion_criteria.overall_progress == 100


def test_completed_plan_stays_at_full_progress():
    coaching = _plan(articles=1, videos=0, examples=0)
    record_resource(coaching, ResourceKind.ARTICLE, "article-1")
    submit_quiz(coaching, _answers(correct=5))
    completed_at = coaching.progress.completed_at

    submit_quiz(coaching, _answers(correct=0))
    record_resource(coaching, ResourceKind.ARTICLE, "article-1")

    assert coaching.progress.is_completed is True
    assert coaching.progress.completed_at == completed_at
    assert coaching.completion_criteria.overall_progress == 100
