"""Interpretation ladder for analysis and coaching replies."""

from __future__ import annotations

import copy
import json

import pytest

from callcoach.domain.models import AnalysisResult, Provenance, ResourceKind, Sentiment
from callcoach.services.coaching_templates import generate_detailed_coaching
from callcoach.services.prompt_builder import (
    build_coaching_prompt,
    extract_analysis_from_prompt,
)
from callcoach.services.providers.mock import MOCK_ANALYSIS
from callcoach.services.response_contract import (
    Default,
    HeuristicExtracted,
    Structured,
    extract_json_object,
    interpret_analysis,
    interpret_coaching,
)
from callcoach.services.text_heuristics import (
    PLACEHOLDER_ITEM,
    extract_list_items,
    extract_numeric_value,
    extract_sentiment,
    extract_summary,
)


def test_mapping_with_scores_is_structured():
    outcome = interpret_analysis(copy.deepcopy(MOCK_ANALYSIS), "huggingface")

    assert isinstance(outcome, Structured)
    assert outcome.provenance is Provenance.STRUCTURED
    assert outcome.confidence == 1.0
    assert outcome.result.overall_score == 85
    assert outcome.result.provider == "huggingface"


def test_fenced_json_after_prose_is_structured():
    reply = "Here is the assessment you asked for:\n```json\n" + json.dumps(MOCK_ANALYSIS) + "\n```"

    outcome = interpret_analysis(reply, "huggingface")

    assert isinstance(outcome, Structured)
    assert outcome.result.scores.call_opening.score == 90


def test_wrapped_analysis_object_is_unwrapped():
    outcome = interpret_analysis({"analysis": copy.deepcopy(MOCK_ANALYSIS)}, "ollama")

    assert isinstance(outcome, Structured)
    assert outcome.result.strengths[0] == "Polite and professional greeting"


def test_out_of_range_scores_are_clamped():
    data = copy.deepcopy(MOCK_ANALYSIS)
    data["scores"]["callOpening"] = 150
    data["scores"]["csat"]["predictedScore"] = 9
    data["overallScore"] = -5

    outcome = interpret_analysis(data, "huggingface")

    assert isinstance(outcome, Structured)
    assert outcome.result.scores.call_opening.score == 100
    assert outcome.result.scores.csat.predicted_score == 5
    assert outcome.result.overall_score == 0


def test_free_text_analysis_uses_heuristics():
    reply = (
        "Opening: 92. Understanding 64. Resolution: 71. Overall: 77.\n"
        "The customer sounded happy at the end.\n"
        "Strength: warm greeting and clear next steps."
    )

    outcome = interpret_analysis(reply, "huggingface")

    assert isinstance(outcome, HeuristicExtracted)
    assert outcome.provenance is Provenance.HEURISTIC
    assert outcome.confidence == 1.0
    result = outcome.result
    assert result.scores.call_opening.score == 92
    assert result.scores.issue_understanding.score == 64
    assert result.scores.resolution_quality.score == 71
    assert result.overall_score == 77
    assert result.scores.sentiment.agent_sentiment is Sentiment.POSITIVE
    assert result.strengths == ["warm greeting and clear next steps"]


def test_partial_free_text_reports_share_of_scores_found():
    outcome = interpret_analysis("Opening: 92. Nothing else worth noting here.", "huggingface")

    assert isinstance(outcome, HeuristicExtracted)
    assert outcome.confidence == pytest.approx(0.25)
    assert outcome.result.scores.issue_understanding.score == 70
    assert outcome.result.overall_score == 75


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_missing_reply_falls_back_to_default_analysis(raw):
    outcome = interpret_analysis(raw, "huggingface")

    assert isinstance(outcome, Default)
    assert outcome.confidence == 0.0
    assert outcome.result.overall_score == 75
    assert outcome.result.scores.call_opening.score == 80
    assert outcome.result.scores.csat.predicted_score == 4


def test_structured_coaching_reply_keeps_resources_and_quiz():
    analysis = AnalysisResult.model_validate(MOCK_ANALYSIS)
    analysis.scores.call_opening.score = 60

    outcome = interpret_coaching(generate_detailed_coaching(analysis, "mock"), "mock")

    assert isinstance(outcome, Structured)
    plan = outcome.result
    assert [q.id for q in plan.quiz.questions] == ["q1", "q5"]
    assert [a.id for a in plan.recommended_resources.articles] == ["article-1", "article-2"]


def test_free_text_coaching_uses_heuristics():
    reply = (
        "Focus on empathy when customers are upset. "
        "Practice active listening every day."
    )

    outcome = interpret_coaching(reply, "ollama")

    assert isinstance(outcome, HeuristicExtracted)
    assert outcome.confidence == 1.0
    plan = outcome.result
    assert plan.personalized_feedback.summary == "Focus on empathy when customers are upset."
    assert "active listening every day" in plan.personalized_feedback.action_items
    assert plan.recommended_resources.ids_for(ResourceKind.ARTICLE) == ["article-1"]
    assert plan.quiz.questions == []
    assert plan.quiz.passing_score == 80


def test_missing_coaching_reply_falls_back_to_default():
    outcome = interpret_coaching(None, "huggingface")

    assert isinstance(outcome, Default)
    plan = outcome.result
    assert plan.personalized_feedback.summary.endswith("using huggingface open-source models")
    assert plan.quiz.questions == []


def test_numeric_extraction_tries_keywords_in_order():
    text = "greeting 55, opening: 81.5"

    assert extract_numeric_value(text, ("opening", "greeting")) == 81.5
    assert extract_numeric_value(text, ("greeting", "opening")) == 55
    assert extract_numeric_value(text, ("closing",)) is None


def test_list_extraction_caps_items_and_uses_placeholder():
    text = "Issue: late parcel.\nIssue: wrong size.\nIssue: rude courier.\nIssue: refund delay."

    assert extract_list_items(text, ("issue",)) == ["late parcel", "wrong size", "rude courier"]
    assert extract_list_items("nothing here", ("issue",)) == [PLACEHOLDER_ITEM]


def test_sentiment_needs_one_sided_evidence():
    assert extract_sentiment("The customer was pleased") is Sentiment.POSITIVE
    assert extract_sentiment("The customer was angry") is Sentiment.NEGATIVE
    assert extract_sentiment("Started angry, ended happy") is Sentiment.NEUTRAL
    assert extract_sentiment("Nothing remarkable") is Sentiment.NEUTRAL


def test_summary_is_first_long_sentence():
    assert extract_summary("Ok. The agent handled the refund well. Bye.") == (
        "The agent handled the refund well."
    )
    assert extract_summary("Ok. Fine.") is None


def test_json_extraction_rejects_non_objects():
    assert extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}
    assert extract_json_object("[1, 2, 3]") is None
    assert extract_json_object("no json at all") is None


def test_coaching_prompt_embeds_analysis_without_record_fields():
    analysis = AnalysisResult.model_validate(MOCK_ANALYSIS)

    embedded = extract_analysis_from_prompt(build_coaching_prompt(analysis))

    assert embedded is not None
    assert embedded["overallScore"] == 85
    assert "callId" not in embedded
