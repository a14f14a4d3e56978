"""Interpret text-model replies as analysis and coaching results.

Replies arrive in whatever shape the provider produced. Each one goes
through the same ladder, stopping at the first rung that works:

1. a mapping that already has the expected structure,
2. text that parses as JSON with the expected structure (code fences and
   leading prose are tolerated),
3. keyword heuristics over the free text,
4. a fixed default result.

The caller receives a tagged outcome so it can record how the result was
obtained alongside the result itself.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Generic, Mapping, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError

from callcoach.domain.models import (
    AnalysisResult,
    CoachingPlan,
    Provenance,
)
from callcoach.telemetry import record_interpretation

from .text_heuristics import (
    PLACEHOLDER_ITEM,
    extract_list_items,
    extract_numeric_value,
    extract_sentiment,
    extract_summary,
    truncate,
)

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT", bound=BaseModel)


@dataclass(frozen=True)
class Structured(Generic[ResultT]):
    """The reply matched the expected structure and was used as-is."""

    result: ResultT
    provenance: ClassVar[Provenance] = Provenance.STRUCTURED

    @property
    def confidence(self) -> float:
        return 1.0


@dataclass(frozen=True)
class HeuristicExtracted(Generic[ResultT]):
    """Fields were pulled out of free text; ``confidence`` is the share found."""

    result: ResultT
    confidence: float
    provenance: ClassVar[Provenance] = Provenance.HEURISTIC


@dataclass(frozen=True)
class Default(Generic[ResultT]):
    """Nothing usable came back; the result is a fixed fallback."""

    result: ResultT
    provenance: ClassVar[Provenance] = Provenance.DEFAULT

    @property
    def confidence(self) -> float:
        return 0.0


ParseOutcome = Union[Structured[ResultT], HeuristicExtracted[ResultT], Default[ResultT]]


def _clean_json_payload(payload: str) -> str:
    """Strip Markdown code blocks and find the first/last brace to extract JSON."""
    if not payload:
        return ""

    cleaned = payload.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]

    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]

    cleaned = cleaned.strip()

    start = cleaned.find("{")
    end = cleaned.rfind("}")

    if start != -1 and end != -1 and end > start:
        cleaned = cleaned[start : end + 1]

    return cleaned


def extract_json_object(payload: str) -> Optional[dict[str, Any]]:
    """Return the JSON object embedded in ``payload``, or None."""

    cleaned = _clean_json_payload(payload)
    if not cleaned.startswith("{"):
        return None
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _response_text(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, Mapping):
        for key in ("generated_text", "text", "response"):
            value = raw.get(key)
            if isinstance(value, str):
                return value
    if isinstance(raw, list) and raw:
        return _response_text(raw[0])
    return json.dumps(raw, default=str) if raw else ""


def _structured_candidate(
    raw: Any, primary_key: str, wrapper_key: str
) -> Optional[Mapping[str, Any]]:
    if isinstance(raw, str):
        candidate: Any = extract_json_object(raw)
    elif isinstance(raw, list) and raw and isinstance(raw[0], Mapping):
        candidate = raw[0]
    else:
        candidate = raw

    if not isinstance(candidate, Mapping):
        return None
    if primary_key in candidate:
        return candidate
    inner = candidate.get(wrapper_key)
    if isinstance(inner, Mapping) and primary_key in inner:
        return inner
    return None


def _interpret(
    raw: Any,
    provider: str,
    *,
    task: str,
    model: type[ResultT],
    primary_key: str,
    wrapper_key: str,
    heuristic: Callable[[str, str], tuple[ResultT, float]],
    default: Callable[[str], ResultT],
) -> ParseOutcome[ResultT]:
    outcome: ParseOutcome[ResultT]
    if raw is None or raw == "":
        outcome = Default(default(provider))
    else:
        try:
            outcome = _interpret_present(
                raw,
                provider,
                model=model,
                primary_key=primary_key,
                wrapper_key=wrapper_key,
                heuristic=heuristic,
                default=default,
            )
        except (ValidationError, ValueError, TypeError, KeyError) as exc:
            logger.warning("Could not interpret %s reply, using default: %s", task, exc)
            outcome = Default(default(provider))

    record_interpretation(task, outcome.provenance.value)
    return outcome


def _interpret_present(
    raw: Any,
    provider: str,
    *,
    model: type[ResultT],
    primary_key: str,
    wrapper_key: str,
    heuristic: Callable[[str, str], tuple[ResultT, float]],
    default: Callable[[str], ResultT],
) -> ParseOutcome[ResultT]:
    candidate = _structured_candidate(raw, primary_key, wrapper_key)
    if candidate is not None:
        try:
            return Structured(model.model_validate({**candidate, "provider": provider}))
        except ValidationError as exc:
            logger.info("Structured reply failed validation, falling back to heuristics: %s", exc)

    text = _response_text(raw)
    if not text.strip():
        return Default(default(provider))
    result, confidence = heuristic(text, provider)
    return HeuristicExtracted(result, confidence)


# ------------------------------------------------------------------------ analysis


def default_analysis(provider: str) -> AnalysisResult:
    return AnalysisResult.model_validate(
        {
            "scores": {
                "callOpening": {
                    "score": 80,
                    "feedback": "Standard call opening evaluation",
                    "criteria": ["Greeting", "Introduction", "Purpose"],
                },
                "issueUnderstanding": {
                    "score": 70,
                    "feedback": "Issue comprehension assessment",
                    "criteria": ["Active listening", "Question asking", "Issue identification"],
                },
                "sentiment": {
                    "agentSentiment": "positive",
                    "customerSentiment": "neutral",
                    "overallTone": "professional",
                    "feedback": "Default sentiment analysis",
                },
                "csat": {
                    "predictedScore": 4,
                    "confidence": 75,
                    "indicators": ["Professional service"],
                    "feedback": "Default satisfaction prediction",
                },
                "resolutionQuality": {
                    "score": 75,
                    "isResolved": True,
                    "fcr": True,
                    "feedback": "Default resolution assessment",
                },
            },
            "overallScore": 75,
            "strengths": ["Professional communication", "Efficient handling"],
            "improvementAreas": ["Response time", "Proactive communication"],
            "keyInsights": ["Default analysis generated", "Professional interaction maintained"],
            "provider": provider,
        }
    )


_NUMERIC_FIELDS = (
    (("opening", "greeting"), 80.0),
    (("understanding", "comprehension"), 70.0),
    (("resolution", "solution"), 75.0),
    (("overall", "total", "score"), 75.0),
)


def analysis_from_text(text: str, provider: str) -> tuple[AnalysisResult, float]:
    """Build an analysis from free text and report the share of scores found."""

    found = [extract_numeric_value(text, keywords) for keywords, _ in _NUMERIC_FIELDS]
    opening, understanding, resolution, overall = (
        value if value is not None else fallback
        for value, (_, fallback) in zip(found, _NUMERIC_FIELDS)
    )
    sentiment = extract_sentiment(text)

    result = AnalysisResult.model_validate(
        {
            "scores": {
                "callOpening": {
                    "score": opening,
                    "feedback": "Analysis extracted from text response",
                    "criteria": ["Greeting", "Introduction", "Purpose"],
                },
                "issueUnderstanding": {
                    "score": understanding,
                    "feedback": "Issue comprehension assessment from text",
                    "criteria": ["Active listening", "Question asking", "Issue identification"],
                },
                "sentiment": {
                    "agentSentiment": sentiment,
                    "customerSentiment": sentiment,
                    "overallTone": "professional",
                    "feedback": "Sentiment analysis from text",
                },
                "csat": {
                    "predictedScore": 4,
                    "confidence": 75,
                    "indicators": extract_list_items(text, ("satisfaction", "happy", "pleased")),
                    "feedback": "Customer satisfaction analysis from text",
                },
                "resolutionQuality": {
                    "score": resolution,
                    "isResolved": True,
                    "fcr": True,
                    "feedback": "Resolution quality assessment from text",
                },
            },
            "overallScore": overall,
            "strengths": extract_list_items(text, ("strength", "good", "positive", "well")),
            "improvementAreas": extract_list_items(text, ("improve", "better", "weakness", "issue")),
            "keyInsights": extract_list_items(text, ("insight", "observation", "note", "important")),
            "provider": provider,
        }
    )
    confidence = sum(value is not None for value in found) / len(found)
    return result, confidence


def interpret_analysis(raw: Any, provider: str) -> ParseOutcome[AnalysisResult]:
    return _interpret(
        raw,
        provider,
        task="analysis",
        model=AnalysisResult,
        primary_key="scores",
        wrapper_key="analysis",
        heuristic=analysis_from_text,
        default=default_analysis,
    )


# ------------------------------------------------------------------------ coaching


def default_coaching(provider: str) -> CoachingPlan:
    return CoachingPlan.model_validate(
        {
            "personalizedFeedback": {
                "summary": f"Coaching analysis completed using {provider} open-source models",
                "detailedFeedback": "Generated coaching recommendations based on AI analysis",
                "priorityAreas": ["Communication skills", "Customer service excellence"],
                "actionItems": ["Review call handling procedures", "Practice empathy techniques"],
            },
            "recommendedResources": {"articles": [], "videos": [], "callExamples": []},
            "quiz": {"questions": [], "passingScore": 80, "estimatedTime": 5},
            "provider": provider,
        }
    )


def coaching_from_text(text: str, provider: str) -> tuple[CoachingPlan, float]:
    """Build a coaching plan from free text and report the share of fields found."""

    summary = extract_summary(text)
    priorities = extract_list_items(text, ("priority", "focus", "important", "key"))
    actions = extract_list_items(text, ("action", "do", "practice", "work on"))

    result = CoachingPlan.model_validate(
        {
            "personalizedFeedback": {
                "summary": summary or "Coaching analysis completed using open-source AI",
                "detailedFeedback": truncate(text, 500),
                "priorityAreas": priorities,
                "actionItems": actions,
            },
            "recommendedResources": {
                "articles": [
                    {
                        "title": "AI-Generated Learning Resource",
                        "description": "Open-source AI coaching recommendations",
                        "url": "#",
                        "category": "coaching",
                        "estimatedReadTime": 5,
                    }
                ],
                "videos": [],
                "callExamples": [],
            },
            "quiz": {"questions": [], "passingScore": 80, "estimatedTime": 5},
            "provider": provider,
        }
    )
    found = [
        summary is not None,
        priorities != [PLACEHOLDER_ITEM],
        actions != [PLACEHOLDER_ITEM],
    ]
    return result, sum(found) / len(found)


def interpret_coaching(raw: Any, provider: str) -> ParseOutcome[CoachingPlan]:
    return _interpret(
        raw,
        provider,
        task="coaching",
        model=CoachingPlan,
        primary_key="personalizedFeedback",
        wrapper_key="coaching",
        heuristic=coaching_from_text,
        default=default_coaching,
    )


__all__ = [
    "Default",
    "HeuristicExtracted",
    "ParseOutcome",
    "Structured",
    "analysis_from_text",
    "coaching_from_text",
    "default_analysis",
    "default_coaching",
    "extract_json_object",
    "interpret_analysis",
    "interpret_coaching",
]
