"""Prompts sent to the text model for the analysis and coaching stages.

Both prompts ask for JSON matching the canonical result structures so the
response interpreter can accept the reply as-is; free-text replies still go
through the heuristic extraction path.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from callcoach.domain.models import AnalysisResult

from .response_contract import extract_json_object

ANALYSIS_JSON_HEADER = "Call analysis (JSON):"

_ANALYSIS_SCHEMA = """{
  "scores": {
    "callOpening": {"score": 0-100, "feedback": "...", "criteria": ["..."]},
    "issueUnderstanding": {"score": 0-100, "feedback": "...", "criteria": ["..."]},
    "sentiment": {
      "agentSentiment": "positive|neutral|negative",
      "customerSentiment": "positive|neutral|negative",
      "overallTone": "professional|friendly|neutral|tense|hostile",
      "feedback": "..."
    },
    "csat": {"predictedScore": 1-5, "confidence": 0-100, "indicators": ["..."], "feedback": "..."},
    "resolutionQuality": {"score": 0-100, "isResolved": true, "fcr": true, "feedback": "..."}
  },
  "overallScore": 0-100,
  "strengths": ["..."],
  "improvementAreas": ["..."],
  "keyInsights": ["..."]
}"""

_COACHING_SCHEMA = """{
  "personalizedFeedback": {
    "summary": "...",
    "detailedFeedback": "...",
    "priorityAreas": ["..."],
    "actionItems": ["..."]
  },
  "recommendedResources": {
    "articles": [{"title": "...", "description": "...", "url": "...", "category": "...", "estimatedReadTime": 5}],
    "videos": [{"title": "...", "description": "...", "url": "...", "category": "...", "duration": 300}],
    "callExamples": [{"title": "...", "description": "...", "category": "...", "scores": {"callOpening": 90}}]
  },
  "quiz": {
    "questions": [{
      "id": "q1",
      "type": "multiple-choice",
      "question": "...",
      "options": ["...", "..."],
      "correctAnswer": "...",
      "explanation": "...",
      "category": "...",
      "difficulty": "easy|medium|hard"
    }],
    "passingScore": 80,
    "estimatedTime": 10
  }
}"""


def build_analysis_prompt(transcript: str) -> str:
    """Prompt asking the model to score a transcript."""

    return (
        "Analyze this customer service call transcript and provide a detailed assessment:\n\n"
        f'"{transcript}"\n\n'
        "Respond with JSON only, using exactly this structure:\n"
        f"{_ANALYSIS_SCHEMA}"
    )


def build_coaching_prompt(analysis: AnalysisResult) -> str:
    """Prompt asking the model for a coaching plan based on an analysis."""

    payload = analysis.model_dump(
        mode="json",
        by_alias=True,
        include=set(AnalysisResult.model_fields),
    )
    return (
        "Based on this call analysis, create a personalized coaching plan.\n\n"
        f"{ANALYSIS_JSON_HEADER}\n"
        f"{json.dumps(payload, indent=2)}\n\n"
        "Include personalized feedback (summary, detailed feedback, priority areas, "
        "action items), recommended resources (articles, videos, call examples) and "
        "a multiple choice quiz. Respond with JSON only, using exactly this structure:\n"
        f"{_COACHING_SCHEMA}"
    )


def extract_analysis_from_prompt(prompt: str) -> Optional[dict[str, Any]]:
    """Recover the analysis embedded by ``build_coaching_prompt``."""

    _, found, remainder = prompt.partition(ANALYSIS_JSON_HEADER)
    if not found:
        return None
    body, _, _ = remainder.partition("\n\nInclude personalized feedback")
    return extract_json_object(body)


__all__ = [
    "build_analysis_prompt",
    "build_coaching_prompt",
    "extract_analysis_from_prompt",
]
