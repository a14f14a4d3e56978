"""Deterministic offline gateway for development and tests."""

from __future__ import annotations

import copy
import logging
from typing import Any, Optional

from pydantic import ValidationError

from callcoach.domain.models import AnalysisResult
from callcoach.services.coaching_templates import generate_detailed_coaching
from callcoach.services.prompt_builder import extract_analysis_from_prompt

from .base import (
    ANALYSIS_TASK,
    COACHING_TASK,
    ProviderGateway,
    RawResponse,
    TranscriptionOutput,
)

logger = logging.getLogger(__name__)

MOCK_TRANSCRIPT = (
    "Hello, thank you for calling our customer service. I'm Sarah, how can I help you today? "
    "Well, I'm having trouble with my recent order. It was supposed to arrive yesterday but "
    "I haven't received it yet. I'm sorry to hear about that. Let me look up your order "
    "information. Can you please provide me with your order number? Sure, it's ORDER-12345. "
    "Thank you. I can see your order here. It looks like there was a delay at our shipping "
    "facility, but your package is now out for delivery and should arrive today by 6 PM. "
    "That's great news! Is there anything else I can help you with? No, that's all. Thank "
    "you for your help. You're welcome! Have a great day!"
)

_WORDS_PER_SECOND = 2.5

MOCK_ANALYSIS: dict[str, Any] = {
    "scores": {
        "callOpening": {
            "score": 90,
            "feedback": "Professional greeting with clear identification",
            "criteria": ["Greeting", "Introduction", "Purpose"],
        },
        "issueUnderstanding": {
            "score": 80,
            "feedback": "Good listening skills and clarifying questions",
            "criteria": ["Active listening", "Question asking", "Issue identification"],
        },
        "sentiment": {
            "agentSentiment": "positive",
            "customerSentiment": "neutral",
            "overallTone": "professional",
            "feedback": "Maintained professional tone throughout",
        },
        "csat": {
            "predictedScore": 4,
            "confidence": 85,
            "indicators": ["Issue resolved", "Professional service", "Quick response"],
            "feedback": "Customer likely satisfied with resolution",
        },
        "resolutionQuality": {
            "score": 85,
            "isResolved": True,
            "fcr": True,
            "feedback": "Issue resolved on first contact",
        },
    },
    "overallScore": 85,
    "strengths": [
        "Polite and professional greeting",
        "Clear communication throughout the call",
        "Efficient problem resolution",
        "Empathetic response to customer concern",
    ],
    "improvementAreas": [
        "Could have proactively offered tracking information",
        "Missed opportunity to explain shipping delay reasons",
        "Could have offered compensation for the inconvenience",
    ],
    "keyInsights": [
        "Customer was initially frustrated but became satisfied",
        "Agent maintained professionalism throughout",
        "Resolution was efficient and effective",
    ],
    "provider": "mock",
}


def mock_transcription() -> TranscriptionOutput:
    words = len(MOCK_TRANSCRIPT.split())
    return TranscriptionOutput(
        text=MOCK_TRANSCRIPT,
        duration_seconds=round(words / _WORDS_PER_SECOND, 1),
        confidence=0.92,
        provider="mock",
    )


class MockGateway(ProviderGateway):
    """Return canned transcripts and analyses and rule-based coaching plans."""

    name = "mock"

    async def transcribe(
        self,
        audio_bytes: bytes,
        content_type: Optional[str] = None,
    ) -> TranscriptionOutput:
        return mock_transcription()

    async def generate_text(self, prompt: str, model_hint: str) -> RawResponse:
        if model_hint == COACHING_TASK:
            return generate_detailed_coaching(self._analysis_from(prompt), self.name)
        if model_hint != ANALYSIS_TASK:
            logger.debug("Mock gateway ignoring explicit model %s", model_hint)
        return copy.deepcopy(MOCK_ANALYSIS)

    @staticmethod
    def _analysis_from(prompt: str) -> AnalysisResult:
        embedded = extract_analysis_from_prompt(prompt)
        if embedded is not None:
            try:
                return AnalysisResult.model_validate(embedded)
            except ValidationError:
                logger.debug("Embedded analysis did not validate, using canned analysis")
        return AnalysisResult.model_validate(MOCK_ANALYSIS)


__all__ = ["MOCK_ANALYSIS", "MOCK_TRANSCRIPT", "MockGateway", "mock_transcription"]
