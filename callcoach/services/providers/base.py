"""Provider gateway contract shared by the hosted, local and mock variants."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Union

ANALYSIS_TASK = "analysis"
COACHING_TASK = "coaching"

RawResponse = Union[str, Mapping[str, Any], Sequence[Any]]


class ProviderError(RuntimeError):
    """Raised when an AI provider request fails."""


class TransientProviderError(ProviderError):
    """Rate limiting, service unavailable or a model that is still loading."""


class ProviderExhaustedError(ProviderError):
    """Raised once every retry or every candidate model has failed."""


@dataclass(frozen=True)
class TranscriptionOutput:
    """Text recognised from a call recording."""

    text: str
    duration_seconds: Optional[float]
    confidence: Optional[float]
    provider: str


class ProviderGateway(ABC):
    """Uniform access to speech-to-text and text generation."""

    name: str = "unknown"

    @abstractmethod
    async def transcribe(
        self,
        audio_bytes: bytes,
        content_type: Optional[str] = None,
    ) -> TranscriptionOutput:
        ...

    @abstractmethod
    async def generate_text(self, prompt: str, model_hint: str) -> RawResponse:
        """Generate text for ``prompt``.

        ``model_hint`` is either a task name (``analysis``/``coaching``), which
        selects the configured candidate models, or an explicit model id.
        """

    async def aclose(self) -> None:
        return None


def extract_generated_text(data: Any) -> Optional[str]:
    """Pull generated text out of the response shapes text models return."""

    if isinstance(data, str):
        return data or None
    if isinstance(data, list) and data:
        return extract_generated_text(data[0])
    if isinstance(data, Mapping):
        for key in ("generated_text", "text", "response"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def extract_transcript_text(data: Any) -> Optional[str]:
    """Pull the recognised text out of a speech-to-text response."""

    if isinstance(data, str):
        return data.strip() or None
    if isinstance(data, list) and data:
        return extract_transcript_text(data[0])
    if isinstance(data, Mapping):
        value = data.get("text")
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


__all__ = [
    "ANALYSIS_TASK",
    "COACHING_TASK",
    "ProviderError",
    "ProviderExhaustedError",
    "ProviderGateway",
    "RawResponse",
    "TranscriptionOutput",
    "TransientProviderError",
    "extract_generated_text",
    "extract_transcript_text",
]
