"""AI provider gateways: hosted inference, local Ollama and an offline mock."""

from .base import (
    ANALYSIS_TASK,
    COACHING_TASK,
    ProviderError,
    ProviderExhaustedError,
    ProviderGateway,
    RawResponse,
    TranscriptionOutput,
    TransientProviderError,
)
from .factory import select_gateway
from .huggingface import HuggingFaceGateway
from .mock import MockGateway
from .ollama import OllamaGateway

__all__ = [
    "ANALYSIS_TASK",
    "COACHING_TASK",
    "HuggingFaceGateway",
    "MockGateway",
    "OllamaGateway",
    "ProviderError",
    "ProviderExhaustedError",
    "ProviderGateway",
    "RawResponse",
    "TranscriptionOutput",
    "TransientProviderError",
    "select_gateway",
]
