"""Pick the provider gateway for this process from configuration."""

from __future__ import annotations

import logging

from callcoach.config.settings import Settings

from .base import ProviderGateway
from .huggingface import HuggingFaceGateway
from .mock import MockGateway
from .ollama import OllamaGateway

logger = logging.getLogger(__name__)


def select_gateway(config: Settings) -> ProviderGateway:
    """Local Ollama first, then the hosted API, then the offline mock."""

    if config.ollama.url:
        logger.info("Using Ollama provider at %s (model %s)", config.ollama.url, config.ollama.model)
        return OllamaGateway(config.ollama)

    if config.huggingface.api_key is not None and config.huggingface.api_key.get_secret_value():
        logger.info("Using HuggingFace inference provider")
        return HuggingFaceGateway(config.huggingface)

    logger.warning("No AI provider configured, falling back to the mock provider")
    return MockGateway()


__all__ = ["select_gateway"]
