"""Local Ollama gateway for text generation."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from callcoach.config.settings import OllamaConfig
from callcoach.telemetry import record_provider_request

from .base import (
    ANALYSIS_TASK,
    COACHING_TASK,
    ProviderError,
    ProviderGateway,
    RawResponse,
    TranscriptionOutput,
    TransientProviderError,
)

logger = logging.getLogger(__name__)


class OllamaGateway(ProviderGateway):
    """Generate text with a locally hosted Ollama model."""

    name = "ollama"

    def __init__(
        self,
        config: OllamaConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not config.url:
            raise ProviderError("OLLAMA_URL is not configured")
        self._config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.url.rstrip("/"),
            timeout=config.timeout_seconds,
        )
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def transcribe(
        self,
        audio_bytes: bytes,
        content_type: Optional[str] = None,
    ) -> TranscriptionOutput:
        raise ProviderError("Audio transcription is not supported by the local Ollama provider")

    async def generate_text(self, prompt: str, model_hint: str) -> RawResponse:
        model = self._config.model if model_hint in (ANALYSIS_TASK, COACHING_TASK) else model_hint
        try:
            response = await self._client.post(
                "/api/generate",
                json={"model": model, "prompt": prompt, "stream": False},
            )
        except httpx.HTTPError as exc:
            record_provider_request(self.name, model, "error")
            raise TransientProviderError(f"Ollama request failed: {exc}") from exc

        if response.status_code in (429, 503):
            record_provider_request(self.name, model, "error")
            raise TransientProviderError(f"Ollama unavailable (HTTP {response.status_code})")
        if response.is_error:
            record_provider_request(self.name, model, "error")
            raise ProviderError(f"Ollama request failed with HTTP {response.status_code}")

        try:
            data: Any = response.json()
        except ValueError as exc:
            record_provider_request(self.name, model, "error")
            raise ProviderError("Ollama returned a non-JSON body") from exc

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            record_provider_request(self.name, model, "error")
            raise ProviderError("Ollama response did not include generated text")

        record_provider_request(self.name, model, "success")
        logger.info("Ollama model %s produced %s characters", model, len(text))
        return text


__all__ = ["OllamaGateway"]
