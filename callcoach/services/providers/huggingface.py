"""Hosted inference gateway with retry, backoff and model fallback."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from callcoach.config.settings import HuggingFaceConfig
from callcoach.telemetry import record_provider_request, record_provider_retry

from .base import (
    ANALYSIS_TASK,
    COACHING_TASK,
    ProviderError,
    ProviderExhaustedError,
    ProviderGateway,
    RawResponse,
    TranscriptionOutput,
    TransientProviderError,
    extract_generated_text,
    extract_transcript_text,
)
from .mock import mock_transcription

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

_LOADING_PATTERN = re.compile(r"loading", re.IGNORECASE)
_RETRYABLE_STATUS = frozenset({429, 503})
_TRANSCRIPTION_CONFIDENCE = 0.9

_GENERATION_PARAMETERS = {
    ANALYSIS_TASK: {"max_new_tokens": 1024, "temperature": 0.2, "top_p": 0.95},
    COACHING_TASK: {"max_new_tokens": 800, "temperature": 0.15, "top_p": 0.95},
}


def backoff_delay_ms(attempt: int, base_ms: int) -> int:
    """Delay before retrying after a transient failure on ``attempt`` (0-based)."""

    return base_ms * (2**attempt)


class HuggingFaceGateway(ProviderGateway):
    """Call the hosted inference API for transcription and text generation."""

    name = "huggingface"

    def __init__(
        self,
        config: HuggingFaceConfig,
        *,
        client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if config.api_key is None:
            raise ProviderError("HUGGINGFACE_API_KEY is not configured")
        self._config = config
        self._api_key = config.api_key.get_secret_value()
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
        )
        self._owns_client = client is None
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, content_type: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": content_type,
        }

    async def _pause(self, attempt: int, reason: str, transient: bool) -> None:
        if transient:
            delay_ms = backoff_delay_ms(attempt, self._config.backoff_base_ms)
        else:
            delay_ms = self._config.transient_pause_ms
        record_provider_retry(self.name, reason)
        logger.info(
            "Retrying provider request attempt=%s reason=%s wait_ms=%s",
            attempt + 1,
            reason,
            delay_ms,
        )
        await self._sleep(delay_ms / 1000)

    async def request(
        self,
        model: str,
        payload: bytes | Mapping[str, Any],
        *,
        content_type: str = "application/json",
        max_retries: Optional[int] = None,
    ) -> Any:
        """POST to ``/models/{model}`` and return the decoded response body.

        Rate limiting, unavailability and model loading back off exponentially;
        transport errors pause briefly; other provider errors are permanent and
        raised straight away so the caller can move on to another model.
        """

        retries = self._config.max_retries if max_retries is None else max_retries
        url = f"/models/{model}"
        request_kwargs: dict[str, Any] = {"headers": self._headers(content_type)}
        if isinstance(payload, (bytes, bytearray)):
            request_kwargs["content"] = bytes(payload)
        else:
            request_kwargs["json"] = dict(payload)

        last_error: Exception | None = None
        for attempt in range(retries + 1):
            final_attempt = attempt == retries
            try:
                response = await self._client.post(url, **request_kwargs)
            except httpx.HTTPError as exc:
                last_error = exc
                logger.warning("Provider transport error model=%s: %s", model, exc)
                if final_attempt:
                    break
                await self._pause(attempt, "transport", transient=False)
                continue

            try:
                data: Any = response.json()
            except ValueError:
                data = response.text

            error = data.get("error") if isinstance(data, Mapping) else None
            loading = isinstance(error, str) and bool(_LOADING_PATTERN.search(error))

            if response.status_code in _RETRYABLE_STATUS or loading:
                reason = "loading" if loading else f"http-{response.status_code}"
                last_error = TransientProviderError(
                    f"Model {model} unavailable ({reason}): {error or response.status_code}"
                )
                if final_attempt:
                    break
                await self._pause(attempt, reason, transient=True)
                continue

            if error:
                record_provider_request(self.name, model, "error")
                raise ProviderError(f"HuggingFace error for {model}: {error}")
            if response.is_error:
                record_provider_request(self.name, model, "error")
                raise ProviderError(
                    f"HuggingFace request for {model} failed with HTTP {response.status_code}"
                )

            record_provider_request(self.name, model, "success")
            return data

        record_provider_request(self.name, model, "exhausted")
        raise ProviderExhaustedError(
            f"HuggingFace request for {model} failed after {retries + 1} attempts"
        ) from last_error

    def _candidates(self, model_hint: str) -> list[str]:
        if model_hint == ANALYSIS_TASK:
            return list(self._config.analysis_models)
        if model_hint == COACHING_TASK:
            return list(self._config.coaching_models)
        return [model_hint]

    async def generate_text(self, prompt: str, model_hint: str) -> RawResponse:
        candidates = self._candidates(model_hint)
        parameters = _GENERATION_PARAMETERS.get(model_hint, _GENERATION_PARAMETERS[ANALYSIS_TASK])
        payload = {
            "inputs": prompt,
            "parameters": dict(parameters),
            "options": {"wait_for_model": True},
        }

        failures: list[str] = []
        for model in candidates:
            try:
                data = await self.request(model, payload)
            except ProviderError as exc:
                logger.warning("Model %s failed, trying next candidate: %s", model, exc)
                failures.append(f"{model}: {exc}")
                continue

            text = extract_generated_text(data)
            if text:
                logger.info("Model %s produced %s characters", model, len(text))
                return text

            logger.warning("Model %s returned no generated text", model)
            failures.append(f"{model}: empty response")

        raise ProviderExhaustedError(
            "All candidate models failed: " + "; ".join(failures)
        )

    async def transcribe(
        self,
        audio_bytes: bytes,
        content_type: Optional[str] = None,
    ) -> TranscriptionOutput:
        model = self._config.whisper_model
        try:
            data = await self.request(
                model,
                audio_bytes,
                content_type=content_type or "audio/wav",
                max_retries=self._config.transcription_max_retries,
            )
        except ProviderError as exc:
            logger.warning("Transcription via %s failed, using mock transcript: %s", model, exc)
            return mock_transcription()

        text = extract_transcript_text(data)
        if not text:
            logger.warning("Transcription via %s returned no text, using mock transcript", model)
            return mock_transcription()

        return TranscriptionOutput(
            text=text,
            duration_seconds=_chunk_duration(data),
            confidence=_TRANSCRIPTION_CONFIDENCE,
            provider=f"{self.name}:{model}",
        )


def _chunk_duration(data: Any) -> Optional[float]:
    """Return the end timestamp of the last chunk when timestamps were returned."""

    if not isinstance(data, Mapping):
        return None
    chunks = data.get("chunks")
    if not isinstance(chunks, list) or not chunks:
        return None
    timestamp = chunks[-1].get("timestamp") if isinstance(chunks[-1], Mapping) else None
    if isinstance(timestamp, (list, tuple)) and len(timestamp) == 2 and timestamp[1] is not None:
        return float(timestamp[1])
    return None


__all__ = ["HuggingFaceGateway", "backoff_delay_ms"]
