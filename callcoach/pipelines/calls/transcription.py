"""Transcription stage of the call pipeline."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from callcoach.domain.models import CallStatus, Stage, utc_now
from callcoach.domain.state_machine import in_progress_status
from callcoach.errors import CallNotFoundError, StageSupersededError

from .types import StageContext

logger = logging.getLogger("callcoach.pipeline")


async def run_transcription(context: StageContext, call_id: UUID) -> dict[str, Any]:
    """Load the recording, transcribe it and store transcript and status together."""

    calls = context.repositories.calls
    call = await calls.get(call_id)
    if call is None:
        raise CallNotFoundError()

    audio_bytes = await context.storage.load(call.storage_ref)
    output = await context.gateway.transcribe(audio_bytes, call.mime_type)

    call.transcript = output.text
    call.transcription_provider = output.provider
    if output.duration_seconds is not None:
        call.duration_seconds = output.duration_seconds
    call.transcribed_at = utc_now()
    call.status = CallStatus.TRANSCRIBED
    call.error = None
    if not await calls.save_if_status(call, {in_progress_status(Stage.TRANSCRIBE)}):
        raise StageSupersededError(
            f"Call {call.id} left transcribing before its transcript was stored"
        )

    logger.info(
        "Transcribed call=%s provider=%s chars=%s",
        call.id,
        output.provider,
        len(output.text),
    )
    return {
        "callId": str(call.id),
        "status": call.status.value,
        "transcript": output.text,
        "duration": call.duration_seconds,
        "confidence": output.confidence,
        "provider": output.provider,
    }


__all__ = ["run_transcription"]
