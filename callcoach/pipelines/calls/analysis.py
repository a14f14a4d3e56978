"""Analysis stage of the call pipeline."""

from __future__ import annotations

import logging
import time
from typing import Any
from uuid import UUID

from callcoach.domain.models import AnalysisRecord, CallStatus, Stage
from callcoach.domain.state_machine import in_progress_status
from callcoach.errors import CallNotFoundError, PreconditionError, StageSupersededError
from callcoach.services.prompt_builder import build_analysis_prompt
from callcoach.services.providers import ANALYSIS_TASK
from callcoach.services.response_contract import interpret_analysis

from .llm import generate_or_none
from .types import StageContext

logger = logging.getLogger("callcoach.pipeline")


async def run_analysis(context: StageContext, call_id: UUID) -> dict[str, Any]:
    """Score the transcript, persist the analysis, then mark the call analyzed."""

    started = time.perf_counter()
    repositories = context.repositories
    call = await repositories.calls.get(call_id)
    if call is None:
        raise CallNotFoundError()
    if not call.transcript:
        raise PreconditionError("Call must be transcribed before analysis")

    raw = await generate_or_none(
        context.gateway, build_analysis_prompt(call.transcript), ANALYSIS_TASK
    )
    outcome = interpret_analysis(raw, context.gateway.name)

    analysis = AnalysisRecord.model_validate(
        {
            **outcome.result.model_dump(),
            "call_id": call.id,
            "user_id": call.user_id,
            "provenance": outcome.provenance,
            "confidence": outcome.confidence,
            "processing_time_ms": int((time.perf_counter() - started) * 1000),
        }
    )
    await repositories.analyses.create(analysis)

    call.status = CallStatus.ANALYZED
    call.error = None
    if not await repositories.calls.save_if_status(call, {in_progress_status(Stage.ANALYZE)}):
        raise StageSupersededError(
            f"Call {call.id} left analyzing before it was marked analyzed"
        )

    logger.info(
        "Analyzed call=%s provenance=%s overall=%.1f",
        call.id,
        outcome.provenance.value,
        analysis.overall_score,
    )
    return {
        "callId": str(call.id),
        "status": call.status.value,
        "analysisId": str(analysis.id),
        "overallScore": analysis.overall_score,
        "provenance": analysis.provenance.value,
    }


__all__ = ["run_analysis"]
