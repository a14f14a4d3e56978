"""Coaching stage of the call pipeline."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from callcoach.domain.models import CallStatus, CoachingRecord, Stage
from callcoach.domain.state_machine import in_progress_status
from callcoach.errors import CallNotFoundError, PreconditionError, StageSupersededError
from callcoach.services.prompt_builder import build_coaching_prompt
from callcoach.services.providers import COACHING_TASK
from callcoach.services.response_contract import interpret_coaching

from .llm import generate_or_none
from .types import StageContext

logger = logging.getLogger("callcoach.pipeline")


async def run_coaching(context: StageContext, call_id: UUID) -> dict[str, Any]:
    """Build a coaching plan from the analysis, persist it, then mark the call."""

    repositories = context.repositories
    call = await repositories.calls.get(call_id)
    if call is None:
        raise CallNotFoundError()
    analysis = await repositories.analyses.get_by_call(call.id)
    if analysis is None:
        raise PreconditionError("Call analysis not found. Please analyze the call first.")

    raw = await generate_or_none(
        context.gateway, build_coaching_prompt(analysis), COACHING_TASK
    )
    outcome = interpret_coaching(raw, context.gateway.name)

    coaching = CoachingRecord.model_validate(
        {
            **outcome.result.model_dump(),
            "analysis_id": analysis.id,
            "call_id": call.id,
            "user_id": call.user_id,
            "provenance": outcome.provenance,
        }
    )
    await repositories.coachings.create(coaching)

    call.status = CallStatus.COACHING_GENERATED
    call.error = None
    if not await repositories.calls.save_if_status(call, {in_progress_status(Stage.COACH)}):
        raise StageSupersededError(
            f"Call {call.id} left generating-coaching before it was marked complete"
        )

    logger.info(
        "Generated coaching call=%s provenance=%s questions=%s",
        call.id,
        outcome.provenance.value,
        len(coaching.quiz.questions),
    )
    return {
        "callId": str(call.id),
        "status": call.status.value,
        "coachingId": str(coaching.id),
        "provenance": coaching.provenance.value,
    }


__all__ = ["run_coaching"]
