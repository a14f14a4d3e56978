"""Start pipeline stages for a call and run them in the background.

``begin_stage`` validates the request against the call's lifecycle, moves the
call into the stage's in-progress status with a compare-and-set transition
and returns immediately. The stage work runs as an asyncio task; its outcome
is written back onto the call and announced on the call's event topic.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Mapping, Optional
from uuid import UUID

from callcoach.domain.models import (
    AnalysisRecord,
    CallError,
    CallRecord,
    CallStatus,
    CoachingRecord,
    Stage,
)
from callcoach.domain.state_machine import (
    IN_PROGRESS_STATUSES,
    effective_status,
    in_progress_status,
    plan_stage,
    stage_for_status,
)
from callcoach.errors import (
    CallNotFoundError,
    RepositoryError,
    StageConflictError,
    StageSupersededError,
)
from callcoach.services import notifications
from callcoach.telemetry import record_stage_event

from .analysis import run_analysis
from .coaching import run_coaching
from .transcription import run_transcription
from .types import StageAck, StageContext

logger = logging.getLogger("callcoach.pipeline")

StageWork = Callable[[StageContext, UUID], Awaitable[Mapping[str, Any]]]

_WORK: dict[Stage, StageWork] = {
    Stage.TRANSCRIBE: run_transcription,
    Stage.ANALYZE: run_analysis,
    Stage.COACH: run_coaching,
}

_STARTED_EVENTS = {
    Stage.TRANSCRIBE: notifications.TRANSCRIPTION_STARTED,
    Stage.ANALYZE: notifications.ANALYSIS_STARTED,
    Stage.COACH: notifications.COACHING_STARTED,
}

_COMPLETED_EVENTS = {
    Stage.TRANSCRIBE: notifications.TRANSCRIPTION_COMPLETED,
    Stage.ANALYZE: notifications.ANALYSIS_COMPLETED,
    Stage.COACH: notifications.COACHING_COMPLETED,
}

_FAILED_EVENTS = {
    Stage.TRANSCRIBE: notifications.TRANSCRIPTION_FAILED,
    Stage.ANALYZE: notifications.ANALYSIS_FAILED,
    Stage.COACH: notifications.COACHING_FAILED,
}


class StageRunner:
    """Own the background tasks of every running stage."""

    def __init__(self, context: StageContext) -> None:
        self._context = context
        self._tasks: set[asyncio.Task[None]] = set()
        self._active: dict[UUID, asyncio.Task[None]] = {}

    @property
    def context(self) -> StageContext:
        return self._context

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def begin_stage(
        self,
        stage: Stage,
        call_id: UUID,
        caller: str,
        *,
        force: bool = False,
    ) -> StageAck:
        """Validate and start ``stage`` for a call owned by ``caller``.

        Returns without waiting for the work. Raises ``CallNotFoundError`` when
        the call does not exist for the caller, ``PreconditionError`` when the
        stage inputs are missing and ``StageConflictError`` when the call is
        busy with this or another stage.
        """

        repositories = self._context.repositories
        call = await repositories.calls.get_for_owner(call_id, caller)
        if call is None:
            raise CallNotFoundError()

        analysis = await repositories.analyses.get_by_call(call.id)
        coaching = (
            await repositories.coachings.get_by_analysis(analysis.id)
            if analysis is not None
            else None
        )
        call = await self._repair_status(call, analysis, coaching)

        decision = plan_stage(stage, call, analysis=analysis, coaching=coaching, force=force)
        if not decision.proceed:
            record_stage_event(stage.value, "skipped")
            logger.info("Stage %s skipped call=%s: output exists", stage.value, call.id)
            return StageAck(
                call_id=call.id,
                stage=stage,
                status=call.status,
                started=False,
                message=f"{stage.label} already completed",
                cached=decision.cached,
            )

        target = in_progress_status(stage)
        moved = await repositories.calls.transition_status(
            call.id, decision.allowed_from, target
        )
        if not moved:
            raise StageConflictError(f"{stage.label} already in progress")

        if decision.replaces is not None:
            try:
                await repositories.coachings.delete(decision.replaces.id)
            except RepositoryError:
                await repositories.calls.transition_status(call.id, {target}, call.status)
                raise
            logger.info("Replacing coaching %s for call=%s", decision.replaces.id, call.id)

        record_stage_event(stage.value, "started")
        await self._notify(
            call.id,
            _STARTED_EVENTS[stage],
            {"callId": str(call.id), "status": target.value},
        )
        self._spawn(stage, call.id)
        return StageAck(
            call_id=call.id,
            stage=stage,
            status=target,
            started=True,
            message=f"{stage.label} started",
        )

    async def drain(self) -> None:
        """Wait for every running stage task, including ones started meanwhile."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()

    async def recover_interrupted(self) -> int:
        """Settle calls left in an in-progress status by a process that stopped.

        A call whose stage output was already stored moves to the status its
        records imply; any other call is marked failed at that stage so the
        stage can be triggered again. Calls this runner is working on are left
        alone. Returns how many calls were moved.
        """

        repositories = self._context.repositories
        recovered = 0
        for call in await repositories.calls.list_by_status(IN_PROGRESS_STATUSES):
            stage = stage_for_status(call.status)
            if stage is None or call.id in self._active:
                continue

            analysis = await repositories.analyses.get_by_call(call.id)
            coaching = (
                await repositories.coachings.get_by_analysis(analysis.id)
                if analysis is not None
                else None
            )
            status = effective_status(call, analysis, coaching)
            if status is not call.status:
                moved = await repositories.calls.transition_status(
                    call.id, {call.status}, status
                )
            else:
                status = CallStatus.FAILED
                call.status = status
                call.error = CallError(
                    message=f"{stage.label} was interrupted before completion",
                    step=stage.step,
                )
                moved = await repositories.calls.save_if_status(
                    call, {in_progress_status(stage)}
                )

            if moved:
                recovered += 1
                logger.warning(
                    "Recovered interrupted %s call=%s to=%s",
                    stage.value,
                    call.id,
                    status.value,
                )
        return recovered

    async def _repair_status(
        self,
        call: CallRecord,
        analysis: Optional[AnalysisRecord],
        coaching: Optional[CoachingRecord],
    ) -> CallRecord:
        # A running stage writes its output before its status.
        if call.id in self._active:
            return call

        status = effective_status(call, analysis, coaching)
        if status is call.status:
            return call

        calls = self._context.repositories.calls
        if await calls.transition_status(call.id, {call.status}, status):
            logger.warning(
                "Repaired stale status call=%s from=%s to=%s",
                call.id,
                call.status.value,
                status.value,
            )
            call.status = status
            return call

        refreshed = await calls.get(call.id)
        if refreshed is None:
            raise CallNotFoundError()
        return refreshed

    def _spawn(self, stage: Stage, call_id: UUID) -> None:
        task = asyncio.create_task(
            self._execute(stage, call_id),
            name=f"{stage.value}:{call_id}",
        )
        self._tasks.add(task)
        self._active[call_id] = task
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        for call_id, running in list(self._active.items()):
            if running is task:
                del self._active[call_id]

    async def _execute(self, stage: Stage, call_id: UUID) -> None:
        started = time.perf_counter()
        logger.info("Stage %s running call=%s", stage.value, call_id)
        try:
            payload = await _WORK[stage](self._context, call_id)
        except StageSupersededError as exc:
            logger.warning("Stage %s result discarded: %s", stage.value, exc)
            record_stage_event(stage.value, "superseded", time.perf_counter() - started)
            return
        except Exception as exc:  # every stage failure is recorded on the call
            elapsed = time.perf_counter() - started
            logger.exception("Stage %s failed call=%s", stage.value, call_id)
            record_stage_event(stage.value, "failed", elapsed)
            await self._record_failure(stage, call_id, exc)
            return

        elapsed = time.perf_counter() - started
        logger.info("Stage %s completed call=%s in %.2fs", stage.value, call_id, elapsed)
        record_stage_event(stage.value, "completed", elapsed)
        await self._notify(call_id, _COMPLETED_EVENTS[stage], payload)

    async def _record_failure(self, stage: Stage, call_id: UUID, exc: Exception) -> None:
        message = str(exc) or exc.__class__.__name__
        error = CallError(message=message, step=stage.step)

        calls = self._context.repositories.calls
        try:
            call = await calls.get(call_id)
            if call is not None:
                call.status = CallStatus.FAILED
                call.error = error
                if not await calls.save_if_status(call, {in_progress_status(stage)}):
                    logger.warning(
                        "Call=%s left %s before its %s failure was recorded",
                        call_id,
                        in_progress_status(stage).value,
                        stage.value,
                    )
                    return
        except RepositoryError:
            logger.exception("Could not record %s failure for call=%s", stage.value, call_id)

        await self._notify(
            call_id,
            _FAILED_EVENTS[stage],
            {
                "callId": str(call_id),
                "status": CallStatus.FAILED.value,
                "error": message,
                "step": error.step,
                "timestamp": error.timestamp.isoformat(),
            },
        )

    async def _notify(self, call_id: UUID, event: str, payload: Mapping[str, Any]) -> None:
        try:
            await self._context.publisher.publish(
                notifications.call_topic(call_id), event, payload
            )
        except Exception:  # notification delivery never decides a stage outcome
            logger.exception("Failed to publish %s for call=%s", event, call_id)


__all__ = ["StageRunner", "StageWork"]
