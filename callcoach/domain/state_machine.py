"""Per-call lifecycle rules for the transcription, analysis and coaching stages.

::

    uploaded -> transcribing -> transcribed -> analyzing -> analyzed
        -> generating-coaching -> coaching-generated

``failed`` is reachable from every in-progress status and is left only by an
explicit re-trigger of a stage. The functions here are pure: they decide,
the stage runner applies the decision with an atomic status transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from callcoach.errors import PreconditionError, StageConflictError

from .models import AnalysisRecord, CallRecord, CallStatus, CoachingRecord, Stage

_IN_PROGRESS = {
    Stage.TRANSCRIBE: CallStatus.TRANSCRIBING,
    Stage.ANALYZE: CallStatus.ANALYZING,
    Stage.COACH: CallStatus.GENERATING_COACHING,
}

_SUCCESS = {
    Stage.TRANSCRIBE: CallStatus.TRANSCRIBED,
    Stage.ANALYZE: CallStatus.ANALYZED,
    Stage.COACH: CallStatus.COACHING_GENERATED,
}

_ENTRY = {
    Stage.TRANSCRIBE: frozenset({CallStatus.UPLOADED, CallStatus.FAILED}),
    Stage.ANALYZE: frozenset({CallStatus.TRANSCRIBED, CallStatus.FAILED}),
    Stage.COACH: frozenset(
        {CallStatus.ANALYZED, CallStatus.COACHING_GENERATED, CallStatus.FAILED}
    ),
}

IN_PROGRESS_STATUSES = frozenset(_IN_PROGRESS.values())


@dataclass(frozen=True)
class StageDecision:
    """Outcome of checking a stage request against the current call state.

    ``proceed`` is False when the stage output already exists; ``cached`` then
    carries it (transcript text, analysis or coaching record).
    """

    stage: Stage
    proceed: bool
    allowed_from: frozenset[CallStatus]
    cached: Any = None
    replaces: Optional[CoachingRecord] = None


def in_progress_status(stage: Stage) -> CallStatus:
    return _IN_PROGRESS[stage]


def success_status(stage: Stage) -> CallStatus:
    return _SUCCESS[stage]


def entry_statuses(stage: Stage) -> frozenset[CallStatus]:
    return _ENTRY[stage]


def stage_for_status(status: CallStatus) -> Optional[Stage]:
    """Return the stage a call in ``status`` is currently running, if any."""

    for stage, running in _IN_PROGRESS.items():
        if running is status:
            return stage
    return None


def derive_status(
    call: CallRecord,
    analysis: Optional[AnalysisRecord],
    coaching: Optional[CoachingRecord],
) -> CallStatus:
    """Compute the status implied by the records that exist for a call."""

    if coaching is not None:
        return CallStatus.COACHING_GENERATED
    if analysis is not None:
        return CallStatus.ANALYZED
    if call.transcript:
        return CallStatus.TRANSCRIBED
    return CallStatus.UPLOADED


def effective_status(
    call: CallRecord,
    analysis: Optional[AnalysisRecord],
    coaching: Optional[CoachingRecord],
) -> CallStatus:
    """Return the status the call should have, repairing stale in-progress states.

    A call left ``transcribing``/``analyzing``/``generating-coaching`` after
    its stage output was already written (a crash between the two writes) is
    reported with the status derived from its records instead.
    """

    running = stage_for_status(call.status)
    if running is None:
        return call.status

    output_exists = {
        Stage.TRANSCRIBE: bool(call.transcript),
        Stage.ANALYZE: analysis is not None,
        Stage.COACH: coaching is not None,
    }[running]
    if output_exists:
        return derive_status(call, analysis, coaching)
    return call.status


def _reject_running(stage: Stage, call: CallRecord) -> None:
    if call.status is in_progress_status(stage):
        raise StageConflictError(f"{stage.label} already in progress")
    if call.status not in entry_statuses(stage):
        raise StageConflictError(
            f"{stage.label} cannot start while call is {call.status.value}"
        )


def plan_stage(
    stage: Stage,
    call: CallRecord,
    *,
    analysis: Optional[AnalysisRecord] = None,
    coaching: Optional[CoachingRecord] = None,
    force: bool = False,
) -> StageDecision:
    """Validate a stage request and decide whether it starts or short-circuits.

    Raises ``PreconditionError`` when the inputs the stage needs are missing and
    ``StageConflictError`` when the call is busy or in an incompatible status.
    """

    allowed = entry_statuses(stage)

    if stage is Stage.TRANSCRIBE:
        if call.transcript:
            return StageDecision(stage, False, allowed, cached=call.transcript)
        _reject_running(stage, call)
        return StageDecision(stage, True, allowed)

    if stage is Stage.ANALYZE:
        if not call.transcript:
            raise PreconditionError("Call must be transcribed before analysis")
        if analysis is not None:
            return StageDecision(stage, False, allowed, cached=analysis)
        _reject_running(stage, call)
        return StageDecision(stage, True, allowed)

    if analysis is None:
        raise PreconditionError(
            "Call analysis not found. Please analyze the call first."
        )
    if coaching is not None and not force:
        return StageDecision(stage, False, allowed, cached=coaching)
    _reject_running(stage, call)
    return StageDecision(stage, True, allowed, replaces=coaching)


__all__ = [
    "IN_PROGRESS_STATUSES",
    "StageDecision",
    "derive_status",
    "effective_status",
    "entry_statuses",
    "in_progress_status",
    "plan_stage",
    "stage_for_status",
    "success_status",
]
