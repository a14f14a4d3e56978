"""Lifecycle rules for starting pipeline stages."""

from __future__ import annotations

import pytest

from callcoach.domain.models import CallStatus, Stage
from callcoach.domain.state_machine import (
    IN_PROGRESS_STATUSES,
    derive_status,
    effective_status,
    in_progress_status,
    plan_stage,
    stage_for_status,
)
from callcoach.errors import PreconditionError, StageConflictError

from conftest import MOCK_TRANSCRIPT, make_analysis, make_call, make_coaching


def test_transcribe_starts_from_uploaded():
    decision = plan_stage(Stage.TRANSCRIBE, make_call())

    assert decision.proceed
    assert CallStatus.UPLOADED in decision.allowed_from
    assert in_progress_status(Stage.TRANSCRIBE) is CallStatus.TRANSCRIBING


def test_transcribe_short_circuits_when_transcript_exists():
    call = make_call(status=CallStatus.ANALYZED, transcript=MOCK_TRANSCRIPT)

    decision = plan_stage(Stage.TRANSCRIBE, call)

    assert not decision.proceed
    assert decision.cached == MOCK_TRANSCRIPT


def test_transcribe_rejects_call_already_transcribing():
    with pytest.raises(StageConflictError, match="already in progress"):
        plan_stage(Stage.TRANSCRIBE, make_call(status=CallStatus.TRANSCRIBING))


def test_analyze_requires_transcript():
    with pytest.raises(PreconditionError, match="transcribed before analysis"):
        plan_stage(Stage.ANALYZE, make_call())


def test_analyze_returns_existing_analysis():
    call = make_call(status=CallStatus.ANALYZED, transcript=MOCK_TRANSCRIPT)
    analysis = make_analysis(call)

    decision = plan_stage(Stage.ANALYZE, call, analysis=analysis)

    assert not decision.proceed
    assert decision.cached is analysis


def test_analyze_can_retry_after_failure():
    call = make_call(status=CallStatus.FAILED, transcript=MOCK_TRANSCRIPT)

    assert plan_stage(Stage.ANALYZE, call).proceed


def test_analyze_rejects_call_busy_with_coaching():
    call = make_call(status=CallStatus.GENERATING_COACHING, transcript=MOCK_TRANSCRIPT)

    with pytest.raises(StageConflictError, match="cannot start"):
        plan_stage(Stage.ANALYZE, call)


def test_coach_requires_analysis():
    call = make_call(status=CallStatus.TRANSCRIBED, transcript=MOCK_TRANSCRIPT)

    with pytest.raises(PreconditionError, match="analyze the call first"):
        plan_stage(Stage.COACH, call)


def test_coach_short_circuits_unless_forced():
    call = make_call(status=CallStatus.COACHING_GENERATED, transcript=MOCK_TRANSCRIPT)
    analysis = make_analysis(call)
    coaching = make_coaching(analysis)

    cached = plan_stage(Stage.COACH, call, analysis=analysis, coaching=coaching)
    forced = plan_stage(Stage.COACH, call, analysis=analysis, coaching=coaching, force=True)

    assert not cached.proceed and cached.cached is coaching
    assert forced.proceed and forced.replaces is coaching


def test_not_found_errors_are_preconditions_with_status_codes():
    assert PreconditionError.status_code == 400
    assert StageConflictError.status_code == 409
    assert issubclass(StageConflictError, PreconditionError)


def test_derive_status_follows_existing_records():
    call = make_call(status=CallStatus.TRANSCRIBING, transcript=MOCK_TRANSCRIPT)
    analysis = make_analysis(call)

    assert derive_status(call, None, None) is CallStatus.TRANSCRIBED
    assert derive_status(call, analysis, None) is CallStatus.ANALYZED
    assert derive_status(call, analysis, make_coaching(analysis)) is CallStatus.COACHING_GENERATED


def test_effective_status_repairs_stale_in_progress_call():
    stale = make_call(status=CallStatus.TRANSCRIBING, transcript=MOCK_TRANSCRIPT)
    running = make_call(status=CallStatus.TRANSCRIBING)
    failed = make_call(status=CallStatus.FAILED, transcript=MOCK_TRANSCRIPT)

    assert effective_status(stale, None, None) is CallStatus.TRANSCRIBED
    assert effective_status(running, None, None) is CallStatus.TRANSCRIBING
    assert effective_status(failed, None, None) is CallStatus.FAILED


def test_in_progress_statuses_map_back_to_their_stage():
    assert IN_PROGRESS_STATUSES == {
        CallStatus.TRANSCRIBING,
        CallStatus.ANALYZING,
        CallStatus.GENERATING_COACHING,
    }
    for stage in Stage:
        assert stage_for_status(in_progress_status(stage)) is stage
    assert stage_for_status(CallStatus.FAILED) is None
