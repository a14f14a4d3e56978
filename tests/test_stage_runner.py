"""Background stage execution against in-memory repositories."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional

import pytest

from conftest import MOCK_TRANSCRIPT, OWNER, make_analysis, make_call, make_coaching

from callcoach.application.interfaces import Repositories
from callcoach.domain.models import AnalysisRecord, CallStatus, Provenance, Stage
from callcoach.errors import CallNotFoundError, PreconditionError, StageConflictError
from callcoach.infrastructure.persistence.memory import (
    InMemoryAnalysisRepository,
    InMemoryCallRepository,
    InMemoryCoachingRepository,
)
from callcoach.pipelines.calls import StageContext, StageRunner
from callcoach.services import notifications
from callcoach.services.notifications import EventPublisher
from callcoach.services.providers import (
    MockGateway,
    ProviderError,
    RawResponse,
    TranscriptionOutput,
)

WAV_BYTES = b"RIFF\x24\x00\x00\x00WAVEfmt "


class CountingGateway(MockGateway):
    """Mock gateway that records how often each operation ran."""

    def __init__(self) -> None:
        super().__init__()
        self.transcriptions = 0
        self.generations: list[str] = []

    async def transcribe(
        self, audio_bytes: bytes, content_type: Optional[str] = None
    ) -> TranscriptionOutput:
        self.transcriptions += 1
        return await super().transcribe(audio_bytes, content_type)

    async def generate_text(self, prompt: str, model_hint: str) -> RawResponse:
        self.generations.append(model_hint)
        return await super().generate_text(prompt, model_hint)


class UnavailableGateway(MockGateway):
    name = "huggingface"

    async def generate_text(self, prompt: str, model_hint: str) -> RawResponse:
        raise ProviderError("All candidate models failed: model-a: 500")


class BrokenPublisher(EventPublisher):
    async def publish(self, topic: str, event: str, payload: Mapping[str, Any]) -> None:
        raise ConnectionError("broker unavailable")


class SlowAnalysisRepository(InMemoryAnalysisRepository):
    """Analysis store whose insert returns only after a commit-sized pause."""

    def __init__(self) -> None:
        super().__init__()
        self.stored = asyncio.Event()

    async def create(self, analysis: AnalysisRecord) -> AnalysisRecord:
        await super().create(analysis)
        self.stored.set()
        await asyncio.sleep(0.05)
        return analysis


def _runner(repositories, storage, publisher, gateway=None) -> StageRunner:
    return StageRunner(
        StageContext(
            gateway=gateway or MockGateway(),
            repositories=repositories,
            publisher=publisher,
            storage=storage,
        )
    )


async def _uploaded_call(repositories, storage, **kwargs):
    storage_ref, _ = await storage.save_upload(OWNER, "call.wav", WAV_BYTES, "audio/wav")
    call = make_call(storage_ref=storage_ref, **kwargs)
    await repositories.calls.create(call)
    return call


def _events(event_bus, call) -> list[str]:
    return [event.event for event in event_bus.history(notifications.call_topic(call.id))]


@pytest.mark.asyncio
async def test_full_pipeline_runs_every_stage(repositories, storage, event_bus):
    runner = _runner(repositories, storage, event_bus)
    call = await _uploaded_call(repositories, storage)

    ack = await runner.begin_stage(Stage.TRANSCRIBE, call.id, OWNER)
    assert ack.started is True
    assert ack.status is CallStatus.TRANSCRIBING
    assert ack.message == "Transcription started"
    await runner.drain()

    stored = await repositories.calls.get(call.id)
    assert stored.status is CallStatus.TRANSCRIBED
    assert stored.transcript == MOCK_TRANSCRIPT
    assert stored.transcription_provider == "mock"
    assert stored.duration_seconds is not None
    assert stored.transcribed_at is not None

    await runner.begin_stage(Stage.ANALYZE, call.id, OWNER)
    await runner.drain()

    analysis = await repositories.analyses.get_by_call(call.id)
    assert analysis.overall_score == 85
    assert analysis.provenance is Provenance.STRUCTURED
    assert analysis.confidence == 1.0
    assert (await repositories.calls.get(call.id)).status is CallStatus.ANALYZED

    await runner.begin_stage(Stage.COACH, call.id, OWNER)
    await runner.drain()

    coaching = await repositories.coachings.get_by_call(call.id)
    assert coaching.analysis_id == analysis.id
    assert [question.id for question in coaching.quiz.questions] == ["q5"]
    assert (await repositories.calls.get(call.id)).status is CallStatus.COACHING_GENERATED
    assert runner.pending == 0

    assert _events(event_bus, call) == [
        notifications.TRANSCRIPTION_STARTED,
        notifications.TRANSCRIPTION_COMPLETED,
        notifications.ANALYSIS_STARTED,
        notifications.ANALYSIS_COMPLETED,
        notifications.COACHING_STARTED,
        notifications.COACHING_COMPLETED,
    ]


@pytest.mark.asyncio
async def test_stage_failure_is_recorded_on_the_call(repositories, storage, event_bus):
    runner = _runner(repositories, storage, event_bus)
    missing_ref = "missing/never-stored.wav"
    call = make_call(storage_ref=missing_ref)
    await repositories.calls.create(call)

    await runner.begin_stage(Stage.TRANSCRIBE, call.id, OWNER)
    await runner.drain()

    stored = await repositories.calls.get(call.id)
    assert stored.status is CallStatus.FAILED
    assert stored.error.step == "transcription"
    assert missing_ref in stored.error.message

    failed = event_bus.history(notifications.call_topic(call.id))[-1]
    assert failed.event == notifications.TRANSCRIPTION_FAILED
    assert failed.payload["status"] == "failed"
    assert failed.payload["step"] == "transcription"
    assert failed.payload["timestamp"]


@pytest.mark.asyncio
async def test_failed_call_can_be_retried(repositories, storage, event_bus):
    runner = _runner(repositories, storage, event_bus)
    call = await _uploaded_call(repositories, storage, status=CallStatus.FAILED)

    ack = await runner.begin_stage(Stage.TRANSCRIBE, call.id, OWNER)
    await runner.drain()

    stored = await repositories.calls.get(call.id)
    assert ack.started is True
    assert stored.status is CallStatus.TRANSCRIBED
    assert stored.error is None


@pytest.mark.asyncio
async def test_existing_transcript_is_returned_without_provider_call(
    repositories, storage, event_bus
):
    gateway = CountingGateway()
    runner = _runner(repositories, storage, event_bus, gateway)
    call = make_call(status=CallStatus.TRANSCRIBED, transcript="Already done.")
    await repositories.calls.create(call)

    ack = await runner.begin_stage(Stage.TRANSCRIBE, call.id, OWNER)

    assert ack.started is False
    assert ack.cached == "Already done."
    assert ack.message == "Transcription already completed"
    assert runner.pending == 0
    assert gateway.transcriptions == 0
    assert _events(event_bus, call) == []


@pytest.mark.asyncio
async def test_analysis_needs_a_transcript(repositories, storage, event_bus):
    gateway = CountingGateway()
    runner = _runner(repositories, storage, event_bus, gateway)
    call = await _uploaded_call(repositories, storage)

    with pytest.raises(PreconditionError, match="transcribed before analysis"):
        await runner.begin_stage(Stage.ANALYZE, call.id, OWNER)

    assert gateway.generations == []
    assert (await repositories.calls.get(call.id)).status is CallStatus.UPLOADED


@pytest.mark.asyncio
async def test_other_users_cannot_start_stages(repositories, storage, event_bus):
    runner = _runner(repositories, storage, event_bus)
    call = await _uploaded_call(repositories, storage)

    with pytest.raises(CallNotFoundError):
        await runner.begin_stage(Stage.TRANSCRIBE, call.id, "someone-else")


@pytest.mark.asyncio
async def test_second_trigger_conflicts_while_stage_runs(repositories, storage, event_bus):
    runner = _runner(repositories, storage, event_bus)
    call = await _uploaded_call(repositories, storage)

    results = await asyncio.gather(
        runner.begin_stage(Stage.TRANSCRIBE, call.id, OWNER),
        runner.begin_stage(Stage.TRANSCRIBE, call.id, OWNER),
        return_exceptions=True,
    )
    await runner.drain()

    started = [result for result in results if not isinstance(result, Exception)]
    conflicts = [result for result in results if isinstance(result, StageConflictError)]
    assert len(started) == 1
    assert len(conflicts) == 1
    assert str(conflicts[0]) == "Transcription already in progress"
    assert _events(event_bus, call).count(notifications.TRANSCRIPTION_STARTED) == 1


@pytest.mark.asyncio
async def test_coaching_short_circuits_unless_forced(repositories, storage, event_bus):
    runner = _runner(repositories, storage, event_bus)
    call = make_call(status=CallStatus.COACHING_GENERATED, transcript=MOCK_TRANSCRIPT)
    await repositories.calls.create(call)
    analysis = make_analysis(call)
    await repositories.analyses.create(analysis)
    original = make_coaching(analysis)
    await repositories.coachings.create(original)

    cached = await runner.begin_stage(Stage.COACH, call.id, OWNER)
    assert cached.started is False
    assert cached.cached.id == original.id

    forced = await runner.begin_stage(Stage.COACH, call.id, OWNER, force=True)
    await runner.drain()

    replacement = await repositories.coachings.get_by_call(call.id)
    assert forced.started is True
    assert replacement.id != original.id
    assert await repositories.coachings.get_by_analysis(analysis.id) == replacement
    assert (await repositories.calls.get(call.id)).status is CallStatus.COACHING_GENERATED


@pytest.mark.asyncio
async def test_stale_in_progress_status_is_repaired(repositories, storage, event_bus):
    runner = _runner(repositories, storage, event_bus)
    call = make_call(status=CallStatus.ANALYZING, transcript=MOCK_TRANSCRIPT)
    await repositories.calls.create(call)
    await repositories.analyses.create(make_analysis(call))

    ack = await runner.begin_stage(Stage.ANALYZE, call.id, OWNER)

    assert ack.started is False
    assert ack.status is CallStatus.ANALYZED
    assert (await repositories.calls.get(call.id)).status is CallStatus.ANALYZED


@pytest.mark.asyncio
async def test_provider_outage_degrades_to_default_analysis(repositories, storage, event_bus):
    runner = _runner(repositories, storage, event_bus, UnavailableGateway())
    call = make_call(status=CallStatus.TRANSCRIBED, transcript=MOCK_TRANSCRIPT)
    await repositories.calls.create(call)

    await runner.begin_stage(Stage.ANALYZE, call.id, OWNER)
    await runner.drain()

    analysis = await repositories.analyses.get_by_call(call.id)
    assert analysis.provenance is Provenance.DEFAULT
    assert analysis.overall_score == 75
    assert analysis.provider == "huggingface"
    assert (await repositories.calls.get(call.id)).status is CallStatus.ANALYZED


@pytest.mark.asyncio
async def test_publisher_failures_do_not_fail_the_stage(repositories, storage):
    runner = _runner(repositories, storage, BrokenPublisher())
    call = await _uploaded_call(repositories, storage)

    ack = await runner.begin_stage(Stage.TRANSCRIBE, call.id, OWNER)
    await runner.drain()

    assert ack.started is True
    assert (await repositories.calls.get(call.id)).status is CallStatus.TRANSCRIBED


def _slow_analysis_repositories() -> Repositories:
    return Repositories(
        calls=InMemoryCallRepository(),
        analyses=SlowAnalysisRepository(),
        coachings=InMemoryCoachingRepository(),
    )


@pytest.mark.asyncio
async def test_running_analysis_is_not_repaired_by_a_coaching_trigger(storage, event_bus):
    repositories = _slow_analysis_repositories()
    runner = _runner(repositories, storage, event_bus)
    call = make_call(status=CallStatus.TRANSCRIBED, transcript=MOCK_TRANSCRIPT)
    await repositories.calls.create(call)

    await runner.begin_stage(Stage.ANALYZE, call.id, OWNER)
    await asyncio.wait_for(repositories.analyses.stored.wait(), timeout=1)

    with pytest.raises(StageConflictError, match="cannot start while call is analyzing"):
        await runner.begin_stage(Stage.COACH, call.id, OWNER)
    assert (await repositories.calls.get(call.id)).status is CallStatus.ANALYZING

    await runner.drain()
    assert (await repositories.calls.get(call.id)).status is CallStatus.ANALYZED
    assert await repositories.coachings.get_by_call(call.id) is None

    ack = await runner.begin_stage(Stage.COACH, call.id, OWNER)
    await runner.drain()

    assert ack.started is True
    assert (await repositories.calls.get(call.id)).status is CallStatus.COACHING_GENERATED


@pytest.mark.asyncio
async def test_late_result_does_not_overwrite_a_newer_status(storage, event_bus):
    repositories = _slow_analysis_repositories()
    runner = _runner(repositories, storage, event_bus)
    call = make_call(status=CallStatus.TRANSCRIBED, transcript=MOCK_TRANSCRIPT)
    await repositories.calls.create(call)

    await runner.begin_stage(Stage.ANALYZE, call.id, OWNER)
    await asyncio.wait_for(repositories.analyses.stored.wait(), timeout=1)
    # Another worker repairs the call and moves it on while the insert commits.
    moved = await repositories.calls.transition_status(
        call.id, {CallStatus.ANALYZING}, CallStatus.GENERATING_COACHING
    )
    await runner.drain()

    stored = await repositories.calls.get(call.id)
    assert moved is True
    assert stored.status is CallStatus.GENERATING_COACHING
    assert stored.error is None
    assert _events(event_bus, call) == [notifications.ANALYSIS_STARTED]


@pytest.mark.asyncio
async def test_interrupted_calls_are_recovered(repositories, storage, event_bus):
    stuck = await _uploaded_call(repositories, storage, status=CallStatus.TRANSCRIBING)
    finished = make_call(status=CallStatus.ANALYZING, transcript=MOCK_TRANSCRIPT)
    await repositories.calls.create(finished)
    await repositories.analyses.create(make_analysis(finished))
    idle = make_call()
    await repositories.calls.create(idle)

    runner = _runner(repositories, storage, event_bus)
    with pytest.raises(StageConflictError, match="already in progress"):
        await runner.begin_stage(Stage.TRANSCRIBE, stuck.id, OWNER)

    assert await runner.recover_interrupted() == 2

    failed = await repositories.calls.get(stuck.id)
    assert failed.status is CallStatus.FAILED
    assert failed.error.step == "transcription"
    assert failed.error.message == "Transcription was interrupted before completion"
    assert (await repositories.calls.get(finished.id)).status is CallStatus.ANALYZED
    assert (await repositories.calls.get(idle.id)).status is CallStatus.UPLOADED

    ack = await runner.begin_stage(Stage.TRANSCRIBE, stuck.id, OWNER)
    await runner.drain()

    assert ack.started is True
    assert (await repositories.calls.get(stuck.id)).status is CallStatus.TRANSCRIBED
    assert await runner.recover_interrupted() == 0


@pytest.mark.asyncio
async def test_recovery_skips_stages_this_runner_is_running(storage, event_bus):
    repositories = _slow_analysis_repositories()
    runner = _runner(repositories, storage, event_bus)
    call = make_call(status=CallStatus.TRANSCRIBED, transcript=MOCK_TRANSCRIPT)
    await repositories.calls.create(call)

    await runner.begin_stage(Stage.ANALYZE, call.id, OWNER)
    await asyncio.wait_for(repositories.analyses.stored.wait(), timeout=1)

    assert await runner.recover_interrupted() == 0
    assert (await repositories.calls.get(call.id)).status is CallStatus.ANALYZING

    await runner.drain()
    assert (await repositories.calls.get(call.id)).status is CallStatus.ANALYZED
