"""SQLAlchemy repositories against a throwaway SQLite database."""

from __future__ import annotations

import pytest
import pytest_asyncio

from conftest import MOCK_TRANSCRIPT, OWNER, make_analysis, make_call, make_coaching

from callcoach.config.settings import DatabaseConfig
from callcoach.database import create_engine, create_session_factory, dispose_engine, init_models
from callcoach.domain.models import CallError, CallStatus, ResourceKind
from callcoach.errors import DuplicateRecordError
from callcoach.infrastructure.persistence.repositories_sqlalchemy import create_sqlalchemy_repositories
from callcoach.services.progress import record_resource


@pytest_asyncio.fixture
async def sql_repositories(tmp_path):
    config = DatabaseConfig(DB_URL=f"sqlite+aiosqlite:///{tmp_path / 'callcoach.db'}")
    engine = create_engine(config, debug=False)
    await init_models(engine)
    try:
        yield create_sqlalchemy_repositories(create_session_factory(engine))
    finally:
        await dispose_engine(engine)


@pytest.mark.asyncio
async def test_call_round_trip_and_owner_scoping(sql_repositories):
    call = make_call()
    await sql_repositories.calls.create(call)

    stored = await sql_repositories.calls.get(call.id)
    assert stored.id == call.id
    assert stored.status is CallStatus.UPLOADED
    assert stored.original_name == "call.wav"
    assert await sql_repositories.calls.get_for_owner(call.id, OWNER) is not None
    assert await sql_repositories.calls.get_for_owner(call.id, "someone-else") is None


@pytest.mark.asyncio
async def test_save_persists_transcript_and_error(sql_repositories):
    call = make_call()
    await sql_repositories.calls.create(call)

    call.transcript = MOCK_TRANSCRIPT
    call.status = CallStatus.FAILED
    call.error = CallError(message="Analysis failed", step="analysis")
    await sql_repositories.calls.save(call)

    stored = await sql_repositories.calls.get(call.id)
    assert stored.transcript == MOCK_TRANSCRIPT
    assert stored.status is CallStatus.FAILED
    assert stored.error.step == "analysis"
    assert stored.error.message == "Analysis failed"


@pytest.mark.asyncio
async def test_transition_status_only_moves_from_allowed_statuses(sql_repositories):
    call = make_call()
    await sql_repositories.calls.create(call)

    moved = await sql_repositories.calls.transition_status(
        call.id, {CallStatus.UPLOADED, CallStatus.FAILED}, CallStatus.TRANSCRIBING
    )
    again = await sql_repositories.calls.transition_status(
        call.id, {CallStatus.UPLOADED, CallStatus.FAILED}, CallStatus.TRANSCRIBING
    )

    assert moved is True
    assert again is False
    assert (await sql_repositories.calls.get(call.id)).status is CallStatus.TRANSCRIBING


@pytest.mark.asyncio
async def test_save_if_status_writes_only_from_expected_status(sql_repositories):
    call = make_call(status=CallStatus.TRANSCRIBING)
    await sql_repositories.calls.create(call)

    call.transcript = MOCK_TRANSCRIPT
    call.transcription_provider = "huggingface"
    call.status = CallStatus.TRANSCRIBED
    written = await sql_repositories.calls.save_if_status(call, {CallStatus.TRANSCRIBING})

    call.transcript = "stale"
    call.status = CallStatus.FAILED
    stale = await sql_repositories.calls.save_if_status(call, {CallStatus.TRANSCRIBING})

    stored = await sql_repositories.calls.get(call.id)
    assert written is True
    assert stale is False
    assert stored.status is CallStatus.TRANSCRIBED
    assert stored.transcript == MOCK_TRANSCRIPT
    assert stored.transcription_provider == "huggingface"


@pytest.mark.asyncio
async def test_list_by_status_spans_owners(sql_repositories):
    running = make_call(status=CallStatus.ANALYZING, transcript=MOCK_TRANSCRIPT)
    other = make_call(status=CallStatus.TRANSCRIBING, user_id="someone-else")
    await sql_repositories.calls.create(running)
    await sql_repositories.calls.create(other)
    await sql_repositories.calls.create(make_call())

    found = await sql_repositories.calls.list_by_status(
        {CallStatus.TRANSCRIBING, CallStatus.ANALYZING}
    )

    assert {call.id for call in found} == {running.id, other.id}
    assert await sql_repositories.calls.list_by_status([]) == []


@pytest.mark.asyncio
async def test_list_filters_by_status_and_paginates(sql_repositories):
    for _ in range(3):
        await sql_repositories.calls.create(make_call())
    await sql_repositories.calls.create(make_call(status=CallStatus.TRANSCRIBED, transcript="hi"))
    await sql_repositories.calls.create(make_call(user_id="someone-else"))

    page, total = await sql_repositories.calls.list_for_owner(OWNER, page=2, limit=3)
    uploaded, uploaded_total = await sql_repositories.calls.list_for_owner(
        OWNER, status=CallStatus.UPLOADED
    )

    assert total == 4
    assert len(page) == 1
    assert uploaded_total == 3
    assert all(call.status is CallStatus.UPLOADED for call in uploaded)


@pytest.mark.asyncio
async def test_one_analysis_per_call(sql_repositories):
    call = make_call(status=CallStatus.ANALYZED, transcript=MOCK_TRANSCRIPT)
    await sql_repositories.calls.create(call)
    analysis = make_analysis(call)
    await sql_repositories.analyses.create(analysis)

    with pytest.raises(DuplicateRecordError):
        await sql_repositories.analyses.create(make_analysis(call))

    stored = await sql_repositories.analyses.get_by_call(call.id)
    assert stored.id == analysis.id
    assert stored.scores.call_opening.score == 90
    assert stored.overall_score == 85


@pytest.mark.asyncio
async def test_coaching_progress_is_saved(sql_repositories):
    call = make_call(status=CallStatus.COACHING_GENERATED, transcript=MOCK_TRANSCRIPT)
    await sql_repositories.calls.create(call)
    analysis = make_analysis(call)
    await sql_repositories.analyses.create(analysis)
    coaching = make_coaching(analysis)
    await sql_repositories.coachings.create(coaching)

    record_resource(coaching, ResourceKind.ARTICLE, "article-1")
    await sql_repositories.coachings.save(coaching)

    stored = await sql_repositories.coachings.get_by_call(call.id)
    assert stored.id == coaching.id
    assert stored.progress.articles_read == ["article-1"]
    assert stored.completion_criteria.read_articles is True
    assert (await sql_repositories.coachings.get_by_analysis(analysis.id)).id == coaching.id


@pytest.mark.asyncio
async def test_delete_removes_records(sql_repositories):
    call = make_call(status=CallStatus.COACHING_GENERATED, transcript=MOCK_TRANSCRIPT)
    await sql_repositories.calls.create(call)
    analysis = make_analysis(call)
    await sql_repositories.analyses.create(analysis)
    coaching = make_coaching(analysis)
    await sql_repositories.coachings.create(coaching)

    assert await sql_repositories.coachings.delete(coaching.id) is True
    await sql_repositories.analyses.delete_for_call(call.id)
    assert await sql_repositories.calls.delete(call.id) is True

    assert await sql_repositories.coachings.get_by_call(call.id) is None
    assert await sql_repositories.analyses.get_by_call(call.id) is None
    assert await sql_repositories.calls.get(call.id) is None
    assert await sql_repositories.calls.delete(call.id) is False
