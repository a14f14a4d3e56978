"""SQLAlchemy implementations of the persistence ports."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterable, Iterator, List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from callcoach.application.interfaces import (
    AnalysisRepositoryInterface,
    CallRepositoryInterface,
    CoachingRepositoryInterface,
    Repositories,
)
from callcoach.database import session_scope
from callcoach.domain.models import (
    AnalysisRecord,
    CallRecord,
    CallStatus,
    CoachingRecord,
)
from callcoach.errors import DuplicateRecordError, RepositoryError
from callcoach.models import Analysis, Call, Coaching


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as repository errors."""

    try:
        yield
    except IntegrityError as exc:
        raise DuplicateRecordError(f"Duplicate record while trying to {action}") from exc
    except SQLAlchemyError as exc:
        raise RepositoryError(f"Failed to {action}: {exc}") from exc


def _offset(page: int, limit: int) -> int:
    return (max(page, 1) - 1) * limit


def _call_to_record(row: Call) -> CallRecord:
    return CallRecord.model_validate(
        {
            "id": row.id,
            "user_id": row.user_id,
            "storage_ref": row.storage_ref,
            "file_name": row.file_name,
            "original_name": row.original_name,
            "file_size": row.file_size,
            "mime_type": row.mime_type,
            "duration_seconds": row.duration_seconds,
            "status": row.status,
            "transcript": row.transcript,
            "transcription_provider": row.transcription_provider,
            "transcribed_at": row.transcribed_at,
            "metadata": row.call_metadata or {},
            "error": row.error,
            "uploaded_at": row.uploaded_at,
        }
    )


def _call_columns(call: CallRecord) -> dict[str, Any]:
    return {
        "user_id": call.user_id,
        "storage_ref": call.storage_ref,
        "file_name": call.file_name,
        "original_name": call.original_name,
        "file_size": call.file_size,
        "mime_type": call.mime_type,
        "duration_seconds": call.duration_seconds,
        "status": call.status,
        "transcript": call.transcript,
        "transcription_provider": call.transcription_provider,
        "transcribed_at": call.transcribed_at,
        "call_metadata": call.metadata.to_wire(),
        "error": call.error.to_wire() if call.error else None,
        "uploaded_at": call.uploaded_at,
    }


def _apply_call(row: Call, call: CallRecord) -> None:
    for attribute, value in _call_columns(call).items():
        setattr(row, attribute, value)


def _analysis_to_record(row: Analysis) -> AnalysisRecord:
    return AnalysisRecord.model_validate(
        {
            "id": row.id,
            "call_id": row.call_id,
            "user_id": row.user_id,
            "scores": row.scores,
            "overall_score": row.overall_score,
            "strengths": row.strengths or [],
            "improvement_areas": row.improvement_areas or [],
            "key_insights": row.key_insights or [],
            "provider": row.provider,
            "provenance": row.provenance,
            "confidence": row.confidence,
            "analyzed_at": row.analyzed_at,
            "analysis_version": row.analysis_version,
            "processing_time_ms": row.processing_time_ms,
        }
    )


def _coaching_to_record(row: Coaching) -> CoachingRecord:
    return CoachingRecord.model_validate(
        {
            "id": row.id,
            "analysis_id": row.analysis_id,
            "call_id": row.call_id,
            "user_id": row.user_id,
            "personalized_feedback": row.personalized_feedback,
            "recommended_resources": row.recommended_resources,
            "quiz": row.quiz,
            "completion_criteria": row.completion_criteria,
            "progress": row.progress,
            "provider": row.provider,
            "provenance": row.provenance,
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        }
    )


def _apply_coaching(row: Coaching, coaching: CoachingRecord) -> None:
    row.analysis_id = coaching.analysis_id
    row.call_id = coaching.call_id
    row.user_id = coaching.user_id
    row.personalized_feedback = coaching.personalized_feedback.to_wire()
    row.recommended_resources = coaching.recommended_resources.to_wire()
    row.quiz = coaching.quiz.to_wire()
    row.completion_criteria = coaching.completion_criteria.to_wire()
    row.progress = coaching.progress.to_wire()
    row.provider = coaching.provider
    row.provenance = coaching.provenance.value
    row.created_at = coaching.created_at
    row.updated_at = coaching.updated_at


class SQLAlchemyCallRepository(CallRepositoryInterface):
    """SQLAlchemy implementation of the call repository"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, call: CallRecord) -> CallRecord:
        with _translate_errors("create call"):
            async with session_scope(self._session_factory) as session:
                row = Call(id=call.id)
                _apply_call(row, call)
                session.add(row)
                await session.commit()
        return call

    async def get(self, call_id: UUID) -> Optional[CallRecord]:
        with _translate_errors("load call"):
            async with session_scope(self._session_factory) as session:
                row = await session.get(Call, call_id)
                return _call_to_record(row) if row else None

    async def get_for_owner(self, call_id: UUID, user_id: str) -> Optional[CallRecord]:
        with _translate_errors("load call"):
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    select(Call).where(Call.id == call_id, Call.user_id == user_id)
                )
                row = result.scalar_one_or_none()
                return _call_to_record(row) if row else None

    async def save(self, call: CallRecord) -> CallRecord:
        with _translate_errors("save call"):
            async with session_scope(self._session_factory) as session:
                row = await session.get(Call, call.id)
                if row is None:
                    raise RepositoryError(f"Call {call.id} does not exist")
                _apply_call(row, call)
                await session.commit()
        return call

    async def save_if_status(
        self, call: CallRecord, expected: Iterable[CallStatus]
    ) -> bool:
        allowed = list(expected)
        if not allowed:
            return False

        with _translate_errors("save call"):
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    update(Call)
                    .where(Call.id == call.id, Call.status.in_(allowed))
                    .values(**_call_columns(call))
                )
                await session.commit()
                written = result.rowcount
        return written == 1

    async def list_by_status(self, statuses: Iterable[CallStatus]) -> List[CallRecord]:
        wanted = list(statuses)
        if not wanted:
            return []

        with _translate_errors("list calls"):
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    select(Call).where(Call.status.in_(wanted)).order_by(Call.uploaded_at)
                )
                rows = result.scalars().all()
        return [_call_to_record(row) for row in rows]

    async def list_for_owner(
        self,
        user_id: str,
        *,
        status: Optional[CallStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[List[CallRecord], int]:
        statement = select(Call).where(Call.user_id == user_id)
        if status is not None:
            statement = statement.where(Call.status == status)

        with _translate_errors("list calls"):
            async with session_scope(self._session_factory) as session:
                total = await session.scalar(
                    select(func.count()).select_from(statement.subquery())
                )
                result = await session.execute(
                    statement.order_by(Call.uploaded_at.desc())
                    .offset(_offset(page, limit))
                    .limit(limit)
                )
                rows = result.scalars().all()
        return [_call_to_record(row) for row in rows], int(total or 0)

    async def delete(self, call_id: UUID) -> bool:
        with _translate_errors("delete call"):
            async with session_scope(self._session_factory) as session:
                result = await session.execute(delete(Call).where(Call.id == call_id))
                await session.commit()
                deleted = result.rowcount
        return deleted > 0

    async def transition_status(
        self,
        call_id: UUID,
        allowed_from: Iterable[CallStatus],
        new_status: CallStatus,
    ) -> bool:
        allowed = list(allowed_from)
        if not allowed:
            return False

        with _translate_errors("update call status"):
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    update(Call)
                    .where(Call.id == call_id, Call.status.in_(allowed))
                    .values(status=new_status)
                )
                await session.commit()
                moved = result.rowcount
        return moved == 1


class SQLAlchemyAnalysisRepository(AnalysisRepositoryInterface):
    """SQLAlchemy implementation of the analysis repository"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, analysis: AnalysisRecord) -> AnalysisRecord:
        with _translate_errors("create analysis"):
            async with session_scope(self._session_factory) as session:
                session.add(
                    Analysis(
                        id=analysis.id,
                        call_id=analysis.call_id,
                        user_id=analysis.user_id,
                        scores=analysis.scores.to_wire(),
                        overall_score=analysis.overall_score,
                        strengths=list(analysis.strengths),
                        improvement_areas=list(analysis.improvement_areas),
                        key_insights=list(analysis.key_insights),
                        provider=analysis.provider,
                        provenance=analysis.provenance.value,
                        confidence=analysis.confidence,
                        analyzed_at=analysis.analyzed_at,
                        analysis_version=analysis.analysis_version,
                        processing_time_ms=analysis.processing_time_ms,
                    )
                )
                await session.commit()
        return analysis

    async def get_by_call(self, call_id: UUID) -> Optional[AnalysisRecord]:
        with _translate_errors("load analysis"):
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    select(Analysis).where(Analysis.call_id == call_id)
                )
                row = result.scalar_one_or_none()
                return _analysis_to_record(row) if row else None

    async def list_for_owner(
        self, user_id: str, *, page: int = 1, limit: int = 10
    ) -> tuple[List[AnalysisRecord], int]:
        statement = select(Analysis).where(Analysis.user_id == user_id)
        with _translate_errors("list analyses"):
            async with session_scope(self._session_factory) as session:
                total = await session.scalar(
                    select(func.count()).select_from(statement.subquery())
                )
                result = await session.execute(
                    statement.order_by(Analysis.analyzed_at.desc())
                    .offset(_offset(page, limit))
                    .limit(limit)
                )
                rows = result.scalars().all()
        return [_analysis_to_record(row) for row in rows], int(total or 0)

    async def delete_for_call(self, call_id: UUID) -> None:
        with _translate_errors("delete analysis"):
            async with session_scope(self._session_factory) as session:
                await session.execute(delete(Analysis).where(Analysis.call_id == call_id))
                await session.commit()


class SQLAlchemyCoachingRepository(CoachingRepositoryInterface):
    """SQLAlchemy implementation of the coaching repository"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, coaching: CoachingRecord) -> CoachingRecord:
        with _translate_errors("create coaching"):
            async with session_scope(self._session_factory) as session:
                row = Coaching(id=coaching.id)
                _apply_coaching(row, coaching)
                session.add(row)
                await session.commit()
        return coaching

    async def get_by_analysis(self, analysis_id: UUID) -> Optional[CoachingRecord]:
        with _translate_errors("load coaching"):
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    select(Coaching).where(Coaching.analysis_id == analysis_id)
                )
                row = result.scalar_one_or_none()
                return _coaching_to_record(row) if row else None

    async def get_by_call(self, call_id: UUID) -> Optional[CoachingRecord]:
        with _translate_errors("load coaching"):
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    select(Coaching).where(Coaching.call_id == call_id)
                )
                row = result.scalar_one_or_none()
                return _coaching_to_record(row) if row else None

    async def save(self, coaching: CoachingRecord) -> CoachingRecord:
        with _translate_errors("save coaching"):
            async with session_scope(self._session_factory) as session:
                row = await session.get(Coaching, coaching.id)
                if row is None:
                    raise RepositoryError(f"Coaching {coaching.id} does not exist")
                _apply_coaching(row, coaching)
                await session.commit()
        return coaching

    async def delete(self, coaching_id: UUID) -> bool:
        with _translate_errors("delete coaching"):
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    delete(Coaching).where(Coaching.id == coaching_id)
                )
                await session.commit()
                deleted = result.rowcount
        return deleted > 0

    async def list_for_owner(
        self, user_id: str, *, page: int = 1, limit: int = 10
    ) -> tuple[List[CoachingRecord], int]:
        statement = select(Coaching).where(Coaching.user_id == user_id)
        with _translate_errors("list coachings"):
            async with session_scope(self._session_factory) as session:
                total = await session.scalar(
                    select(func.count()).select_from(statement.subquery())
                )
                result = await session.execute(
                    statement.order_by(Coaching.created_at.desc())
                    .offset(_offset(page, limit))
                    .limit(limit)
                )
                rows = result.scalars().all()
        return [_coaching_to_record(row) for row in rows], int(total or 0)


def create_sqlalchemy_repositories(
    session_factory: async_sessionmaker[AsyncSession],
) -> Repositories:
    return Repositories(
        calls=SQLAlchemyCallRepository(session_factory),
        analyses=SQLAlchemyAnalysisRepository(session_factory),
        coachings=SQLAlchemyCoachingRepository(session_factory),
    )


__all__ = [
    "SQLAlchemyAnalysisRepository",
    "SQLAlchemyCallRepository",
    "SQLAlchemyCoachingRepository",
    "create_sqlalchemy_repositories",
]
