"""In-process implementations of the persistence ports.

Used when ``DB_URL=memory://`` and by the test-suite. Records are deep-copied
on the way in and out so callers never share state with the store.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

from callcoach.application.interfaces import (
    AnalysisRepositoryInterface,
    CallRepositoryInterface,
    CoachingRepositoryInterface,
    Repositories,
)
from callcoach.domain.models import (
    AnalysisRecord,
    CallRecord,
    CallStatus,
    CoachingRecord,
)
from callcoach.errors import DuplicateRecordError, RepositoryError

RecordT = TypeVar("RecordT", bound=BaseModel)


def _copy(record: RecordT) -> RecordT:
    return record.model_copy(deep=True)


def _page(items: List[RecordT], page: int, limit: int) -> List[RecordT]:
    start = (max(page, 1) - 1) * limit
    return [_copy(item) for item in items[start : start + limit]]


class InMemoryCallRepository(CallRepositoryInterface):
    def __init__(self) -> None:
        self._calls: Dict[UUID, CallRecord] = {}
        self._lock = asyncio.Lock()

    async def create(self, call: CallRecord) -> CallRecord:
        if call.id in self._calls:
            raise DuplicateRecordError(f"Call {call.id} already exists")
        self._calls[call.id] = _copy(call)
        return call

    async def get(self, call_id: UUID) -> Optional[CallRecord]:
        call = self._calls.get(call_id)
        return _copy(call) if call else None

    async def get_for_owner(self, call_id: UUID, user_id: str) -> Optional[CallRecord]:
        call = self._calls.get(call_id)
        if call is None or call.user_id != user_id:
            return None
        return _copy(call)

    async def save(self, call: CallRecord) -> CallRecord:
        if call.id not in self._calls:
            raise RepositoryError(f"Call {call.id} does not exist")
        self._calls[call.id] = _copy(call)
        return call

    async def save_if_status(
        self, call: CallRecord, expected: Iterable[CallStatus]
    ) -> bool:
        allowed = set(expected)
        async with self._lock:
            stored = self._calls.get(call.id)
            if stored is None or stored.status not in allowed:
                return False
            self._calls[call.id] = _copy(call)
            return True

    async def list_by_status(self, statuses: Iterable[CallStatus]) -> List[CallRecord]:
        wanted = set(statuses)
        return [_copy(call) for call in self._calls.values() if call.status in wanted]

    async def list_for_owner(
        self,
        user_id: str,
        *,
        status: Optional[CallStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[List[CallRecord], int]:
        matches = [
            call
            for call in self._calls.values()
            if call.user_id == user_id and (status is None or call.status is status)
        ]
        matches.sort(key=lambda call: call.uploaded_at, reverse=True)
        return _page(matches, page, limit), len(matches)

    async def delete(self, call_id: UUID) -> bool:
        return self._calls.pop(call_id, None) is not None

    async def transition_status(
        self,
        call_id: UUID,
        allowed_from: Iterable[CallStatus],
        new_status: CallStatus,
    ) -> bool:
        allowed = set(allowed_from)
        async with self._lock:
            call = self._calls.get(call_id)
            if call is None or call.status not in allowed:
                return False
            call.status = new_status
            return True


class InMemoryAnalysisRepository(AnalysisRepositoryInterface):
    def __init__(self) -> None:
        self._by_call: Dict[UUID, AnalysisRecord] = {}

    async def create(self, analysis: AnalysisRecord) -> AnalysisRecord:
        if analysis.call_id in self._by_call:
            raise DuplicateRecordError(f"Call {analysis.call_id} already has an analysis")
        self._by_call[analysis.call_id] = _copy(analysis)
        return analysis

    async def get_by_call(self, call_id: UUID) -> Optional[AnalysisRecord]:
        analysis = self._by_call.get(call_id)
        return _copy(analysis) if analysis else None

    async def list_for_owner(
        self, user_id: str, *, page: int = 1, limit: int = 10
    ) -> tuple[List[AnalysisRecord], int]:
        matches = [a for a in self._by_call.values() if a.user_id == user_id]
        matches.sort(key=lambda analysis: analysis.analyzed_at, reverse=True)
        return _page(matches, page, limit), len(matches)

    async def delete_for_call(self, call_id: UUID) -> None:
        self._by_call.pop(call_id, None)


class InMemoryCoachingRepository(CoachingRepositoryInterface):
    def __init__(self) -> None:
        self._coachings: Dict[UUID, CoachingRecord] = {}

    async def create(self, coaching: CoachingRecord) -> CoachingRecord:
        if any(c.analysis_id == coaching.analysis_id for c in self._coachings.values()):
            raise DuplicateRecordError(
                f"Analysis {coaching.analysis_id} already has a coaching plan"
            )
        self._coachings[coaching.id] = _copy(coaching)
        return coaching

    async def get_by_analysis(self, analysis_id: UUID) -> Optional[CoachingRecord]:
        for coaching in self._coachings.values():
            if coaching.analysis_id == analysis_id:
                return _copy(coaching)
        return None

    async def get_by_call(self, call_id: UUID) -> Optional[CoachingRecord]:
        for coaching in self._coachings.values():
            if coaching.call_id == call_id:
                return _copy(coaching)
        return None

    async def save(self, coaching: CoachingRecord) -> CoachingRecord:
        if coaching.id not in self._coachings:
            raise RepositoryError(f"Coaching {coaching.id} does not exist")
        self._coachings[coaching.id] = _copy(coaching)
        return coaching

    async def delete(self, coaching_id: UUID) -> bool:
        return self._coachings.pop(coaching_id, None) is not None

    async def list_for_owner(
        self, user_id: str, *, page: int = 1, limit: int = 10
    ) -> tuple[List[CoachingRecord], int]:
        matches = [c for c in self._coachings.values() if c.user_id == user_id]
        matches.sort(key=lambda coaching: coaching.created_at, reverse=True)
        return _page(matches, page, limit), len(matches)


def create_memory_repositories() -> Repositories:
    return Repositories(
        calls=InMemoryCallRepository(),
        analyses=InMemoryAnalysisRepository(),
        coachings=InMemoryCoachingRepository(),
    )


__all__ = [
    "InMemoryAnalysisRepository",
    "InMemoryCallRepository",
    "InMemoryCoachingRepository",
    "create_memory_repositories",
]
