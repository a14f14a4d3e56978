from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional
from uuid import UUID

from callcoach.domain.models import (
    AnalysisRecord,
    CallRecord,
    CallStatus,
    CoachingRecord,
)


class CallRepositoryInterface(ABC):
    """Persistence contract for uploaded calls"""

    @abstractmethod
    async def create(self, call: CallRecord) -> CallRecord:
        ...

    @abstractmethod
    async def get(self, call_id: UUID) -> Optional[CallRecord]:
        ...

    @abstractmethod
    async def get_for_owner(self, call_id: UUID, user_id: str) -> Optional[CallRecord]:
        ...

    @abstractmethod
    async def save(self, call: CallRecord) -> CallRecord:
        ...

    @abstractmethod
    async def save_if_status(
        self, call: CallRecord, expected: Iterable[CallStatus]
    ) -> bool:
        """Write ``call`` only while the stored status is still in ``expected``."""

    @abstractmethod
    async def list_for_owner(
        self,
        user_id: str,
        *,
        status: Optional[CallStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[List[CallRecord], int]:
        """Return one page of calls, newest first, and the total count."""

    @abstractmethod
    async def list_by_status(self, statuses: Iterable[CallStatus]) -> List[CallRecord]:
        ...

    @abstractmethod
    async def delete(self, call_id: UUID) -> bool:
        ...

    @abstractmethod
    async def transition_status(
        self,
        call_id: UUID,
        allowed_from: Iterable[CallStatus],
        new_status: CallStatus,
    ) -> bool:
        """Atomically set ``new_status`` if the current status is in ``allowed_from``."""


class AnalysisRepositoryInterface(ABC):
    """Persistence contract for call analyses"""

    @abstractmethod
    async def create(self, analysis: AnalysisRecord) -> AnalysisRecord:
        """Insert an analysis; raises ``DuplicateRecordError`` if the call already has one."""

    @abstractmethod
    async def get_by_call(self, call_id: UUID) -> Optional[AnalysisRecord]:
        ...

    @abstractmethod
    async def list_for_owner(
        self, user_id: str, *, page: int = 1, limit: int = 10
    ) -> tuple[List[AnalysisRecord], int]:
        ...

    @abstractmethod
    async def delete_for_call(self, call_id: UUID) -> None:
        ...


class CoachingRepositoryInterface(ABC):
    """Persistence contract for coaching plans"""

    @abstractmethod
    async def create(self, coaching: CoachingRecord) -> CoachingRecord:
        """Insert a plan; raises ``DuplicateRecordError`` if the analysis already has one."""

    @abstractmethod
    async def get_by_analysis(self, analysis_id: UUID) -> Optional[CoachingRecord]:
        ...

    @abstractmethod
    async def get_by_call(self, call_id: UUID) -> Optional[CoachingRecord]:
        ...

    @abstractmethod
    async def save(self, coaching: CoachingRecord) -> CoachingRecord:
        ...

    @abstractmethod
    async def delete(self, coaching_id: UUID) -> bool:
        ...

    @abstractmethod
    async def list_for_owner(
        self, user_id: str, *, page: int = 1, limit: int = 10
    ) -> tuple[List[CoachingRecord], int]:
        ...


@dataclass(frozen=True)
class Repositories:
    """Bundle of the persistence ports the pipeline and controllers depend on."""

    calls: CallRepositoryInterface
    analyses: AnalysisRepositoryInterface
    coachings: CoachingRepositoryInterface
