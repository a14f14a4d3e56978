"""Typed containers shared across the call pipeline stages.

They live in their own module so the stage modules (`transcription`,
`analysis`, `coaching`) and the `runner` can import them without creating
circular dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from callcoach.application.interfaces import Repositories
from callcoach.domain.models import CallStatus, Stage
from callcoach.services.notifications import EventPublisher
from callcoach.services.providers import ProviderGateway
from callcoach.services.storage import AudioStorage


@dataclass(frozen=True)
class StageContext:
    """Collaborators a stage needs to do its work."""

    gateway: ProviderGateway
    repositories: Repositories
    publisher: EventPublisher
    storage: AudioStorage


@dataclass(frozen=True)
class StageAck:
    """Immediate answer to a stage trigger; the work itself continues in the background."""

    call_id: UUID
    stage: Stage
    status: CallStatus
    started: bool
    message: str
    cached: Any = None
