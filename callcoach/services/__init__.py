"""Service layer helpers for external integrations."""

from .notifications import EventPublisher, FanOutPublisher, InMemoryEventBus, PipelineEvent
from .storage import AudioStorage, StorageError

__all__ = [
    "AudioStorage",
    "EventPublisher",
    "FanOutPublisher",
    "InMemoryEventBus",
    "PipelineEvent",
    "StorageError",
]
