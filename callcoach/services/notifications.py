"""Pipeline event fan-out to in-process subscribers and optional brokers."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict, defaultdict, deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Deque, Dict, Mapping, Sequence, Set
from uuid import UUID

from callcoach.domain.models import utc_now

logger = logging.getLogger(__name__)

TRANSCRIPTION_STARTED = "transcription-started"
TRANSCRIPTION_COMPLETED = "transcription-completed"
TRANSCRIPTION_FAILED = "transcription-failed"
ANALYSIS_STARTED = "analysis-started"
ANALYSIS_COMPLETED = "analysis-completed"
ANALYSIS_FAILED = "analysis-failed"
COACHING_STARTED = "coaching-generation-started"
COACHING_COMPLETED = "coaching-generated"
COACHING_FAILED = "coaching-generation-failed"
CALL_UPLOADED = "call-uploaded"


def call_topic(call_id: UUID | str) -> str:
    return f"call-{call_id}"


def user_topic(user_id: str) -> str:
    return f"user-{user_id}"


@dataclass(frozen=True)
class PipelineEvent:
    topic: str
    event: str
    payload: Mapping[str, Any]
    published_at: datetime = field(default_factory=utc_now)

    def to_message(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "event": self.event,
            "payload": dict(self.payload),
            "publishedAt": self.published_at.isoformat(),
        }


class EventPublisher(ABC):
    """Publish pipeline events to interested parties."""

    @abstractmethod
    async def publish(self, topic: str, event: str, payload: Mapping[str, Any]) -> None:
        ...

    async def aclose(self) -> None:
        return None


class InMemoryEventBus(EventPublisher):
    """Per-topic asyncio queues plus a short history of recent events.

    History is kept for at most ``max_topics`` topics; publishing to a new
    topic past that limit drops the least recently published one.
    """

    def __init__(self, history_size: int = 50, max_topics: int = 1000) -> None:
        self._history_size = history_size
        self._max_topics = max_topics
        self._subscribers: Dict[str, Set[asyncio.Queue[PipelineEvent]]] = defaultdict(set)
        self._history: "OrderedDict[str, Deque[PipelineEvent]]" = OrderedDict()

    async def publish(self, topic: str, event: str, payload: Mapping[str, Any]) -> None:
        message = PipelineEvent(topic=topic, event=event, payload=dict(payload))
        self._remember(message)
        for queue in list(self._subscribers.get(topic, ())):
            queue.put_nowait(message)
        logger.debug("Published %s on %s", event, topic)

    def _remember(self, message: PipelineEvent) -> None:
        events = self._history.get(message.topic)
        if events is None:
            events = deque(maxlen=self._history_size)
            self._history[message.topic] = events
        else:
            self._history.move_to_end(message.topic)
        events.append(message)

        while len(self._history) > self._max_topics:
            evicted, _ = self._history.popitem(last=False)
            logger.debug("Dropped event history of %s", evicted)

    @asynccontextmanager
    async def subscribe(self, topic: str) -> AsyncIterator[asyncio.Queue[PipelineEvent]]:
        queue: asyncio.Queue[PipelineEvent] = asyncio.Queue()
        self._subscribers[topic].add(queue)
        try:
            yield queue
        finally:
            subscribers = self._subscribers.get(topic)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[topic]

    def history(self, topic: str) -> list[PipelineEvent]:
        return list(self._history.get(topic, ()))

    def forget(self, topic: str) -> None:
        """Drop the stored history of ``topic``; live subscribers keep their queues."""

        self._history.pop(topic, None)

    @property
    def topic_count(self) -> int:
        return len(self._history)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))


class FanOutPublisher(EventPublisher):
    """Publish every event to each wrapped publisher in order."""

    def __init__(self, publishers: Sequence[EventPublisher]) -> None:
        self._publishers = list(publishers)

    async def publish(self, topic: str, event: str, payload: Mapping[str, Any]) -> None:
        for publisher in self._publishers:
            await publisher.publish(topic, event, payload)

    async def aclose(self) -> None:
        for publisher in self._publishers:
            await publisher.aclose()


__all__ = [
    "ANALYSIS_COMPLETED",
    "ANALYSIS_FAILED",
    "ANALYSIS_STARTED",
    "CALL_UPLOADED",
    "COACHING_COMPLETED",
    "COACHING_FAILED",
    "COACHING_STARTED",
    "EventPublisher",
    "FanOutPublisher",
    "InMemoryEventBus",
    "PipelineEvent",
    "TRANSCRIPTION_COMPLETED",
    "TRANSCRIPTION_FAILED",
    "TRANSCRIPTION_STARTED",
    "call_topic",
    "user_topic",
]
