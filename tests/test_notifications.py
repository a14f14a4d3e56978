"""In-process event bus and publisher fan-out."""

from __future__ import annotations

from typing import Any, Mapping

import pytest

from callcoach.services.notifications import (
    EventPublisher,
    FanOutPublisher,
    InMemoryEventBus,
    call_topic,
    user_topic,
)


class RecordingPublisher(EventPublisher):
    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []
        self.closed = False

    async def publish(self, topic: str, event: str, payload: Mapping[str, Any]) -> None:
        self.events.append((topic, event, dict(payload)))

    async def aclose(self) -> None:
        self.closed = True


def test_topics_are_prefixed():
    assert call_topic("abc") == "call-abc"
    assert user_topic("agent-42") == "user-agent-42"


@pytest.mark.asyncio
async def test_subscribers_receive_events_for_their_topic(event_bus):
    async with event_bus.subscribe("call-1") as queue:
        assert event_bus.subscriber_count("call-1") == 1
        await event_bus.publish("call-1", "transcription-started", {"callId": "1"})
        await event_bus.publish("call-2", "transcription-started", {"callId": "2"})

        message = queue.get_nowait()
        assert message.event == "transcription-started"
        assert message.payload == {"callId": "1"}
        assert queue.empty()

    assert event_bus.subscriber_count("call-1") == 0


@pytest.mark.asyncio
async def test_history_is_bounded():
    bus = InMemoryEventBus(history_size=2)

    for index in range(3):
        await bus.publish("call-1", f"event-{index}", {})

    assert [event.event for event in bus.history("call-1")] == ["event-1", "event-2"]
    assert bus.history("call-unknown") == []


@pytest.mark.asyncio
async def test_least_recently_published_topic_is_evicted():
    bus = InMemoryEventBus(history_size=5, max_topics=2)

    await bus.publish("call-1", "transcription-started", {})
    await bus.publish("call-2", "transcription-started", {})
    await bus.publish("call-1", "transcription-completed", {})
    await bus.publish("call-3", "transcription-started", {})

    assert bus.topic_count == 2
    assert bus.history("call-2") == []
    assert [event.event for event in bus.history("call-1")] == [
        "transcription-started",
        "transcription-completed",
    ]
    assert len(bus.history("call-3")) == 1


@pytest.mark.asyncio
async def test_forget_drops_history_but_keeps_subscribers(event_bus):
    async with event_bus.subscribe("call-1") as queue:
        await event_bus.publish("call-1", "transcription-started", {})
        event_bus.forget("call-1")
        event_bus.forget("call-never-used")

        assert event_bus.history("call-1") == []
        assert event_bus.topic_count == 0

        await event_bus.publish("call-1", "transcription-completed", {})
        assert queue.qsize() == 2


@pytest.mark.asyncio
async def test_messages_use_wire_keys(event_bus):
    await event_bus.publish("call-1", "analysis-completed", {"overallScore": 85})

    message = event_bus.history("call-1")[0].to_message()

    assert message["topic"] == "call-1"
    assert message["event"] == "analysis-completed"
    assert message["payload"] == {"overallScore": 85}
    assert "publishedAt" in message


@pytest.mark.asyncio
async def test_fan_out_publishes_to_every_publisher_in_order():
    first, second = RecordingPublisher(), RecordingPublisher()
    publisher = FanOutPublisher([first, second])

    await publisher.publish("user-1", "call-uploaded", {"callId": "c"})
    await publisher.aclose()

    assert first.events == [("user-1", "call-uploaded", {"callId": "c"})]
    assert second.events == first.events
    assert first.closed and second.closed
