"""WebSocket stream of pipeline events for one call."""

import asyncio
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from callcoach.controllers.dependencies import EventBusDep, RepositoriesDep, resolve_user_id
from callcoach.services.notifications import PipelineEvent, call_topic

router = APIRouter(tags=["events"])

logger = logging.getLogger(__name__)


async def _forward(websocket: WebSocket, queue: "asyncio.Queue[PipelineEvent]") -> None:
    while True:
        event = await queue.get()
        await websocket.send_json(event.to_message())


@router.websocket("/ws/calls/{call_id}")
async def call_events(
    websocket: WebSocket,
    repositories: RepositoriesDep,
    event_bus: EventBusDep,
    call_id: UUID,
    token: Optional[str] = Query(None),
) -> None:
    """Replay recent events of the call's topic, then forward new ones as they arrive.

    Browsers cannot set headers on WebSocket requests, so the bearer token
    travels in the ``token`` query parameter.
    """

    try:
        caller = resolve_user_id(token or "")
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    call = await repositories.calls.get_for_owner(call_id, caller)
    if call is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    topic = call_topic(call.id)
    async with event_bus.subscribe(topic) as queue:
        # Nothing can be published between subscribing and this snapshot.
        for event in event_bus.history(topic):
            queue.put_nowait(event)

        forwarder = asyncio.create_task(_forward(websocket, queue))
        try:
            while True:
                # Client frames are ignored; receiving detects the disconnect.
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info("Event stream closed for call=%s", call.id)
        finally:
            forwarder.cancel()
