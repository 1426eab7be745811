"""
WebSocket endpoint for real-time deltas.

/ws?token=<jwt>&events=<id>,<id>
    Subscribes the connection to:
    - event:<id> for every listed event (and any added later)
    - events: listing feed (newEvent, eventUpdated, eventDeleted)
    - operator:<caller>: checkInDue / welfareCheckDue prompts

Client frames:
    {"action": "subscribe", "eventId": "..."}
    {"action": "unsubscribe", "eventId": "..."}
    {"action": "ping"}

Server frames are Delta messages {type, topic, payload, timestamp, sequence}
plus "connected", "subscribed", "unsubscribed", "pong" and "error" replies.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ...errors import Unauthenticated
from ...services.broadcast import EVENTS_TOPIC, Delta, Subscription, event_topic, operator_topic
from ...security import resolve_principal

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _event_ids(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


async def _send_loop(websocket: WebSocket, queue: "asyncio.Queue[Delta]", stop_event: asyncio.Event) -> None:
    while not stop_event.is_set():
        delta = await queue.get()
        await websocket.send_json(delta.to_message())


async def _receive_loop(websocket: WebSocket, subscription: Subscription, stop_event: asyncio.Event) -> None:
    while not stop_event.is_set():
        try:
            raw = await websocket.receive_text()
        except WebSocketDisconnect:
            return
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            await websocket.send_json({"type": "error", "message": "Frames must be JSON"})
            continue
        if not isinstance(message, dict):
            await websocket.send_json({"type": "error", "message": "Frames must be JSON objects"})
            continue

        action = message.get("action")
        event_id = message.get("eventId")
        if action == "ping":
            await websocket.send_json({"type": "pong"})
        elif action in ("subscribe", "unsubscribe") and isinstance(event_id, str) and event_id:
            if action == "subscribe":
                subscription.add_topic(event_topic(event_id))
                await websocket.send_json({"type": "subscribed", "eventId": event_id})
            else:
                subscription.remove_topic(event_topic(event_id))
                await websocket.send_json({"type": "unsubscribed", "eventId": event_id})
        else:
            await websocket.send_json({"type": "error", "message": f"Unsupported action: {action}"})


@router.websocket("/ws")
async def websocket_deltas(websocket: WebSocket):
    """Stream deltas for the requested events. JWT is validated before accept()."""
    try:
        principal = resolve_principal(websocket.query_params.get("token"))
    except Unauthenticated as exc:
        await websocket.close(code=4001, reason=exc.message)
        return

    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: "asyncio.Queue[Delta]" = asyncio.Queue()

    # Publishers run on worker threads; hand deltas over to this loop.
    def sink(delta: Delta) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, delta)

    event_ids = _event_ids(websocket.query_params.get("events"))
    topics = [EVENTS_TOPIC, operator_topic(principal.id)] + [event_topic(event_id) for event_id in event_ids]
    subscription = websocket.app.state.engine.broadcaster.subscribe(*topics, sink=sink)

    try:
        await websocket.send_json({
            "type": "connected",
            "operatorId": principal.id,
            "events": event_ids,
        })
    except Exception as e:
        logger.error(f"Failed to send connection confirmation: {e}")
        subscription.close()
        return

    logger.info(f"WebSocket connected for {principal.id} ({len(event_ids)} event topic(s))")

    stop_event = asyncio.Event()
    send_task = asyncio.create_task(_send_loop(websocket, queue, stop_event))
    receive_task = asyncio.create_task(_receive_loop(websocket, subscription, stop_event))

    try:
        # Either task finishing means the client went away
        done, pending = await asyncio.wait([send_task, receive_task], return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.debug(f"WebSocket task for {principal.id} ended: {task.exception()}")
    finally:
        stop_event.set()
        subscription.close()
        logger.info(f"WebSocket disconnected for {principal.id}")
