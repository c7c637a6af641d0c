"""Chat router providing the WebSocket endpoint.

This module provides:
    - WebSocket /ws: Real-time chat messaging

The WebSocket protocol supports:
    - Topic subscriptions (room messages, typing, rosters, global online count)
    - Room join with history delivery
    - Real-time message broadcasting
    - Typing indicators
    - Explicit leave and room switching
    - Presence cleanup on abrupt disconnect

Protocol Message Types:
    - subscribe / unsubscribe: Manage topic subscriptions
    - ping: Round trip; answered with {type: "pong"} once earlier frames are handled
    - join: Enter a room
    - send: Chat message
    - typing: Typing indicator (start/stop)
    - leave: Leave a room
"""
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from chatwave.services import get_coordinator

from .fabric import ERRORS_QUEUE, fabric
from .schemas import (
    ErrorPayload,
    JoinRequest,
    LeaveRequest,
    SendMessageRequest,
    TypingEvent,
    inbound_event_adapter,
)

logger = logging.getLogger(__name__)

router = APIRouter()

SUBSCRIPTION_FRAMES = ("subscribe", "unsubscribe")


@dataclass
class _ConnectionIdentity:
    """Identity recorded at the latest successful join, used on disconnect."""
    username: Optional[str] = None
    room_id: Optional[str] = None


async def _reject(connection_id: str, message: str) -> None:
    await fabric.publish_to_connection(
        connection_id,
        ERRORS_QUEUE,
        ErrorPayload(message=message).model_dump(mode="json"),
    )


@router.websocket("/ws")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for real-time chat.

    Protocol Flow:
        1. Client connects → Server assigns a connection id
           → Server sends: {type: "connected", connectionId: "xxx"}
        2. Client sends: {type: "subscribe", topic: "room.general"} (and
           ".typing", ".users", "global.online-count" as needed)
        3. Client sends: {type: "join", username, roomId}
           → joiner receives: {queue: "history", payload: {...}}
           → room receives: {topic: "room.<id>", payload: JOIN notice}
           → room receives: {topic: "room.<id>.users", payload: roster}
        4. Client sends: {type: "send", content, sender, roomId}
           → room receives: {topic: "room.<id>", payload: message}
        5. Client sends: {type: "leave", username, roomId}
           → room receives LEAVE notice and roster
        6. On disconnect → roster and global online count are republished

    Invalid frames are answered on the private errors queue:
        {queue: "errors", payload: {message, code}}
    """
    await websocket.accept()
    connection_id = str(uuid.uuid4())
    fabric.register(connection_id, websocket)
    coordinator = get_coordinator()
    identity = _ConnectionIdentity()

    logger.info(f"[WS] Connection accepted. Assigned connectionId={connection_id}")

    try:
        await websocket.send_json({"type": "connected", "connectionId": connection_id})

        # Main message loop
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000), frame.get("reason"))
            raw = frame.get("text")
            if raw is None:
                await _reject(connection_id, "Invalid message format: expected a text frame")
                continue
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await _reject(connection_id, "Invalid message format: expected JSON")
                continue
            if not isinstance(data, dict):
                await _reject(connection_id, "Invalid message format: expected an object")
                continue

            message_type = data.get("type")
            logger.debug("[WS] Connection %s received: type=%s", connection_id, message_type)

            # --- Handle PING (transport-level round trip) ---
            if message_type == "ping":
                await websocket.send_json({"type": "pong"})
                continue

            # --- Handle SUBSCRIBE / UNSUBSCRIBE (transport-level) ---
            if message_type in SUBSCRIPTION_FRAMES:
                topic = data.get("topic")
                if not isinstance(topic, str) or not topic:
                    await _reject(connection_id, "Invalid message format: topic is required")
                    continue
                if message_type == "subscribe":
                    fabric.subscribe(connection_id, topic)
                else:
                    fabric.unsubscribe(connection_id, topic)
                continue

            try:
                event = inbound_event_adapter.validate_python(data)
            except ValidationError as e:
                logger.debug(f"[WS] Rejected frame from {connection_id}: {e.error_count()} errors")
                await _reject(connection_id, f"Invalid message format: {message_type!r}")
                continue

            # --- Handle JOIN ---
            if isinstance(event, JoinRequest):
                session = await coordinator.join(connection_id, event)
                if session is not None:
                    identity.username = session.username
                    identity.room_id = session.room_id
                continue

            # --- Handle SEND ---
            if isinstance(event, SendMessageRequest):
                await coordinator.send(connection_id, event)
                continue

            # --- Handle TYPING ---
            if isinstance(event, TypingEvent):
                await coordinator.typing(event)
                continue

            # --- Handle LEAVE ---
            if isinstance(event, LeaveRequest):
                await coordinator.leave(connection_id, event)
                continue

    except WebSocketDisconnect:
        logger.info(f"[WS] Connection {connection_id} closed")
    finally:
        fabric.unregister(connection_id)
        await coordinator.disconnect(connection_id, identity.username, identity.room_id)
