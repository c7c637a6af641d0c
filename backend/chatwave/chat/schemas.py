"""Pydantic schemas for the real-time chat protocol.

This module defines the message record shared by storage and broadcast, the
inbound client events accepted on the WebSocket, and the outbound payloads
published to topics and private queues.

Inbound events form a closed, tagged set keyed on ``type``. They are validated
at the transport boundary with :data:`inbound_event_adapter` before they reach
the coordinator, so handlers only ever see well-formed requests.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the storage column type."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MessageType(str, Enum):
    """Type of chat message.

    Attributes:
        CHAT: Regular message typed by a user.
        JOIN: System notice that a user joined the room.
        LEAVE: System notice that a user left the room.
        SYSTEM: Other system notices (welcome messages).
    """
    CHAT = "CHAT"
    JOIN = "JOIN"
    LEAVE = "LEAVE"
    SYSTEM = "SYSTEM"


class ErrorCode(str, Enum):
    BAD_REQUEST = "BAD_REQUEST"


class ChatMessage(BaseModel):
    """A unit of room communication, persisted or live.

    Live broadcasts never carry ``id``; only messages read back from storage do.

    Attributes:
        id: Storage identifier, absent until persisted.
        content: Message text (already escaped).
        sender: Display name of the sender ("System" for notices).
        roomId: Room this message belongs to.
        type: Message type.
        timestamp: When the message was created (UTC).
    """
    id: Optional[int] = Field(default=None, description="Storage ID")
    content: str = Field(..., description="Message content")
    sender: str = Field(..., description="Sender display name")
    roomId: str = Field(..., description="Room ID this message belongs to")
    type: MessageType = Field(default=MessageType.CHAT, description="Message type")
    timestamp: datetime = Field(default_factory=utcnow, description="Creation time (UTC)")


# =============================================================================
# Inbound events (client -> server)
# =============================================================================


class JoinRequest(BaseModel):
    type: Literal["join"] = "join"
    username: Optional[str] = None
    roomId: str


class SendMessageRequest(BaseModel):
    type: Literal["send"] = "send"
    content: Optional[str] = None
    sender: Optional[str] = None
    roomId: str


class TypingEvent(BaseModel):
    type: Literal["typing"] = "typing"
    username: Optional[str] = None
    roomId: str
    typing: bool = False


class LeaveRequest(BaseModel):
    type: Literal["leave"] = "leave"
    username: Optional[str] = None
    roomId: str


InboundEvent = Annotated[
    Union[JoinRequest, SendMessageRequest, TypingEvent, LeaveRequest],
    Field(discriminator="type"),
]

inbound_event_adapter: TypeAdapter = TypeAdapter(InboundEvent)


# =============================================================================
# Outbound payloads (server -> client)
# =============================================================================


class HistoryPayload(BaseModel):
    roomId: str
    messages: List[ChatMessage] = Field(default_factory=list)


class UsersPayload(BaseModel):
    roomId: str
    users: List[str] = Field(default_factory=list)


class OnlineCountPayload(BaseModel):
    count: int


class ErrorPayload(BaseModel):
    message: str
    code: ErrorCode = ErrorCode.BAD_REQUEST


class RoomPayload(BaseModel):
    """Room catalog entry with its live presence count."""
    id: str
    name: str
    description: str = ""
    onlineCount: int = 0


class CreateRoomRequest(BaseModel):
    name: Optional[str] = None
    description: str = ""
