"""Connection lifecycle coordinator for chat rooms.

Each connection moves through Unjoined -> Active -> Left/Disconnected. The
coordinator handles the events that drive those transitions:

    - join: validate, register presence, deliver history, announce, roster
      (and the previous room's roster when an active connection switches)
    - send: validate, persist in the background, broadcast immediately
    - typing: relay to the room's typing topic
    - leave: drop presence, announce, roster
    - disconnect: drop presence, roster and global online count (no notice)

Delivery is decoupled from storage. Persistence is handed to the
:class:`PersistenceDispatcher` and never awaited, so a live broadcast never
carries the storage id and may carry a slightly different timestamp than the
stored copy.

Join ordering is part of the protocol: the joining connection receives its
history before the join notice it caused, then the roster is published.

No failure here is fatal. Validation errors go to the offending connection's
private error queue; persistence and delivery errors are logged and swallowed.
"""
import asyncio
import logging
from typing import Any, Callable, List, Optional

from pydantic import BaseModel

from .fabric import (
    ERRORS_QUEUE,
    HISTORY_QUEUE,
    ONLINE_COUNT_TOPIC,
    BroadcastFabric,
    room_topic,
    typing_topic,
    users_topic,
)
from .persistence import PersistenceDispatcher
from .presence import PresenceRegistry, Session
from .schemas import (
    ChatMessage,
    ErrorPayload,
    HistoryPayload,
    JoinRequest,
    LeaveRequest,
    MessageType,
    OnlineCountPayload,
    SendMessageRequest,
    TypingEvent,
    UsersPayload,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50
DEFAULT_MAX_CONTENT_LENGTH = 2000
SYSTEM_SENDER = "System"

INVALID_JOIN_ERROR = "Invalid username or room ID"
INVALID_SEND_ERROR = "Message content and sender are required"

_MARKUP_ESCAPES = str.maketrans({"<": "&lt;", ">": "&gt;", '"': "&quot;"})


def sanitize(value: Optional[str]) -> str:
    """Trim client text and escape the markup characters ``<``, ``>`` and ``"``.

    Ampersands and apostrophes pass through unchanged. None becomes an empty
    string.
    """
    if value is None:
        return ""
    return value.strip().translate(_MARKUP_ESCAPES)


def _dump(model: BaseModel) -> dict:
    return model.model_dump(mode="json", exclude_none=True)


class ChatCoordinator:
    """Orchestrates presence, persistence and broadcast for chat events.

    Args:
        registry: Presence registry (shared state).
        fabric: Broadcast fabric used for topic and private delivery.
        room_exists: Callable answering whether a room id is known.
        recent_messages: Callable ``(room_id, limit)`` returning stored history.
        dispatcher: Background persistence dispatcher.
    """

    def __init__(
        self,
        registry: PresenceRegistry,
        fabric: BroadcastFabric,
        room_exists: Callable[[str], bool],
        recent_messages: Callable[[str, int], List[ChatMessage]],
        dispatcher: PersistenceDispatcher,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
        system_sender: str = SYSTEM_SENDER,
    ) -> None:
        self.registry = registry
        self.fabric = fabric
        self._room_exists = room_exists
        self._recent_messages = recent_messages
        self.dispatcher = dispatcher
        self.history_limit = history_limit
        self.max_content_length = max_content_length
        self.system_sender = system_sender

    # =========================================================================
    # Transitions
    # =========================================================================

    async def join(self, connection_id: str, request: JoinRequest) -> Optional[Session]:
        """Register *connection_id* in a room.

        Returns:
            The new session, or None if validation failed (nothing was changed).
        """
        username = sanitize(request.username)
        room_id = request.roomId

        if not username or not await self._check_room(room_id):
            logger.info("Rejected join for connection %s (room=%r)", connection_id, room_id)
            await self._send_error(connection_id, INVALID_JOIN_ERROR)
            return None

        previous = self.registry.lookup(connection_id)
        session = self.registry.add(connection_id, username, room_id)
        logger.info("User '%s' joined room '%s'", username, room_id)

        # 1. History goes to the joiner only, before anything is announced.
        history = await self._load_history(room_id)
        await self._deliver(
            connection_id,
            HISTORY_QUEUE,
            _dump(HistoryPayload(roomId=room_id, messages=history)),
        )

        # 2. Join notice
        await self._announce(room_id, f"{username} joined the room", MessageType.JOIN)

        # 3. Roster
        await self._publish_roster(room_id)

        # Joining elsewhere without a leave moves the session; correct the old room.
        if previous is not None and previous.room_id != room_id:
            await self._publish_roster(previous.room_id)
        return session

    async def send(
        self, connection_id: str, request: SendMessageRequest
    ) -> Optional[ChatMessage]:
        """Broadcast a chat message and persist it in the background.

        The sender name comes from the request and the room is not checked
        against the directory.
        """
        content = sanitize(request.content)
        sender = sanitize(request.sender)
        room_id = request.roomId

        if not content or not sender:
            await self._send_error(connection_id, INVALID_SEND_ERROR)
            return None
        if len(content) > self.max_content_length:
            await self._send_error(
                connection_id, f"Message exceeds {self.max_content_length} characters"
            )
            return None

        logger.debug("Message from '%s' in room '%s': %s", sender, room_id, content[:50])

        self._persist(content, sender, room_id, MessageType.CHAT, on_saved=_log_saved)

        message = ChatMessage(
            content=content,
            sender=sender,
            roomId=room_id,
            type=MessageType.CHAT,
        )
        await self._publish(room_topic(room_id), _dump(message))
        return message

    async def typing(self, event: TypingEvent) -> None:
        """Relay a typing indicator to the room's typing topic, unchanged."""
        await self._publish(
            typing_topic(event.roomId),
            event.model_dump(mode="json", exclude={"type"}),
        )

    async def leave(self, connection_id: str, request: LeaveRequest) -> Optional[Session]:
        """Explicit leave. The session is removed by connection id only.

        The notice names the user from the request, falling back to the stored
        session when the request omits it.
        """
        removed = self.registry.remove(connection_id)
        room_id = request.roomId
        username = sanitize(request.username) or (removed.username if removed else "")

        if username:
            await self._announce(room_id, f"{username} left the room", MessageType.LEAVE)
        await self._publish_roster(room_id)

        logger.info("User '%s' left room '%s'", username, room_id)
        return removed

    async def disconnect(
        self,
        connection_id: str,
        username: Optional[str] = None,
        room_id: Optional[str] = None,
    ) -> Optional[Session]:
        """Handle an abrupt connection loss detected by the transport.

        *username* and *room_id* are the identity recorded at join time. Without
        a username nothing is published. No chat-visible notice is sent.
        """
        removed = self.registry.remove(connection_id)
        if removed is not None:
            username = username or removed.username
            room_id = room_id or removed.room_id

        if not username:
            return removed

        logger.debug("User disconnected: username=%s, room=%s", username, room_id)
        if room_id:
            await self._publish_roster(room_id)
        await self._publish(
            ONLINE_COUNT_TOPIC,
            _dump(OnlineCountPayload(count=self.registry.total_online_count())),
        )
        return removed

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _check_room(self, room_id: str) -> bool:
        if not room_id:
            return False
        try:
            return await asyncio.get_running_loop().run_in_executor(
                None, self._room_exists, room_id
            )
        except Exception:
            logger.exception("Room lookup failed for %s", room_id)
            return False

    async def _load_history(self, room_id: str) -> List[ChatMessage]:
        try:
            return await asyncio.get_running_loop().run_in_executor(
                None, self._recent_messages, room_id, self.history_limit
            )
        except Exception:
            logger.exception("History read failed for room %s; sending empty history", room_id)
            return []

    async def _announce(self, room_id: str, content: str, message_type: MessageType) -> None:
        """Persist and broadcast a system notice."""
        notice = ChatMessage(
            content=content,
            sender=self.system_sender,
            roomId=room_id,
            type=message_type,
        )
        self._persist(notice.content, notice.sender, room_id, message_type)
        await self._publish(room_topic(room_id), _dump(notice))

    async def _publish_roster(self, room_id: str) -> None:
        users = self.registry.users_in_room(room_id)
        await self._publish(users_topic(room_id), _dump(UsersPayload(roomId=room_id, users=users)))

    def _persist(
        self,
        content: str,
        sender: str,
        room_id: str,
        message_type: MessageType,
        on_saved: Optional[Callable[[ChatMessage], None]] = None,
    ) -> None:
        try:
            self.dispatcher.submit(content, sender, room_id, message_type, on_saved=on_saved)
        except Exception:
            logger.exception("Could not dispatch %s message for room %s", message_type.value, room_id)

    async def _publish(self, topic: str, payload: Any) -> None:
        try:
            await self.fabric.publish_topic(topic, payload)
        except Exception:
            logger.exception("Broadcast to %s failed", topic)

    async def _deliver(self, connection_id: str, queue: str, payload: Any) -> None:
        try:
            await self.fabric.publish_to_connection(connection_id, queue, payload)
        except Exception:
            logger.exception("Delivery to connection %s failed", connection_id)

    async def _send_error(self, connection_id: str, message: str) -> None:
        await self._deliver(connection_id, ERRORS_QUEUE, _dump(ErrorPayload(message=message)))


def _log_saved(saved: ChatMessage) -> None:
    logger.debug("Message id=%s persisted", saved.id)
