"""Durable message storage.

Usage:
    store = MessageStore(ChatDatabase.get_instance())
    saved = store.append("hi", "ada", "general", MessageType.CHAT)
    history = store.recent("general", limit=50)
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from chatwave.chat.schemas import ChatMessage, MessageType, utcnow

from .database import ChatDatabase

logger = logging.getLogger(__name__)

WELCOME_SENDER = "System"

WELCOME_MESSAGES = [
    ("general", "Welcome to ChatWave! This is the general channel."),
    ("general", "Feel free to chat, share ideas, and connect with others."),
    ("general", "Check out #tech for programming discussions!"),
    ("tech", "Welcome to the tech channel! Discuss code, tools, and all things tech."),
    ("tech", "What's everyone building these days?"),
    ("random", "This is #random. Anything goes: memes, jokes, life updates!"),
]


class MessageStore:
    """Append and read back chat messages in DuckDB."""

    def __init__(self, database: ChatDatabase) -> None:
        self._db = database

    def append(
        self,
        content: str,
        sender: str,
        room_id: str,
        message_type: MessageType,
        timestamp: Optional[datetime] = None,
    ) -> ChatMessage:
        """Store a message and return it with its assigned id and timestamp."""
        timestamp = timestamp or utcnow()
        with self._db.connection() as conn:
            row = conn.execute(
                """
                INSERT INTO messages (content, sender, room_id, type, timestamp)
                VALUES (?, ?, ?, ?, ?)
                RETURNING id
                """,
                [content, sender, room_id, message_type.value, timestamp]
            ).fetchone()

        saved = ChatMessage(
            id=row[0],
            content=content,
            sender=sender,
            roomId=room_id,
            type=message_type,
            timestamp=timestamp,
        )
        logger.debug("Persisted message id=%s in room=%s", saved.id, room_id)
        return saved

    def recent(self, room_id: str, limit: int = 50) -> List[ChatMessage]:
        """Return the most recent *limit* messages of a room, oldest first.

        Messages are ordered by stored timestamp (id breaks ties), not by
        the order in which concurrent writes happened to complete.
        """
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT id, content, sender, room_id, type, timestamp
                FROM messages
                WHERE room_id = ?
                ORDER BY timestamp DESC, id DESC
                LIMIT ?
                """,
                [room_id, limit]
            ).fetchall()

        return [
            ChatMessage(
                id=row[0],
                content=row[1],
                sender=row[2],
                roomId=row[3],
                type=MessageType(row[4]),
                timestamp=row[5],
            )
            for row in reversed(rows)
        ]

    def count(self, room_id: Optional[str] = None) -> int:
        with self._db.connection() as conn:
            if room_id is None:
                row = conn.execute("SELECT count(*) FROM messages").fetchone()
            else:
                row = conn.execute(
                    "SELECT count(*) FROM messages WHERE room_id = ?", [room_id]
                ).fetchone()
        return int(row[0])

    def seed_welcome_messages(self) -> int:
        """Insert the welcome notices if the store is empty.

        Returns:
            Number of messages inserted.
        """
        if self.count() > 0:
            return 0
        base = utcnow() - timedelta(hours=1)
        for offset, (room_id, content) in enumerate(WELCOME_MESSAGES):
            self.append(
                content,
                WELCOME_SENDER,
                room_id,
                MessageType.SYSTEM,
                timestamp=base + timedelta(milliseconds=offset),
            )
        logger.info("Seeded %d welcome messages", len(WELCOME_MESSAGES))
        return len(WELCOME_MESSAGES)
