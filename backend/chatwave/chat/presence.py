"""In-memory presence registry for connected chat users.

Maps an opaque connection identifier to the :class:`Session` of the user on
that connection. The registry is the only piece of cross-connection mutable
state in the chat core, so every access goes through a small set of methods
that hold an internal lock; the backing dict is never exposed.

Consistency model:
    Each operation is atomic on its own. Two calls (for example
    ``users_in_room`` followed by ``online_count_in_room``) are not a snapshot
    and may observe different states under concurrent writes.

Sessions are frozen dataclasses. Callers receive values, not live references,
so nothing outside the registry can change what it stores.
"""
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """Presence record binding a connection to a username and room."""

    connection_id: str
    username: str
    room_id: str
    connected_at: float = field(default_factory=time.time)


class PresenceRegistry:
    """Thread-safe store of live sessions keyed by connection id."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, connection_id: str, username: str, room_id: str) -> Session:
        """Insert or overwrite the session for *connection_id*."""
        session = Session(connection_id=connection_id, username=username, room_id=room_id)
        with self._lock:
            self._sessions[connection_id] = session
        logger.debug(
            "User added: %s in room %s (connection=%s)", username, room_id, connection_id
        )
        return session

    def remove(self, connection_id: str) -> Optional[Session]:
        """Delete the session for *connection_id*.

        Absent ids are ignored so duplicate or late disconnect signals are harmless.

        Returns:
            The removed session, or None if there was none.
        """
        with self._lock:
            removed = self._sessions.pop(connection_id, None)
        if removed is not None:
            logger.debug("User removed: %s (connection=%s)", removed.username, connection_id)
        return removed

    def move(self, connection_id: str, room_id: str) -> Optional[Session]:
        """Reassign the room of an existing session without reconnecting."""
        with self._lock:
            current = self._sessions.get(connection_id)
            if current is None:
                return None
            moved = replace(current, room_id=room_id)
            self._sessions[connection_id] = moved
        return moved

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def lookup(self, connection_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(connection_id)

    def users_in_room(self, room_id: str) -> List[str]:
        """Distinct usernames in *room_id*, sorted ascending."""
        with self._lock:
            names = {s.username for s in self._sessions.values() if s.room_id == room_id}
        return sorted(names)

    def online_count_in_room(self, room_id: str) -> int:
        with self._lock:
            return len({s.username for s in self._sessions.values() if s.room_id == room_id})

    def total_online_count(self) -> int:
        """Distinct usernames across all rooms."""
        with self._lock:
            return len({s.username for s in self._sessions.values()})

    def is_username_in_room(self, username: str, room_id: str) -> bool:
        with self._lock:
            return any(
                s.username == username and s.room_id == room_id
                for s in self._sessions.values()
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


# Global registry shared by the WebSocket transport and REST endpoints
presence = PresenceRegistry()
