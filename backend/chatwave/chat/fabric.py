"""Topic-addressed broadcast fabric over WebSocket connections.

The fabric owns the mapping from connection ids to live sockets and from topic
names to subscribed connection ids. It offers two delivery primitives:

    - publish_topic: fan a payload out to every current subscriber of a topic
    - publish_to_connection: deliver a payload to one connection's private queue

Delivery is best-effort and at-most-once. Sends to all subscribers run
concurrently with ``asyncio.gather()``; a socket that fails is pruned and the
failure is logged, never raised to the publisher.

Wire frames:
    topic delivery:   {"topic": "room.general", "payload": {...}}
    private delivery: {"queue": "history", "payload": {...}}
"""
import asyncio
import logging
import threading
from typing import Any, Dict, List, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)

# =============================================================================
# Topic names
# =============================================================================

ONLINE_COUNT_TOPIC = "global.online-count"

# Private per-connection queues
HISTORY_QUEUE = "history"
ERRORS_QUEUE = "errors"


def room_topic(room_id: str) -> str:
    """Chat messages and join/leave notices for a room."""
    return f"room.{room_id}"


def typing_topic(room_id: str) -> str:
    return f"room.{room_id}.typing"


def users_topic(room_id: str) -> str:
    """Presence roster updates for a room."""
    return f"room.{room_id}.users"


# =============================================================================
# Fabric
# =============================================================================


class BroadcastFabric:
    """Tracks sockets and topic subscriptions and delivers payloads to them."""

    def __init__(self) -> None:
        # connection_id -> WebSocket
        self._connections: Dict[str, WebSocket] = {}

        # topic -> set of subscribed connection_ids
        self._subscriptions: Dict[str, Set[str]] = {}

        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Connection and subscription bookkeeping
    # ------------------------------------------------------------------

    def register(self, connection_id: str, websocket: WebSocket) -> None:
        with self._lock:
            self._connections[connection_id] = websocket

    def unregister(self, connection_id: str) -> None:
        """Forget a connection and every subscription it held."""
        with self._lock:
            self._drop(connection_id)

    def subscribe(self, connection_id: str, topic: str) -> bool:
        """Subscribe a registered connection to *topic*.

        Returns:
            False if the connection is not registered.
        """
        with self._lock:
            if connection_id not in self._connections:
                return False
            self._subscriptions.setdefault(topic, set()).add(connection_id)
        logger.debug("Connection %s subscribed to %s", connection_id, topic)
        return True

    def unsubscribe(self, connection_id: str, topic: str) -> None:
        with self._lock:
            subscribers = self._subscriptions.get(topic)
            if not subscribers:
                return
            subscribers.discard(connection_id)
            if not subscribers:
                del self._subscriptions[topic]

    def subscribers(self, topic: str) -> List[str]:
        with self._lock:
            return sorted(self._subscriptions.get(topic, ()))

    def is_connected(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._connections

    def _drop(self, connection_id: str) -> None:
        # Caller holds the lock.
        self._connections.pop(connection_id, None)
        for topic in [t for t, subs in self._subscriptions.items() if connection_id in subs]:
            self._subscriptions[topic].discard(connection_id)
            if not self._subscriptions[topic]:
                del self._subscriptions[topic]

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def publish_topic(self, topic: str, payload: Any) -> int:
        """Deliver *payload* to every connection currently subscribed to *topic*.

        Zero subscribers is not an error. Connections that subscribe after this
        call has taken its snapshot do not receive the payload.

        Returns:
            Number of connections the payload was delivered to.
        """
        with self._lock:
            targets = [
                (cid, self._connections[cid])
                for cid in self._subscriptions.get(topic, ())
                if cid in self._connections
            ]
        if not targets:
            return 0

        frame = {"topic": topic, "payload": payload}
        results = await asyncio.gather(
            *[self._safe_send(ws, frame) for _, ws in targets],
            return_exceptions=True
        )

        failed = [cid for (cid, _), ok in zip(targets, results) if ok is not True]
        self._cleanup_connections(failed)
        return len(targets) - len(failed)

    async def publish_to_connection(self, connection_id: str, queue: str, payload: Any) -> bool:
        """Deliver *payload* to one connection's private *queue*.

        A connection that has already gone away is a silent no-op.
        """
        with self._lock:
            websocket = self._connections.get(connection_id)
        if websocket is None:
            logger.debug("Connection %s is gone; dropping %s payload", connection_id, queue)
            return False

        ok = await self._safe_send(websocket, {"queue": queue, "payload": payload})
        if not ok:
            self._cleanup_connections([connection_id])
        return ok

    async def _safe_send(self, connection: WebSocket, frame: dict) -> bool:
        """Send a frame to a WebSocket connection with error handling.

        Returns:
            True if successful, False if connection failed.
        """
        try:
            await connection.send_json(frame)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection: {e}")
            return False

    def _cleanup_connections(self, failed: List[str]) -> None:
        if not failed:
            return
        with self._lock:
            for connection_id in failed:
                self._drop(connection_id)
                logger.debug(f"Removed dead connection {connection_id}")

    def clear(self) -> None:
        with self._lock:
            self._connections.clear()
            self._subscriptions.clear()


# Global fabric shared by all WebSocket handlers
fabric = BroadcastFabric()
