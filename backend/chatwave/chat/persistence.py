"""Fire-and-forget persistence for chat messages.

WebSocket handlers must never wait for storage. They hand each message to a
:class:`PersistenceDispatcher`, which enqueues it without blocking and returns
immediately. A fixed pool of worker threads drains the queue and writes to the
message store.

Failure policy:
    - Queue full: the task is dropped and a warning is logged.
    - Store error: logged with traceback and swallowed; nothing is retried and
      no client is told.

Completion order across workers is not defined. Each task is stamped when it
is submitted, so readers get submission order from the stored timestamps.
"""
import logging
import queue
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from .schemas import ChatMessage, MessageType, utcnow

logger = logging.getLogger(__name__)

SavedCallback = Callable[[ChatMessage], None]


@dataclass
class _PersistTask:
    content: str
    sender: str
    room_id: str
    message_type: MessageType
    timestamp: datetime
    on_saved: Optional[SavedCallback] = None


_STOP = object()


class PersistenceDispatcher:
    """Bounded queue of persistence tasks consumed by background threads.

    Args:
        store: Object exposing ``append(content, sender, room_id, type, timestamp=)``.
        workers: Number of worker threads.
        queue_size: Maximum number of pending tasks before new ones are dropped.
    """

    def __init__(self, store, workers: int = 2, queue_size: int = 1000) -> None:
        self._store = store
        self._worker_count = workers
        self._queue: "queue.Queue" = queue.Queue(maxsize=queue_size)
        self._threads: List[threading.Thread] = []
        self._lifecycle_lock = threading.Lock()
        self.dropped = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        """Start the worker threads. Calling it again while running is a no-op."""
        with self._lifecycle_lock:
            if self.running:
                return
            self._threads = [
                threading.Thread(
                    target=self._worker_loop,
                    name=f"chat-persist-{i}",
                    daemon=True,
                )
                for i in range(self._worker_count)
            ]
            for thread in self._threads:
                thread.start()
        logger.info("Persistence dispatcher started with %d workers", self._worker_count)

    def stop(self, timeout: float = 5.0) -> None:
        """Let workers finish queued tasks, then stop them."""
        with self._lifecycle_lock:
            threads = self._threads
            self._threads = []
            for _ in threads:
                # Blocking put: sentinels must not be dropped.
                self._queue.put(_STOP)
        for thread in threads:
            thread.join(timeout)
        if threads:
            logger.info("Persistence dispatcher stopped")

    def wait_idle(self) -> None:
        """Block until every task enqueued so far has been processed."""
        self._queue.join()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        content: str,
        sender: str,
        room_id: str,
        message_type: MessageType,
        on_saved: Optional[SavedCallback] = None,
    ) -> bool:
        """Enqueue a message for storage without blocking.

        Returns:
            True if queued, False if the queue was full and the task was dropped.
        """
        if not self.running:
            self.start()
        task = _PersistTask(content, sender, room_id, message_type, utcnow(), on_saved)
        try:
            self._queue.put_nowait(task)
        except queue.Full:
            self.dropped += 1
            logger.warning(
                "Persistence queue full; dropped %s message from %s in room %s",
                message_type.value, sender, room_id,
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    def _worker_loop(self) -> None:
        while True:
            task = self._queue.get()
            try:
                if task is _STOP:
                    return
                self._persist(task)
            finally:
                self._queue.task_done()

    def _persist(self, task: _PersistTask) -> None:
        try:
            saved = self._store.append(
                task.content, task.sender, task.room_id, task.message_type,
                timestamp=task.timestamp,
            )
        except Exception:
            logger.exception(
                "Failed to persist %s message in room %s", task.message_type.value, task.room_id
            )
            return

        if task.on_saved is not None:
            try:
                task.on_saved(saved)
            except Exception:
                logger.exception("Persistence callback failed for message id=%s", saved.id)
