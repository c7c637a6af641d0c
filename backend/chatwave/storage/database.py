"""DuckDB connection shared by the message store and the room directory.

The service implements the singleton pattern so the whole process uses one
database connection.

Database Schema:
    rooms table:
        - id: Room identifier (slug), primary key
        - name: Display name
        - description: Free text
        - created_at: When the room was created (UTC)

    messages table:
        - id: Auto-incrementing primary key
        - content: Message text
        - sender: Sender display name
        - room_id: Room identifier
        - type: CHAT, JOIN, LEAVE or SYSTEM
        - timestamp: When the message was stored (UTC)

Thread Safety:
    A DuckDB connection is NOT thread-safe. Persistence workers and the event
    loop both use this connection, so every statement runs under ``lock``.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

import duckdb

logger = logging.getLogger(__name__)


class ChatDatabase:
    """Singleton owner of the DuckDB connection.

    Attributes:
        _instance: Singleton instance of the service.
        _db_path: Path to the DuckDB database file.
    """

    _instance: Optional["ChatDatabase"] = None
    _db_path: str = "chatwave.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        """Open the database and create the schema if it doesn't exist.

        Args:
            db_path: Path to DuckDB file, or ":memory:".
        """
        if db_path:
            self._db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self.lock = threading.RLock()
        self._initialize_db()

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "ChatDatabase":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call).
        """
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close the connection and clear the instance (used by tests)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    @property
    def db_path(self) -> str:
        return self._db_path

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
            logger.info("Opened DuckDB database at %s", self._db_path)
        return self._connection

    @contextmanager
    def connection(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Yield the connection while holding the database lock."""
        with self.lock:
            yield self._get_connection()

    def _initialize_db(self) -> None:
        """Create sequences and tables. Safe to call multiple times."""
        with self.connection() as conn:
            conn.execute("""
                CREATE SEQUENCE IF NOT EXISTS messages_seq START 1;
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS rooms (
                    id VARCHAR PRIMARY KEY,
                    name VARCHAR NOT NULL,
                    description VARCHAR NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    id BIGINT DEFAULT nextval('messages_seq') PRIMARY KEY,
                    content VARCHAR NOT NULL,
                    sender VARCHAR NOT NULL,
                    room_id VARCHAR NOT NULL,
                    type VARCHAR NOT NULL,
                    timestamp TIMESTAMP NOT NULL
                )
            """)

    def close(self) -> None:
        """Close the database connection."""
        with self.lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
