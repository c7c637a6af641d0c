"""Room directory backed by DuckDB.

The chat core only asks whether a room exists; listing and creation serve the
REST API.
"""
import logging
import re
from datetime import timedelta
from typing import List, Optional

from pydantic import BaseModel

from chatwave.chat.schemas import utcnow

from .database import ChatDatabase

logger = logging.getLogger(__name__)

_SLUG_INVALID = re.compile(r"[^a-z0-9-]")

DEFAULT_ROOMS = [
    ("general", "# general", "General discussion for everyone"),
    ("tech", "# tech", "Technology, code, and geek talk"),
    ("random", "# random", "Anything goes: memes, off-topic, fun"),
    ("announcements", "# announcements", "Important updates and news"),
]


class Room(BaseModel):
    id: str
    name: str
    description: str = ""


def slugify_room_id(name: str) -> str:
    """Lower-case *name* and replace everything outside ``[a-z0-9-]`` with ``-``."""
    return _SLUG_INVALID.sub("-", name.lower())


class RoomDirectory:
    """Authoritative set of rooms."""

    def __init__(self, database: ChatDatabase) -> None:
        self._db = database

    def exists(self, room_id: Optional[str]) -> bool:
        if not room_id:
            return False
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM rooms WHERE id = ?", [room_id]
            ).fetchone()
        return row is not None

    def get(self, room_id: str) -> Optional[Room]:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT id, name, description FROM rooms WHERE id = ?", [room_id]
            ).fetchone()
        if row is None:
            return None
        return Room(id=row[0], name=row[1], description=row[2])

    def list(self) -> List[Room]:
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT id, name, description FROM rooms ORDER BY created_at, id"
            ).fetchall()
        return [Room(id=r[0], name=r[1], description=r[2]) for r in rows]

    def create(self, name: str, description: str = "") -> Room:
        """Create a room whose id is derived from *name*.

        An existing room with the same id is returned unchanged.
        """
        room = Room(id=slugify_room_id(name), name=name, description=description)
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO rooms (id, name, description, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT DO NOTHING
                """,
                [room.id, room.name, room.description, utcnow()]
            )
        existing = self.get(room.id)
        logger.info("Room available: %s", room.id)
        return existing or room

    def count(self) -> int:
        with self._db.connection() as conn:
            return int(conn.execute("SELECT count(*) FROM rooms").fetchone()[0])

    def seed_defaults(self) -> int:
        """Insert the default rooms if the directory is empty."""
        if self.count() > 0:
            return 0
        base = utcnow()
        with self._db.connection() as conn:
            for offset, (room_id, name, description) in enumerate(DEFAULT_ROOMS):
                conn.execute(
                    "INSERT INTO rooms (id, name, description, created_at) VALUES (?, ?, ?, ?)",
                    [room_id, name, description, base + timedelta(microseconds=offset)]
                )
        logger.info("Seeded %d default rooms", len(DEFAULT_ROOMS))
        return len(DEFAULT_ROOMS)
