"""DuckDB-backed storage for rooms and messages."""

from .database import ChatDatabase
from .messages import MessageStore
from .rooms import Room, RoomDirectory, slugify_room_id

__all__ = [
    "ChatDatabase",
    "MessageStore",
    "Room",
    "RoomDirectory",
    "slugify_room_id",
]
