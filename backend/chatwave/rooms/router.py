"""Rooms REST API router.

Endpoints:
    GET  /api/rooms                    - List rooms with live online counts
    POST /api/rooms                    - Create a room
    GET  /api/rooms/{room_id}/messages - Recent message history
    GET  /api/rooms/{room_id}/users    - Users currently in a room
    GET  /api/stats                    - Global online count and room count

Handlers are plain functions so FastAPI runs them in its threadpool and the
DuckDB reads stay off the event loop.
"""
import logging
from typing import List

from fastapi import APIRouter, HTTPException

from chatwave.chat.presence import presence
from chatwave.chat.schemas import ChatMessage, CreateRoomRequest, RoomPayload
from chatwave.config import get_config
from chatwave.services import get_message_store, get_room_directory
from chatwave.storage.rooms import Room

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["rooms"])


def _require_room(room_id: str) -> None:
    if not get_room_directory().exists(room_id):
        raise HTTPException(status_code=404, detail=f"Room not found: {room_id}")


@router.get("/rooms", response_model=List[RoomPayload])
def list_rooms() -> List[RoomPayload]:
    """List all rooms with the number of distinct users online in each."""
    return [
        RoomPayload(
            id=room.id,
            name=room.name,
            description=room.description,
            onlineCount=presence.online_count_in_room(room.id),
        )
        for room in get_room_directory().list()
    ]


@router.post("/rooms", response_model=Room)
def create_room(request: CreateRoomRequest) -> Room:
    """Create a room. The id is derived from the name.

    Args:
        request: Room name and optional description.

    Returns:
        The created (or already existing) room.
    """
    if request.name is None or not request.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    room = get_room_directory().create(request.name.strip(), request.description)
    logger.info(f"Created room {room.id}")
    return room


@router.get("/rooms/{room_id}/messages", response_model=List[ChatMessage])
def get_room_messages(room_id: str) -> List[ChatMessage]:
    _require_room(room_id)
    return get_message_store().recent(room_id, get_config().chat.history_limit)


@router.get("/rooms/{room_id}/users")
def get_room_users(room_id: str) -> dict:
    _require_room(room_id)
    return {
        "roomId": room_id,
        "users": presence.users_in_room(room_id),
        "count": presence.online_count_in_room(room_id),
    }


@router.get("/stats")
def get_stats() -> dict:
    return {
        "totalOnline": presence.total_online_count(),
        "rooms": get_room_directory().count(),
    }
