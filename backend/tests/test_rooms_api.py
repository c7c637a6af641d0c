"""Tests for the rooms REST endpoints."""
import inspect

import pytest
from fastapi.testclient import TestClient

from chatwave.chat.presence import presence
from chatwave.chat.schemas import MessageType
from chatwave.main import app
from chatwave.rooms import router as rooms_router
from chatwave.services import get_message_store


client = TestClient(app)


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_list_rooms_includes_defaults_with_online_counts():
    presence.add("c1", "ada", "general")
    presence.add("c2", "ada", "general")
    presence.add("c3", "bo", "general")

    response = client.get("/api/rooms")

    assert response.status_code == 200
    rooms = {room["id"]: room for room in response.json()}
    assert set(rooms) == {"general", "tech", "random", "announcements"}
    assert rooms["general"]["onlineCount"] == 2
    assert rooms["tech"]["onlineCount"] == 0
    assert rooms["general"]["name"] == "# general"


def test_create_room():
    response = client.post("/api/rooms", json={"name": "Book Club", "description": "Reads"})

    assert response.status_code == 200
    assert response.json() == {"id": "book-club", "name": "Book Club", "description": "Reads"}
    ids = [room["id"] for room in client.get("/api/rooms").json()]
    assert "book-club" in ids


def test_create_room_requires_name():
    assert client.post("/api/rooms", json={"name": "   "}).status_code == 400
    assert client.post("/api/rooms", json={}).status_code == 400


def test_room_messages():
    store = get_message_store()
    store.append("hello", "ada", "tech", MessageType.CHAT)
    store.append("ada left the room", "System", "tech", MessageType.LEAVE)

    response = client.get("/api/rooms/tech/messages")

    assert response.status_code == 200
    messages = response.json()
    assert [m["content"] for m in messages] == ["hello", "ada left the room"]
    assert messages[1]["type"] == "LEAVE"
    assert all(m["id"] is not None for m in messages)


def test_room_messages_unknown_room():
    assert client.get("/api/rooms/nope/messages").status_code == 404


def test_room_users():
    presence.add("c1", "zoe", "random")
    presence.add("c2", "ada", "random")

    response = client.get("/api/rooms/random/users")

    assert response.json() == {"roomId": "random", "users": ["ada", "zoe"], "count": 2}


def test_room_users_unknown_room():
    assert client.get("/api/rooms/nope/users").status_code == 404


def test_stats():
    presence.add("c1", "ada", "general")
    presence.add("c2", "ada", "tech")
    presence.add("c3", "bo", "tech")

    assert client.get("/api/stats").json() == {"totalOnline": 2, "rooms": 4}


@pytest.mark.parametrize(
    "endpoint",
    ["list_rooms", "create_room", "get_room_messages", "get_room_users", "get_stats"],
)
def test_storage_endpoints_run_in_threadpool(endpoint):
    # plain functions run in the FastAPI threadpool
    assert not inspect.iscoroutinefunction(getattr(rooms_router, endpoint))
