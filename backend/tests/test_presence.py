"""Tests for the presence registry."""
import random
import threading
from dataclasses import FrozenInstanceError

import pytest

from chatwave.chat.presence import PresenceRegistry, Session


@pytest.fixture
def registry():
    return PresenceRegistry()


class TestPresenceMutations:
    """add / remove / move behaviour."""

    def test_add_creates_session(self, registry):
        session = registry.add("c1", "ada", "general")
        assert session.connection_id == "c1"
        assert session.username == "ada"
        assert session.room_id == "general"
        assert session.connected_at > 0
        assert registry.lookup("c1") == session

    def test_add_overwrites_existing_connection(self, registry):
        registry.add("c1", "ada", "general")
        registry.add("c1", "ada", "tech")
        assert len(registry) == 1
        assert registry.lookup("c1").room_id == "tech"
        assert registry.users_in_room("general") == []

    def test_remove_returns_session(self, registry):
        registry.add("c1", "ada", "general")
        removed = registry.remove("c1")
        assert removed.username == "ada"
        assert registry.lookup("c1") is None

    def test_remove_unknown_connection_is_noop(self, registry):
        assert registry.remove("missing") is None
        registry.add("c1", "ada", "general")
        registry.remove("c1")
        # Duplicate disconnect signal
        assert registry.remove("c1") is None

    def test_move_reassigns_room(self, registry):
        registry.add("c1", "ada", "general")
        moved = registry.move("c1", "tech")
        assert moved.room_id == "tech"
        assert registry.users_in_room("tech") == ["ada"]
        assert registry.users_in_room("general") == []

    def test_move_unknown_connection(self, registry):
        assert registry.move("missing", "tech") is None
        assert len(registry) == 0

    def test_returned_sessions_are_immutable(self, registry):
        session = registry.add("c1", "ada", "general")
        with pytest.raises(FrozenInstanceError):
            session.room_id = "tech"
        assert registry.lookup("c1").room_id == "general"


class TestPresenceQueries:
    """Roster and count queries."""

    def test_users_in_room_sorted_and_distinct(self, registry):
        registry.add("c1", "zoe", "general")
        registry.add("c2", "ada", "general")
        registry.add("c3", "mia", "general")
        registry.add("c4", "ada", "general")  # same name, second connection
        registry.add("c5", "bo", "tech")
        assert registry.users_in_room("general") == ["ada", "mia", "zoe"]
        assert registry.online_count_in_room("general") == 3

    def test_empty_room(self, registry):
        assert registry.users_in_room("general") == []
        assert registry.online_count_in_room("general") == 0

    def test_same_username_in_two_rooms(self, registry):
        registry.add("c1", "ada", "general")
        registry.add("c2", "ada", "tech")
        assert registry.users_in_room("general") == ["ada"]
        assert registry.users_in_room("tech") == ["ada"]
        assert registry.total_online_count() == 1
        assert len(registry) == 2

    def test_total_online_count_distinct(self, registry):
        registry.add("c1", "ada", "general")
        registry.add("c2", "bo", "general")
        registry.add("c3", "bo", "tech")
        assert registry.total_online_count() == 2

    def test_is_username_in_room(self, registry):
        registry.add("c1", "ada", "general")
        assert registry.is_username_in_room("ada", "general")
        assert not registry.is_username_in_room("ada", "tech")
        assert not registry.is_username_in_room("bo", "general")

    def test_remove_leaves_no_stale_entries(self, registry):
        registry.add("c1", "ada", "general")
        registry.add("c2", "ada", "general")
        registry.remove("c1")
        # Another connection still carries the name
        assert registry.users_in_room("general") == ["ada"]
        registry.remove("c2")
        assert registry.users_in_room("general") == []
        assert registry.online_count_in_room("general") == 0

    def test_counts_match_model_after_random_operations(self, registry):
        rng = random.Random(7)
        names = ["ada", "bo", "cy", "di"]
        rooms = ["general", "tech"]
        model = {}
        for _ in range(500):
            cid = f"c{rng.randrange(20)}"
            if rng.random() < 0.6:
                name, room = rng.choice(names), rng.choice(rooms)
                registry.add(cid, name, room)
                model[cid] = (name, room)
            else:
                registry.remove(cid)
                model.pop(cid, None)

            for room in rooms:
                expected = sorted({n for n, r in model.values() if r == room})
                assert registry.users_in_room(room) == expected
                assert registry.online_count_in_room(room) == len(expected)
            assert registry.total_online_count() == len({n for n, _ in model.values()})


class TestPresenceConcurrency:
    """Concurrent writers from several threads."""

    def test_concurrent_add_remove(self, registry):
        def worker(prefix: str) -> None:
            for i in range(200):
                cid = f"{prefix}-{i}"
                registry.add(cid, f"user-{i % 10}", "general")
                if i % 2:
                    registry.remove(cid)

        threads = [threading.Thread(target=worker, args=(f"t{n}",)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # Even indices survive: 100 per thread
        assert len(registry) == 800
        assert registry.users_in_room("general") == sorted(
            {f"user-{i % 10}" for i in range(0, 200, 2)}
        )


def test_session_defaults():
    session = Session(connection_id="c1", username="ada", room_id="general")
    assert isinstance(session.connected_at, float)
