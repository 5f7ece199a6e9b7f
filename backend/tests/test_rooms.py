"""Tests for the room directory and idle-room cleanup."""

from unittest.mock import MagicMock

from holdem import config
from holdem.cleanup import cleanup_idle_rooms
from holdem.rooms import RoomDirectory


class TestRoomDirectory:
    def test_create_with_generated_code(self):
        d = RoomDirectory()
        room = d.get_or_create()
        assert len(room.code) == config.ROOM_CODE_LENGTH
        assert room.code.isupper() or room.code.isdigit()
        assert d.get(room.code) is room

    def test_codes_are_case_insensitive(self):
        d = RoomDirectory()
        room = d.get_or_create("abc123")
        assert room.code == "ABC123"
        assert d.get("AbC123") is room
        assert d.get_or_create(" abc123 ") is room

    def test_get_or_create_is_idempotent(self):
        d = RoomDirectory()
        assert d.get_or_create("ROOM1") is d.get_or_create("ROOM1")
        assert d.codes() == ["ROOM1"]

    def test_generated_codes_are_unique(self):
        d = RoomDirectory()
        codes = {d.get_or_create().code for _ in range(50)}
        assert len(codes) == 50

    def test_each_room_has_its_own_engine_and_lock(self):
        d = RoomDirectory()
        a, b = d.get_or_create("A"), d.get_or_create("B")
        assert a.engine is not b.engine
        assert a.lock is not b.lock
        assert a.engine.room_id == "A"

    def test_unknown_room(self):
        assert RoomDirectory().get("NOPE") is None


class TestSessions:
    def test_bind_and_lookup(self):
        d = RoomDirectory()
        room = d.get_or_create("ROOM1")
        d.bind("s1", "room1")
        assert d.room_for_session("s1") is room
        assert d.sessions_in("ROOM1") == ["s1"]

    def test_rebind_moves_session(self):
        d = RoomDirectory()
        d.get_or_create("A")
        b = d.get_or_create("B")
        d.bind("s1", "A")
        d.bind("s1", "B")
        assert d.room_for_session("s1") is b
        assert d.sessions_in("A") == []

    def test_unbind(self):
        d = RoomDirectory()
        d.get_or_create("A")
        d.bind("s1", "A")
        assert d.unbind("s1") == "A"
        assert d.unbind("s1") is None
        assert d.room_for_session("s1") is None


class TestIdleCollection:
    def test_occupied_room_is_kept(self):
        d = RoomDirectory(grace_seconds=10)
        room = d.get_or_create("A")
        room.engine.add_player("p1", "Alice")
        assert d.collect_idle(now=10_000) == []
        assert room.emptied_at is None

    def test_empty_room_survives_grace_period(self):
        d = RoomDirectory(grace_seconds=300)
        room = d.get_or_create("A")
        d.mark_if_empty(room, now=1000)
        assert d.collect_idle(now=1200) == []
        assert d.get("A") is room

    def test_empty_room_collected_after_grace(self):
        d = RoomDirectory(grace_seconds=300)
        room = d.get_or_create("A")
        d.bind("s1", "A")
        d.mark_if_empty(room, now=1000)
        assert d.collect_idle(now=1300) == ["A"]
        assert d.get("A") is None
        assert d.room_for_session("s1") is None

    def test_unmarked_empty_room_starts_grace_on_sweep(self):
        d = RoomDirectory(grace_seconds=300)
        d.get_or_create("A")
        assert d.collect_idle(now=1000) == []
        assert d.collect_idle(now=1299) == []
        assert d.collect_idle(now=1300) == ["A"]

    def test_rejoin_resets_grace(self):
        d = RoomDirectory(grace_seconds=300)
        room = d.get_or_create("A")
        d.mark_if_empty(room, now=1000)
        d.get_or_create("A")
        assert room.emptied_at is None


class TestCleanup:
    def test_cleanup_reports_and_cancels_timers(self):
        d = RoomDirectory(grace_seconds=0)
        busy = d.get_or_create("BUSY")
        busy.engine.add_player("p1", "Alice")
        idle = d.get_or_create("IDLE")
        d.mark_if_empty(idle, now=0)
        timer = MagicMock()

        result = cleanup_idle_rooms(d, timer, now=1)

        assert result == {"deleted": ["IDLE"], "kept": ["BUSY"]}
        timer.cancel.assert_called_once_with("IDLE")
