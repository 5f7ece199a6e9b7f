"""Tests for the action timer: auto-fold on timeout and all-in runout."""

import asyncio
from unittest.mock import AsyncMock

from holdem.cards import Deck
from holdem.models import GameSettings
from holdem.rooms import RoomDirectory
from holdem.timer import ActionTimer


# ── Helpers ──────────────────────────────────────────────────────────

def _room_with_hand(n_players=3, deck=None, **settings):
    directory = RoomDirectory()
    room = directory.get_or_create("TIMER1")
    if settings:
        room.engine.settings = GameSettings(**settings)
    if deck:
        room.engine._deck_factory = lambda: Deck.stacked(deck)
    for i in range(n_players):
        room.engine.add_player(f"p{i}", f"Player{i}")
    room.engine.start_hand("p0")
    timer = ActionTimer(directory)
    broadcaster = AsyncMock()
    timer.set_broadcaster(broadcaster)
    timer.sync(room)
    return directory, room, timer, broadcaster


class TestSync:
    def test_sync_registers_current_turn(self):
        _, room, timer, _ = _room_with_hand()
        deadline, token = timer.deadline_for(room.code)
        assert deadline == room.engine.action_deadline
        assert token == room.engine.turn_token

    def test_sync_clears_after_hand(self):
        _, room, timer, _ = _room_with_hand(2)
        room.engine.player_action("p0", "fold")
        timer.sync(room)
        assert timer.deadline_for(room.code) is None

    def test_cancel(self):
        _, room, timer, _ = _room_with_hand()
        timer.cancel(room.code)
        assert timer.deadline_for(room.code) is None


class TestTimeout:
    async def test_expired_turn_auto_folds(self):
        _, room, timer, broadcaster = _room_with_hand()
        deadline, _ = timer.deadline_for(room.code)

        await timer.tick(now=deadline + 1)

        engine = room.engine
        assert engine.players[0].folded
        assert engine.current_player_idx == 1
        broadcaster.assert_awaited_once_with(room, "Player0 timed out")
        # A fresh countdown for the next actor
        next_deadline, token = timer.deadline_for(room.code)
        assert token == engine.turn_token
        assert next_deadline == engine.action_deadline

    async def test_not_expired_yet(self):
        _, room, timer, broadcaster = _room_with_hand()
        deadline, _ = timer.deadline_for(room.code)

        await timer.tick(now=deadline - 1)

        assert not room.engine.players[0].folded
        broadcaster.assert_not_awaited()

    async def test_action_before_timeout_wins_the_race(self):
        _, room, timer, broadcaster = _room_with_hand()
        deadline, _ = timer.deadline_for(room.code)
        # The player acts but the old deadline is still registered
        room.engine.player_action("p0", "call")

        await timer.tick(now=deadline + 1)

        assert not room.engine.players[0].folded
        assert not room.engine.players[1].folded
        assert room.engine.current_player_idx == 1
        broadcaster.assert_not_awaited()

    async def test_timeout_waits_for_room_lock(self):
        _, room, timer, _ = _room_with_hand()
        deadline, _ = timer.deadline_for(room.code)

        await room.lock.acquire()
        task = asyncio.create_task(timer.tick(now=deadline + 1))
        await asyncio.sleep(0)
        # Still holding the lock: the player acts first
        room.engine.player_action("p0", "call")
        room.lock.release()
        await task

        assert not room.engine.players[0].folded
        assert not room.engine.players[1].folded

    async def test_room_gone(self):
        directory, room, timer, broadcaster = _room_with_hand()
        deadline, _ = timer.deadline_for(room.code)
        directory._rooms.clear()

        await timer.tick(now=deadline + 1)

        broadcaster.assert_not_awaited()
        assert timer.deadline_for(room.code) is None

    async def test_broadcast_failure_is_logged_not_raised(self):
        _, room, timer, broadcaster = _room_with_hand()
        broadcaster.side_effect = RuntimeError("boom")
        deadline, _ = timer.deadline_for(room.code)

        await timer.tick(now=deadline + 1)

        assert room.engine.players[0].folded


class TestRunout:
    DECK = [
        "As", "2c", "Ah", "7d",
        "5s", "Ks", "9d", "4c",
        "6s", "8h",
        "5d", "Jc",
    ]

    async def test_runout_deals_remaining_streets(self):
        _, room, timer, broadcaster = _room_with_hand(2, deck=self.DECK)
        engine = room.engine
        engine.player_action("p0", "raise", 980)
        engine.player_action("p1", "call")
        timer.sync(room)
        assert timer.deadline_for(room.code) is None
        runout_at, _ = timer.runout_for(room.code)

        await timer.tick(now=runout_at + 1)
        assert len(engine.community_cards) == 4
        runout_at, _ = timer.runout_for(room.code)

        await timer.tick(now=runout_at + 1)
        assert len(engine.community_cards) == 5
        assert not engine.hand_in_progress
        assert timer.runout_for(room.code) is None
        assert broadcaster.await_count == 2

    async def test_start_and_stop(self):
        _, _, timer, _ = _room_with_hand()
        timer.start()
        assert timer._task is not None and not timer._task.done()
        timer.stop()
        await timer._task
        assert timer._task.done()


# ── Several rooms on one tick ────────────────────────────────────────

def _seat_room(directory, code, n_players, deck=None):
    room = directory.get_or_create(code)
    if deck:
        room.engine._deck_factory = lambda: Deck.stacked(deck)
    for i in range(n_players):
        room.engine.add_player(f"{code}{i}", f"{code}-{i}")
    room.engine.start_hand(f"{code}0")
    return room


class TestSharedTick:
    async def test_resync_during_tick_keeps_new_deadline(self):
        directory = RoomDirectory()
        timer = ActionTimer(directory)
        a = _seat_room(directory, "AAA", 3)
        b = _seat_room(directory, "BBB", 3)
        timer.sync(a)
        timer.sync(b)
        expired_at = max(timer.deadline_for("AAA")[0], timer.deadline_for("BBB")[0]) + 1

        async def broadcast(room, notice):
            # BBB's player acts while AAA's timeout is being delivered
            if room is a:
                b.engine.player_action("BBB0", "call")
                timer.sync(b)

        timer.set_broadcaster(broadcast)
        await timer.tick(now=expired_at)

        assert a.engine.players[0].folded
        assert not b.engine.players[0].folded
        assert b.engine.current_player_idx == 1
        assert timer.deadline_for("BBB") == (b.engine.action_deadline, b.engine.turn_token)

    async def test_resync_during_tick_keeps_new_runout(self):
        directory = RoomDirectory()
        timer = ActionTimer(directory)
        rooms = [_seat_room(directory, code, 2, deck=TestRunout.DECK) for code in ("AAA", "BBB")]
        for room in rooms:
            room.engine.player_action(f"{room.code}0", "raise", 980)
            room.engine.player_action(f"{room.code}1", "call")
            timer.sync(room)
        a, b = rooms
        due = max(timer.runout_for("AAA")[0], timer.runout_for("BBB")[0]) + 1

        async def broadcast(room, notice):
            if room is a:
                b.engine.run_out(b.engine.turn_token)
                timer.sync(b)

        timer.set_broadcaster(broadcast)
        await timer.tick(now=due)

        assert len(a.engine.community_cards) == 4
        assert len(b.engine.community_cards) == 4
        assert timer.runout_for("BBB") == (b.engine.runout_deadline, b.engine.turn_token)
