"""Action timer: background task that auto-folds players who run out of time
and deals the remaining streets when everyone left is all-in."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from holdem import config
from holdem.rooms import Room, RoomDirectory

logger = logging.getLogger(__name__)

Broadcaster = Callable[[Room, Optional[str]], Awaitable[None]]


class ActionTimer:
    """Tracks per-room deadlines and fires them from a single asyncio loop.

    Each deadline is stored together with the engine's ``turn_token`` at the
    time it was scheduled.  The engine ignores a firing whose token is stale,
    so a timeout that races a real action resolves to a no-op.
    """

    def __init__(self, directory: RoomDirectory, tick: float = config.TIMER_TICK) -> None:
        self._directory = directory
        self._tick = tick
        self._task: asyncio.Task | None = None
        # room code -> (deadline, turn token)
        self._deadlines: dict[str, tuple[float, int]] = {}
        self._runouts: dict[str, tuple[float, int]] = {}
        self._broadcaster: Broadcaster | None = None

    def set_broadcaster(self, broadcaster: Broadcaster) -> None:
        """Inject the snapshot broadcaster (avoids a circular import)."""
        self._broadcaster = broadcaster

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
            logger.info("Action timer started")

    def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            logger.info("Action timer stopped")

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def sync(self, room: Room) -> None:
        """Mirror the engine's current deadlines.  Call with the room lock held."""
        engine = room.engine
        if engine.hand_in_progress and engine.action_deadline is not None:
            self._deadlines[room.code] = (engine.action_deadline, engine.turn_token)
        else:
            self._deadlines.pop(room.code, None)

        if engine.hand_in_progress and engine.runout_deadline is not None:
            self._runouts[room.code] = (engine.runout_deadline, engine.turn_token)
        else:
            self._runouts.pop(room.code, None)

    def cancel(self, code: str) -> None:
        self._deadlines.pop(code, None)
        self._runouts.pop(code, None)

    def deadline_for(self, code: str) -> Optional[tuple[float, int]]:
        return self._deadlines.get(code)

    def runout_for(self, code: str) -> Optional[tuple[float, int]]:
        return self._runouts.get(code)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._tick)
                await self.tick()
        except asyncio.CancelledError:
            pass

    @staticmethod
    def _claim(table: dict[str, tuple[float, int]], code: str, token: int) -> bool:
        """Remove *code* from *table* only if it still holds *token*."""
        entry = table.get(code)
        if entry is None or entry[1] != token:
            return False
        del table[code]
        return True

    async def tick(self, now: Optional[float] = None) -> None:
        """Fire every deadline that has passed by *now*.

        Handlers await room locks, so another room may be re-synced while
        this pass is running; entries are only claimed if unchanged.
        """
        now = now if now is not None else time.time()

        expired = [(c, tok) for c, (dl, tok) in list(self._deadlines.items()) if now >= dl]
        for code, token in expired:
            if not self._claim(self._deadlines, code, token):
                continue
            try:
                await self._handle_timeout(code, token)
            except Exception:
                logger.exception("Timer error for room %s", code)

        runouts = [(c, tok) for c, (dl, tok) in list(self._runouts.items()) if now >= dl]
        for code, token in runouts:
            if not self._claim(self._runouts, code, token):
                continue
            try:
                await self._handle_runout(code, token)
            except Exception:
                logger.exception("Runout error for room %s", code)

    async def _handle_timeout(self, code: str, token: int) -> None:
        """Auto-fold the player whose turn expired."""
        room = self._directory.get(code)
        if room is None:
            return

        async with room.lock:
            folded = room.engine.expire_turn(token)
            if folded is None:
                return
            self.sync(room)
            if self._broadcaster is not None:
                await self._broadcaster(room, f"{folded.name} timed out")

    async def _handle_runout(self, code: str, token: int) -> None:
        """Deal the next street while nobody is able to bet."""
        room = self._directory.get(code)
        if room is None:
            return

        async with room.lock:
            if not room.engine.run_out(token):
                return
            self.sync(room)
            if self._broadcaster is not None:
                await self._broadcaster(room, None)
