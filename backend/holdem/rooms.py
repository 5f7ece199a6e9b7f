"""Room directory: room code -> Room, plus the session -> room index.

The two maps are the only state shared between rooms, so every access goes
through one re-entrant lock.  Everything inside a Room is guarded by that
room's own ``asyncio.Lock`` instead.
"""

from __future__ import annotations

import asyncio
import logging
import random
import string
import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from holdem import config
from holdem.engine import GameEngine

logger = logging.getLogger(__name__)


def _generate_code(length: int = config.ROOM_CODE_LENGTH) -> str:
    """Generate a short uppercase room code."""
    return "".join(random.choices(string.ascii_uppercase + string.digits, k=length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


@dataclass
class Room:
    code: str
    engine: GameEngine
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # Set when the last player leaves; cleared on the next join
    emptied_at: Optional[float] = None


class RoomDirectory:
    def __init__(self, grace_seconds: float = config.ROOM_GRACE_SECONDS) -> None:
        self.grace_seconds = grace_seconds
        self._rooms: dict[str, Room] = {}
        self._sessions: dict[str, str] = {}
        self._guard = threading.RLock()

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def get(self, code: str) -> Optional[Room]:
        with self._guard:
            return self._rooms.get(normalize_code(code))

    def get_or_create(self, code: Optional[str] = None) -> Room:
        """Return the room for *code*, creating it if absent.

        With no code a fresh room is created under a new unique code.
        """
        with self._guard:
            if code:
                code = normalize_code(code)
            else:
                code = _generate_code()
                while code in self._rooms:
                    code = _generate_code()

            room = self._rooms.get(code)
            if room is None:
                room = Room(code=code, engine=GameEngine(code))
                self._rooms[code] = room
                logger.info("Room %s created", code)
            room.emptied_at = None
            return room

    def codes(self) -> list[str]:
        with self._guard:
            return list(self._rooms)

    def rooms(self) -> list[Room]:
        with self._guard:
            return list(self._rooms.values())

    def mark_if_empty(self, room: Room, now: Optional[float] = None) -> None:
        """Start the grace period once a room has no players left."""
        if room.engine.is_empty and room.emptied_at is None:
            room.emptied_at = now if now is not None else time.time()
            logger.info("Room %s is empty; keeping it for %ds", room.code, int(self.grace_seconds))

    def collect_idle(self, now: Optional[float] = None) -> list[str]:
        """Drop rooms that have been empty for longer than the grace period."""
        now = now if now is not None else time.time()
        removed: list[str] = []
        with self._guard:
            for code, room in list(self._rooms.items()):
                if not room.engine.is_empty:
                    room.emptied_at = None
                    continue
                if room.emptied_at is None:
                    room.emptied_at = now
                    continue
                if now - room.emptied_at >= self.grace_seconds:
                    del self._rooms[code]
                    for sid, rc in list(self._sessions.items()):
                        if rc == code:
                            del self._sessions[sid]
                    removed.append(code)
                    logger.info("Room %s collected after being idle", code)
        return removed

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def room_for_session(self, session_id: str) -> Optional[Room]:
        with self._guard:
            code = self._sessions.get(session_id)
            return self._rooms.get(code) if code else None

    def bind(self, session_id: str, code: str) -> None:
        with self._guard:
            self._sessions[session_id] = normalize_code(code)

    def unbind(self, session_id: str) -> Optional[str]:
        with self._guard:
            return self._sessions.pop(session_id, None)

    def sessions_in(self, code: str) -> list[str]:
        code = normalize_code(code)
        with self._guard:
            return [sid for sid, rc in self._sessions.items() if rc == code]
