"""Game manager: business logic between the WebSocket endpoint and the rooms.

Every inbound message is resolved to the sender's room and applied to that
room's engine while holding the room lock.  Snapshots are built and sent
before the lock is released, so each broadcast reflects one fully applied
change and two rooms never wait on each other.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

import pydantic
from pydantic import BaseModel

from holdem.engine import JoinResult
from holdem.errors import NotFoundError, PreconditionError, ValidationError
from holdem.models import (
    ActionRequest,
    ChatMessage,
    ChatRequest,
    GiveChipsRequest,
    JoinRequest,
    KickRequest,
    PublicState,
    RebuyDecisionRequest,
    UpdateSettingsRequest,
)
from holdem.rooms import Room, RoomDirectory, normalize_code
from holdem.timer import ActionTimer
from holdem.ws_manager import ConnectionManager

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

Handler = Callable[[str, dict[str, Any]], Awaitable[Any]]


def parse(model: type[M], data: dict[str, Any]) -> M:
    """Validate an inbound payload, reporting the first problem as a ValidationError."""
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        message = str(first.get("msg", "Invalid request")).removeprefix("Value error, ")
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"{field}: {message}" if field else message) from None


class GameManager:
    def __init__(
        self,
        directory: RoomDirectory,
        connections: ConnectionManager,
        timer: ActionTimer,
    ) -> None:
        self.directory = directory
        self.connections = connections
        self.timer = timer
        timer.set_broadcaster(self.broadcast_room)

        self._handlers: dict[str, Handler] = {
            "join": self.join,
            "start_hand": self.start_hand,
            "next_hand": self.next_hand,
            "act": self.act,
            "toggle_away": self.toggle_away,
            "chat": self.send_chat,
            "update_settings": self.update_settings,
            "give_chips": self.give_chips,
            "kick_player": self.kick_player,
            "request_rebuy": self.request_rebuy,
            "handle_rebuy": self.handle_rebuy,
        }

    async def handle_message(self, session_id: str, message: dict[str, Any]) -> None:
        msg_type = message.get("type")
        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            raise ValidationError(f"Unknown message type: {msg_type}")
        await handler(session_id, message)

    # ------------------------------------------------------------------
    # Broadcasting
    # ------------------------------------------------------------------

    async def broadcast_room(self, room: Room, notice: Optional[str] = None) -> None:
        """Push the public snapshot and each session's private one.

        Must be called with ``room.lock`` held.
        """
        engine = room.engine
        notices = [notice] if notice else []

        for p in engine.pop_busted():
            self.directory.unbind(p.player_id)
            await self.connections.send(p.player_id, "kicked", {"reason": "You ran out of chips"})
            notices.append(f"{p.name} is out of chips and leaves the table")

        for text in notices:
            await self._system_chat(room, text)

        sessions = self.directory.sessions_in(room.code)
        await self.connections.send_many(
            sessions, "game_state", engine.public_state().model_dump(mode="json")
        )
        for sid in sessions:
            await self.connections.send(
                sid, "private_state", engine.private_state(sid).model_dump(mode="json")
            )

    async def _system_chat(self, room: Room, text: str) -> None:
        msg = ChatMessage(type="system", text=text, timestamp=time.time())
        await self.connections.send_many(
            self.directory.sessions_in(room.code), "chat", msg.model_dump()
        )

    async def _commit(self, room: Room, notice: Optional[str] = None) -> None:
        self.timer.sync(room)
        await self.broadcast_room(room, notice)

    def _require_room(self, session_id: str) -> Room:
        room = self.directory.room_for_session(session_id)
        if room is None:
            raise NotFoundError("Join a room first")
        return room

    # ------------------------------------------------------------------
    # Lobby
    # ------------------------------------------------------------------

    async def join(self, session_id: str, data: dict[str, Any]) -> Room:
        req = parse(JoinRequest, data)
        target = normalize_code(req.room_code) if req.room_code else None

        current = self.directory.room_for_session(session_id)
        if current is not None and current.code != target:
            # Keep the old seat if the new room cannot take us
            wanted = self.directory.get(target) if target else None
            if wanted is not None:
                async with wanted.lock:
                    if wanted.engine.is_full and wanted.engine.find_player(session_id) is None:
                        raise PreconditionError("Room is full")
            await self._leave(session_id, current)

        room = self.directory.get_or_create(target)
        async with room.lock:
            result = room.engine.add_player(session_id, req.player_name)
            self.directory.bind(session_id, room.code)
            logger.info("Session %s joined room %s (%s)", session_id, room.code, result.value)

            await self.connections.send(
                session_id,
                "room_assigned",
                {"room_code": room.code, "player_id": session_id, "status": result.value},
            )
            if result == JoinResult.JOINED:
                notice = f"{req.player_name} joined the table"
            elif result == JoinResult.WAITING:
                notice = f"{req.player_name} will join next hand"
            else:
                notice = None
            await self._commit(room, notice)
        return room

    async def disconnect(self, session_id: str) -> None:
        """Treat a dropped connection exactly like leaving the room."""
        room = self.directory.room_for_session(session_id)
        if room is not None:
            await self._leave(session_id, room)

    async def _leave(self, session_id: str, room: Room) -> None:
        async with room.lock:
            self.directory.unbind(session_id)
            removed = room.engine.remove_player(session_id)
            self.directory.mark_if_empty(room)
            await self._commit(room, f"{removed.name} left the table" if removed else None)

    # ------------------------------------------------------------------
    # Gameplay
    # ------------------------------------------------------------------

    async def start_hand(self, session_id: str, data: dict[str, Any] | None = None) -> None:
        room = self._require_room(session_id)
        async with room.lock:
            first = not room.engine.game_started
            room.engine.start_hand(session_id)
            await self._commit(room, "Game started!" if first else None)

    async def next_hand(self, session_id: str, data: dict[str, Any] | None = None) -> None:
        await self.start_hand(session_id, data)

    async def act(self, session_id: str, data: dict[str, Any]) -> None:
        req = parse(ActionRequest, data)
        room = self._require_room(session_id)
        async with room.lock:
            room.engine.player_action(session_id, req.action, req.amount)
            await self._commit(room)

    async def toggle_away(self, session_id: str, data: dict[str, Any] | None = None) -> bool:
        room = self._require_room(session_id)
        async with room.lock:
            away = room.engine.toggle_away(session_id)
            await self._commit(room)
        return away

    async def send_chat(self, session_id: str, data: dict[str, Any]) -> None:
        req = parse(ChatRequest, data)
        room = self._require_room(session_id)
        async with room.lock:
            player = room.engine.find_player(session_id)
            if player is None:
                raise NotFoundError("You are not in this room")
            msg = ChatMessage(type="player", name=player.name, text=req.text, timestamp=time.time())
            await self.connections.send_many(
                self.directory.sessions_in(room.code), "chat", msg.model_dump()
            )

    # ------------------------------------------------------------------
    # Host administration
    # ------------------------------------------------------------------

    async def update_settings(self, session_id: str, data: dict[str, Any]) -> None:
        req = parse(UpdateSettingsRequest, data)
        room = self._require_room(session_id)
        async with room.lock:
            room.engine.update_settings(session_id, req.settings)
            await self._commit(room, "Settings updated")

    async def give_chips(self, session_id: str, data: dict[str, Any]) -> None:
        req = parse(GiveChipsRequest, data)
        room = self._require_room(session_id)
        async with room.lock:
            player = room.engine.give_chips(session_id, req.player_id, req.amount)
            await self._commit(room, f"Host gave ${req.amount} to {player.name}")

    async def kick_player(self, session_id: str, data: dict[str, Any]) -> None:
        req = parse(KickRequest, data)
        room = self._require_room(session_id)
        async with room.lock:
            removed = room.engine.kick(session_id, req.player_id)
            self.directory.unbind(removed.player_id)
            logger.info("Room %s: %s was kicked", room.code, removed.name)
            await self.connections.send(
                removed.player_id, "kicked", {"reason": "You were kicked by the host"}
            )
            await self._commit(room, f"{removed.name} was kicked")

    async def request_rebuy(self, session_id: str, data: dict[str, Any] | None = None) -> None:
        room = self._require_room(session_id)
        async with room.lock:
            room.engine.request_rebuy(session_id)
            player = room.engine.find_player(session_id)
            await self._commit(room, f"{player.name} requested a rebuy")

    async def handle_rebuy(self, session_id: str, data: dict[str, Any]) -> None:
        req = parse(RebuyDecisionRequest, data)
        room = self._require_room(session_id)
        async with room.lock:
            player = room.engine.handle_rebuy(session_id, req.player_id, req.approved)
            if req.approved:
                notice = f"{player.name}'s rebuy was approved (${room.engine.settings.rebuy_amount})"
            else:
                notice = f"{player.name}'s rebuy was denied"
            await self._commit(room, notice)

    # ------------------------------------------------------------------
    # Read-only views for the REST surface
    # ------------------------------------------------------------------

    async def room_snapshot(self, code: str) -> Optional[PublicState]:
        room = self.directory.get(code)
        if room is None:
            return None
        async with room.lock:
            return room.engine.public_state()

    def room_summaries(self) -> list[dict[str, Any]]:
        """Per-room overview without any card data."""
        return [
            {
                "code": room.code,
                "players": len(room.engine.players),
                "waiting": len(room.engine.waiting),
                "hand_in_progress": room.engine.hand_in_progress,
                "hand_number": room.engine.hand_number,
                "host_id": room.engine.host_id,
                "emptied_at": room.emptied_at,
            }
            for room in self.directory.rooms()
        ]
