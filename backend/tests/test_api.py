"""Tests for the FastAPI REST endpoints and the /ws message loop."""

from __future__ import annotations

import os
from unittest.mock import patch

# Disable rate limiting before importing the app module
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from holdem.main import app as fastapi_app
from holdem.main import build_services


PATCH_PASSWORD = "holdem.main.config.ADMIN_PASSWORD"


@pytest.fixture
def gm():
    """Fresh services on app.state; the lifespan is not run for REST tests."""
    return build_services(fastapi_app)


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test")


async def _seed_room(gm, code="ABC123"):
    await gm.join("s1", {"player_name": "Alice", "room_code": code})
    await gm.join("s2", {"player_name": "Bob", "room_code": code})


# ---------------------------------------------------------------------------
# REST
# ---------------------------------------------------------------------------


class TestHealth:
    async def test_health(self, gm):
        await _seed_room(gm)
        async with _client() as client:
            resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "rooms": 1, "connections": 0}


class TestRoomEndpoint:
    async def test_room_snapshot(self, gm):
        await _seed_room(gm)
        await gm.start_hand("s1")
        async with _client() as client:
            resp = await client.get("/api/rooms/abc123")
        assert resp.status_code == 200
        data = resp.json()
        assert data["room_id"] == "ABC123"
        assert [p["name"] for p in data["players"]] == ["Alice", "Bob"]
        assert data["hand_in_progress"] is True
        # Public view never carries hole cards
        assert all("cards" not in p for p in data["players"])
        assert data["showdown"] == []

    async def test_room_not_found(self, gm):
        async with _client() as client:
            resp = await client.get("/api/rooms/NOPE00")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Room not found"


class TestAdminEndpoints:
    async def test_admin_not_configured(self, gm):
        with patch(PATCH_PASSWORD, ""):
            async with _client() as client:
                resp = await client.get("/api/admin/rooms")
        assert resp.status_code == 503

    async def test_admin_wrong_password(self, gm):
        with patch(PATCH_PASSWORD, "secret"):
            async with _client() as client:
                resp = await client.get(
                    "/api/admin/rooms", headers={"Authorization": "Bearer nope"}
                )
        assert resp.status_code == 401

    async def test_admin_missing_header(self, gm):
        with patch(PATCH_PASSWORD, "secret"):
            async with _client() as client:
                resp = await client.get("/api/admin/rooms")
        assert resp.status_code == 401

    async def test_admin_rooms(self, gm):
        await _seed_room(gm)
        with patch(PATCH_PASSWORD, "secret"):
            async with _client() as client:
                resp = await client.get(
                    "/api/admin/rooms", headers={"Authorization": "Bearer secret"}
                )
        assert resp.status_code == 200
        [room] = resp.json()["rooms"]
        assert room["code"] == "ABC123"
        assert room["players"] == 2
        assert room["host_id"] == "s1"

    async def test_admin_cleanup(self, gm):
        await _seed_room(gm)
        gm.directory.get_or_create("IDLE00")
        gm.directory.grace_seconds = 0
        with patch(PATCH_PASSWORD, "secret"):
            async with _client() as client:
                # The first sweep starts the grace clock on the unmarked room
                await client.post(
                    "/api/admin/cleanup", headers={"Authorization": "Bearer secret"}
                )
                resp = await client.post(
                    "/api/admin/cleanup", headers={"Authorization": "Bearer secret"}
                )
        assert resp.status_code == 200
        assert resp.json() == {"deleted": ["IDLE00"], "kept": ["ABC123"]}
        assert gm.directory.get("IDLE00") is None


# ---------------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------------


def _receive_until(ws, msg_type):
    """Read messages until one of *msg_type* arrives and return its data."""
    for _ in range(20):
        msg = ws.receive_json()
        if msg["type"] == msg_type:
            return msg["data"]
    raise AssertionError(f"no {msg_type} message received")


class TestWebSocket:
    def test_join_round_trip(self):
        with TestClient(fastapi_app) as client:
            with client.websocket_connect("/ws") as ws:
                hello = ws.receive_json()
                assert hello["type"] == "session"
                session_id = hello["data"]["session_id"]

                ws.send_json({"type": "join", "player_name": "Alice"})

                assigned = ws.receive_json()
                assert assigned["type"] == "room_assigned"
                assert assigned["data"]["player_id"] == session_id
                assert assigned["data"]["status"] == "joined"

                chat = ws.receive_json()
                assert chat["type"] == "chat"
                assert chat["data"]["text"] == "Alice joined the table"

                state = ws.receive_json()
                assert state["type"] == "game_state"
                assert state["data"]["room_id"] == assigned["data"]["room_code"]
                assert state["data"]["host_id"] == session_id

                private = ws.receive_json()
                assert private["type"] == "private_state"
                assert private["data"]["cards"] == []

    def test_two_players_start_hand(self):
        with TestClient(fastapi_app) as client:
            with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
                alice.receive_json()
                bob.receive_json()

                alice.send_json({"type": "join", "player_name": "Alice"})
                code = _receive_until(alice, "room_assigned")["room_code"]
                _receive_until(alice, "private_state")

                bob.send_json({"type": "join", "player_name": "Bob", "room_code": code})
                _receive_until(bob, "private_state")
                _receive_until(alice, "private_state")

                alice.send_json({"type": "start_hand"})
                state = _receive_until(bob, "game_state")
                assert state["hand_in_progress"] is True
                assert len(_receive_until(bob, "private_state")["cards"]) == 2

    def test_act_before_join(self):
        with TestClient(fastapi_app) as client:
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
                ws.send_json({"type": "act", "action": "check"})
                err = ws.receive_json()
        assert err == {
            "type": "error",
            "data": {"kind": "not_found", "message": "Join a room first"},
        }

    def test_unknown_message_type(self):
        with TestClient(fastapi_app) as client:
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
                ws.send_json({"type": "teleport"})
                err = ws.receive_json()
        assert err["type"] == "error"
        assert err["data"]["kind"] == "validation"

    def test_malformed_json(self):
        with TestClient(fastapi_app) as client:
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
                ws.send_text("{not json")
                err = ws.receive_json()
                ws.send_text("[1, 2]")
                err2 = ws.receive_json()
        assert err["data"] == {"kind": "validation", "message": "Malformed message"}
        assert err2["data"]["message"] == "Malformed message"

    def test_unexpected_error_is_reported(self):
        with TestClient(fastapi_app) as client:
            gm = fastapi_app.state.game_manager
            with patch.object(gm, "handle_message", side_effect=RuntimeError("boom")):
                with client.websocket_connect("/ws") as ws:
                    ws.receive_json()
                    ws.send_json({"type": "chat", "text": "hi"})
                    err = ws.receive_json()
        assert err["data"] == {"kind": "internal", "message": "Something went wrong"}
