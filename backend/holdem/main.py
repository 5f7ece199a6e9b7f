"""FastAPI application: WebSocket endpoint for play plus a small REST surface."""

import hmac
import json
import logging
from contextlib import asynccontextmanager

from fastapi import (
    Depends,
    FastAPI,
    Header,
    HTTPException,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from holdem import config
from holdem.cleanup import RoomCleaner, cleanup_idle_rooms
from holdem.errors import GameError
from holdem.game_manager import GameManager
from holdem.rooms import RoomDirectory
from holdem.timer import ActionTimer
from holdem.ws_manager import ConnectionManager

logger = logging.getLogger(__name__)


def build_services(app: FastAPI) -> GameManager:
    """Create the room directory and everything hanging off it on ``app.state``."""
    directory = RoomDirectory()
    connections = ConnectionManager()
    timer = ActionTimer(directory)
    app.state.directory = directory
    app.state.connections = connections
    app.state.timer = timer
    app.state.cleaner = RoomCleaner(directory, timer)
    app.state.game_manager = GameManager(directory, connections, timer)
    return app.state.game_manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    build_services(app)
    app.state.timer.start()
    app.state.cleaner.start()
    yield
    app.state.cleaner.stop()
    app.state.timer.stop()


app = FastAPI(title="Hold'em Poker API", lifespan=lifespan)

# ---------- Rate Limiting ----------

limiter = Limiter(
    key_func=get_remote_address,
    enabled=config.RATE_LIMIT_ENABLED,
)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def _rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Please slow down."},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------- Admin Auth ----------


async def verify_admin(authorization: str | None = Header(None)):
    """Validate the admin password from the Authorization header."""
    if not config.ADMIN_PASSWORD:
        raise HTTPException(
            status_code=503,
            detail="Admin not configured. Set ADMIN_PASSWORD env var.",
        )
    expected = f"Bearer {config.ADMIN_PASSWORD}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Invalid admin password")


# ---------- REST endpoints ----------


@app.get("/api/health")
async def health(request: Request):
    return {
        "status": "ok",
        "rooms": len(request.app.state.directory.codes()),
        "connections": request.app.state.connections.count,
    }


@app.get("/api/rooms/{code}")
@limiter.limit("30/minute")
async def get_room(request: Request, code: str):
    """Public snapshot of a room (never contains hole cards)."""
    state = await request.app.state.game_manager.room_snapshot(code)
    if state is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return state


@app.get("/api/admin/rooms")
@limiter.limit("10/minute")
async def admin_rooms(request: Request, _=Depends(verify_admin)):
    """Overview of every room in memory. No card data."""
    return {"rooms": request.app.state.game_manager.room_summaries()}


@app.post("/api/admin/cleanup")
@limiter.limit("10/minute")
async def admin_cleanup(request: Request, _=Depends(verify_admin)):
    """Manually trigger idle-room cleanup. Returns deleted and kept room codes."""
    return cleanup_idle_rooms(request.app.state.directory, request.app.state.timer)


# ---------- WebSocket ----------


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    gm: GameManager = ws.app.state.game_manager
    connections: ConnectionManager = ws.app.state.connections

    conn = await connections.connect(ws)
    session_id = conn.session_id
    await connections.send(session_id, "session", {"session_id": session_id})

    try:
        while True:
            raw = await ws.receive_text()
            try:
                msg = json.loads(raw)
                if not isinstance(msg, dict):
                    raise ValueError("Message must be a JSON object")
            except ValueError:
                await connections.send(
                    session_id, "error", {"kind": "validation", "message": "Malformed message"}
                )
                continue

            try:
                await gm.handle_message(session_id, msg)
            except GameError as e:
                await connections.send(session_id, "error", e.to_dict())
            except Exception:
                logger.exception(
                    "Error handling %r from session %s", msg.get("type"), session_id
                )
                await connections.send(
                    session_id, "error", {"kind": "internal", "message": "Something went wrong"}
                )
    except WebSocketDisconnect:
        pass
    finally:
        connections.disconnect(session_id)
        try:
            await gm.disconnect(session_id)
        except Exception:
            logger.exception("Error removing session %s after disconnect", session_id)
