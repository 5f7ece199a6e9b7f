"""Runtime configuration, read from the environment once at import."""

from __future__ import annotations

import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in ("0", "false", "no", "")


# Defaults for a freshly created room
DEFAULT_STARTING_CHIPS = int(os.getenv("POKER_STARTING_CHIPS", "1000"))
DEFAULT_SMALL_BLIND = int(os.getenv("POKER_SMALL_BLIND", "10"))
DEFAULT_BIG_BLIND = int(os.getenv("POKER_BIG_BLIND", "20"))
DEFAULT_TURN_TIMER = int(os.getenv("POKER_TURN_TIMER", "60"))  # seconds
DEFAULT_REBUY_ENABLED = _flag("POKER_REBUY_ENABLED", "1")
DEFAULT_REBUY_AMOUNT = int(os.getenv("POKER_REBUY_AMOUNT", "1000"))

# Empty rooms are kept this long so a quick reconnect finds them again
ROOM_GRACE_SECONDS = float(os.getenv("ROOM_GRACE_SECONDS", "300"))
ROOM_CLEANUP_INTERVAL = float(os.getenv("ROOM_CLEANUP_INTERVAL", "30"))

# Pause between automatically dealt streets when nobody is left to act
RUNOUT_DELAY = float(os.getenv("RUNOUT_DELAY", "1.5"))
TIMER_TICK = float(os.getenv("TIMER_TICK", "0.25"))

HAND_HISTORY_LIMIT = 50
ROOM_CODE_LENGTH = 6
# 22 players x 2 hole cards + 3 burns + 5 board cards = 52
MAX_PLAYERS = 22

RATE_LIMIT_ENABLED = _flag("RATE_LIMIT_ENABLED", "1")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
