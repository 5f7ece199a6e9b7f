"""Idle room cleanup: background task that drops rooms nobody has used lately.

A room becomes idle when its last seated or waiting player leaves.  It is kept
for ROOM_GRACE_SECONDS so a quick reconnect lands back in the same room, and is
collected on the first sweep after that.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from holdem import config
from holdem.rooms import RoomDirectory
from holdem.timer import ActionTimer

logger = logging.getLogger(__name__)


def cleanup_idle_rooms(
    directory: RoomDirectory,
    timer: Optional[ActionTimer] = None,
    now: Optional[float] = None,
) -> dict[str, list[str]]:
    """Collect expired rooms.

    Returns a dict with 'deleted' (codes removed) and 'kept' (codes that
    were checked but retained).
    """
    deleted = directory.collect_idle(now)
    if timer is not None:
        for code in deleted:
            timer.cancel(code)
    return {"deleted": deleted, "kept": directory.codes()}


class RoomCleaner:
    """Background asyncio task that periodically removes idle rooms."""

    def __init__(
        self,
        directory: RoomDirectory,
        timer: Optional[ActionTimer] = None,
        interval: float = config.ROOM_CLEANUP_INTERVAL,
    ) -> None:
        self._directory = directory
        self._timer = timer
        self._interval = interval
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
            logger.info("Room cleaner started (interval=%ds)", int(self._interval))

    def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            logger.info("Room cleaner stopped")

    async def _loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval)
                try:
                    result = cleanup_idle_rooms(self._directory, self._timer)
                    if result["deleted"]:
                        logger.info(
                            "Cleanup pass: deleted %d room(s): %s",
                            len(result["deleted"]),
                            ", ".join(result["deleted"]),
                        )
                    else:
                        logger.debug("Cleanup pass: nothing to delete")
                except Exception:
                    logger.exception("Cleanup pass failed")
        except asyncio.CancelledError:
            pass
