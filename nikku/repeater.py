"""Repeater — bounded repeating callbacks, one per channel.

Backs the auto-ping feature: run a callback ``amount`` times, ``delay``
seconds apart, until finished or stopped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable


class Repeater:
    """Runs at most one repeating task per channel."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("nikku.repeater")
        self._tasks: dict[int, asyncio.Task] = {}

    def is_running(self, channel_id: int) -> bool:
        task = self._tasks.get(channel_id)
        return task is not None and not task.done()

    def start(
        self,
        channel_id: int,
        amount: int,
        delay_seconds: float,
        callback: Callable[[int], Awaitable[None]],
    ) -> bool:
        """Schedule ``callback(i)`` for i in 1..amount. False if one is already running here."""
        if self.is_running(channel_id):
            return False
        task = asyncio.create_task(self._run(channel_id, amount, delay_seconds, callback))
        self._tasks[channel_id] = task
        self._logger.info(
            "Repeater started in channel %s: %d runs every %.1fs", channel_id, amount, delay_seconds,
        )
        return True

    async def stop(self, channel_id: int) -> bool:
        """Cancel the channel's task. False if nothing was running."""
        task = self._tasks.pop(channel_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._logger.info("Repeater stopped in channel %s", channel_id)
        return True

    async def stop_all(self) -> None:
        for channel_id in list(self._tasks):
            await self.stop(channel_id)

    async def _run(
        self,
        channel_id: int,
        amount: int,
        delay_seconds: float,
        callback: Callable[[int], Awaitable[None]],
    ) -> None:
        try:
            for i in range(1, amount + 1):
                await asyncio.sleep(delay_seconds)
                try:
                    await callback(i)
                except Exception:
                    self._logger.exception("Repeater callback %d failed in channel %s", i, channel_id)
        finally:
            if self._tasks.get(channel_id) is asyncio.current_task():
                del self._tasks[channel_id]
