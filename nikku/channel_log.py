"""Logging transport that mirrors records into Discord debug channels.

emit() only formats and enqueues; a background task drains the queue and
sends each line to every registered channel. Send failures are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

_LOGGER_NAME = "nikku.channel_log"
_logger = logging.getLogger(_LOGGER_NAME)

# Discord rejects messages longer than this
_MAX_MESSAGE_LENGTH = 2000


class ChannelLogHandler(logging.Handler):
    """logging.Handler forwarding records to Discord channels."""

    def __init__(self, level: int = logging.WARNING, max_queue: int = 500) -> None:
        super().__init__(level)
        self._channels: list[Any] = []
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max_queue)
        self._flush_task: asyncio.Task | None = None
        self.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))

    @property
    def channels(self) -> list[Any]:
        return list(self._channels)

    def add_channel(self, channel: Any) -> None:
        """Register a messageable channel (anything with an async ``send``)."""
        if channel not in self._channels:
            self._channels.append(channel)

    # ── Lifecycle ────────────────────────────────────────────

    async def start(self) -> None:
        """Start the delivery loop."""
        if self._flush_task is None:
            self._flush_task = asyncio.create_task(self._flush_loop())

    async def stop(self) -> None:
        if self._flush_task:
            self._flush_task.cancel()
            try:
                await self._flush_task
            except asyncio.CancelledError:
                pass
            self._flush_task = None

    # ── logging.Handler ──────────────────────────────────────

    def emit(self, record: logging.LogRecord) -> None:
        # Our own send failures must not feed back into the queue
        if record.name.startswith((_LOGGER_NAME, "discord.http")):
            return
        try:
            text = self.format(record)
        except Exception:
            self.handleError(record)
            return
        try:
            self._queue.put_nowait(text[:_MAX_MESSAGE_LENGTH - 6])
        except asyncio.QueueFull:
            pass

    # ── Internal ─────────────────────────────────────────────

    async def _flush_loop(self) -> None:
        while True:
            text = await self._queue.get()
            for channel in list(self._channels):
                try:
                    await channel.send(f"```{text}```")
                except Exception as exc:
                    _logger.debug("Debug channel send failed: %s", exc)

