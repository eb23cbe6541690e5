"""Chat-bot service client — async HTTP wrapper for conversational replies.

Provides ask() for fetching a reply to a chat line. All tests mock the HTTP
layer; nothing here is ever pointed at a real service during tests.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import aiohttp

if TYPE_CHECKING:
    from .config import ChatBotConfig


class ChatBotClient:
    """Async client for the chat-bot reply API."""

    def __init__(self, config: ChatBotConfig, logger: logging.Logger | None = None) -> None:
        self._config = config
        self._logger = logger or logging.getLogger("nikku.chatbot")
        self._session: aiohttp.ClientSession | None = None

    @property
    def enabled(self) -> bool:
        return bool(self._config.base_url)

    async def start(self) -> None:
        """Create the HTTP session."""
        headers: dict[str, str] = {}
        if self._config.api_token:
            headers["Authorization"] = f"Token {self._config.api_token}"
        self._session = aiohttp.ClientSession(
            base_url=self._config.base_url,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds),
        )

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def ask(self, text: str, channel_id: int) -> str | None:
        """Return the service's reply to ``text``, or None on error or empty reply."""
        if not self._session or not text.strip():
            return None

        try:
            async with self._session.post(
                "/api/v1/reply",
                json={"message": text, "conversation": str(channel_id)},
            ) as resp:
                resp.raise_for_status()
                data = await resp.json()
        except Exception as e:
            self._logger.error("Chat-bot request failed for channel %s: %s", channel_id, e)
            return None

        reply = data.get("reply") if isinstance(data, dict) else None
        if not isinstance(reply, str) or not reply.strip():
            return None
        return reply.strip()
