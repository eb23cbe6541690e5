"""Tests for ChatBotClient — HTTP wrapper for conversational replies."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from nikku.chatbot_client import ChatBotClient
from nikku.config import ChatBotConfig


def _make_client(**overrides) -> ChatBotClient:
    cfg = ChatBotConfig(base_url="https://bot.test.com", api_token="test-token", **overrides)
    return ChatBotClient(cfg, logging.getLogger("test"))


def _mock_session(payload=None, error: Exception | None = None) -> MagicMock:
    mock_resp = AsyncMock()
    mock_resp.raise_for_status = MagicMock(side_effect=error)
    mock_resp.json = AsyncMock(return_value=payload)
    mock_resp.__aenter__ = AsyncMock(return_value=mock_resp)
    mock_resp.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.post = MagicMock(return_value=mock_resp)
    return session


# ═══════════════════════════════════════════════════════════════
#  ask()
# ═══════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_ask_returns_reply():
    """The reply text is extracted and stripped."""
    client = _make_client()
    client._session = _mock_session({"reply": "  hello there \n"})

    assert await client.ask("hi", 555) == "hello there"

    call_args = client._session.post.call_args
    assert call_args[0][0] == "/api/v1/reply"
    assert call_args[1]["json"] == {"message": "hi", "conversation": "555"}


@pytest.mark.asyncio
async def test_ask_http_error_returns_none():
    client = _make_client()
    client._session = _mock_session(
        error=aiohttp.ClientResponseError(MagicMock(), (), status=500),
    )
    assert await client.ask("hi", 1) is None


@pytest.mark.asyncio
async def test_ask_malformed_payload_returns_none():
    client = _make_client()
    client._session = _mock_session(["not", "a", "dict"])
    assert await client.ask("hi", 1) is None


@pytest.mark.asyncio
async def test_ask_empty_reply_returns_none():
    client = _make_client()
    client._session = _mock_session({"reply": "   "})
    assert await client.ask("hi", 1) is None


@pytest.mark.asyncio
async def test_ask_without_session():
    """Before start() the client never does I/O."""
    assert await _make_client().ask("hi", 1) is None


@pytest.mark.asyncio
async def test_ask_blank_text_skipped():
    client = _make_client()
    client._session = _mock_session({"reply": "x"})
    assert await client.ask("   ", 1) is None
    client._session.post.assert_not_called()


# ═══════════════════════════════════════════════════════════════
#  Lifecycle
# ═══════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_start_stop():
    client = _make_client()
    await client.start()
    assert client._session is not None
    await client.stop()
    assert client._session is None


def test_enabled_flag():
    assert _make_client().enabled is True
    assert ChatBotClient(ChatBotConfig()).enabled is False
