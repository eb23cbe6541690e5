"""Shared test fixtures for nikku."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, AsyncGenerator, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from nikku.config import NikkuConfig
from nikku.database import BotDatabase
from nikku.state import MessageState


# ── Minimal config dict matching NikkuConfig schema ──────────

def make_config_dict(**overrides) -> dict:
    """Build a valid config dict with sensible test defaults."""
    base = {
        "discord": {"token": "test-token", "activity": "Fortnite"},
        "commands": {
            "prefixes": ["!f"],
            "confirmation_timeout_seconds": 5,
            "target_confirmation_max_messages": 5,
        },
        "database": {"path": ":memory:"},
        "currency": {"name": "DotmaCoin", "target_ping_reward": 1, "starting_balance": 0},
        "auto_ping": {"price_exponent": 1.1, "min_delay_seconds": 1, "max_amount": 100},
        "triggers": {
            "keyword_triggers_enabled": True,
            "random_text_chance_percent": 0,
            "random_text_message": "This message only has a 1/25 chance of appearing",
        },
        "chatbot": {"base_url": "", "chance_percent": 0},
        "shop": {
            "items": [
                {"name": "Pickaxe", "value": 50},
                {"name": "Victory Umbrella", "value": 1000},
            ],
            "refresh_cron": "0 0 * * *",
            "max_discount_percent": 50,
        },
        "logging": {"file": ""},
    }
    base.update(overrides)
    return base


@pytest.fixture
def sample_config_dict() -> dict:
    """Return a config dict suitable for tests."""
    return make_config_dict()


@pytest.fixture
def sample_config(sample_config_dict: dict) -> NikkuConfig:
    """Return a parsed NikkuConfig."""
    return NikkuConfig(**sample_config_dict)


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> str:
    """Return a temporary SQLite database path."""
    return str(tmp_path / "test_nikku.db")


@pytest_asyncio.fixture
async def database(tmp_db_path: str) -> AsyncGenerator[BotDatabase, None]:
    """Provide an initialized database with temp file."""
    db = BotDatabase(tmp_db_path, logging.getLogger("test"))
    await db.initialize()
    yield db


# ── Discord doubles ──────────────────────────────────────────

def _make_message(
    content: str = "",
    author_id: int = 111,
    channel_id: int = 555,
    *,
    administrator: bool = False,
    bot: bool = False,
) -> MagicMock:
    message = MagicMock()
    message.content = content
    message.author.id = author_id
    message.author.bot = bot
    message.author.guild_permissions.administrator = administrator
    message.channel.id = channel_id
    message.channel.send = AsyncMock()
    message.reply = AsyncMock()
    return message


@pytest.fixture
def make_message() -> Callable[..., MagicMock]:
    """Factory for mock discord.Message objects."""
    return _make_message


@pytest.fixture
def mock_client() -> MagicMock:
    """Return a mock discord.Client; wait_for times out unless scripted."""
    client = MagicMock()
    client.wait_for = AsyncMock(side_effect=asyncio.TimeoutError())

    def get_user(user_id: int) -> Any:
        user = MagicMock()
        user.name = f"user{user_id}"
        return user

    client.get_user = MagicMock(side_effect=get_user)
    return client


@pytest.fixture
def script_replies(mock_client: MagicMock) -> Callable[..., None]:
    """Queue follow-up messages for mock_client.wait_for.

    Each wait_for call consumes queued messages until one passes ``check``;
    once the queue is empty it raises asyncio.TimeoutError.
    """

    def _script(*messages: MagicMock) -> None:
        pending = list(messages)

        async def wait_for(event: str, *, check=None, timeout=None):
            while pending:
                m = pending.pop(0)
                if check is None or check(m):
                    return m
            raise asyncio.TimeoutError()

        mock_client.wait_for = AsyncMock(side_effect=wait_for)

    return _script


@pytest.fixture
def make_state(mock_client: MagicMock) -> Callable[..., MessageState]:
    """Factory building a MessageState around a fresh mock message."""

    def _factory(content: str = "", author_id: int = 111, channel_id: int = 555, **kwargs) -> MessageState:
        message = _make_message(content, author_id, channel_id, **kwargs)
        return MessageState(message, mock_client)

    return _factory


def sent_texts(state: MessageState) -> list[str]:
    """Everything posted to the state's channel via send()."""
    return [c.args[0] for c in state.handle.channel.send.await_args_list]


def replied_texts(state: MessageState) -> list[str]:
    return [c.args[0] for c in state.handle.reply.await_args_list]


@pytest.fixture
def sent() -> Callable[[MessageState], list[str]]:
    return sent_texts


@pytest.fixture
def replied() -> Callable[[MessageState], list[str]]:
    return replied_texts
