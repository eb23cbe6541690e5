"""NikkuBot — discord.py client feeding messages into the dispatcher.

Responsibilities:
- filters out bot authors and channels outside ``allowed_channel_ids``
- strips leading mentions of the bot itself so ``@Nikku !f ping`` works
- wraps each message in a MessageState and hands it to the dispatcher
- on ready, attaches debug channels to the log transport and sets presence
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import discord

from .state import MessageState

if TYPE_CHECKING:
    from .channel_log import ChannelLogHandler
    from .config import NikkuConfig
    from .dispatcher import CommandDispatcher

_MENTION_TOKEN_RE = re.compile(r"^<@!?(\d+)>$")


def strip_self_mentions(text: str, bot_id: int | None) -> str:
    """Drop leading ``<@id>`` / ``<@!id>`` tokens that mention ``bot_id``."""
    if bot_id is None:
        return text.strip()
    tokens = text.split()
    while tokens:
        match = _MENTION_TOKEN_RE.match(tokens[0])
        if not match or int(match.group(1)) != bot_id:
            break
        tokens.pop(0)
    return " ".join(tokens)


class NikkuBot(discord.Client):
    """Discord client for the command framework."""

    def __init__(
        self,
        config: NikkuConfig,
        dispatcher: CommandDispatcher,
        log_handler: ChannelLogHandler | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = True  # Required to read command text
        intents.members = True  # user_exists / display_name look users up in the cache
        super().__init__(intents=intents)
        self.config = config
        self.dispatcher = dispatcher
        self._log_handler = log_handler
        self._logger = logger or logging.getLogger("nikku.bot")

    def is_allowed_channel(self, channel_id: int) -> bool:
        """Empty ``allowed_channel_ids`` means everywhere."""
        allowed = self.config.discord.allowed_channel_ids
        return not allowed or channel_id in allowed

    async def on_ready(self) -> None:
        self._logger.info("Logged in as %s (id: %s)", self.user, self.user.id if self.user else "?")
        self._logger.info("Connected to %d guild(s)", len(self.guilds))

        if self._log_handler is not None:
            for channel_id in self.config.discord.debug_channel_ids:
                channel = self.get_channel(channel_id)
                if channel is None:
                    self._logger.warning("Debug channel %s not found", channel_id)
                    continue
                self._log_handler.add_channel(channel)

        if self.config.discord.activity:
            await self.change_presence(activity=discord.Game(name=self.config.discord.activity))

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return
        if not self.is_allowed_channel(message.channel.id):
            return

        bot_id = self.user.id if self.user else None
        content = strip_self_mentions(message.content, bot_id)
        if not content:
            return

        state = MessageState(message, self, content)
        try:
            await self.dispatcher.parse_line(content, str(message.author.id), state)
        except Exception:
            self._logger.exception("message handler error for %s", message.author.id)
