"""Per-message state handed to triggers and actions.

A MessageState wraps one inbound discord.Message plus the client needed to
reply, look up users and wait for follow-up messages. It lives for a single
dispatch cycle.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Callable

from .exceptions import ResponseTimeoutError

if TYPE_CHECKING:
    import discord


class MessageState:
    """One inbound message and the platform handle actions use to respond."""

    def __init__(
        self,
        message: discord.Message,
        client: discord.Client,
        content: str | None = None,
    ) -> None:
        self._message = message
        self._client = client
        # Content with leading bot mentions already stripped by the adapter
        self._content = message.content if content is None else content

    @property
    def handle(self) -> discord.Message:
        return self._message

    @property
    def content(self) -> str:
        return self._content

    @property
    def author_id(self) -> str:
        return str(self._message.author.id)

    @property
    def channel_id(self) -> int:
        return self._message.channel.id

    async def send(self, text: str) -> None:
        """Post ``text`` in the message's channel."""
        await self._message.channel.send(text)

    async def reply(self, text: str) -> None:
        """Reply to the author of the message."""
        await self._message.reply(text)

    def has_elevated_privilege(self) -> bool:
        """True if the author is a server administrator in this guild."""
        permissions = getattr(self._message.author, "guild_permissions", None)
        return bool(permissions is not None and permissions.administrator)

    def user_exists(self, user_id: str) -> bool:
        return self._client.get_user(int(user_id)) is not None

    def display_name(self, user_id: str) -> str | None:
        user = self._client.get_user(int(user_id))
        return user.name if user is not None else None

    async def await_next_matching(
        self,
        predicate: Callable[[discord.Message], bool],
        *,
        max_count: int = 1,
        timeout: float = 300.0,
    ) -> list[discord.Message]:
        """Wait for up to ``max_count`` messages in this channel matching ``predicate``.

        Stops at the first window expiry. Raises ResponseTimeoutError if
        nothing matched at all.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        channel_id = self.channel_id

        def check(m: discord.Message) -> bool:
            return m.channel.id == channel_id and predicate(m)

        matched: list[discord.Message] = []
        while len(matched) < max_count:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                m = await self._client.wait_for("message", check=check, timeout=remaining)
            except asyncio.TimeoutError:
                break
            matched.append(m)

        if not matched:
            raise ResponseTimeoutError(
                "No response within the allowed window",
                channel=channel_id,
                timeout=timeout,
            )
        return matched
