"""Confirmation flows — yes/no prompts bounded by a timeout.

FlowLocks keeps at most one pending confirmation per (command, user); a second
invocation while one is pending is rejected with FlowBusyError.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator

from .exceptions import FlowBusyError, ResponseTimeoutError

if TYPE_CHECKING:
    from .state import MessageState

YES = "yes"
NO = "no"


class FlowLocks:
    """Tracks which users currently have an interactive flow open per command."""

    def __init__(self) -> None:
        self._held: set[tuple[str, str]] = set()

    def is_held(self, command: str, user_id: str) -> bool:
        return (command, user_id) in self._held

    @asynccontextmanager
    async def claim(self, command: str, user_id: str) -> AsyncIterator[None]:
        key = (command, user_id)
        # Check-and-add has no await in between, so it is atomic on the loop
        if key in self._held:
            raise FlowBusyError(
                "A confirmation is already pending", command=command, user=user_id,
            )
        self._held.add(key)
        try:
            yield
        finally:
            self._held.discard(key)


async def confirm(
    state: MessageState,
    responder_id: str,
    prompt: str,
    *,
    timeout: float,
    max_messages: int = 1,
) -> bool:
    """Send ``prompt`` and wait for ``responder_id`` to answer yes or no.

    Up to ``max_messages`` messages from the responder are inspected; the
    first yes/no wins. Any other answer after that budget counts as "no".
    Raises ResponseTimeoutError when the window elapses.
    """
    await state.send(prompt)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    def from_responder(m) -> bool:
        return str(m.author.id) == responder_id

    for _ in range(max(1, max_messages)):
        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        replies = await state.await_next_matching(
            from_responder, max_count=1, timeout=remaining,
        )
        answer = replies[0].content.strip().lower()
        if answer == YES:
            return True
        if answer == NO:
            return False
    else:
        return False

    raise ResponseTimeoutError("Confirmation window elapsed", responder=responder_id)
