"""Command contracts: executable and triggerable variants.

Commands are immutable values built once at load time. Everything that
belongs to a single call (state, user, arguments) travels in an Invocation,
so concurrent runs of the same command never share argument storage.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Sequence, Union

from .exceptions import AccessDeniedError
from .models import AccessLevel, UserRecord

if TYPE_CHECKING:
    from .state import MessageState

# Registry key of the command invoked by a bare prefix with no keyword
NO_KEYWORD = " "


@dataclass(frozen=True)
class Invocation:
    """Request-scoped context handed to an action."""

    command: Command
    state: MessageState
    args: tuple[str, ...] = ()
    user: UserRecord | None = None
    auto: bool = False


Action = Callable[[Invocation], Awaitable[None]]
Trigger = Callable[["MessageState"], bool]


@dataclass(frozen=True, kw_only=True)
class _CommandBase:
    key: str
    action: Action
    arg_count: int = 0
    access_level: AccessLevel = AccessLevel.UNREGISTERED

    @property
    def invocation_key(self) -> str:
        return self.key

    @property
    def required_arg_count(self) -> int:
        """Exact argument count, or 0 to take every remaining token."""
        return self.arg_count

    async def execute_with_user(
        self,
        state: MessageState,
        user: UserRecord,
        args: Sequence[str] = (),
        *,
        auto: bool = False,
    ) -> None:
        """Run the action for a known, persisted user."""
        await self._check_access(state, user.access_level, auto)
        await self.action(Invocation(self, state, tuple(args), user, auto))

    async def execute_without_user(
        self,
        state: MessageState,
        args: Sequence[str] = (),
        *,
        auto: bool = False,
    ) -> None:
        """Run the action for a caller with no user record."""
        await self._check_access(state, AccessLevel.UNREGISTERED, auto)
        await self.action(Invocation(self, state, tuple(args), None, auto))

    async def _check_access(self, state: MessageState, level: AccessLevel, auto: bool) -> None:
        if level >= self.access_level:
            return
        if not auto:
            if level == AccessLevel.UNREGISTERED:
                await state.reply(
                    "You need to register first. Use the **register** command."
                )
            else:
                await state.reply(
                    f"This command requires **{self.access_level.name}** access."
                )
        raise AccessDeniedError(
            "Access level too low",
            command=self.key,
            required=self.access_level.name,
            actual=level.name,
        )


@dataclass(frozen=True, kw_only=True)
class ExecutableCommand(_CommandBase):
    """Invoked explicitly with prefix + keyword."""

    usage: str = ""
    description: str = ""

    async def display_usage(self, state: MessageState) -> None:
        if self.usage:
            await state.send(f"Usage: `{self.usage}`")
        else:
            await state.send(f"Invalid arguments for **{self.key.strip() or 'default'}**.")


@dataclass(frozen=True, kw_only=True)
class TriggerableCommand(_CommandBase):
    """Invoked passively whenever ``trigger`` matches a message."""

    trigger: Trigger

    def matches(self, state: MessageState) -> bool:
        return bool(self.trigger(state))


Command = Union[ExecutableCommand, TriggerableCommand]
