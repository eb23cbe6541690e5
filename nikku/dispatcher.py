"""Command dispatcher — turns one inbound line into command executions.

Flow per message:
  tokenize → prefix match?
    yes → keyword lookup → argument extraction → attempt_execution
    no  → passive scan of every triggerable command, in registration order

attempt_execution gates on database readiness and argument count, resolves
the caller's user record, applies the administrator auto-escalation and then
runs the command. No exception escapes parse_line.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Sequence

from .commands import NO_KEYWORD, Command, ExecutableCommand, TriggerableCommand
from .exceptions import (
    AccessDeniedError,
    ExecutionError,
    InvalidArgumentsError,
    NikkuError,
    PersistenceError,
    ReadinessError,
)
from .models import AccessLevel, UserRecord

if TYPE_CHECKING:
    from .database import BotDatabase
    from .registry import CommandRegistry, PrefixRegistry
    from .state import MessageState


class DispatchResult(Enum):
    EXECUTED = "executed"
    REJECTED = "rejected"
    NO_MATCH = "no_match"


@dataclass(frozen=True)
class DispatchOutcome:
    result: DispatchResult
    commands: tuple[str, ...] = ()


class CommandDispatcher:
    """Routes messages to executable commands or passive triggers."""

    def __init__(
        self,
        registry: CommandRegistry,
        prefixes: PrefixRegistry,
        database: BotDatabase,
        logger: logging.Logger | None = None,
    ) -> None:
        self._registry = registry
        self._prefixes = prefixes
        self._db = database
        self._logger = logger or logging.getLogger("nikku.dispatcher")

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    @property
    def prefixes(self) -> PrefixRegistry:
        return self._prefixes

    # ══════════════════════════════════════════════════════════
    #  Parsing
    # ══════════════════════════════════════════════════════════

    async def parse_line(self, line: str, user_id: str, state: MessageState) -> DispatchOutcome:
        """Dispatch one message line for ``user_id``."""
        tokens = line.split()
        prefix = self._prefixes.match(tokens[0]) if tokens else None

        if prefix is None:
            fired = await self.trigger_actions(user_id, state)
            if fired:
                return DispatchOutcome(DispatchResult.EXECUTED, tuple(fired))
            return DispatchOutcome(DispatchResult.NO_MATCH)

        keyword = self.extract_command(tokens)
        command = self._registry.get(keyword)
        if not isinstance(command, ExecutableCommand):
            self._logger.debug("No command registered for %r (user %s)", keyword, user_id)
            return DispatchOutcome(DispatchResult.NO_MATCH)

        args = self.extract_arguments(tokens, command.required_arg_count)
        try:
            await self.attempt_execution(command, args, user_id, state)
        except ReadinessError:
            self._logger.warning(
                "Dropped command %r from %s: please wait until the database connection has resolved.",
                command.invocation_key, user_id,
            )
            return DispatchOutcome(DispatchResult.REJECTED, (command.invocation_key,))
        except ExecutionError as e:
            self._logger.error(
                "Command %r failed for user %s: %s",
                command.invocation_key, user_id, e, exc_info=e.error,
            )
            return DispatchOutcome(DispatchResult.REJECTED, (command.invocation_key,))
        except NikkuError as e:
            self._logger.info(
                "%s: execution of %r for user %s rejected: %s",
                type(e).__name__, command.invocation_key, user_id, e,
            )
            return DispatchOutcome(DispatchResult.REJECTED, (command.invocation_key,))
        except Exception:
            self._logger.exception(
                "Unexpected failure dispatching %r for user %s", command.invocation_key, user_id,
            )
            return DispatchOutcome(DispatchResult.REJECTED, (command.invocation_key,))
        return DispatchOutcome(DispatchResult.EXECUTED, (command.invocation_key,))

    @staticmethod
    def extract_command(tokens: Sequence[str]) -> str:
        """Keyword following the prefix, or NO_KEYWORD when absent."""
        return tokens[1] if len(tokens) > 1 else NO_KEYWORD

    @staticmethod
    def extract_arguments(tokens: Sequence[str], amount: int) -> list[str]:
        """Tokens after the keyword: all of them when ``amount`` is 0, else at most ``amount``."""
        if amount == 0:
            return list(tokens[2:])
        return list(tokens[2:2 + amount])

    # ══════════════════════════════════════════════════════════
    #  Passive triggers
    # ══════════════════════════════════════════════════════════

    async def trigger_actions(self, user_id: str, state: MessageState) -> list[str]:
        """Evaluate every triggerable command in order; run each one that matches.

        Returns the keys of the commands that executed successfully.
        """
        fired: list[str] = []
        for key, command in self._registry.items():
            if not isinstance(command, TriggerableCommand):
                continue
            try:
                if not command.matches(state):
                    continue
            except Exception:
                self._logger.exception("Trigger predicate of %r raised", key)
                continue

            self._logger.info("Triggering auto command %r for user %s.", key, user_id)
            try:
                await self.attempt_execution(command, (), user_id, state, auto=True)
            except ReadinessError:
                self._logger.warning(
                    "Skipped auto command %r: database connection not ready.", key,
                )
            except AccessDeniedError:
                self._logger.debug("Auto command %r not permitted for user %s.", key, user_id)
            except ExecutionError as e:
                self._logger.error("Auto command %r failed: %s", key, e, exc_info=e.error)
            except NikkuError as e:
                self._logger.info("Auto execution of %r failed, %s: %s", key, type(e).__name__, e)
            except Exception:
                self._logger.exception("Auto execution of %r failed unexpectedly", key)
            else:
                fired.append(key)
        return fired

    # ══════════════════════════════════════════════════════════
    #  Execution
    # ══════════════════════════════════════════════════════════

    async def attempt_execution(
        self,
        command: Command,
        args: Sequence[str],
        user_id: str,
        state: MessageState,
        *,
        auto: bool = False,
    ) -> None:
        """Gate and run ``command``. Raises a NikkuError subclass on rejection or failure."""
        if not self._db.is_ready():
            raise ReadinessError("Database not ready", command=command.invocation_key)

        required = command.required_arg_count
        if not auto and required != 0 and len(args) != required:
            if isinstance(command, ExecutableCommand):
                await command.display_usage(state)
            raise InvalidArgumentsError(
                "Invalid arguments.",
                command=command.invocation_key,
                expected=required,
                received=len(args),
            )

        try:
            user = await self._db.get_user_by_id(user_id)
            if user is not None:
                user = await self._escalate(user, state)

            if user is not None:
                self._logger.info(
                    "Executing command %r for user %s (%s).",
                    command.invocation_key, user_id, user.access_level.name,
                )
                await command.execute_with_user(state, user, args, auto=auto)
            else:
                self._logger.info(
                    "Executing command %r for user %s. NO_REG_USER.",
                    command.invocation_key, user_id,
                )
                await command.execute_without_user(state, args, auto=auto)
        except PersistenceError:
            await self._notify_failure(state)
            raise
        except NikkuError:
            raise
        except Exception as e:
            raise ExecutionError(command.invocation_key, e) from e

    async def _escalate(self, user: UserRecord, state: MessageState) -> UserRecord:
        """Raise server administrators to ADMINISTRATOR. Never lowers a level."""
        if not state.has_elevated_privilege():
            return user
        if user.access_level >= AccessLevel.ADMINISTRATOR or user.access_level == AccessLevel.DEVELOPER:
            return user

        await self._db.set_access_level(user.id, AccessLevel.ADMINISTRATOR)
        self._logger.info(
            "Escalated user %s from %s to ADMINISTRATOR.", user.id, user.access_level.name,
        )
        await state.reply(
            "You are a server administrator. Your access level has been set to **ADMINISTRATOR**."
        )
        return replace(user, access_level=AccessLevel.ADMINISTRATOR)

    async def _notify_failure(self, state: MessageState) -> None:
        try:
            await state.reply("❌ Something went wrong talking to the database. Please try again.")
        except Exception:
            self._logger.debug("Failed to send failure notice to %s", state.author_id)
