"""Exception hierarchy for nikku.

Every failure the dispatcher can observe maps to one of these types, so the
message loop can decide per type whether to reply, log, or stay silent.
"""

from __future__ import annotations

from typing import Any


class NikkuError(Exception):
    """Base exception for all nikku errors.

    Attributes:
        message: Human-readable error description.
        context: Arbitrary key-value pairs for structured logging.
    """

    def __init__(self, message: str = "", **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message or self.__class__.__name__]
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({ctx})")
        return " ".join(parts)


class ConfigurationError(NikkuError):
    """Fatal start-up misconfiguration (e.g. no command prefixes)."""


class ReadinessError(NikkuError):
    """The persistence layer is not connected yet."""


class InvalidArgumentsError(NikkuError):
    """A command was invoked with the wrong number of arguments."""


class AccessDeniedError(NikkuError):
    """The caller's access level is below the command's minimum."""


class PersistenceError(NikkuError):
    """A database read or write failed."""


class ResponseTimeoutError(NikkuError, TimeoutError):
    """No matching follow-up message arrived within the allowed window."""


class FlowBusyError(NikkuError):
    """The user already has a pending confirmation for this command."""


class ExecutionError(NikkuError):
    """Any other failure raised by a command's action."""

    def __init__(self, command: str, error: BaseException) -> None:
        super().__init__(
            f"Execution of {command!r} failed",
            command=command,
            kind=type(error).__name__,
        )
        self.command = command
        self.error = error
