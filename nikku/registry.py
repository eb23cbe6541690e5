"""Command and prefix registries.

Both are populated once during start-up and treated as read-only while
messages are being dispatched.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator

from .commands import Command, TriggerableCommand
from .exceptions import ConfigurationError


class CommandRegistry:
    """Insertion-ordered mapping of invocation key → command."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._commands: dict[str, Command] = {}
        self._logger = logger or logging.getLogger("nikku.registry")

    def add_command(self, command: Command) -> bool:
        """Register ``command``. A duplicate key is reported and rejected."""
        key = command.invocation_key
        if key in self._commands:
            self._logger.warning(
                "Failed to register command %r: key already registered by %s",
                key, type(self._commands[key]).__name__,
            )
            return False
        self._commands[key] = command
        return True

    def get(self, key: str) -> Command | None:
        return self._commands.get(key)

    # Alias matching the registry contract name
    get_element_by_key = get

    def items(self) -> list[tuple[str, Command]]:
        """All (key, command) pairs in registration order."""
        return list(self._commands.items())

    def triggerables(self) -> list[TriggerableCommand]:
        return [c for c in self._commands.values() if isinstance(c, TriggerableCommand)]

    def size(self) -> int:
        return len(self._commands)

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, key: object) -> bool:
        return key in self._commands

    def __iter__(self) -> Iterator[Command]:
        return iter(list(self._commands.values()))


def build_registry(
    commands: Iterable[Command],
    logger: logging.Logger | None = None,
) -> CommandRegistry:
    """Load a fixed command manifest, rejecting duplicate keys."""
    logger = logger or logging.getLogger("nikku.registry")
    manifest = list(commands)
    registry = CommandRegistry(logger)
    noun = "command" if len(manifest) == 1 else "commands"
    logger.info("Detected %d %s for registration.", len(manifest), noun)
    for command in manifest:
        registry.add_command(command)
    logger.info(
        "Successfully registered %d out of %d %s.",
        registry.size(), len(manifest), noun,
    )
    return registry


class PrefixRegistry:
    """Ordered, immutable set of command prefixes."""

    def __init__(self, prefixes: Iterable[str]) -> None:
        cleaned = tuple(p for p in prefixes if p and p.strip())
        if not cleaned:
            raise ConfigurationError("No command prefixes configured.")
        self._prefixes = cleaned

    @property
    def prefixes(self) -> tuple[str, ...]:
        return self._prefixes

    def match(self, token: str) -> str | None:
        """Return the first prefix equal to ``token``, or None."""
        for prefix in self._prefixes:
            if token == prefix:
                return prefix
        return None

    def __iter__(self) -> Iterator[str]:
        return iter(self._prefixes)

    def __len__(self) -> int:
        return len(self._prefixes)
