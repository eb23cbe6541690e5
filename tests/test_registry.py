"""Tests for CommandRegistry, build_registry and PrefixRegistry."""

from __future__ import annotations

import logging

import pytest

from nikku.commands import ExecutableCommand, Invocation, TriggerableCommand
from nikku.exceptions import ConfigurationError
from nikku.registry import CommandRegistry, PrefixRegistry, build_registry


async def _noop(inv: Invocation) -> None:
    return None


def _exe(key: str, **kwargs) -> ExecutableCommand:
    return ExecutableCommand(key=key, action=_noop, **kwargs)


def _trig(key: str) -> TriggerableCommand:
    return TriggerableCommand(key=key, action=_noop, trigger=lambda state: True)


class TestCommandRegistry:
    """Key uniqueness, lookup and ordering."""

    def test_lookup_returns_registered_command(self):
        registry = CommandRegistry(logging.getLogger("test"))
        ping, help_ = _exe("ping"), _exe("help")
        assert registry.add_command(ping) is True
        assert registry.add_command(help_) is True
        assert registry.get("ping") is ping
        assert registry.get_element_by_key("help") is help_
        assert registry.get("missing") is None

    def test_duplicate_key_keeps_original(self, caplog: pytest.LogCaptureFixture):
        """A second command under an existing key is rejected, not swapped in."""
        registry = CommandRegistry(logging.getLogger("test"))
        first, second = _exe("ping", description="first"), _exe("ping", description="second")
        registry.add_command(first)
        with caplog.at_level(logging.WARNING):
            assert registry.add_command(second) is False
        assert registry.size() == 1
        assert registry.get("ping") is first
        assert "already registered" in caplog.text

    def test_items_preserve_insertion_order(self):
        registry = CommandRegistry()
        for key in ["c", "a", "b"]:
            registry.add_command(_exe(key))
        assert [k for k, _ in registry.items()] == ["c", "a", "b"]
        assert [c.key for c in registry] == ["c", "a", "b"]

    def test_triggerables_filter(self):
        registry = CommandRegistry()
        registry.add_command(_trig("t1"))
        registry.add_command(_exe("e1"))
        registry.add_command(_trig("t2"))
        assert [c.key for c in registry.triggerables()] == ["t1", "t2"]

    def test_len_and_contains(self):
        registry = CommandRegistry()
        registry.add_command(_exe("ping"))
        assert len(registry) == 1
        assert "ping" in registry
        assert "pong" not in registry


class TestBuildRegistry:
    def test_counts_logged(self, caplog: pytest.LogCaptureFixture):
        logger = logging.getLogger("test.registry")
        with caplog.at_level(logging.INFO, logger="test.registry"):
            registry = build_registry([_exe("a"), _exe("b"), _exe("a")], logger)
        assert registry.size() == 2
        assert "Successfully registered 2 out of 3 commands." in caplog.text


class TestPrefixRegistry:
    def test_first_exact_match_wins(self):
        prefixes = PrefixRegistry(["!f", "!", "nikku"])
        assert prefixes.match("!") == "!"
        assert prefixes.match("!f") == "!f"
        assert prefixes.match("!fortnite") is None

    def test_order_preserved(self):
        prefixes = PrefixRegistry(["b", "a"])
        assert prefixes.prefixes == ("b", "a")
        assert list(prefixes) == ["b", "a"]

    def test_empty_is_fatal(self):
        with pytest.raises(ConfigurationError):
            PrefixRegistry([])

    def test_blank_entries_dropped(self):
        with pytest.raises(ConfigurationError):
            PrefixRegistry(["", "   "])
        assert len(PrefixRegistry(["", "!f"])) == 1
