"""Tests for nikku.config module."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from nikku.config import (
    AutoPingConfig,
    CommandsConfig,
    NikkuConfig,
    ShopConfig,
    load_config,
)


class TestNikkuConfig:
    """Test NikkuConfig model parsing and defaults."""

    def test_empty_config_uses_defaults(self):
        """Every section has defaults, so an empty mapping parses."""
        cfg = NikkuConfig()
        assert cfg.commands.prefixes == ["!f"]
        assert cfg.database.path == "nikku.db"
        assert cfg.currency.name == "DotmaCoin"
        assert cfg.logging.file == "debug.log"
        assert cfg.announcements == []

    def test_full_config(self, sample_config_dict: dict):
        """Full config dict should parse correctly."""
        cfg = NikkuConfig(**sample_config_dict)
        assert cfg.discord.token == "test-token"
        assert cfg.commands.confirmation_timeout_seconds == 5
        assert [i.name for i in cfg.shop.items] == ["Pickaxe", "Victory Umbrella"]

    def test_commands_defaults(self):
        """Five-minute confirmation window, five-message target budget."""
        cc = CommandsConfig()
        assert cc.confirmation_timeout_seconds == 300
        assert cc.target_confirmation_max_messages == 5

    def test_auto_ping_defaults(self):
        ap = AutoPingConfig()
        assert ap.price_exponent == 1.1
        assert ap.min_delay_seconds == 1

    def test_default_shop_items(self):
        shop = ShopConfig()
        assert len(shop.items) == 3
        assert shop.items[0].currency is None

    def test_empty_prefix_list_parses(self):
        """An empty prefix list is a start-up error, not a parse error."""
        cfg = NikkuConfig(commands={"prefixes": []})
        assert cfg.commands.prefixes == []

    def test_announcements_parse(self):
        cfg = NikkuConfig(announcements=[{
            "name": "daily", "cron": "0 12 * * *", "channel_id": 42, "message": "hi",
        }])
        assert cfg.announcements[0].enabled is True
        assert cfg.announcements[0].channel_id == 42


class TestLoadConfig:
    """Test YAML file loading with environment variable expansion."""

    def test_load_valid_yaml(self, sample_config_dict: dict, tmp_path: Path):
        """Load a valid YAML config file."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump(sample_config_dict))

        cfg = load_config(str(config_path))
        assert cfg.commands.prefixes == ["!f"]
        assert cfg.currency.target_ping_reward == 1

    def test_load_missing_file(self):
        """Loading a nonexistent file should raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config("/nonexistent/path/config.yaml")

    def test_env_var_expansion(
        self, sample_config_dict: dict, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ):
        """Environment variables in ${VAR} format should be expanded."""
        monkeypatch.setenv("TEST_DISCORD_TOKEN", "secret-token")
        sample_config_dict["discord"] = {"token": "${TEST_DISCORD_TOKEN}"}
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump(sample_config_dict))

        cfg = load_config(str(config_path))
        assert cfg.discord.token == "secret-token"

    def test_env_var_with_default(
        self, sample_config_dict: dict, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ):
        """${VAR:-default} should use default when VAR is unset."""
        monkeypatch.delenv("UNSET_TEST_VAR", raising=False)
        sample_config_dict["database"] = {"path": "${UNSET_TEST_VAR:-fallback.db}"}
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump(sample_config_dict))

        cfg = load_config(str(config_path))
        assert cfg.database.path == "fallback.db"

    def test_invalid_yaml_structure(self, tmp_path: Path):
        """Non-mapping YAML should raise ValueError."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text("- just\n- a\n- list\n")

        with pytest.raises(ValueError, match="YAML mapping"):
            load_config(str(config_path))
