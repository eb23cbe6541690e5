"""Configuration system for nikku.

All Pydantic models are defined here with sensible defaults so a minimal
config.yaml only needs the Discord token.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


# ═══════════════════════════════════════════════════════════════
#  Platform & Dispatch
# ═══════════════════════════════════════════════════════════════

class DiscordConfig(BaseModel):
    token: str = ""
    activity: str | None = "Fortnite"
    allowed_channel_ids: list[int] = Field(
        default_factory=list,
        description="If non-empty, the bot only responds in these channel IDs",
    )
    debug_channel_ids: list[int] = Field(
        default_factory=list,
        description="Channels that receive a mirror of warning/error log lines",
    )


class CommandsConfig(BaseModel):
    prefixes: list[str] = Field(default=["!f"], description="Ordered; first exact match wins")
    confirmation_timeout_seconds: float = 300.0
    target_confirmation_max_messages: int = 5


class DatabaseConfig(BaseModel):
    path: str = "nikku.db"


# ═══════════════════════════════════════════════════════════════
#  Currency & Features
# ═══════════════════════════════════════════════════════════════

class CurrencyConfig(BaseModel):
    name: str = "DotmaCoin"
    target_ping_reward: int = 1
    starting_balance: int = 0


class AutoPingConfig(BaseModel):
    price_exponent: float = 1.1
    min_delay_seconds: float = 1.0
    max_amount: int = 100


class TriggersConfig(BaseModel):
    keyword_triggers_enabled: bool = True
    random_text_chance_percent: float = 4.0
    random_text_message: str = "This message only has a 1/25 chance of appearing"


class ChatBotConfig(BaseModel):
    base_url: str = ""
    api_token: str = ""
    chance_percent: float = 5.0
    timeout_seconds: float = 10.0


class ShopItemConfig(BaseModel):
    name: str
    value: int
    currency: str | None = None


class ShopConfig(BaseModel):
    items: list[ShopItemConfig] = Field(
        default=[
            ShopItemConfig(name="Pickaxe", value=50),
            ShopItemConfig(name="Glider", value=120),
            ShopItemConfig(name="Victory Umbrella", value=1000),
        ],
    )
    refresh_cron: str = "0 0 * * *"
    max_discount_percent: int = 50


class AnnouncementConfig(BaseModel):
    name: str
    cron: str
    channel_id: int
    message: str
    enabled: bool = True


class LoggingConfig(BaseModel):
    file: str = "debug.log"
    file_level: str = "INFO"
    channel_level: str = "WARNING"


# ═══════════════════════════════════════════════════════════════
#  Top-Level Config
# ═══════════════════════════════════════════════════════════════

class NikkuConfig(BaseModel):
    """Full bot config."""

    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    commands: CommandsConfig = Field(default_factory=CommandsConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    currency: CurrencyConfig = Field(default_factory=CurrencyConfig)
    auto_ping: AutoPingConfig = Field(default_factory=AutoPingConfig)
    triggers: TriggersConfig = Field(default_factory=TriggersConfig)
    chatbot: ChatBotConfig = Field(default_factory=ChatBotConfig)
    shop: ShopConfig = Field(default_factory=ShopConfig)
    announcements: list[AnnouncementConfig] = Field(default_factory=list)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ═══════════════════════════════════════════════════════════════
#  Config Loading
# ═══════════════════════════════════════════════════════════════

def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in string values."""
    if isinstance(obj, str):
        return re.sub(
            r"\$\{([^}:]+)(?::-(.*?))?\}",
            lambda m: os.environ.get(m.group(1), m.group(2) or ""),
            obj,
        )
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


def load_config(config_path: str) -> NikkuConfig:
    """Load and validate YAML config file into NikkuConfig."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError("Config file must contain a YAML mapping at the top level.")

    raw = _expand_env_vars(raw)
    return NikkuConfig(**raw)
