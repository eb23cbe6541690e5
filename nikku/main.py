"""Service orchestrator — NikkuApp.

Start-up sequence:
config → prefixes → DB init → features → command manifest → registry →
dispatcher → Discord client → scheduler → run.
"""

from __future__ import annotations

import logging
from pathlib import Path

from . import __version__
from .bot import NikkuBot
from .builtin_commands import BuiltinCommands
from .channel_log import ChannelLogHandler
from .chatbot_client import ChatBotClient
from .config import LoggingConfig, NikkuConfig, load_config
from .confirmation import FlowLocks
from .database import BotDatabase
from .dispatcher import CommandDispatcher
from .exceptions import PersistenceError
from .registry import CommandRegistry, PrefixRegistry, build_registry
from .repeater import Repeater
from .scheduler import Scheduler
from .shop import Shop

_LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def attach_file_logging(config: LoggingConfig) -> logging.Handler | None:
    """Add a file handler to the root logger. Empty ``file`` disables it."""
    if not config.file:
        return None
    handler = logging.FileHandler(config.file, encoding="utf-8")
    handler.setLevel(getattr(logging, config.file_level.upper(), logging.INFO))
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logging.getLogger().addHandler(handler)
    return handler


class NikkuApp:
    """Top-level application orchestrator."""

    def __init__(self, config_path: str) -> None:
        self.config_path = Path(config_path)
        self.logger = logging.getLogger("nikku")

        # Components (initialized in start())
        self.config: NikkuConfig | None = None
        self.prefixes: PrefixRegistry | None = None
        self.db: BotDatabase | None = None
        self.shop: Shop | None = None
        self.chatbot: ChatBotClient | None = None
        self.repeater: Repeater | None = None
        self.registry: CommandRegistry | None = None
        self.dispatcher: CommandDispatcher | None = None
        self.bot: NikkuBot | None = None
        self.scheduler: Scheduler | None = None
        self.channel_log: ChannelLogHandler | None = None
        self._file_handler: logging.Handler | None = None

        self._running = False

    async def start(self) -> None:
        """Start the bot and block until the Discord client closes."""
        self.logger.info("Starting nikku...")

        # 1. Load and validate config
        self.config = load_config(str(self.config_path))
        self._file_handler = attach_file_logging(self.config.logging)

        # 2. Prefixes (ConfigurationError is fatal)
        self.prefixes = PrefixRegistry(self.config.commands.prefixes)
        self.logger.info("Command prefixes: %s", ", ".join(self.prefixes))

        # 3. Initialize database; the bot still runs if it is unavailable
        self.db = BotDatabase(self.config.database.path, self.logger.getChild("database"))
        try:
            await self.db.initialize()
            self.logger.info("Database initialized: %s", self.config.database.path)
        except PersistenceError as e:
            self.logger.error(
                "Failed to initialize database (%s); started without a database. "
                "Commands will be dropped until it is available.", e,
            )

        # 4. Feature components
        self.shop = Shop(self.config.shop, self.config.currency.name)
        self.repeater = Repeater(self.logger.getChild("repeater"))
        self.chatbot = ChatBotClient(self.config.chatbot, self.logger.getChild("chatbot"))
        if self.chatbot.enabled:
            await self.chatbot.start()
            self.logger.info("Chat-bot client started: %s", self.config.chatbot.base_url)

        # 5. Command manifest → registry → dispatcher
        builtins = BuiltinCommands(
            config=self.config,
            database=self.db,
            repeater=self.repeater,
            shop=self.shop,
            chatbot=self.chatbot,
            locks=FlowLocks(),
            logger=self.logger.getChild("commands"),
        )
        self.registry = build_registry(builtins.build(), self.logger.getChild("registry"))
        self.dispatcher = CommandDispatcher(
            self.registry, self.prefixes, self.db, self.logger.getChild("dispatcher"),
        )

        # 6. Debug channel log transport
        self.channel_log = ChannelLogHandler(
            getattr(logging, self.config.logging.channel_level.upper(), logging.WARNING),
        )
        logging.getLogger().addHandler(self.channel_log)
        await self.channel_log.start()

        # 7. Discord client
        self.bot = NikkuBot(
            self.config, self.dispatcher, self.channel_log, self.logger.getChild("bot"),
        )

        # 8. Scheduler
        self.scheduler = Scheduler(
            config=self.config,
            database=self.db,
            shop=self.shop,
            client=self.bot,
            logger=self.logger.getChild("scheduler"),
        )
        await self.scheduler.start()

        # 9. Mark running and block on the Discord client
        self._running = True
        self.logger.info("nikku started (v%s)", __version__)
        await self.bot.start(self.config.discord.token)

    async def stop(self) -> None:
        """Gracefully shut down all components in reverse order."""
        if not self._running:
            return
        self.logger.info("Shutting down nikku...")
        self._running = False

        if self.scheduler:
            await self.scheduler.stop()
        if self.repeater:
            await self.repeater.stop_all()
        if self.bot:
            await self.bot.close()
        if self.channel_log:
            logging.getLogger().removeHandler(self.channel_log)
            await self.channel_log.stop()
        if self.chatbot:
            await self.chatbot.stop()
        if self._file_handler:
            logging.getLogger().removeHandler(self._file_handler)
            self._file_handler.close()

        self.logger.info("nikku stopped.")
