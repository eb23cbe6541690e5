"""CLI entry point for nikku."""
import argparse
import asyncio
import logging
import signal
import sys

from .exceptions import ConfigurationError
from .main import NikkuApp


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Nikku — Discord command bot")
    parser.add_argument("--config", type=str, help="Path to config.yaml")
    parser.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--validate-config", action="store_true", help="Validate config and exit without starting")
    return parser.parse_args(argv)


def validate_config(config_path: str, logger: logging.Logger) -> bool:
    """Load the config and build the prefix registry. True if both succeed."""
    from .config import load_config
    from .registry import PrefixRegistry

    try:
        config = load_config(config_path)
        PrefixRegistry(config.commands.prefixes)
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        logger.error("Config validation failed: %s", e)
        return False
    logger.info("Config is valid.")
    return True


async def main_async() -> None:
    args = parse_args()
    setup_logging(args.log_level)
    logger = logging.getLogger("nikku")

    # Config path resolution
    config_path = args.config
    if not config_path:
        from pathlib import Path

        for candidate in ["./config.yaml", "/etc/nikku/config.yaml"]:
            if Path(candidate).exists():
                config_path = candidate
                break
    if not config_path:
        logger.error("No config file found. Use --config or place config.yaml in CWD.")
        sys.exit(1)

    if args.validate_config:
        if not validate_config(config_path, logger):
            sys.exit(1)
        return

    app = NikkuApp(config_path)

    # Signal handling (Unix only; Windows uses KeyboardInterrupt)
    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(app.stop()))

    try:
        await app.start()
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        logger.error("Startup failed: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        pass
    finally:
        await app.stop()


def main() -> None:
    """Sync entry point for pyproject.toml [project.scripts]."""
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
