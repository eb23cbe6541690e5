"""nikku — Discord chat-bot command framework."""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("nikku-bot")
except PackageNotFoundError:
    __version__ = "0.0.0"
