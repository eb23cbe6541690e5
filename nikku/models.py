"""Shared value types: access levels and persisted user records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum


class AccessLevel(IntEnum):
    """Privilege rank, lowest to highest. Compared numerically."""

    UNREGISTERED = 0
    REGISTERED = 1
    MODERATOR = 2
    ADMINISTRATOR = 3
    DEVELOPER = 4

    @classmethod
    def parse(cls, name: str) -> AccessLevel:
        """Look up a level by case-insensitive name."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown access level: {name}") from None


@dataclass(frozen=True)
class UserRecord:
    id: str
    access_level: AccessLevel = AccessLevel.REGISTERED
    currency: dict[str, int] = field(default_factory=dict)
    created_at: datetime | None = None

    def balance(self, currency: str) -> int:
        return self.currency.get(currency, 0)
