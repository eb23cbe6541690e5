"""Shop — priced items with rotating discounts."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import ShopConfig


@dataclass
class ShopItem:
    name: str
    value: int
    currency: str | None = None
    discount_percent: int = 0

    def get_price(self) -> int:
        """Discounted price, rounded half up."""
        price = self.value - (self.value * (self.discount_percent / 100))
        return math.floor(price + 0.5)


class Shop:
    """In-memory catalogue built from config."""

    def __init__(self, config: ShopConfig, default_currency: str) -> None:
        self._config = config
        self._default_currency = default_currency
        self._items: dict[str, ShopItem] = {}
        for item_cfg in config.items:
            self._items[item_cfg.name.lower()] = ShopItem(
                name=item_cfg.name,
                value=item_cfg.value,
                currency=item_cfg.currency,
            )

    @property
    def items(self) -> list[ShopItem]:
        return list(self._items.values())

    def get(self, name: str) -> ShopItem | None:
        return self._items.get(name.strip().lower())

    def currency_of(self, item: ShopItem) -> str:
        return item.currency or self._default_currency

    def refresh_discounts(self, rng: random.Random | None = None) -> None:
        """Roll a fresh discount for every item."""
        rng = rng or random.Random()
        for item in self._items.values():
            item.discount_percent = rng.randint(0, self._config.max_discount_percent)

    def render(self) -> str:
        lines = ["```Item Shop"]
        for item in self._items.values():
            line = f"- {item.name}: {item.get_price()} {self.currency_of(item)}"
            if item.discount_percent:
                line += f" ({item.discount_percent}% off)"
            lines.append(line)
        lines.append("```")
        return "\n".join(lines)
