"""Scheduler module — cron-driven announcements and shop refreshes.

One task per enabled announcement plus one task for the shop. Each loop
sleeps until the next croniter fire time, runs, and survives failures.
"""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime
from typing import TYPE_CHECKING

from croniter import croniter

from .utils import now_utc

if TYPE_CHECKING:
    import discord

    from .config import AnnouncementConfig, NikkuConfig
    from .database import BotDatabase
    from .shop import Shop


def next_fire(cron: str, now: datetime) -> datetime:
    """First time strictly after ``now`` that ``cron`` fires."""
    return croniter(cron, now).get_next(datetime)


def seconds_until_next(cron: str, now: datetime) -> float:
    return max((next_fire(cron, now) - now).total_seconds(), 0.0)


def refresh_due(cron: str, last_update: datetime | None, now: datetime) -> bool:
    """True if ``cron`` fired at least once between ``last_update`` and ``now``."""
    if last_update is None:
        return True
    return next_fire(cron, last_update) <= now


def _seed_for(moment: datetime | None) -> int | None:
    return int(moment.timestamp()) if moment is not None else None


class Scheduler:
    """Central module for all timed tasks."""

    def __init__(
        self,
        config: NikkuConfig,
        database: BotDatabase,
        shop: Shop,
        client: discord.Client,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._db = database
        self._shop = shop
        self._client = client
        self._logger = logger or logging.getLogger("nikku.scheduler")
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """Restore shop discounts and start all scheduled tasks."""
        try:
            await self._restore_shop()
        except Exception:
            self._logger.exception("Shop restore failed")

        for ann in self._config.announcements:
            if not ann.enabled:
                continue
            if not croniter.is_valid(ann.cron):
                self._logger.error("Announcement %r has an invalid cron: %r", ann.name, ann.cron)
                continue
            self._tasks.append(asyncio.create_task(self._announcement_loop(ann)))
            self._logger.info("Announcement task started: %s (%s)", ann.name, ann.cron)

        if croniter.is_valid(self._config.shop.refresh_cron):
            self._tasks.append(asyncio.create_task(self._shop_refresh_loop()))
            self._logger.info("Shop refresh task started (%s)", self._config.shop.refresh_cron)
        else:
            self._logger.error("Invalid shop refresh cron: %r", self._config.shop.refresh_cron)

    async def stop(self) -> None:
        """Cancel all tasks."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    # ══════════════════════════════════════════════════════════
    #  Announcements
    # ══════════════════════════════════════════════════════════

    async def _announcement_loop(self, ann: AnnouncementConfig) -> None:
        while True:
            await asyncio.sleep(seconds_until_next(ann.cron, now_utc()))
            try:
                await self.announce(ann)
            except Exception:
                self._logger.exception("Announcement %r failed", ann.name)

    async def announce(self, ann: AnnouncementConfig) -> None:
        channel = self._client.get_channel(ann.channel_id)
        if channel is None:
            channel = await self._client.fetch_channel(ann.channel_id)
        await channel.send(ann.message)
        self._logger.info("Announcement %r sent to channel %s", ann.name, ann.channel_id)

    # ══════════════════════════════════════════════════════════
    #  Shop
    # ══════════════════════════════════════════════════════════

    async def _shop_refresh_loop(self) -> None:
        cron = self._config.shop.refresh_cron
        while True:
            await asyncio.sleep(seconds_until_next(cron, now_utc()))
            try:
                await self.refresh_shop()
            except Exception:
                self._logger.exception("Shop refresh failed")

    async def refresh_shop(self) -> None:
        """Roll new discounts and persist the refresh time.

        Discounts are seeded from the persisted refresh time so a restart
        reproduces the same prices.
        """
        seed = None
        if self._db.is_ready():
            await self._db.touch_shop_update()
            documents = await self._db.get_global()
            seed = _seed_for(documents[0]["shop_last_update"])
        self._shop.refresh_discounts(random.Random(seed))
        self._logger.info("Shop discounts refreshed")

    async def _restore_shop(self) -> None:
        if not self._db.is_ready():
            self._shop.refresh_discounts()
            return
        documents = await self._db.get_global()
        last_update = documents[0]["shop_last_update"]
        if refresh_due(self._config.shop.refresh_cron, last_update, now_utc()):
            await self.refresh_shop()
        else:
            self._shop.refresh_discounts(random.Random(_seed_for(last_update)))
