"""Tests for Scheduler — cron announcements and shop refresh."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from nikku.config import AnnouncementConfig, NikkuConfig
from nikku.database import BotDatabase
from nikku.scheduler import Scheduler, next_fire, refresh_due, seconds_until_next
from nikku.shop import Shop

NOW = datetime(2026, 3, 1, 12, 30, 0, tzinfo=timezone.utc)


def _make_scheduler(config: NikkuConfig, database: BotDatabase, client: MagicMock | None = None):
    shop = Shop(config.shop, config.currency.name)
    scheduler = Scheduler(
        config=config,
        database=database,
        shop=shop,
        client=client or MagicMock(),
        logger=logging.getLogger("test.scheduler"),
    )
    return scheduler, shop


def _channel_client() -> tuple[MagicMock, MagicMock]:
    channel = MagicMock()
    channel.send = AsyncMock()
    client = MagicMock()
    client.get_channel = MagicMock(return_value=channel)
    client.fetch_channel = AsyncMock(return_value=channel)
    return client, channel


class TestCronHelpers:
    def test_next_fire(self):
        assert next_fire("0 * * * *", NOW) == datetime(2026, 3, 1, 13, 0, tzinfo=timezone.utc)

    def test_next_fire_strictly_after(self):
        on_the_hour = datetime(2026, 3, 1, 13, 0, tzinfo=timezone.utc)
        assert next_fire("0 * * * *", on_the_hour) == on_the_hour + timedelta(hours=1)

    def test_seconds_until_next(self):
        assert seconds_until_next("0 * * * *", NOW) == 1800

    def test_refresh_due(self):
        cron = "0 0 * * *"
        assert refresh_due(cron, None, NOW) is True
        assert refresh_due(cron, NOW - timedelta(hours=1), NOW) is False
        assert refresh_due(cron, NOW - timedelta(days=1), NOW) is True


class TestAnnouncements:
    async def test_announce_sends_to_channel(self, sample_config, database):
        client, channel = _channel_client()
        scheduler, _ = _make_scheduler(sample_config, database, client)
        ann = AnnouncementConfig(name="hello", cron="* * * * *", channel_id=42, message="Hi all")

        await scheduler.announce(ann)

        client.get_channel.assert_called_once_with(42)
        channel.send.assert_awaited_once_with("Hi all")

    async def test_announce_fetches_uncached_channel(self, sample_config, database):
        client, channel = _channel_client()
        client.get_channel.return_value = None
        scheduler, _ = _make_scheduler(sample_config, database, client)
        ann = AnnouncementConfig(name="hello", cron="* * * * *", channel_id=42, message="Hi")

        await scheduler.announce(ann)

        client.fetch_channel.assert_awaited_once_with(42)
        channel.send.assert_awaited_once_with("Hi")

    async def test_start_skips_disabled_and_invalid(self, sample_config_dict, database):
        sample_config_dict["announcements"] = [
            {"name": "a", "cron": "0 12 * * *", "channel_id": 1, "message": "x"},
            {"name": "b", "cron": "0 12 * * *", "channel_id": 1, "message": "x", "enabled": False},
            {"name": "c", "cron": "not a cron", "channel_id": 1, "message": "x"},
        ]
        scheduler, _ = _make_scheduler(NikkuConfig(**sample_config_dict), database)

        await scheduler.start()
        try:
            # one announcement + the shop refresh loop
            assert len(scheduler._tasks) == 2
        finally:
            await scheduler.stop()
        assert scheduler._tasks == []


class TestShopRefresh:
    async def test_refresh_persists_timestamp(self, sample_config, database):
        conn = database._get_connection()
        try:
            conn.execute("UPDATE date_tracker SET shop_last_update = '2020-01-01 00:00:00'")
            conn.commit()
        finally:
            conn.close()
        scheduler, _ = _make_scheduler(sample_config, database)

        await scheduler.refresh_shop()

        doc = (await database.get_global())[0]
        assert doc["shop_last_update"].year > 2020

    async def test_restore_reuses_persisted_discounts(self, sample_config, database):
        """Two restores against the same refresh time produce the same prices."""
        first, shop_a = _make_scheduler(sample_config, database)
        await first.refresh_shop()
        second, shop_b = _make_scheduler(sample_config, database)

        await second._restore_shop()

        assert [i.discount_percent for i in shop_a.items] == [i.discount_percent for i in shop_b.items]

    async def test_refresh_without_database(self, sample_config, tmp_db_path):
        db = BotDatabase(tmp_db_path)
        scheduler, shop = _make_scheduler(sample_config, db)
        await scheduler.refresh_shop()
        assert all(0 <= i.discount_percent <= 50 for i in shop.items)
