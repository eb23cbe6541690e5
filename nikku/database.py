"""SQLite database module for nikku.

Each public method is async and wraps a synchronous inner function via
asyncio.run_in_executor(None, _sync). A new connection is created per call
(WAL mode, 30s busy timeout, Row factory). Every sqlite3 failure surfaces as
PersistenceError.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Any, Callable, TypeVar

from .exceptions import PersistenceError
from .models import AccessLevel, UserRecord
from .utils import parse_timestamp

T = TypeVar("T")


class BotDatabase:
    """SQLite-backed persistence for users, currency and the global target list."""

    def __init__(self, db_path: str, logger: logging.Logger | None = None) -> None:
        self._db_path = db_path
        self._logger = logger or logging.getLogger("nikku.database")
        self._ready = False

    def _get_connection(self) -> sqlite3.Connection:
        """Create a new SQLite connection with standard settings."""
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=30000")
        conn.row_factory = sqlite3.Row
        return conn

    async def _run(self, operation: str, fn: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn)
        except sqlite3.Error as e:
            self._logger.error("Database operation %s failed: %s", operation, e)
            raise PersistenceError(f"Database operation failed: {operation}", error=str(e)) from e

    # ══════════════════════════════════════════════════════════
    #  Initialization
    # ══════════════════════════════════════════════════════════

    async def initialize(self) -> None:
        """Create all tables and indexes. Idempotent. Marks the database ready."""
        await self._run("initialize", self._create_tables)
        self._ready = True

    def is_ready(self) -> bool:
        return self._ready

    def _create_tables(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    access_level INTEGER DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_currency (
                    user_id TEXT NOT NULL,
                    currency TEXT NOT NULL,
                    amount INTEGER DEFAULT 0,
                    UNIQUE(user_id, currency)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS targets (
                    user_id TEXT PRIMARY KEY,
                    added_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS date_tracker (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    start_time TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    shop_last_update TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("INSERT OR IGNORE INTO date_tracker (id) VALUES (1)")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS inventory (
                    user_id TEXT NOT NULL,
                    item TEXT NOT NULL,
                    quantity INTEGER DEFAULT 0,
                    UNIQUE(user_id, item)
                )
            """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_user_currency_user "
                "ON user_currency(user_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_inventory_user "
                "ON inventory(user_id)"
            )
            conn.commit()
        finally:
            conn.close()

    # ══════════════════════════════════════════════════════════
    #  Users
    # ══════════════════════════════════════════════════════════

    async def get_user_by_id(self, user_id: str) -> UserRecord | None:
        """Return the user with balances, or None if never registered."""

        def _sync() -> UserRecord | None:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT * FROM users WHERE id = ?", (user_id,),
                ).fetchone()
                if not row:
                    return None
                balances = conn.execute(
                    "SELECT currency, amount FROM user_currency WHERE user_id = ?",
                    (user_id,),
                ).fetchall()
                return UserRecord(
                    id=row["id"],
                    access_level=AccessLevel(row["access_level"]),
                    currency={b["currency"]: b["amount"] for b in balances},
                    created_at=parse_timestamp(row["created_at"]),
                )
            finally:
                conn.close()

        return await self._run("get_user_by_id", _sync)

    async def create_user(
        self,
        user_id: str,
        access_level: AccessLevel = AccessLevel.REGISTERED,
    ) -> bool:
        """Insert a user. Returns False if the user already exists."""

        def _sync() -> bool:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO users (id, access_level) VALUES (?, ?)",
                    (user_id, int(access_level)),
                )
                conn.commit()
                return cursor.rowcount > 0
            finally:
                conn.close()

        return await self._run("create_user", _sync)

    async def set_access_level(self, user_id: str, level: AccessLevel) -> None:
        """Overwrite a user's access level."""

        def _sync() -> None:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    "UPDATE users SET access_level = ? WHERE id = ?",
                    (int(level), user_id),
                )
                if cursor.rowcount == 0:
                    conn.rollback()
                    raise sqlite3.IntegrityError(f"no such user: {user_id}")
                conn.commit()
            finally:
                conn.close()

        await self._run("set_access_level", _sync)

    # ══════════════════════════════════════════════════════════
    #  Currency
    # ══════════════════════════════════════════════════════════

    async def increment_currency(self, user_id: str, currency: str, delta: int) -> int:
        """Atomically add ``delta`` (may be negative) and return the new amount.

        Creates the user lazily with REGISTERED access if it doesn't exist.
        """

        def _sync() -> int:
            conn = self._get_connection()
            try:
                conn.execute("INSERT OR IGNORE INTO users (id) VALUES (?)", (user_id,))
                conn.execute(
                    "INSERT INTO user_currency (user_id, currency, amount) VALUES (?, ?, ?) "
                    "ON CONFLICT(user_id, currency) DO UPDATE "
                    "SET amount = amount + excluded.amount",
                    (user_id, currency, delta),
                )
                conn.commit()
                row = conn.execute(
                    "SELECT amount FROM user_currency WHERE user_id = ? AND currency = ?",
                    (user_id, currency),
                ).fetchone()
                return row["amount"]
            finally:
                conn.close()

        return await self._run("increment_currency", _sync)

    async def debit_currency(self, user_id: str, currency: str, amount: int) -> int | None:
        """Conditionally subtract ``amount``.
        Returns the new amount on success, None on insufficient funds."""

        def _sync() -> int | None:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    "UPDATE user_currency SET amount = amount - ? "
                    "WHERE user_id = ? AND currency = ? AND amount >= ?",
                    (amount, user_id, currency, amount),
                )
                if cursor.rowcount == 0:
                    conn.rollback()
                    return None  # Insufficient funds or no balance row
                conn.commit()
                row = conn.execute(
                    "SELECT amount FROM user_currency WHERE user_id = ? AND currency = ?",
                    (user_id, currency),
                ).fetchone()
                return row["amount"]
            finally:
                conn.close()

        return await self._run("debit_currency", _sync)

    async def get_balance(self, user_id: str, currency: str) -> int:
        """Return the balance, 0 if there is no row."""

        def _sync() -> int:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT amount FROM user_currency WHERE user_id = ? AND currency = ?",
                    (user_id, currency),
                ).fetchone()
                return row["amount"] if row else 0
            finally:
                conn.close()

        return await self._run("get_balance", _sync)

    # ══════════════════════════════════════════════════════════
    #  Global Document (targets + date tracker)
    # ══════════════════════════════════════════════════════════

    async def get_global(self) -> list[dict[str, Any]]:
        """Return the global documents. There is always exactly one."""

        def _sync() -> list[dict[str, Any]]:
            conn = self._get_connection()
            try:
                targets = [
                    r["user_id"]
                    for r in conn.execute(
                        "SELECT user_id FROM targets ORDER BY added_at, rowid"
                    ).fetchall()
                ]
                tracker = conn.execute(
                    "SELECT start_time, shop_last_update FROM date_tracker WHERE id = 1"
                ).fetchone()
                return [{
                    "targets": targets,
                    "start_time": parse_timestamp(tracker["start_time"]) if tracker else None,
                    "shop_last_update": (
                        parse_timestamp(tracker["shop_last_update"]) if tracker else None
                    ),
                }]
            finally:
                conn.close()

        return await self._run("get_global", _sync)

    async def get_targets(self) -> list[str]:
        documents = await self.get_global()
        return documents[0]["targets"]

    async def add_target(self, user_id: str) -> bool:
        """Add a ping target. Returns False if already present."""

        def _sync() -> bool:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO targets (user_id) VALUES (?)", (user_id,),
                )
                conn.commit()
                return cursor.rowcount > 0
            finally:
                conn.close()

        return await self._run("add_target", _sync)

    async def remove_target(self, user_id: str) -> bool:
        """Remove a ping target. Returns False if it wasn't a target."""

        def _sync() -> bool:
            conn = self._get_connection()
            try:
                cursor = conn.execute("DELETE FROM targets WHERE user_id = ?", (user_id,))
                conn.commit()
                return cursor.rowcount > 0
            finally:
                conn.close()

        return await self._run("remove_target", _sync)

    async def touch_shop_update(self) -> None:
        """Set date_tracker.shop_last_update to CURRENT_TIMESTAMP."""

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute(
                    "UPDATE date_tracker SET shop_last_update = CURRENT_TIMESTAMP WHERE id = 1"
                )
                conn.commit()
            finally:
                conn.close()

        await self._run("touch_shop_update", _sync)

    # ══════════════════════════════════════════════════════════
    #  Inventory
    # ══════════════════════════════════════════════════════════

    async def add_inventory_item(self, user_id: str, item: str, quantity: int = 1) -> int:
        """Add items to a user's inventory via UPSERT. Returns the new quantity."""

        def _sync() -> int:
            conn = self._get_connection()
            try:
                conn.execute(
                    "INSERT INTO inventory (user_id, item, quantity) VALUES (?, ?, ?) "
                    "ON CONFLICT(user_id, item) DO UPDATE "
                    "SET quantity = quantity + excluded.quantity",
                    (user_id, item, quantity),
                )
                conn.commit()
                row = conn.execute(
                    "SELECT quantity FROM inventory WHERE user_id = ? AND item = ?",
                    (user_id, item),
                ).fetchone()
                return row["quantity"]
            finally:
                conn.close()

        return await self._run("add_inventory_item", _sync)

    async def purchase(
        self, user_id: str, currency: str, price: int, item: str,
    ) -> tuple[int, int] | None:
        """Debit ``price`` and add one ``item`` in a single transaction.

        Returns (remaining balance, quantity owned), or None on insufficient
        funds. Nothing is written if either statement fails.
        """

        def _sync() -> tuple[int, int] | None:
            conn = self._get_connection()
            try:
                try:
                    cursor = conn.execute(
                        "UPDATE user_currency SET amount = amount - ? "
                        "WHERE user_id = ? AND currency = ? AND amount >= ?",
                        (price, user_id, currency, price),
                    )
                    if cursor.rowcount == 0:
                        conn.rollback()
                        return None
                    conn.execute(
                        "INSERT INTO inventory (user_id, item, quantity) VALUES (?, ?, 1) "
                        "ON CONFLICT(user_id, item) DO UPDATE SET quantity = quantity + 1",
                        (user_id, item),
                    )
                    conn.commit()
                except sqlite3.Error:
                    conn.rollback()
                    raise
                balance = conn.execute(
                    "SELECT amount FROM user_currency WHERE user_id = ? AND currency = ?",
                    (user_id, currency),
                ).fetchone()["amount"]
                owned = conn.execute(
                    "SELECT quantity FROM inventory WHERE user_id = ? AND item = ?",
                    (user_id, item),
                ).fetchone()["quantity"]
                return balance, owned
            finally:
                conn.close()

        return await self._run("purchase", _sync)

    async def get_inventory(self, user_id: str) -> dict[str, int]:

        def _sync() -> dict[str, int]:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    "SELECT item, quantity FROM inventory WHERE user_id = ? ORDER BY item",
                    (user_id,),
                ).fetchall()
                return {r["item"]: r["quantity"] for r in rows}
            finally:
                conn.close()

        return await self._run("get_inventory", _sync)
