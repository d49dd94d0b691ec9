"""
SQLite Batch Store Implementation.

Features:
- WAL mode for concurrent reads
- Explicit transactions (autocommit connection, BEGIN IMMEDIATE per unit of work)
- Automatic schema migrations
- Idempotent batch reconciliation keyed by commitment hash
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from pathlib import Path

import aiosqlite

from perp_keeper.adapters.store.sqlite.batches import apply_executed_batch
from perp_keeper.adapters.store.sqlite.migrations import _apply_schema_migrations
from perp_keeper.adapters.store.sqlite.orders import (
    _order_to_row,
    _row_to_order,
    _row_to_trade,
    _trade_to_row,
    cancel_orders,
    get_orders,
    list_orders,
    list_trades,
)
from perp_keeper.adapters.store.sqlite.reveals import (
    clear_pending_reveals,
    delete_pending_reveals,
    list_pending_pool_ids,
    list_pending_reveals,
    record_reveal,
)
from perp_keeper.adapters.store.sqlite.schema import SCHEMA_SQL
from perp_keeper.config.settings import Settings
from perp_keeper.observability.logging import get_logger
from perp_keeper.ports.store import BatchStorePort

logger = get_logger(__name__)


class SQLiteBatchStore(BatchStorePort):
    """
    SQLite-backed pending ledger, order and trade store.

    All writes are serialized through one lock so concurrent batch attempts
    never interleave transactions on the shared connection.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.db_path = settings.database.path
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()
        self._initialized = False

    @property
    def _in_memory(self) -> bool:
        return self.db_path == ":memory:"

    async def initialize(self) -> None:
        """Open the database and create the schema."""
        if self._initialized:
            return

        logger.info(f"Initializing SQLite store: {self.db_path}")

        if not self._in_memory:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        # isolation_level=None: no implicit transactions, _transaction() owns BEGIN/COMMIT.
        self._conn = await aiosqlite.connect(self.db_path, isolation_level=None)

        if self.settings.database.wal_mode and not self._in_memory:
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute("PRAGMA synchronous=NORMAL")

        await self._conn.execute(f"PRAGMA busy_timeout={int(self.settings.database.busy_timeout_ms)}")

        await self._conn.executescript(SCHEMA_SQL)
        await self._apply_schema_migrations()

        self._initialized = True
        logger.info("SQLite store initialized")

    async def close(self) -> None:
        """Close database connection (waits for an in-flight transaction)."""
        if not self._initialized:
            return

        logger.info("Closing SQLite store...")
        async with self._write_lock:
            if self._conn:
                await self._conn.close()
                self._conn = None

        self._initialized = False
        logger.info("SQLite store closed")

    @contextlib.asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run a unit of work in BEGIN IMMEDIATE ... COMMIT, rolling back on error."""
        if not self._conn:
            raise RuntimeError("Store not initialized")

        async with self._write_lock:
            await self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
            except BaseException:
                await self._conn.execute("ROLLBACK")
                raise
            await self._conn.execute("COMMIT")

    _apply_schema_migrations = _apply_schema_migrations
    _order_to_row = _order_to_row
    _row_to_order = _row_to_order
    _trade_to_row = _trade_to_row
    _row_to_trade = _row_to_trade

    record_reveal = record_reveal
    list_pending_reveals = list_pending_reveals
    list_pending_pool_ids = list_pending_pool_ids
    delete_pending_reveals = delete_pending_reveals
    clear_pending_reveals = clear_pending_reveals

    get_orders = get_orders
    list_orders = list_orders
    list_trades = list_trades
    cancel_orders = cancel_orders

    apply_executed_batch = apply_executed_batch
