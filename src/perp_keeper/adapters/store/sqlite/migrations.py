"""
SQLite schema migrations.
"""

from __future__ import annotations

from perp_keeper.adapters.store.sqlite.schema import SCHEMA_VERSION
from perp_keeper.observability.logging import get_logger

logger = get_logger(__name__)


async def _apply_schema_migrations(self) -> None:
    """Apply additive schema migrations (safe on existing DBs)."""
    if not self._conn:
        return

    cursor = await self._conn.execute("SELECT value FROM schema_meta WHERE key = 'schema_version'")
    row = await cursor.fetchone()
    current = int(row[0]) if row else 0

    # Databases created before trades carried realized P&L.
    cursor = await self._conn.execute("PRAGMA table_info(perp_trades)")
    columns = {r[1] for r in await cursor.fetchall()}
    if "realized_pnl" not in columns:
        logger.info("Applying schema migration: add perp_trades.realized_pnl")
        await self._conn.execute("ALTER TABLE perp_trades ADD COLUMN realized_pnl TEXT")

    if current != SCHEMA_VERSION:
        await self._conn.execute(
            "INSERT OR REPLACE INTO schema_meta (key, value) VALUES ('schema_version', ?)",
            (str(SCHEMA_VERSION),),
        )
        logger.info(f"Schema version {current} -> {SCHEMA_VERSION}")
