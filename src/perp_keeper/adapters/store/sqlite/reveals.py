"""
Pending commitment ledger helpers.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime

from perp_keeper.adapters.store.sqlite.orders import ORDER_COLUMNS
from perp_keeper.adapters.store.sqlite.utils import _norm_hash, _parse_ts, _placeholders, _ts
from perp_keeper.domain.models import PendingReveal, PerpOrder
from perp_keeper.observability.logging import get_logger

logger = get_logger(__name__)


async def record_reveal(self, reveal: PendingReveal, order: PerpOrder) -> bool:
    """Insert the reveal and its order atomically. Duplicates are ignored."""
    if not self._conn:
        raise RuntimeError("Store not initialized")

    async with self._transaction() as conn:
        cursor = await conn.execute(
            "INSERT OR IGNORE INTO pending_reveals (pool_id, commitment_hash, created_at) VALUES (?, ?, ?)",
            (_norm_hash(reveal.pool_id), _norm_hash(reveal.commitment_hash), _ts(reveal.created_at)),
        )
        inserted = cursor.rowcount > 0
        await conn.execute(
            f"INSERT OR IGNORE INTO perp_orders ({', '.join(ORDER_COLUMNS)}) "
            f"VALUES ({_placeholders(ORDER_COLUMNS)})",
            self._order_to_row(order),
        )

    if not inserted:
        logger.debug(f"Reveal {reveal.commitment_hash} already pending for pool {reveal.pool_id}")
    return inserted


async def list_pending_reveals(self, pool_id: str) -> list[PendingReveal]:
    """Pending reveals for a pool, oldest first (commitment hash breaks ties)."""
    if not self._conn:
        return []

    cursor = await self._conn.execute(
        "SELECT pool_id, commitment_hash, created_at FROM pending_reveals "
        "WHERE pool_id = ? ORDER BY created_at ASC, commitment_hash ASC",
        (_norm_hash(pool_id),),
    )
    rows = await cursor.fetchall()
    return [
        PendingReveal(
            pool_id=row[0],
            commitment_hash=row[1],
            created_at=_parse_ts(row[2]) or datetime.now(UTC),
        )
        for row in rows
    ]


async def list_pending_pool_ids(self) -> list[str]:
    if not self._conn:
        return []

    cursor = await self._conn.execute("SELECT DISTINCT pool_id FROM pending_reveals ORDER BY pool_id")
    return [row[0] for row in await cursor.fetchall()]


async def delete_pending_reveals(self, pool_id: str, commitment_hashes: Sequence[str]) -> int:
    if not self._conn or not commitment_hashes:
        return 0

    hashes = [_norm_hash(h) for h in commitment_hashes]
    async with self._transaction() as conn:
        cursor = await conn.execute(
            f"DELETE FROM pending_reveals WHERE pool_id = ? AND commitment_hash IN ({_placeholders(hashes)})",
            (_norm_hash(pool_id), *hashes),
        )
        return cursor.rowcount


async def clear_pending_reveals(self, pool_id: str) -> int:
    if not self._conn:
        return 0

    async with self._transaction() as conn:
        cursor = await conn.execute("DELETE FROM pending_reveals WHERE pool_id = ?", (_norm_hash(pool_id),))
        removed = cursor.rowcount

    logger.warning(f"Cleared {removed} pending reveal(s) for pool {pool_id}")
    return removed
