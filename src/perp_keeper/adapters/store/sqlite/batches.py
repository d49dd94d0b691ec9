"""
Confirmed batch reconciliation.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from perp_keeper.adapters.store.sqlite.orders import TRADE_COLUMNS
from perp_keeper.adapters.store.sqlite.utils import _norm_hash, _placeholders, _ts
from perp_keeper.domain.models import OrderStatus, PerpTrade, ReconciliationResult
from perp_keeper.observability.logging import get_logger

logger = get_logger(__name__)


async def apply_executed_batch(
    self,
    pool_id: str,
    commitment_hashes: Sequence[str],
    tx_hash: str,
    executed_at: datetime,
) -> ReconciliationResult:
    """
    Apply a confirmed batch in a single transaction.

    Every step is keyed by commitment hash:
    - reveals already deleted are skipped
    - only `pending` orders transition to `executed`
    - trades use INSERT OR IGNORE on the unique commitment hash
    so running this twice for the same batch is a no-op the second time.
    """
    if not self._conn:
        raise RuntimeError("Store not initialized")

    result = ReconciliationResult()
    if not commitment_hashes:
        return result

    hashes = [_norm_hash(h) for h in commitment_hashes]
    ph = _placeholders(hashes)
    executed_ts = _ts(executed_at)

    async with self._transaction() as conn:
        cursor = await conn.execute(
            f"DELETE FROM pending_reveals WHERE pool_id = ? AND commitment_hash IN ({ph})",
            (_norm_hash(pool_id), *hashes),
        )
        result.reveals_deleted = cursor.rowcount

        cursor = await conn.execute(
            f"SELECT * FROM perp_orders WHERE commitment_hash IN ({ph}) AND status = ?",
            (*hashes, OrderStatus.PENDING.value),
        )
        rows = await cursor.fetchall()
        orders = [self._row_to_order(row, cursor.description) for row in rows]

        for order in orders:
            cursor = await conn.execute(
                "UPDATE perp_orders SET status = ?, executed_at = ?, tx_hash = ?, updated_at = ? "
                "WHERE commitment_hash = ? AND status = ?",
                (
                    OrderStatus.EXECUTED.value,
                    executed_ts,
                    tx_hash,
                    executed_ts,
                    order.commitment_hash,
                    OrderStatus.PENDING.value,
                ),
            )
            result.orders_executed += cursor.rowcount

            trade = PerpTrade.from_order(order, tx_hash=tx_hash, executed_at=executed_at)
            cursor = await conn.execute(
                f"INSERT OR IGNORE INTO perp_trades ({', '.join(TRADE_COLUMNS)}) "
                f"VALUES ({_placeholders(TRADE_COLUMNS)})",
                self._trade_to_row(trade),
            )
            result.trades_created += cursor.rowcount

    logger.info(
        f"Reconciled batch {tx_hash}: reveals_deleted={result.reveals_deleted} "
        f"orders_executed={result.orders_executed} trades_created={result.trades_created}"
    )
    return result
