"""
Perp order and trade persistence helpers.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from perp_keeper.adapters.store.sqlite.utils import (
    _maybe_int,
    _norm_hash,
    _parse_ts,
    _placeholders,
    _row_dict,
    _ts,
)
from perp_keeper.domain.models import OrderStatus, PerpOrder, PerpTrade
from perp_keeper.observability.logging import get_logger

logger = get_logger(__name__)

ORDER_COLUMNS = (
    "commitment_hash",
    "account_id",
    "wallet_address",
    "pool_id",
    "market",
    "size",
    "is_long",
    "is_open",
    "collateral",
    "leverage",
    "nonce",
    "deadline",
    "status",
    "created_at",
    "updated_at",
    "executed_at",
    "tx_hash",
)

TRADE_COLUMNS = (
    "trade_id",
    "commitment_hash",
    "account_id",
    "wallet_address",
    "pool_id",
    "market",
    "size",
    "is_long",
    "is_open",
    "collateral",
    "leverage",
    "entry_price",
    "realized_pnl",
    "tx_hash",
    "executed_at",
)


def _order_to_row(self, order: PerpOrder) -> tuple:
    return (
        _norm_hash(order.commitment_hash),
        order.account_id,
        order.wallet_address,
        _norm_hash(order.pool_id),
        order.market,
        str(order.size),
        int(order.is_long),
        int(order.is_open),
        str(order.collateral),
        str(order.leverage),
        str(order.nonce),
        order.deadline,
        order.status.value,
        _ts(order.created_at),
        _ts(order.updated_at),
        _ts(order.executed_at),
        order.tx_hash,
    )


def _row_to_order(self, row: tuple, description: Any) -> PerpOrder:
    data = _row_dict(row, description)
    return PerpOrder(
        commitment_hash=data["commitment_hash"],
        account_id=data["account_id"],
        wallet_address=data["wallet_address"],
        pool_id=data["pool_id"],
        market=data["market"],
        size=int(data["size"]),
        is_long=bool(data["is_long"]),
        is_open=bool(data["is_open"]),
        collateral=int(data["collateral"]),
        leverage=int(data["leverage"]),
        nonce=int(data["nonce"]),
        deadline=int(data["deadline"]),
        status=OrderStatus(data["status"]),
        created_at=_parse_ts(data["created_at"]) or datetime.now(UTC),
        updated_at=_parse_ts(data["updated_at"]) or datetime.now(UTC),
        executed_at=_parse_ts(data["executed_at"]),
        tx_hash=data["tx_hash"],
    )


def _trade_to_row(self, trade: PerpTrade) -> tuple:
    return (
        trade.trade_id,
        _norm_hash(trade.commitment_hash),
        trade.account_id,
        trade.wallet_address,
        _norm_hash(trade.pool_id),
        trade.market,
        str(trade.size),
        int(trade.is_long),
        int(trade.is_open),
        str(trade.collateral),
        str(trade.leverage),
        None if trade.entry_price is None else str(trade.entry_price),
        None if trade.realized_pnl is None else str(trade.realized_pnl),
        trade.tx_hash,
        _ts(trade.executed_at),
    )


def _row_to_trade(self, row: tuple, description: Any) -> PerpTrade:
    data = _row_dict(row, description)
    return PerpTrade(
        trade_id=data["trade_id"],
        commitment_hash=data["commitment_hash"],
        account_id=data["account_id"],
        wallet_address=data["wallet_address"],
        pool_id=data["pool_id"],
        market=data["market"],
        size=int(data["size"]),
        is_long=bool(data["is_long"]),
        is_open=bool(data["is_open"]),
        collateral=int(data["collateral"]),
        leverage=int(data["leverage"]),
        entry_price=_maybe_int(data["entry_price"]),
        realized_pnl=_maybe_int(data["realized_pnl"]),
        tx_hash=data["tx_hash"],
        executed_at=_parse_ts(data["executed_at"]) or datetime.now(UTC),
    )


async def get_orders(
    self,
    commitment_hashes: Sequence[str],
    status: OrderStatus | None = None,
) -> list[PerpOrder]:
    """Orders for the given commitment hashes, optionally filtered by status."""
    if not self._conn or not commitment_hashes:
        return []

    hashes = [_norm_hash(h) for h in commitment_hashes]
    sql = f"SELECT * FROM perp_orders WHERE commitment_hash IN ({_placeholders(hashes)})"
    params: list[Any] = list(hashes)
    if status is not None:
        sql += " AND status = ?"
        params.append(status.value)

    cursor = await self._conn.execute(sql, params)
    rows = await cursor.fetchall()
    return [self._row_to_order(row, cursor.description) for row in rows]


async def list_orders(self, account_id: str, limit: int = 100) -> list[PerpOrder]:
    if not self._conn:
        return []

    cursor = await self._conn.execute(
        "SELECT * FROM perp_orders WHERE account_id = ? ORDER BY created_at DESC LIMIT ?",
        (account_id, limit),
    )
    rows = await cursor.fetchall()
    return [self._row_to_order(row, cursor.description) for row in rows]


async def list_trades(self, account_id: str, limit: int = 100) -> list[PerpTrade]:
    if not self._conn:
        return []

    cursor = await self._conn.execute(
        "SELECT * FROM perp_trades WHERE account_id = ? ORDER BY executed_at DESC LIMIT ?",
        (account_id, limit),
    )
    rows = await cursor.fetchall()
    return [self._row_to_trade(row, cursor.description) for row in rows]


async def cancel_orders(self, commitment_hashes: Sequence[str]) -> int:
    """pending -> cancelled. Executed or already cancelled orders are untouched."""
    if not self._conn or not commitment_hashes:
        return 0

    hashes = [_norm_hash(h) for h in commitment_hashes]
    async with self._transaction() as conn:
        cursor = await conn.execute(
            f"UPDATE perp_orders SET status = ?, updated_at = ? "
            f"WHERE commitment_hash IN ({_placeholders(hashes)}) AND status = ?",
            (OrderStatus.CANCELLED.value, _ts(datetime.now(UTC)), *hashes, OrderStatus.PENDING.value),
        )
        cancelled = cursor.rowcount

    if cancelled:
        logger.info(f"Cancelled {cancelled} pending order(s)")
    return cancelled
