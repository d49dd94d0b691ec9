"""
Unit tests for SQLiteBatchStore (in-memory).
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from perp_keeper.domain.models import OrderStatus, PendingReveal
from tests.factories import NOW, commitment


@pytest.mark.asyncio
class TestPendingLedger:
    async def test_pending_reveals_are_oldest_first(self, store, seed, pool_id):
        await seed(3, NOW - 10)
        await seed(1, NOW - 30)
        await seed(2, NOW - 20)

        reveals = await store.list_pending_reveals(pool_id)

        assert [r.commitment_hash for r in reveals] == [commitment(1), commitment(2), commitment(3)]

    async def test_ties_break_on_commitment_hash(self, store, seed, pool_id):
        await seed(7, NOW - 10)
        await seed(5, NOW - 10)

        reveals = await store.list_pending_reveals(pool_id)

        assert [r.commitment_hash for r in reveals] == [commitment(5), commitment(7)]

    async def test_created_at_round_trips_as_utc(self, store, seed, pool_id):
        await seed(1, NOW - 10)

        (reveal,) = await store.list_pending_reveals(pool_id)

        assert reveal.created_at == datetime.fromtimestamp(NOW - 10, UTC)

    async def test_duplicate_reveal_is_ignored(self, store, seed, pool_id):
        await seed(1, NOW - 10)
        await seed(1, NOW - 5)

        reveals = await store.list_pending_reveals(pool_id)

        assert len(reveals) == 1
        assert reveals[0].created_at == datetime.fromtimestamp(NOW - 10, UTC)

    async def test_record_reveal_reports_insert(self, store, seed, pool_id):
        await seed(1, NOW - 10)
        (order,) = await store.get_orders([commitment(1)])
        reveal = PendingReveal(pool_id=pool_id, commitment_hash=commitment(1))

        assert await store.record_reveal(reveal, order) is False

    async def test_hashes_are_case_insensitive(self, store, seed, pool_id):
        await seed(1, NOW - 10)

        deleted = await store.delete_pending_reveals(pool_id.upper().replace("0X", "0x"), [commitment(1).upper()])

        assert deleted == 1

    async def test_list_pending_pool_ids(self, store, seed, pool_id):
        assert await store.list_pending_pool_ids() == []
        await seed(1, NOW - 10)
        assert await store.list_pending_pool_ids() == [pool_id]

    async def test_clear_pending_keeps_orders(self, store, seed, pool_id):
        await seed(1, NOW - 10)
        await seed(2, NOW - 5)

        assert await store.clear_pending_reveals(pool_id) == 2

        assert await store.list_pending_reveals(pool_id) == []
        assert len(await store.get_orders([commitment(1), commitment(2)])) == 2


@pytest.mark.asyncio
class TestOrders:
    async def test_order_fields_round_trip(self, store, seed):
        await seed(2, NOW - 10, size=123 * 10**18)

        (order,) = await store.get_orders([commitment(2)])

        assert order.size == 123 * 10**18
        assert order.is_long is True
        assert order.leverage == 5
        assert order.status == OrderStatus.PENDING
        assert order.executed_at is None

    async def test_get_orders_filters_by_status(self, store, seed):
        await seed(1, NOW - 10)
        await seed(2, NOW - 5)
        await store.cancel_orders([commitment(1)])

        pending = await store.get_orders([commitment(1), commitment(2)], status=OrderStatus.PENDING)

        assert [o.commitment_hash for o in pending] == [commitment(2)]

    async def test_cancel_only_touches_pending(self, store, seed, pool_id):
        await seed(1, NOW - 10)
        await seed(2, NOW - 5)
        await store.apply_executed_batch(pool_id, [commitment(1)], "0xtx", datetime.now(UTC))

        cancelled = await store.cancel_orders([commitment(1), commitment(2)])

        assert cancelled == 1
        statuses = {o.commitment_hash: o.status for o in await store.get_orders([commitment(1), commitment(2)])}
        assert statuses == {commitment(1): OrderStatus.EXECUTED, commitment(2): OrderStatus.CANCELLED}

    async def test_list_orders_newest_first(self, store, seed):
        await seed(1, NOW - 30)
        await seed(2, NOW - 10)

        orders = await store.list_orders("acct-1")

        assert [o.commitment_hash for o in orders] == [commitment(2), commitment(1)]


@pytest.mark.asyncio
class TestApplyExecutedBatch:
    async def test_applies_all_three_effects(self, store, seed, pool_id):
        await seed(1, NOW - 10)
        await seed(2, NOW - 5)
        executed_at = datetime.fromtimestamp(NOW, UTC)

        result = await store.apply_executed_batch(pool_id, [commitment(1), commitment(2)], "0xtx", executed_at)

        assert (result.reveals_deleted, result.orders_executed, result.trades_created) == (2, 2, 2)
        assert await store.list_pending_reveals(pool_id) == []

        orders = await store.get_orders([commitment(1), commitment(2)])
        assert all(o.status == OrderStatus.EXECUTED and o.executed_at == executed_at for o in orders)

        trades = await store.list_trades("acct-1")
        assert {t.tx_hash for t in trades} == {"0xtx"}
        assert all(t.entry_price is None and t.realized_pnl is None for t in trades)

    async def test_is_idempotent(self, store, seed, pool_id):
        await seed(1, NOW - 10)
        await seed(2, NOW - 5)
        hashes = [commitment(1), commitment(2)]

        await store.apply_executed_batch(pool_id, hashes, "0xtx", datetime.now(UTC))
        second = await store.apply_executed_batch(pool_id, hashes, "0xtx", datetime.now(UTC))

        assert (second.reveals_deleted, second.orders_executed, second.trades_created) == (0, 0, 0)
        assert len(await store.list_trades("acct-1")) == 2

    async def test_cancelled_orders_are_not_executed(self, store, seed, pool_id):
        await seed(1, NOW - 10)
        await store.cancel_orders([commitment(1)])

        result = await store.apply_executed_batch(pool_id, [commitment(1)], "0xtx", datetime.now(UTC))

        assert result.orders_executed == 0
        assert result.trades_created == 0

    async def test_only_named_rows_are_touched(self, store, seed, pool_id):
        await seed(1, NOW - 10)
        await seed(2, NOW - 5)

        await store.apply_executed_batch(pool_id, [commitment(1)], "0xtx", datetime.now(UTC))

        (remaining,) = await store.list_pending_reveals(pool_id)
        assert remaining.commitment_hash == commitment(2)

    async def test_empty_batch_is_noop(self, store, pool_id):
        result = await store.apply_executed_batch(pool_id, [], "0xtx", datetime.now(UTC))
        assert result.reveals_deleted == 0
