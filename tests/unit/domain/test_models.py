"""
Unit tests for domain value objects and the error taxonomy.
"""

from __future__ import annotations

from perp_keeper.domain.errors import (
    BroadcastError,
    BroadcastTimeoutError,
    InsufficientFundingError,
    ReconciliationError,
)
from perp_keeper.domain.models import BatchOutcome, BatchState, OrderStatus, PerpOrder, PerpTrade, PoolKey
from tests.factories import HOOK, NOW, TOKEN_A, TOKEN_B, WALLET_ADDRESS, at, commitment, make_intent


class TestPoolKey:
    def test_currencies_sorted_case_insensitively(self):
        upper_b = "0x" + "BB" * 20
        key = PoolKey.create(upper_b, TOKEN_A, hooks=HOOK)

        assert key.currency0 == TOKEN_A
        assert key.currency1 == upper_b

    def test_quote_currency(self):
        key = PoolKey.create(TOKEN_A, TOKEN_B, hooks=HOOK)

        assert key.quote_currency(base_is_currency0=True) == TOKEN_B
        assert key.quote_currency(base_is_currency0=False) == TOKEN_A


class TestBatchState:
    def test_first_batch_is_due_now(self):
        assert BatchState(last_batch_timestamp=0, commitment_count=0).next_execution_at(60, NOW) == NOW

    def test_next_batch_after_interval(self):
        state = BatchState(last_batch_timestamp=NOW - 30, commitment_count=2)

        assert state.next_execution_at(60, NOW) == NOW + 30


class TestOutcomes:
    def test_only_confirmed_broadcasts_count(self):
        confirmed = {o for o in BatchOutcome if o.broadcast_confirmed}

        assert confirmed == {BatchOutcome.EXECUTED, BatchOutcome.RECONCILE_FAILED}

    def test_terminal_statuses(self):
        assert not OrderStatus.PENDING.is_terminal()
        assert OrderStatus.EXECUTED.is_terminal()
        assert OrderStatus.CANCELLED.is_terminal()


class TestOrderAndTrade:
    def test_trade_copies_order_fields(self):
        order = PerpOrder.from_intent(
            make_intent(4, size=7 * 10**18),
            commitment_hash=commitment(4),
            account_id="acct-1",
            wallet_address=WALLET_ADDRESS,
            pool_id="0x01",
            created_at=at(NOW),
        )

        trade = PerpTrade.from_order(order, tx_hash="0xtx", executed_at=at(NOW + 60))

        assert order.status == OrderStatus.PENDING
        assert order.created_at == order.updated_at == at(NOW)
        assert trade.size == 7 * 10**18
        assert trade.is_long is True
        assert trade.entry_price is None
        assert trade.realized_pnl is None
        assert trade.trade_id


class TestErrors:
    def test_to_dict_includes_details(self):
        err = InsufficientFundingError("short", required=10, available=3, pool_id="0x01")

        data = err.to_dict()

        assert data["error_code"] == "INSUFFICIENT_FUNDING"
        assert data["pool_id"] == "0x01"
        assert data["details"] == {"required": "10", "available": "3"}
        assert "cause" not in data

    def test_to_dict_includes_cause(self):
        err = ReconciliationError("store failed")
        err.__cause__ = RuntimeError("disk full")

        assert err.to_dict()["cause"] == "RuntimeError: disk full"

    def test_timeout_is_a_broadcast_error(self):
        err = BroadcastTimeoutError("no receipt", tx_hash="0xabc")

        assert isinstance(err, BroadcastError)
        assert err.details["tx_hash"] == "0xabc"
