"""
Unit tests for BatchCoordinator.try_execute_batch.

The store is a real in-memory SQLite store; chain reads, funding, simulation
and broadcast are mocked.
"""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import decode

from perp_keeper.domain.errors import BroadcastError, BroadcastTimeoutError, ChainReadError
from perp_keeper.domain.events import BatchExecuted, BatchSkipped
from perp_keeper.domain.models import BatchOutcome, BatchState, OrderStatus, TxReceipt
from perp_keeper.domain.reverts import RevertKind, RevertReason, SimulationResult
from perp_keeper.services.chain_reader import PoolDiagnostics
from perp_keeper.services.coordinator import BatchCoordinator
from perp_keeper.utils.abi import POOL_KEY_TYPE, SEL_BATCH_EXECUTE
from tests.factories import HOOK, NOW, POOL_MANAGER, commitment

INTERVAL = 300
TX_HASH = "0x" + "ab" * 32


@pytest.fixture
def reader():
    reader = MagicMock()
    reader.settlement_address = HOOK
    reader.batch_interval = AsyncMock(return_value=INTERVAL)
    reader.batch_state = AsyncMock(return_value=BatchState(last_batch_timestamp=0, commitment_count=0))
    reader.pool_diagnostics = AsyncMock(return_value=PoolDiagnostics(pool_id="0x00", sqrt_price_x96=0, liquidity=0))
    return reader


@pytest.fixture
def funding():
    funding = MagicMock()
    funding.ensure_settlement_funding = AsyncMock(return_value=True)
    return funding


@pytest.fixture
def simulator():
    simulator = MagicMock()
    simulator.simulate = AsyncMock(return_value=SimulationResult.success())
    return simulator


@pytest.fixture
def sender():
    sender = MagicMock()
    sender.send_transaction = AsyncMock(return_value=TxReceipt(tx_hash=TX_HASH, block_number=10))
    return sender


@pytest.fixture
def event_bus():
    bus = MagicMock()
    bus.publish = AsyncMock()
    return bus


@pytest.fixture
def coordinator(settings, reader, store, funding, simulator, sender, event_bus):
    return BatchCoordinator(
        settings,
        reader=reader,
        store=store,
        funding=funding,
        simulator=simulator,
        sender=sender,
        event_bus=event_bus,
        clock=lambda: NOW,
    )


def _broadcast_hashes(sender) -> list[str]:
    tx = sender.send_transaction.await_args.args[1]
    assert tx.data[:4] == SEL_BATCH_EXECUTE
    _key, hashes, _base_is_currency0 = decode([POOL_KEY_TYPE, "bytes32[]", "bool"], tx.data[4:])
    return ["0x" + h.hex() for h in hashes]


def _published(event_bus, event_type):
    return [c.args[0] for c in event_bus.publish.await_args_list if isinstance(c.args[0], event_type)]


# =============================================================================
# Readiness gate
# =============================================================================


@pytest.mark.asyncio
class TestReadinessGate:
    async def test_below_min_commitments_returns_false(self, coordinator, seed, wallet, simulator, sender):
        await seed(1, NOW - 1000)

        assert await coordinator.try_execute_batch(wallet, "interval") is False

        simulator.simulate.assert_not_awaited()
        sender.send_transaction.assert_not_awaited()

    async def test_empty_ledger_returns_false(self, coordinator, wallet, reader):
        assert await coordinator.try_execute_batch(wallet) is False
        reader.batch_state.assert_not_awaited()

    async def test_last_batch_too_recent_returns_false(self, coordinator, seed, wallet, reader, sender):
        await seed(1, NOW - 1000)
        await seed(2, NOW - 900)
        reader.batch_state.return_value = BatchState(last_batch_timestamp=NOW - 100, commitment_count=2)

        assert await coordinator.try_execute_batch(wallet) is False
        sender.send_transaction.assert_not_awaited()

    async def test_oldest_reveal_too_young_returns_false(self, coordinator, seed, wallet, sender):
        await seed(1, NOW - 200)
        await seed(2, NOW - 100)

        assert await coordinator.try_execute_batch(wallet) is False
        sender.send_transaction.assert_not_awaited()

    async def test_chain_read_failure_is_not_ready(self, coordinator, seed, wallet, reader, funding, sender):
        await seed(1, NOW - 1000)
        await seed(2, NOW - 900)
        reader.batch_state.side_effect = ChainReadError("node down")

        assert await coordinator.try_execute_batch(wallet) is False
        funding.ensure_settlement_funding.assert_not_awaited()
        sender.send_transaction.assert_not_awaited()

    async def test_aged_reveals_with_no_previous_batch_proceed(self, coordinator, seed, wallet, sender, store, pool_id):
        """last_batch_timestamp == 0 and the oldest reveal is 400s old with a 300s interval."""
        h1 = await seed(1, NOW - 400)
        h2 = await seed(2, NOW - 350)

        assert await coordinator.try_execute_batch(wallet, "interval") is True

        sender.send_transaction.assert_awaited_once()
        assert _broadcast_hashes(sender) == [h1, h2]
        assert await store.list_pending_reveals(pool_id) == []

    async def test_max_batch_size_selects_oldest(self, settings, coordinator, seed, wallet, sender, store, pool_id):
        coordinator._max_batch_size = 2
        h_new = await seed(3, NOW - 320)
        h_old = await seed(1, NOW - 500)
        h_mid = await seed(2, NOW - 400)

        assert await coordinator.try_execute_batch(wallet) is True

        assert _broadcast_hashes(sender) == [h_old, h_mid]
        remaining = await store.list_pending_reveals(pool_id)
        assert [r.commitment_hash for r in remaining] == [h_new]

    async def test_max_batch_size_below_quorum_never_ready(self, coordinator, seed, wallet, sender):
        coordinator._max_batch_size = 1
        await seed(1, NOW - 1000)
        await seed(2, NOW - 900)

        assert await coordinator.try_execute_batch(wallet) is False
        sender.send_transaction.assert_not_awaited()


# =============================================================================
# Funding and simulation
# =============================================================================


@pytest.mark.asyncio
class TestFundingAndSimulation:
    async def test_funding_insufficient_skips_simulation(self, coordinator, seed, wallet, funding, simulator, event_bus):
        await seed(1, NOW - 1000)
        await seed(2, NOW - 900)
        funding.ensure_settlement_funding.return_value = False

        assert await coordinator.try_execute_batch(wallet) is False

        simulator.simulate.assert_not_awaited()
        skipped = _published(event_bus, BatchSkipped)
        assert skipped[0].outcome == BatchOutcome.FUNDING_INSUFFICIENT

    async def test_zero_liquidity_revert_runs_diagnostics(self, coordinator, seed, wallet, simulator, sender, reader):
        await seed(1, NOW - 1000)
        await seed(2, NOW - 900)
        simulator.simulate.return_value = SimulationResult.revert(
            RevertReason(kind=RevertKind.ZERO_LIQUIDITY, panic_code=0x12)
        )
        reader.pool_diagnostics.return_value = PoolDiagnostics(
            pool_id="0x00",
            hook_pool_manager="0x" + "77" * 20,
            configured_pool_manager=POOL_MANAGER,
        )

        assert await coordinator.try_execute_batch(wallet) is False

        sender.send_transaction.assert_not_awaited()
        reader.pool_diagnostics.assert_awaited_once()

    async def test_custom_error_revert_never_broadcasts(self, coordinator, seed, wallet, simulator, sender, reader, store, pool_id):
        await seed(1, NOW - 1000)
        await seed(2, NOW - 900)
        simulator.simulate.return_value = SimulationResult.revert(RevertReason(kind=RevertKind.DEADLINE_EXPIRED))

        assert await coordinator.try_execute_batch(wallet) is False

        sender.send_transaction.assert_not_awaited()
        reader.pool_diagnostics.assert_not_awaited()
        assert len(await store.list_pending_reveals(pool_id)) == 2

    async def test_simulates_exact_broadcast_call(self, coordinator, seed, wallet, simulator, sender):
        await seed(1, NOW - 1000)
        await seed(2, NOW - 900)

        await coordinator.try_execute_batch(wallet)

        sim_to, sim_data = simulator.simulate.await_args.args
        tx = sender.send_transaction.await_args.args[1]
        assert sim_to == tx.to == HOOK
        assert sim_data == tx.data
        assert simulator.simulate.await_args.kwargs["from_address"] == wallet.address


# =============================================================================
# Broadcast and reconciliation
# =============================================================================


@pytest.mark.asyncio
class TestBroadcastAndReconcile:
    async def test_success_reconciles_orders_and_trades(self, coordinator, seed, wallet, store, event_bus):
        h1 = await seed(1, NOW - 1000)
        h2 = await seed(2, NOW - 900)

        assert await coordinator.try_execute_batch(wallet, "post-reveal") is True

        orders = await store.get_orders([h1, h2])
        assert {o.status for o in orders} == {OrderStatus.EXECUTED}
        assert {o.tx_hash for o in orders} == {TX_HASH}

        trades = await store.list_trades("acct-1")
        assert sorted(t.commitment_hash for t in trades) == [h1, h2]
        assert all(t.realized_pnl is None for t in trades)

        executed = _published(event_bus, BatchExecuted)
        assert executed[0].tx_hash == TX_HASH
        assert executed[0].trigger == "post-reveal"
        assert executed[0].reconciled is True

    async def test_broadcast_failure_leaves_ledger_untouched(self, coordinator, seed, wallet, sender, store, pool_id):
        h1 = await seed(1, NOW - 1000)
        await seed(2, NOW - 900)
        sender.send_transaction.side_effect = BroadcastError("nonce too low")

        assert await coordinator.try_execute_batch(wallet) is False

        assert len(await store.list_pending_reveals(pool_id)) == 2
        (order,) = await store.get_orders([h1])
        assert order.status == OrderStatus.PENDING

    async def test_confirmation_timeout_is_not_retried(self, coordinator, seed, wallet, sender, store, pool_id):
        await seed(1, NOW - 1000)
        await seed(2, NOW - 900)
        sender.send_transaction.side_effect = BroadcastTimeoutError("no receipt", tx_hash=TX_HASH)

        assert await coordinator.try_execute_batch(wallet) is False

        sender.send_transaction.assert_awaited_once()
        assert len(await store.list_pending_reveals(pool_id)) == 2

    async def test_cancelled_broadcast_logs_tx_and_commitments(self, coordinator, seed, wallet, sender, store, pool_id, caplog):
        h1 = await seed(1, NOW - 1000)
        h2 = await seed(2, NOW - 900)

        async def accepted_then_cancelled(wallet, tx, *, on_submitted=None):
            on_submitted(TX_HASH)
            raise asyncio.CancelledError

        sender.send_transaction.side_effect = accepted_then_cancelled

        with caplog.at_level(logging.CRITICAL), pytest.raises(asyncio.CancelledError):
            await coordinator.try_execute_batch(wallet)

        critical = [r.getMessage() for r in caplog.records if r.levelno == logging.CRITICAL]
        assert len(critical) == 1
        assert TX_HASH in critical[0]
        assert h1 in critical[0] and h2 in critical[0]
        assert len(await store.list_pending_reveals(pool_id)) == 2

    async def test_cancelled_before_node_accepts(self, coordinator, seed, wallet, sender, caplog):
        await seed(1, NOW - 1000)
        await seed(2, NOW - 900)
        sender.send_transaction.side_effect = asyncio.CancelledError

        with caplog.at_level(logging.CRITICAL), pytest.raises(asyncio.CancelledError):
            await coordinator.try_execute_batch(wallet)

        assert "not yet accepted" in caplog.text

    async def test_reconciliation_failure_still_returns_true(self, coordinator, seed, wallet, store, event_bus):
        await seed(1, NOW - 1000)
        await seed(2, NOW - 900)
        store.apply_executed_batch = AsyncMock(side_effect=RuntimeError("disk I/O error"))

        assert await coordinator.try_execute_batch(wallet) is True

        executed = _published(event_bus, BatchExecuted)
        assert executed[0].reconciled is False

    async def test_unexpected_exception_returns_false(self, coordinator, seed, wallet, funding, event_bus):
        await seed(1, NOW - 1000)
        await seed(2, NOW - 900)
        funding.ensure_settlement_funding.side_effect = RuntimeError("boom")

        assert await coordinator.try_execute_batch(wallet) is False

        skipped = _published(event_bus, BatchSkipped)
        assert skipped[0].outcome == BatchOutcome.ERROR

    async def test_second_attempt_after_success_is_not_ready(self, coordinator, seed, wallet, sender):
        await seed(1, NOW - 1000)
        await seed(2, NOW - 900)

        assert await coordinator.try_execute_batch(wallet) is True
        assert await coordinator.try_execute_batch(wallet) is False
        sender.send_transaction.assert_awaited_once()


# =============================================================================
# Status
# =============================================================================


@pytest.mark.asyncio
class TestPendingBatchStatus:
    async def test_status_reports_ledger_and_chain(self, coordinator, seed, pool_id):
        await seed(1, NOW - 1000)
        await seed(2, NOW - 900)

        status = await coordinator.pending_batch_status()

        assert status.pool_id == pool_id
        assert status.count == 2
        assert status.commitment_hashes == [commitment(1), commitment(2)]
        assert status.batch_interval == INTERVAL
        assert status.next_execution_at == NOW
        assert status.can_execute is True

    async def test_status_without_chain(self, coordinator, seed, reader):
        await seed(1, NOW - 1000)
        reader.batch_interval.side_effect = ChainReadError("down")

        status = await coordinator.pending_batch_status()

        assert status.count == 1
        assert status.batch_interval is None
        assert status.can_execute is False
