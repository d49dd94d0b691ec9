"""
Batch Execution Coordinator.

Owns one batch attempt end to end:

    pending ledger -> readiness gate -> funding -> simulation -> broadcast -> reconciliation

Nothing before the broadcast touches order state, so a failed attempt is
always safe to retry on the next trigger. The coordinator holds no lock: two
concurrent attempts for the same pool are resolved by the readiness gate and
by the simulation (the second one reverts with BatchConditionsNotMet or finds
too few commitments).
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from perp_keeper.config.settings import Settings
from perp_keeper.domain.errors import (
    BroadcastError,
    BroadcastTimeoutError,
    DomainError,
    ReconciliationError,
    SimulationRevertError,
    TransactionRevertedError,
)
from perp_keeper.domain.events import BatchExecuted, BatchSkipped, DomainEvent
from perp_keeper.domain.models import (
    BatchOutcome,
    PendingBatchStatus,
    PendingReveal,
    PoolKey,
    TxRequest,
    WalletHandle,
)
from perp_keeper.domain.reverts import RevertReason
from perp_keeper.observability.logging import LOG_TAG_BATCH, get_logger
from perp_keeper.observability.metrics import (
    record_batch_size,
    record_simulated_revert,
    track_batch_attempt,
    update_pending_commitments,
)
from perp_keeper.ports.chain import TransactionSenderPort
from perp_keeper.ports.event_bus import EventBusPort
from perp_keeper.ports.store import BatchStorePort
from perp_keeper.services.chain_reader import ChainStateReader
from perp_keeper.services.funding import FundingReconciler
from perp_keeper.services.simulator import TransactionSimulator
from perp_keeper.utils.abi import compute_pool_id, encode_batch_execute

logger = get_logger(__name__)


@dataclass(slots=True)
class _Attempt:
    """Context carried through one attempt for logging."""

    pool_key: PoolKey
    pool_id: str
    trigger: str
    wallet: WalletHandle
    commitment_count: int = 0
    reason: str = ""
    tx_hash: str | None = None

    def log_extra(self) -> dict[str, object]:
        extra: dict[str, object] = {
            "pool_id": self.pool_id,
            "trigger": self.trigger,
            "commitment_count": self.commitment_count,
            "wallet_id": self.wallet.wallet_id,
        }
        if self.tx_hash:
            extra["tx_hash"] = self.tx_hash
        return extra

    def set_tx_hash(self, tx_hash: str) -> None:
        self.tx_hash = tx_hash


class BatchCoordinator:
    """Decides when a pool's pending commitments are executed, and executes them."""

    def __init__(
        self,
        settings: Settings,
        *,
        reader: ChainStateReader,
        store: BatchStorePort,
        funding: FundingReconciler,
        simulator: TransactionSimulator,
        sender: TransactionSenderPort,
        event_bus: EventBusPort | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self._reader = reader
        self._store = store
        self._funding = funding
        self._simulator = simulator
        self._sender = sender
        self._event_bus = event_bus
        self._clock = clock

        self._min_commitments = settings.keeper.min_commitments
        self._max_batch_size = settings.keeper.max_batch_size
        self._base_is_currency0 = settings.contracts.base_is_currency0

    def default_pool_key(self) -> PoolKey:
        contracts = self.settings.contracts
        return PoolKey.create(
            contracts.currency0,
            contracts.currency1,
            hooks=contracts.settlement_hook,
            fee=contracts.fee,
            tick_spacing=contracts.tick_spacing,
        )

    # =========================================================================
    # Public API
    # =========================================================================

    async def try_execute_batch(
        self,
        wallet: WalletHandle,
        label: str = "",
        pool_key: PoolKey | None = None,
    ) -> bool:
        """
        Attempt to execute the pending batch for a pool.

        Args:
            wallet: Executing account (pays funding transfers and gas).
            label: Trigger label for logs and metrics.
            pool_key: Pool to check. Defaults to the configured pool.

        Returns:
            True iff a batch was broadcast and confirmed. Never raises.
        """
        trigger = label or "manual"
        try:
            key = pool_key or self.default_pool_key()
            pool_id = compute_pool_id(key)
        except (ValueError, DomainError) as e:
            logger.error(f"{LOG_TAG_BATCH} Cannot resolve pool (trigger={trigger}): {e}")
            return False

        attempt = _Attempt(pool_key=key, pool_id=pool_id, trigger=trigger, wallet=wallet)

        with track_batch_attempt(pool_id, trigger) as ctx:
            try:
                outcome = await self._run(attempt)
            except Exception as e:
                logger.exception(
                    f"{LOG_TAG_BATCH} Batch attempt failed for pool {pool_id} "
                    f"(trigger={trigger}, commitments={attempt.commitment_count}): {e}",
                    extra=attempt.log_extra(),
                )
                attempt.reason = f"{type(e).__name__}: {e}"
                outcome = BatchOutcome.ERROR
            ctx["outcome"] = outcome.value

        if not outcome.broadcast_confirmed:
            await self._publish(
                BatchSkipped(
                    pool_id=pool_id,
                    trigger=trigger,
                    outcome=outcome,
                    reason=attempt.reason,
                    commitment_count=attempt.commitment_count,
                )
            )
        return outcome.broadcast_confirmed

    async def pending_batch_status(
        self,
        pool_key: PoolKey | None = None,
        *,
        pool_id: str | None = None,
    ) -> PendingBatchStatus:
        """Local ledger view of a pool plus whatever chain state can be read."""
        if pool_id is None:
            pool_id = compute_pool_id(pool_key or self.default_pool_key())
        reveals = await self._store.list_pending_reveals(pool_id)

        status = PendingBatchStatus(
            pool_id=pool_id,
            commitment_hashes=[r.commitment_hash for r in reveals],
            min_commitments=self._min_commitments,
        )
        try:
            interval = await self._reader.batch_interval()
            state = await self._reader.batch_state(pool_id)
        except DomainError as e:
            logger.warning(f"Pending batch status: chain read failed for {pool_id}: {e}")
            return status

        now = int(self._clock())
        status.batch_interval = interval
        status.last_batch_timestamp = state.last_batch_timestamp
        status.onchain_commitment_count = state.commitment_count
        status.next_execution_at = state.next_execution_at(interval, now)
        status.can_execute = self._select_batch(reveals, interval, status.next_execution_at, now) is not None
        return status

    # =========================================================================
    # Attempt steps
    # =========================================================================

    async def _run(self, attempt: _Attempt) -> BatchOutcome:
        reveals = await self._store.list_pending_reveals(attempt.pool_id)
        attempt.commitment_count = len(reveals)
        update_pending_commitments(attempt.pool_id, len(reveals))

        selected = await self._readiness_gate(attempt, reveals)
        if selected is None:
            return BatchOutcome.NOT_READY

        hashes = [r.commitment_hash for r in selected]
        attempt.commitment_count = len(hashes)

        try:
            funded = await self._funding.ensure_settlement_funding(attempt.pool_key, hashes, attempt.wallet)
        except BroadcastError as e:
            attempt.reason = f"funding transfer failed: {e.message}"
            logger.error(
                f"{LOG_TAG_BATCH} Funding transfer failed for pool {attempt.pool_id}: {e.to_dict()}",
                extra=attempt.log_extra(),
            )
            return BatchOutcome.BROADCAST_FAILED
        if not funded:
            attempt.reason = "executing wallet cannot cover settlement funding"
            return BatchOutcome.FUNDING_INSUFFICIENT

        calldata = encode_batch_execute(attempt.pool_key, hashes, self._base_is_currency0)
        hook = self._reader.settlement_address

        simulation = await self._simulator.simulate(hook, calldata, from_address=attempt.wallet.address)
        if not simulation.ok:
            await self._handle_revert(attempt, simulation.reason)
            return BatchOutcome.SIMULATED_REVERT

        logger.info(
            f"{LOG_TAG_BATCH} Executing batch of {len(hashes)} on pool {attempt.pool_id} (trigger={attempt.trigger})",
            extra=attempt.log_extra(),
        )
        try:
            receipt = await self._sender.send_transaction(
                attempt.wallet,
                TxRequest(to=hook, data=calldata),
                on_submitted=attempt.set_tx_hash,
            )
        except asyncio.CancelledError:
            logger.critical(
                f"{LOG_TAG_BATCH} Batch attempt on pool {attempt.pool_id} cancelled during broadcast "
                f"(tx={attempt.tx_hash or 'not yet accepted'}); outcome unknown, needs manual reconciliation. "
                f"Commitments: {hashes}",
                extra=attempt.log_extra(),
            )
            raise
        except BroadcastTimeoutError as e:
            attempt.reason = e.message
            logger.critical(
                f"{LOG_TAG_BATCH} Batch tx {e.tx_hash} unconfirmed, outcome unknown; "
                f"needs manual reconciliation (not retried): {e.to_dict()}",
                extra={**attempt.log_extra(), "tx_hash": e.tx_hash},
            )
            return BatchOutcome.BROADCAST_FAILED
        except TransactionRevertedError as e:
            attempt.reason = e.message
            logger.error(
                f"{LOG_TAG_BATCH} Batch tx {e.tx_hash} reverted on chain: {e.to_dict()}",
                extra={**attempt.log_extra(), "tx_hash": e.tx_hash},
            )
            return BatchOutcome.BROADCAST_FAILED
        except BroadcastError as e:
            attempt.reason = e.message
            logger.error(f"{LOG_TAG_BATCH} Batch broadcast failed: {e.to_dict()}", extra=attempt.log_extra())
            return BatchOutcome.BROADCAST_FAILED

        record_batch_size(attempt.pool_id, len(hashes))
        return await self._reconcile(attempt, hashes, receipt.tx_hash)

    async def _readiness_gate(self, attempt: _Attempt, reveals: list[PendingReveal]) -> list[PendingReveal] | None:
        if len(reveals) < self._min_commitments:
            logger.debug(
                f"Pool {attempt.pool_id}: {len(reveals)} pending < {self._min_commitments} required",
                extra=attempt.log_extra(),
            )
            attempt.reason = "insufficient commitments"
            return None

        try:
            interval = await self._reader.batch_interval()
            state = await self._reader.batch_state(attempt.pool_id)
        except DomainError as e:
            # Fail closed.
            attempt.reason = f"chain read failed: {e.message}"
            logger.warning(
                f"{LOG_TAG_BATCH} Readiness unknown for pool {attempt.pool_id}, treating as not ready: {e}",
                extra=attempt.log_extra(),
            )
            return None

        now = int(self._clock())
        next_execution_at = state.next_execution_at(interval, now)
        selected = self._select_batch(reveals, interval, next_execution_at, now)
        if selected is None:
            attempt.reason = "batch interval not elapsed"
            logger.debug(
                f"Pool {attempt.pool_id} not ready: now={now} next_execution_at={next_execution_at} "
                f"oldest_reveal={int(reveals[0].created_at.timestamp())} interval={interval}",
                extra=attempt.log_extra(),
            )
        return selected

    def _select_batch(
        self,
        reveals: Sequence[PendingReveal],
        interval: int,
        next_execution_at: int,
        now: int,
    ) -> list[PendingReveal] | None:
        """Apply quorum, size cap and both interval checks. Returns the oldest-first batch or None."""
        selected = list(reveals)
        if self._max_batch_size > 0 and self._max_batch_size < len(selected):
            selected = selected[: self._max_batch_size]
        if len(selected) < self._min_commitments:
            return None
        if now < next_execution_at:
            return None
        if now < int(selected[0].created_at.timestamp()) + interval:
            return None
        return selected

    async def _handle_revert(self, attempt: _Attempt, reason: RevertReason) -> None:
        attempt.reason = reason.describe()
        record_simulated_revert(attempt.pool_id, reason.kind.value)
        error = SimulationRevertError(
            reason.describe(),
            pool_id=attempt.pool_id,
            details={"kind": reason.kind.value, "revert_data": "0x" + reason.raw.hex()},
        )
        logger.info(
            f"{LOG_TAG_BATCH} Simulation reverted, not broadcasting: {error.to_dict()}",
            extra={**attempt.log_extra(), "error_code": error.error_code},
        )

        if reason.is_zero_liquidity:
            quote = attempt.pool_key.quote_currency(self._base_is_currency0)
            diag = await self._reader.pool_diagnostics(attempt.pool_id, quote_token=quote)
            logger.warning(
                f"Pool diagnostics {attempt.pool_id}: initialized={diag.initialized} "
                f"sqrtPriceX96={diag.sqrt_price_x96} liquidity={diag.liquidity} "
                f"settlement_quote_balance={diag.settlement_quote_balance}",
                extra=attempt.log_extra(),
            )
            if diag.pool_manager_mismatch:
                logger.error(
                    f"Hook pool manager {diag.hook_pool_manager} differs from configured "
                    f"{diag.configured_pool_manager}; liquidity was likely added to the wrong manager"
                )

    async def _reconcile(self, attempt: _Attempt, hashes: list[str], tx_hash: str) -> BatchOutcome:
        try:
            result = await self._store.apply_executed_batch(
                attempt.pool_id,
                hashes,
                tx_hash,
                executed_at=datetime.now(UTC),
            )
        except Exception as e:
            error = ReconciliationError(
                f"Batch {tx_hash} confirmed but store update failed; ledger disagrees with chain",
                pool_id=attempt.pool_id,
                details={"tx_hash": tx_hash, "commitment_hashes": hashes},
            )
            error.__cause__ = e
            attempt.reason = f"reconciliation failed: {e}"
            logger.critical(
                f"{LOG_TAG_BATCH} {error.message}: {error.to_dict()}",
                exc_info=e,
                extra={**attempt.log_extra(), "tx_hash": tx_hash, "error_code": error.error_code},
            )
            await self._publish(
                BatchExecuted(
                    pool_id=attempt.pool_id,
                    trigger=attempt.trigger,
                    tx_hash=tx_hash,
                    commitment_hashes=tuple(hashes),
                    reconciled=False,
                )
            )
            return BatchOutcome.RECONCILE_FAILED

        if result.reveals_deleted != len(hashes):
            logger.warning(
                f"Batch {tx_hash}: removed {result.reveals_deleted} of {len(hashes)} ledger rows "
                f"(rows already gone)",
                extra={**attempt.log_extra(), "tx_hash": tx_hash},
            )

        logger.info(
            f"{LOG_TAG_BATCH} Batch executed on pool {attempt.pool_id}: tx={tx_hash} "
            f"orders={result.orders_executed} trades={result.trades_created}",
            extra={**attempt.log_extra(), "tx_hash": tx_hash, "outcome": BatchOutcome.EXECUTED.value},
        )
        await self._publish(
            BatchExecuted(
                pool_id=attempt.pool_id,
                trigger=attempt.trigger,
                tx_hash=tx_hash,
                commitment_hashes=tuple(hashes),
            )
        )
        return BatchOutcome.EXECUTED

    async def _publish(self, event: DomainEvent) -> None:
        if self._event_bus is None:
            return
        try:
            await self._event_bus.publish(event)
        except Exception as e:
            logger.warning(f"Failed to publish {event.event_type}: {e}")
