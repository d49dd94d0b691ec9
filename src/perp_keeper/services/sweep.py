"""
Ledger Sweeper.

Re-verifies the pending ledger against order state and chain state and
removes rows that can never be batched:
- already executed (an earlier reconciliation only partially applied)
- deadline passed (the contract would reject the commitment forever)
- consumed on chain by another executor
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from perp_keeper.config.settings import Settings
from perp_keeper.domain.errors import DomainError
from perp_keeper.domain.events import LedgerSwept
from perp_keeper.domain.models import OrderStatus, PendingReveal, PoolKey
from perp_keeper.observability.logging import get_logger
from perp_keeper.observability.metrics import record_ledger_sweep_removal
from perp_keeper.ports.event_bus import EventBusPort
from perp_keeper.ports.store import BatchStorePort
from perp_keeper.services.chain_reader import ChainStateReader
from perp_keeper.utils.abi import compute_pool_id

logger = get_logger(__name__)

REASON_EXECUTED = "already_executed"
REASON_EXPIRED = "expired"
REASON_CONSUMED = "consumed_onchain"


@dataclass
class SweepResult:
    """Result of sweeping one pool."""

    pool_id: str
    already_executed: list[str] = field(default_factory=list)
    expired: list[str] = field(default_factory=list)
    consumed_onchain: list[str] = field(default_factory=list)
    chain_checked: bool = False
    errors: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def removed(self) -> dict[str, int]:
        return {
            REASON_EXECUTED: len(self.already_executed),
            REASON_EXPIRED: len(self.expired),
            REASON_CONSUMED: len(self.consumed_onchain),
        }

    @property
    def total_removed(self) -> int:
        return sum(self.removed.values())

    @property
    def success(self) -> bool:
        return len(self.errors) == 0


class LedgerSweeper:
    def __init__(
        self,
        settings: Settings,
        reader: ChainStateReader,
        store: BatchStorePort,
        event_bus: EventBusPort | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self._reader = reader
        self._store = store
        self._event_bus = event_bus
        self._clock = clock
        self._interval = settings.sweep.interval_seconds

    async def run(self, stop_event: asyncio.Event) -> None:
        """Sweep every pool with pending reveals, then wait `sweep.interval_seconds`."""
        logger.info(f"Ledger sweep loop started (every {self._interval:.0f}s)")

        while not stop_event.is_set():
            try:
                await self.sweep_all()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Ledger sweep failed: {e}")

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
            except TimeoutError:
                pass

    # =========================================================================
    # Sweeping
    # =========================================================================

    async def sweep(self, pool_key: PoolKey | None = None) -> SweepResult:
        if pool_key is None:
            contracts = self.settings.contracts
            pool_key = PoolKey.create(
                contracts.currency0,
                contracts.currency1,
                hooks=contracts.settlement_hook,
                fee=contracts.fee,
                tick_spacing=contracts.tick_spacing,
            )
        return await self.sweep_pool(compute_pool_id(pool_key))

    async def sweep_all(self) -> list[SweepResult]:
        results = []
        for pool_id in await self._store.list_pending_pool_ids():
            results.append(await self.sweep_pool(pool_id))
        return results

    async def sweep_pool(self, pool_id: str) -> SweepResult:
        result = SweepResult(pool_id=pool_id)

        reveals = await self._store.list_pending_reveals(pool_id)
        if not reveals:
            return result

        hashes = [r.commitment_hash for r in reveals]
        orders = {o.commitment_hash: o for o in await self._store.get_orders(hashes)}
        now = int(self._clock())

        remaining: list[PendingReveal] = []
        for reveal in reveals:
            order = orders.get(reveal.commitment_hash)
            if order is None:
                remaining.append(reveal)
            elif order.status.is_terminal():
                result.already_executed.append(reveal.commitment_hash)
            elif order.deadline and order.deadline < now:
                result.expired.append(reveal.commitment_hash)
            else:
                remaining.append(reveal)

        if remaining:
            await self._check_chain(pool_id, remaining, result)

        await self._apply(result)
        return result

    async def _check_chain(self, pool_id: str, reveals: list[PendingReveal], result: SweepResult) -> None:
        try:
            state = await self._reader.batch_state(pool_id)
        except DomainError as e:
            # Store-side checks still apply.
            result.errors.append(f"batch_state: {e.message}")
            logger.warning(f"Ledger sweep: chain state unavailable for {pool_id}: {e}")
            return

        result.chain_checked = True
        if state.commitment_count != 0 or state.last_batch_timestamp == 0:
            return

        for reveal in reveals:
            if state.last_batch_timestamp >= int(reveal.created_at.timestamp()):
                result.consumed_onchain.append(reveal.commitment_hash)

    async def _apply(self, result: SweepResult) -> None:
        stale = result.already_executed + result.expired + result.consumed_onchain
        if not stale:
            return

        await self._store.delete_pending_reveals(result.pool_id, stale)
        if result.expired:
            await self._store.cancel_orders(result.expired)

        for reason, count in result.removed.items():
            record_ledger_sweep_removal(result.pool_id, reason, count)

        if result.consumed_onchain:
            logger.error(
                f"Ledger sweep: {len(result.consumed_onchain)} commitment(s) on pool {result.pool_id} "
                f"were batched on chain without local reconciliation; orders left pending for manual review: "
                f"{result.consumed_onchain}",
                extra={"pool_id": result.pool_id},
            )
        logger.info(f"Ledger sweep removed {result.total_removed} row(s) from pool {result.pool_id}: {result.removed}")

        if self._event_bus is not None:
            await self._event_bus.publish(LedgerSwept(pool_id=result.pool_id, removed=result.removed))
