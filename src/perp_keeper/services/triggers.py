"""
Batch Triggers.

Two independent sources invoke BatchCoordinator.try_execute_batch:
- RevealTrigger: once per confirmed reveal, via the event bus
- IntervalTrigger: periodic timer over every configured pool

Both may fire for the same pool at the same moment; the coordinator's
readiness gate and simulation sort that out.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Sequence

from perp_keeper.config.settings import Settings
from perp_keeper.domain.events import RevealConfirmed
from perp_keeper.domain.models import PoolKey, WalletHandle
from perp_keeper.observability.logging import LOG_TAG_BATCH, get_logger
from perp_keeper.ports.event_bus import EventBusPort
from perp_keeper.services.coordinator import BatchCoordinator

logger = get_logger(__name__)

POST_REVEAL_LABEL = "post-reveal"
INTERVAL_LABEL = "interval"


class RevealTrigger:
    """Attempts a batch right after each recorded reveal."""

    def __init__(self, coordinator: BatchCoordinator, event_bus: EventBusPort):
        self._coordinator = coordinator
        self._event_bus = event_bus
        self._subscribed = False

    def start(self) -> None:
        if self._subscribed:
            return
        self._event_bus.subscribe(RevealConfirmed, self._on_reveal_confirmed)
        self._subscribed = True
        logger.info("Post-reveal batch trigger enabled")

    def stop(self) -> None:
        if not self._subscribed:
            return
        self._event_bus.unsubscribe(RevealConfirmed, self._on_reveal_confirmed)
        self._subscribed = False

    async def _on_reveal_confirmed(self, event: RevealConfirmed) -> None:
        if event.wallet is None:
            logger.warning(f"RevealConfirmed for {event.commitment_hash} has no wallet; skipping batch attempt")
            return
        await self._coordinator.try_execute_batch(event.wallet, POST_REVEAL_LABEL, event.pool_key)


class IntervalTrigger:
    """
    Periodic batch attempts.

    The period is never shorter than `keeper.min_interval_seconds` (15s floor). Without a
    configured keeper wallet the trigger is disabled.
    """

    def __init__(
        self,
        settings: Settings,
        coordinator: BatchCoordinator,
        pool_keys: Sequence[PoolKey] | None = None,
    ):
        self.settings = settings
        self._coordinator = coordinator
        self._pool_keys = list(pool_keys) if pool_keys else None
        self._interval = settings.keeper.effective_interval_seconds

        self._wallet: WalletHandle | None = None
        if settings.keeper.has_wallet:
            self._wallet = WalletHandle(
                wallet_id=settings.keeper.wallet_id,
                address=settings.keeper.wallet_address,
            )

        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def enabled(self) -> bool:
        return self._wallet is not None

    def pool_keys(self) -> list[PoolKey]:
        if self._pool_keys is None:
            self._pool_keys = [self._coordinator.default_pool_key()]
        return self._pool_keys

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run(self._stop_event), name="interval_trigger")

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Interval batch trigger stopped")

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick until `stop_event` is set. The first tick runs immediately."""
        if self._wallet is None:
            logger.warning(
                f"{LOG_TAG_BATCH} Interval trigger disabled: no keeper wallet configured "
                "(set KEEPER_WALLET_ID and KEEPER_WALLET_ADDRESS)"
            )
            return

        logger.info(f"{LOG_TAG_BATCH} Interval trigger started (every {self._interval:.0f}s)")

        while not stop_event.is_set():
            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Interval trigger tick failed: {e}")

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
            except TimeoutError:
                pass

    async def tick(self) -> int:
        """One attempt per configured pool. Returns the number of batches executed."""
        if self._wallet is None:
            return 0

        executed = 0
        for pool_key in self.pool_keys():
            if await self._coordinator.try_execute_batch(self._wallet, INTERVAL_LABEL, pool_key):
                executed += 1
        return executed
