"""
Startup and shutdown lifecycle management.

These functions are designed to be used as methods of the Supervisor class.
They are defined externally and assigned to the class in manager.py.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from perp_keeper.domain.events import AlertEvent
from perp_keeper.observability.logging import get_logger

if TYPE_CHECKING:
    from perp_keeper.app.supervisor.manager import Supervisor

logger = get_logger(__name__)


async def start(self: Supervisor) -> None:
    """Start all components in order."""
    if self._running:
        logger.warning("Supervisor already running")
        return

    logger.info("Supervisor starting...")
    self._running = True
    self._stopping = False

    try:
        # Phase 1: store, event bus, metrics exporter
        await self._init_infrastructure()

        # Phase 2: RPC client and transaction sender
        await self._init_adapters()

        # Phase 3: coordinator, recorder, triggers
        await self._start_services()

        # Phase 4: supervised loops
        await self._start_loops()

        logger.info("Supervisor started successfully")

    except Exception as e:
        logger.exception(f"Supervisor start failed: {e}")
        await self.stop()
        raise


async def stop(self: Supervisor) -> None:
    """Stop all components gracefully."""
    if self._stopping:
        logger.debug("Supervisor already stopping")
        return

    self._stopping = True
    self._running = False
    logger.info("Supervisor stopping...")

    self._shutdown_event.set()

    await self._cancel_all_tasks()
    await self._stop_services()
    await self._close_adapters()
    await self._close_infrastructure()

    logger.info("Supervisor stopped")


async def _init_infrastructure(self: Supervisor) -> None:
    """Initialize event bus, database and metrics exporter."""
    logger.info("Initializing infrastructure...")

    from perp_keeper.adapters.messaging.event_bus import InMemoryEventBus

    # Post-reveal attempts in flight at shutdown get one confirmation window to finish.
    self.event_bus = InMemoryEventBus(drain_timeout=self.settings.broadcast.confirmation_timeout_seconds)
    await self.event_bus.start()

    from perp_keeper.adapters.store.sqlite import SQLiteBatchStore

    self.store = SQLiteBatchStore(self.settings)
    await self.store.initialize()

    if self.settings.metrics.enabled:
        from perp_keeper.observability.metrics import start_metrics_server

        start_metrics_server(self.settings.metrics.port)

    logger.info("Infrastructure initialized")


async def _init_adapters(self: Supervisor) -> None:
    """Initialize chain adapters."""
    logger.info("Initializing adapters...")

    from perp_keeper.adapters.chain import JsonRpcClient, RpcTransactionSender

    self.rpc = JsonRpcClient(self.settings.chain)
    self.sender = RpcTransactionSender(self.rpc, self.settings.broadcast)

    logger.info(f"Chain adapters ready (chain_id={self.settings.chain.chain_id})")


async def _start_services(self: Supervisor) -> None:
    """Build the batch pipeline and register triggers."""
    logger.info("Starting services...")

    from perp_keeper.services import (
        BatchCoordinator,
        ChainStateReader,
        FundingReconciler,
        IntervalTrigger,
        LedgerSweeper,
        RevealRecorder,
        RevealTrigger,
        TransactionSimulator,
    )

    self.reader = ChainStateReader(self.rpc, self.settings)
    self.simulator = TransactionSimulator(self.rpc, self.settings.chain.read_timeout_seconds)

    self.funding = FundingReconciler(
        settings=self.settings,
        reader=self.reader,
        store=self.store,
        sender=self.sender,
    )

    self.coordinator = BatchCoordinator(
        self.settings,
        reader=self.reader,
        store=self.store,
        funding=self.funding,
        simulator=self.simulator,
        sender=self.sender,
        event_bus=self.event_bus,
    )

    self.recorder = RevealRecorder(store=self.store, event_bus=self.event_bus)

    self.reveal_trigger = RevealTrigger(self.coordinator, self.event_bus)
    self.reveal_trigger.start()

    self.interval_trigger = IntervalTrigger(self.settings, self.coordinator)

    self.sweeper = LedgerSweeper(
        settings=self.settings,
        reader=self.reader,
        store=self.store,
        event_bus=self.event_bus,
    )

    self.event_bus.subscribe(AlertEvent, _log_alert)

    logger.info("Services started")


async def _log_alert(event: AlertEvent) -> None:
    logger.warning(f"ALERT [{event.level}] {event.message} {event.details}")


async def _stop_services(self: Supervisor) -> None:
    """Stop all services."""
    logger.info("Stopping services...")

    # Drain queued reveals and in-flight post-reveal attempts while the
    # RPC client and store are still open.
    if self.event_bus:
        await self.event_bus.stop()
        self.event_bus.unsubscribe(AlertEvent, _log_alert)

    if self.reveal_trigger:
        self.reveal_trigger.stop()

    logger.info("Services stopped")


async def _close_adapters(self: Supervisor) -> None:
    """Close chain adapters."""
    logger.info("Closing adapters...")

    if self.rpc:
        await self.rpc.close()

    logger.info("Adapters closed")


async def _close_infrastructure(self: Supervisor) -> None:
    """Close database."""
    logger.info("Closing infrastructure...")

    if self.event_bus:
        await self.event_bus.stop()

    if self.store:
        await self.store.close()

    logger.info("Infrastructure closed")
