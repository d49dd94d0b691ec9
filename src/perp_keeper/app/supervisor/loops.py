"""
Supervised loops: interval trigger, ledger sweep and heartbeat.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from perp_keeper.observability.logging import LOG_TAG_HEALTH, get_logger
from perp_keeper.observability.metrics import update_pending_commitments

if TYPE_CHECKING:
    from perp_keeper.app.supervisor.manager import Supervisor

logger = get_logger(__name__)

HEARTBEAT_INTERVAL_SECONDS = 60.0


async def _start_loops(self: Supervisor) -> None:
    """Start main loops as supervised tasks."""
    logger.info("Starting main loops...")

    self._task_factories = {
        "interval_trigger": self._interval_trigger_loop,
        "heartbeat": self._heartbeat_loop,
    }
    if self.settings.sweep.enabled:
        self._task_factories["ledger_sweep"] = self._ledger_sweep_loop

    for name, factory in self._task_factories.items():
        self._tasks[name] = self._create_task(factory(), name=name)

    logger.info(f"Main loops started: {sorted(self._tasks)}")


async def _interval_trigger_loop(self: Supervisor) -> None:
    """Periodic batch attempts. Returns immediately when no keeper wallet is configured."""
    await self.interval_trigger.run(self._shutdown_event)
    if not self.interval_trigger.enabled:
        # Park until shutdown; an early return counts as a crash.
        await self._shutdown_event.wait()


async def _ledger_sweep_loop(self: Supervisor) -> None:
    await self.sweeper.run(self._shutdown_event)


async def _heartbeat_loop(self: Supervisor) -> None:
    """Log pending ledger size per pool and keep the pending gauge fresh."""
    logger.info("Heartbeat loop started")

    while not self._shutdown_event.is_set():
        try:
            pool_ids = await self.store.list_pending_pool_ids()
            counts = {}
            for pool_id in pool_ids:
                reveals = await self.store.list_pending_reveals(pool_id)
                counts[pool_id] = len(reveals)
                update_pending_commitments(pool_id, len(reveals))

            summary = ", ".join(f"{pid[:10]}={n}" for pid, n in counts.items()) or "none"
            logger.info(
                f"{LOG_TAG_HEALTH} Heartbeat: pending={summary} "
                f"event_handlers={self.event_bus.pending_handlers}"
            )

        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.exception(f"Heartbeat error: {e}")

        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=HEARTBEAT_INTERVAL_SECONDS)
        except TimeoutError:
            pass
