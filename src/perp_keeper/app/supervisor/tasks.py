"""
Supervision of the keeper's background loops.

Each loop has its own restart policy. The interval trigger is the only batch
path when no reveals arrive, so losing it alerts at CRITICAL and it comes back
quickly; the ledger sweep is advisory and backs off much further. A loop that
stayed up for `stable_after_seconds` before dying starts its backoff over.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from perp_keeper.domain.events import AlertEvent
from perp_keeper.observability.logging import get_logger
from perp_keeper.utils.abi import compute_pool_id

if TYPE_CHECKING:
    from perp_keeper.app.supervisor.manager import Supervisor

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RestartPolicy:
    base_delay_seconds: float
    max_delay_seconds: float
    alert_level: str
    stable_after_seconds: float = 300.0

    def delay(self, failures: int) -> float:
        return min(self.max_delay_seconds, self.base_delay_seconds * 2 ** max(0, failures - 1))


RESTART_POLICIES: dict[str, RestartPolicy] = {
    "interval_trigger": RestartPolicy(base_delay_seconds=2.0, max_delay_seconds=60.0, alert_level="CRITICAL"),
    "ledger_sweep": RestartPolicy(base_delay_seconds=30.0, max_delay_seconds=900.0, alert_level="ERROR"),
    "heartbeat": RestartPolicy(base_delay_seconds=5.0, max_delay_seconds=120.0, alert_level="WARNING"),
}
DEFAULT_RESTART_POLICY = RestartPolicy(base_delay_seconds=2.0, max_delay_seconds=60.0, alert_level="ERROR")


def restart_policy(name: str) -> RestartPolicy:
    return RESTART_POLICIES.get(name, DEFAULT_RESTART_POLICY)


def _create_task(self: Supervisor, coro: Any, name: str) -> asyncio.Task:
    """Start a supervised loop; it is restarted per its policy if it dies outside shutdown."""
    self._task_started_at[name] = time.monotonic()
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(lambda t: self._on_loop_done(t, name))
    return task


def _loop_context(self: Supervisor, name: str) -> dict[str, Any]:
    """Keeper state an operator needs to judge a dead loop."""
    context: dict[str, Any] = {"loop": name, "wallet_id": self.settings.keeper.wallet_id or None}
    if name == "interval_trigger" and self.interval_trigger is not None:
        context["trigger"] = "interval"
        context["interval_seconds"] = self.interval_trigger.interval_seconds
        try:
            context["pool_ids"] = [compute_pool_id(key) for key in self.interval_trigger.pool_keys()]
        except ValueError as e:
            context["pool_ids"] = f"unresolved: {e}"
    elif name == "ledger_sweep":
        context["interval_seconds"] = self.settings.sweep.interval_seconds
    return context


def _on_loop_done(self: Supervisor, task: asyncio.Task, name: str) -> None:
    if task.cancelled():
        logger.debug(f"Loop {name} cancelled")
        return

    exc = task.exception()
    if self._stopping or self._shutdown_event.is_set():
        if exc:
            logger.debug(f"Loop {name} ended during shutdown: {exc}")
        return

    policy = restart_policy(name)
    uptime = time.monotonic() - self._task_started_at.get(name, time.monotonic())
    failures = 1 if uptime >= policy.stable_after_seconds else self._task_restart_attempts.get(name, 0) + 1
    self._task_restart_attempts[name] = failures
    delay = policy.delay(failures)

    reason = f"{type(exc).__name__}: {exc}" if exc else "returned while keeper running"
    logger.error(
        f"Loop {name} died after {uptime:.0f}s ({reason}); restart #{failures} in {delay:.0f}s",
        exc_info=exc,
    )

    previous = self._task_restart_jobs.pop(name, None)
    if previous is not None and not previous.done():
        previous.cancel()

    self._task_restart_jobs[name] = asyncio.get_running_loop().create_task(
        self._restart_loop(name, delay, reason),
        name=f"restart_{name}",
    )


async def _restart_loop(self: Supervisor, name: str, delay: float, reason: str) -> None:
    try:
        await asyncio.sleep(delay)
    except asyncio.CancelledError:
        return
    if self._stopping or self._shutdown_event.is_set():
        return

    factory = self._task_factories.get(name)
    if factory is None:
        logger.error(f"Loop {name} has no factory; not restarted")
        return

    policy = restart_policy(name)
    details = {
        **self._loop_context(name),
        "reason": reason,
        "failures": self._task_restart_attempts.get(name, 0),
        "delay_seconds": delay,
    }
    logger.warning(f"Restarting loop {name}: {details}")
    self._tasks[name] = self._create_task(factory(), name=name)

    if self.event_bus:
        try:
            await self.event_bus.publish(
                AlertEvent(level=policy.alert_level, message=f"Keeper loop restarted: {name}", details=details)
            )
        except Exception as e:
            logger.warning(f"Restart alert for {name} not published: {e}")


async def _cancel_all_tasks(self: Supervisor) -> None:
    """Cancel pending restarts first so nothing comes back, then the loops themselves."""
    for job in self._task_restart_jobs.values():
        if not job.done():
            job.cancel()
    self._task_restart_jobs.clear()

    if not self._tasks:
        return

    names = list(self._tasks)
    logger.info(f"Cancelling loops: {names}")
    for task in self._tasks.values():
        task.cancel()

    results = await asyncio.gather(*self._tasks.values(), return_exceptions=True)
    for name, result in zip(names, results, strict=True):
        if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
            logger.error(f"Loop {name} raised while cancelling: {result}")

    self._tasks.clear()
