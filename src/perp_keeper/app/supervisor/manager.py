"""
Supervisor facade with orchestration state and method wiring.
"""

from __future__ import annotations

import asyncio
from typing import Any

from perp_keeper.app.supervisor.lifecycle import (
    _close_adapters,
    _close_infrastructure,
    _init_adapters,
    _init_infrastructure,
    _start_services,
    _stop_services,
    start,
    stop,
)
from perp_keeper.app.supervisor.loops import _heartbeat_loop, _interval_trigger_loop, _ledger_sweep_loop, _start_loops
from perp_keeper.app.supervisor.tasks import (
    _cancel_all_tasks,
    _create_task,
    _loop_context,
    _on_loop_done,
    _restart_loop,
)
from perp_keeper.config.settings import Settings
from perp_keeper.domain.models import WalletHandle


class Supervisor:
    """
    Central orchestrator for the keeper.

    Manages lifecycle of:
    - JSON-RPC client and transaction sender
    - SQLite store and event bus
    - BatchCoordinator with its funding/simulation collaborators
    - RevealTrigger, IntervalTrigger and LedgerSweeper
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Infrastructure
        self.rpc: Any | None = None
        self.sender: Any | None = None
        self.store: Any | None = None
        self.event_bus: Any | None = None

        # Services
        self.reader: Any | None = None
        self.simulator: Any | None = None
        self.funding: Any | None = None
        self.coordinator: Any | None = None
        self.recorder: Any | None = None
        self.reveal_trigger: Any | None = None
        self.interval_trigger: Any | None = None
        self.sweeper: Any | None = None

        # Background tasks (supervised)
        self._tasks: dict[str, asyncio.Task] = {}
        self._task_factories: dict[str, Any] = {}
        self._task_restart_attempts: dict[str, int] = {}
        self._task_restart_jobs: dict[str, asyncio.Task] = {}
        self._task_started_at: dict[str, float] = {}

        self._stopping = False

    @property
    def is_running(self) -> bool:
        return self._running and not self._stopping

    @property
    def wallet(self) -> WalletHandle | None:
        keeper = self.settings.keeper
        if not keeper.has_wallet:
            return None
        return WalletHandle(wallet_id=keeper.wallet_id, address=keeper.wallet_address)

    start = start
    stop = stop
    _init_infrastructure = _init_infrastructure
    _init_adapters = _init_adapters
    _start_services = _start_services
    _start_loops = _start_loops
    _stop_services = _stop_services
    _close_adapters = _close_adapters
    _close_infrastructure = _close_infrastructure

    _interval_trigger_loop = _interval_trigger_loop
    _ledger_sweep_loop = _ledger_sweep_loop
    _heartbeat_loop = _heartbeat_loop

    _create_task = _create_task
    _loop_context = _loop_context
    _on_loop_done = _on_loop_done
    _restart_loop = _restart_loop
    _cancel_all_tasks = _cancel_all_tasks
