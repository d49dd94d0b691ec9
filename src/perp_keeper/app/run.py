"""
Entry points for keeper commands.

Each command sets up the environment and runs the appropriate logic.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
from datetime import UTC, datetime
from pathlib import Path

# Load .env file BEFORE importing settings
from dotenv import load_dotenv

for env_path in [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent.parent / ".env",  # Project root
]:
    if env_path.exists():
        load_dotenv(env_path)
        break
else:
    load_dotenv()

from perp_keeper.config.settings import Settings, get_settings  # noqa: E402
from perp_keeper.observability.logging import get_logger, setup_logging  # noqa: E402


def _log_startup_banner(logger, *, env: str, settings: Settings) -> None:
    keeper = settings.keeper
    logger.warning("========================================================")
    logger.warning(f"PERP BATCH KEEPER env={env} chain_id={settings.chain.chain_id}")
    logger.warning(
        f"hook={settings.contracts.settlement_hook or '-'} "
        f"pool_manager={settings.contracts.pool_manager or '(from hook)'} db={settings.database.path}"
    )
    logger.warning(
        f"keeper: wallet={keeper.wallet_id or '-'} interval={keeper.effective_interval_seconds:.0f}s "
        f"min_commitments={keeper.min_commitments} max_batch_size={keeper.max_batch_size or 'unbounded'}"
    )
    logger.warning(
        f"funding: enabled={settings.funding.enabled} price_estimate={settings.funding.price_estimate} "
        f"buffer={settings.funding.buffer_multiplier}x"
    )
    logger.warning("========================================================")


async def run_keeper(env: str = "development") -> int:
    """
    Main keeper entry point.

    Starts the supervisor and waits for SIGINT/SIGTERM.

    Returns:
        Exit code: 0 = success, 1 = fatal error, 2 = configuration error.
    """
    settings = get_settings(env)
    setup_logging(settings)
    logger = get_logger(__name__)

    _log_startup_banner(logger, env=env, settings=settings)

    errors = settings.validate_for_keeper()
    if errors:
        for error in errors:
            logger.error(error)
        logger.error("Aborting startup due to configuration errors.")
        return 2

    if not settings.keeper.has_wallet:
        logger.warning("No keeper wallet configured: interval trigger disabled, post-reveal trigger only")

    from perp_keeper.app.supervisor import Supervisor

    supervisor = Supervisor(settings)

    shutdown_event = asyncio.Event()
    received_signal: list[str] = []

    def handle_signal(sig: signal.Signals) -> None:
        received_signal.append(sig.name)
        shutdown_event.set()

    if sys.platform == "win32":
        # Do not log inside the handler: reentrant writes to stdout.
        def win_handler(signum: int, frame) -> None:
            received_signal.append(f"signal-{signum}")
            shutdown_event.set()

        signal.signal(signal.SIGINT, win_handler)
        signal.signal(signal.SIGTERM, win_handler)
    else:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    try:
        await supervisor.start()
        await shutdown_event.wait()

        if received_signal:
            logger.info(f"Received {received_signal[0]}, initiating shutdown...")

    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Shutdown signal received, shutting down...")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1
    finally:
        await supervisor.stop()

    logger.info("Keeper stopped cleanly")
    return 0


async def run_status(env: str = "development", pool_id: str | None = None) -> int:
    """Print the pending batch for a pool and whether it could run now."""
    settings = get_settings(env)
    setup_logging(settings)
    logger = get_logger(__name__)

    from perp_keeper.adapters.chain import JsonRpcClient, RpcTransactionSender
    from perp_keeper.adapters.store.sqlite import SQLiteBatchStore
    from perp_keeper.services import BatchCoordinator, ChainStateReader, FundingReconciler, TransactionSimulator

    rpc = JsonRpcClient(settings.chain)
    store = SQLiteBatchStore(settings)

    try:
        await store.initialize()
        reader = ChainStateReader(rpc, settings)
        sender = RpcTransactionSender(rpc, settings.broadcast)
        coordinator = BatchCoordinator(
            settings,
            reader=reader,
            store=store,
            funding=FundingReconciler(settings, reader, store, sender),
            simulator=TransactionSimulator(rpc, settings.chain.read_timeout_seconds),
            sender=sender,
        )
        status = await coordinator.pending_batch_status(pool_id=pool_id)

        print(f"Pool:                {status.pool_id}")
        print(f"Pending commitments: {status.count} (min {status.min_commitments})")
        for commitment_hash in status.commitment_hashes:
            print(f"  {commitment_hash}")
        if status.batch_interval is None:
            print("Chain state:         unavailable")
        else:
            print(f"Batch interval:      {status.batch_interval}s")
            print(f"Last batch:          {_fmt_epoch(status.last_batch_timestamp)}")
            print(f"On-chain count:      {status.onchain_commitment_count}")
            print(f"Next execution at:   {_fmt_epoch(status.next_execution_at)}")
        print(f"Can execute now:     {'yes' if status.can_execute else 'no'}")
        return 0
    except Exception as e:
        logger.exception(f"Status failed: {e}")
        return 1
    finally:
        with contextlib.suppress(Exception):
            await rpc.close()
        with contextlib.suppress(Exception):
            await store.close()


def _fmt_epoch(value: int | None) -> str:
    if not value:
        return "never"
    return datetime.fromtimestamp(value, UTC).isoformat()


async def run_clear_pending(env: str = "development", pool_id: str | None = None) -> int:
    """Delete every pending reveal for a pool. Orders are left as they are."""
    settings = get_settings(env)
    setup_logging(settings)
    logger = get_logger(__name__)

    from perp_keeper.adapters.store.sqlite import SQLiteBatchStore
    from perp_keeper.domain.models import PoolKey
    from perp_keeper.utils.abi import compute_pool_id

    if pool_id is None:
        contracts = settings.contracts
        pool_id = compute_pool_id(
            PoolKey.create(
                contracts.currency0,
                contracts.currency1,
                hooks=contracts.settlement_hook,
                fee=contracts.fee,
                tick_spacing=contracts.tick_spacing,
            )
        )

    logger.warning(f"Clearing pending batch for pool {pool_id} (assumes keeper is not running)")

    store = SQLiteBatchStore(settings)
    try:
        await store.initialize()
        removed = await store.clear_pending_reveals(pool_id)
        print(f"Removed {removed} pending reveal(s) from pool {pool_id}")
        return 0
    except Exception as e:
        logger.exception(f"Clear pending failed: {e}")
        return 1
    finally:
        with contextlib.suppress(Exception):
            await store.close()


async def run_sweep(env: str = "development", pool_id: str | None = None) -> int:
    """Run one ledger sweep (a single pool, or every pool with pending reveals)."""
    settings = get_settings(env)
    setup_logging(settings)
    logger = get_logger(__name__)

    from perp_keeper.adapters.chain import JsonRpcClient
    from perp_keeper.adapters.store.sqlite import SQLiteBatchStore
    from perp_keeper.services import ChainStateReader, LedgerSweeper

    rpc = JsonRpcClient(settings.chain)
    store = SQLiteBatchStore(settings)

    try:
        await store.initialize()
        sweeper = LedgerSweeper(settings=settings, reader=ChainStateReader(rpc, settings), store=store)
        results = [await sweeper.sweep_pool(pool_id)] if pool_id else await sweeper.sweep_all()

        for result in results:
            print(f"{result.pool_id}: removed={result.removed} chain_checked={result.chain_checked}")
            for err in result.errors:
                logger.error(f"Sweep error ({result.pool_id}): {err}")

        return 0 if all(r.success for r in results) else 1
    except Exception as e:
        logger.exception(f"Sweep failed: {e}")
        return 1
    finally:
        with contextlib.suppress(Exception):
            await rpc.close()
        with contextlib.suppress(Exception):
            await store.close()


async def run_doctor(env: str = "development") -> int:
    """Run preflight checks."""
    settings = get_settings(env)
    setup_logging(settings)
    logger = get_logger(__name__)

    logger.info("Running preflight checks...")

    checks_passed = 0
    checks_failed = 0

    # Check 1: configuration
    errors = settings.validate_for_keeper()
    if errors:
        for error in errors:
            logger.error(f"[FAIL] {error}")
        checks_failed += 1
    else:
        logger.info("[OK] Configuration valid")
        checks_passed += 1

    # Check 2: keeper wallet
    if settings.keeper.has_wallet:
        logger.info(f"[OK] Keeper wallet configured ({settings.keeper.wallet_id or settings.keeper.wallet_address})")
        checks_passed += 1
    else:
        logger.warning("[WARN] No keeper wallet: interval trigger disabled")

    # Check 3: database directory
    db_path = settings.database.path
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    logger.info("[OK] Database directory ready")
    checks_passed += 1

    # Check 4: settlement hook reachable
    if not errors:
        from perp_keeper.adapters.chain import JsonRpcClient
        from perp_keeper.domain.errors import DomainError
        from perp_keeper.services import ChainStateReader

        rpc = JsonRpcClient(settings.chain)
        try:
            reader = ChainStateReader(rpc, settings)
            interval = await reader.batch_interval()
            hook_pool_manager = await reader.hook_pool_manager()
            logger.info(f"[OK] Settlement hook reachable (BATCH_INTERVAL={interval}s)")
            checks_passed += 1

            configured = settings.contracts.pool_manager
            if configured and configured.lower() != hook_pool_manager.lower():
                logger.error(f"[FAIL] Hook pool manager {hook_pool_manager} != configured {configured}")
                checks_failed += 1
        except DomainError as e:
            logger.error(f"[FAIL] Settlement hook unreachable: {e}")
            checks_failed += 1
        finally:
            await rpc.close()

    logger.info(f"Preflight: {checks_passed} passed, {checks_failed} failed")

    return 0 if checks_failed == 0 else 1
