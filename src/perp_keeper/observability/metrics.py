"""
Prometheus metrics for observability.

Provides metrics for batch attempts, settlement funding transfers,
simulated reverts and the pending commitment ledger.

Usage:
    from perp_keeper.observability.metrics import track_batch_attempt

    with track_batch_attempt(pool_id, "interval") as ctx:
        ...
        ctx["outcome"] = "executed"
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# =============================================================================
# Metric Definitions
# =============================================================================

batch_attempts_total = Counter(
    "perp_keeper_batch_attempts_total",
    "Total number of batch execution attempts by outcome",
    ["pool", "trigger", "outcome"],
)

batch_attempt_duration_seconds = Histogram(
    "perp_keeper_batch_attempt_duration_seconds",
    "Duration of batch execution attempts in seconds",
    ["pool", "outcome"],
    buckets=(0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0),
)

batch_size = Histogram(
    "perp_keeper_batch_size",
    "Number of commitments in broadcast batches",
    ["pool"],
    buckets=(2, 3, 4, 5, 8, 10, 16, 25, 50, 100),
)

simulated_reverts_total = Counter(
    "perp_keeper_simulated_reverts_total",
    "Batch simulations that reverted, by decoded reason",
    ["pool", "reason"],
)

funding_transfers_total = Counter(
    "perp_keeper_funding_transfers_total",
    "Quote-currency transfers into the settlement contract",
    ["pool", "success"],
)

funding_transfer_amount = Counter(
    "perp_keeper_funding_transfer_amount_base_units",
    "Quote-currency base units moved into the settlement contract",
    ["pool"],
)

pending_commitments = Gauge(
    "perp_keeper_pending_commitments",
    "Pending revealed commitments in the local ledger",
    ["pool"],
)

ledger_sweep_removed_total = Counter(
    "perp_keeper_ledger_sweep_removed_total",
    "Pending ledger rows removed by the sweep",
    ["pool", "reason"],
)


def _pool_label(pool_id: str) -> str:
    return pool_id[:10] if pool_id else "unknown"


def start_metrics_server(port: int) -> None:
    """Expose /metrics on the given port."""
    start_http_server(port)


# =============================================================================
# Helper Functions
# =============================================================================


def record_batch_attempt(
    pool_id: str,
    trigger: str,
    outcome: str,
    duration_seconds: float,
) -> None:
    """
    Record a batch execution attempt.

    Args:
        pool_id: Pool identifier (hex)
        trigger: What invoked the attempt ("interval", "post-reveal", ...)
        outcome: Attempt outcome (see BatchOutcome)
        duration_seconds: Time taken by the attempt
    """
    pool = _pool_label(pool_id)
    batch_attempts_total.labels(pool=pool, trigger=trigger or "manual", outcome=outcome).inc()
    batch_attempt_duration_seconds.labels(pool=pool, outcome=outcome).observe(duration_seconds)


def record_batch_size(pool_id: str, size: int) -> None:
    batch_size.labels(pool=_pool_label(pool_id)).observe(size)


def record_simulated_revert(pool_id: str, reason: str) -> None:
    simulated_reverts_total.labels(pool=_pool_label(pool_id), reason=reason).inc()


def record_funding_transfer(pool_id: str, amount: int, success: bool) -> None:
    """Record a settlement funding transfer (amount in quote base units)."""
    pool = _pool_label(pool_id)
    funding_transfers_total.labels(pool=pool, success=str(success).lower()).inc()
    if success and amount > 0:
        funding_transfer_amount.labels(pool=pool).inc(amount)


def update_pending_commitments(pool_id: str, count: int) -> None:
    pending_commitments.labels(pool=_pool_label(pool_id)).set(count)


def record_ledger_sweep_removal(pool_id: str, reason: str, count: int) -> None:
    if count > 0:
        ledger_sweep_removed_total.labels(pool=_pool_label(pool_id), reason=reason).inc(count)


@contextmanager
def track_batch_attempt(
    pool_id: str,
    trigger: str,
) -> Generator[dict[str, Any], None, None]:
    """
    Context manager to track a batch attempt.

    Usage:
        with track_batch_attempt(pool_id, "interval") as ctx:
            # run the attempt
            ctx["outcome"] = "executed"

    Yields:
        Dict to store the attempt outcome
    """
    start_time = time.time()
    ctx: dict[str, Any] = {"outcome": "error"}

    try:
        yield ctx
    finally:
        duration = time.time() - start_time
        record_batch_attempt(
            pool_id=pool_id,
            trigger=trigger,
            outcome=ctx.get("outcome", "error"),
            duration_seconds=duration,
        )
