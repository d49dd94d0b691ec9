"""
Batch Store Port: persistence for the pending commitment ledger, perp orders
and perp trades.

The pending ledger is an advisory cache of what this process has seen
revealed. It may be stale; the settlement contract rejects duplicates.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime

from perp_keeper.domain.models import (
    OrderStatus,
    PendingReveal,
    PerpOrder,
    PerpTrade,
    ReconciliationResult,
)


class BatchStorePort(ABC):
    """Abstract interface for keeper storage."""

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the store (create tables, etc)."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close connections and cleanup."""
        ...

    # =========================================================================
    # Pending ledger
    # =========================================================================

    @abstractmethod
    async def record_reveal(self, reveal: PendingReveal, order: PerpOrder) -> bool:
        """
        Insert a pending reveal and its order in one transaction.

        Returns False if the commitment was already recorded.
        """
        ...

    @abstractmethod
    async def list_pending_reveals(self, pool_id: str) -> list[PendingReveal]:
        """Pending reveals for a pool, oldest first."""
        ...

    @abstractmethod
    async def list_pending_pool_ids(self) -> list[str]:
        """Pools that currently have pending reveals."""
        ...

    @abstractmethod
    async def delete_pending_reveals(self, pool_id: str, commitment_hashes: Sequence[str]) -> int:
        """Delete the given reveals. Returns the number of rows removed."""
        ...

    @abstractmethod
    async def clear_pending_reveals(self, pool_id: str) -> int:
        """Delete every pending reveal for a pool."""
        ...

    # =========================================================================
    # Orders & trades
    # =========================================================================

    @abstractmethod
    async def get_orders(
        self,
        commitment_hashes: Sequence[str],
        status: OrderStatus | None = None,
    ) -> list[PerpOrder]:
        """Orders for the given commitment hashes, optionally filtered by status."""
        ...

    @abstractmethod
    async def list_orders(self, account_id: str, limit: int = 100) -> list[PerpOrder]:
        """Orders owned by an account, newest first."""
        ...

    @abstractmethod
    async def list_trades(self, account_id: str, limit: int = 100) -> list[PerpTrade]:
        """Trades owned by an account, newest first."""
        ...

    @abstractmethod
    async def cancel_orders(self, commitment_hashes: Sequence[str]) -> int:
        """Transition pending orders to cancelled. Non-pending rows are left alone."""
        ...

    # =========================================================================
    # Batch reconciliation
    # =========================================================================

    @abstractmethod
    async def apply_executed_batch(
        self,
        pool_id: str,
        commitment_hashes: Sequence[str],
        tx_hash: str,
        executed_at: datetime,
    ) -> ReconciliationResult:
        """
        Apply a confirmed batch in one transaction.

        Deletes the pending reveals, moves pending orders to executed and
        appends one trade per order. Keyed by commitment hash: replaying the
        same batch changes nothing.
        """
        ...
