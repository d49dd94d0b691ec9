"""
Canonical Domain Models.

On-chain amounts (sizes, collateral, balances) are raw integer base units.
Configuration-side quantities (price estimates) use Decimal.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

# =============================================================================
# ENUMS
# =============================================================================


class OrderStatus(str, Enum):
    """Perp order lifecycle status."""

    PENDING = "pending"  # Revealed, waiting for a batch
    EXECUTED = "executed"  # Included in a confirmed batch
    CANCELLED = "cancelled"  # Dropped from the ledger (deadline passed)

    def is_terminal(self) -> bool:
        return self in (OrderStatus.EXECUTED, OrderStatus.CANCELLED)


class BatchOutcome(str, Enum):
    """Result of a single batch attempt."""

    NOT_READY = "not_ready"
    FUNDING_INSUFFICIENT = "funding_insufficient"
    SIMULATED_REVERT = "simulated_revert"
    BROADCAST_FAILED = "broadcast_failed"
    RECONCILE_FAILED = "reconcile_failed"
    EXECUTED = "executed"
    ERROR = "error"

    @property
    def broadcast_confirmed(self) -> bool:
        return self in (BatchOutcome.EXECUTED, BatchOutcome.RECONCILE_FAILED)


# =============================================================================
# VALUE OBJECTS
# =============================================================================


@dataclass(frozen=True, slots=True)
class PoolKey:
    """Uniswap v4 style pool key. currency0 < currency1 by address."""

    currency0: str
    currency1: str
    fee: int
    tick_spacing: int
    hooks: str

    @classmethod
    def create(
        cls,
        token_a: str,
        token_b: str,
        hooks: str,
        fee: int = 3000,
        tick_spacing: int = 60,
    ) -> PoolKey:
        """Build a key with currencies sorted ascending."""
        currency0, currency1 = sorted((token_a, token_b), key=lambda a: a.lower())
        return cls(currency0=currency0, currency1=currency1, fee=fee, tick_spacing=tick_spacing, hooks=hooks)

    def quote_currency(self, base_is_currency0: bool) -> str:
        return self.currency1 if base_is_currency0 else self.currency0

    def as_tuple(self) -> tuple[str, str, int, int, str]:
        return (self.currency0, self.currency1, self.fee, self.tick_spacing, self.hooks)


@dataclass(frozen=True, slots=True)
class WalletHandle:
    """Opaque handle for the account that signs and pays for transactions."""

    wallet_id: str
    address: str


@dataclass(frozen=True, slots=True)
class BatchState:
    """Per-pool batch state as stored by the settlement contract."""

    last_batch_timestamp: int
    commitment_count: int

    def next_execution_at(self, batch_interval: int, now: int) -> int:
        if self.last_batch_timestamp == 0:
            return now
        return self.last_batch_timestamp + batch_interval


@dataclass(frozen=True, slots=True)
class PerpIntent:
    """Plaintext order intent carried by a reveal."""

    market: str
    size: int
    is_long: bool
    is_open: bool
    collateral: int
    leverage: int
    nonce: int
    deadline: int


@dataclass(frozen=True, slots=True)
class TxRequest:
    to: str
    data: bytes
    value: int = 0


@dataclass(frozen=True, slots=True)
class TxReceipt:
    tx_hash: str
    block_number: int | None = None
    status: int = 1
    gas_used: int | None = None


# =============================================================================
# ENTITIES
# =============================================================================


@dataclass(frozen=True, slots=True)
class PendingReveal:
    """A revealed commitment that has not been executed yet."""

    pool_id: str
    commitment_hash: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class PerpOrder:
    """One user intent, keyed by its commitment hash."""

    commitment_hash: str
    account_id: str
    wallet_address: str
    pool_id: str
    market: str
    size: int
    is_long: bool
    is_open: bool
    collateral: int
    leverage: int
    nonce: int
    deadline: int
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    executed_at: datetime | None = None
    tx_hash: str | None = None

    @classmethod
    def from_intent(
        cls,
        intent: PerpIntent,
        *,
        commitment_hash: str,
        account_id: str,
        wallet_address: str,
        pool_id: str,
        created_at: datetime | None = None,
    ) -> PerpOrder:
        now = created_at or datetime.now(UTC)
        return cls(
            commitment_hash=commitment_hash,
            account_id=account_id,
            wallet_address=wallet_address,
            pool_id=pool_id,
            market=intent.market,
            size=intent.size,
            is_long=intent.is_long,
            is_open=intent.is_open,
            collateral=intent.collateral,
            leverage=intent.leverage,
            nonce=intent.nonce,
            deadline=intent.deadline,
            created_at=now,
            updated_at=now,
        )


@dataclass(frozen=True, slots=True)
class PerpTrade:
    """Append-only settlement record for an executed order."""

    commitment_hash: str
    account_id: str
    wallet_address: str
    pool_id: str
    market: str
    size: int
    is_long: bool
    is_open: bool
    collateral: int
    leverage: int
    tx_hash: str
    executed_at: datetime
    entry_price: int | None = None
    realized_pnl: int | None = None  # only set when the trade closes a position
    trade_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def from_order(cls, order: PerpOrder, *, tx_hash: str, executed_at: datetime) -> PerpTrade:
        return cls(
            commitment_hash=order.commitment_hash,
            account_id=order.account_id,
            wallet_address=order.wallet_address,
            pool_id=order.pool_id,
            market=order.market,
            size=order.size,
            is_long=order.is_long,
            is_open=order.is_open,
            collateral=order.collateral,
            leverage=order.leverage,
            tx_hash=tx_hash,
            executed_at=executed_at,
        )


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(slots=True)
class ReconciliationResult:
    """Counts from applying a confirmed batch to the local store."""

    reveals_deleted: int = 0
    orders_executed: int = 0
    trades_created: int = 0


@dataclass(slots=True)
class PendingBatchStatus:
    """Snapshot of a pool's pending batch, local ledger plus chain state."""

    pool_id: str
    commitment_hashes: list[str]
    min_commitments: int
    batch_interval: int | None = None
    last_batch_timestamp: int | None = None
    onchain_commitment_count: int | None = None
    next_execution_at: int | None = None
    can_execute: bool = False

    @property
    def count(self) -> int:
        return len(self.commitment_hashes)
