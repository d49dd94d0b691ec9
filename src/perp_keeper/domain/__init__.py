"""
Domain Layer: Core business entities, value objects, and rules.

This layer has NO external dependencies (no RPC types, no DB types).
All types here are canonical and used throughout the application.
"""

from perp_keeper.domain.errors import (
    BroadcastError,
    BroadcastTimeoutError,
    ChainReadError,
    DomainError,
    InsufficientFundingError,
    ReconciliationError,
    RpcRevertError,
    SimulationRevertError,
    TransactionRevertedError,
    ValidationError,
)
from perp_keeper.domain.events import (
    AlertEvent,
    BatchExecuted,
    BatchSkipped,
    DomainEvent,
    LedgerSwept,
    RevealConfirmed,
)
from perp_keeper.domain.models import (
    BatchOutcome,
    BatchState,
    OrderStatus,
    PendingBatchStatus,
    PendingReveal,
    PerpIntent,
    PerpOrder,
    PerpTrade,
    PoolKey,
    ReconciliationResult,
    TxReceipt,
    TxRequest,
    WalletHandle,
)
from perp_keeper.domain.reverts import RevertKind, RevertReason, SimulationResult

__all__ = [
    # Enums
    "OrderStatus",
    "BatchOutcome",
    "RevertKind",
    # Models
    "PoolKey",
    "WalletHandle",
    "BatchState",
    "PerpIntent",
    "PendingReveal",
    "PerpOrder",
    "PerpTrade",
    "TxRequest",
    "TxReceipt",
    "ReconciliationResult",
    "PendingBatchStatus",
    "RevertReason",
    "SimulationResult",
    # Events
    "DomainEvent",
    "RevealConfirmed",
    "BatchExecuted",
    "BatchSkipped",
    "LedgerSwept",
    "AlertEvent",
    # Errors
    "DomainError",
    "ValidationError",
    "ChainReadError",
    "RpcRevertError",
    "InsufficientFundingError",
    "SimulationRevertError",
    "BroadcastError",
    "BroadcastTimeoutError",
    "TransactionRevertedError",
    "ReconciliationError",
]
