"""
Domain Events.

Events are immutable records of things that happened in the domain.
They are used for:
- Triggering batch attempts after a reveal
- Audit logging
- Operator alerts
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from perp_keeper.domain.models import BatchOutcome, PoolKey, WalletHandle


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """Base class for all domain events."""

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def event_type(self) -> str:
        return self.__class__.__name__


@dataclass(frozen=True, slots=True)
class RevealConfirmed(DomainEvent):
    """Emitted after a reveal transaction confirmed and was recorded."""

    pool_key: PoolKey | None = None
    commitment_hash: str = ""
    wallet: WalletHandle | None = None


@dataclass(frozen=True, slots=True)
class BatchExecuted(DomainEvent):
    """Emitted when a batch was broadcast and confirmed."""

    pool_id: str = ""
    trigger: str = ""
    tx_hash: str = ""
    commitment_hashes: tuple[str, ...] = ()
    reconciled: bool = True


@dataclass(frozen=True, slots=True)
class BatchSkipped(DomainEvent):
    """Emitted when a batch attempt ended without a broadcast."""

    pool_id: str = ""
    trigger: str = ""
    outcome: BatchOutcome = BatchOutcome.NOT_READY
    reason: str = ""
    commitment_count: int = 0


@dataclass(frozen=True, slots=True)
class LedgerSwept(DomainEvent):
    """Emitted when the ledger sweep removed stale rows."""

    pool_id: str = ""
    removed: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AlertEvent(DomainEvent):
    """Generic alert for operators."""

    level: str = "INFO"  # INFO, WARNING, ERROR, CRITICAL
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)
