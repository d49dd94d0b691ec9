"""
Domain Error Taxonomy.

All domain-specific exceptions with clear categorization.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """
    Base class for all domain errors.

    Includes structured error info for logging and debugging.
    """

    error_code: str = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        *,
        pool_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.pool_id = pool_id
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for logging."""
        data = {
            "error_code": self.error_code,
            "message": self.message,
            "pool_id": self.pool_id,
            "details": self.details,
        }
        if self.__cause__ is not None:
            data["cause"] = f"{type(self.__cause__).__name__}: {self.__cause__}"
        return data


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(DomainError):
    """Invalid input or state."""

    error_code = "VALIDATION_ERROR"


class ConfigurationError(ValidationError):
    """Required configuration is missing or malformed."""

    error_code = "CONFIGURATION_ERROR"


# =============================================================================
# Chain Errors
# =============================================================================


class ChainReadError(DomainError):
    """A read against the chain failed or timed out."""

    error_code = "CHAIN_READ_ERROR"


class RpcRevertError(ChainReadError):
    """The node reported an execution revert for a call."""

    error_code = "RPC_REVERT"

    def __init__(self, message: str, *, revert_data: bytes = b"", **kwargs: Any):
        super().__init__(message, **kwargs)
        self.revert_data = revert_data
        self.details["revert_data"] = "0x" + revert_data.hex()


# =============================================================================
# Batch Errors
# =============================================================================


class BatchError(DomainError):
    """Base class for batch execution failures."""

    error_code = "BATCH_ERROR"


class InsufficientFundingError(BatchError):
    """Executing wallet cannot cover the settlement contract shortfall."""

    error_code = "INSUFFICIENT_FUNDING"

    def __init__(
        self,
        message: str,
        *,
        required: int,
        available: int,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.required = required
        self.available = available
        self.details["required"] = str(required)
        self.details["available"] = str(available)


class SimulationRevertError(BatchError):
    """Dry run of the batch call reverted."""

    error_code = "SIMULATION_REVERT"


class BroadcastError(BatchError):
    """Sending the transaction failed. The batch is presumed not executed."""

    error_code = "BROADCAST_FAILED"


class BroadcastTimeoutError(BroadcastError):
    """No receipt within the confirmation timeout. Outcome unknown."""

    error_code = "BROADCAST_TIMEOUT"

    def __init__(self, message: str, *, tx_hash: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.tx_hash = tx_hash
        self.details["tx_hash"] = tx_hash


class TransactionRevertedError(BroadcastError):
    """Transaction was mined with a failed status."""

    error_code = "TX_REVERTED"

    def __init__(self, message: str, *, tx_hash: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.tx_hash = tx_hash
        self.details["tx_hash"] = tx_hash


class ReconciliationError(BatchError):
    """Broadcast succeeded but the local store update failed."""

    error_code = "RECONCILIATION_FAILED"
