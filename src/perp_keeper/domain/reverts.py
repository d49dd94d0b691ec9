"""
Settlement contract revert taxonomy.

A revert is decoded once, by selector, into a RevertReason. Callers branch on
`kind`; nothing downstream inspects raw error strings.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# Solidity panic code for division or modulo by zero.
PANIC_DIVISION_BY_ZERO = 0x12

PANIC_DESCRIPTIONS = {
    0x01: "assertion failed",
    0x11: "arithmetic overflow or underflow",
    0x12: "division or modulo by zero",
    0x21: "invalid enum conversion",
    0x22: "invalid storage byte array encoding",
    0x31: "pop on empty array",
    0x32: "array index out of bounds",
    0x41: "out of memory",
    0x51: "call to zero-initialized function",
}


class RevertKind(str, Enum):
    """Closed set of revert reasons understood by the keeper."""

    INSUFFICIENT_COMMITMENTS = "InsufficientCommitments"
    BATCH_CONDITIONS_NOT_MET = "BatchConditionsNotMet"
    INVALID_COMMITMENT = "InvalidPerpCommitment"
    DEADLINE_EXPIRED = "DeadlineExpired"
    INVALID_NONCE = "InvalidNonce"
    PERP_MANAGER_NOT_SET = "PerpManagerNotSet"
    INSUFFICIENT_MARGIN = "InsufficientMargin"
    MARKET_NOT_ACTIVE = "MarketNotActive"
    INVALID_SIZE = "InvalidSize"
    POSITION_NOT_FOUND = "PositionNotFound"
    INVALID_LEVERAGE = "InvalidLeverage"
    MARKET_NOT_FOUND = "MarketNotFound"
    POOL_NOT_INITIALIZED = "PoolNotInitialized"
    PANIC = "Panic"
    ZERO_LIQUIDITY = "ZeroLiquidity"
    ERROR_STRING = "Error"
    UNKNOWN = "Unknown"
    NO_DATA = "NoData"


# Custom errors declared by the settlement contracts. None take arguments.
CUSTOM_ERROR_KINDS = (
    RevertKind.INSUFFICIENT_COMMITMENTS,
    RevertKind.BATCH_CONDITIONS_NOT_MET,
    RevertKind.INVALID_COMMITMENT,
    RevertKind.DEADLINE_EXPIRED,
    RevertKind.INVALID_NONCE,
    RevertKind.PERP_MANAGER_NOT_SET,
    RevertKind.INSUFFICIENT_MARGIN,
    RevertKind.MARKET_NOT_ACTIVE,
    RevertKind.INVALID_SIZE,
    RevertKind.POSITION_NOT_FOUND,
    RevertKind.INVALID_LEVERAGE,
    RevertKind.MARKET_NOT_FOUND,
    RevertKind.POOL_NOT_INITIALIZED,
)


@dataclass(frozen=True, slots=True)
class RevertReason:
    """Decoded revert."""

    kind: RevertKind
    panic_code: int | None = None
    message: str = ""
    raw: bytes = b""

    @property
    def is_zero_liquidity(self) -> bool:
        return self.kind == RevertKind.ZERO_LIQUIDITY

    @property
    def is_known(self) -> bool:
        return self.kind not in (RevertKind.UNKNOWN, RevertKind.NO_DATA)

    def describe(self) -> str:
        if self.kind == RevertKind.ZERO_LIQUIDITY:
            return "Panic(18): pool has zero in-range liquidity or is uninitialized"
        if self.kind == RevertKind.PANIC:
            text = PANIC_DESCRIPTIONS.get(self.panic_code or 0, "unknown panic")
            return f"Panic({self.panic_code}): {text}"
        if self.kind == RevertKind.ERROR_STRING:
            return f"Error({self.message!r})"
        if self.kind == RevertKind.UNKNOWN:
            return f"unrecognized revert data 0x{self.raw.hex()}"
        if self.kind == RevertKind.NO_DATA:
            return f"revert without data ({self.message or 'no message'})"
        return self.kind.value


@dataclass(frozen=True, slots=True)
class SimulationResult:
    """Ok, or Revert carrying a decoded reason."""

    ok: bool
    reason: RevertReason | None = None

    @classmethod
    def success(cls) -> SimulationResult:
        return cls(ok=True)

    @classmethod
    def revert(cls, reason: RevertReason) -> SimulationResult:
        return cls(ok=False, reason=reason)
