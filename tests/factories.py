"""
Test constants and builders shared across test modules.
"""

from __future__ import annotations

from datetime import UTC, datetime

from perp_keeper.domain.models import PerpIntent

HOOK = "0x" + "c0" * 19 + "c8"
TOKEN_A = "0x" + "aa" * 20
TOKEN_B = "0x" + "bb" * 20
POOL_MANAGER = "0x" + "9f" * 20
WALLET_ADDRESS = "0x" + "11" * 20

NOW = 1_700_000_000


def commitment(i: int) -> str:
    return "0x" + f"{i:064x}"


def at(epoch: float) -> datetime:
    return datetime.fromtimestamp(epoch, UTC)


def make_intent(i: int = 1, *, size: int = 10**18, leverage: int = 5, deadline: int = NOW + 86_400) -> PerpIntent:
    return PerpIntent(
        market="ETH-PERP",
        size=size,
        is_long=i % 2 == 0,
        is_open=True,
        collateral=500 * 10**6,
        leverage=leverage,
        nonce=i,
        deadline=deadline,
    )
