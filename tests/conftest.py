"""
Shared fixtures: offline settings, an in-memory store and a seeded pool.
"""

from __future__ import annotations

import pytest

from perp_keeper.adapters.store.sqlite import SQLiteBatchStore
from perp_keeper.config.settings import Settings
from perp_keeper.domain.models import PendingReveal, PerpOrder, PoolKey, WalletHandle
from perp_keeper.utils.abi import compute_pool_id
from tests.factories import (
    HOOK,
    NOW,
    POOL_MANAGER,
    TOKEN_A,
    TOKEN_B,
    WALLET_ADDRESS,
    at,
    commitment,
    make_intent,
)


@pytest.fixture
def settings() -> Settings:
    settings = Settings()
    settings.database.path = ":memory:"
    settings.contracts.settlement_hook = HOOK
    settings.contracts.currency0 = TOKEN_A
    settings.contracts.currency1 = TOKEN_B
    settings.contracts.pool_manager = POOL_MANAGER
    settings.keeper.wallet_id = "keeper-1"
    settings.keeper.wallet_address = WALLET_ADDRESS
    settings.keeper.min_commitments = 2
    settings.keeper.max_batch_size = 0
    return settings


@pytest.fixture
def wallet() -> WalletHandle:
    return WalletHandle(wallet_id="keeper-1", address=WALLET_ADDRESS)


@pytest.fixture
def pool_key() -> PoolKey:
    return PoolKey.create(TOKEN_A, TOKEN_B, hooks=HOOK)


@pytest.fixture
def pool_id(pool_key) -> str:
    return compute_pool_id(pool_key)


@pytest.fixture
async def store(settings):
    """Empty in-memory store."""
    store = SQLiteBatchStore(settings)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def seed(store, pool_id):
    """Insert a reveal and its pending order: `await seed(i, created_at, size=..., deadline=...)`."""

    async def _seed(
        i: int,
        created_at: float,
        *,
        size: int = 10**18,
        deadline: int = NOW + 86_400,
        account_id: str = "acct-1",
    ) -> str:
        commitment_hash = commitment(i)
        order = PerpOrder.from_intent(
            make_intent(i, size=size, deadline=deadline),
            commitment_hash=commitment_hash,
            account_id=account_id,
            wallet_address=WALLET_ADDRESS,
            pool_id=pool_id,
            created_at=at(created_at),
        )
        reveal = PendingReveal(pool_id=pool_id, commitment_hash=commitment_hash, created_at=at(created_at))
        await store.record_reveal(reveal, order)
        return commitment_hash

    return _seed
