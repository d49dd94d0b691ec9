"""
Unit tests for TransactionSimulator revert handling.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import encode

from perp_keeper.domain.errors import ChainReadError, RpcRevertError
from perp_keeper.domain.reverts import RevertKind
from perp_keeper.services.simulator import TransactionSimulator
from perp_keeper.utils.abi import PANIC_SELECTOR, selector
from tests.factories import HOOK


@pytest.fixture
def rpc():
    rpc = MagicMock()
    rpc.call = AsyncMock(return_value=b"")
    return rpc


@pytest.mark.asyncio
class TestSimulate:
    async def test_success(self, rpc):
        result = await TransactionSimulator(rpc, timeout_seconds=1).simulate(HOOK, b"\x01\x02")

        assert result.ok is True
        assert result.reason is None
        rpc.call.assert_awaited_once_with(HOOK, b"\x01\x02", from_address=None)

    async def test_panic_18_is_zero_liquidity(self, rpc):
        data = PANIC_SELECTOR + encode(["uint256"], [0x12])
        rpc.call.side_effect = RpcRevertError("execution reverted", revert_data=data)

        result = await TransactionSimulator(rpc, timeout_seconds=1).simulate(HOOK, b"")

        assert result.ok is False
        assert result.reason.kind == RevertKind.ZERO_LIQUIDITY
        assert result.reason.is_zero_liquidity

    async def test_custom_error(self, rpc):
        rpc.call.side_effect = RpcRevertError("reverted", revert_data=selector("BatchConditionsNotMet()"))

        result = await TransactionSimulator(rpc, timeout_seconds=1).simulate(HOOK, b"")

        assert result.reason.kind == RevertKind.BATCH_CONDITIONS_NOT_MET

    async def test_revert_without_data(self, rpc):
        rpc.call.side_effect = RpcRevertError("execution reverted")

        result = await TransactionSimulator(rpc, timeout_seconds=1).simulate(HOOK, b"")

        assert result.ok is False
        assert result.reason.kind == RevertKind.NO_DATA
        assert "execution reverted" in result.reason.describe()

    async def test_transport_failure_is_not_a_revert(self, rpc):
        rpc.call.side_effect = ChainReadError("connection refused")

        with pytest.raises(ChainReadError):
            await TransactionSimulator(rpc, timeout_seconds=1).simulate(HOOK, b"")

    async def test_timeout_raises_chain_read_error(self, rpc):
        async def slow_call(*args, **kwargs):
            await asyncio.sleep(1)

        rpc.call.side_effect = slow_call

        with pytest.raises(ChainReadError, match="timed out"):
            await TransactionSimulator(rpc, timeout_seconds=0.01).simulate(HOOK, b"")
