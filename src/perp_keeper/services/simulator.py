"""
Transaction Simulator.

Dry-runs the exact call the coordinator is about to broadcast and decodes a
revert into RevertReason. Transport failures are not reverts and propagate
as ChainReadError.
"""

from __future__ import annotations

import asyncio

from perp_keeper.domain.errors import ChainReadError, RpcRevertError
from perp_keeper.domain.reverts import SimulationResult
from perp_keeper.observability.logging import get_logger
from perp_keeper.ports.chain import ChainRpcPort
from perp_keeper.utils.abi import decode_revert

logger = get_logger(__name__)


class TransactionSimulator:
    def __init__(self, rpc: ChainRpcPort, timeout_seconds: float):
        self._rpc = rpc
        self._timeout = timeout_seconds

    async def simulate(self, to: str, data: bytes, *, from_address: str | None = None) -> SimulationResult:
        """
        eth_call the transaction.

        Returns:
            SimulationResult.success() or SimulationResult.revert(reason).

        Raises:
            ChainReadError: The node could not be reached or timed out.
        """
        try:
            await asyncio.wait_for(
                self._rpc.call(to, data, from_address=from_address),
                timeout=self._timeout,
            )
        except RpcRevertError as e:
            reason = decode_revert(e.revert_data, message=e.message)
            if not reason.is_known:
                logger.warning(f"Simulation reverted with unmapped data: {reason.describe()}")
            return SimulationResult.revert(reason)
        except TimeoutError as e:
            raise ChainReadError(f"Simulation timed out after {self._timeout:.0f}s") from e

        return SimulationResult.success()
