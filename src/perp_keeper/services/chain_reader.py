"""
Chain State Reader.

Read-only queries against the settlement hook, the pool manager and ERC-20
tokens. Every read is bounded by `chain.read_timeout_seconds`; any failure is
raised as ChainReadError so callers can fail closed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from eth_abi.exceptions import DecodingError

from perp_keeper.config.settings import Settings
from perp_keeper.domain.errors import ChainReadError, ConfigurationError
from perp_keeper.domain.models import BatchState
from perp_keeper.observability.logging import get_logger
from perp_keeper.ports.chain import ChainRpcPort
from perp_keeper.utils import abi

logger = get_logger(__name__)


@dataclass(slots=True)
class PoolDiagnostics:
    """Best-effort pool snapshot logged when a batch hits a zero-liquidity revert."""

    pool_id: str
    sqrt_price_x96: int | None = None
    liquidity: int | None = None
    hook_pool_manager: str | None = None
    configured_pool_manager: str | None = None
    settlement_quote_balance: int | None = None

    @property
    def pool_manager_mismatch(self) -> bool:
        if not self.hook_pool_manager or not self.configured_pool_manager:
            return False
        return self.hook_pool_manager.lower() != self.configured_pool_manager.lower()

    @property
    def initialized(self) -> bool | None:
        if self.sqrt_price_x96 is None:
            return None
        return self.sqrt_price_x96 != 0


class ChainStateReader:
    """Typed reads over ChainRpcPort."""

    def __init__(self, rpc: ChainRpcPort, settings: Settings):
        self._rpc = rpc
        self._hook = settings.contracts.settlement_hook
        self._configured_pool_manager = settings.contracts.pool_manager or None
        self._timeout = settings.chain.read_timeout_seconds
        self._batch_interval: int | None = None
        self._pool_manager: str | None = None

    @property
    def settlement_address(self) -> str:
        return self._hook

    async def _read(self, what: str, to: str, data: bytes) -> bytes:
        if not to:
            raise ConfigurationError(f"No contract address configured for {what}")
        try:
            return await asyncio.wait_for(self._rpc.call(to, data), timeout=self._timeout)
        except TimeoutError as e:
            raise ChainReadError(f"{what} timed out after {self._timeout:.0f}s") from e
        except ChainReadError as e:
            raise ChainReadError(f"{what} failed: {e.message}", details=e.details) from e

    @staticmethod
    def _decode(what: str, decoder, data: bytes):
        try:
            return decoder(data)
        except DecodingError as e:
            raise ChainReadError(f"{what} returned undecodable data 0x{data.hex()}") from e

    # =========================================================================
    # Settlement hook
    # =========================================================================

    async def batch_state(self, pool_id: str) -> BatchState:
        data = await self._read("perpBatchStates", self._hook, abi.encode_perp_batch_states(pool_id))
        last_batch_timestamp, commitment_count = self._decode("perpBatchStates", abi.decode_batch_state, data)
        return BatchState(last_batch_timestamp=last_batch_timestamp, commitment_count=commitment_count)

    async def batch_interval(self) -> int:
        """Contract constant; cached for the lifetime of the reader."""
        if self._batch_interval is None:
            data = await self._read("BATCH_INTERVAL", self._hook, abi.encode_batch_interval())
            self._batch_interval = self._decode("BATCH_INTERVAL", abi.decode_uint, data)
            logger.info(f"Settlement batch interval: {self._batch_interval}s")
        return self._batch_interval

    async def hook_pool_manager(self) -> str:
        data = await self._read("poolManager", self._hook, abi.encode_pool_manager())
        return self._decode("poolManager", abi.decode_address, data)

    # =========================================================================
    # Tokens
    # =========================================================================

    async def token_balance(self, token: str, owner: str) -> int:
        data = await self._read(f"balanceOf({owner})", token, abi.encode_balance_of(owner))
        return self._decode("balanceOf", abi.decode_uint, data)

    # =========================================================================
    # Pool manager storage
    # =========================================================================

    async def _resolve_pool_manager(self) -> str:
        if self._pool_manager is None:
            self._pool_manager = self._configured_pool_manager or await self.hook_pool_manager()
        return self._pool_manager

    async def _extsload(self, slot: int) -> int:
        pool_manager = await self._resolve_pool_manager()
        data = await self._read("extsload", pool_manager, abi.encode_extsload(slot))
        return self._decode("extsload", abi.decode_uint, data)

    async def pool_sqrt_price_x96(self, pool_id: str) -> int:
        slot0 = await self._extsload(abi.pool_state_slot(pool_id))
        return slot0 & abi.UINT160_MASK

    async def pool_liquidity(self, pool_id: str) -> int:
        value = await self._extsload(abi.pool_state_slot(pool_id) + abi.LIQUIDITY_OFFSET)
        return value & abi.UINT128_MASK

    async def pool_diagnostics(self, pool_id: str, quote_token: str | None = None) -> PoolDiagnostics:
        """Collect what can be read; individual read failures are logged and left as None."""
        diag = PoolDiagnostics(pool_id=pool_id, configured_pool_manager=self._configured_pool_manager)

        try:
            diag.hook_pool_manager = await self.hook_pool_manager()
        except ChainReadError as e:
            logger.warning(f"Diagnostics: hook poolManager read failed: {e}")
        try:
            diag.sqrt_price_x96 = await self.pool_sqrt_price_x96(pool_id)
        except (ChainReadError, ConfigurationError) as e:
            logger.warning(f"Diagnostics: slot0 read failed: {e}")
        try:
            diag.liquidity = await self.pool_liquidity(pool_id)
        except (ChainReadError, ConfigurationError) as e:
            logger.warning(f"Diagnostics: liquidity read failed: {e}")
        if quote_token:
            try:
                diag.settlement_quote_balance = await self.token_balance(quote_token, self._hook)
            except ChainReadError as e:
                logger.warning(f"Diagnostics: settlement quote balance read failed: {e}")

        return diag
