"""
Transaction sender backed by a node-managed account.

The node signs with the account registered for `wallet.address`
(eth_sendTransaction). Confirmation is awaited by polling for the receipt
until a fixed deadline. A send is never retried: a lost response could
otherwise double-submit a payment-bearing transaction.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

from perp_keeper.config.settings import BroadcastSettings
from perp_keeper.domain.errors import (
    BroadcastError,
    BroadcastTimeoutError,
    ChainReadError,
    TransactionRevertedError,
)
from perp_keeper.domain.models import TxReceipt, TxRequest, WalletHandle
from perp_keeper.observability.logging import get_logger
from perp_keeper.ports.chain import ChainRpcPort, TransactionSenderPort

logger = get_logger(__name__)


def _hex_int(value: str | int | None) -> int | None:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(value, 16)


class RpcTransactionSender(TransactionSenderPort):
    """Send through the node and wait for the receipt."""

    def __init__(self, rpc: ChainRpcPort, settings: BroadcastSettings):
        self._rpc = rpc
        self._confirmation_timeout = settings.confirmation_timeout_seconds
        self._poll_interval = settings.receipt_poll_interval_seconds

    async def send_transaction(
        self,
        wallet: WalletHandle,
        tx: TxRequest,
        *,
        on_submitted: Callable[[str], None] | None = None,
    ) -> TxReceipt:
        if not wallet.address:
            raise BroadcastError(f"Wallet {wallet.wallet_id!r} has no linked address")

        try:
            tx_hash = await self._rpc.send_transaction(wallet.address, tx.to, tx.data, tx.value)
        except ChainReadError as e:
            raise BroadcastError(
                f"Send from {wallet.wallet_id} to {tx.to} failed: {e}",
                details={"wallet_id": wallet.wallet_id, "to": tx.to},
            ) from e

        logger.info(f"Transaction sent: {tx_hash} (wallet={wallet.wallet_id}, to={tx.to})")
        if on_submitted is not None:
            on_submitted(tx_hash)

        try:
            return await self._wait_for_receipt(tx_hash)
        except asyncio.CancelledError:
            logger.critical(
                f"Confirmation wait for {tx_hash} cancelled (wallet={wallet.wallet_id}, to={tx.to}); "
                "outcome unknown, needs manual reconciliation",
                extra={"tx_hash": tx_hash},
            )
            raise

    async def _wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        deadline = time.monotonic() + self._confirmation_timeout

        while True:
            try:
                receipt = await self._rpc.get_transaction_receipt(tx_hash)
            except ChainReadError as e:
                logger.warning(f"Receipt poll for {tx_hash} failed: {e}")
                receipt = None

            if receipt:
                status = _hex_int(receipt.get("status"))
                result = TxReceipt(
                    tx_hash=tx_hash,
                    block_number=_hex_int(receipt.get("blockNumber")),
                    status=status if status is not None else 1,
                    gas_used=_hex_int(receipt.get("gasUsed")),
                )
                if result.status == 0:
                    raise TransactionRevertedError(
                        f"Transaction {tx_hash} reverted in block {result.block_number}",
                        tx_hash=tx_hash,
                    )
                return result

            if time.monotonic() >= deadline:
                raise BroadcastTimeoutError(
                    f"No receipt for {tx_hash} after {self._confirmation_timeout:.0f}s; outcome unknown",
                    tx_hash=tx_hash,
                )
            await asyncio.sleep(self._poll_interval)
