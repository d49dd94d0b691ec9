"""
Chain Ports: JSON-RPC access and transaction submission.

Retry policy (bounded attempts, fixed delay) belongs to ChainRpcPort
implementations. TransactionSenderPort never retries a send.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from perp_keeper.domain.models import TxReceipt, TxRequest, WalletHandle


class ChainRpcPort(ABC):
    """Raw chain access."""

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    async def call(self, to: str, data: bytes, *, from_address: str | None = None) -> bytes:
        """
        Execute a read-only eth_call against the latest block.

        Raises:
            RpcRevertError: The call reverted (carries the revert data).
            ChainReadError: Transport failure after retries.
        """
        ...

    @abstractmethod
    async def send_transaction(self, from_address: str, to: str, data: bytes, value: int = 0) -> str:
        """Submit a transaction for the node to sign. Returns the tx hash. Not retried."""
        ...

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """Receipt for a mined transaction, None while pending."""
        ...


class TransactionSenderPort(ABC):
    """Signing/broadcast collaborator."""

    @abstractmethod
    async def send_transaction(
        self,
        wallet: WalletHandle,
        tx: TxRequest,
        *,
        on_submitted: Callable[[str], None] | None = None,
    ) -> TxReceipt:
        """
        Sign, send and wait for confirmation.

        `on_submitted` receives the tx hash as soon as the node accepts the
        transaction, before confirmation is awaited.

        Raises:
            BroadcastError: Send failed; nothing was executed.
            BroadcastTimeoutError: Sent but unconfirmed; outcome unknown.
            TransactionRevertedError: Mined with a failed status.
        """
        ...
