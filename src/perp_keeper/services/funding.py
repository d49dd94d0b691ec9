"""
Funding Reconciler.

Makes sure the settlement hook holds enough quote currency to net-settle a
batch before it is simulated. The requirement uses a fixed price estimate
and a buffer multiplier, never a live quote.
"""

from __future__ import annotations

from collections.abc import Sequence

from perp_keeper.config.settings import FundingSettings, Settings
from perp_keeper.domain.errors import InsufficientFundingError
from perp_keeper.domain.models import OrderStatus, PoolKey, TxRequest, WalletHandle
from perp_keeper.observability.logging import LOG_TAG_FUNDING, get_logger
from perp_keeper.observability.metrics import record_funding_transfer
from perp_keeper.ports.chain import TransactionSenderPort
from perp_keeper.ports.store import BatchStorePort
from perp_keeper.services.chain_reader import ChainStateReader
from perp_keeper.utils.abi import compute_pool_id, encode_transfer

logger = get_logger(__name__)

PRICE_SCALE = 10**18


def required_quote_amount(total_base_size: int, funding: FundingSettings) -> int:
    """
    Quote base units needed to settle `total_base_size` base units.

    needed = size * price * buffer, rescaled from base decimals to quote decimals.
    """
    if total_base_size <= 0:
        return 0
    price_scaled = int(funding.price_estimate * PRICE_SCALE)
    numerator = total_base_size * price_scaled * funding.buffer_multiplier * 10**funding.quote_decimals
    return numerator // (PRICE_SCALE * 10**funding.base_decimals)


class FundingReconciler:
    """Tops up the settlement contract's quote balance from the executing wallet."""

    def __init__(
        self,
        settings: Settings,
        reader: ChainStateReader,
        store: BatchStorePort,
        sender: TransactionSenderPort,
    ):
        self.settings = settings
        self._funding = settings.funding
        self._base_is_currency0 = settings.contracts.base_is_currency0
        self._reader = reader
        self._store = store
        self._sender = sender

    async def ensure_settlement_funding(
        self,
        pool_key: PoolKey,
        commitment_hashes: Sequence[str],
        wallet: WalletHandle,
    ) -> bool:
        """
        Returns True when the settlement contract holds enough quote currency
        (possibly after a transfer), False when the wallet cannot cover the
        shortfall. Chain and broadcast failures propagate.
        """
        if not self._funding.enabled:
            return True

        pool_id = compute_pool_id(pool_key)
        orders = await self._store.get_orders(commitment_hashes, status=OrderStatus.PENDING)
        total_base_size = sum(abs(order.size) for order in orders)
        needed = required_quote_amount(total_base_size, self._funding)

        if needed <= 0:
            logger.debug(f"{LOG_TAG_FUNDING} No quote funding needed for pool {pool_id}")
            return True

        quote = pool_key.quote_currency(self._base_is_currency0)
        settlement = self._reader.settlement_address
        balance = await self._reader.token_balance(quote, settlement)

        if balance >= needed:
            logger.info(
                f"{LOG_TAG_FUNDING} Settlement holds {balance} quote units, needs {needed} "
                f"(base size {total_base_size}); no transfer"
            )
            return True

        shortfall = needed - balance
        wallet_balance = await self._reader.token_balance(quote, wallet.address)
        if wallet_balance < shortfall:
            error = InsufficientFundingError(
                f"Wallet {wallet.wallet_id} cannot fund settlement shortfall",
                required=shortfall,
                available=wallet_balance,
                pool_id=pool_id,
                details={"quote_token": quote, "needed": str(needed), "settlement_balance": str(balance)},
            )
            logger.warning(f"{LOG_TAG_FUNDING} {error.message}: {error.to_dict()}", extra={"pool_id": pool_id})
            record_funding_transfer(pool_id, shortfall, success=False)
            return False

        logger.info(
            f"{LOG_TAG_FUNDING} Transferring {shortfall} quote units to settlement "
            f"(balance {balance}, needed {needed}) from {wallet.wallet_id}"
        )
        receipt = await self._sender.send_transaction(
            wallet,
            TxRequest(to=quote, data=encode_transfer(settlement, shortfall)),
        )
        record_funding_transfer(pool_id, shortfall, success=True)
        logger.info(f"{LOG_TAG_FUNDING} Settlement funded: tx={receipt.tx_hash}", extra={"tx_hash": receipt.tx_hash})
        return True
