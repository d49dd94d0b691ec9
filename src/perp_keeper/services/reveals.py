"""
Reveal Recorder.

Called once a reveal transaction has confirmed on chain: validates the
intent, writes the pending ledger row and its order atomically and
announces the reveal so the post-reveal trigger can attempt a batch.
"""

from __future__ import annotations

from datetime import UTC, datetime

from perp_keeper.domain.errors import ValidationError
from perp_keeper.domain.events import RevealConfirmed
from perp_keeper.domain.models import PendingReveal, PerpIntent, PerpOrder, PoolKey, WalletHandle
from perp_keeper.observability.logging import get_logger
from perp_keeper.ports.event_bus import EventBusPort
from perp_keeper.ports.store import BatchStorePort
from perp_keeper.utils.abi import compute_pool_id

logger = get_logger(__name__)


def validate_intent(intent: PerpIntent) -> None:
    if intent.size <= 0:
        raise ValidationError(f"Perp size must be positive, got {intent.size}", details={"market": intent.market})
    if intent.leverage <= 0:
        raise ValidationError(
            f"Perp leverage must be positive, got {intent.leverage}",
            details={"market": intent.market},
        )


class RevealRecorder:
    def __init__(self, store: BatchStorePort, event_bus: EventBusPort | None = None):
        self._store = store
        self._event_bus = event_bus

    async def record_reveal(
        self,
        pool_key: PoolKey,
        intent: PerpIntent,
        commitment_hash: str,
        account_id: str,
        wallet: WalletHandle,
    ) -> bool:
        """
        Record a confirmed reveal.

        Returns:
            True if the reveal was newly recorded. False for duplicates and
            for persistence failures (the reveal already happened on chain,
            so the caller must not fail).

        Raises:
            ValidationError: size or leverage is not positive.
        """
        validate_intent(intent)

        pool_id = compute_pool_id(pool_key)
        now = datetime.now(UTC)
        reveal = PendingReveal(pool_id=pool_id, commitment_hash=commitment_hash, created_at=now)
        order = PerpOrder.from_intent(
            intent,
            commitment_hash=commitment_hash,
            account_id=account_id,
            wallet_address=wallet.address,
            pool_id=pool_id,
            created_at=now,
        )

        try:
            inserted = await self._store.record_reveal(reveal, order)
        except Exception as e:
            logger.error(
                f"Failed to record reveal {commitment_hash} for pool {pool_id}: {type(e).__name__}: {e}",
                extra={"pool_id": pool_id},
            )
            return False

        if not inserted:
            return False

        logger.info(
            f"Recorded reveal {commitment_hash} (account={account_id}, size={intent.size}, "
            f"long={intent.is_long}) for pool {pool_id}",
            extra={"pool_id": pool_id},
        )

        if self._event_bus is not None:
            await self._event_bus.publish(
                RevealConfirmed(pool_key=pool_key, commitment_hash=commitment_hash, wallet=wallet)
            )
        return True
