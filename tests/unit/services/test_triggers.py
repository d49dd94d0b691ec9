"""
Unit tests for the post-reveal and interval batch triggers.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from perp_keeper.adapters.messaging.event_bus import InMemoryEventBus
from perp_keeper.domain.events import RevealConfirmed
from perp_keeper.services.triggers import IntervalTrigger, RevealTrigger
from tests.factories import commitment


@pytest.fixture
def coordinator(pool_key):
    coordinator = MagicMock()
    coordinator.try_execute_batch = AsyncMock(return_value=False)
    coordinator.default_pool_key = MagicMock(return_value=pool_key)
    return coordinator


# =============================================================================
# IntervalTrigger
# =============================================================================


class TestIntervalConfiguration:
    def test_interval_has_a_floor(self, settings, coordinator):
        settings.keeper.interval_seconds = 5
        assert IntervalTrigger(settings, coordinator).interval_seconds == 15

    def test_longer_interval_is_kept(self, settings, coordinator):
        settings.keeper.interval_seconds = 45
        assert IntervalTrigger(settings, coordinator).interval_seconds == 45

    def test_disabled_without_wallet(self, settings, coordinator):
        settings.keeper.wallet_address = ""
        assert IntervalTrigger(settings, coordinator).enabled is False


@pytest.mark.asyncio
class TestIntervalRun:
    async def test_disabled_run_returns_without_attempts(self, settings, coordinator):
        settings.keeper.wallet_address = ""
        trigger = IntervalTrigger(settings, coordinator)

        await asyncio.wait_for(trigger.run(asyncio.Event()), timeout=1)

        coordinator.try_execute_batch.assert_not_awaited()

    async def test_first_tick_runs_immediately(self, settings, coordinator, pool_key, wallet):
        stop = asyncio.Event()

        async def attempt(*args, **kwargs):
            stop.set()
            return False

        coordinator.try_execute_batch.side_effect = attempt
        trigger = IntervalTrigger(settings, coordinator)

        await asyncio.wait_for(trigger.run(stop), timeout=1)

        coordinator.try_execute_batch.assert_awaited_once_with(wallet, "interval", pool_key)

    async def test_tick_covers_every_pool(self, settings, coordinator, pool_key):
        other = MagicMock()
        coordinator.try_execute_batch.side_effect = [True, False]
        trigger = IntervalTrigger(settings, coordinator, pool_keys=[pool_key, other])

        assert await trigger.tick() == 1
        assert coordinator.try_execute_batch.await_count == 2

    async def test_failing_tick_does_not_stop_the_loop(self, settings, coordinator):
        stop = asyncio.Event()
        calls = 0

        async def attempt(*args, **kwargs):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("unexpected")
            stop.set()
            return False

        coordinator.try_execute_batch.side_effect = attempt
        trigger = IntervalTrigger(settings, coordinator)
        trigger._interval = 0.01

        await asyncio.wait_for(trigger.run(stop), timeout=1)

        assert calls == 2

    async def test_start_and_stop(self, settings, coordinator):
        trigger = IntervalTrigger(settings, coordinator)

        await trigger.start()
        await asyncio.sleep(0.01)
        await trigger.stop()

        coordinator.try_execute_batch.assert_awaited()


# =============================================================================
# RevealTrigger
# =============================================================================


@pytest.mark.asyncio
class TestRevealTrigger:
    async def test_reveal_confirmed_triggers_attempt(self, coordinator, pool_key, wallet):
        bus = InMemoryEventBus()
        RevealTrigger(coordinator, bus).start()

        await bus.publish(RevealConfirmed(pool_key=pool_key, commitment_hash=commitment(1), wallet=wallet))

        coordinator.try_execute_batch.assert_awaited_once_with(wallet, "post-reveal", pool_key)

    async def test_publisher_is_not_blocked_by_attempt(self, coordinator, pool_key, wallet):
        release = asyncio.Event()

        async def slow_attempt(*args, **kwargs):
            await release.wait()
            return True

        coordinator.try_execute_batch.side_effect = slow_attempt
        bus = InMemoryEventBus()
        RevealTrigger(coordinator, bus).start()
        await bus.start()

        await asyncio.wait_for(
            bus.publish(RevealConfirmed(pool_key=pool_key, commitment_hash=commitment(1), wallet=wallet)),
            timeout=0.5,
        )

        release.set()
        await bus.stop()
        coordinator.try_execute_batch.assert_awaited_once()

    async def test_attempt_failure_is_isolated(self, coordinator, pool_key, wallet):
        coordinator.try_execute_batch.side_effect = RuntimeError("boom")
        bus = InMemoryEventBus()
        RevealTrigger(coordinator, bus).start()

        await bus.publish(RevealConfirmed(pool_key=pool_key, commitment_hash=commitment(1), wallet=wallet))

    async def test_stop_unsubscribes(self, coordinator, pool_key, wallet):
        bus = InMemoryEventBus()
        trigger = RevealTrigger(coordinator, bus)
        trigger.start()
        trigger.stop()

        assert bus.subscriber_count(RevealConfirmed) == 0
