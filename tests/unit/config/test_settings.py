"""
Unit tests for Settings loading and validation (offline-only).
"""

from __future__ import annotations

import pytest

from perp_keeper.config.settings import ContractSettings, KeeperSettings, Settings, _deep_merge
from tests.factories import HOOK, TOKEN_A, TOKEN_B

OVERRIDE_VARS = (
    "RPC_URL",
    "CHAIN_ID",
    "PRIV_BATCH_HOOK",
    "POOL_MANAGER",
    "MOCK_USDC",
    "MOCK_USDT",
    "BASE_IS_CURRENCY0",
    "KEEPER_WALLET_ID",
    "KEEPER_WALLET_ADDRESS",
    "KEEPER_INTERVAL_MS",
    "MAX_PERP_BATCH_SIZE",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in OVERRIDE_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestKeeperSettings:
    def test_interval_has_a_floor(self):
        assert KeeperSettings(interval_seconds=1, min_interval_seconds=15).effective_interval_seconds == 15
        assert KeeperSettings(interval_seconds=45, min_interval_seconds=15).effective_interval_seconds == 45

    def test_floor_cannot_be_configured_away(self):
        with pytest.raises(ValueError):
            KeeperSettings(min_interval_seconds=5)

        keeper = KeeperSettings(interval_seconds=1)
        keeper.min_interval_seconds = 1
        assert keeper.effective_interval_seconds == 15

    def test_wallet_presence(self):
        assert not KeeperSettings().has_wallet
        assert KeeperSettings(wallet_address="0x" + "11" * 20).has_wallet

    def test_min_commitments_must_be_positive(self):
        with pytest.raises(ValueError):
            KeeperSettings(min_commitments=0)


class TestValidation:
    def test_missing_addresses_are_reported(self):
        errors = Settings().validate_for_keeper()

        assert "contracts.settlement_hook is required" in errors
        assert "contracts.currency0 is required" in errors
        assert "contracts.currency1 is required" in errors

    def test_malformed_address(self):
        errors = ContractSettings(settlement_hook="0x1234", currency0=TOKEN_A, currency1=TOKEN_B).validate_addresses()

        assert len(errors) == 1
        assert "settlement_hook" in errors[0]

    def test_valid_settings(self, settings):
        assert settings.validate_for_keeper() == []

    def test_interval_floor_below_fifteen_seconds(self, settings):
        settings.keeper.min_interval_seconds = 1

        assert "keeper.min_interval_seconds must be at least 15s" in settings.validate_for_keeper()
        assert settings.keeper.effective_interval_seconds == 30.0


class TestFromYaml:
    def test_defaults_from_packaged_yaml(self, clean_env):
        settings = Settings.from_yaml("test-no-overlay")

        assert settings.env == "test-no-overlay"
        assert settings.keeper.min_commitments == 2
        assert settings.sweep.interval_seconds == 300.0
        assert settings.metrics.enabled is False

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("PRIV_BATCH_HOOK", HOOK)
        clean_env.setenv("MOCK_USDC", TOKEN_A)
        clean_env.setenv("MOCK_USDT", TOKEN_B)
        clean_env.setenv("KEEPER_INTERVAL_MS", "20000")
        clean_env.setenv("MAX_PERP_BATCH_SIZE", "8")
        clean_env.setenv("BASE_IS_CURRENCY0", "false")
        clean_env.setenv("CHAIN_ID", " 42161 ")

        settings = Settings.from_yaml("test-no-overlay")

        assert settings.contracts.settlement_hook == HOOK
        assert settings.contracts.currency0 == TOKEN_A
        assert settings.contracts.currency1 == TOKEN_B
        assert settings.contracts.base_is_currency0 is False
        assert settings.chain.chain_id == 42161
        assert settings.keeper.interval_seconds == 20.0
        assert settings.keeper.max_batch_size == 8


def test_deep_merge_override_wins():
    merged = _deep_merge({"a": {"b": 1, "c": 2}, "d": 1}, {"a": {"b": 5}})

    assert merged == {"a": {"b": 5, "c": 2}, "d": 1}
