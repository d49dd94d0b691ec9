"""
Settings management using Pydantic.

Loads configuration from YAML files and environment variables.
Environment variables override YAML values.
"""

from __future__ import annotations

import logging
import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Hard floor for the interval trigger period.
MIN_KEEPER_INTERVAL_SECONDS = 15.0


class ChainSettings(BaseModel):
    """JSON-RPC endpoint and read policy."""

    rpc_url: str = "https://sepolia-rollup.arbitrum.io/rpc"
    chain_id: int = 421614
    # Per-request HTTP timeout inside the RPC client.
    request_timeout_seconds: float = 15.0
    # Hard bound on a whole read (all retries included) as seen by the coordinator.
    read_timeout_seconds: float = 45.0
    retry_count: int = 3
    retry_delay_seconds: float = 1.0


class ContractSettings(BaseModel):
    """Deployed contract addresses and the default pool shape."""

    settlement_hook: str = ""
    pool_manager: str = ""
    currency0: str = ""
    currency1: str = ""
    fee: int = 3000
    tick_spacing: int = 60
    # When True the base asset is currency0 and the quote asset is currency1.
    base_is_currency0: bool = True

    def validate_addresses(self) -> list[str]:
        """Return a list of address problems. Empty list means valid."""
        errors = []
        for name in ("settlement_hook", "currency0", "currency1"):
            value = getattr(self, name)
            if not value:
                errors.append(f"contracts.{name} is required")
            elif not (value.startswith("0x") and len(value) == 42):
                errors.append(f"contracts.{name} is not a 20-byte hex address: {value!r}")
        return errors


class KeeperSettings(BaseModel):
    """Batch trigger settings."""

    # Executing wallet. Empty wallet_address disables the interval trigger.
    wallet_id: str = ""
    wallet_address: str = ""

    interval_seconds: float = 30.0
    min_interval_seconds: float = Field(default=MIN_KEEPER_INTERVAL_SECONDS, ge=MIN_KEEPER_INTERVAL_SECONDS)

    # Quorum of revealed commitments required before a batch may run.
    min_commitments: int = Field(default=2, ge=1)
    # 0 = unbounded.
    max_batch_size: int = Field(default=0, ge=0)

    @property
    def effective_interval_seconds(self) -> float:
        return max(MIN_KEEPER_INTERVAL_SECONDS, self.min_interval_seconds, self.interval_seconds)

    @property
    def has_wallet(self) -> bool:
        return bool(self.wallet_address)


class FundingSettings(BaseModel):
    """Settlement contract pre-funding.

    The price estimate is a fixed conservative constant on purpose: funding
    does not follow live quotes.
    """

    enabled: bool = True
    price_estimate: Decimal = Decimal("2500")
    buffer_multiplier: int = Field(default=10, ge=1)
    quote_decimals: int = 6
    base_decimals: int = 18


class BroadcastSettings(BaseModel):
    """Transaction submission settings."""

    confirmation_timeout_seconds: float = 120.0
    receipt_poll_interval_seconds: float = 2.0


class SweepSettings(BaseModel):
    """Periodic re-verification of the pending ledger."""

    enabled: bool = True
    interval_seconds: float = 300.0


class DatabaseSettings(BaseModel):
    """Database settings."""

    path: str = "data/perp_keeper.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class LoggingSettings(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    log_dir: str = "logs"
    json_enabled: bool = True
    json_file: str = "logs/perp_keeper_json.jsonl"
    # Set to 0 to disable rotation.
    json_max_bytes: int = 50_000_000
    json_backup_count: int = 3


class MetricsSettings(BaseModel):
    """Prometheus exporter settings."""

    enabled: bool = False
    port: int = 9108


class Settings(BaseSettings):
    """
    Main settings container.

    Loads from YAML file based on environment, then applies env var overrides.
    """

    env: str = Field(default="development", alias="KEEPER_ENV")
    testing_mode: bool = False

    chain: ChainSettings = Field(default_factory=ChainSettings)
    contracts: ContractSettings = Field(default_factory=ContractSettings)
    keeper: KeeperSettings = Field(default_factory=KeeperSettings)
    funding: FundingSettings = Field(default_factory=FundingSettings)
    broadcast: BroadcastSettings = Field(default_factory=BroadcastSettings)
    sweep: SweepSettings = Field(default_factory=SweepSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)

    model_config = {
        "env_prefix": "KEEPER_",
        "env_nested_delimiter": "__",
        "extra": "ignore",
        "populate_by_name": True,
    }

    def validate_for_keeper(self) -> list[str]:
        """
        Validate that everything the keeper needs to broadcast is configured.

        Returns:
            List of validation error messages. Empty list means all validations passed.
        """
        errors = []

        if not self.chain.rpc_url:
            errors.append("chain.rpc_url is required")
        errors.extend(self.contracts.validate_addresses())

        if not self.database.path:
            errors.append("Database path is required")

        if self.keeper.min_interval_seconds < MIN_KEEPER_INTERVAL_SECONDS:
            errors.append(f"keeper.min_interval_seconds must be at least {MIN_KEEPER_INTERVAL_SECONDS:.0f}s")
        if self.funding.enabled and self.funding.price_estimate <= 0:
            errors.append("funding.price_estimate must be positive")
        if self.chain.retry_count < 1:
            errors.append("chain.retry_count must be at least 1")

        return errors

    @classmethod
    def from_yaml(cls, env: str = "development") -> Settings:
        """Load settings from config.yaml, then apply environment overrides."""
        config_dir = Path(__file__).parent
        yaml_file = config_dir / "config.yaml"

        data: dict = {}
        if yaml_file.exists():
            with open(yaml_file, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

        env_file = config_dir / f"{env}.yaml"
        if env_file.exists():
            with open(env_file, encoding="utf-8") as f:
                env_data = yaml.safe_load(f) or {}
            data = _deep_merge(data, env_data)

        for section in ("chain", "contracts", "keeper"):
            if not isinstance(data.get(section), dict):
                data[section] = {}

        if os.getenv("RPC_URL"):
            data["chain"]["rpc_url"] = os.getenv("RPC_URL")
        if os.getenv("CHAIN_ID"):
            data["chain"]["chain_id"] = int(os.getenv("CHAIN_ID").strip())

        if os.getenv("PRIV_BATCH_HOOK"):
            data["contracts"]["settlement_hook"] = os.getenv("PRIV_BATCH_HOOK")
        if os.getenv("POOL_MANAGER"):
            data["contracts"]["pool_manager"] = os.getenv("POOL_MANAGER")
        if os.getenv("MOCK_USDC"):
            data["contracts"]["currency0"] = os.getenv("MOCK_USDC")
        if os.getenv("MOCK_USDT"):
            data["contracts"]["currency1"] = os.getenv("MOCK_USDT")
        if os.getenv("BASE_IS_CURRENCY0"):
            val = os.getenv("BASE_IS_CURRENCY0").lower()
            data["contracts"]["base_is_currency0"] = val in ("true", "1", "yes")

        if os.getenv("KEEPER_WALLET_ID"):
            data["keeper"]["wallet_id"] = os.getenv("KEEPER_WALLET_ID")
        if os.getenv("KEEPER_WALLET_ADDRESS"):
            data["keeper"]["wallet_address"] = os.getenv("KEEPER_WALLET_ADDRESS")
        if os.getenv("KEEPER_INTERVAL_MS"):
            data["keeper"]["interval_seconds"] = int(os.getenv("KEEPER_INTERVAL_MS")) / 1000
        if os.getenv("MAX_PERP_BATCH_SIZE"):
            data["keeper"]["max_batch_size"] = int(os.getenv("MAX_PERP_BATCH_SIZE"))

        data["env"] = env

        _warn_unknown_keys(data, cls)

        return cls(**data)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts, override wins on conflicts."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _collect_all_keys(data: dict, prefix: str = "") -> set[str]:
    """Recursively collect all keys from a nested dict in dot notation."""
    keys = set()
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else key
        keys.add(full_key)
        if isinstance(value, dict):
            keys.update(_collect_all_keys(value, full_key))
    return keys


def _collect_model_fields(model_class: type[BaseModel], prefix: str = "") -> set[str]:
    """Recursively collect all field names from a Pydantic model in dot notation."""
    fields = set()
    for field_name, field_info in model_class.model_fields.items():
        full_key = f"{prefix}.{field_name}" if prefix else field_name
        fields.add(full_key)
        annotation = field_info.annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel):
            fields.update(_collect_model_fields(annotation, full_key))
    return fields


def _warn_unknown_keys(data: dict, model_class: type[BaseModel]) -> None:
    """Warn about YAML keys that don't match any model field (typos are otherwise ignored)."""
    unknown_keys = _collect_all_keys(data) - _collect_model_fields(model_class)

    if unknown_keys:
        logger.warning(
            f"Unknown configuration keys found (will be ignored due to extra='ignore'): {sorted(unknown_keys)}. "
            f"This may indicate typos in config.yaml or outdated config keys."
        )


@lru_cache(maxsize=4)
def get_settings(env: str | None = None) -> Settings:
    """Get cached settings instance."""
    resolved_env = env or os.getenv("KEEPER_ENV", "development")
    return Settings.from_yaml(env=resolved_env)
