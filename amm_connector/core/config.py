# /amm_connector/core/config.py
from decimal import Decimal
from typing import Dict, List, Literal

import structlog
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when a configuration value is missing or malformed at the point of use."""


class RouterAddresses(BaseModel):
    router_address: str


class ConnectorConfig(BaseModel):
    """Per-connector settings. `allowed_slippage` is kept as the raw string and parsed lazily."""
    allowed_slippage: str = "1/100"
    gas_limit_estimate: int = 300000
    ttl: int = 300
    factory_address: str | None = None
    init_code_hash: str | None = None
    fee_numerator: int = 997
    fee_denominator: int = 1000
    # chain -> network -> addresses
    contract_addresses: Dict[str, Dict[str, RouterAddresses]] = Field(default_factory=dict)
    available_networks: Dict[str, List[str]] = Field(default_factory=dict)

    def router_address(self, chain: str, network: str) -> str:
        try:
            return self.contract_addresses[chain][network].router_address
        except KeyError:
            raise ConfigurationError(f"No router address configured for {chain}/{network}.") from None


class ChainConfig(BaseModel):
    chain_id: int
    node_url: str
    token_list_source: str
    token_list_type: Literal["URL", "FILE"] = "URL"
    manual_gas_price: Decimal = Decimal("1")
    gas_limit_transaction: int = 3000000
    gas_price_refresh_interval: float | None = None
    native_currency_symbol: str
    network_name: str


def _default_connectors() -> Dict[str, ConnectorConfig]:
    return {
        "dfk_crystalvale": ConnectorConfig(
            factory_address="0x794C07912474351b3134E6D6B3B7b3b4A07cbAAa",
            init_code_hash="0x4abbeda7e0705baf5222faead952156d4eb4113795d3dd837895a00ff89f5717",
            available_networks={"dfkchain": ["mainnet"]},
        ),
        "dfk_serendale": ConnectorConfig(
            available_networks={"klaytn": ["mainnet"]},
        ),
    }


class Settings(BaseSettings):
    # Operational Settings
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: str | None = None
    SESSION_DIR: str = "/tmp/amm_connector_session"  # For durable nonce files
    REDIS_URL: str | None = None

    # chain -> network -> config, e.g. CHAINS='{"dfkchain": {"mainnet": {...}}}'
    CHAINS: Dict[str, Dict[str, ChainConfig]] = Field(default_factory=dict)
    CONNECTORS: Dict[str, ConnectorConfig] = Field(default_factory=_default_connectors)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    def chain_config(self, chain: str, network: str) -> ChainConfig:
        try:
            return self.CHAINS[chain][network]
        except KeyError:
            raise ConfigurationError(f"No chain configuration for {chain}/{network}.") from None

    def connector_config(self, name: str) -> ConnectorConfig:
        try:
            return self.CONNECTORS[name]
        except KeyError:
            raise ConfigurationError(f"No connector configuration for '{name}'.") from None


try:
    settings = Settings()
except Exception as e:
    # The logger module depends on settings, so log through structlog directly.
    structlog.get_logger("amm_connector.config").critical("FAILED_TO_LOAD_SETTINGS", error=str(e))
    raise
