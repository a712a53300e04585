"""Configuration loading and validation using Pydantic."""

from pathlib import Path
from typing import Optional

import structlog
import yaml
from eth_utils import is_hex_address, to_checksum_address
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

logger = structlog.get_logger(__name__)


def _checksum(value: str) -> str:
    address = value if value.startswith("0x") else f"0x{value}"
    if not is_hex_address(address):
        raise ValueError(f"'{value}' is not a 20-byte hex address")
    return to_checksum_address(address)


class ChainConfig(BaseModel):
    rpc_url: str
    pool_address: str
    manager_address: Optional[str] = None
    batch_requests: bool = True
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    unlock_duration_seconds: int = Field(default=300, ge=0)

    model_config = {"frozen": True}

    @field_validator("pool_address")
    @classmethod
    def pool_address_is_hex(cls, v):
        return _checksum(v)

    @field_validator("manager_address")
    @classmethod
    def manager_address_is_hex(cls, v):
        if v is None:
            return v
        return _checksum(v)


class RebalancingConfig(BaseModel):
    """Target weights and trade threshold for one fund."""

    expected_shares: dict[str, float]
    min_trade_value: float = Field(default=1.0, ge=0)
    dry_run: bool = False

    model_config = {"frozen": True}

    @field_validator("expected_shares")
    @classmethod
    def shares_are_fractions(cls, v):
        if not v:
            raise ValueError("expected_shares must name at least one symbol")
        for symbol, share in v.items():
            if not 0.0 <= share <= 1.0:
                raise ValueError(f"expected share of {symbol} must be within [0, 1], got {share}")
            if len(symbol.encode("utf-8")) > 32:
                raise ValueError(f"symbol '{symbol}' is longer than 32 bytes")

        total = sum(v.values())
        if abs(total - 1.0) > 1e-6:
            # Weights are used as given, never normalized
            logger.warning("config.expected_shares_not_normalized", total=round(total, 6))
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    app_log: str = "logs/dhtrader.log"
    trade_log: str = "logs/trades.log"
    max_bytes: int = 10485760
    backup_count: int = 5


class AppConfig(BaseModel):
    chain: ChainConfig
    rebalancing: RebalancingConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


class Secrets(BaseSettings):
    """Loaded from .env file automatically."""

    manager_password: str = ""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


def load_config(config_path: Path = Path("config/settings.yaml")) -> AppConfig:
    """Load and validate application configuration from YAML."""
    with open(config_path) as f:
        raw = yaml.safe_load(f)

    return AppConfig(**raw)
