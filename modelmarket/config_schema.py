"""Pydantic schema for configuration validation.

All config values are validated at startup. Typos and invalid values
fail fast with clear error messages.

Usage:
    from modelmarket.config_schema import load_validated_config, AppConfig
    config = load_validated_config("config/config.yaml")
    # config is now a validated AppConfig instance
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


# Null identity - never a valid owner, recipient or beneficiary
ZERO_ADDRESS: str = "0x0000000000000000000000000000000000000000"


# =============================================================================
# BASE MODEL WITH STRICT VALIDATION
# =============================================================================

class StrictModel(BaseModel):
    """Base model that rejects unknown fields (catches typos)."""

    model_config = ConfigDict(extra="forbid")


def _require_identity(value: str) -> str:
    if not value or value == ZERO_ADDRESS:
        raise ValueError("must be a non-null principal id")
    return value


# =============================================================================
# REGISTRY MODEL
# =============================================================================

class RegistryConfig(StrictModel):
    """Ownership registry configuration."""

    address: str = Field(
        default="model_registry",
        description="Principal id of the registry itself"
    )
    name: str = Field(
        default="RLModelOwnership",
        description="Collection name"
    )
    symbol: str = Field(
        default="RLM",
        description="Collection symbol"
    )

    @field_validator("address")
    @classmethod
    def check_address(cls, value: str) -> str:
        return _require_identity(value)


# =============================================================================
# MARKETPLACE MODEL
# =============================================================================

class MarketplaceConfig(StrictModel):
    """Marketplace escrow configuration.

    fee_bps is fixed when the marketplace is constructed; changing it
    afterwards only affects marketplaces built from the new config.
    """

    address: str = Field(
        default="model_marketplace",
        description="Principal id the marketplace holds custody under"
    )
    operator: str = Field(
        default="marketplace_operator",
        description="Principal that collects the marketplace fee"
    )
    fee_bps: int = Field(
        default=250,
        ge=0,
        le=10_000,
        description="Marketplace fee in basis points (250 = 2.5%)"
    )

    @field_validator("address", "operator")
    @classmethod
    def check_identity(cls, value: str) -> str:
        return _require_identity(value)


# =============================================================================
# LEDGER MODEL
# =============================================================================

class LedgerConfig(StrictModel):
    """Funds ledger configuration."""

    decimals: int = Field(
        default=18,
        ge=0,
        le=36,
        description="Decimal places of one display unit (18 = wei-style base units)"
    )
    starting_balances: dict[str, int] = Field(
        default_factory=dict,
        description="Principals created at startup with their balance in base units"
    )

    @field_validator("starting_balances")
    @classmethod
    def check_non_negative(cls, value: dict[str, int]) -> dict[str, int]:
        for principal_id, amount in value.items():
            _require_identity(principal_id)
            if amount < 0:
                raise ValueError(f"starting balance for {principal_id} must be >= 0, got {amount}")
        return value


# =============================================================================
# LOGGING MODEL
# =============================================================================

class LoggingConfig(StrictModel):
    """Logging configuration."""

    enabled: bool = Field(
        default=True,
        description="Write committed ledger events to the JSONL event log"
    )
    output_file: str = Field(
        default="run.jsonl",
        description="JSONL file for ledger events (single-file mode)"
    )
    logs_dir: str | None = Field(
        default=None,
        description="Per-run logs directory (e.g., logs/run_20260115_120000/)"
    )
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Level for the standard library loggers"
    )
    default_recent: int = Field(
        default=50,
        gt=0,
        description="Default number of recent events to return"
    )


# =============================================================================
# ROOT CONFIG
# =============================================================================

class AppConfig(StrictModel):
    """Root configuration model for the entire application.

    All fields have sensible defaults, so an empty config file is valid.
    """

    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    marketplace: MarketplaceConfig = Field(default_factory=MarketplaceConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_validated_config(config_path: str | Path = "config/config.yaml") -> AppConfig:
    """Load and validate configuration from YAML file.

    Args:
        config_path: Path to config YAML file.

    Returns:
        Validated AppConfig instance.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        pydantic.ValidationError: If config is invalid (with detailed error message).
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    return AppConfig.model_validate(raw_config)


def validate_config_dict(config_dict: dict[str, Any]) -> AppConfig:
    """Validate a configuration dictionary.

    Raises:
        pydantic.ValidationError: If config is invalid.
    """
    return AppConfig.model_validate(config_dict)


__all__ = [
    "AppConfig",
    "RegistryConfig",
    "MarketplaceConfig",
    "LedgerConfig",
    "LoggingConfig",
    "StrictModel",
    "ZERO_ADDRESS",
    "load_validated_config",
    "validate_config_dict",
]
