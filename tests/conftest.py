"""Pytest fixtures for model ledger tests.

Every fixture builds fresh, independent state; nothing is shared between
tests except the read-only default config.
"""

from __future__ import annotations

# Load environment variables from .env before any tests run
from dotenv import load_dotenv

load_dotenv()

from pathlib import Path
from typing import Iterator

import pytest

from modelmarket import config as config_module
from modelmarket.config_schema import AppConfig, validate_config_dict
from modelmarket.world.ledger import Ledger
from modelmarket.world.marketplace import ModelMarketplace
from modelmarket.world.registry import ModelRegistry
from modelmarket.world.world import World
from tests.testing_utils import ether


OWNER = "owner"
ADDR1 = "addr1"
ADDR2 = "addr2"


@pytest.fixture(autouse=True)
def _reset_global_config() -> Iterator[None]:
    """Runtime overrides made by one test never leak into another."""
    config_module.reset_config()
    yield
    config_module.reset_config()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Default config with the event log written under tmp_path."""
    return validate_config_dict({
        "marketplace": {"fee_bps": 250},
        "logging": {"output_file": str(tmp_path / "events.jsonl")},
    })


@pytest.fixture
def ledger() -> Ledger:
    """Create a fresh Ledger instance for each test."""
    return Ledger()


@pytest.fixture
def funded_ledger(ledger: Ledger) -> Ledger:
    """Ledger where owner, addr1 and addr2 hold 10.0 each."""
    for principal_id in (OWNER, ADDR1, ADDR2):
        ledger.create_principal(principal_id, ether("10.0"))
    return ledger


@pytest.fixture
def registry(funded_ledger: Ledger) -> ModelRegistry:
    return ModelRegistry(funded_ledger)


@pytest.fixture
def marketplace(registry: ModelRegistry, funded_ledger: Ledger) -> ModelMarketplace:
    """Marketplace charging 2.5% on top of the funded registry."""
    return ModelMarketplace(registry, funded_ledger, fee_bps=250)


@pytest.fixture
def world(app_config: AppConfig) -> World:
    """World with owner, addr1 and addr2 funded with 10.0 each."""
    w = World(app_config)
    for principal_id in (OWNER, ADDR1, ADDR2):
        w.fund(principal_id, ether("10.0"))
    return w
