# Ledger state package
from .world import World
from .ledger import Ledger, FundsSink, Payment, MAX_AMOUNT, parse_units, format_units
from .registry import ModelRegistry, split_amount
from .marketplace import ModelMarketplace, compute_fee
from .logger import EventLogger
from .types import Asset, ModelMetrics, ProfitConfig, Listing, LedgerEvent
from .errors import LedgerError

__all__ = [
    "World",
    "Ledger", "FundsSink", "Payment", "MAX_AMOUNT", "parse_units", "format_units",
    "ModelRegistry", "split_amount",
    "ModelMarketplace", "compute_fee",
    "EventLogger",
    "Asset", "ModelMetrics", "ProfitConfig", "Listing", "LedgerEvent",
    "LedgerError",
]
