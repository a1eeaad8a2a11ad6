"""Ledger record types.

Records returned from read operations are frozen copies, so callers can
hold on to them without seeing later updates (or mutating the ledger).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, TypedDict


Number = int | float


@dataclass
class Asset:
    """Identity record of a minted model. metadata_uri never changes."""

    asset_id: int
    owner: str
    metadata_uri: str
    approved: str | None = None


@dataclass(frozen=True)
class ModelMetrics:
    """Performance snapshot of a model, replaced as a whole on update."""

    reward_rate: Number = 0
    completion_rate: int = 0
    contribution_score: Number = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProfitConfig:
    """Revenue split: beneficiaries[i] receives shares[i] percent."""

    beneficiaries: tuple[str, ...]
    shares: tuple[int, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "beneficiaries": list(self.beneficiaries),
            "shares": list(self.shares),
        }


@dataclass(frozen=True)
class Listing:
    """Marketplace offer for one asset while the marketplace holds custody."""

    asset_id: int
    seller: str
    price: int
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LedgerEvent:
    """Notification produced by a committed operation."""

    event_type: str
    data: dict[str, Any] = field(default_factory=dict)


class Payout(TypedDict):
    """One beneficiary's slice of a profit distribution."""
    beneficiary: str
    amount: int


class FeeQuote(TypedDict):
    """Fee breakdown for buying a listed model at its price."""
    asset_id: int
    price: int
    fee: int
    seller_proceeds: int
    fee_bps: int


class Settlement(TypedDict):
    """Result of a completed purchase."""
    asset_id: int
    seller: str
    buyer: str
    price: int
    fee: int
    seller_proceeds: int
    refund: int
