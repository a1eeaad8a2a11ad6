"""Ownership registry - who owns each model and how its profit is split.

The registry is the single source of truth for:
1. Asset identity (id, owner, metadata URI) - created by mint(), never burned
2. Performance metrics - written by the current owner, replaced as a whole
3. Profit configuration - written by the current owner, replaced as a whole

transfer() is the only path by which ownership changes. The marketplace
takes custody through it like any other approved operator.

Every operation validates all preconditions before touching state, so a
raised LedgerError always means nothing changed.
"""

from __future__ import annotations

import copy
import logging
import math
from typing import Any, Callable, Sequence

from ..config_schema import ZERO_ADDRESS
from .errors import (
    ConfigMissingError,
    InvalidConfigError,
    InvalidRecipientError,
    OutOfRangeError,
    PaymentError,
    PayoutFailedError,
    UnauthorizedError,
    UnknownAssetError,
)
from .ledger import MAX_AMOUNT, Ledger, Payment
from .types import Asset, LedgerEvent, ModelMetrics, Payout, ProfitConfig


logger = logging.getLogger(__name__)

# Shares are whole percentages
TOTAL_SHARES: int = 100
MAX_COMPLETION_RATE: int = 100


def is_null_identity(principal_id: str | None) -> bool:
    """True for the zero address, the empty id and anything that is not a str."""
    return not isinstance(principal_id, str) or not principal_id or principal_id == ZERO_ADDRESS


def is_asset_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def split_amount(config: ProfitConfig, amount: int) -> list[Payout]:
    """Compute each beneficiary's payout for amount.

    Each beneficiary gets floor(amount * share / 100) in order; whatever
    integer division leaves over goes to the last beneficiary, so the
    payouts always sum to exactly amount.
    """
    payouts: list[Payout] = [
        {"beneficiary": beneficiary, "amount": amount * share // TOTAL_SHARES}
        for beneficiary, share in zip(config.beneficiaries, config.shares)
    ]
    remainder = amount - sum(p["amount"] for p in payouts)
    payouts[-1]["amount"] += remainder
    return payouts


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ModelRegistry:
    """
    Registry of minted RL models.

    - assets: {asset_id: Asset}
    - metrics: {asset_id: ModelMetrics} (absent until first update)
    - profit configs: {asset_id: ProfitConfig} (absent until first set)
    - operators: {owner: {operator, ...}} approved for all of owner's assets

    Thread-safety: This class is NOT thread-safe. The World serializes all
    access through its own lock.
    """

    ledger: Ledger
    address: str
    name: str
    symbol: str
    _assets: dict[int, Asset]
    _metrics: dict[int, ModelMetrics]
    _profit_configs: dict[int, ProfitConfig]
    _operators: dict[str, set[str]]
    _next_id: int

    def __init__(
        self,
        ledger: Ledger,
        address: str = "model_registry",
        name: str = "RLModelOwnership",
        symbol: str = "RLM",
        on_event: Callable[[LedgerEvent], None] | None = None,
    ) -> None:
        """
        Args:
            ledger: Funds ledger used to pay out profit distributions
            address: Principal id of the registry itself
            name: Collection name
            symbol: Collection symbol
            on_event: Receives a LedgerEvent for every state change
        """
        self.ledger = ledger
        self.address = address
        self.name = name
        self.symbol = symbol
        self._on_event = on_event
        self._assets = {}
        self._metrics = {}
        self._profit_configs = {}
        self._operators = {}
        self._next_id = 0

    def _emit(self, event_type: str, **data: Any) -> None:
        if self._on_event is not None:
            self._on_event(LedgerEvent(event_type, data))

    def _get_asset(self, asset_id: int) -> Asset:
        if not is_asset_id(asset_id):
            raise UnknownAssetError(f"Invalid model id {asset_id!r}", asset_id=repr(asset_id))
        asset = self._assets.get(asset_id)
        if asset is None:
            raise UnknownAssetError(f"Model {asset_id} does not exist", asset_id=asset_id)
        return asset

    def _require_owner(self, asset: Asset, invoker_id: str, action: str) -> None:
        if asset.owner != invoker_id:
            raise UnauthorizedError(
                f"Only the owner of model {asset.asset_id} can {action}",
                asset_id=asset.asset_id, owner=asset.owner, invoker=invoker_id,
            )

    # ===== IDENTITY =====

    def mint(self, to: str, metadata_uri: str) -> int:
        """Mint a new model to `to`. Anyone may mint.

        Returns:
            The new asset id (ids start at 0 and are never reused).

        Raises:
            InvalidRecipientError: If `to` is the null identity.
        """
        if is_null_identity(to):
            raise InvalidRecipientError("Cannot mint to the null identity", to=to)
        asset_id = self._next_id
        self._next_id += 1
        self._assets[asset_id] = Asset(asset_id=asset_id, owner=to, metadata_uri=metadata_uri)
        logger.info(f"Minted model {asset_id} to {to}")
        self._emit("model_minted", asset_id=asset_id, owner=to, metadata_uri=metadata_uri)
        return asset_id

    def exists(self, asset_id: int) -> bool:
        return is_asset_id(asset_id) and asset_id in self._assets

    def owner_of(self, asset_id: int) -> str:
        return self._get_asset(asset_id).owner

    def token_uri(self, asset_id: int) -> str:
        return self._get_asset(asset_id).metadata_uri

    def total_supply(self) -> int:
        return len(self._assets)

    def balance_of(self, owner: str) -> int:
        """Number of models currently owned by owner."""
        return sum(1 for asset in self._assets.values() if asset.owner == owner)

    def assets_of(self, owner: str) -> list[int]:
        return [a.asset_id for a in self._assets.values() if a.owner == owner]

    # ===== APPROVALS & TRANSFER =====

    def approve(self, asset_id: int, operator: str, invoker_id: str) -> None:
        """Let operator transfer asset_id once. The null identity clears it."""
        asset = self._get_asset(asset_id)
        self._require_owner(asset, invoker_id, "approve operators")
        if operator is not None and not isinstance(operator, str):
            raise InvalidRecipientError(f"Invalid operator {operator!r}", operator=repr(operator))
        asset.approved = None if is_null_identity(operator) else operator
        logger.info(f"Model {asset_id}: approved {asset.approved or 'nobody'}")
        self._emit("approval", asset_id=asset_id, owner=asset.owner, approved=asset.approved)

    def get_approved(self, asset_id: int) -> str | None:
        return self._get_asset(asset_id).approved

    def set_approval_for_all(self, operator: str, approved: bool, invoker_id: str) -> None:
        """Grant or revoke operator control over all of invoker's models."""
        if is_null_identity(operator) or operator == invoker_id:
            raise InvalidRecipientError(
                f"Invalid operator {operator!r}", operator=operator,
            )
        operators = self._operators.setdefault(invoker_id, set())
        if approved:
            operators.add(operator)
        else:
            operators.discard(operator)
        self._emit("approval_for_all", owner=invoker_id, operator=operator, approved=approved)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        if not isinstance(owner, str) or not isinstance(operator, str):
            return False
        return operator in self._operators.get(owner, set())

    def is_approved_or_owner(self, asset_id: int, principal_id: str) -> bool:
        asset = self._get_asset(asset_id)
        return (
            principal_id == asset.owner
            or principal_id == asset.approved
            or self.is_approved_for_all(asset.owner, principal_id)
        )

    def transfer(self, asset_id: int, to: str, invoker_id: str) -> None:
        """Move asset_id to `to`. Clears the per-asset approval.

        Raises:
            UnknownAssetError: Asset was never minted
            InvalidRecipientError: `to` is the null identity
            UnauthorizedError: invoker is neither owner nor approved
        """
        asset = self._get_asset(asset_id)
        if is_null_identity(to):
            raise InvalidRecipientError("Cannot transfer to the null identity", asset_id=asset_id)
        if not self.is_approved_or_owner(asset_id, invoker_id):
            raise UnauthorizedError(
                f"{invoker_id} is not owner or approved for model {asset_id}",
                asset_id=asset_id, owner=asset.owner, invoker=invoker_id,
            )
        previous_owner = asset.owner
        asset.owner = to
        asset.approved = None
        logger.info(f"Model {asset_id} transferred {previous_owner} -> {to}")
        self._emit("model_transferred", asset_id=asset_id, from_owner=previous_owner, to_owner=to)

    # ===== METRICS =====

    def update_metrics(
        self,
        asset_id: int,
        reward_rate: int | float,
        completion_rate: int,
        contribution_score: int | float,
        invoker_id: str,
    ) -> ModelMetrics:
        """Replace the metrics of asset_id. Owner only.

        Raises:
            OutOfRangeError: completion_rate outside [0, 100], or a negative
                or non-numeric reward_rate / contribution_score
        """
        asset = self._get_asset(asset_id)
        self._require_owner(asset, invoker_id, "update metrics")

        if not isinstance(completion_rate, int) or isinstance(completion_rate, bool):
            raise OutOfRangeError(
                f"completion_rate must be an integer percentage, got {completion_rate!r}",
                completion_rate=repr(completion_rate),
            )
        if not 0 <= completion_rate <= MAX_COMPLETION_RATE:
            raise OutOfRangeError(
                f"completion_rate must be between 0 and {MAX_COMPLETION_RATE}, got {completion_rate}",
                completion_rate=completion_rate,
            )
        for field_name, value in (("reward_rate", reward_rate), ("contribution_score", contribution_score)):
            if not _is_number(value) or not math.isfinite(value) or not 0 <= value <= MAX_AMOUNT:
                raise OutOfRangeError(
                    f"{field_name} must be a non-negative number, got {value!r}",
                    field=field_name,
                )

        metrics = ModelMetrics(
            reward_rate=reward_rate,
            completion_rate=completion_rate,
            contribution_score=contribution_score,
        )
        self._metrics[asset_id] = metrics
        logger.info(f"Model {asset_id} metrics updated: {metrics}")
        self._emit("metrics_updated", asset_id=asset_id, **metrics.to_dict())
        return metrics

    def get_model_metrics(self, asset_id: int) -> ModelMetrics:
        """Metrics of asset_id; all zeros before the first update."""
        self._get_asset(asset_id)
        return self._metrics.get(asset_id, ModelMetrics())

    # ===== PROFIT SHARING =====

    def set_profit_config(
        self,
        asset_id: int,
        beneficiaries: Sequence[str],
        shares: Sequence[int],
        invoker_id: str,
    ) -> ProfitConfig:
        """Replace the profit split of asset_id. Owner only.

        Raises:
            InvalidConfigError: empty lists, length mismatch, a share that
                is not a positive integer, shares not summing to 100, or a
                null beneficiary
        """
        asset = self._get_asset(asset_id)
        self._require_owner(asset, invoker_id, "set the profit config")

        for name, value in (("beneficiaries", beneficiaries), ("shares", shares)):
            if not isinstance(value, (list, tuple)):
                raise InvalidConfigError(f"{name} must be a list, got {type(value).__name__}")
        beneficiaries = list(beneficiaries)
        shares = list(shares)
        if not beneficiaries:
            raise InvalidConfigError("Profit config needs at least one beneficiary")
        if len(beneficiaries) != len(shares):
            raise InvalidConfigError(
                f"Got {len(beneficiaries)} beneficiaries but {len(shares)} shares",
                beneficiaries=len(beneficiaries), shares=len(shares),
            )
        for beneficiary in beneficiaries:
            if not isinstance(beneficiary, str) or is_null_identity(beneficiary):
                raise InvalidConfigError(f"Invalid beneficiary {beneficiary!r}")
        for share in shares:
            if not isinstance(share, int) or isinstance(share, bool) or not 0 < share <= TOTAL_SHARES:
                raise InvalidConfigError(
                    f"Each share must be an integer between 1 and {TOTAL_SHARES}, got {share!r}",
                )
        if sum(shares) != TOTAL_SHARES:
            raise InvalidConfigError(
                f"Shares must sum to {TOTAL_SHARES}, got {sum(shares)}",
                total=sum(shares),
            )

        config = ProfitConfig(beneficiaries=tuple(beneficiaries), shares=tuple(shares))
        self._profit_configs[asset_id] = config
        logger.info(f"Model {asset_id} profit config set: {config.to_dict()}")
        self._emit("profit_config_set", asset_id=asset_id, **config.to_dict())
        return config

    def profit_configs(self, asset_id: int) -> ProfitConfig | None:
        """Profit config of asset_id, or None if never set."""
        self._get_asset(asset_id)
        return self._profit_configs.get(asset_id)

    def distribute_profits(self, asset_id: int, amount: int, invoker_id: str) -> list[Payout]:
        """Pay `amount` from invoker's funds to the asset's beneficiaries.

        All payouts apply together or not at all.

        Raises:
            ConfigMissingError: No profit config set for the asset
            OutOfRangeError: amount is negative, too large or not an int
            PayoutFailedError: invoker cannot fund amount, or a beneficiary
                rejected its payout
        """
        self._get_asset(asset_id)
        config = self._profit_configs.get(asset_id)
        if config is None:
            raise ConfigMissingError(f"Model {asset_id} has no profit config", asset_id=asset_id)
        if not isinstance(amount, int) or isinstance(amount, bool) or not 0 <= amount <= MAX_AMOUNT:
            raise OutOfRangeError(f"Invalid distribution amount {amount!r}", amount=repr(amount))

        payouts = split_amount(config, amount)
        try:
            self.ledger.execute_payments([
                Payment(invoker_id, p["beneficiary"], p["amount"]) for p in payouts
            ])
        except PaymentError as e:
            raise PayoutFailedError(
                f"Profit distribution for model {asset_id} failed: {e.message}",
                asset_id=asset_id, amount=amount, cause=e.code.value,
            ) from e

        logger.info(f"Distributed {amount} for model {asset_id} to {len(payouts)} beneficiaries")
        self._emit(
            "profits_distributed",
            asset_id=asset_id, payer=invoker_id, amount=amount, payouts=payouts,
        )
        return payouts

    # ===== SNAPSHOTS =====

    def snapshot(self) -> dict[str, Any]:
        return {
            "assets": copy.deepcopy(self._assets),
            "metrics": dict(self._metrics),
            "profit_configs": dict(self._profit_configs),
            "operators": {owner: set(ops) for owner, ops in self._operators.items()},
            "next_id": self._next_id,
        }

    def restore(self, snapshot: dict[str, Any]) -> None:
        self._assets = copy.deepcopy(snapshot["assets"])
        self._metrics = dict(snapshot["metrics"])
        self._profit_configs = dict(snapshot["profit_configs"])
        self._operators = {owner: set(ops) for owner, ops in snapshot["operators"].items()}
        self._next_id = snapshot["next_id"]
