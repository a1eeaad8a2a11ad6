"""World - the single owner of ledger state and its callable surface.

The World constructs the funds ledger, the ownership registry and the
marketplace once, from validated configuration, and is the only way in:

- every operation runs under one lock, so operations are observed in a
  total order and reads only ever see committed state
- every mutating operation runs in a transaction: all three components
  are snapshotted first and restored if anything raises, so a failed
  operation leaves no partial effect (custody and payments included)
- events raised while an operation runs are buffered and published to
  the JSONL event log and subscribers only after it commits

invoke() exposes the same operations by name with list/dict arguments and
returns response dicts, for transports (CLI, RPC, HTTP) that cannot deal
in exceptions.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Sequence, TypedDict

from ..config import get_validated_config
from ..config_schema import AppConfig
from .errors import ErrorCode, LedgerError, OutOfRangeError, validation_error
from .ledger import MAX_AMOUNT, FundsSink, Ledger
from .logger import EventLogger
from .marketplace import ModelMarketplace
from .registry import ModelRegistry
from .types import (
    FeeQuote,
    LedgerEvent,
    Listing,
    ModelMetrics,
    Payout,
    ProfitConfig,
    Settlement,
)


logger = logging.getLogger(__name__)


EventCallback = Callable[[dict[str, Any]], None]


@dataclass
class WorldMethod:
    """An operation exposed through invoke()"""
    name: str
    handler: Callable[..., Any]
    arg_names: tuple[str, ...]
    description: str
    # Read-only methods ignore the invoker
    needs_invoker: bool = True


class StateSummary(TypedDict):
    """Snapshot of the ledger for dashboards and the runner."""
    total_supply: int
    active_listings: int
    fee_bps: int
    registry: str
    marketplace: str
    operator: str
    event_number: int
    balances: dict[str, int]


class World:
    """Ledger state owner: funds ledger + registry + marketplace.

    Constructed once and long-lived. No ledger state lives in module
    globals; two World instances are fully independent.
    """

    config: AppConfig
    ledger: Ledger
    registry: ModelRegistry
    marketplace: ModelMarketplace
    logger: EventLogger | None
    methods: dict[str, WorldMethod]
    event_number: int

    def __init__(
        self,
        config: AppConfig | None = None,
        run_id: str | None = None,
        event_logger: EventLogger | None = None,
    ) -> None:
        """
        Args:
            config: Validated configuration (uses the global config if omitted)
            run_id: Per-run log directory name when logging.logs_dir is set
            event_logger: Explicit event logger; overrides logging config
        """
        self.config = config or get_validated_config()
        self.event_number = 0
        self._lock = threading.RLock()
        self._pending: list[LedgerEvent] = []
        self._in_transaction = False
        self._subscribers: list[EventCallback] = []

        self.ledger = Ledger(decimals=self.config.ledger.decimals)
        for principal_id, balance in self.config.ledger.starting_balances.items():
            self.ledger.create_principal(principal_id, balance)

        registry_cfg = self.config.registry
        self.registry = ModelRegistry(
            self.ledger,
            address=registry_cfg.address,
            name=registry_cfg.name,
            symbol=registry_cfg.symbol,
            on_event=self._pending.append,
        )

        market_cfg = self.config.marketplace
        self.marketplace = ModelMarketplace(
            self.registry,
            self.ledger,
            fee_bps=market_cfg.fee_bps,
            address=market_cfg.address,
            operator=market_cfg.operator,
            on_event=self._pending.append,
        )

        log_cfg = self.config.logging
        if event_logger is not None:
            self.logger = event_logger
        elif not log_cfg.enabled:
            self.logger = None
        elif log_cfg.logs_dir and run_id:
            self.logger = EventLogger(
                logs_dir=log_cfg.logs_dir, run_id=run_id, default_recent=log_cfg.default_recent,
            )
        else:
            self.logger = EventLogger(
                output_file=log_cfg.output_file, default_recent=log_cfg.default_recent,
            )

        self.methods = {}
        self._register_methods()
        logger.info(
            f"World ready: registry={self.registry.address} "
            f"marketplace={self.marketplace.address} fee_bps={self.marketplace.fee_bps}"
        )

    # ===== TRANSACTIONS & EVENTS =====

    @contextmanager
    def transaction(self, operation: str) -> Iterator[None]:
        """Run a mutating operation atomically.

        Nested transactions join the outer one.
        """
        with self._lock:
            if self._in_transaction:
                yield
                return

            saved = (
                self.ledger.snapshot(),
                self.registry.snapshot(),
                self.marketplace.snapshot(),
            )
            self._in_transaction = True
            try:
                yield
            except Exception as e:
                self.ledger.restore(saved[0])
                self.registry.restore(saved[1])
                self.marketplace.restore(saved[2])
                self._pending.clear()
                logger.warning(f"{operation} rolled back: {e}")
                self._record({
                    "event_type": "transaction_failed",
                    "operation": operation,
                    "error": str(e),
                    "code": e.code.value if isinstance(e, LedgerError) else type(e).__name__,
                })
                raise
            finally:
                self._in_transaction = False

            events = list(self._pending)
            self._pending.clear()
            for event in events:
                self._publish(event)

    def _publish(self, event: LedgerEvent) -> None:
        self._record({"event_type": event.event_type, **event.data})

    def _record(self, payload: dict[str, Any]) -> None:
        self.event_number += 1
        payload = {"event_number": self.event_number, **payload}
        if self.logger is not None:
            event_type = payload.pop("event_type")
            self.logger.log(event_type, payload)
            payload["event_type"] = event_type
        for callback in list(self._subscribers):
            try:
                callback(dict(payload))
            except Exception:
                logger.exception(f"Event subscriber failed on {payload['event_type']}")

    def subscribe(self, callback: EventCallback) -> None:
        """Receive every committed event (and transaction_failed notices)."""
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def get_recent_events(self, n: int | None = None) -> list[dict[str, Any]]:
        if self.logger is None:
            return []
        with self._lock:
            return self.logger.read_recent(n)

    # ===== FUNDS =====

    def fund(self, principal_id: str, amount: int) -> int:
        """Credit principal_id from outside the ledger. Returns the new balance."""
        if not isinstance(amount, int) or isinstance(amount, bool) or not 0 < amount <= MAX_AMOUNT:
            raise OutOfRangeError(f"Funding amount must be a positive integer, got {amount!r}")
        with self.transaction("fund"):
            try:
                self.ledger.credit(principal_id, amount)
            except ValueError as e:
                raise OutOfRangeError(str(e), principal_id=principal_id) from e
            balance = self.ledger.get_balance(principal_id)
            self._pending.append(LedgerEvent(
                "funds_credited", {"principal_id": principal_id, "amount": amount, "balance_after": balance},
            ))
            return balance

    def get_balance(self, principal_id: str) -> int:
        with self._lock:
            return self.ledger.get_balance(principal_id)

    def register_sink(self, principal_id: str, sink: FundsSink) -> None:
        with self._lock:
            self.ledger.register_sink(principal_id, sink)

    def unregister_sink(self, principal_id: str) -> None:
        with self._lock:
            self.ledger.unregister_sink(principal_id)

    # ===== REGISTRY OPERATIONS =====

    def mint(self, to: str, metadata_uri: str) -> int:
        with self.transaction("mint"):
            return self.registry.mint(to, metadata_uri)

    def transfer(self, asset_id: int, to: str, invoker_id: str) -> None:
        with self.transaction("transfer"):
            self.registry.transfer(asset_id, to, invoker_id)

    def approve(self, asset_id: int, operator: str, invoker_id: str) -> None:
        with self.transaction("approve"):
            self.registry.approve(asset_id, operator, invoker_id)

    def set_approval_for_all(self, operator: str, approved: bool, invoker_id: str) -> None:
        with self.transaction("set_approval_for_all"):
            self.registry.set_approval_for_all(operator, approved, invoker_id)

    def update_metrics(
        self,
        asset_id: int,
        reward_rate: int | float,
        completion_rate: int,
        contribution_score: int | float,
        invoker_id: str,
    ) -> ModelMetrics:
        with self.transaction("update_metrics"):
            return self.registry.update_metrics(
                asset_id, reward_rate, completion_rate, contribution_score, invoker_id,
            )

    def set_profit_config(
        self,
        asset_id: int,
        beneficiaries: Sequence[str],
        shares: Sequence[int],
        invoker_id: str,
    ) -> ProfitConfig:
        with self.transaction("set_profit_config"):
            return self.registry.set_profit_config(asset_id, beneficiaries, shares, invoker_id)

    def distribute_profits(self, asset_id: int, amount: int, invoker_id: str) -> list[Payout]:
        with self.transaction("distribute_profits"):
            return self.registry.distribute_profits(asset_id, amount, invoker_id)

    def owner_of(self, asset_id: int) -> str:
        with self._lock:
            return self.registry.owner_of(asset_id)

    def token_uri(self, asset_id: int) -> str:
        with self._lock:
            return self.registry.token_uri(asset_id)

    def get_approved(self, asset_id: int) -> str | None:
        with self._lock:
            return self.registry.get_approved(asset_id)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        with self._lock:
            return self.registry.is_approved_for_all(owner, operator)

    def balance_of(self, owner: str) -> int:
        with self._lock:
            return self.registry.balance_of(owner)

    def assets_of(self, owner: str) -> list[int]:
        with self._lock:
            return self.registry.assets_of(owner)

    def total_supply(self) -> int:
        with self._lock:
            return self.registry.total_supply()

    def get_model_metrics(self, asset_id: int) -> ModelMetrics:
        with self._lock:
            return self.registry.get_model_metrics(asset_id)

    def profit_configs(self, asset_id: int) -> ProfitConfig | None:
        with self._lock:
            return self.registry.profit_configs(asset_id)

    # ===== MARKETPLACE OPERATIONS =====

    def list_model(self, asset_id: int, price: int, invoker_id: str) -> Listing:
        with self.transaction("list_model"):
            return self.marketplace.list_model(asset_id, price, invoker_id)

    def cancel_listing(self, asset_id: int, invoker_id: str) -> Listing:
        with self.transaction("cancel_listing"):
            return self.marketplace.cancel_listing(asset_id, invoker_id)

    def buy_model(self, asset_id: int, payment: int, invoker_id: str) -> Settlement:
        with self.transaction("buy_model"):
            return self.marketplace.buy_model(asset_id, payment, invoker_id)

    def listings(self, asset_id: int) -> Listing | None:
        with self._lock:
            return self.marketplace.listings(asset_id)

    def active_listings(self) -> list[Listing]:
        with self._lock:
            return self.marketplace.active_listings()

    def quote(self, asset_id: int) -> FeeQuote:
        with self._lock:
            return self.marketplace.quote(asset_id)

    # ===== INVOKE SURFACE =====

    def register_method(
        self,
        name: str,
        handler: Callable[..., Any],
        arg_names: Sequence[str],
        description: str = "",
        needs_invoker: bool = True,
    ) -> None:
        """Expose handler through invoke() under name"""
        self.methods[name] = WorldMethod(
            name=name,
            handler=handler,
            arg_names=tuple(arg_names),
            description=description,
            needs_invoker=needs_invoker,
        )

    def _register_methods(self) -> None:
        reg = self.register_method
        # Registry
        reg("mint", self.mint, ["to", "metadata_uri"], "Mint a new model to `to`", needs_invoker=False)
        reg("transfer", self.transfer, ["asset_id", "to"], "Transfer a model (owner or approved)")
        reg("approve", self.approve, ["asset_id", "operator"], "Approve an operator for one model (owner)")
        reg("set_approval_for_all", self.set_approval_for_all, ["operator", "approved"],
            "Approve an operator for all of the invoker's models")
        reg("update_metrics", self.update_metrics,
            ["asset_id", "reward_rate", "completion_rate", "contribution_score"],
            "Replace a model's performance metrics (owner)")
        reg("set_profit_config", self.set_profit_config, ["asset_id", "beneficiaries", "shares"],
            "Replace a model's profit split; shares are percentages summing to 100 (owner)")
        reg("distribute_profits", self.distribute_profits, ["asset_id", "amount"],
            "Pay amount from the invoker to the model's beneficiaries")
        reg("owner_of", self.owner_of, ["asset_id"], "Current owner of a model", needs_invoker=False)
        reg("token_uri", self.token_uri, ["asset_id"], "Metadata URI of a model", needs_invoker=False)
        reg("get_approved", self.get_approved, ["asset_id"], "Approved operator of a model",
            needs_invoker=False)
        reg("balance_of", self.balance_of, ["owner"], "Number of models owned", needs_invoker=False)
        reg("assets_of", self.assets_of, ["owner"], "Ids of the models owned", needs_invoker=False)
        reg("total_supply", self.total_supply, [], "Number of models minted", needs_invoker=False)
        reg("is_approved_for_all", self.is_approved_for_all, ["owner", "operator"],
            "Whether operator may move all of owner's models", needs_invoker=False)
        reg("get_model_metrics", self.get_model_metrics, ["asset_id"], "Performance metrics of a model",
            needs_invoker=False)
        reg("profit_configs", self.profit_configs, ["asset_id"], "Profit split of a model",
            needs_invoker=False)
        # Marketplace
        reg("list_model", self.list_model, ["asset_id", "price"],
            "List a model for sale; the marketplace must be approved first (owner)")
        reg("cancel_listing", self.cancel_listing, ["asset_id"], "Cancel a listing (seller)")
        reg("buy_model", self.buy_model, ["asset_id", "payment"],
            "Buy a listed model; overpayment is refunded")
        reg("listings", self.listings, ["asset_id"], "Latest listing of a model", needs_invoker=False)
        reg("active_listings", self.active_listings, [], "All active listings", needs_invoker=False)
        reg("quote", self.quote, ["asset_id"], "Fee breakdown for a listed model", needs_invoker=False)
        # Funds
        reg("get_balance", self.get_balance, ["principal_id"], "Funds balance of a principal",
            needs_invoker=False)

    def list_methods(self) -> list[dict[str, Any]]:
        return [
            {"name": m.name, "args": list(m.arg_names), "description": m.description}
            for m in self.methods.values()
        ]

    def invoke(
        self,
        method_name: str,
        args: list[Any] | dict[str, Any] | None,
        invoker_id: str,
    ) -> dict[str, Any]:
        """Call an operation by name.

        Args:
            method_name: One of list_methods()
            args: Positional list or dict keyed by the method's arg names
            invoker_id: Principal making the call

        Returns:
            {"success": True, "result": ...} or a standardized error dict
        """
        method = self.methods.get(method_name)
        if method is None:
            return validation_error(
                f"Unknown method '{method_name}'",
                code=ErrorCode.UNKNOWN_METHOD,
                available=sorted(self.methods),
            )

        args = args if args is not None else []
        if isinstance(args, dict):
            missing = [name for name in method.arg_names if name not in args]
            extra = [name for name in args if name not in method.arg_names]
            if missing or extra:
                return validation_error(
                    f"{method_name} requires {list(method.arg_names)}",
                    required=list(method.arg_names), missing=missing, unexpected=extra,
                )
            positional = [args[name] for name in method.arg_names]
        else:
            if len(args) != len(method.arg_names):
                return validation_error(
                    f"{method_name} requires {list(method.arg_names)}, got {len(args)} argument(s)",
                    required=list(method.arg_names),
                )
            positional = list(args)

        if method.needs_invoker:
            positional.append(invoker_id)

        try:
            result = method.handler(*positional)
        except LedgerError as e:
            logger.debug(f"invoke {method_name} by {invoker_id} failed: {e.code.value}")
            return e.to_response()
        except (TypeError, ValueError) as e:
            logger.debug(f"invoke {method_name} by {invoker_id} rejected arguments: {e}")
            return validation_error(
                f"Invalid arguments for {method_name}: {e}",
                code=ErrorCode.INVALID_ARGUMENT,
                required=list(method.arg_names),
            )

        return {"success": True, "method": method_name, "result": _to_jsonable(result)}

    # ===== SUMMARY =====

    def get_state_summary(self) -> StateSummary:
        with self._lock:
            return {
                "total_supply": self.registry.total_supply(),
                "active_listings": len(self.marketplace.active_listings()),
                "fee_bps": self.marketplace.fee_bps,
                "registry": self.registry.address,
                "marketplace": self.marketplace.address,
                "operator": self.marketplace.operator,
                "event_number": self.event_number,
                "balances": dict(self.ledger.balances),
            }


def _to_jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, list):
        return [_to_jsonable(v) for v in value]
    return value
