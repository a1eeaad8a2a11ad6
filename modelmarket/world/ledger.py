"""Funds ledger - the value layer under the registry and marketplace.

Balances are held per principal as integer base units (10**decimals per
display unit, like wei). Principals can be any string ID: people, the
marketplace escrow, the fee operator.

Precision Strategy:
    - Balances are STORED and moved as int, so payouts and fees never
      accumulate rounding error
    - Human-facing amounts ("0.975") go through parse_units/format_units,
      which convert via Decimal using string conversion
    - Every amount is bounded by MAX_AMOUNT; anything larger is rejected
      instead of silently growing

Recipients can register a FundsSink to decide whether they accept a
payment. execute_payments() is all-or-nothing: if any leg is rejected or
unfunded, every leg already applied is undone before the error is raised.
"""

# All balance mutations go through here.
# Never allow negative balances - fail loud.
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from typing import Protocol, TypedDict, runtime_checkable

from .errors import InsufficientFundsError, PaymentRejectedError


logger = logging.getLogger(__name__)

# Upper bound for any amount, price or balance (uint256 range)
MAX_AMOUNT: int = 2**256 - 1

DEFAULT_DECIMALS: int = 18

# Enough digits for MAX_AMOUNT at any supported scale
_PRECISION: int = 120


def _to_decimal(value: int | float | str | Decimal) -> Decimal:
    """Convert to Decimal using string conversion for precision.

    Using str() avoids float representation issues like:
    >>> Decimal(0.1)  # Bad: Decimal('0.1000000000000000055511151231...')
    >>> Decimal(str(0.1))  # Good: Decimal('0.1')
    """
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def parse_units(value: int | float | str | Decimal, decimals: int = DEFAULT_DECIMALS) -> int:
    """Convert a display amount to integer base units.

    >>> parse_units("0.975")
    975000000000000000

    Raises:
        ValueError: If the value is not a number, is negative, or has more
            fractional digits than the unit supports.
    """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        try:
            amount = _to_decimal(value).scaleb(decimals)
        except InvalidOperation as e:
            raise ValueError(f"Not a number: {value!r}") from e
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Amount must be a non-negative finite number, got {value!r}")
    if amount != amount.to_integral_value():
        raise ValueError(f"{value!r} has more than {decimals} decimal places")
    return int(amount)


def format_units(amount: int, decimals: int = DEFAULT_DECIMALS) -> str:
    """Convert integer base units to a display string ("0.975")."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        text = format(Decimal(amount).scaleb(-decimals).normalize(), "f")
    return text if "." in text else f"{text}.0"


@runtime_checkable
class FundsSink(Protocol):
    """Capability a principal registers to accept or refuse incoming funds.

    receive() must only decide; it is called before the enclosing
    operation commits and is not called again on rollback.
    """

    def receive(self, sender: str, amount: int) -> bool:
        """Return False to reject the payment."""
        ...


@dataclass(frozen=True)
class Payment:
    """One leg of a funds movement."""

    from_id: str
    to_id: str
    amount: int


class BalanceInfo(TypedDict):
    """Balance information per principal."""
    balance: int
    display: str


class Ledger:
    """
    Tracks balances per principal and moves funds between them.

    - balances: {principal_id: base units}
    - sinks: {principal_id: FundsSink} consulted on every incoming payment

    Thread-safety: This class is NOT thread-safe. The World serializes all
    access through its own lock.
    """

    balances: dict[str, int]
    sinks: dict[str, FundsSink]
    decimals: int

    def __init__(self, decimals: int = DEFAULT_DECIMALS) -> None:
        self.balances = {}
        self.sinks = {}
        self.decimals = decimals

    def create_principal(self, principal_id: str, starting_balance: int = 0) -> None:
        """Create a principal with a starting balance (idempotent for 0)."""
        if starting_balance < 0 or starting_balance > MAX_AMOUNT:
            raise ValueError(f"Starting balance out of range: {starting_balance}")
        self.balances[principal_id] = starting_balance

    def principal_exists(self, principal_id: str) -> bool:
        return principal_id in self.balances

    def ensure_principal(self, principal_id: str) -> None:
        """Ensure a principal exists with at least 0 balance."""
        if principal_id not in self.balances:
            self.balances[principal_id] = 0

    # ===== BALANCES =====

    def get_balance(self, principal_id: str) -> int:
        """Get balance in base units (0 for unknown principals)."""
        return self.balances.get(principal_id, 0)

    def can_afford(self, principal_id: str, amount: int) -> bool:
        return self.get_balance(principal_id) >= amount

    def credit(self, principal_id: str, amount: int) -> None:
        """Add funds from outside the ledger (deposits, faucets).

        Raises:
            ValueError: If the amount is negative or the balance would
                exceed MAX_AMOUNT.
        """
        if amount < 0:
            raise ValueError(f"Credit amount must be >= 0, got {amount}")
        new_balance = self.get_balance(principal_id) + amount
        if new_balance > MAX_AMOUNT:
            raise ValueError(f"Balance of {principal_id} would exceed MAX_AMOUNT")
        self.balances[principal_id] = new_balance

    def transfer(self, from_id: str, to_id: str, amount: int) -> bool:
        """Transfer funds between principals. Returns False if it cannot apply.

        Soft-failing convenience over execute_payments(); a rejecting sink
        also yields False.
        """
        if amount <= 0:
            return False
        try:
            self.execute_payments([Payment(from_id, to_id, amount)])
        except (InsufficientFundsError, PaymentRejectedError):
            return False
        return True

    # ===== SINKS =====

    def register_sink(self, principal_id: str, sink: FundsSink) -> None:
        """Route incoming payments for principal_id through sink."""
        self.sinks[principal_id] = sink

    def unregister_sink(self, principal_id: str) -> None:
        self.sinks.pop(principal_id, None)

    # ===== ATOMIC PAYMENTS =====

    def execute_payments(self, payments: list[Payment]) -> None:
        """Apply payments in order, all-or-nothing.

        Zero-amount legs are skipped. Each leg checks the sender's balance
        at the time it runs, so a later leg may spend funds an earlier leg
        delivered (escrow pass-through).

        Raises:
            InsufficientFundsError: A sender cannot cover its leg.
            PaymentRejectedError: A recipient's sink refused its leg.
        """
        saved = dict(self.balances)
        try:
            for payment in payments:
                self._apply(payment)
        except (InsufficientFundsError, PaymentRejectedError) as e:
            self.balances = saved
            logger.warning(f"Payment batch rolled back: {e}")
            raise

    def _apply(self, payment: Payment) -> None:
        amount = payment.amount
        if amount == 0:
            return
        if amount < 0 or amount > MAX_AMOUNT:
            raise InsufficientFundsError(
                f"Invalid payment amount {amount}",
                from_id=payment.from_id, to_id=payment.to_id, amount=amount,
            )
        if not self.can_afford(payment.from_id, amount):
            raise InsufficientFundsError(
                f"{payment.from_id} cannot cover {amount}, has {self.get_balance(payment.from_id)}",
                from_id=payment.from_id, amount=amount,
                balance=self.get_balance(payment.from_id),
            )
        sink = self.sinks.get(payment.to_id)
        if sink is not None and not sink.receive(payment.from_id, amount):
            raise PaymentRejectedError(
                f"{payment.to_id} rejected payment of {amount} from {payment.from_id}",
                from_id=payment.from_id, to_id=payment.to_id, amount=amount,
            )
        if payment.to_id != payment.from_id and self.get_balance(payment.to_id) + amount > MAX_AMOUNT:
            raise PaymentRejectedError(
                f"Balance of {payment.to_id} would exceed MAX_AMOUNT",
                to_id=payment.to_id, amount=amount,
            )
        self.balances[payment.from_id] = self.get_balance(payment.from_id) - amount
        self.balances[payment.to_id] = self.get_balance(payment.to_id) + amount

    # ===== SNAPSHOTS =====

    def snapshot(self) -> dict[str, int]:
        """Copy of balances for transaction rollback (sinks are not state)."""
        return dict(self.balances)

    def restore(self, snapshot: dict[str, int]) -> None:
        self.balances = dict(snapshot)

    def get_all_balances(self) -> dict[str, BalanceInfo]:
        """Get snapshot of all balances."""
        return {
            pid: {"balance": amount, "display": format_units(amount, self.decimals)}
            for pid, amount in self.balances.items()
        }
