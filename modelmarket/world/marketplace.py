"""Model marketplace - escrowed fixed-price sales of registry models.

**Trading Flow:**
1. Seller approves the marketplace on the registry (per model or for all)
2. Seller lists the model with a price:
   - registry.transfer() moves custody to the marketplace address
   - an active Listing records seller and price
3. Buyer pays at least the price:
   - payment moves buyer -> escrow, then escrow -> fee operator (fee),
     escrow -> seller (price - fee), escrow -> buyer (any overpayment)
   - registry.transfer() moves custody to the buyer
   - the listing goes inactive
4. Or the seller cancels: custody goes back, the listing goes inactive

Per model the marketplace is a two-state machine, Unlisted -> Listed ->
Unlisted. While a listing is active the registry records the marketplace
as owner; both are set in the same operation.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from .errors import (
    AlreadyListedError,
    InsufficientPaymentError,
    InvalidConfigError,
    InvalidPriceError,
    InvalidRecipientError,
    NotListedError,
    PaymentError,
    SettlementFailedError,
    UnauthorizedError,
)
from .ledger import MAX_AMOUNT, Ledger, Payment
from .registry import ModelRegistry, is_asset_id, is_null_identity
from .types import FeeQuote, LedgerEvent, Listing, Settlement


logger = logging.getLogger(__name__)

# Fee is expressed in hundredths of a percent
BPS_DENOMINATOR: int = 10_000


def compute_fee(price: int, fee_bps: int) -> tuple[int, int]:
    """Split price into (fee, seller_proceeds); the fee rounds down."""
    fee = price * fee_bps // BPS_DENOMINATOR
    return fee, price - fee


def _is_amount(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= MAX_AMOUNT


class ModelMarketplace:
    """
    Escrow marketplace for registry models.

    Holds only Listing records. Ownership stays with the registry; the
    marketplace takes and releases custody through registry.transfer().
    fee_bps, address and operator are fixed at construction.
    """

    registry: ModelRegistry
    ledger: Ledger
    address: str
    operator: str
    _listings: dict[int, Listing]

    def __init__(
        self,
        registry: ModelRegistry,
        ledger: Ledger,
        fee_bps: int,
        address: str = "model_marketplace",
        operator: str = "marketplace_operator",
        on_event: Callable[[LedgerEvent], None] | None = None,
    ) -> None:
        """
        Args:
            registry: The registry whose models are traded
            ledger: Funds ledger used to settle purchases
            fee_bps: Marketplace fee in basis points, 0..10000
            address: Principal id custody is held under
            operator: Principal that receives the fee
            on_event: Receives a LedgerEvent for every state change

        Raises:
            InvalidConfigError: fee_bps outside 0..10000
        """
        if not isinstance(fee_bps, int) or isinstance(fee_bps, bool) or not 0 <= fee_bps <= BPS_DENOMINATOR:
            raise InvalidConfigError(
                f"fee_bps must be between 0 and {BPS_DENOMINATOR}, got {fee_bps!r}",
                fee_bps=repr(fee_bps),
            )
        self.registry = registry
        self.ledger = ledger
        self._fee_bps = fee_bps
        self.address = address
        self.operator = operator
        self._on_event = on_event
        self._listings = {}
        self.ledger.ensure_principal(address)

    @property
    def fee_bps(self) -> int:
        return self._fee_bps

    def _emit(self, event_type: str, **data: Any) -> None:
        if self._on_event is not None:
            self._on_event(LedgerEvent(event_type, data))

    def _active_listing(self, asset_id: int) -> Listing:
        listing = self._listings.get(asset_id) if is_asset_id(asset_id) else None
        if listing is None or not listing.is_active:
            raise NotListedError(f"Model {asset_id} is not listed for sale", asset_id=asset_id)
        return listing

    def list_model(self, asset_id: int, price: int, invoker_id: str) -> Listing:
        """List asset_id for sale at price and take custody of it.

        Raises:
            UnknownAssetError: Asset was never minted
            AlreadyListedError: An active listing exists
            UnauthorizedError: invoker is not the owner, or the marketplace
                has not been approved to transfer the model
            InvalidPriceError: price not a positive integer within bounds
        """
        owner = self.registry.owner_of(asset_id)

        existing = self._listings.get(asset_id)
        if existing is not None and existing.is_active:
            raise AlreadyListedError(
                f"Model {asset_id} is already listed at price {existing.price}",
                asset_id=asset_id, price=existing.price,
            )
        if owner != invoker_id:
            raise UnauthorizedError(
                f"Only the owner of model {asset_id} can list it",
                asset_id=asset_id, owner=owner, invoker=invoker_id,
            )
        if not self.registry.is_approved_or_owner(asset_id, self.address):
            raise UnauthorizedError(
                f"Marketplace is not approved to transfer model {asset_id}. "
                f"Approve {self.address} on the registry first.",
                asset_id=asset_id, marketplace=self.address,
            )
        if not _is_amount(price) or price == 0:
            raise InvalidPriceError(f"Price must be a positive integer, got {price!r}", price=repr(price))

        self.registry.transfer(asset_id, self.address, invoker_id=self.address)
        listing = Listing(asset_id=asset_id, seller=invoker_id, price=price, is_active=True)
        self._listings[asset_id] = listing

        logger.info(f"Model {asset_id} listed by {invoker_id} for {price}")
        self._emit("model_listed", asset_id=asset_id, seller=invoker_id, price=price)
        return listing

    def cancel_listing(self, asset_id: int, invoker_id: str) -> Listing:
        """Withdraw an active listing and return custody to the seller.

        Raises:
            NotListedError: No active listing
            UnauthorizedError: invoker is not the seller
        """
        listing = self._active_listing(asset_id)
        if listing.seller != invoker_id:
            raise UnauthorizedError(
                "Only the seller can cancel a listing",
                asset_id=asset_id, seller=listing.seller, invoker=invoker_id,
            )

        self.registry.transfer(asset_id, listing.seller, invoker_id=self.address)
        cancelled = Listing(asset_id=asset_id, seller=listing.seller, price=listing.price, is_active=False)
        self._listings[asset_id] = cancelled

        logger.info(f"Listing for model {asset_id} cancelled by {invoker_id}")
        self._emit("listing_cancelled", asset_id=asset_id, seller=listing.seller)
        return cancelled

    def quote(self, asset_id: int) -> FeeQuote:
        """Fee breakdown for buying asset_id at its listed price."""
        listing = self._active_listing(asset_id)
        fee, proceeds = compute_fee(listing.price, self._fee_bps)
        return {
            "asset_id": asset_id,
            "price": listing.price,
            "fee": fee,
            "seller_proceeds": proceeds,
            "fee_bps": self._fee_bps,
        }

    def buy_model(self, asset_id: int, payment: int, invoker_id: str) -> Settlement:
        """Buy a listed model, paying `payment` from invoker's funds.

        Fee and seller proceeds are paid and any overpayment refunded in
        one atomic payment batch before custody moves to the buyer.

        Raises:
            NotListedError: No active listing
            InsufficientPaymentError: payment below the listed price
            InvalidRecipientError: invoker is the null identity
            SettlementFailedError: buyer cannot fund payment, or a
                recipient rejected its leg; custody and listing unchanged
        """
        listing = self._active_listing(asset_id)
        if is_null_identity(invoker_id):
            raise InvalidRecipientError(
                f"Model {asset_id} cannot be sold to the null identity", buyer=repr(invoker_id),
            )
        if not _is_amount(payment):
            raise InsufficientPaymentError(f"Invalid payment {payment!r}", payment=repr(payment))
        if payment < listing.price:
            raise InsufficientPaymentError(
                f"Payment {payment} is below the price {listing.price}",
                asset_id=asset_id, payment=payment, price=listing.price,
            )

        fee, proceeds = compute_fee(listing.price, self._fee_bps)
        refund = payment - listing.price
        try:
            self.ledger.execute_payments([
                Payment(invoker_id, self.address, payment),
                Payment(self.address, self.operator, fee),
                Payment(self.address, listing.seller, proceeds),
                Payment(self.address, invoker_id, refund),
            ])
        except PaymentError as e:
            raise SettlementFailedError(
                f"Settlement for model {asset_id} failed: {e.message}",
                asset_id=asset_id, buyer=invoker_id, cause=e.code.value,
            ) from e

        self.registry.transfer(asset_id, invoker_id, invoker_id=self.address)
        self._listings[asset_id] = Listing(
            asset_id=asset_id, seller=listing.seller, price=listing.price, is_active=False,
        )

        settlement: Settlement = {
            "asset_id": asset_id,
            "seller": listing.seller,
            "buyer": invoker_id,
            "price": listing.price,
            "fee": fee,
            "seller_proceeds": proceeds,
            "refund": refund,
        }
        logger.info(f"Model {asset_id} sold {listing.seller} -> {invoker_id} for {listing.price} (fee {fee})")
        self._emit("model_sold", **settlement)
        return settlement

    def listings(self, asset_id: int) -> Listing | None:
        """Latest listing of asset_id (active or not), None if never listed.

        Raises:
            UnknownAssetError: Asset was never minted
        """
        self.registry.owner_of(asset_id)
        return self._listings.get(asset_id)

    def active_listings(self) -> list[Listing]:
        return [listing for listing in self._listings.values() if listing.is_active]

    def snapshot(self) -> dict[int, Listing]:
        # Listing is frozen, a shallow copy is enough
        return dict(self._listings)

    def restore(self, snapshot: dict[int, Listing]) -> None:
        self._listings = dict(snapshot)
