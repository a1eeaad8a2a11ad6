"""Error kinds and standardized error responses for ledger operations.

Registry and marketplace operations raise LedgerError subclasses. Each
carries a machine-readable ErrorCode and an ErrorCategory so that the
World's invoke() surface can turn any failure into the same response
shape callers switch on.

Usage:
    from modelmarket.world.errors import UnauthorizedError

    try:
        world.transfer(asset_id, "bob", invoker_id="mallory")
    except UnauthorizedError as e:
        response = e.to_response()
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error classification.

    - VALIDATION: Caller provided bad input
    - PERMISSION: Caller not authorized
    - RESOURCE: Asset or listing missing / in the wrong state
    - EXECUTION: Payment or settlement failed while executing
    """

    VALIDATION = "validation"
    PERMISSION = "permission"
    RESOURCE = "resource"
    EXECUTION = "execution"


class ErrorCode(str, Enum):
    """Specific error codes for programmatic handling."""

    # Validation errors
    MISSING_ARGUMENT = "missing_argument"
    UNKNOWN_METHOD = "unknown_method"
    INVALID_ARGUMENT = "invalid_argument"
    INVALID_RECIPIENT = "invalid_recipient"
    OUT_OF_RANGE = "out_of_range"
    INVALID_CONFIG = "invalid_config"
    INVALID_PRICE = "invalid_price"
    INSUFFICIENT_PAYMENT = "insufficient_payment"

    # Permission errors
    NOT_AUTHORIZED = "not_authorized"

    # Resource errors
    UNKNOWN_ASSET = "unknown_asset"
    CONFIG_MISSING = "config_missing"
    ALREADY_LISTED = "already_listed"
    NOT_LISTED = "not_listed"

    # Execution errors
    INSUFFICIENT_FUNDS = "insufficient_funds"
    PAYMENT_REJECTED = "payment_rejected"
    PAYOUT_FAILED = "payout_failed"
    SETTLEMENT_FAILED = "settlement_failed"


@dataclass
class ErrorResponse:
    """Standardized error response.

    All error responses include:
    - success: Always False
    - error: Human-readable message
    - code: Machine-readable error code
    - category: Error category (validation, permission, etc.)
    - retriable: Whether the operation could succeed if retried unchanged
    - details: Optional additional context
    """

    success: bool = False
    error: str = ""
    code: str = ""
    category: str = ""
    retriable: bool = False
    details: dict[str, object] | None = None

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for serialization."""
        result: dict[str, object] = {
            "success": self.success,
            "error": self.error,
            "code": self.code,
            "category": self.category,
            "retriable": self.retriable,
        }
        if self.details:
            result["details"] = self.details
        return result


def validation_error(
    message: str,
    code: ErrorCode = ErrorCode.MISSING_ARGUMENT,
    **details: object,
) -> dict[str, object]:
    """Create a validation error response for a malformed invocation.

    Use when the request never reached a ledger operation (unknown
    method, wrong arguments).

    Args:
        message: Human-readable error message
        code: Specific error code (default: MISSING_ARGUMENT)
        **details: Additional context (e.g., required=["asset_id", "price"])

    Returns:
        Error response dict with success=False
    """
    return ErrorResponse(
        error=message,
        code=code.value,
        category=ErrorCategory.VALIDATION.value,
        retriable=False,
        details=dict(details) if details else None,
    ).to_dict()


class LedgerError(Exception):
    """Base class for every failure a ledger operation can surface."""

    code: ErrorCode = ErrorCode.INVALID_CONFIG
    category: ErrorCategory = ErrorCategory.VALIDATION
    retriable: bool = False

    def __init__(self, message: str, **details: object) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, object] = dict(details)

    def to_response(self) -> dict[str, object]:
        return ErrorResponse(
            error=self.message,
            code=self.code.value,
            category=self.category.value,
            retriable=self.retriable,
            details=self.details or None,
        ).to_dict()


# ----- registry -----

class UnknownAssetError(LedgerError):
    """The asset id was never minted."""

    code = ErrorCode.UNKNOWN_ASSET
    category = ErrorCategory.RESOURCE


class UnauthorizedError(LedgerError):
    code = ErrorCode.NOT_AUTHORIZED
    category = ErrorCategory.PERMISSION


class InvalidRecipientError(LedgerError):
    """Recipient is the null identity."""

    code = ErrorCode.INVALID_RECIPIENT
    category = ErrorCategory.VALIDATION


class OutOfRangeError(LedgerError):
    code = ErrorCode.OUT_OF_RANGE
    category = ErrorCategory.VALIDATION


class InvalidConfigError(LedgerError):
    code = ErrorCode.INVALID_CONFIG
    category = ErrorCategory.VALIDATION


class ConfigMissingError(LedgerError):
    """distribute_profits on an asset without a profit config."""

    code = ErrorCode.CONFIG_MISSING
    category = ErrorCategory.RESOURCE


class PayoutFailedError(LedgerError):
    code = ErrorCode.PAYOUT_FAILED
    category = ErrorCategory.EXECUTION


# ----- marketplace -----

class AlreadyListedError(LedgerError):
    code = ErrorCode.ALREADY_LISTED
    category = ErrorCategory.RESOURCE


class NotListedError(LedgerError):
    code = ErrorCode.NOT_LISTED
    category = ErrorCategory.RESOURCE


class InvalidPriceError(LedgerError):
    code = ErrorCode.INVALID_PRICE
    category = ErrorCategory.VALIDATION


class InsufficientPaymentError(LedgerError):
    code = ErrorCode.INSUFFICIENT_PAYMENT
    category = ErrorCategory.VALIDATION


class SettlementFailedError(LedgerError):
    code = ErrorCode.SETTLEMENT_FAILED
    category = ErrorCategory.EXECUTION


# ----- funds ledger -----

class PaymentError(LedgerError):
    """A funds movement could not be applied. Balances are left untouched."""

    code = ErrorCode.PAYMENT_REJECTED
    category = ErrorCategory.EXECUTION


class InsufficientFundsError(PaymentError):
    code = ErrorCode.INSUFFICIENT_FUNDS
    # Funding the payer and retrying can succeed
    retriable = True


class PaymentRejectedError(PaymentError):
    """A recipient's funds sink refused the payment."""

    code = ErrorCode.PAYMENT_REJECTED


__all__ = [
    "ErrorCategory",
    "ErrorCode",
    "ErrorResponse",
    "validation_error",
    "LedgerError",
    "UnknownAssetError",
    "UnauthorizedError",
    "InvalidRecipientError",
    "OutOfRangeError",
    "InvalidConfigError",
    "ConfigMissingError",
    "PayoutFailedError",
    "AlreadyListedError",
    "NotListedError",
    "InvalidPriceError",
    "InsufficientPaymentError",
    "SettlementFailedError",
    "PaymentError",
    "InsufficientFundsError",
    "PaymentRejectedError",
]
