# Overview: Error taxonomy shared by the ledger services and the API layer.

"""
Ledger errors.

Every failure raised by a ledger operation is a LedgerError. Precondition
failures are raised before any row is touched; StorageError is raised after
the surrounding transaction has been rolled back.

http_status is only consumed by the routes when turning an error into a JSON
response.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger operation errors."""

    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": str(self)}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""


class NotFoundError(LedgerError):
    """Referenced product, platform, sale or purchase does not exist."""

    http_status = 404


class InsufficientStockError(LedgerError):
    """Requested quantity exceeds the product's current stock."""

    http_status = 409

    def __init__(self, product_id: str, requested: int, available: int, product_name: str | None = None):
        label = product_name or product_id
        super().__init__(
            f"Insufficient stock for {label}: available {available}, requested {requested}",
            details={
                "product_id": product_id,
                "requested": requested,
                "available": available,
                "shortfall": requested - available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available


class InsufficientCreditError(LedgerError):
    """Platform credit balance is too low for the requested deduction."""

    http_status = 409

    def __init__(self, platform_id: str, platform_name: str, balance_cents: int, required_cents: int):
        shortfall = required_cents - balance_cents
        super().__init__(
            f"Insufficient credit on platform {platform_name}: "
            f"balance {format_cents(balance_cents)}, required {format_cents(required_cents)}",
            details={
                "platform_id": platform_id,
                "platform_name": platform_name,
                "balance_cents": balance_cents,
                "required_cents": required_cents,
                "shortfall_cents": shortfall,
            },
        )
        self.platform_id = platform_id
        self.platform_name = platform_name
        self.balance_cents = balance_cents
        self.required_cents = required_cents
        self.shortfall_cents = shortfall


class InvalidPaymentAmountError(LedgerError):
    """Payment amount is not positive or exceeds the remaining balance."""

    def __init__(self, amount_cents: int, remaining_cents: int):
        if amount_cents <= 0:
            message = "Payment amount must be positive"
        else:
            message = (
                f"Payment amount {format_cents(amount_cents)} exceeds remaining "
                f"balance {format_cents(remaining_cents)}"
            )
        super().__init__(
            message,
            details={"amount_cents": amount_cents, "remaining_cents": remaining_cents},
        )
        self.amount_cents = amount_cents
        self.remaining_cents = remaining_cents


class StorageError(LedgerError):
    """
    Backing store failure.

    step names the sub-step of the operation that failed. retryable is True
    only for lock conflicts, where the whole transaction was rolled back and
    nothing was written.
    """

    http_status = 500

    def __init__(self, message: str, *, step: str | None = None, retryable: bool = False):
        super().__init__(message, details={"step": step} if step else None)
        self.step = step
        self.retryable = retryable


def format_cents(amount_cents: int) -> str:
    sign = "-" if amount_cents < 0 else ""
    whole, cents = divmod(abs(amount_cents), 100)
    return f"{sign}{whole}.{cents:02d}"
