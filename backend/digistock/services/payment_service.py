# Overview: Payment status reconciler; keeps a sale's paid/remaining/status in step with its payment records.

"""
Payment Status Reconciler

WHY: Customers settle sales in installments. A sale's payment fields are a
summary of its payment records and must always agree with them.

DESIGN PRINCIPLES:
- paid_amount_cents is the sum of the sale's PaymentRecords
- paid_amount_cents + remaining_amount_cents == total_price_cents
- payment_status is derived, never set directly:
    paid >= total  -> paid
    paid == 0      -> pending
    otherwise      -> partial
- A payment must be positive and no larger than the remaining balance
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..errors import InvalidPaymentAmountError, NotFoundError, ValidationError
from ..extensions import db
from ..ids import new_id
from ..models import PaymentRecord, StockSale, PAYMENT_METHODS
from digistock.time_utils import now
from .concurrency import begin_write, commit, lock_for_update, run_with_retry, storage_step


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PARTIAL = "partial"


def derive_payment_status(paid_amount_cents: int, total_price_cents: int) -> str:
    if paid_amount_cents >= total_price_cents:
        return PAYMENT_STATUS_PAID
    if paid_amount_cents == 0:
        return PAYMENT_STATUS_PENDING
    return PAYMENT_STATUS_PARTIAL


# =============================================================================
# HELPERS (caller owns the transaction)
# =============================================================================

def _get_sale_for_update(sale_id: str) -> StockSale:
    sale = lock_for_update(db.session.query(StockSale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def sync_payment_totals(sale: StockSale) -> None:
    """Recompute paid/remaining/status from the sale's payment records."""
    paid = sum(p.amount_cents for p in sale.payments)
    sale.paid_amount_cents = paid
    sale.remaining_amount_cents = max(sale.total_price_cents - paid, 0)
    sale.payment_status = derive_payment_status(paid, sale.total_price_cents)


def append_payment(
    sale: StockSale,
    amount_cents: int,
    *,
    paid_at: datetime | None = None,
    method: str | None = None,
    notes: str | None = None,
) -> PaymentRecord:
    """
    Append a payment record to a sale and resync its totals.

    Raises:
        InvalidPaymentAmountError: amount <= 0 or amount > remaining balance
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("amount_cents must be an integer")
    remaining = sale.total_price_cents - sale.paid_amount_cents
    if amount_cents <= 0 or amount_cents > remaining:
        raise InvalidPaymentAmountError(amount_cents, remaining)
    if method is not None and method not in PAYMENT_METHODS:
        raise ValidationError(f"method must be one of: {', '.join(PAYMENT_METHODS)}")

    with storage_step("payment record"):
        record = PaymentRecord(
            id=new_id("pay"),
            sequence=len(sale.payments) + 1,
            amount_cents=amount_cents,
            paid_at=paid_at or now(),
            method=method or sale.payment_method,
            notes=notes,
        )
        sale.payments.append(record)
        sync_payment_totals(sale)
        db.session.flush()
    return record


# =============================================================================
# PUBLIC OPERATIONS
# =============================================================================

def record_payment(
    sale_id: str,
    amount_cents: int,
    *,
    paid_at: datetime | None = None,
    method: str | None = None,
    notes: str | None = None,
) -> StockSale:
    """
    Record an installment against a sale.

    Returns:
        The sale with updated paid/remaining amounts and payment status

    Raises:
        NotFoundError: sale does not exist
        ValidationError: sale is voided
        InvalidPaymentAmountError: amount <= 0 or amount > remaining balance
    """
    def _op():
        begin_write()
        sale = _get_sale_for_update(sale_id)
        if sale.status == "voided":
            raise ValidationError("Cannot record a payment on a voided sale", details={"sale_id": sale_id})
        try:
            append_payment(sale, amount_cents, paid_at=paid_at, method=method, notes=notes)
        except InvalidPaymentAmountError:
            current_app.logger.warning(
                "Rejected payment of %s cents on sale %s (remaining %d)",
                amount_cents, sale_id, sale.remaining_amount_cents,
            )
            raise
        commit()
        current_app.logger.info(
            "Payment of %d cents recorded on sale %s (%s, remaining %d)",
            amount_cents, sale.id, sale.payment_status, sale.remaining_amount_cents,
        )
        return sale

    return run_with_retry(_op)


def mark_fully_paid(sale_id: str) -> StockSale:
    """
    Settle whatever remains on a sale in one payment.

    The remaining amount is read from the locked sale inside the same
    transaction as the payment. A sale with nothing remaining is rejected
    with InvalidPaymentAmountError rather than recording a zero payment.
    """
    def _op():
        begin_write()
        sale = _get_sale_for_update(sale_id)
        if sale.status == "voided":
            raise ValidationError("Cannot record a payment on a voided sale", details={"sale_id": sale_id})
        remaining = sale.total_price_cents - sale.paid_amount_cents
        try:
            append_payment(sale, remaining, paid_at=now(), method=sale.payment_method, notes="full payment")
        except InvalidPaymentAmountError:
            current_app.logger.warning("Rejected full payment on sale %s: nothing remaining", sale_id)
            raise
        commit()
        current_app.logger.info("Sale %s settled with a final payment of %d cents", sale.id, remaining)
        return sale

    return run_with_retry(_op)


def reset_to_pending(sale_id: str) -> StockSale:
    """Drop a sale's payment history; the whole total becomes outstanding again."""
    def _op():
        begin_write()
        sale = _get_sale_for_update(sale_id)
        if sale.status == "voided":
            raise ValidationError("Cannot reset payments on a voided sale", details={"sale_id": sale_id})
        with storage_step("payment reset"):
            sale.payments.clear()
            db.session.flush()
            sync_payment_totals(sale)
            db.session.flush()
        commit()
        current_app.logger.info("Payments reset on sale %s", sale.id)
        return sale

    return run_with_retry(_op)


# =============================================================================
# REPORTING
# =============================================================================

def get_payment_summary(sale_id: str) -> dict:
    sale = db.session.get(StockSale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})

    recorded = db.session.query(
        func.coalesce(func.sum(PaymentRecord.amount_cents), 0)
    ).filter(PaymentRecord.sale_id == sale_id).scalar()

    return {
        "sale_id": sale.id,
        "total_price_cents": sale.total_price_cents,
        "paid_amount_cents": sale.paid_amount_cents,
        "remaining_amount_cents": sale.remaining_amount_cents,
        "payment_status": sale.payment_status,
        "payment_count": len(sale.payments),
        "is_consistent": int(recorded or 0) == sale.paid_amount_cents,
        "payments": [p.to_dict() for p in sale.payments],
    }
