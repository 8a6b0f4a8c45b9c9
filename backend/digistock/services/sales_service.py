"""
Sales Service - sale orchestration across stock, credit and payments

WHY: Selling a digital product touches three ledgers at once: the product's
stock, the platform's prepaid credit and the sale's payment records. They
either all change together or none of them do.

DESIGN PRINCIPLES:
- Every precondition is checked before the first write
- Lock order is product, then platform, then sale
- A recorded sale is never deleted; void_sale books inverse movements
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..errors import InsufficientCreditError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..ids import new_id
from ..models import StockSale
from ..validation import RecordSaleRequest, UpdateSaleRequest
from digistock.time_utils import add_months, now
from .catalog_service import get_platform, get_product
from .concurrency import begin_write, commit, lock_for_update, run_with_retry, storage_step
from .credit_service import SALE_DEDUCTION, SALE_REFUND, apply_credit_change, validate_platform_credits
from .payment_service import append_payment, derive_payment_status
from .stock_service import apply_movement


SALE_ACTIVE = "active"
SALE_VOIDED = "voided"


def get_sale(sale_id: str, *, lock: bool = False) -> StockSale:
    query = db.session.query(StockSale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def record_sale(request: RecordSaleRequest) -> StockSale:
    """
    Record a sale of a digital product.

    Checks, in order and before anything is written: the product exists and
    is active, stock covers the quantity, the platform (request override or
    the product's own) exists and is active, and the platform's credit covers
    buying price x quantity. Then, in one transaction: the sale row, a 'sale'
    stock movement, a 'sale_deduction' credit movement and the initial
    payment record.

    Returns:
        The persisted StockSale

    Raises:
        NotFoundError: product or platform does not exist
        ValidationError: product or platform inactive
        InsufficientStockError: quantity > product.current_stock
        InsufficientCreditError: platform balance < buying price x quantity
        StorageError: a write failed; nothing was persisted
    """
    def _op():
        begin_write()
        product = get_product(request.product_id, lock=True, require_active=True)

        if request.quantity > product.current_stock:
            current_app.logger.warning(
                "Rejected sale of %d x %s: only %d in stock",
                request.quantity, product.id, product.current_stock,
            )
            raise InsufficientStockError(
                product.id,
                requested=request.quantity,
                available=product.current_stock,
                product_name=product.name,
            )

        platform = None
        platform_id = request.platform_id or product.platform_id
        if platform_id:
            platform = get_platform(platform_id, lock=True, require_active=True)

        if request.platform_buying_price_cents is not None:
            buying_price = request.platform_buying_price_cents
        else:
            buying_price = product.platform_buying_price_cents or 0

        credit_required = buying_price * request.quantity
        if platform is not None and buying_price > 0:
            try:
                validate_platform_credits(platform, credit_required)
            except InsufficientCreditError as exc:
                current_app.logger.warning(
                    "Rejected sale of %d x %s: platform %s short by %d cents",
                    request.quantity, product.id, platform.id, exc.shortfall_cents,
                )
                raise

        unit_cost = buying_price if buying_price > 0 else product.average_purchase_price_cents
        total = request.total_price_cents
        profit = total - unit_cost * request.quantity

        sale_date = request.sale_date or now()
        start_date = end_date = None
        if request.payment_type == "recurring":
            start_date = sale_date
            end_date = add_months(sale_date, request.subscription_duration_months)

        with storage_step("persist sale"):
            sale = StockSale(
                id=new_id("sale"),
                product_id=product.id,
                platform_id=platform.id if platform is not None else None,
                customer_name=request.customer_name,
                customer_phone=request.customer_phone,
                quantity=request.quantity,
                unit_price_cents=request.unit_price_cents,
                total_price_cents=total,
                platform_buying_price_cents=buying_price,
                profit_cents=profit,
                sale_date=sale_date,
                payment_method=request.payment_method,
                payment_status=derive_payment_status(0, total),
                paid_amount_cents=0,
                remaining_amount_cents=total,
                payment_type=request.payment_type,
                subscription_duration_months=request.subscription_duration_months,
                subscription_start_date=start_date,
                subscription_end_date=end_date,
                notes=request.notes,
                status=SALE_ACTIVE,
            )
            db.session.add(sale)
            db.session.flush()

        apply_movement(product, "sale", -request.quantity, sale.id, occurred_at=sale_date)

        if platform is not None and credit_required > 0:
            apply_credit_change(
                platform,
                -credit_required,
                SALE_DEDUCTION,
                sale.id,
                description=f"sale of {request.quantity} x {product.name}",
                occurred_at=sale_date,
            )

        if request.payment_status == "paid" and total > 0:
            append_payment(sale, total, paid_at=sale_date, method=request.payment_method)
        elif request.payment_status == "partial":
            append_payment(sale, request.paid_amount_cents, paid_at=sale_date, method=request.payment_method)

        commit()
        current_app.logger.info(
            "Sale %s recorded: %d x %s for %d cents (profit %d, %s)",
            sale.id, sale.quantity, product.id, total, profit, sale.payment_status,
        )
        return sale

    return run_with_retry(_op)


def update_sale(sale_id: str, request: UpdateSaleRequest) -> StockSale:
    """Edit a sale's descriptive fields. Ledger amounts stay as recorded."""
    def _op():
        begin_write()
        sale = get_sale(sale_id, lock=True)
        if sale.status == SALE_VOIDED:
            raise ValidationError("Cannot edit a voided sale", details={"sale_id": sale_id})
        if "sale_date" in request.changes and sale.payment_type == "recurring":
            raise ValidationError(
                "sale_date of a recurring sale cannot be edited; it anchors the subscription period"
            )
        for key, value in request.changes.items():
            setattr(sale, key, value)
        commit()
        return sale

    return run_with_retry(_op)


def void_sale(sale_id: str, *, reason: str) -> StockSale:
    """
    Cancel a recorded sale by booking inverse movements.

    The quantity returns to stock ('sale_void'), the platform deduction is
    refunded ('sale_refund') and the sale is marked voided. Payment records
    are kept as history.
    """
    if not reason or not reason.strip():
        raise ValidationError("reason is required")

    def _op():
        begin_write()
        sale = get_sale(sale_id)
        product = get_product(sale.product_id, lock=True)
        platform = get_platform(sale.platform_id, lock=True) if sale.platform_id else None
        sale = get_sale(sale_id, lock=True)

        if sale.status == SALE_VOIDED:
            raise ValidationError(f"Sale {sale_id} is already voided", details={"sale_id": sale_id})

        when = now()
        apply_movement(product, "sale_void", sale.quantity, sale.id, note=reason.strip(), occurred_at=when)

        refund = sale.platform_buying_price_cents * sale.quantity
        if platform is not None and refund > 0:
            apply_credit_change(
                platform,
                refund,
                SALE_REFUND,
                sale.id,
                description=f"void of sale {sale.id}",
                occurred_at=when,
            )

        sale.status = SALE_VOIDED
        sale.voided_at = when
        sale.void_reason = reason.strip()[:255]
        commit()
        current_app.logger.info("Sale %s voided: %s", sale.id, sale.void_reason)
        return sale

    return run_with_retry(_op)


def list_sales(
    *,
    product_id: str | None = None,
    platform_id: str | None = None,
    payment_status: str | None = None,
    include_voided: bool = True,
    limit: int = 100,
) -> list[StockSale]:
    q = db.session.query(StockSale)
    if product_id:
        q = q.filter(StockSale.product_id == product_id)
    if platform_id:
        q = q.filter(StockSale.platform_id == platform_id)
    if payment_status:
        q = q.filter(StockSale.payment_status == payment_status)
    if not include_voided:
        q = q.filter(StockSale.status == SALE_ACTIVE)
    return q.order_by(StockSale.sale_date.desc(), StockSale.id.desc()).limit(limit).all()


def expiring_subscriptions(within_days: int = 7) -> list[StockSale]:
    """Active recurring sales whose subscription ends within the next within_days days."""
    if isinstance(within_days, bool) or not isinstance(within_days, int) or within_days < 0:
        raise ValidationError("within_days must be a non-negative integer")
    start = now()
    end = start + timedelta(days=within_days)
    return (
        db.session.query(StockSale)
        .filter(
            StockSale.payment_type == "recurring",
            StockSale.status == SALE_ACTIVE,
            StockSale.subscription_end_date >= start,
            StockSale.subscription_end_date <= end,
        )
        .order_by(StockSale.subscription_end_date.asc())
        .all()
    )
