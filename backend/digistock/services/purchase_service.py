"""
Purchase Service - restocking digital products

Purchases are the only way stock enters the ledger. Each one books a
'purchase' stock movement and folds its cost into the product's weighted
average purchase price:

    new_avg = (old_avg * old_stock + total_cost) / (old_stock + quantity)

rounded half-up to the cent.
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..ids import new_id
from ..models import StockPurchase
from ..validation import RecordPurchaseRequest, UpdatePurchaseRequest
from digistock.time_utils import now
from .catalog_service import get_product
from .concurrency import begin_write, commit, lock_for_update, run_with_retry, storage_step
from .stock_service import apply_movement


def weighted_average_cents(old_avg_cents: int, old_stock: int, total_cost_cents: int, quantity: int) -> int:
    """Weighted average unit cost after adding quantity units costing total_cost_cents."""
    denominator = old_stock + quantity
    if denominator <= 0:
        return old_avg_cents
    numerator = old_avg_cents * old_stock + total_cost_cents
    # half-up on non-negative integers
    return (2 * numerator + denominator) // (2 * denominator)


def get_purchase(purchase_id: str, *, lock: bool = False) -> StockPurchase:
    query = db.session.query(StockPurchase).filter_by(id=purchase_id)
    if lock:
        query = lock_for_update(query)
    purchase = query.first()
    if purchase is None:
        raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})
    return purchase


def record_purchase(request: RecordPurchaseRequest) -> StockPurchase:
    """
    Record a restock.

    Raises:
        NotFoundError: product does not exist
        ValidationError: product inactive
        StorageError: a write failed; nothing was persisted
    """
    def _op():
        begin_write()
        product = get_product(request.product_id, lock=True, require_active=True)

        old_stock = product.current_stock
        old_avg = product.average_purchase_price_cents
        total_cost = request.total_cost_cents
        purchase_date = request.purchase_date or now()

        with storage_step("persist purchase"):
            purchase = StockPurchase(
                id=new_id("pur"),
                product_id=product.id,
                supplier=request.supplier,
                quantity=request.quantity,
                unit_cost_cents=request.unit_cost_cents,
                total_cost_cents=total_cost,
                purchase_date=purchase_date,
                payment_method=request.payment_method,
                payment_status=request.payment_status,
                invoice_number=request.invoice_number,
                notes=request.notes,
            )
            db.session.add(purchase)
            db.session.flush()

        apply_movement(product, "purchase", request.quantity, purchase.id, occurred_at=purchase_date)
        product.average_purchase_price_cents = weighted_average_cents(
            old_avg, old_stock, total_cost, request.quantity
        )

        commit()
        current_app.logger.info(
            "Purchase %s recorded: %d x %s at %d cents (stock %d, avg %d)",
            purchase.id, purchase.quantity, product.id, purchase.unit_cost_cents,
            product.current_stock, product.average_purchase_price_cents,
        )
        return purchase

    return run_with_retry(_op)


def update_purchase(purchase_id: str, request: UpdatePurchaseRequest) -> StockPurchase:
    """Edit supplier, invoice, payment or note fields. Quantity and cost are fixed."""
    if not request.changes:
        raise ValidationError("No changes supplied")

    def _op():
        begin_write()
        purchase = get_purchase(purchase_id, lock=True)
        for key, value in request.changes.items():
            setattr(purchase, key, value)
        commit()
        return purchase

    return run_with_retry(_op)


def list_purchases(*, product_id: str | None = None, limit: int = 100) -> list[StockPurchase]:
    q = db.session.query(StockPurchase)
    if product_id:
        q = q.filter(StockPurchase.product_id == product_id)
    return q.order_by(StockPurchase.purchase_date.desc(), StockPurchase.id.desc()).limit(limit).all()
