# Overview: Stock movement engine; the only code path that changes a product's stock.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..errors import InsufficientStockError, ValidationError
from ..extensions import db
from ..ids import new_id
from ..models import DigitalProduct, StockMovement, STOCK_MOVEMENT_TYPES
from digistock.time_utils import now
from .catalog_service import get_product
from .concurrency import storage_step
"""
Stock Invariants (authoritative)

- DigitalProduct.current_stock is changed only by apply_movement().
- Every change appends exactly one StockMovement in the same DB transaction:
    new_stock = previous_stock + quantity
  and previous_stock/new_stock equal the product's stock immediately
  before/after the change.
- Stock may never go negative; a movement that would make it negative is
  rejected before the product or the trail is touched.
- Movement sign follows the type: 'sale' is negative, 'purchase' and
  'sale_void' are positive.
- The trail is append-only. Movements are ordered per product by sequence.
"""

MOVEMENT_SIGNS = {
    "purchase": 1,
    "sale": -1,
    "sale_void": 1,
}


def _next_sequence(product_id: str) -> int:
    current = db.session.query(
        func.coalesce(func.max(StockMovement.sequence), 0)
    ).filter(StockMovement.product_id == product_id).scalar()
    return int(current or 0) + 1


def apply_movement(
    product: DigitalProduct,
    movement_type: str,
    quantity_delta: int,
    reference: str | None,
    *,
    note: str | None = None,
    occurred_at: datetime | None = None,
) -> StockMovement:
    """
    Apply a signed quantity delta to a product and record the movement.

    The caller owns the transaction and must hold the product lock
    (get_product(..., lock=True) after begin_write()). The product is updated
    in place; the returned movement carries the before/after snapshot.
    Both are flushed together or neither is.

    Raises:
        ValidationError: unknown type, zero delta, or sign not matching type
        InsufficientStockError: current_stock + quantity_delta < 0
    """
    if movement_type not in STOCK_MOVEMENT_TYPES:
        raise ValidationError(f"Invalid stock movement type: {movement_type}")
    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int):
        raise ValidationError("quantity_delta must be an integer")
    if quantity_delta == 0:
        raise ValidationError("quantity_delta cannot be zero")
    if (quantity_delta > 0) != (MOVEMENT_SIGNS[movement_type] > 0):
        raise ValidationError(f"{movement_type} movement has the wrong sign: {quantity_delta}")

    previous_stock = product.current_stock
    new_stock = previous_stock + quantity_delta
    if new_stock < 0:
        raise InsufficientStockError(
            product.id,
            requested=-quantity_delta,
            available=previous_stock,
            product_name=product.name,
        )

    with storage_step("stock movement"):
        movement = StockMovement(
            id=new_id("smov"),
            product_id=product.id,
            sequence=_next_sequence(product.id),
            type=movement_type,
            quantity=quantity_delta,
            previous_stock=previous_stock,
            new_stock=new_stock,
            reference=reference,
            notes=note,
            occurred_at=occurred_at or now(),
        )
        product.current_stock = new_stock
        db.session.add(movement)
        db.session.flush()
    return movement


def list_movements(product_id: str, *, movement_type: str | None = None, limit: int = 200) -> list[StockMovement]:
    get_product(product_id)

    q = db.session.query(StockMovement).filter_by(product_id=product_id)
    if movement_type:
        q = q.filter_by(type=movement_type)
    return q.order_by(StockMovement.sequence.desc()).limit(limit).all()


def get_stock_summary(product_id: str) -> dict:
    product = get_product(product_id)
    last = (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.sequence.desc())
        .first()
    )
    return {
        "product_id": product.id,
        "product_name": product.name,
        "current_stock": product.current_stock,
        "min_stock_alert": product.min_stock_alert,
        "is_low_stock": product.is_low_stock,
        "average_purchase_price_cents": product.average_purchase_price_cents,
        "stock_value_cents": product.current_stock * product.average_purchase_price_cents,
        "last_movement": last.to_dict() if last else None,
    }


def low_stock_products() -> list[DigitalProduct]:
    return (
        db.session.query(DigitalProduct)
        .filter(
            DigitalProduct.is_active.is_(True),
            DigitalProduct.current_stock <= DigitalProduct.min_stock_alert,
        )
        .order_by(DigitalProduct.current_stock.asc(), DigitalProduct.name.asc())
        .all()
    )


def verify_stock_trail(product_id: str) -> list[str]:
    """
    Check a product against its movement trail.

    Returns a list of problems; empty when the stock equals the last
    movement's new_stock and every movement chains onto the previous one.
    """
    product = get_product(product_id)
    movements = (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.sequence.asc())
        .all()
    )

    problems = []
    expected_previous = 0
    for mv in movements:
        if mv.previous_stock != expected_previous:
            problems.append(
                f"movement {mv.id}: previous_stock {mv.previous_stock} != {expected_previous}"
            )
        if mv.new_stock != mv.previous_stock + mv.quantity:
            problems.append(f"movement {mv.id}: new_stock does not equal previous_stock + quantity")
        expected_previous = mv.new_stock

    if product.current_stock != expected_previous:
        problems.append(
            f"product {product.id}: current_stock {product.current_stock} != trail {expected_previous}"
        )
    return problems
