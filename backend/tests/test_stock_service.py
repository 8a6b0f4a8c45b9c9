import pytest

from digistock.errors import InsufficientStockError, ValidationError
from digistock.models import StockMovement
from digistock.services import stock_service
from digistock.services.catalog_service import get_product


def test_product_starts_empty_and_purchases_bring_stock(db_session, make_product, restock):
    product = make_product()
    assert product.current_stock == 0

    restock(product, 10)

    product = get_product(product.id)
    assert product.current_stock == 10
    movements = stock_service.list_movements(product.id)
    assert len(movements) == 1
    mv = movements[0]
    assert (mv.type, mv.quantity, mv.previous_stock, mv.new_stock) == ("purchase", 10, 0, 10)


def test_apply_movement_updates_product_and_trail_together(db_session, make_product, restock):
    product = make_product()
    restock(product, 10)
    product = get_product(product.id, lock=True)

    mv = stock_service.apply_movement(product, "sale", -3, "sale-x")
    db_session.commit()

    assert product.current_stock == 7
    assert (mv.previous_stock, mv.new_stock, mv.quantity) == (10, 7, -3)
    assert mv.sequence == 2


def test_negative_stock_is_rejected_without_writing(db_session, make_product, restock):
    product = make_product()
    restock(product, 2)
    product = get_product(product.id, lock=True)

    with pytest.raises(InsufficientStockError) as exc_info:
        stock_service.apply_movement(product, "sale", -3, "sale-x")
    db_session.rollback()

    assert exc_info.value.requested == 3
    assert exc_info.value.available == 2
    assert exc_info.value.shortfall == 1
    assert get_product(product.id).current_stock == 2
    assert db_session.query(StockMovement).count() == 1


@pytest.mark.parametrize("movement_type,delta", [
    ("sale", 3),
    ("purchase", -1),
    ("sale_void", -2),
    ("adjustment", 1),
    ("purchase", 0),
])
def test_movement_type_and_sign_must_agree(db_session, make_product, restock, movement_type, delta):
    product = make_product()
    restock(product, 5)
    product = get_product(product.id, lock=True)

    with pytest.raises(ValidationError):
        stock_service.apply_movement(product, movement_type, delta, None)


def test_stock_equals_last_movement_after_mixed_activity(db_session, make_product, restock, sale_request):
    from digistock.services import sales_service

    product = make_product()
    restock(product, 4)
    sales_service.record_sale(sale_request(product, quantity=3))
    restock(product, 6)
    sale = sales_service.record_sale(sale_request(product, quantity=5))
    sales_service.void_sale(sale.id, reason="customer cancelled")

    summary = stock_service.get_stock_summary(product.id)
    assert summary["current_stock"] == 7
    assert summary["last_movement"]["new_stock"] == 7
    assert summary["last_movement"]["type"] == "sale_void"
    assert stock_service.verify_stock_trail(product.id) == []


def test_verify_stock_trail_reports_drift(db_session, make_product, restock):
    product = make_product()
    restock(product, 3)
    product = get_product(product.id)
    product.current_stock = 99
    db_session.commit()

    problems = stock_service.verify_stock_trail(product.id)
    assert problems
    assert "current_stock 99" in problems[0]


def test_low_stock_products(db_session, make_product, restock):
    low = make_product(name="Low", min_stock_alert=5)
    ok = make_product(name="Plenty", min_stock_alert=2)
    restock(low, 3)
    restock(ok, 10)

    names = [p.name for p in stock_service.low_stock_products()]
    assert names == ["Low"]
