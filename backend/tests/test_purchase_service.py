import pytest

from digistock.errors import NotFoundError, ValidationError
from digistock.services import purchase_service
from digistock.services.catalog_service import get_product
from digistock.services.purchase_service import weighted_average_cents
from digistock.validation import RecordPurchaseRequest, UpdatePurchaseRequest


def test_first_purchase_sets_average(db_session, make_product, restock):
    product = make_product()

    purchase = restock(product, 10, unit_cost_cents=1200, supplier="Digital Wholesale")

    assert purchase.total_cost_cents == 12000
    product = get_product(product.id)
    assert product.current_stock == 10
    assert product.average_purchase_price_cents == 1200


def test_weighted_average_across_purchases(db_session, make_product, restock):
    product = make_product()
    restock(product, 10, unit_cost_cents=1000)
    restock(product, 5, unit_cost_cents=1600)

    # (1000 * 10 + 8000) / 15 = 1200
    assert get_product(product.id).average_purchase_price_cents == 1200


def test_weighted_average_rounds_half_up():
    # (100 * 1 + 101) / 2 = 100.5 -> 101
    assert weighted_average_cents(100, 1, 101, 1) == 101
    # (100 * 2 + 100) / 3 = 100
    assert weighted_average_cents(100, 2, 100, 1) == 100
    # (0 * 0 + 1000) / 3 = 333.33 -> 333
    assert weighted_average_cents(0, 0, 1000, 3) == 333


def test_weighted_average_zero_denominator_keeps_previous():
    assert weighted_average_cents(750, 0, 0, 0) == 750


def test_average_after_selling_down(db_session, make_product, restock, sale_request):
    from digistock.services import sales_service

    product = make_product()
    restock(product, 4, unit_cost_cents=1000)
    sales_service.record_sale(sale_request(product, quantity=4))
    restock(product, 2, unit_cost_cents=1500)

    # old stock is 0, so the new lot sets the average
    assert get_product(product.id).average_purchase_price_cents == 1500


def test_purchase_of_unknown_or_inactive_product(db_session, make_product):
    with pytest.raises(NotFoundError):
        purchase_service.record_purchase(
            RecordPurchaseRequest(product_id="prod-missing", quantity=1, unit_cost_cents=100)
        )

    product = make_product(is_active=False)
    with pytest.raises(ValidationError):
        purchase_service.record_purchase(
            RecordPurchaseRequest(product_id=product.id, quantity=1, unit_cost_cents=100)
        )


@pytest.mark.parametrize("kwargs", [
    {"quantity": 0},
    {"unit_cost_cents": -5},
    {"payment_status": "refunded"},
    {"unit_cost_cents": None},
])
def test_invalid_purchase_requests(kwargs):
    fields = {"product_id": "prod-1", "quantity": 1, "unit_cost_cents": 100, **kwargs}
    with pytest.raises(ValidationError):
        RecordPurchaseRequest(**fields)


def test_update_purchase_descriptive_fields(db_session, make_product, restock):
    product = make_product()
    purchase = restock(product, 3)

    updated = purchase_service.update_purchase(
        purchase.id,
        UpdatePurchaseRequest(changes={"supplier": "New Supplier", "payment_status": "pending"}),
    )

    assert updated.supplier == "New Supplier"
    assert updated.payment_status == "pending"
    assert updated.quantity == 3

    with pytest.raises(ValidationError):
        UpdatePurchaseRequest(changes={"quantity": 10})


def test_list_purchases(db_session, make_product, restock, clock):
    a = make_product(name="A")
    b = make_product(name="B")
    restock(a, 1)
    clock.advance(hours=1)
    latest = restock(a, 2)
    restock(b, 3)

    rows = purchase_service.list_purchases(product_id=a.id)
    assert [p.id for p in rows][0] == latest.id
    assert len(rows) == 2
