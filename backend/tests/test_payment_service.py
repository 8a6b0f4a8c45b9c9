import pytest

from digistock.errors import InvalidPaymentAmountError, ValidationError
from digistock.services import payment_service, sales_service
from digistock.services.payment_service import derive_payment_status


@pytest.fixture
def pending_sale(make_product, restock, sale_request):
    """Unpaid sale with a total of 100.00."""
    product = make_product()
    restock(product, 5)
    return sales_service.record_sale(
        sale_request(product, quantity=1, unit_price_cents=10000, payment_status="pending")
    )


@pytest.mark.parametrize("paid,total,expected", [
    (0, 10000, "pending"),
    (4000, 10000, "partial"),
    (10000, 10000, "paid"),
    (0, 0, "paid"),
])
def test_derive_payment_status(paid, total, expected):
    assert derive_payment_status(paid, total) == expected


def test_installments_reach_paid(db_session, pending_sale):
    sale = payment_service.record_payment(pending_sale.id, 4000)
    assert (sale.payment_status, sale.remaining_amount_cents) == ("partial", 6000)

    sale = payment_service.record_payment(pending_sale.id, 6000, method="baridimob", notes="balance")
    assert (sale.payment_status, sale.remaining_amount_cents) == ("paid", 0)
    assert sale.paid_amount_cents == 10000
    assert [p.amount_cents for p in sale.payments] == [4000, 6000]
    assert sale.payments[1].method == "baridimob"
    assert sale.payments[0].method == "cash"


@pytest.mark.parametrize("amount", [0, -100, 10001])
def test_payment_amount_bounds(db_session, pending_sale, amount):
    with pytest.raises(InvalidPaymentAmountError) as exc_info:
        payment_service.record_payment(pending_sale.id, amount)
    assert exc_info.value.remaining_cents == 10000


def test_overpayment_after_installment(db_session, pending_sale):
    payment_service.record_payment(pending_sale.id, 4000)
    with pytest.raises(InvalidPaymentAmountError):
        payment_service.record_payment(pending_sale.id, 6001)

    summary = payment_service.get_payment_summary(pending_sale.id)
    assert summary["paid_amount_cents"] == 4000
    assert summary["payment_count"] == 1


def test_mark_fully_paid_then_again_fails(db_session, pending_sale):
    payment_service.record_payment(pending_sale.id, 2500)

    sale = payment_service.mark_fully_paid(pending_sale.id)
    assert sale.payment_status == "paid"
    assert sale.payments[-1].amount_cents == 7500
    assert sale.payments[-1].notes == "full payment"

    with pytest.raises(InvalidPaymentAmountError):
        payment_service.mark_fully_paid(pending_sale.id)
    assert len(payment_service.get_payment_summary(pending_sale.id)["payments"]) == 2


def test_reset_to_pending_clears_history(db_session, pending_sale):
    payment_service.record_payment(pending_sale.id, 3000)
    payment_service.record_payment(pending_sale.id, 3000)

    sale = payment_service.reset_to_pending(pending_sale.id)

    assert sale.payment_status == "pending"
    assert (sale.paid_amount_cents, sale.remaining_amount_cents) == (0, 10000)
    assert sale.payments == []

    sale = payment_service.record_payment(pending_sale.id, 1000)
    assert sale.payments[0].sequence == 1


def test_paid_plus_remaining_equals_total(db_session, pending_sale):
    for amount in (1000, 2500, 3333):
        sale = payment_service.record_payment(pending_sale.id, amount)
        assert sale.paid_amount_cents + sale.remaining_amount_cents == sale.total_price_cents
        assert sale.paid_amount_cents == sum(p.amount_cents for p in sale.payments)

    assert payment_service.get_payment_summary(pending_sale.id)["is_consistent"] is True


def test_payment_on_voided_sale_rejected(db_session, pending_sale):
    sales_service.void_sale(pending_sale.id, reason="cancelled")
    with pytest.raises(ValidationError):
        payment_service.record_payment(pending_sale.id, 1000)


def test_mark_fully_paid_settles_balance_left_after_a_racing_installment(db_session, pending_sale, monkeypatch):
    real_begin_write = payment_service.begin_write
    raced = []

    def begin_write_after_installment():
        # another cashier's installment commits just before this transaction starts
        if not raced:
            raced.append(True)
            payment_service.record_payment(pending_sale.id, 4000)
        real_begin_write()

    monkeypatch.setattr(payment_service, "begin_write", begin_write_after_installment)

    sale = payment_service.mark_fully_paid(pending_sale.id)

    assert raced
    assert [p.amount_cents for p in sale.payments] == [4000, 6000]
    assert (sale.payment_status, sale.remaining_amount_cents) == ("paid", 0)


def test_mark_fully_paid_rejects_voided_sale(db_session, pending_sale):
    sales_service.void_sale(pending_sale.id, reason="cancelled")
    with pytest.raises(ValidationError):
        payment_service.mark_fully_paid(pending_sale.id)


def test_zero_total_sale_is_always_paid(db_session, make_product, restock, sale_request):
    product = make_product()
    restock(product, 2)

    sale = sales_service.record_sale(sale_request(product, unit_price_cents=0, payment_status="pending"))
    assert sale.payment_status == "paid"
    assert sale.payments == []

    sale = payment_service.reset_to_pending(sale.id)
    assert sale.payment_status == "paid"
    assert (sale.paid_amount_cents, sale.remaining_amount_cents) == (0, 0)
