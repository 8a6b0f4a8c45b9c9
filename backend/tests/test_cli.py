"""
Tests for the Flask CLI command groups.
"""

import pytest

from digistock.models import Platform
from digistock.services.catalog_service import get_product


@pytest.fixture
def runner(app, db_session):
    return app.test_cli_runner()


def test_platforms_create_with_opening_balance(runner, db_session):
    result = runner.invoke(args=[
        "platforms", "create",
        "--name", "Netflix Reseller",
        "--initial-credit-cents", "500000",
    ])

    assert result.exit_code == 0, result.output
    assert "PASS Created platform: Netflix Reseller" in result.output
    assert "5000.00" in result.output
    assert db_session.query(Platform).filter_by(name="Netflix Reseller").one().credit_balance_cents == 500000


def test_platforms_create_duplicate_name_fails(runner, make_platform):
    make_platform(name="Shahid VIP")

    result = runner.invoke(args=["platforms", "create", "--name", "Shahid VIP"])

    assert result.exit_code == 0
    assert result.output.startswith("FAIL")


def test_add_credit(runner, make_platform):
    platform = make_platform(credit_cents=1000)

    result = runner.invoke(args=[
        "platforms", "add-credit",
        "--platform-id", platform.id,
        "--amount-cents", "2550",
        "--reference", "TRX-1",
    ])

    assert result.exit_code == 0, result.output
    assert "10.00 -> 35.50" in result.output


def test_add_credit_rejects_negative_amount(runner, make_platform):
    platform = make_platform()

    result = runner.invoke(args=[
        "platforms", "add-credit",
        "--platform-id", platform.id,
        "--amount-cents", "-5",
    ])

    assert "FAIL" in result.output


def test_low_balance_listing(runner, make_platform):
    make_platform(name="Nearly Empty", credit_cents=500)
    make_platform(name="Healthy", credit_cents=900000)

    result = runner.invoke(args=["platforms", "low-balance"])

    assert "Nearly Empty" in result.output
    assert "Healthy" not in result.output


def test_products_create_and_low_stock(runner, db_session, make_platform):
    platform = make_platform()

    result = runner.invoke(args=[
        "products", "create",
        "--name", "Netflix 1 month",
        "--category", "digital-account",
        "--platform-id", platform.id,
        "--buying-price-cents", "1500",
        "--min-stock", "2",
    ])
    assert result.exit_code == 0, result.output
    product_id = result.output.strip().rsplit("ID: ", 1)[1].rstrip(")")
    assert get_product(product_id).current_stock == 0

    result = runner.invoke(args=["products", "low-stock"])
    assert "Netflix 1 month" in result.output


def test_products_create_rejects_unknown_category(runner):
    result = runner.invoke(args=["products", "create", "--name", "Widget", "--category", "hardware"])
    assert result.output.startswith("FAIL")


def test_verify_ledger(runner, db_session, make_product, restock):
    product = make_product()
    restock(product, 4)

    result = runner.invoke(args=["system", "verify-ledger"])
    assert result.exit_code == 0
    assert "PASS" in result.output

    product = get_product(product.id)
    product.current_stock = 40
    db_session.commit()

    result = runner.invoke(args=["system", "verify-ledger"])
    assert result.exit_code == 1
    assert "FAIL" in result.output
