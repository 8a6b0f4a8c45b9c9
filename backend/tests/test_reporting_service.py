from datetime import datetime

import pytest

from digistock.errors import NotFoundError, ValidationError
from digistock.services import credit_service, reporting_service, sales_service


@pytest.fixture
def two_platforms(make_platform, make_product, restock):
    iptv = make_platform(name="IPTV Hub", credit_cents=100000)
    accounts = make_platform(name="Accounts Co", credit_cents=100000)
    iptv_product = make_product(name="IPTV 3 months", platform_id=iptv.id, platform_buying_price_cents=1000)
    account_product = make_product(name="Streaming account", platform_id=accounts.id, platform_buying_price_cents=500)
    restock(iptv_product, 20)
    restock(account_product, 20)
    return iptv, accounts, iptv_product, account_product


def test_platform_profitability(db_session, two_platforms, sale_request):
    iptv, accounts, iptv_product, account_product = two_platforms
    sales_service.record_sale(sale_request(iptv_product, quantity=2, unit_price_cents=2500))
    sales_service.record_sale(
        sale_request(
            iptv_product,
            quantity=1,
            unit_price_cents=3000,
            payment_type="recurring",
            subscription_duration_months=3,
        )
    )
    voided = sales_service.record_sale(sale_request(account_product, quantity=4, unit_price_cents=1000))
    sales_service.void_sale(voided.id, reason="refund")

    report = reporting_service.platform_profitability()
    rows = {r["platform_name"]: r for r in report["platforms"]}

    hub = rows["IPTV Hub"]
    assert hub["sales_count"] == 2
    assert hub["quantity"] == 3
    assert hub["revenue_cents"] == 8000
    assert hub["platform_cost_cents"] == 3000
    assert hub["profit_cents"] == 5000
    assert hub["margin_percent"] == 62.5
    assert (hub["recurring_sales"], hub["one_time_sales"]) == (1, 1)
    assert hub["current_balance_cents"] == 100000 - 3000

    assert rows["Accounts Co"]["sales_count"] == 0
    assert rows["Accounts Co"]["current_balance_cents"] == 100000

    assert report["summary"]["revenue_cents"] == 8000
    assert report["summary"]["profit_cents"] == 5000


def test_platform_profitability_single_platform_and_range(db_session, two_platforms, sale_request, clock):
    iptv, _, iptv_product, _ = two_platforms
    sales_service.record_sale(sale_request(iptv_product, quantity=1))
    clock.current = datetime(2025, 3, 1)
    sales_service.record_sale(sale_request(iptv_product, quantity=2))

    report = reporting_service.platform_profitability(platform_id=iptv.id, start="2025-02-01")
    assert len(report["platforms"]) == 1
    assert report["platforms"][0]["quantity"] == 2
    assert report["start"] == "2025-02-01T00:00:00Z"


def test_platform_profitability_unknown_platform(db_session):
    with pytest.raises(NotFoundError):
        reporting_service.platform_profitability(platform_id="plat-missing")


def test_sales_summary(db_session, two_platforms, sale_request):
    _, _, iptv_product, account_product = two_platforms
    sales_service.record_sale(sale_request(iptv_product, quantity=1, unit_price_cents=2000))
    sales_service.record_sale(sale_request(account_product, quantity=1, unit_price_cents=1000, payment_status="pending"))
    sales_service.record_sale(
        sale_request(
            account_product,
            quantity=2,
            unit_price_cents=1000,
            payment_status="partial",
            paid_amount_cents=500,
        )
    )

    summary = reporting_service.sales_summary()

    assert summary["sales_count"] == 3
    assert summary["revenue_cents"] == 5000
    assert summary["collected_cents"] == 2500
    assert summary["outstanding_cents"] == 2500
    assert summary["by_payment_status"] == {"paid": 1, "pending": 1, "partial": 1}


def test_sales_summary_rejects_bad_dates(db_session):
    with pytest.raises(ValidationError):
        reporting_service.sales_summary(start="not-a-date")


def test_credit_utilization(db_session, make_platform, make_product, restock, sale_request):
    hub = make_platform(name="IPTV Hub", credit_cents=10000)
    idle = make_platform(name="Idle Co")
    credit_service.add_platform_credit(hub.id, 5000)
    product = make_product(platform_id=hub.id, platform_buying_price_cents=1500)
    restock(product, 10)
    sales_service.record_sale(sale_request(product, quantity=2))
    voided = sales_service.record_sale(sale_request(product, quantity=1))
    sales_service.void_sale(voided.id, reason="refund")
    credit_service.adjust_platform_credit(hub.id, -1000, reason="bank fee")

    report = reporting_service.credit_utilization()

    assert [r["platform_id"] for r in report["platforms"]] == [hub.id, idle.id]
    row = report["platforms"][0]
    assert row["credits_added_cents"] == 15000
    assert row["credits_used_cents"] == 3000 + 1500 + 1000
    assert row["credits_refunded_cents"] == 1500
    assert (row["add_transactions"], row["use_transactions"], row["sale_transactions"]) == (2, 3, 2)
    assert row["average_addition_cents"] == 7500
    # 5500 / 3 = 1833.33
    assert row["average_usage_cents"] == 1833
    assert row["utilization_percent"] == 36.67
    assert row["net_flow_cents"] == row["current_balance_cents"] == 11000

    empty = report["platforms"][1]
    assert (empty["credits_added_cents"], empty["utilization_percent"]) == (0, 0.0)
    assert empty["first_movement_at"] is None

    summary = report["summary"]
    assert summary["platform_count"] == 2
    assert summary["transactions"] == 5
    assert summary["highest_utilization_platform_id"] == hub.id
    assert summary["lowest_utilization_platform_id"] == hub.id


def test_credit_utilization_single_platform_and_range(db_session, make_platform, clock):
    hub = make_platform(name="IPTV Hub", credit_cents=10000)
    make_platform(name="Other", credit_cents=500)
    clock.current = datetime(2025, 3, 1)
    credit_service.add_platform_credit(hub.id, 2000)

    report = reporting_service.credit_utilization(platform_id=hub.id, start="2025-02-01")

    assert len(report["platforms"]) == 1
    row = report["platforms"][0]
    assert (row["credits_added_cents"], row["add_transactions"]) == (2000, 1)
    assert row["first_movement_at"] == "2025-03-01T00:00:00Z"


@pytest.fixture
def mixed_sales(two_platforms, make_product, restock, sale_request, clock):
    _, accounts, iptv_product, _ = two_platforms
    shahid = make_product(
        name="Shahid account",
        category="digital-account",
        platform_id=accounts.id,
        platform_buying_price_cents=500,
    )
    restock(shahid, 5)

    sales_service.record_sale(sale_request(iptv_product, quantity=2, unit_price_cents=2500))
    sales_service.record_sale(
        sale_request(
            iptv_product,
            quantity=1,
            unit_price_cents=3000,
            payment_type="recurring",
            subscription_duration_months=3,
        )
    )
    voided = sales_service.record_sale(sale_request(iptv_product, quantity=5, unit_price_cents=2500))
    sales_service.void_sale(voided.id, reason="duplicate")

    clock.current = datetime(2025, 2, 10)
    sales_service.record_sale(sale_request(shahid, quantity=1, unit_price_cents=1500, payment_status="pending"))
    return iptv_product, shahid


def test_sales_profit_report_total(db_session, mixed_sales):
    report = reporting_service.sales_profit_report()

    assert report["group_by"] == "total"
    assert len(report["groups"]) == 1
    group = report["groups"][0]
    assert group["group_id"] == "all"
    assert group["sales_count"] == 3
    assert group["revenue_cents"] == 9500
    assert group["cost_cents"] == 2000 + 1000 + 500
    assert group["profit_cents"] == 6000
    assert (group["recurring_sales"], group["one_time_sales"]) == (1, 2)
    assert (group["paid_sales"], group["pending_sales"]) == (2, 1)
    # (2500 + 3000 + 1500) / 3 = 2333.33
    assert group["average_unit_price_cents"] == 2333
    assert report["summary"]["profit_cents"] == 6000


def test_sales_profit_report_groupings(db_session, mixed_sales):
    iptv_product, shahid = mixed_sales

    by_category = reporting_service.sales_profit_report(group_by="category")["groups"]
    assert [(g["group_id"], g["revenue_cents"]) for g in by_category] == [
        ("iptv", 8000),
        ("digital-account", 1500),
    ]
    assert by_category[0]["margin_percent"] == 62.5

    by_platform = reporting_service.sales_profit_report(group_by="platform")["groups"]
    assert [g["group_name"] for g in by_platform] == ["IPTV Hub", "Accounts Co"]

    by_product = reporting_service.sales_profit_report(group_by="product")["groups"]
    assert [g["group_id"] for g in by_product] == [iptv_product.id, shahid.id]

    by_month = reporting_service.sales_profit_report(group_by="month")["groups"]
    assert [(g["group_id"], g["sales_count"]) for g in by_month] == [("2025-01", 2), ("2025-02", 1)]


def test_sales_profit_report_filters(db_session, mixed_sales):
    iptv_product, _ = mixed_sales

    recurring = reporting_service.sales_profit_report(payment_type="recurring")
    assert recurring["summary"]["revenue_cents"] == 3000

    accounts = reporting_service.sales_profit_report(category="digital-account")
    assert accounts["summary"]["sales_count"] == 1

    january = reporting_service.sales_profit_report(product_id=iptv_product.id, end="2025-01-31T23:59:59Z")
    assert january["summary"]["quantity"] == 3

    nothing = reporting_service.sales_profit_report(category="digitali")
    assert nothing["groups"] == []
    assert nothing["summary"]["sales_count"] == 0


@pytest.mark.parametrize("kwargs", [
    {"group_by": "week"},
    {"category": "hardware"},
    {"payment_type": "lifetime"},
    {"start": "yesterday"},
])
def test_sales_profit_report_rejects_bad_arguments(db_session, kwargs):
    with pytest.raises(ValidationError):
        reporting_service.sales_profit_report(**kwargs)
