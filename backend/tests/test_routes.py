"""
API tests via the Flask test client.

Covers request validation at the boundary and the error -> status mapping.
"""


def _create_platform(client, **fields):
    payload = {"name": "IPTV Pro", "initial_credit_cents": 50000, **fields}
    resp = client.post("/api/platforms", json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def _create_product(client, **fields):
    payload = {"name": "IPTV 1 month", "category": "iptv", **fields}
    resp = client.post("/api/products", json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def _stocked(client, quantity=10):
    platform = _create_platform(client)
    product = _create_product(client, platform_id=platform["id"], platform_buying_price_cents=1500)
    resp = client.post("/api/purchases", json={
        "product_id": product["id"],
        "quantity": quantity,
        "unit_cost_cents": 1500,
    })
    assert resp.status_code == 201
    return platform, product


def test_create_product_starts_with_zero_stock(client):
    product = _create_product(client)
    assert product["current_stock"] == 0
    assert product["id"].startswith("prod-")


def test_product_payload_validation(client):
    resp = client.post("/api/products", json={"name": "X", "current_stock": 50})
    assert resp.status_code == 400

    resp = client.post("/api/products", json={"name": "X", "category": "hardware"})
    assert resp.status_code == 400

    resp = client.post("/api/products", json={"category": "iptv"})
    assert resp.status_code == 400
    assert "name" in resp.get_json()["error"]


def test_patch_product_cannot_touch_stock(client):
    product = _create_product(client)
    resp = client.patch(f"/api/products/{product['id']}", json={"current_stock": 99})
    assert resp.status_code == 400
    assert "ledger" in resp.get_json()["error"]

    resp = client.patch(f"/api/products/{product['id']}", json={"min_stock_alert": 3})
    assert resp.status_code == 200
    assert resp.get_json()["min_stock_alert"] == 3


def test_unknown_product_is_404(client):
    resp = client.get("/api/products/prod-missing")
    assert resp.status_code == 404


def test_record_sale_end_to_end(client):
    platform, product = _stocked(client)

    resp = client.post("/api/sales", json={
        "product_id": product["id"],
        "quantity": 3,
        "unit_price_cents": 2500,
    })
    assert resp.status_code == 201
    sale = resp.get_json()
    assert sale["total_price_cents"] == 7500
    assert sale["profit_cents"] == 3000
    assert sale["payment_status"] == "paid"
    assert len(sale["payment_history"]) == 1

    stock = client.get(f"/api/products/{product['id']}/stock").get_json()
    assert stock["current_stock"] == 7
    assert stock["last_movement"]["previous_stock"] == 10

    balance = client.get(f"/api/platforms/{platform['id']}/balance").get_json()
    assert balance["current_balance_cents"] == 50000 - 4500


def test_oversell_returns_409_with_details(client):
    _, product = _stocked(client, quantity=2)

    resp = client.post("/api/sales", json={
        "product_id": product["id"],
        "quantity": 3,
        "unit_price_cents": 2500,
    })
    assert resp.status_code == 409
    body = resp.get_json()
    assert body["details"]["available"] == 2
    assert body["details"]["shortfall"] == 1


def test_insufficient_credit_returns_409(client):
    platform = _create_platform(client, name="Tiny", initial_credit_cents=5000)
    product = _create_product(client, platform_id=platform["id"], platform_buying_price_cents=2000)
    client.post("/api/purchases", json={"product_id": product["id"], "quantity": 5, "unit_cost_cents": 2000})

    resp = client.post("/api/sales", json={
        "product_id": product["id"],
        "quantity": 3,
        "unit_price_cents": 2500,
    })
    assert resp.status_code == 409
    assert resp.get_json()["details"]["shortfall_cents"] == 1000


def test_sale_payload_rejects_decimals_and_unknown_fields(client):
    _, product = _stocked(client)

    resp = client.post("/api/sales", json={
        "product_id": product["id"],
        "quantity": 1.5,
        "unit_price_cents": 2500,
    })
    assert resp.status_code == 400

    resp = client.post("/api/sales", json={
        "product_id": product["id"],
        "quantity": 1,
        "unit_price_cents": 2500,
        "profit_cents": 99999,
    })
    assert resp.status_code == 400


def test_payments_flow(client):
    _, product = _stocked(client)
    sale = client.post("/api/sales", json={
        "product_id": product["id"],
        "quantity": 1,
        "unit_price_cents": 10000,
        "payment_status": "pending",
    }).get_json()

    resp = client.post(f"/api/sales/{sale['id']}/payments", json={"amount_cents": 4000})
    assert resp.status_code == 201
    assert resp.get_json()["payment_status"] == "partial"

    resp = client.post(f"/api/sales/{sale['id']}/payments", json={"amount_cents": 7000})
    assert resp.status_code == 400

    resp = client.post(f"/api/sales/{sale['id']}/mark-paid")
    assert resp.status_code == 200
    assert resp.get_json()["remaining_amount_cents"] == 0

    resp = client.post(f"/api/sales/{sale['id']}/mark-paid")
    assert resp.status_code == 400

    resp = client.post(f"/api/sales/{sale['id']}/reset-payments", json={})
    assert resp.status_code == 400
    resp = client.post(f"/api/sales/{sale['id']}/reset-payments", json={"confirm": True})
    assert resp.status_code == 200
    assert resp.get_json()["payment_status"] == "pending"


def test_sale_edit_and_void(client):
    platform, product = _stocked(client)
    sale = client.post("/api/sales", json={
        "product_id": product["id"],
        "quantity": 2,
        "unit_price_cents": 2500,
    }).get_json()

    resp = client.patch(f"/api/sales/{sale['id']}", json={"quantity": 1})
    assert resp.status_code == 400

    resp = client.patch(f"/api/sales/{sale['id']}", json={"customer_name": "Sara"})
    assert resp.status_code == 200
    assert resp.get_json()["customer_name"] == "Sara"

    resp = client.post(f"/api/sales/{sale['id']}/void", json={"reason": "wrong product"})
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "voided"

    resp = client.post(f"/api/sales/{sale['id']}/void", json={"reason": "again"})
    assert resp.status_code == 400

    balance = client.get(f"/api/platforms/{platform['id']}/balance").get_json()
    assert balance["current_balance_cents"] == 50000


def test_platform_credit_routes(client):
    platform = _create_platform(client, initial_credit_cents=1000)

    resp = client.post(f"/api/platforms/{platform['id']}/credits", json={"amount_cents": 2000})
    assert resp.status_code == 201
    assert resp.get_json()["balance"]["current_balance_cents"] == 3000

    resp = client.post(f"/api/platforms/{platform['id']}/adjustments", json={"amount_cents": -500})
    assert resp.status_code == 400

    resp = client.post(
        f"/api/platforms/{platform['id']}/adjustments",
        json={"amount_cents": -500, "reason": "bank fee"},
    )
    assert resp.status_code == 201

    movements = client.get(f"/api/platforms/{platform['id']}/movements").get_json()["items"]
    assert [m["amount_cents"] for m in movements] == [-500, 2000, 1000]

    resp = client.patch(f"/api/platforms/{platform['id']}", json={"credit_balance_cents": 10})
    assert resp.status_code == 400


def test_reports(client):
    _, product = _stocked(client)
    client.post("/api/sales", json={"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500})

    resp = client.get("/api/reports/sales-summary")
    assert resp.status_code == 200
    assert resp.get_json()["revenue_cents"] == 2500

    resp = client.get("/api/reports/platform-profitability")
    assert resp.status_code == 200
    assert resp.get_json()["summary"]["profit_cents"] == 1000

    resp = client.get("/api/reports/sales-summary?start=garbage")
    assert resp.status_code == 400


def test_credit_and_profit_reports(client):
    platform, product = _stocked(client)
    client.post("/api/sales", json={"product_id": product["id"], "quantity": 2, "unit_price_cents": 2500})

    resp = client.get(f"/api/reports/credit-utilization?platform_id={platform['id']}")
    assert resp.status_code == 200
    row = resp.get_json()["platforms"][0]
    assert (row["credits_added_cents"], row["credits_used_cents"]) == (50000, 3000)

    resp = client.get("/api/reports/sales-profit?group_by=category")
    assert resp.status_code == 200
    groups = resp.get_json()["groups"]
    assert [(g["group_id"], g["profit_cents"]) for g in groups] == [("iptv", 2000)]

    resp = client.get("/api/reports/sales-profit?group_by=week")
    assert resp.status_code == 400
