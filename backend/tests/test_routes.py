# Overview: Pytest coverage for the JSON adapter (status codes and error mapping).

"""
HTTP Adapter Tests

Routes are thin: they parse JSON, call one command and map errors to
{"error": {"code", "message"}} with the error's HTTP status.
"""


class TestInventoryRoutes:
    def test_apply_movement(self, client, db_session, make_product):
        product = make_product(stock=10)

        resp = client.post(f"/api/products/{product.id}/movements", json={"type": "sale", "quantity": 3})

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["stock"] == 7
        assert body["movement"]["stock_before"] == 10

    def test_invalid_movement_type(self, client, db_session, make_product):
        product = make_product(stock=10)

        resp = client.post(f"/api/products/{product.id}/movements", json={"type": "gift", "quantity": 1})

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "invalid_movement_type"

    def test_payload_rules(self, client, db_session, make_product):
        product = make_product(stock=10)

        missing = client.post(f"/api/products/{product.id}/movements", json={"type": "sale"})
        decimal = client.post(f"/api/products/{product.id}/movements", json={"type": "sale", "quantity": 1.5})
        extra = client.post(
            f"/api/products/{product.id}/movements",
            json={"type": "sale", "quantity": 1, "stock_after": 0},
        )

        assert missing.status_code == decimal.status_code == extra.status_code == 400

    def test_unknown_product(self, client, db_session):
        resp = client.get("/api/products/9999/movements")
        # Listing an unknown product's movements is an empty list
        assert resp.status_code == 200
        resp = client.get("/api/products/9999/stock")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "not_found"

    def test_adjust_and_replay(self, client, db_session, make_product):
        product = make_product(stock=10)

        resp = client.post(f"/api/products/{product.id}/adjust", json={"stock": 4, "reason": "Count"})
        assert resp.status_code == 200
        assert resp.get_json()["stock"] == 4

        replay = client.get(f"/api/products/{product.id}/replay").get_json()["replay"]
        assert replay["consistent"] is True
        assert replay["replayed_stock"] == 4


class TestOrderRoutes:
    def test_create_cancel_and_cascade(self, client, db_session, make_product):
        product = make_product(stock=10, selling_price_cents=2000)

        resp = client.post("/api/orders/", json={
            "customer_name": "Jeanne",
            "items": [{"product_id": product.id, "quantity": 1}, {"product_id": product.id, "quantity": 2}],
        })
        assert resp.status_code == 201
        order = resp.get_json()["order"]
        assert order["total_cents"] == 6000
        first, second = (i["id"] for i in order["items"])

        assert client.post(f"/api/order-items/{first}/cancel").status_code == 200
        resp = client.post(f"/api/order-items/{second}/cancel")
        assert resp.get_json()["order"]["status"] == "cancelled"

        again = client.post(f"/api/order-items/{second}/cancel")
        assert again.status_code == 409
        assert again.get_json()["error"]["code"] == "item_not_active"

        history = client.get(f"/api/orders/{order['id']}/events").get_json()["events"]
        assert [ev["event_type"] for ev in history] == ["order.auto_cancelled", "order.created"]

    def test_return_requires_reason(self, client, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])

        resp = client.post(f"/api/order-items/{order.items[0].id}/return", json={})

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "missing_return_reason"

    def test_quantity_change(self, client, db_session, make_product, make_order):
        product = make_product(stock=10, selling_price_cents=1000)
        order = make_order([(product, 2)])

        resp = client.post(f"/api/order-items/{order.items[0].id}/quantity", json={"quantity": 5})

        assert resp.status_code == 200
        assert resp.get_json()["item"]["total_price_cents"] == 5000

    def test_status_routes(self, client, db_session, make_product, make_order):
        product = make_product(stock=10)
        order = make_order([(product, 1)])

        bad = client.post(f"/api/orders/{order.id}/status", json={"status": "cancelled"})
        assert bad.status_code == 400
        assert bad.get_json()["error"]["code"] == "invalid_order_status"

        shipped = client.post(f"/api/orders/{order.id}/ship", json={"tracking_number": "LP1"})
        assert shipped.get_json()["order"]["status"] == "shipped"

        no_reason = client.post(f"/api/orders/{order.id}/cancel", json={})
        assert no_reason.status_code == 400
        assert no_reason.get_json()["error"]["code"] == "missing_reason"

        refunded = client.post(f"/api/orders/{order.id}/refund", json={"reason": "Lost parcel"})
        assert refunded.get_json()["order"]["credit_note_number"] == "AV-000001"

    def test_unknown_order(self, client, db_session):
        assert client.get("/api/orders/31337").status_code == 404


class TestPayoutRoutes:
    def test_payout_lifecycle(self, client, db_session, make_supplier):
        supplier = make_supplier()

        resp = client.post("/api/payouts/", json={
            "supplier_id": supplier.id,
            "period_start": "2024-03-01",
            "period_end": "2024-03-31",
            "gross_sales_cents": 10000,
            "commission_cents": 3000,
            "payout_cents": 7000,
        })
        assert resp.status_code == 201
        payout_id = resp.get_json()["payout"]["id"]

        paid = client.post(f"/api/payouts/{payout_id}/mark-paid", json={"payment_reference": "VIR-1"})
        assert paid.status_code == 200
        assert paid.get_json()["payout"]["invoice_number"] == "REV-000001"

        twice = client.post(f"/api/payouts/{payout_id}/mark-paid")
        assert twice.status_code == 409
        assert twice.get_json()["error"]["code"] == "payout_already_paid"

        assert client.delete(f"/api/payouts/{payout_id}").status_code == 200
        assert client.get("/api/payouts/").get_json()["payouts"] == []

    def test_negative_amount_rejected(self, client, db_session, make_supplier):
        supplier = make_supplier()
        resp = client.post("/api/payouts/", json={
            "supplier_id": supplier.id,
            "period_start": "2024-03-01",
            "period_end": "2024-03-31",
            "payout_cents": -1,
        })
        assert resp.status_code == 400

    def test_settlement_route(self, client, db_session, make_supplier):
        supplier = make_supplier(type="consignment", commission_rate="0.30")

        resp = client.get(f"/api/settlements/suppliers/{supplier.id}?start=2024-03-01&end=2024-03-31")

        assert resp.status_code == 200
        assert resp.get_json()["settlement"]["gross_sales_cents"] == 0

        assert client.get(f"/api/settlements/suppliers/{supplier.id}").status_code == 400
        assert client.get("/api/settlements/suppliers/999?start=2024-03-01&end=2024-03-31").status_code == 404


class TestSystemRoutes:
    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["database"]["status"] == "healthy"
