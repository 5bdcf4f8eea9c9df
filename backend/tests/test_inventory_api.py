"""HTTP tests for /api/inventory and /api/packages."""

from workshop.extensions import db
from workshop.models import InventoryLog, Product


class TestStockInEndpoint:
    def test_stock_in_recomputes_cost(self, client, cashier_headers, make_product):
        product = make_product(stock=10, price_buy=250000)

        response = client.post(
            "/api/inventory/in",
            json={"product_id": product.id, "qty": 10, "buy_price": 300000},
            headers=cashier_headers,
        )

        assert response.status_code == 201
        body = response.get_json()
        assert body["stock_after"] == 20
        assert body["price_buy_after"] == 275000.0
        assert body["log"]["reference_id"].startswith("STOCK-IN-")

    def test_stock_in_rejects_bad_qty(self, client, cashier_headers, make_product):
        product = make_product()
        for qty in (0, -3, 1.5, "abc"):
            response = client.post(
                "/api/inventory/in",
                json={"product_id": product.id, "qty": qty},
                headers=cashier_headers,
            )
            assert response.status_code == 400

    def test_unknown_product(self, client, cashier_headers, db_session):
        response = client.post("/api/inventory/in", json={"product_id": 999, "qty": 1}, headers=cashier_headers)
        assert response.status_code == 404


class TestStockAuditEndpoints:
    def test_single_audit(self, client, cashier_headers, make_product):
        product = make_product(stock=10)

        response = client.post(
            "/api/inventory/stock-audit",
            json={"product_id": product.id, "actual_stock": 7, "reason": "Opname", "notes": "3 rusak"},
            headers=cashier_headers,
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["difference"] == -3
        assert body["log"]["type"] == "ADJUSTMENT"
        assert body["log"]["notes"] == "[STOCK AUDIT] Opname - 3 rusak"

    def test_reason_required(self, client, cashier_headers, make_product):
        product = make_product(stock=10)
        response = client.post(
            "/api/inventory/stock-audit",
            json={"product_id": product.id, "actual_stock": 7},
            headers=cashier_headers,
        )
        assert response.status_code == 400

    def test_bulk_reports_per_item(self, client, cashier_headers, make_product):
        first = make_product(stock=10)
        second = make_product(stock=5)

        response = client.post(
            "/api/inventory/stock-audit/bulk",
            json={"items": [
                {"product_id": first.id, "actual_stock": 8, "reason": "Opname"},
                {"product_id": 999, "actual_stock": 1, "reason": "Opname"},
                {"product_id": second.id, "actual_stock": 5, "reason": "Opname"},
            ]},
            headers=cashier_headers,
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["success_count"] == 2
        assert body["error_count"] == 1
        assert body["errors"][0]["index"] == 1
        assert body["results"][1]["no_change"] is True
        db.session.expire_all()
        assert db.session.get(Product, first.id).stock == 8


class TestLogEndpoints:
    def test_list_logs_by_product(self, client, cashier_headers, make_product):
        product = make_product(stock=10)
        client.post("/api/inventory/in", json={"product_id": product.id, "qty": 2}, headers=cashier_headers)

        response = client.get(f"/api/inventory/logs?product_id={product.id}", headers=cashier_headers)

        assert response.status_code == 200
        logs = response.get_json()["logs"]
        assert [log["qty"] for log in logs] == [2, 10]

    def test_patch_notes_admin_only(self, client, admin_headers, cashier_headers, make_product):
        product = make_product(stock=10)
        log = db.session.query(InventoryLog).filter_by(product_id=product.id).first()

        forbidden = client.patch(f"/api/inventory/logs/{log.id}", json={"notes": "x"}, headers=cashier_headers)
        assert forbidden.status_code == 403

        response = client.patch(
            f"/api/inventory/logs/{log.id}", json={"notes": "Counted twice"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.get_json()["log"]["notes"] == "Counted twice"

    def test_patch_rejects_quantity_fields(self, client, admin_headers, make_product):
        product = make_product(stock=10)
        log = db.session.query(InventoryLog).filter_by(product_id=product.id).first()

        response = client.patch(
            f"/api/inventory/logs/{log.id}", json={"notes": "x", "qty": 99}, headers=admin_headers
        )

        assert response.status_code == 400
        db.session.expire_all()
        assert db.session.get(InventoryLog, log.id).qty == 10

    def test_low_stock(self, client, cashier_headers, make_product):
        make_product(sku="LOW-1", stock=1, min_stock_alert=5)
        make_product(sku="OK-1", stock=50, min_stock_alert=5)

        response = client.get("/api/inventory/low-stock", headers=cashier_headers)

        assert response.status_code == 200
        assert [p["sku"] for p in response.get_json()["products"]] == ["LOW-1"]


class TestPackageEndpoints:
    def test_availability_blocked_by_stock(self, client, cashier_headers, make_product, make_package):
        oil = make_product(stock=3)
        package = make_package([(oil, 2)])

        ok = client.get(f"/api/packages/{package.id}/availability", headers=cashier_headers).get_json()
        assert ok["is_available"] is True

        blocked = client.get(f"/api/packages/{package.id}/availability?qty=2", headers=cashier_headers).get_json()
        assert blocked["is_available"] is False
        assert blocked["unavailable_reason"] == "INSUFFICIENT_STOCK"
        assert blocked["blocking_product"]["qty_required"] == 4

    def test_missing_package(self, client, cashier_headers, db_session):
        assert client.get("/api/packages/999", headers=cashier_headers).status_code == 404
