"""
HTTP tests for /api/transactions.

Error bodies carry {"error", "kind"} and map 400 for validation and
discount errors, 404 for missing references and 409 for stock and state
conflicts.
"""

import pytest

from workshop.extensions import db
from workshop.models import Product, Transaction
from workshop.services import transaction_service


@pytest.fixture
def oil(make_product):
    return make_product(sku="OLI-001", stock=10, price_sell=350000, price_buy=250000, name="Oli Mesin")


def _create(client, headers, items, **extra):
    return client.post("/api/transactions", json={"items": items, **extra}, headers=headers)


class TestCreateTransaction:
    def test_requires_auth(self, client, oil):
        response = client.post("/api/transactions", json={"items": [{"type": "PRODUCT", "ref_id": oil.id}]})
        assert response.status_code == 401

    def test_create_and_pay(self, client, cashier_headers, oil):
        response = _create(client, cashier_headers, [{"type": "PRODUCT", "ref_id": oil.id, "qty": 3}])

        assert response.status_code == 201
        transaction = response.get_json()["transaction"]
        assert transaction["status"] == "UNPAID"
        assert transaction["total_amount"] == 1050000.0
        assert transaction["items"][0]["cost_price"] == 250000.0

        paid = client.post(
            f"/api/transactions/{transaction['id']}/pay",
            json={"amount": 1050000, "payment_method": "CASH"},
            headers=cashier_headers,
        )
        assert paid.status_code == 201
        assert paid.get_json()["new_status"] == "PAID"

        again = client.post(
            f"/api/transactions/{transaction['id']}/pay",
            json={"amount": 1000, "payment_method": "CASH"},
            headers=cashier_headers,
        )
        assert again.status_code == 409
        assert again.get_json()["kind"] == "INVALID_STATE"

    def test_alternate_field_names(self, client, cashier_headers, oil):
        response = _create(
            client, cashier_headers,
            [{"item_type": "product", "item_id": oil.id, "qty": 1, "discount_amount": 50000}],
        )
        assert response.status_code == 201
        assert response.get_json()["transaction"]["total_amount"] == 300000.0

    @pytest.mark.parametrize("items", [
        [],
        [{"type": "BUNDLE", "ref_id": 1}],
        [{"type": "PRODUCT"}],
        [{"type": "PRODUCT", "ref_id": 1, "qty": 0}],
        [{"type": "EXTERNAL", "item_name": "Bubut", "base_price": 10000}],
    ])
    def test_validation_errors(self, client, cashier_headers, oil, items):
        response = _create(client, cashier_headers, items)
        assert response.status_code == 400
        assert response.get_json()["kind"] == "VALIDATION_ERROR"

    def test_discount_above_price(self, client, cashier_headers, oil):
        response = _create(client, cashier_headers, [{"type": "PRODUCT", "ref_id": oil.id, "discount": 400000}])
        assert response.status_code == 400
        assert response.get_json()["kind"] == "INVALID_DISCOUNT"

    def test_unknown_product(self, client, cashier_headers, db_session):
        response = _create(client, cashier_headers, [{"type": "PRODUCT", "ref_id": 999}])
        assert response.status_code == 404
        assert response.get_json()["kind"] == "NOT_FOUND"

    def test_insufficient_stock_leaves_nothing(self, client, cashier_headers, oil):
        response = _create(client, cashier_headers, [{"type": "PRODUCT", "ref_id": oil.id, "qty": 11}])

        assert response.status_code == 409
        assert response.get_json()["kind"] == "INSUFFICIENT_STOCK"
        assert db.session.query(Transaction).count() == 0
        db.session.expire_all()
        assert db.session.get(Product, oil.id).stock == 10


class TestReadTransaction:
    def test_detail_and_list(self, client, cashier_headers, oil):
        created = _create(client, cashier_headers, [{"type": "PRODUCT", "ref_id": oil.id}]).get_json()["transaction"]

        detail = client.get(f"/api/transactions/{created['id']}", headers=cashier_headers)
        assert detail.status_code == 200
        assert detail.get_json()["transaction"]["payment_summary"]["remaining"] == 350000.0

        listing = client.get("/api/transactions?status=UNPAID&limit=5", headers=cashier_headers)
        assert listing.status_code == 200
        assert listing.get_json()["pagination"]["total"] == 1

        assert client.get("/api/transactions/999", headers=cashier_headers).status_code == 404

    def test_payments_and_print(self, client, cashier_headers, oil):
        created = _create(
            client, cashier_headers,
            [{"type": "PRODUCT", "ref_id": oil.id}],
            initial_payment={"amount": 100000, "payment_method": "QRIS"},
        ).get_json()["transaction"]
        assert created["status"] == "PARTIAL"

        payments = client.get(f"/api/transactions/{created['id']}/payments", headers=cashier_headers).get_json()
        assert len(payments["payments"]) == 1
        assert payments["summary"]["remaining"] == 250000.0

        receipt = client.get(f"/api/transactions/{created['id']}/print", headers=cashier_headers)
        assert receipt.status_code == 200

        bad = client.get(f"/api/transactions/{created['id']}/print?type=invoice", headers=cashier_headers)
        assert bad.status_code == 400


class TestCancelTransaction:
    def test_cashier_cannot_cancel(self, client, cashier_headers, oil):
        created = _create(client, cashier_headers, [{"type": "PRODUCT", "ref_id": oil.id}]).get_json()["transaction"]

        response = client.put(f"/api/transactions/{created['id']}/cancel", headers=cashier_headers)
        assert response.status_code == 403
        assert response.get_json()["required_role"] == ["ADMIN"]

    def test_admin_cancel_restores_stock(self, client, admin_headers, oil):
        created = _create(client, admin_headers, [{"type": "PRODUCT", "ref_id": oil.id, "qty": 4}]).get_json()["transaction"]

        response = client.put(
            f"/api/transactions/{created['id']}/cancel",
            json={"reason": "Customer changed mind"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["transaction"]["status"] == "CANCELLED"
        db.session.expire_all()
        assert db.session.get(Product, oil.id).stock == 10

        again = client.put(f"/api/transactions/{created['id']}/cancel", headers=admin_headers)
        assert again.status_code == 409


class TestUnexpectedErrors:
    def test_internal_error_body_hides_exception(self, client, cashier_headers, monkeypatch):
        def _broken(transaction_id):
            raise RuntimeError("driver exploded")

        monkeypatch.setattr(transaction_service, "transaction_detail", _broken)

        response = client.get("/api/transactions/1", headers=cashier_headers)

        assert response.status_code == 500
        assert response.get_json() == {"error": "Internal server error", "kind": "INTERNAL_ERROR"}
