"""
Reporting isolation tests: stock counts never reach sales or profit figures.
"""

from decimal import Decimal

from workshop.services import inventory_service, reporting_service, transaction_service
from workshop.services.catalog_service import ProductLine
from workshop.services.payment_service import PaymentRequest


class TestReportIsolation:
    def test_adjustment_does_not_alter_reports(self, admin_user, make_product):
        product = make_product(stock=10, price_sell=350000, price_buy=250000)
        transaction_service.create_transaction(
            user_id=admin_user.id,
            lines=[ProductLine(ref_id=product.id, qty=3)],
            initial_payment=PaymentRequest(amount=Decimal("1050000"), payment_method="CASH"),
        )

        before = (
            reporting_service.sales_summary(),
            reporting_service.profit_summary(),
            reporting_service.units_sold_by_product(),
        )

        inventory_service.stock_audit(product.id, 2, "Opname: 5 missing")

        after = (
            reporting_service.sales_summary(),
            reporting_service.profit_summary(),
            reporting_service.units_sold_by_product(),
        )
        assert after == before
        assert before[2] == [{"product_id": product.id, "sku": product.sku, "name": product.name, "units_sold": 3}]

    def test_cancelled_transactions_excluded(self, admin_user, make_product):
        product = make_product(stock=10, price_sell=100000, price_buy=60000)
        kept = transaction_service.create_transaction(
            user_id=admin_user.id, lines=[ProductLine(ref_id=product.id, qty=2)]
        )
        dropped = transaction_service.create_transaction(
            user_id=admin_user.id, lines=[ProductLine(ref_id=product.id, qty=5)]
        )
        transaction_service.cancel_transaction(dropped.id, user_id=admin_user.id)

        sales = reporting_service.sales_summary()
        profit = reporting_service.profit_summary()
        units = reporting_service.units_sold_by_product()

        assert kept.id != dropped.id
        assert sales["transaction_count"] == 1
        assert sales["net_sales"] == 200000.0
        assert profit["total_cost"] == 120000.0
        assert profit["gross_profit"] == 80000.0
        assert units[0]["units_sold"] == 2


class TestSalesReportEndpoint:
    def test_admin_only(self, client, admin_headers, cashier_headers):
        assert client.get("/api/reports/sales", headers=cashier_headers).status_code == 403

        response = client.get("/api/reports/sales?date_from=2026-01-01&date_to=2026-12-31", headers=admin_headers)
        assert response.status_code == 200
        assert set(response.get_json()) == {"sales", "profit", "units_sold"}

    def test_bad_date(self, client, admin_headers):
        response = client.get("/api/reports/sales?date_from=yesterday", headers=admin_headers)
        assert response.status_code == 400
