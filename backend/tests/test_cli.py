"""Flask CLI commands for bootstrap and counter operations."""

from workshop.extensions import db
from workshop.models import InventoryLog, Product, User


class TestCli:
    def test_seed_users_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "seed-users", "--password", "Bengkel2024"])
        second = runner.invoke(args=["system", "seed-users", "--password", "Bengkel2024"])

        assert first.exit_code == 0
        assert "SKIP admin" in second.output
        assert db.session.query(User).count() == 2

    def test_add_product_then_stock_in(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            "catalog", "add-product", "--sku", "ban-01", "--name", "Ban Luar",
            "--price-sell", "250000", "--price-buy", "180000", "--stock", "4",
        ])
        assert result.exit_code == 0, result.output
        product = db.session.query(Product).filter_by(sku="BAN-01").one()

        result = runner.invoke(args=[
            "inventory", "stock-in", "--product-id", str(product.id), "--qty", "4", "--buy-price", "200000",
        ])
        assert result.exit_code == 0, result.output
        assert "4 -> 8" in result.output
        assert db.session.query(InventoryLog).filter_by(product_id=product.id).count() == 2

    def test_stock_in_unknown_product_fails(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["inventory", "stock-in", "--product-id", "999", "--qty", "1"])
        assert result.exit_code != 0
        assert "not found" in result.output
