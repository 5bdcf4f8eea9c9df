"""
Catalog resolver tests: per-type pricing, cost snapshots and request parsing.
"""

from decimal import Decimal

import pytest

from workshop.errors import InsufficientStock, InvalidDiscount, NotFound, ValidationError
from workshop.extensions import db
from workshop.services import catalog_service
from workshop.services.catalog_service import (
    ExternalLine,
    PackageLine,
    ProductLine,
    ServiceLine,
    line_from_payload,
    resolve_line,
    resolve_lines,
)


class TestResolveProduct:
    def test_snapshots_sell_and_average_cost(self, make_product):
        product = make_product(stock=10, price_sell=350000, price_buy=250000)

        line = resolve_line(ProductLine(ref_id=product.id, qty=3, discount=Decimal("10000")))

        assert line.item_type == "PRODUCT"
        assert line.base_price == Decimal("350000.00")
        assert line.sell_price == Decimal("340000.00")
        assert line.cost_price == Decimal("250000.00")
        assert line.line_total == Decimal("1020000.00")
        assert [r.qty_required for r in line.stock_requirements] == [3]

    def test_short_stock(self, make_product):
        product = make_product(stock=2)
        with pytest.raises(InsufficientStock):
            resolve_line(ProductLine(ref_id=product.id, qty=3))

    def test_deleted_product(self, make_product):
        product = make_product()
        product.deleted_at = product.created_at
        db.session.commit()
        with pytest.raises(NotFound):
            resolve_line(ProductLine(ref_id=product.id))

    def test_discount_above_price(self, make_product):
        product = make_product(price_sell=1000)
        with pytest.raises(InvalidDiscount):
            resolve_line(ProductLine(ref_id=product.id, discount=Decimal("1000.01")))

    def test_discount_equal_to_price_is_free_line(self, make_product):
        product = make_product(price_sell=1000)
        line = resolve_line(ProductLine(ref_id=product.id, discount=Decimal("1000")))
        assert line.sell_price == Decimal("0.00")


class TestResolveOtherTypes:
    def test_service_has_no_cost_or_stock(self, make_service):
        service = make_service(price=75000)

        line = resolve_line(ServiceLine(ref_id=service.id, qty=2))

        assert line.sell_price == Decimal("75000.00")
        assert line.cost_price == Decimal("0.00")
        assert line.stock_requirements == []

    def test_service_custom_price(self, make_service):
        service = make_service(price=75000)
        line = resolve_line(ServiceLine(ref_id=service.id, custom_price=Decimal("90000")))
        assert line.base_price == Decimal("90000.00")

    def test_package_billed_at_own_price(self, make_product, make_service, make_package):
        oil = make_product(stock=10, price_buy=50000, price_sell=70000)
        package = make_package([(oil, 4), (make_service(), 1)], price=300000)

        line = resolve_line(PackageLine(ref_id=package.id, qty=2))

        assert line.item_type == "PACKAGE"
        assert line.base_price == Decimal("300000.00")
        assert line.cost_price == Decimal("200000.00")
        assert [(r.product_id, r.qty_required) for r in line.stock_requirements] == [(oil.id, 8)]

    def test_package_with_deleted_component_rejected(self, make_product, make_package):
        oil = make_product(stock=10)
        package = make_package([(oil, 1)])
        oil.deleted_at = oil.created_at
        db.session.commit()

        with pytest.raises(NotFound) as exc_info:
            resolve_line(PackageLine(ref_id=package.id))
        assert exc_info.value.details["reason"] == "DELETED_COMPONENT"

    def test_package_short_component(self, make_product, make_package):
        oil = make_product(stock=3)
        package = make_package([(oil, 4)])
        with pytest.raises(InsufficientStock):
            resolve_line(PackageLine(ref_id=package.id))

    def test_external_line(self, db_session):
        line = resolve_line(ExternalLine(
            item_name="Bubut velg", base_price=Decimal("150000"), vendor_name="Bengkel Jaya",
            cost_price=Decimal("100000"),
        ))

        assert line.item_id is None
        assert line.vendor_name == "Bengkel Jaya"
        assert line.cost_price == Decimal("100000.00")
        assert line.stock_requirements == []

    def test_empty_request(self, db_session):
        with pytest.raises(ValidationError):
            resolve_lines([])


class TestLineFromPayload:
    def test_accepts_alternate_spellings(self):
        line = line_from_payload({"item_type": "product", "item_id": 5, "qty": 2, "discount_amount": 100})
        assert line == ProductLine(ref_id=5, qty=2, discount=Decimal("100.00"))

    def test_qty_defaults_to_one(self):
        assert line_from_payload({"type": "SERVICE", "ref_id": 1}).qty == 1

    @pytest.mark.parametrize("raw", [
        {"type": "GIFT", "ref_id": 1},
        {"type": "PRODUCT"},
        {"type": "PRODUCT", "ref_id": 1, "qty": 0},
        {"type": "PRODUCT", "ref_id": 1, "qty": 1.5},
        {"type": "PRODUCT", "ref_id": 1, "discount": -5},
        {"type": "EXTERNAL", "item_name": "Las", "base_price": 1000},
        "PRODUCT",
    ])
    def test_rejects_malformed_items(self, raw):
        with pytest.raises(ValidationError):
            line_from_payload(raw)

    def test_external_requires_vendor_and_price(self):
        line = line_from_payload({
            "type": "EXTERNAL", "item_name": "Las knalpot", "base_price": "85000", "vendor_name": "Pak Udin",
        })
        assert isinstance(line, catalog_service.ExternalLine)
        assert line.base_price == Decimal("85000.00")
        assert line.cost_price == Decimal("0.00")
