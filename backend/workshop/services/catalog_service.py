# Overview: Resolves requested invoice lines (product/service/package/external) into priced snapshots.

"""
Catalog Resolver

A requested line is one of four shapes (ProductLine, ServiceLine,
PackageLine, ExternalLine). Resolution dispatches on the shape and returns a
ResolvedLine: the frozen price/cost snapshot that becomes a TransactionItem,
plus the stock requirements the sale must take.

Stock checks here are advisory. The authoritative check is the OUT movement
taken under lock when the transaction is written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from ..extensions import db
from ..models import Product, Service
from workshop.errors import InsufficientStock, InvalidDiscount, NotFound, ValidationError
from workshop.money import ZERO, to_money
from workshop.validation import parse_int, parse_money, parse_str
from . import package_service
from .concurrency import run_with_retry
from .inventory_service import REF_PURCHASE, StockIn, apply_movement
from .package_service import ComponentRequirement, REASON_DELETED_COMPONENT, REASON_INSUFFICIENT_STOCK


ITEM_PRODUCT = "PRODUCT"
ITEM_SERVICE = "SERVICE"
ITEM_PACKAGE = "PACKAGE"
ITEM_EXTERNAL = "EXTERNAL"

VALID_ITEM_TYPES = [ITEM_PRODUCT, ITEM_SERVICE, ITEM_PACKAGE, ITEM_EXTERNAL]


# =============================================================================
# REQUESTED LINES
# =============================================================================

@dataclass(frozen=True)
class ProductLine:
    ref_id: int
    qty: int = 1
    discount: Decimal = ZERO
    notes: str | None = None


@dataclass(frozen=True)
class ServiceLine:
    ref_id: int
    qty: int = 1
    discount: Decimal = ZERO
    custom_price: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PackageLine:
    ref_id: int
    qty: int = 1
    discount: Decimal = ZERO
    notes: str | None = None


@dataclass(frozen=True)
class ExternalLine:
    item_name: str
    base_price: Decimal
    vendor_name: str
    qty: int = 1
    discount: Decimal = ZERO
    cost_price: Decimal = ZERO
    notes: str | None = None


@dataclass
class ResolvedLine:
    item_type: str
    item_id: int | None
    item_name: str
    qty: int
    base_price: Decimal
    discount_amount: Decimal
    sell_price: Decimal
    cost_price: Decimal
    vendor_name: str | None = None
    notes: str | None = None
    stock_requirements: list[ComponentRequirement] = field(default_factory=list)

    @property
    def line_total(self) -> Decimal:
        return self.sell_price * self.qty


def line_from_payload(raw, index: int = 0):
    """
    Build a requested line from a JSON item.

    Accepts `type` or `item_type`, `ref_id` or `item_id`, `discount` or
    `discount_amount`. qty defaults to 1.
    """
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")
    prefix = f"items[{index}]"

    item_type = raw.get("type", raw.get("item_type"))
    item_type = item_type.strip().upper() if isinstance(item_type, str) else None
    if item_type not in VALID_ITEM_TYPES:
        raise ValidationError(
            f"{prefix}.type must be one of {', '.join(VALID_ITEM_TYPES)}",
            {"index": index},
        )

    qty = parse_int(raw.get("qty"), f"{prefix}.qty", default=1, minimum=1)
    discount = parse_money(raw.get("discount", raw.get("discount_amount")), f"{prefix}.discount", default=ZERO)
    notes = parse_str(raw.get("notes"), f"{prefix}.notes")

    if item_type == ITEM_EXTERNAL:
        return ExternalLine(
            item_name=parse_str(raw.get("item_name"), f"{prefix}.item_name", required=True, max_length=255),
            base_price=parse_money(raw.get("base_price"), f"{prefix}.base_price", required=True),
            vendor_name=parse_str(raw.get("vendor_name"), f"{prefix}.vendor_name", required=True, max_length=255),
            qty=qty,
            discount=discount,
            cost_price=parse_money(raw.get("cost_price"), f"{prefix}.cost_price", default=ZERO),
            notes=notes,
        )

    ref_id = parse_int(raw.get("ref_id", raw.get("item_id")), f"{prefix}.ref_id", required=True, minimum=1)
    if item_type == ITEM_PRODUCT:
        return ProductLine(ref_id=ref_id, qty=qty, discount=discount, notes=notes)
    if item_type == ITEM_SERVICE:
        return ServiceLine(
            ref_id=ref_id,
            qty=qty,
            discount=discount,
            custom_price=parse_money(raw.get("custom_price"), f"{prefix}.custom_price"),
            notes=notes,
        )
    return PackageLine(ref_id=ref_id, qty=qty, discount=discount, notes=notes)


# =============================================================================
# RESOLUTION
# =============================================================================

def _priced(item_type, item_id, name, line, base_price, cost_price, **extra) -> ResolvedLine:
    base_price = to_money(base_price)
    discount = to_money(line.discount)
    if discount > base_price:
        raise InvalidDiscount(
            f"Discount {discount} exceeds price {base_price} for {name}",
            {"item_type": item_type, "item_id": item_id, "base_price": float(base_price), "discount": float(discount)},
        )
    return ResolvedLine(
        item_type=item_type,
        item_id=item_id,
        item_name=name,
        qty=line.qty,
        base_price=base_price,
        discount_amount=discount,
        sell_price=base_price - discount,
        cost_price=to_money(cost_price),
        notes=line.notes,
        **extra,
    )


def _resolve_product(line: ProductLine) -> ResolvedLine:
    product = (
        db.session.query(Product)
        .filter(Product.id == line.ref_id, Product.deleted_at.is_(None))
        .first()
    )
    if not product:
        raise NotFound(f"Product {line.ref_id} not found", {"item_type": ITEM_PRODUCT, "item_id": line.ref_id})
    if product.stock < line.qty:
        raise InsufficientStock(
            f"Insufficient stock for {product.name} (available {product.stock}, requested {line.qty})",
            {"product_id": product.id, "sku": product.sku, "name": product.name,
             "available": product.stock, "requested": line.qty},
        )
    return _priced(
        ITEM_PRODUCT, product.id, product.name, line,
        base_price=product.price_sell,
        cost_price=product.price_buy,
        stock_requirements=[ComponentRequirement(product_id=product.id, qty_required=line.qty)],
    )


def _resolve_service(line: ServiceLine) -> ResolvedLine:
    service = (
        db.session.query(Service)
        .filter(Service.id == line.ref_id, Service.deleted_at.is_(None))
        .first()
    )
    if not service:
        raise NotFound(f"Service {line.ref_id} not found", {"item_type": ITEM_SERVICE, "item_id": line.ref_id})
    price = line.custom_price if line.custom_price is not None else service.price
    return _priced(ITEM_SERVICE, service.id, service.name, line, base_price=price, cost_price=ZERO)


def _resolve_package(line: PackageLine) -> ResolvedLine:
    package = package_service.get_package(line.ref_id)
    availability = package_service.availability_for(package, line.qty)
    if availability["unavailable_reason"] == REASON_DELETED_COMPONENT:
        blocking = availability["blocking_product"]
        raise NotFound(
            f"Package {package.name} contains deleted product {blocking['name']}",
            {"item_type": ITEM_PACKAGE, "item_id": package.id, "reason": REASON_DELETED_COMPONENT,
             "product_id": blocking["id"]},
        )
    if availability["unavailable_reason"] == REASON_INSUFFICIENT_STOCK:
        blocking = availability["blocking_product"]
        raise InsufficientStock(
            f"Insufficient stock for {blocking['name']} in package {package.name}",
            {"package_id": package.id, "product_id": blocking["id"], "sku": blocking["sku"],
             "name": blocking["name"], "available": blocking["stock"], "requested": blocking["qty_required"]},
        )
    return _priced(
        ITEM_PACKAGE, package.id, package.name, line,
        base_price=package.price,
        cost_price=package_service.component_cost(package),
        stock_requirements=package_service.requirements_for(package, line.qty),
    )


def _resolve_external(line: ExternalLine) -> ResolvedLine:
    return _priced(
        ITEM_EXTERNAL, None, line.item_name, line,
        base_price=line.base_price,
        cost_price=line.cost_price,
        vendor_name=line.vendor_name,
    )


_RESOLVERS = {
    ProductLine: _resolve_product,
    ServiceLine: _resolve_service,
    PackageLine: _resolve_package,
    ExternalLine: _resolve_external,
}


def resolve_line(line) -> ResolvedLine:
    resolver = _RESOLVERS.get(type(line))
    if resolver is None:
        raise ValidationError(f"Unsupported line: {type(line).__name__}")
    return resolver(line)


def resolve_lines(lines) -> list[ResolvedLine]:
    """Resolve every line; the first failure aborts the whole request."""
    if not lines:
        raise ValidationError("At least one item is required")
    return [resolve_line(line) for line in lines]


# =============================================================================
# CATALOG WRITES
# =============================================================================

def create_product(
    sku: str,
    name: str,
    price_sell,
    price_buy=ZERO,
    opening_stock: int = 0,
    category: str | None = None,
    min_stock_alert: int = 5,
    user_id: int | None = None,
) -> Product:
    """
    Create a product. Opening stock is booked as a priced IN movement so the
    movement log explains the product's stock from its first row.
    """
    if opening_stock < 0:
        raise ValidationError("opening_stock must be >= 0")

    def _op():
        normalized = sku.strip().upper()
        if db.session.query(Product).filter(Product.sku == normalized).first():
            raise ValidationError(f"SKU already exists: {normalized}", {"sku": normalized})

        product = Product(
            sku=normalized,
            name=name,
            category=category,
            price_sell=to_money(price_sell),
            price_buy=to_money(price_buy),
            stock=0,
            min_stock_alert=min_stock_alert,
        )
        db.session.add(product)
        db.session.flush()

        if opening_stock:
            apply_movement(
                product.id,
                StockIn(qty=opening_stock, unit_price=to_money(price_buy)),
                reference_type=REF_PURCHASE,
                reference_id="OPENING-STOCK",
                notes="Opening stock",
                user_id=user_id,
            )
        db.session.commit()
        return product.id

    return db.session.get(Product, run_with_retry(_op))
