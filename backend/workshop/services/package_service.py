# Overview: Package expansion into stock requirements, plus the read-only availability/margin view.

"""
Package Expander

A package is billed as one line at its own, seller-set price. Its product
components are expanded only to know which stock to take; service
components carry no stock and are skipped.

Availability and margin are derived views computed on read and never stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from ..extensions import db
from ..models import Package
from workshop.errors import NotFound
from workshop.money import ZERO, money_json, to_money


REASON_DELETED_COMPONENT = "DELETED_COMPONENT"
REASON_INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"

# Margin below this percentage raises low_margin_alert
LOW_MARGIN_PERCENT = Decimal("10")


@dataclass(frozen=True)
class ComponentRequirement:
    product_id: int
    qty_required: int

    def to_dict(self) -> dict:
        return {"product_id": self.product_id, "qty_required": self.qty_required}


def get_package(package_id: int) -> Package:
    """Active, non-deleted package or NotFound."""
    package = (
        db.session.query(Package)
        .filter(Package.id == package_id, Package.deleted_at.is_(None))
        .first()
    )
    if not package or not package.is_active:
        raise NotFound(f"Package {package_id} not found or inactive", {"package_id": package_id})
    return package


def expand(package_id: int, multiplier: int = 1) -> list[ComponentRequirement]:
    """
    Flatten a package into per-product stock requirements for `multiplier`
    packages. Repeated products are merged; order follows the package items.
    """
    package = get_package(package_id)
    return requirements_for(package, multiplier)


def requirements_for(package: Package, multiplier: int) -> list[ComponentRequirement]:
    required: dict[int, int] = {}
    for item in package.items:
        if item.product_id is None:
            continue
        required[item.product_id] = required.get(item.product_id, 0) + item.qty * multiplier
    return [ComponentRequirement(product_id=pid, qty_required=qty) for pid, qty in required.items()]


def component_cost(package: Package):
    """Per-package cost basis: Σ product price_buy × component qty."""
    total = ZERO
    for item in package.items:
        if item.product is not None:
            total += to_money(item.product.price_buy) * item.qty
    return total


def component_retail_price(package: Package):
    total = ZERO
    for item in package.items:
        if item.product is not None:
            total += to_money(item.product.price_sell) * item.qty
        elif item.service is not None:
            total += to_money(item.service.price) * item.qty
    return total


def check_availability(package_id: int, multiplier: int = 1) -> dict:
    """
    Advisory check: can `multiplier` packages be sold right now?

    A soft-deleted component product makes the package unavailable
    regardless of stock. The sale itself re-validates under lock.
    """
    package = get_package(package_id)
    return availability_for(package, multiplier)


def availability_for(package: Package, multiplier: int) -> dict:
    requirements = {r.product_id: r.qty_required for r in requirements_for(package, multiplier)}
    components = []
    reason = None
    blocking = None

    for item in package.items:
        entry = item.to_dict()
        if item.product is not None:
            needed = requirements.get(item.product_id, 0)
            entry["stock"] = item.product.stock
            entry["qty_required"] = needed
            if item.product.deleted_at is not None:
                entry["status"] = REASON_DELETED_COMPONENT
                if reason != REASON_DELETED_COMPONENT:
                    reason = REASON_DELETED_COMPONENT
                    blocking = item.product
            elif item.product.stock < needed:
                entry["status"] = REASON_INSUFFICIENT_STOCK
                if reason is None:
                    reason = REASON_INSUFFICIENT_STOCK
                    blocking = item.product
            else:
                entry["status"] = "OK"
        components.append(entry)

    result = {
        "package_id": package.id,
        "qty": multiplier,
        "is_available": reason is None,
        "unavailable_reason": reason,
        "components": components,
    }
    if blocking is not None:
        result["blocking_product"] = {
            "id": blocking.id,
            "sku": blocking.sku,
            "name": blocking.name,
            "stock": blocking.stock,
            "qty_required": requirements.get(blocking.id, 0),
        }
    return result


def _percent(part, whole):
    if not whole:
        return ZERO
    return (Decimal(part) / Decimal(whole) * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def package_summary(package_id: int, multiplier: int = 1) -> dict:
    """Package with its derived cost, margin, savings and availability."""
    package = get_package(package_id)
    price = to_money(package.price)
    cost = component_cost(package)
    retail = component_retail_price(package)
    margin = price - cost
    margin_percent = _percent(margin, price)
    savings = retail - price

    data = package.to_dict()
    data["calculated"] = {
        "component_cost": money_json(cost),
        "component_retail_price": money_json(retail),
        "margin": money_json(margin),
        "margin_percent": float(margin_percent),
        "customer_savings": money_json(savings),
        "savings_percent": float(_percent(savings, retail)),
        "low_margin_alert": margin_percent < LOW_MARGIN_PERCENT,
    }
    data["availability"] = availability_for(package, multiplier)
    return data
