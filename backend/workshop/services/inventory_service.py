# Overview: Stock ledger; every stock change goes through apply_movement and leaves one InventoryLog row.

"""
Stock Ledger

WHY: Product.stock and Product.price_buy must always be explainable from the
movement log. apply_movement is the only writer of both.

MOVEMENT KINDS (typed, not flags):
- StockIn(qty, unit_price=None): receiving or returning stock. A unit price
  triggers the weighted-average cost recompute.
- StockOut(qty): sale consumption. Never drives stock negative.
- StockAdjustment(actual_stock): physical count. Sets stock to the counted
  value and logs the signed difference. Kept apart from StockOut so sales and
  profit reporting, which key on OUT + TRANSACTION, cannot pick it up.

apply_movement only flushes. The caller owns the unit of work (commit or
rollback), so a sale's header, items and OUT movements land together.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import InventoryLog, Product
from workshop.errors import InsufficientStock, InternalError, NotFound, ValidationError, WorkshopError
from workshop.money import ZERO, money_json, to_money
from workshop.time_utils import stamp
from workshop.validation import page_meta, parse_int, parse_str
from .audit_service import recorder
from .concurrency import lock_for_update, run_with_retry
from .costing import moving_average_cost


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"

VALID_MOVEMENT_TYPES = [MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT]

REF_TRANSACTION = "TRANSACTION"
REF_PURCHASE = "PURCHASE"
REF_ADJUSTMENT = "ADJUSTMENT"
REF_RETURN = "RETURN"

VALID_REFERENCE_TYPES = [REF_TRANSACTION, REF_PURCHASE, REF_ADJUSTMENT, REF_RETURN]


# =============================================================================
# MOVEMENT TYPES
# =============================================================================

@dataclass(frozen=True)
class StockIn:
    qty: int
    unit_price: object = None
    kind: ClassVar[str] = MOVEMENT_IN


@dataclass(frozen=True)
class StockOut:
    qty: int
    kind: ClassVar[str] = MOVEMENT_OUT


@dataclass(frozen=True)
class StockAdjustment:
    actual_stock: int
    kind: ClassVar[str] = MOVEMENT_ADJUSTMENT


@dataclass
class MovementResult:
    product: Product
    log: InventoryLog | None
    before: int
    after: int
    cost_before: object = None
    cost_after: object = None
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            "product_id": self.product.id,
            "sku": self.product.sku,
            "name": self.product.name,
            "stock_before": self.before,
            "stock_after": self.after,
            "difference": self.after - self.before,
            "log": self.log.to_dict() if self.log else None,
        }
        if self.cost_before is not None:
            data["price_buy_before"] = money_json(self.cost_before)
            data["price_buy_after"] = money_json(self.cost_after)
        data.update(self.extra)
        return data


# =============================================================================
# CORE MOVEMENT
# =============================================================================

def _lock_product(product_id: int, *, allow_deleted: bool = False) -> Product:
    query = db.session.query(Product).filter(Product.id == product_id)
    if not allow_deleted:
        query = query.filter(Product.deleted_at.is_(None))
    product = lock_for_update(query).first()
    if not product:
        raise NotFound(f"Product {product_id} not found", {"product_id": product_id})
    return product


def lock_products(product_ids) -> list[Product]:
    """
    Lock a set of product rows in ascending id order. Flush only.

    Multi-product units of work call this before their movements so two of
    them never wait on each other's rows in opposite order.
    """
    ids = sorted(set(product_ids))
    if not ids:
        return []
    return lock_for_update(
        db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id)
    ).all()


def _delta_for_in(product: Product, movement: StockIn) -> int:
    if movement.qty <= 0:
        raise ValidationError("Stock-in quantity must be positive")
    if movement.unit_price is not None:
        product.price_buy = moving_average_cost(
            product.stock, product.price_buy, movement.qty, movement.unit_price
        )
    return movement.qty


def _delta_for_out(product: Product, movement: StockOut) -> int:
    if movement.qty <= 0:
        raise ValidationError("Stock-out quantity must be positive")
    if movement.qty > product.stock:
        raise InsufficientStock(
            f"Insufficient stock for {product.name} (available {product.stock}, requested {movement.qty})",
            {
                "product_id": product.id,
                "sku": product.sku,
                "name": product.name,
                "available": product.stock,
                "requested": movement.qty,
            },
        )
    return -movement.qty


def _delta_for_adjustment(product: Product, movement: StockAdjustment) -> int:
    if movement.actual_stock < 0:
        raise ValidationError("Actual stock cannot be negative")
    return movement.actual_stock - product.stock


_DELTA_HANDLERS = {
    StockIn: _delta_for_in,
    StockOut: _delta_for_out,
    StockAdjustment: _delta_for_adjustment,
}


def apply_movement(
    product_id: int,
    movement,
    *,
    reference_type: str,
    reference_id: str | None = None,
    notes: str | None = None,
    user_id: int | None = None,
    allow_deleted: bool = False,
) -> MovementResult:
    """
    Lock the product row, apply one movement, append its log row. Flush only.

    Raises:
        NotFound: product missing (or soft-deleted unless allow_deleted)
        InsufficientStock: StockOut larger than current stock
        ValidationError: non-positive quantity, negative counted stock
    """
    handler = _DELTA_HANDLERS.get(type(movement))
    if handler is None:
        raise TypeError(f"Unsupported movement: {movement!r}")
    if reference_type not in VALID_REFERENCE_TYPES:
        raise ValidationError(f"Invalid reference_type: {reference_type}")

    product = _lock_product(product_id, allow_deleted=allow_deleted)
    stock_before = product.stock
    cost_before = to_money(product.price_buy)

    delta = handler(product, movement)
    stock_after = stock_before + delta
    product.stock = stock_after

    log = InventoryLog(
        product_id=product.id,
        type=movement.kind,
        qty=delta,
        stock_before=stock_before,
        stock_after=stock_after,
        price_per_unit=getattr(movement, "unit_price", None),
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        user_id=user_id,
    )
    db.session.add(log)
    db.session.flush()

    return MovementResult(
        product=product,
        log=log,
        before=stock_before,
        after=stock_after,
        cost_before=cost_before,
        cost_after=to_money(product.price_buy),
    )


# =============================================================================
# STOCK IN
# =============================================================================

def stock_in(
    product_id: int,
    qty: int,
    buy_price=None,
    notes: str | None = None,
    user_id: int | None = None,
) -> dict:
    """Receive stock; with buy_price the product's average cost is recomputed."""
    def _op():
        result = apply_movement(
            product_id,
            StockIn(qty=qty, unit_price=to_money(buy_price) if buy_price is not None else None),
            reference_type=REF_PURCHASE,
            reference_id=f"STOCK-IN-{stamp()}",
            notes=notes,
            user_id=user_id,
        )
        db.session.commit()
        return result.to_dict()

    data = run_with_retry(_op)
    current_app.logger.info(
        "Stock in: product=%s qty=%s stock %s -> %s",
        product_id, qty, data["stock_before"], data["stock_after"],
    )
    recorder.updated(
        "products",
        product_id,
        {"stock": data["stock_before"], "price_buy": data.get("price_buy_before")},
        {"stock": data["stock_after"], "price_buy": data.get("price_buy_after")},
        user_id=user_id,
    )
    return data


# =============================================================================
# STOCK AUDIT (OPNAME)
# =============================================================================

def stock_audit(
    product_id: int,
    actual_stock: int,
    reason: str,
    notes: str | None = None,
    user_id: int | None = None,
) -> dict:
    """
    Reconcile system stock to a physical count.

    A zero difference writes nothing and reports no_change=True.
    """
    if not reason:
        raise ValidationError("reason is required for a stock audit")

    def _op():
        product = _lock_product(product_id)
        if product.stock == actual_stock:
            data = MovementResult(
                product=product, log=None, before=actual_stock, after=actual_stock,
                extra={"no_change": True},
            ).to_dict()
            db.session.rollback()
            return data

        log_notes = f"[STOCK AUDIT] {reason}"
        if notes:
            log_notes = f"{log_notes} - {notes}"
        result = apply_movement(
            product_id,
            StockAdjustment(actual_stock=actual_stock),
            reference_type=REF_ADJUSTMENT,
            reference_id=f"AUDIT-{stamp()}",
            notes=log_notes,
            user_id=user_id,
        )
        db.session.commit()
        result.extra["no_change"] = False
        return result.to_dict()

    data = run_with_retry(_op)
    if not data["no_change"]:
        current_app.logger.info(
            "Stock audit: product=%s %s -> %s (%s)",
            product_id, data["stock_before"], data["stock_after"], reason,
        )
        recorder.updated(
            "products",
            product_id,
            {"stock": data["stock_before"]},
            {"stock": data["stock_after"], "reason": reason},
            user_id=user_id,
        )
    return data


def bulk_stock_audit(items: list[dict], user_id: int | None = None) -> dict:
    """
    Apply a list of stock counts. Each item is its own unit of work; a failing
    item is reported and never undoes the ones that succeeded.
    """
    results = []
    errors = []

    for index, item in enumerate(items):
        product_id = item.get("product_id") if isinstance(item, dict) else None
        try:
            if not isinstance(item, dict):
                raise ValidationError("Each item must be an object")
            pid = parse_int(item.get("product_id"), "product_id", required=True, minimum=1)
            actual = parse_int(item.get("actual_stock"), "actual_stock", required=True, minimum=0)
            reason = parse_str(item.get("reason"), "reason", required=True, max_length=255)
            notes = parse_str(item.get("notes"), "notes")
            results.append(stock_audit(pid, actual, reason, notes=notes, user_id=user_id))
        except WorkshopError as exc:
            errors.append({"index": index, "product_id": product_id, "error": exc.message, "kind": exc.kind})
        except SQLAlchemyError:
            current_app.logger.exception("Bulk stock audit item %s failed", index)
            errors.append({"index": index, "product_id": product_id, "error": "Database error", "kind": InternalError.kind})

    return {
        "success_count": len(results),
        "error_count": len(errors),
        "results": results,
        "errors": errors,
    }


# =============================================================================
# REVERSAL
# =============================================================================

def restore_transaction_stock(transaction_id: int, user_id: int | None = None) -> list[MovementResult]:
    """
    Compensate every OUT movement recorded for a transaction with an IN
    movement of the same quantity. Flush only; the cancellation owns the
    unit of work.

    Driven by the log rows, not by the invoice lines, so the reversal is
    exact even if the catalog changed since the sale.
    """
    out_logs = (
        db.session.query(InventoryLog)
        .filter(
            InventoryLog.type == MOVEMENT_OUT,
            InventoryLog.reference_type == REF_TRANSACTION,
            InventoryLog.reference_id == str(transaction_id),
        )
        .order_by(InventoryLog.id)
        .all()
    )

    lock_products(log.product_id for log in out_logs)
    restored = []
    for log in out_logs:
        restored.append(
            apply_movement(
                log.product_id,
                StockIn(qty=-log.qty),
                reference_type=REF_RETURN,
                reference_id=str(transaction_id),
                notes=f"Restored from cancelled transaction {transaction_id}",
                user_id=user_id,
                allow_deleted=True,
            )
        )
    return restored


# =============================================================================
# QUERIES
# =============================================================================

def list_logs(
    product_id: int | None = None,
    movement_type: str | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    query = db.session.query(InventoryLog)
    if product_id:
        query = query.filter(InventoryLog.product_id == product_id)
    if movement_type:
        movement_type = movement_type.upper()
        if movement_type not in VALID_MOVEMENT_TYPES:
            raise ValidationError(f"Invalid type: {movement_type}")
        query = query.filter(InventoryLog.type == movement_type)
    if reference_type:
        query = query.filter(InventoryLog.reference_type == reference_type.upper())
    if reference_id:
        query = query.filter(InventoryLog.reference_id == str(reference_id))

    total = query.count()
    rows = query.order_by(InventoryLog.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"logs": [row.to_dict() for row in rows], "pagination": page_meta(total, page, limit)}


def update_log_notes(log_id: int, notes: str | None, user_id: int | None = None) -> InventoryLog:
    """Correct the free-text notes of a movement. Quantities are never editable."""
    def _op():
        log = db.session.get(InventoryLog, log_id)
        if not log:
            raise NotFound(f"Inventory log {log_id} not found", {"log_id": log_id})
        old_notes = log.notes
        log.notes = notes
        db.session.commit()
        return log, old_notes

    log, old_notes = run_with_retry(_op)
    recorder.updated("inventory_logs", log_id, {"notes": old_notes}, {"notes": notes}, user_id=user_id)
    return log


def stock_audit_history(
    product_id: int | None = None,
    date_from=None,
    date_to=None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    query = (
        db.session.query(InventoryLog, Product)
        .join(Product, Product.id == InventoryLog.product_id)
        .filter(
            InventoryLog.type == MOVEMENT_ADJUSTMENT,
            InventoryLog.reference_type == REF_ADJUSTMENT,
        )
    )
    if product_id:
        query = query.filter(InventoryLog.product_id == product_id)
    if date_from:
        query = query.filter(InventoryLog.created_at >= date_from)
    if date_to:
        query = query.filter(InventoryLog.created_at <= date_to)

    total = query.count()
    rows = query.order_by(InventoryLog.id.desc()).offset((page - 1) * limit).limit(limit).all()

    history = []
    for log, product in rows:
        entry = log.to_dict()
        entry["product"] = {"id": product.id, "sku": product.sku, "name": product.name}
        history.append(entry)
    return {"history": history, "pagination": page_meta(total, page, limit)}


def discrepancy_report(date_from=None, date_to=None) -> dict:
    """Summary of stock-count corrections, valued at current average cost."""
    query = (
        db.session.query(InventoryLog, Product)
        .join(Product, Product.id == InventoryLog.product_id)
        .filter(InventoryLog.type == MOVEMENT_ADJUSTMENT)
    )
    if date_from:
        query = query.filter(InventoryLog.created_at >= date_from)
    if date_to:
        query = query.filter(InventoryLog.created_at <= date_to)

    units_added = 0
    units_removed = 0
    value_impact = ZERO
    by_product: dict[int, dict] = {}

    for log, product in query.order_by(InventoryLog.id).all():
        if log.qty > 0:
            units_added += log.qty
        else:
            units_removed += -log.qty
        value = to_money(product.price_buy) * log.qty
        value_impact += value

        row = by_product.setdefault(product.id, {
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "adjustment_count": 0,
            "net_qty": 0,
            "value_impact": ZERO,
        })
        row["adjustment_count"] += 1
        row["net_qty"] += log.qty
        row["value_impact"] += value

    products = sorted(by_product.values(), key=lambda r: abs(r["value_impact"]), reverse=True)
    for row in products:
        row["value_impact"] = money_json(row["value_impact"])

    return {
        "summary": {
            "adjustment_count": sum(r["adjustment_count"] for r in products),
            "products_affected": len(products),
            "total_units_added": units_added,
            "total_units_removed": units_removed,
            "net_value_impact": money_json(value_impact),
        },
        "products": products,
    }


def low_stock_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.deleted_at.is_(None), Product.stock <= Product.min_stock_alert)
        .order_by(Product.stock, Product.name)
        .all()
    )
