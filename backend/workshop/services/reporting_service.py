# Overview: Sales and profit figures for the settlement core.

"""
Reporting queries.

Revenue and cost come from TransactionItem snapshots of non-cancelled
transactions. Unit movement comes from the stock ledger, but only from OUT
movements tagged TRANSACTION (net of RETURN stock-ins from cancellations).
ADJUSTMENT movements are a different movement kind and are never selected,
so stock counts cannot leak into sales or profit figures.
"""

from __future__ import annotations

from sqlalchemy import and_, case, func, or_

from ..extensions import db
from ..models import InventoryLog, Product, Transaction, TransactionItem
from workshop.money import CENT, ZERO, money_json, to_money
from .inventory_service import MOVEMENT_IN, MOVEMENT_OUT, REF_RETURN, REF_TRANSACTION
from .payment_service import STATUS_CANCELLED


def _settled_items(date_from=None, date_to=None):
    query = (
        db.session.query(TransactionItem)
        .join(Transaction, Transaction.id == TransactionItem.transaction_id)
        .filter(Transaction.status != STATUS_CANCELLED, Transaction.deleted_at.is_(None))
    )
    if date_from:
        query = query.filter(Transaction.date >= date_from)
    if date_to:
        query = query.filter(Transaction.date <= date_to)
    return query


def sales_summary(date_from=None, date_to=None) -> dict:
    tx_query = db.session.query(Transaction).filter(
        Transaction.status != STATUS_CANCELLED, Transaction.deleted_at.is_(None)
    )
    if date_from:
        tx_query = tx_query.filter(Transaction.date >= date_from)
    if date_to:
        tx_query = tx_query.filter(Transaction.date <= date_to)

    transaction_count = tx_query.count()
    header_discount = to_money(
        tx_query.with_entities(func.coalesce(func.sum(Transaction.discount_amount), 0)).scalar()
    )
    net_sales = to_money(
        tx_query.with_entities(func.coalesce(func.sum(Transaction.total_amount), 0)).scalar()
    )

    by_type = {}
    gross = ZERO
    cost = ZERO
    for item in _settled_items(date_from, date_to).all():
        row = by_type.setdefault(item.item_type, {"qty": 0, "revenue": ZERO, "cost": ZERO})
        row["qty"] += item.qty
        row["revenue"] += item.line_total
        row["cost"] += item.line_cost
        gross += item.line_total
        cost += item.line_cost

    return {
        "transaction_count": transaction_count,
        "gross_sales": money_json(gross),
        "header_discount": money_json(header_discount),
        "net_sales": money_json(net_sales),
        "by_item_type": {
            key: {"qty": row["qty"], "revenue": money_json(row["revenue"]), "cost": money_json(row["cost"])}
            for key, row in sorted(by_type.items())
        },
    }


def profit_summary(date_from=None, date_to=None) -> dict:
    summary = sales_summary(date_from, date_to)
    cost = sum((to_money(row["cost"]) for row in summary["by_item_type"].values()), ZERO)
    net_sales = to_money(summary["net_sales"])
    profit = net_sales - cost
    margin = (profit / net_sales * 100).quantize(CENT) if net_sales else ZERO
    return {
        "net_sales": money_json(net_sales),
        "total_cost": money_json(cost),
        "gross_profit": money_json(profit),
        "margin_percent": float(margin),
    }


def units_sold_by_product(date_from=None, date_to=None) -> list[dict]:
    """Net units sold per product from sale OUT movements minus cancellation returns."""
    sold = case(
        (and_(InventoryLog.type == MOVEMENT_OUT, InventoryLog.reference_type == REF_TRANSACTION), -InventoryLog.qty),
        (and_(InventoryLog.type == MOVEMENT_IN, InventoryLog.reference_type == REF_RETURN), -InventoryLog.qty),
        else_=0,
    )
    query = (
        db.session.query(Product.id, Product.sku, Product.name, func.sum(sold).label("units"))
        .join(InventoryLog, InventoryLog.product_id == Product.id)
        .filter(or_(
            and_(InventoryLog.type == MOVEMENT_OUT, InventoryLog.reference_type == REF_TRANSACTION),
            and_(InventoryLog.type == MOVEMENT_IN, InventoryLog.reference_type == REF_RETURN),
        ))
        .group_by(Product.id, Product.sku, Product.name)
    )
    if date_from:
        query = query.filter(InventoryLog.created_at >= date_from)
    if date_to:
        query = query.filter(InventoryLog.created_at <= date_to)

    rows = [
        {"product_id": pid, "sku": sku, "name": name, "units_sold": int(units or 0)}
        for pid, sku, name, units in query.all()
    ]
    return sorted(rows, key=lambda r: (-r["units_sold"], r["sku"]))
