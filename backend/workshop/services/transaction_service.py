# Overview: Service-layer operations for transactions; invoice creation, cancellation and queries.

"""
Transaction Ledger

CREATE (one unit of work, all-or-nothing):
1. Validate header references (user required; vehicle and mechanic optional)
2. Resolve every line through the catalog resolver
3. subtotal = Σ(sell_price × qty); total = max(0, subtotal - discount)
4. Insert header and items
5. OUT movement per product requirement, reference TRANSACTION/<id>
6. Optional initial payment, then status recompute
Any failure rolls everything back. The audit record is written after commit.

CANCEL (ADMIN, one unit of work):
refund the net paid amount, replay the transaction's OUT movements as
RETURN stock-ins, set CANCELLED. CANCELLED is terminal.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Mechanic, Package, Transaction, TransactionItem, User, Vehicle
from workshop.errors import InsufficientStock, InvalidState, NotFound, ValidationError
from workshop.money import ZERO, money_json, to_money
from workshop.validation import page_meta
from . import catalog_service, inventory_service, payment_service
from .audit_service import recorder
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import REF_TRANSACTION, StockOut
from .payment_service import STATUS_CANCELLED, STATUS_PENDING, VALID_STATUSES


DOC_RECEIPT = "receipt"
DOC_WORKORDER = "workorder"


# =============================================================================
# CREATION
# =============================================================================

def _validate_header(user_id, vehicle_id, mechanic_id):
    user = db.session.get(User, user_id) if user_id else None
    if not user or not user.is_active:
        raise NotFound(f"User {user_id} not found", {"user_id": user_id})

    vehicle = None
    if vehicle_id is not None:
        vehicle = (
            db.session.query(Vehicle)
            .filter(Vehicle.id == vehicle_id, Vehicle.deleted_at.is_(None))
            .first()
        )
        if not vehicle:
            raise NotFound(f"Vehicle {vehicle_id} not found", {"vehicle_id": vehicle_id})

    if mechanic_id is not None:
        mechanic = (
            db.session.query(Mechanic)
            .filter(Mechanic.id == mechanic_id, Mechanic.deleted_at.is_(None))
            .first()
        )
        if not mechanic or not mechanic.is_active:
            raise NotFound(f"Mechanic {mechanic_id} not found or inactive", {"mechanic_id": mechanic_id})

    return vehicle


def compute_totals(resolved, discount_amount) -> tuple:
    subtotal = sum((line.line_total for line in resolved), ZERO)
    discount = to_money(discount_amount)
    total = max(ZERO, subtotal - discount)
    return subtotal, discount, total


def create_transaction(
    user_id: int,
    lines: list,
    vehicle_id: int | None = None,
    mechanic_id: int | None = None,
    discount_amount=ZERO,
    current_km: int | None = None,
    notes: str | None = None,
    initial_payment: payment_service.PaymentRequest | None = None,
) -> Transaction:
    """
    Create an invoice with its items and stock movements in one unit of work.

    Raises:
        ValidationError: no items, negative discount or km
        NotFound: user, vehicle, mechanic or any referenced catalog item
        InsufficientStock: any product short, including a lost race
        InvalidDiscount: a line discount above its price
    """
    if to_money(discount_amount) < 0:
        raise ValidationError("discount_amount must be >= 0")
    if current_km is not None and current_km < 0:
        raise ValidationError("current_km must be >= 0")

    def _op():
        vehicle = _validate_header(user_id, vehicle_id, mechanic_id)
        resolved = catalog_service.resolve_lines(lines)
        subtotal, discount, total = compute_totals(resolved, discount_amount)

        transaction = Transaction(
            user_id=user_id,
            customer_id=vehicle.customer_id if vehicle else None,
            vehicle_id=vehicle_id,
            mechanic_id=mechanic_id,
            status=STATUS_PENDING,
            subtotal=subtotal,
            discount_amount=discount,
            total_amount=total,
            current_km=current_km,
            notes=notes,
        )
        for line in resolved:
            transaction.items.append(TransactionItem(
                item_type=line.item_type,
                item_id=line.item_id,
                item_name=line.item_name,
                qty=line.qty,
                base_price=line.base_price,
                discount_amount=line.discount_amount,
                sell_price=line.sell_price,
                cost_price=line.cost_price,
                vendor_name=line.vendor_name,
                notes=line.notes,
            ))
        db.session.add(transaction)
        db.session.flush()

        # Lock every product up front in id order, then each OUT re-reads its row
        inventory_service.lock_products(
            requirement.product_id for line in resolved for requirement in line.stock_requirements
        )
        for line in resolved:
            for requirement in line.stock_requirements:
                inventory_service.apply_movement(
                    requirement.product_id,
                    StockOut(qty=requirement.qty_required),
                    reference_type=REF_TRANSACTION,
                    reference_id=str(transaction.id),
                    notes=f"{line.item_type} sale: {line.item_name}",
                    user_id=user_id,
                )

        if initial_payment is not None:
            payment_service.record_payment(transaction, initial_payment, user_id=user_id)
        else:
            payment_service.recompute_status(transaction)

        db.session.commit()
        return transaction.id

    try:
        transaction_id = run_with_retry(_op)
    except (StaleDataError, OperationalError) as exc:
        current_app.logger.warning("Transaction create lost a stock race after retries: %s", exc)
        raise InsufficientStock(
            "Stock changed while the transaction was being saved; not enough stock remains",
        ) from exc

    transaction = db.session.get(Transaction, transaction_id)
    current_app.logger.info(
        "Transaction %s created: %s items, total=%s, status=%s",
        transaction.id, len(transaction.items), transaction.total_amount, transaction.status,
    )
    recorder.created("transactions", transaction.id, transaction.to_dict(), user_id=user_id)
    return transaction


# =============================================================================
# CANCELLATION
# =============================================================================

def cancel_transaction(transaction_id: int, user_id: int | None = None, reason: str | None = None) -> Transaction:
    """
    Cancel an invoice: refund what was paid, restore stock from the logged
    OUT movements, mark CANCELLED.

    Raises:
        NotFound: transaction missing or deleted
        InvalidState: already CANCELLED
    """
    def _op():
        transaction = lock_for_update(
            db.session.query(Transaction).filter(
                Transaction.id == transaction_id,
                Transaction.deleted_at.is_(None),
            )
        ).first()
        if not transaction:
            raise NotFound(f"Transaction {transaction_id} not found", {"transaction_id": transaction_id})
        if transaction.status == STATUS_CANCELLED:
            raise InvalidState(
                "Transaction is already cancelled",
                {"transaction_id": transaction_id, "status": transaction.status},
            )

        old_status = transaction.status
        refund = payment_service.refund_all(transaction, user_id=user_id)
        restored = inventory_service.restore_transaction_stock(transaction.id, user_id=user_id)

        transaction.status = STATUS_CANCELLED
        if reason:
            marker = f"[CANCELLED] {reason}"
            transaction.notes = f"{transaction.notes}\n{marker}" if transaction.notes else marker

        db.session.commit()
        return {
            "old_status": old_status,
            "refund": money_json(refund.amount) if refund else None,
            "restored": [
                {"product_id": r.product.id, "qty": r.after - r.before, "stock_after": r.after}
                for r in restored
            ],
        }

    outcome = run_with_retry(_op)
    transaction = db.session.get(Transaction, transaction_id)
    current_app.logger.info(
        "Transaction %s cancelled (was %s), %s stock movements reversed",
        transaction_id, outcome["old_status"], len(outcome["restored"]),
    )
    recorder.updated(
        "transactions",
        transaction_id,
        {"status": outcome["old_status"]},
        {
            "status": STATUS_CANCELLED,
            "reason": reason,
            "refund_amount": outcome["refund"],
            "restored_stock": outcome["restored"],
        },
        user_id=user_id,
    )
    return transaction


# =============================================================================
# QUERIES
# =============================================================================

def get_transaction(transaction_id: int) -> Transaction:
    transaction = (
        db.session.query(Transaction)
        .filter(Transaction.id == transaction_id, Transaction.deleted_at.is_(None))
        .first()
    )
    if not transaction:
        raise NotFound(f"Transaction {transaction_id} not found", {"transaction_id": transaction_id})
    return transaction


def profit_info(transaction: Transaction) -> dict:
    revenue = sum((item.line_total for item in transaction.items), ZERO)
    cost = sum((item.line_cost for item in transaction.items), ZERO)
    # Header discount reduces what was actually earned
    revenue = max(ZERO, revenue - to_money(transaction.discount_amount))
    return {
        "total_cost": money_json(cost),
        "gross_profit": money_json(revenue - cost),
    }


def transaction_detail(transaction_id: int) -> dict:
    transaction = get_transaction(transaction_id)
    data = transaction.to_dict()
    data["payment_summary"] = payment_service.summary_for(transaction)
    data["profit_info"] = profit_info(transaction)
    return data


def list_transactions(
    status: str | None = None,
    vehicle_id: int | None = None,
    mechanic_id: int | None = None,
    date_from=None,
    date_to=None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    query = db.session.query(Transaction).filter(Transaction.deleted_at.is_(None))
    if status:
        status = status.upper()
        if status not in VALID_STATUSES:
            raise ValidationError(f"Invalid status: {status}. Must be one of {VALID_STATUSES}")
        query = query.filter(Transaction.status == status)
    if vehicle_id:
        query = query.filter(Transaction.vehicle_id == vehicle_id)
    if mechanic_id:
        query = query.filter(Transaction.mechanic_id == mechanic_id)
    if date_from:
        query = query.filter(Transaction.date >= date_from)
    if date_to:
        query = query.filter(Transaction.date <= date_to)

    total = query.count()
    rows = (
        query.order_by(Transaction.date.desc(), Transaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "transactions": [row.to_dict(include_payments=False) for row in rows],
        "pagination": page_meta(total, page, limit),
    }


def _workorder_lines(item: TransactionItem) -> list[dict]:
    line = {"item_type": item.item_type, "item_name": item.item_name, "qty": item.qty, "notes": item.notes}
    if item.item_type != catalog_service.ITEM_PACKAGE or item.item_id is None:
        if item.vendor_name:
            line["vendor_name"] = item.vendor_name
        return [line]

    # Mechanics work from the components, not the bundle name
    package = db.session.get(Package, item.item_id)
    line["components"] = []
    if package is not None:
        for component in package.items:
            line["components"].append({
                "component_type": "PRODUCT" if component.product_id else "SERVICE",
                "name": component.component_name,
                "qty": component.qty * item.qty,
            })
    return [line]


def print_data(transaction_id: int, document_type: str = DOC_RECEIPT) -> dict:
    """Data for a printed receipt (priced) or work order (packages expanded, no prices)."""
    document_type = (document_type or DOC_RECEIPT).lower()
    if document_type not in (DOC_RECEIPT, DOC_WORKORDER):
        raise ValidationError("type must be 'receipt' or 'workorder'")

    transaction = get_transaction(transaction_id)
    header = transaction.to_dict(include_items=False, include_payments=False)

    if document_type == DOC_WORKORDER:
        lines = []
        for item in transaction.items:
            lines.extend(_workorder_lines(item))
        return {"document_type": DOC_WORKORDER, "transaction": header, "lines": lines}

    return {
        "document_type": DOC_RECEIPT,
        "transaction": header,
        "lines": [
            {
                "item_type": item.item_type,
                "item_name": item.item_name,
                "qty": item.qty,
                "base_price": money_json(item.base_price),
                "discount_amount": money_json(item.discount_amount),
                "sell_price": money_json(item.sell_price),
                "line_total": money_json(item.line_total),
            }
            for item in transaction.items
        ],
        "payments": [payment.to_dict() for payment in transaction.payments],
        "summary": payment_service.summary_for(transaction),
    }
