# Overview: Service-layer operations for payment; records payments and derives invoice status.

"""
Payment Reconciler

WHY: An invoice may be settled over several visits (deposit, balance) and
occasionally refunded. Each event is a Payment row; the invoice's paid
amount is always the SUM of those rows, never a stored balance.

RULES:
- Refunds are negative amounts with method REFUND, and REFUND amounts are
  always negative.
- CANCELLED invoices accept nothing.
- PAID invoices accept only refunds.
- After every payment write the status is recomputed in the same unit of
  work: PAID if paid >= total, PARTIAL if 0 < paid < total, UNPAID if
  paid <= 0. Over-payment is reported as a negative remaining balance.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.orm.attributes import flag_modified

from ..extensions import db
from ..models import Payment, Transaction
from workshop.errors import InvalidState, NotFound, ValidationError
from workshop.money import money_json, to_money
from workshop.time_utils import add_months, utcnow
from workshop.validation import parse_money, parse_str
from .audit_service import recorder
from .concurrency import lock_for_update, run_with_retry


# =============================================================================
# TRANSACTION STATUS (CONSTANTS)
# =============================================================================

STATUS_PENDING = "PENDING"
STATUS_UNPAID = "UNPAID"
STATUS_PARTIAL = "PARTIAL"
STATUS_PAID = "PAID"
STATUS_CANCELLED = "CANCELLED"

VALID_STATUSES = [STATUS_PENDING, STATUS_UNPAID, STATUS_PARTIAL, STATUS_PAID, STATUS_CANCELLED]


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "CASH"
METHOD_DEBIT = "DEBIT"
METHOD_CREDIT = "CREDIT"
METHOD_TRANSFER = "TRANSFER"
METHOD_QRIS = "QRIS"
METHOD_OTHER = "OTHER"
METHOD_REFUND = "REFUND"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_DEBIT,
    METHOD_CREDIT,
    METHOD_TRANSFER,
    METHOD_QRIS,
    METHOD_OTHER,
    METHOD_REFUND,
]


@dataclass(frozen=True)
class PaymentRequest:
    amount: Decimal
    payment_method: str
    reference_number: str | None = None
    notes: str | None = None


def payment_from_payload(data, field: str = "payment") -> PaymentRequest:
    if not isinstance(data, dict):
        raise ValidationError(f"{field} must be an object")
    method = parse_str(data.get("payment_method"), f"{field}.payment_method", required=True)
    return PaymentRequest(
        amount=parse_money(data.get("amount"), f"{field}.amount", required=True, allow_negative=True),
        payment_method=method.upper(),
        reference_number=parse_str(data.get("reference_number"), f"{field}.reference_number", max_length=100),
        notes=parse_str(data.get("notes"), f"{field}.notes"),
    )


# =============================================================================
# STATUS DERIVATION
# =============================================================================

def total_paid(transaction_id: int) -> Decimal:
    """Net amount paid: refunds are negative and subtract."""
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.transaction_id == transaction_id)
        .scalar()
    )
    return to_money(total)


def derive_status(paid: Decimal, total_amount: Decimal) -> str:
    if paid >= to_money(total_amount):
        return STATUS_PAID
    if paid > 0:
        return STATUS_PARTIAL
    return STATUS_UNPAID


def recompute_status(transaction: Transaction) -> str:
    """
    Re-derive and store the status from the payment sum. Flush only.

    Entering PAID writes the vehicle's next-service reminder.
    """
    if transaction.status == STATUS_CANCELLED:
        return transaction.status
    db.session.flush()
    old_status = transaction.status
    new_status = derive_status(total_paid(transaction.id), transaction.total_amount)
    transaction.status = new_status
    if new_status == STATUS_PAID and old_status != STATUS_PAID:
        _apply_service_reminder(transaction)
    return new_status


def _apply_service_reminder(transaction: Transaction) -> None:
    vehicle = transaction.vehicle
    if vehicle is None:
        return
    months = current_app.config.get("SERVICE_REMINDER_MONTHS", 3)
    km_interval = current_app.config.get("SERVICE_REMINDER_KM", 2000)

    vehicle.next_service_date = add_months(transaction.date or utcnow(), months).date()
    if transaction.current_km is not None:
        vehicle.current_km = transaction.current_km
        vehicle.next_service_km = transaction.current_km + km_interval


def summary_for(transaction: Transaction) -> dict:
    paid = total_paid(transaction.id)
    total = to_money(transaction.total_amount)
    return {
        "transaction_id": transaction.id,
        "status": transaction.status,
        "total_amount": money_json(total),
        "total_paid": money_json(paid),
        "remaining": money_json(total - paid),
    }


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def record_payment(transaction: Transaction, request: PaymentRequest, user_id: int | None = None) -> Payment:
    """
    Validate and insert one payment, then recompute status. Flush only; the
    caller owns the unit of work and must hold the transaction row.

    Raises:
        ValidationError: unknown method, zero amount, sign/method mismatch
        InvalidState: transaction CANCELLED, or PAID and the amount is positive
    """
    method = request.payment_method
    amount = to_money(request.amount)

    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {method}. Must be one of {VALID_PAYMENT_METHODS}"
        )
    if amount == 0:
        raise ValidationError("Payment amount cannot be zero")
    if method == METHOD_REFUND and amount > 0:
        raise ValidationError("Refund amount must be negative")
    if amount < 0 and method != METHOD_REFUND:
        raise ValidationError("Negative amounts are only allowed with payment method REFUND")

    if transaction.status == STATUS_CANCELLED:
        raise InvalidState(
            "Cannot add payment to a cancelled transaction",
            {"transaction_id": transaction.id, "status": transaction.status},
        )
    if transaction.status == STATUS_PAID and amount > 0:
        raise InvalidState(
            "Transaction is already fully paid",
            {"transaction_id": transaction.id, "status": transaction.status},
        )

    payment = Payment(
        transaction_id=transaction.id,
        amount=amount,
        payment_method=method,
        reference_number=request.reference_number,
        notes=request.notes,
        user_id=user_id,
    )
    db.session.add(payment)
    recompute_status(transaction)
    # Touch the header even when the status is unchanged so the version check runs
    flag_modified(transaction, "status")
    return payment


def add_payment(
    transaction_id: int,
    request: PaymentRequest,
    user_id: int | None = None,
) -> dict:
    """
    Record a payment (or refund) against an invoice.

    Returns:
        {"payment": ..., "new_status": ..., "summary": {total_amount, total_paid, remaining}}

    Raises:
        NotFound: transaction missing or deleted
        InvalidState / ValidationError: see record_payment
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

        old_status = transaction.status
        payment = record_payment(transaction, request, user_id=user_id)
        db.session.commit()
        return {
            "payment": payment.to_dict(),
            "old_status": old_status,
            "new_status": transaction.status,
            "summary": summary_for(transaction),
        }

    result = run_with_retry(_op)
    current_app.logger.info(
        "Payment recorded: transaction=%s amount=%s method=%s status %s -> %s",
        transaction_id, request.amount, request.payment_method, result["old_status"], result["new_status"],
    )

    recorder.created("payments", result["payment"]["id"], result["payment"], user_id=user_id)
    if result["old_status"] != result["new_status"]:
        recorder.updated(
            "transactions",
            transaction_id,
            {"status": result["old_status"]},
            {"status": result["new_status"]},
            user_id=user_id,
        )
    del result["old_status"]
    return result


def get_payment_summary(transaction_id: int) -> dict:
    transaction = (
        db.session.query(Transaction)
        .filter(Transaction.id == transaction_id, Transaction.deleted_at.is_(None))
        .first()
    )
    if not transaction:
        raise NotFound(f"Transaction {transaction_id} not found", {"transaction_id": transaction_id})
    return summary_for(transaction)


def refund_all(transaction: Transaction, user_id: int | None = None) -> Payment | None:
    """
    Refund the full net paid amount, if any. Flush only. Used on
    cancellation; does not recompute status.
    """
    paid = total_paid(transaction.id)
    if paid <= 0:
        return None
    payment = Payment(
        transaction_id=transaction.id,
        amount=-paid,
        payment_method=METHOD_REFUND,
        reference_number=f"REFUND-TRX-{transaction.id}",
        notes="Automatic refund on cancellation",
        user_id=user_id,
    )
    db.session.add(payment)
    db.session.flush()
    return payment
