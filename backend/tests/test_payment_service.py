"""
Payment reconciler tests.

Status is re-derived from the payment sum after every write:
PAID if paid >= total, PARTIAL if 0 < paid < total, UNPAID if paid <= 0.
"""

from decimal import Decimal

import pytest

from workshop.errors import InvalidState, NotFound, ValidationError
from workshop.extensions import db
from workshop.models import Payment, Transaction
from workshop.services import payment_service, transaction_service
from workshop.services.catalog_service import ServiceLine
from workshop.services.payment_service import PaymentRequest, derive_status, payment_from_payload


@pytest.fixture
def invoice(admin_user, make_service):
    """UNPAID invoice with total 300000."""
    service = make_service(price=300000)
    return transaction_service.create_transaction(user_id=admin_user.id, lines=[ServiceLine(ref_id=service.id)])


def _pay(invoice, amount, method="CASH"):
    return payment_service.add_payment(invoice.id, PaymentRequest(amount=Decimal(amount), payment_method=method))


class TestDeriveStatus:
    @pytest.mark.parametrize("paid,expected", [
        ("0", "UNPAID"),
        ("-10", "UNPAID"),
        ("0.01", "PARTIAL"),
        ("299999.99", "PARTIAL"),
        ("300000", "PAID"),
        ("350000", "PAID"),
    ])
    def test_rule(self, paid, expected):
        assert derive_status(Decimal(paid), Decimal("300000")) == expected


class TestAddPayment:
    def test_partial_then_paid(self, invoice):
        first = _pay(invoice, "100000")
        assert first["new_status"] == "PARTIAL"
        assert first["summary"]["remaining"] == 200000.0

        second = _pay(invoice, "200000", "DEBIT")
        assert second["new_status"] == "PAID"
        assert second["summary"] == {
            "transaction_id": invoice.id,
            "status": "PAID",
            "total_amount": 300000.0,
            "total_paid": 300000.0,
            "remaining": 0.0,
        }
        assert db.session.get(Transaction, invoice.id).status == "PAID"

    def test_overpayment_surfaces_negative_remaining(self, invoice):
        result = _pay(invoice, "350000")
        assert result["new_status"] == "PAID"
        assert result["summary"]["remaining"] == -50000.0

    def test_refund_drops_paid_to_partial_then_unpaid(self, invoice):
        _pay(invoice, "300000")

        partial = _pay(invoice, "-100000", "REFUND")
        assert partial["new_status"] == "PARTIAL"

        unpaid = _pay(invoice, "-200000", "REFUND")
        assert unpaid["new_status"] == "UNPAID"
        assert unpaid["summary"]["total_paid"] == 0.0

    def test_positive_payment_on_paid_invoice_rejected(self, invoice):
        _pay(invoice, "300000")
        with pytest.raises(InvalidState):
            _pay(invoice, "1000")
        assert db.session.query(Payment).count() == 1

    def test_cancelled_invoice_rejects_everything(self, invoice, admin_user):
        transaction_service.cancel_transaction(invoice.id, user_id=admin_user.id)

        with pytest.raises(InvalidState):
            _pay(invoice, "1000")
        with pytest.raises(InvalidState):
            _pay(invoice, "-1000", "REFUND")

    @pytest.mark.parametrize("amount,method", [
        ("0", "CASH"),
        ("-5000", "CASH"),
        ("5000", "REFUND"),
        ("5000", "BITCOIN"),
    ])
    def test_invalid_payments(self, invoice, amount, method):
        with pytest.raises(ValidationError):
            _pay(invoice, amount, method)
        assert db.session.get(Transaction, invoice.id).status == "UNPAID"

    def test_missing_transaction(self, db_session):
        with pytest.raises(NotFound):
            payment_service.add_payment(4242, PaymentRequest(amount=Decimal("1"), payment_method="CASH"))

    def test_audit_rows_for_payment_and_status(self, invoice):
        from workshop.models import AuditLog

        _pay(invoice, "300000")

        actions = {
            (row.table_name, row.action)
            for row in db.session.query(AuditLog).filter(AuditLog.table_name.in_(["payments", "transactions"]))
        }
        assert ("payments", "CREATE") in actions
        assert ("transactions", "UPDATE") in actions


class TestPaymentFromPayload:
    def test_normalizes_method(self):
        request = payment_from_payload({"amount": "1050000", "payment_method": "cash", "reference_number": "A1"})
        assert request == PaymentRequest(amount=Decimal("1050000.00"), payment_method="CASH", reference_number="A1")

    def test_requires_amount_and_method(self):
        with pytest.raises(ValidationError):
            payment_from_payload({"payment_method": "CASH"})
        with pytest.raises(ValidationError):
            payment_from_payload({"amount": 10})
