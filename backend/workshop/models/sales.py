from __future__ import annotations

from ..extensions import db
from workshop.money import money_json, to_money
from workshop.time_utils import to_utc_z, utcnow


class Transaction(db.Model):
    """
    Invoice header.

    Totals are fixed at creation: subtotal = Σ(sell_price × qty) over the
    items, total_amount = max(0, subtotal - discount_amount). Status moves
    only through payment_service (recompute after every payment write) and
    transaction_service.cancel_transaction.

    Every payment or cancellation bumps version_id; a write based on a
    stale read of the header fails with StaleDataError and is retried.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_status_date", "status", "date"),
        db.CheckConstraint("total_amount >= 0", name="ck_transactions_total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=True, index=True)
    mechanic_id = db.Column(db.Integer, db.ForeignKey("mechanics.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    status = db.Column(db.String(16), nullable=False, default="PENDING")

    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    current_km = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    customer = db.relationship("Customer")
    vehicle = db.relationship("Vehicle")
    mechanic = db.relationship("Mechanic")
    user = db.relationship("User")

    items = db.relationship(
        "TransactionItem",
        back_populates="transaction",
        order_by="TransactionItem.id",
        cascade="all, delete-orphan",
    )
    payments = db.relationship(
        "Payment",
        back_populates="transaction",
        order_by="Payment.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True, include_payments: bool = True) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "vehicle_id": self.vehicle_id,
            "mechanic_id": self.mechanic_id,
            "user_id": self.user_id,
            "date": to_utc_z(self.date),
            "status": self.status,
            "subtotal": money_json(self.subtotal),
            "discount_amount": money_json(self.discount_amount),
            "total_amount": money_json(self.total_amount),
            "current_km": self.current_km,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "vehicle": self.vehicle.to_dict() if self.vehicle else None,
            "mechanic": self.mechanic.to_dict() if self.mechanic else None,
            "user": {"id": self.user.id, "full_name": self.user.full_name} if self.user else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        if include_payments:
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class TransactionItem(db.Model):
    """
    Point-in-time snapshot of one billed line.

    item_id points into the table implied by item_type and is intentionally
    not a foreign key (EXTERNAL lines reference nothing). Never updated.
    """
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.Index("ix_transaction_items_type_ref", "item_type", "item_id"),
        db.CheckConstraint("qty > 0", name="ck_transaction_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(
        db.Integer, db.ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=True)
    item_name = db.Column(db.String(255), nullable=False)

    qty = db.Column(db.Integer, nullable=False, default=1)
    base_price = db.Column(db.Numeric(15, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    sell_price = db.Column(db.Numeric(15, 2), nullable=False)
    cost_price = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    vendor_name = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    transaction = db.relationship("Transaction", back_populates="items")

    @property
    def line_total(self):
        return to_money(self.sell_price) * self.qty

    @property
    def line_cost(self):
        return to_money(self.cost_price) * self.qty

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "qty": self.qty,
            "base_price": money_json(self.base_price),
            "discount_amount": money_json(self.discount_amount),
            "sell_price": money_json(self.sell_price),
            "cost_price": money_json(self.cost_price),
            "line_total": money_json(self.line_total),
            "vendor_name": self.vendor_name,
            "notes": self.notes,
        }


class Payment(db.Model):
    """
    Payment event against an invoice. Negative amounts are refunds
    (payment_method REFUND). The invoice's paid amount is the sum of these
    rows; no running balance is stored.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_transaction_date", "transaction_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(
        db.Integer, db.ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    amount = db.Column(db.Numeric(15, 2), nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)
    reference_number = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    transaction = db.relationship("Transaction", back_populates="payments")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "amount": money_json(self.amount),
            "payment_method": self.payment_method,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "date": to_utc_z(self.date),
            "user_id": self.user_id,
        }
