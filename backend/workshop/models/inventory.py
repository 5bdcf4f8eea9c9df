from __future__ import annotations

from ..extensions import db
from workshop.money import money_json
from workshop.time_utils import to_utc_z


class InventoryLog(db.Model):
    """
    Stock movement event.

    APPEND-ONLY: one row per stock mutation, written in the same unit of work
    as the Product update. qty is the signed delta, so for every row
    stock_after = stock_before + qty. Only notes may be corrected afterwards.

    type is the movement kind (IN, OUT, ADJUSTMENT). Sales reporting keys on
    OUT rows with reference_type TRANSACTION, so ADJUSTMENT rows never reach it.
    """
    __tablename__ = "inventory_logs"
    __table_args__ = (
        db.Index("ix_inventory_logs_product_created", "product_id", "id"),
        db.Index("ix_inventory_logs_reference", "reference_type", "reference_id"),
        db.CheckConstraint("stock_after = stock_before + qty", name="ck_inventory_logs_delta"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)
    qty = db.Column(db.Integer, nullable=False)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)
    price_per_unit = db.Column(db.Numeric(15, 2), nullable=True)

    reference_type = db.Column(db.String(16), nullable=False, default="OTHER")
    reference_id = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("inventory_logs", lazy="dynamic"))
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "qty": self.qty,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "price_per_unit": money_json(self.price_per_unit),
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
