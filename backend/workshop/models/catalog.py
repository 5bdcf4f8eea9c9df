from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from workshop.money import money_json
from workshop.time_utils import to_utc_z


class Product(db.Model):
    """
    Stocked part or consumable.

    STOCK DISCIPLINE:
    stock and price_buy are written only by inventory_service.apply_movement,
    which appends an InventoryLog row in the same unit of work. price_buy is
    the weighted-average unit cost, recomputed on priced stock-in.

    version_id guards against lost updates when two sales race for the same
    row on backends where SELECT ... FOR UPDATE is a no-op.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Stored upper-cased; lookups must normalize the same way
    sku = db.Column(db.String(50), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(100), nullable=True)

    price_buy = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    price_sell = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock_alert = db.Column(db.Integer, nullable=False, default=5)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __mapper_args__ = {"version_id_col": version_id}

    @validates("sku")
    def _normalize_sku(self, key, value):
        return value.strip().upper() if value else value

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "price_buy": money_json(self.price_buy),
            "price_sell": money_json(self.price_sell),
            "stock": self.stock,
            "min_stock_alert": self.min_stock_alert,
            "is_low_stock": self.stock <= self.min_stock_alert,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Service(db.Model):
    """Labour item. Never touches stock."""
    __tablename__ = "services"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": money_json(self.price),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Package(db.Model):
    """
    Bundle billed at its own price. Components are tracked only for stock.
    """
    __tablename__ = "packages"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(15, 2), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship(
        "PackageItem",
        back_populates="package",
        order_by="(PackageItem.position, PackageItem.id)",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": money_json(self.price),
            "is_active": self.is_active,
            "items": [item.to_dict() for item in self.items],
        }


class PackageItem(db.Model):
    """One component of a package: a product XOR a service, with quantity."""
    __tablename__ = "package_items"
    __table_args__ = (
        db.CheckConstraint(
            "(product_id IS NULL) <> (service_id IS NULL)",
            name="ck_package_items_one_component",
        ),
        db.CheckConstraint("qty > 0", name="ck_package_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    package_id = db.Column(db.Integer, db.ForeignKey("packages.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=True)
    qty = db.Column(db.Integer, nullable=False, default=1)
    position = db.Column(db.Integer, nullable=False, default=0)

    package = db.relationship("Package", back_populates="items")
    product = db.relationship("Product")
    service = db.relationship("Service")

    @property
    def component_name(self) -> str | None:
        if self.product is not None:
            return self.product.name
        if self.service is not None:
            return self.service.name
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "package_id": self.package_id,
            "product_id": self.product_id,
            "service_id": self.service_id,
            "component_type": "PRODUCT" if self.product_id else "SERVICE",
            "component_name": self.component_name,
            "qty": self.qty,
        }
