from __future__ import annotations

from sqlalchemy.ext.hybrid import hybrid_property

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Sellable product with a mutable stock counter.

    LOW STOCK: low_stock is derived (stock_quantity <= reorder_threshold) and
    has no setter. It works both on instances and inside queries, so it can
    never drift from the two columns it is computed from.

    Stock may go negative (oversold) unless INVENTORY_ALLOW_NEGATIVE_STOCK is
    disabled; see inventory_service.apply_delta.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_store_name", "store_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_threshold = db.Column(db.Integer, nullable=False, default=10)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @hybrid_property
    def low_stock(self) -> bool:
        return (self.stock_quantity or 0) <= (self.reorder_threshold or 0)

    @low_stock.inplace.expression
    @classmethod
    def _low_stock_expression(cls):
        return cls.stock_quantity <= cls.reorder_threshold

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} store_id={self.store_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "stock_quantity": self.stock_quantity,
            "reorder_threshold": self.reorder_threshold,
            "low_stock": self.low_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only record of every stock delta applied to a product.

    REASONS:
    - ORDER: stock taken by a new order (negative)
    - RETURN: stock credited back by an approved/refunded return (positive)
    - ADJUST: manual correction from the admin UI (+/-)

    IMMUTABLE: Rows are never updated or deleted.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_invmove_store_product_occurred", "store_id", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    reason = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)
    resulting_quantity = db.Column(db.Integer, nullable=False)

    # Traceability back to the order/return that caused the movement
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    note = db.Column(db.String(255), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_id": self.product_id,
            "reason": self.reason,
            "quantity_delta": self.quantity_delta,
            "resulting_quantity": self.resulting_quantity,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
