from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Order(db.Model):
    """
    Customer order for a single product line.

    SNAPSHOTS: customer_name/email/phone, shipping_address and
    unit_price_cents are copied at creation time and do not follow later
    customer or product edits.

    LIFECYCLE (see order_service.py):
        Pending -> Accepted -> Paid -> Shipped -> Completed
        Paid | Shipped | Completed -> Refunded

    INVARIANTS:
    - total_cents == unit_price_cents * quantity after every recompute
    - is_paid == (payment_status == "paid")
    - timeline is append-only
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("store_id", "order_number", name="uq_orders_store_number"),
        db.Index("ix_orders_store_status_created", "store_id", "status", "created_at"),
        db.Index("ix_orders_store_email", "store_id", "email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    order_number = db.Column(db.String(64), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    customer_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    shipping_address = db.Column(db.JSON, nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="Pending", index=True)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    payment_method = db.Column(db.String(32), nullable=True, default="Card")

    notes = db.Column(db.Text, nullable=True)
    submitted_by = db.Column(db.String(64), nullable=True)

    timeline = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("orders", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "customer_name": self.customer_name,
            "email": self.email,
            "phone": self.phone,
            "shipping_address": self.shipping_address,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "is_paid": self.is_paid,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "submitted_by": self.submitted_by,
            "timeline": list(self.timeline or []),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
