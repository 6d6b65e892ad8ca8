from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Return(db.Model):
    """
    Return request filed against an order.

    LIFECYCLE:
    1. Submitted: created by the customer or staff
    2. Approved: accepted; stock is credited back (once)
    3. Refunded: money returned; stock is credited here only if it was not
       already credited on approval
    4. Rejected: terminal, no stock effect

    AUDIT: history is an append-only list of
    {id, status, timestamp, actor, note}. Entries are never edited or removed.

    restocked_at is written in the same transaction as the status change that
    credited stock, and is the guard against crediting twice.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.UniqueConstraint("store_id", "return_number", name="uq_returns_store_number"),
        db.Index("ix_returns_store_status_requested", "store_id", "status", "date_requested"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    return_number = db.Column(db.String(64), nullable=False)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    reason = db.Column(db.Text, nullable=False)
    returned_quantity = db.Column(db.Integer, nullable=False, default=1)

    status = db.Column(db.String(16), nullable=False, default="Submitted", index=True)
    refund_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    history = db.Column(db.JSON, nullable=False, default=list)

    restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    date_requested = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("returns", lazy=True))
    order = db.relationship("Order", backref=db.backref("returns", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("returns", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Return id={self.id} number={self.return_number!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "return_number": self.return_number,
            "order_id": self.order_id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "reason": self.reason,
            "returned_quantity": self.returned_quantity,
            "status": self.status,
            "refund_amount_cents": self.refund_amount_cents,
            "history": list(self.history or []),
            "restocked_at": to_utc_z(self.restocked_at) if self.restocked_at else None,
            "date_requested": to_utc_z(self.date_requested),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
