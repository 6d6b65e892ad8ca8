from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Store(db.Model):
    """
    Tenant boundary: every customer, product, order and return belongs to
    exactly one store.

    MULTI-TENANT: All queries touching store-owned data must filter by
    store_id. No row may be read or mutated from another store.
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    default_currency = db.Column(db.String(8), nullable=False, default="PKR")
    is_demo = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "default_currency": self.default_currency,
            "is_demo": self.is_demo,
            "created_at": to_utc_z(self.created_at),
        }
