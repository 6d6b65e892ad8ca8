from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer master data, scoped to a store.

    IDENTITY: The normalized primary email is the matching key within a
    store and is enforced unique per store (email_normalized is NULL for
    customers without an email, which never collide).

    ALTERNATES: alternative_* columns are ordered JSON lists of contact
    values seen on later orders. They are only ever appended to, and are
    deduplicated case/format-insensitively before insertion.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("store_id", "email_normalized", name="uq_customers_store_email"),
        db.Index("ix_customers_store_name", "store_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    email_normalized = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)

    alternative_names = db.Column(db.JSON, nullable=False, default=list)
    alternative_emails = db.Column(db.JSON, nullable=False, default=list)
    alternative_phones = db.Column(db.JSON, nullable=False, default=list)
    alternative_addresses = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Customer id={self.id} email={self.email!r} store_id={self.store_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "alternative_names": list(self.alternative_names or []),
            "alternative_emails": list(self.alternative_emails or []),
            "alternative_phones": list(self.alternative_phones or []),
            "alternative_addresses": list(self.alternative_addresses or []),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
