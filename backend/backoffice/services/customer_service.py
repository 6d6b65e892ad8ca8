"""
Customer Identity Service

WHY: Orders arrive with loosely structured contact details. The same person
shows up with a different phone, a reformatted address or a nickname, and
we want one customer record per person per store without ever losing what
we already knew about them.

MATCHING:
- The normalized primary email is the only matching key for orders.
- Alternate emails/phones/addresses are informational; they are searched by
  find_customer_by_contact (admin search) but never used to match orders.

MERGING (merge_contact):
- Primary name and email are never overwritten by a merge.
- A differing name/email/phone/address is appended to the matching
  alternative_* list unless an equivalent value (per contact_normalizer)
  is already the primary or an alternate.
- Empty primary phone/address/email are filled from the incoming bundle.

CONCURRENCY:
- (store_id, email_normalized) is unique. Two orders racing to create the
  same new customer: the loser hits IntegrityError, rolls back and retries
  the lookup-then-merge path.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Order, Return
from ..time_utils import to_utc_z
from ..validation import ConflictError, ValidationError
from .concurrency import lock_for_update, run_with_retry
from .contact_normalizer import (
    contains_normalized,
    normalize_address,
    normalize_email,
    normalize_name,
    normalize_phone,
)
from .tenant_service import get_scoped_or_404, scoped_query


@dataclass(frozen=True)
class ContactBundle:
    """Contact details as supplied on an order or admin form."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    @classmethod
    def from_payload(cls, data: dict) -> "ContactBundle":
        return cls(
            name=_clean(data.get("name") or data.get("customer_name")),
            email=_clean(data.get("email")),
            phone=_clean(data.get("phone")),
            address=_clean(data.get("address")),
        )


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# =============================================================================
# MERGE
# =============================================================================

def _append_alternate(customer: Customer, attr: str, value: str, normalizer) -> bool:
    current = list(getattr(customer, attr) or [])
    if contains_normalized(current, value, normalizer):
        return False
    # Reassign so SQLAlchemy sees the JSON change
    setattr(customer, attr, current + [value])
    return True


def merge_contact(customer: Customer, bundle: ContactBundle) -> list[str]:
    """
    Fold an incoming contact bundle into an existing customer.

    Does not commit. Returns the names of the fields that changed.
    """
    changed: list[str] = []

    name = _clean(bundle.name)
    if name and normalize_name(name) != normalize_name(customer.name):
        if _append_alternate(customer, "alternative_names", name, normalize_name):
            changed.append("alternative_names")

    email = _clean(bundle.email)
    if email and normalize_email(email):
        if not customer.email:
            customer.email = email
            customer.email_normalized = normalize_email(email)
            changed.append("email")
        elif normalize_email(email) != normalize_email(customer.email):
            if _append_alternate(customer, "alternative_emails", email, normalize_email):
                changed.append("alternative_emails")

    phone = _clean(bundle.phone)
    if phone and normalize_phone(phone):
        if not normalize_phone(customer.phone):
            customer.phone = phone
            changed.append("phone")
        elif normalize_phone(phone) != normalize_phone(customer.phone):
            if _append_alternate(customer, "alternative_phones", phone, normalize_phone):
                changed.append("alternative_phones")

    address = _clean(bundle.address)
    if address and normalize_address(address):
        if not normalize_address(customer.address):
            customer.address = address
            changed.append("address")
        elif normalize_address(address) != normalize_address(customer.address):
            if _append_alternate(customer, "alternative_addresses", address, normalize_address):
                changed.append("alternative_addresses")

    return changed


# =============================================================================
# RESOLUTION
# =============================================================================

def _find_by_email(store_id: int, email_key: str, *, lock: bool = False) -> Customer | None:
    query = scoped_query(Customer, store_id).filter(Customer.email_normalized == email_key)
    if lock:
        query = lock_for_update(query)
    return query.first()


def _new_customer(store_id: int, bundle: ContactBundle) -> Customer:
    name = _clean(bundle.name)
    if not name:
        raise ValidationError("name is required to create a customer")
    email = _clean(bundle.email)
    return Customer(
        store_id=store_id,
        name=name,
        email=email,
        email_normalized=normalize_email(email) or None,
        phone=_clean(bundle.phone),
        address=_clean(bundle.address),
        alternative_names=[],
        alternative_emails=[],
        alternative_phones=[],
        alternative_addresses=[],
    )


def resolve_customer(store_id: int, bundle: ContactBundle) -> tuple[Customer, bool]:
    """
    Find the store's customer for this contact bundle, or create one.

    The merge/create is committed before returning; it is a separate step
    from whatever the caller does next (e.g. creating an order).

    Returns:
        (customer, created)

    Raises:
        ValidationError: If the bundle has no email, or a new customer has no name
    """
    email_key = normalize_email(bundle.email)
    if not email_key:
        raise ValidationError("email is required to resolve a customer")

    def _op():
        customer = _find_by_email(store_id, email_key, lock=True)
        if customer is not None:
            changed = merge_contact(customer, bundle)
            db.session.commit()
            if changed:
                current_app.logger.info(
                    "[customers] Merged contact into customer %s (%s)", customer.id, ", ".join(changed)
                )
            return customer, False

        customer = _new_customer(store_id, bundle)
        db.session.add(customer)
        try:
            db.session.commit()
        except IntegrityError:
            current_app.logger.warning(
                "[customers] Lost creation race for store %s; retrying lookup", store_id
            )
            raise
        current_app.logger.info("[customers] Created customer %s in store %s", customer.id, store_id)
        return customer, True

    return run_with_retry(_op, retry_on=(IntegrityError,))


# =============================================================================
# ADMIN OPERATIONS
# =============================================================================

def create_customer(store_id: int, bundle: ContactBundle) -> tuple[Customer, bool]:
    """
    Explicit customer creation from the admin UI.

    An email already known in the store merges into that customer instead of
    creating a duplicate. Customers without an email are always created.
    """
    if normalize_email(bundle.email):
        return resolve_customer(store_id, bundle)

    customer = _new_customer(store_id, bundle)
    db.session.add(customer)
    db.session.commit()
    current_app.logger.info("[customers] Created customer %s in store %s", customer.id, store_id)
    return customer, True


def update_customer(
    store_id: int,
    customer_id: int,
    *,
    name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    address: str | None = None,
) -> Customer:
    """
    Explicit edit of primary contact fields.

    None means "leave unchanged". A replaced primary value is kept as an
    alternate so the edit never loses data. An empty phone/address clears the
    primary.

    Raises:
        NotFoundError: Customer not in this store
        ValidationError: Name or email set to empty
        ConflictError: Email already belongs to another customer in the store
    """
    customer = get_scoped_or_404(Customer, store_id, customer_id, "Customer", lock=True)

    if name is not None:
        new_name = _clean(name)
        if not new_name:
            raise ValidationError("name cannot be empty")
        if normalize_name(new_name) != normalize_name(customer.name):
            _append_alternate(customer, "alternative_names", customer.name, normalize_name)
            customer.name = new_name

    if email is not None:
        new_email = _clean(email)
        if not new_email:
            raise ValidationError("email cannot be cleared")
        email_key = normalize_email(new_email)
        if email_key != (customer.email_normalized or ""):
            other = _find_by_email(store_id, email_key)
            if other is not None and other.id != customer.id:
                raise ConflictError("Email already in use by another customer.")
            if customer.email:
                _append_alternate(customer, "alternative_emails", customer.email, normalize_email)
            customer.email = new_email
            customer.email_normalized = email_key

    if phone is not None:
        new_phone = _clean(phone)
        if normalize_phone(new_phone) != normalize_phone(customer.phone):
            if customer.phone and normalize_phone(customer.phone):
                _append_alternate(customer, "alternative_phones", customer.phone, normalize_phone)
            customer.phone = new_phone

    if address is not None:
        new_address = _clean(address)
        if normalize_address(new_address) != normalize_address(customer.address):
            if customer.address and normalize_address(customer.address):
                _append_alternate(customer, "alternative_addresses", customer.address, normalize_address)
            customer.address = new_address

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email already in use by another customer.")
    return customer


def delete_customer(store_id: int, customer_id: int) -> None:
    """
    Delete a customer with no order or return history.

    Raises:
        NotFoundError: Customer not in this store
        ConflictError: Orders or returns still reference the customer
    """
    customer = get_scoped_or_404(Customer, store_id, customer_id, "Customer")

    order_count = scoped_query(Order, store_id).filter(Order.customer_id == customer.id).count()
    return_count = scoped_query(Return, store_id).filter(Return.customer_id == customer.id).count()
    if order_count or return_count:
        raise ConflictError(
            f"Customer {customer_id} has {order_count} order(s) and {return_count} return(s) and cannot be deleted"
        )

    db.session.delete(customer)
    db.session.commit()
    current_app.logger.info("[customers] Deleted customer %s from store %s", customer_id, store_id)


# =============================================================================
# QUERIES
# =============================================================================

def get_customer(store_id: int, customer_id: int) -> Customer:
    return get_scoped_or_404(Customer, store_id, customer_id, "Customer")


def list_customers(store_id: int) -> list[Customer]:
    return scoped_query(Customer, store_id).order_by(Customer.name, Customer.id).all()


def find_customer_by_contact(
    store_id: int,
    email: str | None = None,
    phone: str | None = None,
    address: str | None = None,
) -> Customer | None:
    """
    Search primaries and alternates for any of the given contact values.

    Admin lookup only; order resolution matches on primary email alone.
    """
    email_key = normalize_email(email)
    phone_key = normalize_phone(phone)
    address_key = normalize_address(address)
    if not (email_key or phone_key or address_key):
        return None

    if email_key:
        customer = _find_by_email(store_id, email_key)
        if customer is not None:
            return customer

    for customer in list_customers(store_id):
        if email_key and contains_normalized(customer.alternative_emails or [], email, normalize_email):
            return customer
        if phone_key and contains_normalized(
            [customer.phone, *(customer.alternative_phones or [])], phone, normalize_phone
        ):
            return customer
        if address_key and contains_normalized(
            [customer.address, *(customer.alternative_addresses or [])], address, normalize_address
        ):
            return customer
    return None


def get_customer_orders(store_id: int, customer_id: int) -> list[Order]:
    customer = get_customer(store_id, customer_id)
    return (
        scoped_query(Order, store_id)
        .filter(Order.customer_id == customer.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def get_customer_summary(store_id: int, customer_id: int) -> dict:
    """
    Customer details plus order aggregates.

    total_spent_cents excludes refunded orders.
    """
    customer = get_customer(store_id, customer_id)
    row = (
        db.session.query(
            func.count(Order.id).label("order_count"),
            func.max(Order.created_at).label("last_order_at"),
        )
        .filter(Order.store_id == store_id, Order.customer_id == customer.id)
        .one()
    )
    spent = (
        db.session.query(func.coalesce(func.sum(Order.total_cents), 0))
        .filter(
            Order.store_id == store_id,
            Order.customer_id == customer.id,
            Order.status != "Refunded",
        )
        .scalar()
    )

    return {
        "customer": customer.to_dict(),
        "order_count": int(row.order_count or 0),
        "total_spent_cents": int(spent or 0),
        "last_order_at": to_utc_z(row.last_order_at) if row.last_order_at else None,
    }
