"""
Order Lifecycle Service

WHY: An order is the one place where customer identity, pricing, payment
state and stock meet. This module owns every status and quantity change so
the invariants below hold no matter which route or job drives the order.

STATE MACHINE:
    Pending -> Accepted -> Paid -> Shipped -> Completed
    Paid | Shipped | Completed -> Refunded

    Pending is the only initial state. Refunded has no outgoing edges and
    Completed only leads to Refunded. Returns may still be filed against a
    Completed order (see return_service.py).

PAYMENT STATE (derived from status on every transition):
    Pending, Accepted          -> is_paid=False, payment_status="pending"
    Paid, Shipped, Completed   -> is_paid=True,  payment_status="paid"
    Refunded                   -> is_paid=False, payment_status="refunded"

INVARIANTS:
- total_cents == unit_price_cents * quantity after create and every quantity edit
- timeline is append-only
- stock is taken once, at creation; quantity edits never touch inventory

PARTIAL FAILURE: The customer is resolved (and committed) before the order
is validated against the product. If the order then fails, the customer
merge stands on its own.
"""

from __future__ import annotations

import secrets
import uuid

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order, Product, Return
from ..time_utils import event_timestamp, utcnow
from ..validation import NotFoundError, ValidationError, optional_text, require_positive_quantity
from .concurrency import run_with_retry
from .contact_normalizer import normalize_email, normalize_phone
from .customer_service import ContactBundle, resolve_customer
from .inventory_service import apply_delta
from .lifecycle_service import require_transition, validate_status
from .tenant_service import get_scoped_or_404, scoped_query


# =============================================================================
# ORDER STATUS CONSTANTS
# =============================================================================

ORDER_STATUS_PENDING = "Pending"
ORDER_STATUS_ACCEPTED = "Accepted"
ORDER_STATUS_PAID = "Paid"
ORDER_STATUS_SHIPPED = "Shipped"
ORDER_STATUS_COMPLETED = "Completed"
ORDER_STATUS_REFUNDED = "Refunded"

ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    ORDER_STATUS_PENDING: frozenset({ORDER_STATUS_ACCEPTED}),
    ORDER_STATUS_ACCEPTED: frozenset({ORDER_STATUS_PAID}),
    ORDER_STATUS_PAID: frozenset({ORDER_STATUS_SHIPPED, ORDER_STATUS_REFUNDED}),
    ORDER_STATUS_SHIPPED: frozenset({ORDER_STATUS_COMPLETED, ORDER_STATUS_REFUNDED}),
    ORDER_STATUS_COMPLETED: frozenset({ORDER_STATUS_REFUNDED}),
    ORDER_STATUS_REFUNDED: frozenset(),
}

PAYMENT_STATE_BY_STATUS: dict[str, tuple[bool, str]] = {
    ORDER_STATUS_PENDING: (False, "pending"),
    ORDER_STATUS_ACCEPTED: (False, "pending"),
    ORDER_STATUS_PAID: (True, "paid"),
    ORDER_STATUS_SHIPPED: (True, "paid"),
    ORDER_STATUS_COMPLETED: (True, "paid"),
    ORDER_STATUS_REFUNDED: (False, "refunded"),
}


def allowed_next_statuses(status: str) -> list[str]:
    validate_status(ORDER_TRANSITIONS, status, "order")
    return sorted(ORDER_TRANSITIONS[status])


def payment_state_for(status: str) -> tuple[bool, str]:
    """(is_paid, payment_status) implied by an order status."""
    validate_status(ORDER_TRANSITIONS, status, "order")
    return PAYMENT_STATE_BY_STATUS[status]


# =============================================================================
# TIMELINE
# =============================================================================

def append_timeline_entry(order: Order, description: str, actor: str | None) -> dict:
    """Append one entry to the order timeline. Does not commit."""
    entry = {
        "id": uuid.uuid4().hex,
        "description": description,
        "timestamp": event_timestamp(),
        "actor": actor or "System",
    }
    # Reassign so SQLAlchemy sees the JSON change
    order.timeline = [*(order.timeline or []), entry]
    return entry


# =============================================================================
# ORDER CREATION
# =============================================================================

def _generate_order_number() -> str:
    return f"ORD-{utcnow():%Y%m%d}-{secrets.token_hex(3).upper()}"


def _resolve_product(store_id: int, product_ref) -> Product:
    """
    Find the ordered product by id or by (case-insensitive) name.

    Raises:
        NotFoundError: No such product
        ValidationError: Product belongs to another store, or is inactive
    """
    if isinstance(product_ref, int) and not isinstance(product_ref, bool):
        product = db.session.get(Product, product_ref)
        if product is None:
            raise NotFoundError(f"Product {product_ref} not found")
        if product.store_id != store_id:
            raise ValidationError("Product does not belong to this store")
    elif isinstance(product_ref, str) and product_ref.strip():
        product = (
            scoped_query(Product, store_id)
            .filter(func.lower(Product.name) == product_ref.strip().lower())
            .order_by(Product.id)
            .first()
        )
        if product is None:
            raise NotFoundError(f'Product "{product_ref}" not found')
    else:
        raise ValidationError("product is required")

    if not product.is_active:
        raise ValidationError(f'Product "{product.name}" is inactive')
    return product


def create_order(
    store_id: int,
    customer_bundle: ContactBundle,
    product_ref,
    quantity,
    notes: str | None = None,
    *,
    shipping_address: dict | str | None = None,
    payment_method: str | None = None,
    submitted_by: str | None = None,
) -> Order:
    """
    Create a Pending order for one product.

    Steps:
    1. Validate the contact bundle and quantity
    2. Resolve/merge the customer (committed on its own)
    3. Resolve the product within the store
    4. Snapshot contact and price, write the order with its first timeline
       entry, and take stock, in one transaction

    Raises:
        ValidationError: Missing name/email, quantity < 1, product from another store
        NotFoundError: Product does not exist
    """
    customer_name = optional_text(customer_bundle.name)
    if not customer_name:
        raise ValidationError("customer name is required")
    if not normalize_email(customer_bundle.email):
        raise ValidationError("email is required")
    quantity = require_positive_quantity(quantity)

    customer, _ = resolve_customer(store_id, customer_bundle)
    customer_id = customer.id

    if shipping_address is None and customer_bundle.address:
        shipping_address = {"address": customer_bundle.address}
    elif isinstance(shipping_address, str):
        shipping_address = {"address": shipping_address}

    def _op():
        product = _resolve_product(store_id, product_ref)

        order = Order(
            store_id=store_id,
            order_number=_generate_order_number(),
            customer_id=customer_id,
            product_id=product.id,
            product_name=product.name,
            customer_name=customer_name,
            email=optional_text(customer_bundle.email),
            phone=optional_text(customer_bundle.phone),
            shipping_address=shipping_address,
            quantity=quantity,
            unit_price_cents=product.price_cents,
            total_cents=product.price_cents * quantity,
            status=ORDER_STATUS_PENDING,
            is_paid=False,
            payment_status="pending",
            payment_method=optional_text(payment_method) or "Card",
            notes=optional_text(notes),
            submitted_by=submitted_by,
            timeline=[],
        )
        append_timeline_entry(order, "Order created", customer_name)
        db.session.add(order)
        db.session.flush()

        apply_delta(
            store_id,
            product.id,
            -quantity,
            reason="ORDER",
            reference_type="order",
            reference_id=order.id,
            note=f"Order {order.order_number}",
            commit=False,
        )

        db.session.commit()
        return order

    try:
        order = run_with_retry(_op, retry_on=(IntegrityError,))
    except (ValidationError, NotFoundError):
        # Drop the flushed order; the customer step is already committed
        db.session.rollback()
        raise
    current_app.logger.info("[orders] New order received: %s (%s)", order.id, order.order_number)
    return order


# =============================================================================
# ORDER MUTATIONS
# =============================================================================

def update_order_status(store_id: int, order_id: int, new_status: str, actor: str | None = "System") -> Order:
    """
    Move an order along its state graph.

    Appends a timeline entry and re-derives is_paid/payment_status.

    Raises:
        NotFoundError: Order not in this store
        InvalidTransitionError: new_status unknown or not directly reachable (including same status)
    """
    def _op():
        order = get_scoped_or_404(Order, store_id, order_id, "Order", lock=True)
        previous = order.status
        require_transition(ORDER_TRANSITIONS, previous, new_status, "order")

        order.status = new_status
        order.is_paid, order.payment_status = PAYMENT_STATE_BY_STATUS[new_status]
        append_timeline_entry(order, f"Status changed from {previous} to {new_status}", actor)

        db.session.commit()
        current_app.logger.info("[orders] Order %s moved %s -> %s", order.id, previous, new_status)
        return order

    return run_with_retry(_op)


def active_returned_quantity(store_id: int, order_id: int, *, exclude_return_id: int | None = None) -> int:
    """Units already claimed by non-rejected returns of an order."""
    query = db.session.query(func.coalesce(func.sum(Return.returned_quantity), 0)).filter(
        Return.store_id == store_id,
        Return.order_id == order_id,
        Return.status != "Rejected",
    )
    if exclude_return_id is not None:
        query = query.filter(Return.id != exclude_return_id)
    return int(query.scalar() or 0)


def update_order_quantity(store_id: int, order_id: int, new_quantity, actor: str | None = "System") -> Order:
    """
    Change the ordered quantity and recompute the total from the stored unit price.

    Stock is not adjusted.

    Raises:
        ValidationError: new_quantity < 1, or below units already being returned
        NotFoundError: Order not in this store
    """
    new_quantity = require_positive_quantity(new_quantity)

    def _op():
        order = get_scoped_or_404(Order, store_id, order_id, "Order", lock=True)

        already_returned = active_returned_quantity(store_id, order.id)
        if new_quantity < already_returned:
            raise ValidationError(
                f"quantity cannot be less than the {already_returned} unit(s) already being returned"
            )

        order.quantity = new_quantity
        order.total_cents = order.unit_price_cents * new_quantity
        append_timeline_entry(order, "Order updated (quantity)", actor)

        db.session.commit()
        return order

    return run_with_retry(_op)


def update_order_notes(store_id: int, order_id: int, notes: str | None, actor: str | None = "System") -> Order:
    def _op():
        order = get_scoped_or_404(Order, store_id, order_id, "Order", lock=True)
        order.notes = optional_text(notes)
        append_timeline_entry(order, "Order updated (notes)", actor)
        db.session.commit()
        return order

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_order(store_id: int, order_id: int) -> Order:
    return get_scoped_or_404(Order, store_id, order_id, "Order")


def list_orders(store_id: int, status: str | None = None) -> list[Order]:
    query = scoped_query(Order, store_id)
    if status is not None:
        validate_status(ORDER_TRANSITIONS, status, "order")
        query = query.filter(Order.status == status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def search_orders_by_contact(store_id: int, email: str | None = None, phone: str | None = None) -> list[Order]:
    """Orders whose snapshot email or phone matches after normalization."""
    email_key = normalize_email(email)
    phone_key = normalize_phone(phone)
    if not (email_key or phone_key):
        return []

    matches = []
    for order in list_orders(store_id):
        if email_key and normalize_email(order.email) == email_key:
            matches.append(order)
        elif phone_key and normalize_phone(order.phone) == phone_key:
            matches.append(order)
    return matches
