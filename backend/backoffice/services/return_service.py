# Overview: Service-layer operations for returns; encapsulates business logic and database work.

"""
Return Workflow

STATE MACHINE:
    Submitted -> Approved -> Refunded
    Submitted -> Rejected

STOCK RECONCILIATION:
- The first time a return enters Approved or Refunded, returned_quantity is
  credited back to the product (reason RETURN).
- restocked_at records that credit. It is checked and written under the
  return's row lock, in the same transaction as the status change, so a
  double approval or an Approved -> Refunded move never credits twice.
- Rejected returns never touch stock and stop counting against the order.

QUANTITY RULE:
    returned_quantity <= order.quantity - (sum of other non-rejected returns)

AUDIT: history is append-only; every status change, note and refund edit
adds one entry {id, status, timestamp, actor, note}.
"""

from __future__ import annotations

import secrets
import uuid

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Order, Return
from ..time_utils import event_timestamp, utcnow
from ..validation import (
    NotFoundError,
    ValidationError,
    optional_text,
    require_positive_quantity,
    require_text,
    validate_price_cents,
)
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import apply_delta
from .lifecycle_service import require_transition, validate_status
from .order_service import active_returned_quantity, append_timeline_entry
from .tenant_service import get_scoped_or_404, scoped_query


RETURN_STATUS_SUBMITTED = "Submitted"
RETURN_STATUS_APPROVED = "Approved"
RETURN_STATUS_REJECTED = "Rejected"
RETURN_STATUS_REFUNDED = "Refunded"

RETURN_TRANSITIONS: dict[str, frozenset[str]] = {
    RETURN_STATUS_SUBMITTED: frozenset({RETURN_STATUS_APPROVED, RETURN_STATUS_REJECTED}),
    RETURN_STATUS_APPROVED: frozenset({RETURN_STATUS_REFUNDED}),
    RETURN_STATUS_REJECTED: frozenset(),
    RETURN_STATUS_REFUNDED: frozenset(),
}

# Entering either of these credits stock, once per return
RESTOCK_STATUSES = frozenset({RETURN_STATUS_APPROVED, RETURN_STATUS_REFUNDED})


def _generate_return_number() -> str:
    return f"RET-{utcnow():%Y%m%d}-{secrets.token_hex(3).upper()}"


def _history_entry(status: str, actor: str | None, note: str | None) -> dict:
    return {
        "id": uuid.uuid4().hex,
        "status": status,
        "timestamp": event_timestamp(),
        "actor": actor or "System",
        "note": note,
    }


def _append_history(ret: Return, status: str, actor: str | None, note: str | None) -> None:
    # Reassign so SQLAlchemy sees the JSON change
    ret.history = [*(ret.history or []), _history_entry(status, actor, note)]


def returnable_quantity(order: Order, *, exclude_return_id: int | None = None) -> int:
    """Units of the order not yet claimed by a non-rejected return."""
    claimed = active_returned_quantity(order.store_id, order.id, exclude_return_id=exclude_return_id)
    return max(order.quantity - claimed, 0)


def _load_order_for_return(store_id: int, order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter(Order.id == order_id)).first()
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    if order.store_id != store_id:
        raise ValidationError("Order does not belong to this store")
    return order


def create_return(
    store_id: int,
    order_id: int,
    reason: str,
    returned_quantity,
    customer_id: int | None = None,
) -> Return:
    """
    File a return request against an order.

    Raises:
        NotFoundError: Order does not exist
        ValidationError: Order from another store, empty reason, quantity < 1,
            or more units than are still returnable on the order
    """
    reason = require_text(reason, "reason")
    returned_quantity = require_positive_quantity(returned_quantity, "returned_quantity")

    def _op():
        order = _load_order_for_return(store_id, order_id)

        remaining = returnable_quantity(order)
        if returned_quantity > remaining:
            raise ValidationError(
                f"returned_quantity {returned_quantity} exceeds the {remaining} unit(s) still returnable on this order"
            )

        resolved_customer_id = order.customer_id
        if customer_id is not None:
            customer = db.session.get(Customer, customer_id)
            if customer is None or customer.store_id != store_id:
                raise ValidationError(f"Customer {customer_id} does not belong to this store")
            resolved_customer_id = customer.id

        ret = Return(
            store_id=store_id,
            return_number=_generate_return_number(),
            order_id=order.id,
            customer_id=resolved_customer_id,
            product_id=order.product_id,
            reason=reason,
            returned_quantity=returned_quantity,
            status=RETURN_STATUS_SUBMITTED,
            refund_amount_cents=order.unit_price_cents * returned_quantity,
            history=[_history_entry(RETURN_STATUS_SUBMITTED, "Customer", "Return request submitted")],
        )
        db.session.add(ret)
        db.session.flush()

        append_timeline_entry(order, f"Return request created: {ret.return_number}", "System")

        db.session.commit()
        return ret

    ret = run_with_retry(_op, retry_on=(IntegrityError,))
    current_app.logger.info(
        "[returns] Return %s (%s) created for order %s", ret.id, ret.return_number, ret.order_id
    )
    return ret


def update_return_status(
    store_id: int,
    return_id: int,
    new_status: str,
    note: str | None = None,
    actor: str | None = "System",
    refund_amount_cents=None,
) -> Return:
    """
    Move a return along its state graph, crediting stock on first approval/refund.

    Asking for the current status is an edit, not a transition: a new refund
    amount and/or note is recorded in history and stock is never touched.

    Raises:
        NotFoundError: Return not in this store
        InvalidTransitionError: new_status unknown or not directly reachable
        ValidationError: Invalid refund amount
    """
    note = optional_text(note)
    if refund_amount_cents is not None:
        refund_amount_cents = validate_price_cents(refund_amount_cents, "refund_amount_cents")

    def _op():
        ret = get_scoped_or_404(Return, store_id, return_id, "Return", lock=True)
        previous = ret.status
        if new_status == previous:
            edited = False
            if refund_amount_cents is not None and refund_amount_cents != ret.refund_amount_cents:
                old_amount = ret.refund_amount_cents
                ret.refund_amount_cents = refund_amount_cents
                _append_history(
                    ret, previous, actor,
                    note or f"Refund amount changed from {old_amount} to {refund_amount_cents}",
                )
                edited = True
            elif note:
                _append_history(ret, previous, actor, note)
                edited = True
            if edited:
                db.session.commit()
            return ret

        require_transition(RETURN_TRANSITIONS, previous, new_status, "return")

        ret.status = new_status
        if refund_amount_cents is not None:
            ret.refund_amount_cents = refund_amount_cents
        _append_history(ret, new_status, actor, note or f"Status changed from {previous} to {new_status}")

        restocked = False
        if (
            new_status in RESTOCK_STATUSES
            and previous not in RESTOCK_STATUSES
            and ret.restocked_at is None
        ):
            if ret.product_id is not None:
                apply_delta(
                    store_id,
                    ret.product_id,
                    ret.returned_quantity,
                    reason="RETURN",
                    reference_type="return",
                    reference_id=ret.id,
                    note=f"Return {ret.return_number}",
                    commit=False,
                )
                restocked = True
            else:
                current_app.logger.warning(
                    "[returns] Return %s has no product; nothing to restock", ret.id
                )
            ret.restocked_at = utcnow()

        db.session.commit()
        current_app.logger.info("[returns] Return %s moved %s -> %s", ret.id, previous, new_status)
        if restocked:
            current_app.logger.info(
                "[returns] Credited %s unit(s) of product %s for return %s",
                ret.returned_quantity, ret.product_id, ret.id,
            )
        return ret

    return run_with_retry(_op)


def get_return(store_id: int, return_id: int) -> Return:
    return get_scoped_or_404(Return, store_id, return_id, "Return")


def list_returns(store_id: int, status: str | None = None) -> list[Return]:
    query = scoped_query(Return, store_id)
    if status is not None:
        validate_status(RETURN_TRANSITIONS, status, "return")
        query = query.filter(Return.status == status)
    return query.order_by(Return.date_requested.desc(), Return.id.desc()).all()


def get_order_returns(store_id: int, order_id: int) -> list[Return]:
    order = get_scoped_or_404(Order, store_id, order_id, "Order")
    return (
        scoped_query(Return, store_id)
        .filter(Return.order_id == order.id)
        .order_by(Return.date_requested, Return.id)
        .all()
    )
