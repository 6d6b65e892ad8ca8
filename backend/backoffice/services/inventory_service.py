# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

"""
Inventory Ledger Invariants (authoritative)

Stock model:
- Product.stock_quantity is the live counter; every change goes through
  apply_delta, which also appends an InventoryMovement row.
- low_stock is derived (stock_quantity <= reorder_threshold) and is never
  stored or set directly.

When stock moves:
- Order creation: -quantity (reason ORDER)
- First entry of a return into Approved/Refunded: +returned_quantity (reason RETURN)
- Manual admin adjustment (reason ADJUST)
- Order quantity edits do NOT touch stock.

Oversell policy:
- Stock may go negative by default; a negative count is the oversold signal
  and is logged as a warning.
- With INVENTORY_ALLOW_NEGATIVE_STOCK=False, a delta that would make stock
  negative raises ValidationError and nothing is written.

Concurrency:
- The product row is locked (SELECT ... FOR UPDATE) before the read-modify-
  write, and Product.version_id turns any lost update into StaleDataError.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import InventoryMovement, Product
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, validate_price_cents
from .concurrency import lock_for_update, run_with_retry
from .tenant_service import get_scoped_or_404, scoped_query


MOVEMENT_REASONS = {"ORDER", "RETURN", "ADJUST"}


def _ensure_product_in_store(store_id: int, product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None or product.store_id != store_id:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def apply_delta(
    store_id: int,
    product_id: int,
    delta: int,
    *,
    reason: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    note: str | None = None,
    commit: bool = True,
) -> Product:
    """
    Add a signed delta to a product's stock and record the movement.

    Args:
        store_id: Owning store (the product must belong to it)
        product_id: Product to adjust
        delta: Positive to credit stock, negative to take it
        reason: ORDER | RETURN | ADJUST
        reference_type/reference_id: The order/return that caused the movement
        note: Free text for the movement row
        commit: False when the caller commits as part of a larger transaction

    Returns:
        The product with its new stock_quantity (low_stock follows automatically)

    Raises:
        NotFoundError: Product not in this store
        ValidationError: Unknown reason, or oversell while negative stock is disallowed
    """
    if reason not in MOVEMENT_REASONS:
        raise ValidationError(f"Invalid movement reason '{reason}'")

    product = _ensure_product_in_store(store_id, product_id, lock=True)

    new_quantity = (product.stock_quantity or 0) + delta
    if new_quantity < 0:
        if not current_app.config.get("INVENTORY_ALLOW_NEGATIVE_STOCK", True):
            raise ValidationError(
                f"Insufficient stock. Only {product.stock_quantity} units available.",
            )
        current_app.logger.warning(
            "[inventory] Product %s in store %s oversold: stock now %s", product.id, store_id, new_quantity
        )

    product.stock_quantity = new_quantity

    db.session.add(InventoryMovement(
        store_id=store_id,
        product_id=product.id,
        reason=reason,
        quantity_delta=delta,
        resulting_quantity=new_quantity,
        reference_type=reference_type,
        reference_id=reference_id,
        note=note,
        occurred_at=utcnow(),
    ))

    if commit:
        db.session.commit()
    else:
        db.session.flush()

    if product.low_stock:
        current_app.logger.info(
            "[inventory] Product %s is low on stock (%s <= %s)",
            product.id, product.stock_quantity, product.reorder_threshold,
        )
    return product


def adjust_stock(store_id: int, product_id: int, delta: int, note: str | None = None) -> Product:
    """Manual stock correction from the admin UI, retried on lock conflicts."""
    if delta == 0:
        raise ValidationError("delta must be non-zero")

    def _op():
        return apply_delta(store_id, product_id, delta, reason="ADJUST", note=note)

    return run_with_retry(_op)


def create_product(
    store_id: int,
    name: str,
    price_cents: int,
    *,
    stock_quantity: int = 0,
    reorder_threshold: int | None = None,
    description: str | None = None,
) -> Product:
    if not name or not name.strip():
        raise ValidationError("name is required")
    price_cents = validate_price_cents(price_cents)
    if reorder_threshold is None:
        reorder_threshold = current_app.config.get("DEFAULT_REORDER_THRESHOLD", 10)
    if reorder_threshold < 0:
        raise ValidationError("reorder_threshold cannot be negative")
    if stock_quantity < 0:
        raise ValidationError("stock_quantity cannot be negative")

    product = Product(
        store_id=store_id,
        name=name.strip(),
        description=description,
        price_cents=price_cents,
        stock_quantity=stock_quantity,
        reorder_threshold=reorder_threshold,
    )
    db.session.add(product)
    db.session.commit()
    return product


def set_reorder_threshold(store_id: int, product_id: int, threshold: int) -> Product:
    """Change the low-stock threshold; low_stock is re-derived from it immediately."""
    if threshold < 0:
        raise ValidationError("reorder_threshold cannot be negative")

    def _op():
        product = _ensure_product_in_store(store_id, product_id, lock=True)
        product.reorder_threshold = threshold
        db.session.commit()
        return product

    return run_with_retry(_op)


def get_product(store_id: int, product_id: int) -> Product:
    return get_scoped_or_404(Product, store_id, product_id, "Product")


def list_products(store_id: int) -> list[Product]:
    return scoped_query(Product, store_id).order_by(Product.name, Product.id).all()


def list_low_stock_products(store_id: int) -> list[Product]:
    return (
        scoped_query(Product, store_id)
        .filter(Product.low_stock)
        .order_by(Product.stock_quantity, Product.id)
        .all()
    )


def get_movements(store_id: int, product_id: int, limit: int = 200) -> list[InventoryMovement]:
    _ensure_product_in_store(store_id, product_id)
    return (
        scoped_query(InventoryMovement, store_id)
        .filter(InventoryMovement.product_id == product_id)
        .order_by(InventoryMovement.occurred_at.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )
