"""
Tenant Service: Store Context Resolution and Scoping Helpers

WHY: Every operation in the back-office acts on behalf of exactly one store.
The upstream auth layer authenticates the caller and forwards the acting
store and actor; this module turns that into a validated TenantContext and
offers the query helpers every service uses to stay inside the store.

SECURITY INVARIANTS:
1. Every tenant-scoped request has g.tenant set (via @require_tenant)
2. Services receive store_id explicitly; they never read it from globals
3. Queries touching store-owned data filter by store_id
4. Rows owned by another store are reported as not found

USAGE:
    from backoffice.services.tenant_service import require_tenant, get_tenant

    @orders_bp.get("")
    @require_tenant
    def list_orders_route():
        tenant = get_tenant()
        orders = order_service.list_orders(tenant.store_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps

from flask import current_app, g, jsonify, request

from ..extensions import db
from ..models import Store
from ..validation import NotFoundError
from .concurrency import lock_for_update


STORE_HEADER = "X-Store-Id"
ACTOR_HEADER = "X-Actor-Id"
ROLE_HEADER = "X-Actor-Role"


class TenantAccessError(Exception):
    """Raised when the tenant context is missing or names an unknown store."""


@dataclass(frozen=True)
class TenantContext:
    """Acting store and actor for one request, as supplied by the auth layer."""
    store_id: int
    actor_id: str | None = None
    actor_role: str | None = None

    @property
    def actor_label(self) -> str:
        """Name recorded on timeline/history entries."""
        return self.actor_id or "System"


def require_store(store_id: int) -> Store:
    """
    Validate that a store exists.

    Raises:
        TenantAccessError if the store does not exist
    """
    store = db.session.get(Store, store_id)
    if store is None:
        raise TenantAccessError("Store not found")
    return store


def get_tenant() -> TenantContext:
    """
    Get the current TenantContext from Flask g.

    SECURITY: Raises TenantAccessError if no context was established.
    This should never happen after @require_tenant, but is a safety check.
    """
    tenant = getattr(g, "tenant", None)
    if tenant is None:
        raise TenantAccessError("Tenant context not established")
    return tenant


def require_tenant(f):
    """
    Establish tenant context from the trusted upstream headers.

    Sets g.tenant to a TenantContext. Returns 400 if the store header is
    missing or malformed and 404 if the store does not exist.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_store_id = request.headers.get(STORE_HEADER)
        if not raw_store_id:
            return jsonify({"error": "Tenant context required"}), 400

        try:
            store_id = int(raw_store_id)
        except ValueError:
            return jsonify({"error": f"{STORE_HEADER} must be an integer"}), 400

        try:
            require_store(store_id)
        except TenantAccessError as e:
            current_app.logger.warning("Rejected request for unknown store %s on %s", store_id, request.path)
            return jsonify({"error": str(e)}), 404

        g.tenant = TenantContext(
            store_id=store_id,
            actor_id=request.headers.get(ACTOR_HEADER) or None,
            actor_role=request.headers.get(ROLE_HEADER) or None,
        )
        return f(*args, **kwargs)

    return decorated_function


def scoped_query(model, store_id: int):
    """
    Base query for a store-owned model, filtered to one store.

    Usage:
        orders = scoped_query(Order, store_id).filter_by(status="Pending").all()
    """
    return db.session.query(model).filter(model.store_id == store_id)


def get_scoped_or_404(model, store_id: int, record_id: int, label: str | None = None, *, lock: bool = False):
    """
    Load a store-owned row by id.

    Raises:
        NotFoundError if the row does not exist or belongs to another store
        (never reveals that it exists elsewhere)
    """
    query = scoped_query(model, store_id).filter(model.id == record_id)
    if lock:
        query = lock_for_update(query)
    record = query.first()
    if record is None:
        raise NotFoundError(f"{label or model.__name__} {record_id} not found")
    return record
