# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/backoffice/routes/orders.py
"""
Order API Routes

MULTI-TENANT: Every route runs behind @require_tenant; the acting store comes
from g.tenant and is passed explicitly to the order service.

STATUS CODES:
- 400: malformed payload, quantity < 1, product from another store
- 404: order/product not found in this store
- 409: status change not allowed from the current status
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import order_service, return_service
from ..services.customer_service import ContactBundle
from ..services.lifecycle_service import InvalidTransitionError, LifecycleError
from ..services.tenant_service import require_tenant, get_tenant
from ..validation import NotFoundError, ValidationError


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _product_ref(data: dict):
    """Product id (int or digit string) or a product name."""
    ref = data.get("product_id", data.get("product"))
    if isinstance(ref, str) and ref.strip().isdigit():
        return int(ref.strip())
    return ref


@orders_bp.post("")
@require_tenant
def create_order_route():
    """
    Create a new order (status: Pending).

    Request body:
    {
        "customer_name": "Ali Khan",
        "email": "ali@example.com",
        "phone": "555-1111",          (optional)
        "address": "12 Mall Road",    (optional)
        "product_id": 3,              (or "product": "Blue Kurta")
        "quantity": 2,
        "notes": "...",               (optional)
        "payment_method": "Card"      (optional)
    }

    Returns:
        201: Order created
        400: Invalid input
        404: Product not found
    """
    tenant = get_tenant()
    data = request.get_json(silent=True) or {}

    try:
        order = order_service.create_order(
            tenant.store_id,
            ContactBundle.from_payload(data),
            _product_ref(data),
            data.get("quantity"),
            notes=data.get("notes"),
            shipping_address=data.get("shipping_address"),
            payment_method=data.get("payment_method"),
            submitted_by=tenant.actor_id,
        )
        return jsonify({"order": order.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_tenant
def list_orders_route():
    """
    List orders for the store.

    Query params:
    - status: filter by status (optional)
    - email / phone: contact search on the order snapshot (optional)
    """
    tenant = get_tenant()
    email = request.args.get("email")
    phone = request.args.get("phone")

    try:
        if email or phone:
            orders = order_service.search_orders_by_contact(tenant.store_id, email=email, phone=phone)
        else:
            orders = order_service.list_orders(tenant.store_id, status=request.args.get("status"))
        return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)}), 200

    except LifecycleError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_tenant
def get_order_route(order_id: int):
    """Order details with its allowed next statuses and returns."""
    tenant = get_tenant()

    try:
        order = order_service.get_order(tenant.store_id, order_id)
        returns = return_service.get_order_returns(tenant.store_id, order_id)
        return jsonify({
            "order": order.to_dict(),
            "allowed_next_statuses": order_service.allowed_next_statuses(order.status),
            "returnable_quantity": return_service.returnable_quantity(order),
            "returns": [r.to_dict() for r in returns],
        }), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/status")
@require_tenant
def update_order_status_route(order_id: int):
    """
    Move an order to a new status.

    Request body:
    {
        "status": "Accepted"
    }

    Returns:
        200: Status changed
        400: Missing status
        404: Order not found
        409: Unknown status or transition not allowed
    """
    tenant = get_tenant()
    data = request.get_json(silent=True) or {}

    new_status = data.get("status")
    if not new_status:
        return jsonify({"error": "status is required"}), 400

    try:
        order = order_service.update_order_status(
            tenant.store_id, order_id, new_status, actor=tenant.actor_label
        )
        return jsonify({"order": order.to_dict()}), 200

    except InvalidTransitionError as e:
        return jsonify({"error": str(e)}), 409
    except LifecycleError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>")
@require_tenant
def update_order_route(order_id: int):
    """
    Edit quantity and/or notes of an order.

    Quantity edits recompute the total from the stored unit price and do not
    touch stock.
    """
    tenant = get_tenant()
    data = request.get_json(silent=True) or {}

    if "quantity" not in data and "notes" not in data:
        return jsonify({"error": "Nothing to update (expected quantity or notes)"}), 400

    try:
        order = None
        if "quantity" in data:
            order = order_service.update_order_quantity(
                tenant.store_id, order_id, data["quantity"], actor=tenant.actor_label
            )
        if "notes" in data:
            order = order_service.update_order_notes(
                tenant.store_id, order_id, data["notes"], actor=tenant.actor_label
            )
        return jsonify({"order": order.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500
