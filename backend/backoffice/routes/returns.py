# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

# backend/backoffice/routes/returns.py
"""
Return Processing API Routes

WORKFLOW:
- Create a return against an order (status: Submitted)
- Approve or reject it
- Refund an approved return
Stock is credited back once, on the first move into Approved or Refunded.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import return_service
from ..services.lifecycle_service import InvalidTransitionError, LifecycleError
from ..services.tenant_service import require_tenant, get_tenant
from ..validation import NotFoundError, ValidationError, coerce_optional_int


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@require_tenant
def create_return_route():
    """
    Create a return request.

    Request body:
    {
        "order_id": 12,
        "reason": "Wrong size",
        "returned_quantity": 1,
        "customer_id": 4  (optional, defaults to the order's customer)
    }

    Returns:
        201: Return created with Submitted status
        400: Invalid input or more units than remain returnable
        404: Order not found
    """
    tenant = get_tenant()
    data = request.get_json(silent=True) or {}

    try:
        order_id = coerce_optional_int(data.get("order_id"), "order_id")
        if order_id is None:
            return jsonify({"error": "order_id is required"}), 400

        ret = return_service.create_return(
            tenant.store_id,
            order_id,
            data.get("reason"),
            data.get("returned_quantity", data.get("quantity")),
            customer_id=coerce_optional_int(data.get("customer_id"), "customer_id"),
        )
        return jsonify({"return": ret.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("")
@require_tenant
def list_returns_route():
    """List returns for the store, optionally filtered by ?status= or ?order_id=."""
    tenant = get_tenant()
    order_id = request.args.get("order_id", type=int)

    try:
        if order_id is not None:
            returns = return_service.get_order_returns(tenant.store_id, order_id)
        else:
            returns = return_service.list_returns(tenant.store_id, status=request.args.get("status"))
        return jsonify({"returns": [r.to_dict() for r in returns], "count": len(returns)}), 200

    except LifecycleError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<int:return_id>")
@require_tenant
def get_return_route(return_id: int):
    tenant = get_tenant()

    try:
        ret = return_service.get_return(tenant.store_id, return_id)
        return jsonify({"return": ret.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/status")
@require_tenant
def update_return_status_route(return_id: int):
    """
    Change the status of a return.

    Request body:
    {
        "status": "Approved",
        "note": "Item inspected",          (optional)
        "refund_amount_cents": 4500        (optional)
    }

    Returns:
        200: Updated return
        400: Missing status or bad refund amount
        404: Return not found
        409: Unknown status or transition not allowed
    """
    tenant = get_tenant()
    data = request.get_json(silent=True) or {}

    new_status = data.get("status")
    if not new_status:
        return jsonify({"error": "status is required"}), 400

    try:
        ret = return_service.update_return_status(
            tenant.store_id,
            return_id,
            new_status,
            note=data.get("note"),
            actor=tenant.actor_label,
            refund_amount_cents=data.get("refund_amount_cents"),
        )
        return jsonify({"return": ret.to_dict()}), 200

    except InvalidTransitionError as e:
        return jsonify({"error": str(e)}), 409
    except (LifecycleError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update return status")
        return jsonify({"error": "Internal server error"}), 500
