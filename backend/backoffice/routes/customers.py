# Overview: Flask API routes for customer operations; parses input and returns JSON responses.

# backend/backoffice/routes/customers.py
"""
Customer management routes.

Customers are normally created implicitly by orders (matched on the primary
email). These routes cover the admin screens: list/search, explicit create,
edit of primary contact fields, and deletion of customers with no history.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import customer_service
from ..services.customer_service import ContactBundle
from ..services.tenant_service import require_tenant, get_tenant
from ..validation import ConflictError, NotFoundError, ValidationError


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_tenant
def list_customers_route():
    """
    List customers, or look one up by contact details.

    Query params (all optional):
    - email, phone, address: search primaries and alternates
    """
    tenant = get_tenant()
    email = request.args.get("email")
    phone = request.args.get("phone")
    address = request.args.get("address")

    try:
        if email or phone or address:
            match = customer_service.find_customer_by_contact(
                tenant.store_id, email=email, phone=phone, address=address
            )
            customers = [match] if match is not None else []
        else:
            customers = customer_service.list_customers(tenant.store_id)
        return jsonify({"customers": [c.to_dict() for c in customers], "count": len(customers)}), 200

    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("")
@require_tenant
def create_customer_route():
    """
    Create a customer.

    If the email already belongs to a customer in this store, the details are
    merged into that customer and 200 is returned instead of 201.
    """
    tenant = get_tenant()
    data = request.get_json(silent=True) or {}

    try:
        customer, created = customer_service.create_customer(tenant.store_id, ContactBundle.from_payload(data))
        return jsonify({"customer": customer.to_dict(), "created": created}), (201 if created else 200)

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_tenant
def get_customer_route(customer_id: int):
    """Customer details with order count, total spent and last order date."""
    tenant = get_tenant()

    try:
        return jsonify(customer_service.get_customer_summary(tenant.store_id, customer_id)), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.patch("/<int:customer_id>")
@require_tenant
def update_customer_route(customer_id: int):
    """
    Edit primary contact fields.

    Request body (any subset):
    {"name": "...", "email": "...", "phone": "...", "address": "..."}
    """
    tenant = get_tenant()
    data = request.get_json(silent=True) or {}

    try:
        customer = customer_service.update_customer(
            tenant.store_id,
            customer_id,
            name=data.get("name"),
            email=data.get("email"),
            phone=data.get("phone"),
            address=data.get("address"),
        )
        return jsonify({"customer": customer.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.delete("/<int:customer_id>")
@require_tenant
def delete_customer_route(customer_id: int):
    tenant = get_tenant()

    try:
        customer_service.delete_customer(tenant.store_id, customer_id)
        return jsonify({"ok": True}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/orders")
@require_tenant
def get_customer_orders_route(customer_id: int):
    tenant = get_tenant()

    try:
        orders = customer_service.get_customer_orders(tenant.store_id, customer_id)
        return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get customer orders")
        return jsonify({"error": "Internal server error"}), 500
