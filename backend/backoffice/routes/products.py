# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/backoffice/routes/products.py
"""
Product and stock routes.

Stock is only changed through the inventory ledger (orders, returns and the
/adjust endpoint); PATCH cannot set stock_quantity or low_stock directly.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import inventory_service
from ..services.tenant_service import require_tenant, get_tenant
from ..validation import NotFoundError, ValidationError, coerce_int, coerce_optional_int, optional_text


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_tenant
def list_products_route():
    tenant = get_tenant()

    try:
        products = inventory_service.list_products(tenant.store_id)
        return jsonify({"products": [p.to_dict() for p in products], "count": len(products)}), 200

    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/low-stock")
@require_tenant
def list_low_stock_route():
    """Products at or below their reorder threshold."""
    tenant = get_tenant()

    try:
        products = inventory_service.list_low_stock_products(tenant.store_id)
        return jsonify({"products": [p.to_dict() for p in products], "count": len(products)}), 200

    except Exception:
        current_app.logger.exception("Failed to list low stock products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_tenant
def create_product_route():
    """
    Create a product.

    Request body:
    {
        "name": "Blue Kurta",
        "price_cents": 5000,
        "stock_quantity": 20,       (optional, default 0)
        "reorder_threshold": 5,     (optional, default from config)
        "description": "..."        (optional)
    }
    """
    tenant = get_tenant()
    data = request.get_json(silent=True) or {}

    try:
        product = inventory_service.create_product(
            tenant.store_id,
            optional_text(data.get("name")),
            data.get("price_cents"),
            stock_quantity=coerce_optional_int(data.get("stock_quantity"), "stock_quantity") or 0,
            reorder_threshold=coerce_optional_int(data.get("reorder_threshold"), "reorder_threshold"),
            description=optional_text(data.get("description")),
        )
        return jsonify({"product": product.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>")
@require_tenant
def update_product_route(product_id: int):
    """Change the reorder threshold. low_stock follows from it."""
    tenant = get_tenant()
    data = request.get_json(silent=True) or {}

    if "low_stock" in data or "stock_quantity" in data:
        return jsonify({"error": "Stock is changed through /adjust; low_stock is derived"}), 400
    if "reorder_threshold" not in data:
        return jsonify({"error": "reorder_threshold is required"}), 400

    try:
        product = inventory_service.set_reorder_threshold(
            tenant.store_id, product_id, coerce_int(data["reorder_threshold"], "reorder_threshold")
        )
        return jsonify({"product": product.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/adjust")
@require_tenant
def adjust_stock_route(product_id: int):
    """
    Manual stock adjustment.

    Request body:
    {
        "delta": -3,
        "note": "Damaged in storage"  (optional)
    }
    """
    tenant = get_tenant()
    data = request.get_json(silent=True) or {}

    try:
        delta = coerce_int(data.get("delta"), "delta")
        product = inventory_service.adjust_stock(
            tenant.store_id, product_id, delta, note=optional_text(data.get("note"))
        )
        return jsonify({"product": product.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/movements")
@require_tenant
def list_movements_route(product_id: int):
    tenant = get_tenant()
    limit = request.args.get("limit", default=200, type=int)

    try:
        movements = inventory_service.get_movements(tenant.store_id, product_id, limit=min(max(limit, 1), 1000))
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500
