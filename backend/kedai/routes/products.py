# Overview: Flask API routes for products and variants; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN
from ..services import products_service
from ..validation import ValidationError, ConflictError


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@products_bp.get("/")
@require_auth
def list_products_route():
    include_inactive = request.args.get("all", "").lower() in ("1", "true", "yes")
    products = products_service.list_products(include_inactive=include_inactive)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.post("")
@products_bp.post("/")
@require_auth
@require_role(ROLE_ADMIN)
def create_product_route():
    """
    Request body:
    {
        "name": "Kopi Susu",
        "category": "Coffee",
        "variants": [
            {"label": "Hot - M", "price": 20000, "cost": 8000, "stock": 50, "sku": "KS-HM", "lowStockThreshold": 5}
        ]
    }
    """
    try:
        product = products_service.create_product(request.get_json(silent=True), g.current_user.id)
        return jsonify({"product": product.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500
