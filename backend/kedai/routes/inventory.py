# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_KASIR, ROLE_BARISTA
from ..services import inventory_service
from ..services.inventory_service import InventoryError
from ..time_utils import parse_date_range
from ..validation import ValidationError, validate_stock_lines


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/movements")
@require_auth
def list_movements_route():
    """
    Stock movement ledger, newest first.

    Query params: variantId, type (IN|OUT|ADJUST), refOrderId, from, to, q (note contains)
    """
    try:
        date_from, date_to = parse_date_range(request.args)
        movements = inventory_service.list_movements(
            variant_id=request.args.get("variantId", type=int),
            movement_type=request.args.get("type"),
            ref_order_id=request.args.get("refOrderId", type=int),
            date_from=date_from,
            date_to=date_to,
            q=request.args.get("q"),
        )
    except InventoryError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError:
        return jsonify({"error": "from/to must be ISO-8601 datetimes"}), 400

    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


@inventory_bp.post("/receive")
@require_auth
@require_role(ROLE_ADMIN, ROLE_KASIR, ROLE_BARISTA)
def receive_route():
    """
    Receive stock (IN).

    Request body:
    {
        "items": [{"variantId": 1, "qty": 24, "note": "Supplier delivery"}]
    }
    """
    try:
        lines = validate_stock_lines(request.get_json(silent=True), qty_key="qty")
        movements = inventory_service.receive_stock(lines, g.current_user.id)
        return jsonify({"movements": [m.to_dict() for m in movements]}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except InventoryError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to receive inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/adjust")
@require_auth
@require_role(ROLE_ADMIN)
def adjust_route():
    """
    Adjust stock (+/-) as ADJUST.

    Request body:
    {
        "items": [{"variantId": 1, "qtyDelta": -2, "note": "Spilled"}]
    }
    """
    try:
        lines = validate_stock_lines(request.get_json(silent=True), qty_key="qtyDelta")
        movements = inventory_service.adjust_stock(lines, g.current_user.id)
        return jsonify({"movements": [m.to_dict() for m in movements]}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except InventoryError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/low-stock")
@require_auth
def low_stock_route():
    variants = inventory_service.low_stock_variants()
    return jsonify({"variants": [v.to_dict() for v in variants]}), 200


@inventory_bp.get("/variants/<int:variant_id>/reconcile")
@require_auth
def reconcile_route(variant_id: int):
    """Compare a variant's stock counter with the replay of its ledger."""
    try:
        result = inventory_service.reconcile_variant(variant_id)
    except InventoryError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"reconciliation": result.to_dict()}), 200
