# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""Order checkout, refund and note-edit routes."""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..services import order_service
from ..services.order_errors import OrderError
from ..time_utils import parse_date_range
from ..validation import ValidationError, validate_checkout_payload, validate_order_edit_payload
from ..models.orders import ORDER_STATUSES


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@orders_bp.get("/")
@require_auth
def list_orders_route():
    """
    List orders, newest first.

    Query params: status, q (code contains), from, to (ISO-8601)
    """
    status = request.args.get("status")
    if status and status not in ORDER_STATUSES:
        return jsonify({"error": f"status must be one of: {', '.join(ORDER_STATUSES)}"}), 400
    try:
        date_from, date_to = parse_date_range(request.args)
    except ValueError:
        return jsonify({"error": "from/to must be ISO-8601 datetimes"}), 400

    orders = order_service.list_orders(
        status=status,
        q=request.args.get("q"),
        date_from=date_from,
        date_to=date_to,
    )
    return jsonify({"orders": [order.to_dict() for order in orders]}), 200


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
    except OrderError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("")
@orders_bp.post("/")
@require_auth
def checkout_route():
    """
    Checkout.

    Request body:
    {
        "customerId": 3,              (optional; required for DEPOSIT)
        "dineType": "TAKEAWAY",       (DINE_IN | TAKEAWAY, default TAKEAWAY)
        "discount": 0,
        "paymentType": "CASH",        (CASH | QRIS | CARD | DEPOSIT)
        "paid": 60000,
        "note": "less sugar",         (optional)
        "idempotencyKey": "...",      (optional; also read from Idempotency-Key header)
        "items": [{"variantId": 1, "qty": 3, "discount": 0}]
    }

    201 with the new order, 200 when an idempotency key replays an existing one.
    """
    try:
        data = validate_checkout_payload(request.get_json(silent=True))
        if not data["idempotency_key"]:
            header_key = (request.headers.get("Idempotency-Key") or "").strip()
            data["idempotency_key"] = header_key[:128] or None

        result = order_service.checkout(cashier_id=g.current_user.id, **data)

        status = 200 if result.replayed else 201
        return jsonify({"order": result.order.to_dict(), "change": result.change}), status

    except ValidationError as e:
        return jsonify({"error": str(e), "code": "ValidationError", "details": {}}), 400
    except OrderError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to checkout order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>")
@require_auth
def edit_order_route(order_id: int):
    """Edit the note of a non-refunded, non-cancelled order."""
    try:
        data = validate_order_edit_payload(request.get_json(silent=True))
        order = order_service.update_order_note(order_id, data["note"])
        return jsonify({"order": order.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e), "code": "ValidationError", "details": {}}), 400
    except OrderError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to edit order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/refund")
@require_auth
def refund_order_route(order_id: int):
    """Full refund of a COMPLETED order. No body."""
    try:
        order = order_service.refund_order(order_id, g.current_user.id)
        return jsonify({"order": order.to_dict()}), 200

    except OrderError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to refund order")
        return jsonify({"error": "Internal server error"}), 500
