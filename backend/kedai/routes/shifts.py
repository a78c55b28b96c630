# Overview: Flask API routes for cashier shifts; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..services import shift_service
from ..services.shift_service import ShiftError
from ..validation import ValidationError, coerce_amount


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _notes(data: dict) -> str | None:
    notes = data.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("notes must be a string")
    return notes


@shifts_bp.get("/current")
@require_auth
def current_shift_route():
    """Active shift of the logged-in cashier (null when none)."""
    shift = shift_service.get_active_shift(g.current_user.id)
    return jsonify({"shift": shift.to_dict() if shift else None}), 200


@shifts_bp.post("/open")
@require_auth
def open_shift_route():
    """
    Request body:
    {
        "openingCash": 200000,
        "notes": "..."  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("openingCash") is None:
            return jsonify({"error": "openingCash required"}), 400
        opening_cash = coerce_amount(data["openingCash"], "openingCash")

        shift = shift_service.open_shift(g.current_user.id, opening_cash, _notes(data))
        return jsonify({"shift": shift.to_dict()}), 201

    except (ValidationError, ShiftError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/close")
@require_auth
def close_shift_route():
    """
    Request body:
    {
        "closingCash": 850000,
        "notes": "..."  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("closingCash") is None:
            return jsonify({"error": "closingCash required"}), 400
        closing_cash = coerce_amount(data["closingCash"], "closingCash")

        shift = shift_service.close_shift(g.current_user.id, closing_cash, _notes(data))
        return jsonify({"shift": shift.to_dict()}), 200

    except (ValidationError, ShiftError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error"}), 500
