# Overview: Flask API routes for customers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..models import Customer
from ..models.auth import ROLE_ADMIN
from ..services import customer_service
from ..services.customer_service import CustomerError
from ..validation import (
    ValidationError,
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_customer,
)


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")

CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "deposit"},
    required_on_create={"name"},
    min_lengths={"name": 2, "phone": 6},
)

UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email"},
    min_lengths={"name": 2, "phone": 6},
)


@customers_bp.get("")
@customers_bp.get("/")
@require_auth
def list_customers_route():
    """Search by name/phone/email with skip/take pagination (take capped at 100)."""
    customers, total = customer_service.list_customers(
        q=request.args.get("q"),
        skip=request.args.get("skip", 0, type=int),
        take=request.args.get("take", 50, type=int),
    )
    return jsonify({"customers": [c.to_dict() for c in customers], "total": total}), 200


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
    except CustomerError as e:
        return jsonify({"error": str(e)}), e.status_code
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.post("")
@customers_bp.post("/")
@require_auth
def create_customer_route():
    """
    Request body:
    {
        "name": "Sari",
        "phone": "08123456789",   (optional)
        "email": "sari@mail.id",  (optional)
        "deposit": 50000          (optional opening balance)
    }
    """
    try:
        patch = validate_payload(
            model=Customer,
            payload=request.get_json(silent=True),
            policy=CREATE_POLICY,
            partial=False,
        )
        enforce_rules_customer(patch)
        customer = customer_service.create_customer(**patch)
        return jsonify({"customer": customer.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CustomerError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    try:
        patch = validate_payload(
            model=Customer,
            payload=request.get_json(silent=True),
            policy=UPDATE_POLICY,
            partial=True,
        )
        enforce_rules_customer(patch)
        customer = customer_service.update_customer(customer_id, patch)
        return jsonify({"customer": customer.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CustomerError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(customer_id)
        return jsonify({"ok": True}), 200
    except CustomerError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500
