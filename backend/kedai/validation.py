from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .models.orders import DINE_TYPES, PAYMENT_TYPES, TAKEAWAY


# Maximum amount: Rp 999,999,999
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT = 999_999_999

# Primary keys are signed 64-bit on SQLite and PostgreSQL
MAX_ID = 2**63 - 1

# Per-line quantity ceiling for orders and stock movements
MAX_QTY = 100_000


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate phone)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - min_lengths: minimum stripped length for string fields
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    min_lengths: dict[str, int] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_amount(value: Any, field: str, *, allow_negative: bool = False) -> int:
    """Whole-rupiah amount in [0, MAX_AMOUNT] (or [-MAX_AMOUNT, MAX_AMOUNT])."""
    amount = coerce_int(value, field)
    if amount < 0 and not allow_negative:
        raise ValidationError(f"{field} must be >= 0")
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT:,}")
    return amount


def coerce_id(value: Any, field: str) -> int:
    """Row id in [1, MAX_ID]; larger values would overflow the database driver."""
    row_id = coerce_int(value, field)
    if row_id < 1 or row_id > MAX_ID:
        raise ValidationError(f"{field} must be a valid id")
    return row_id


def coerce_qty(value: Any, field: str) -> int:
    qty = coerce_int(value, field)
    if abs(qty) > MAX_QTY:
        raise ValidationError(f"{field} cannot exceed {MAX_QTY:,}")
    return qty


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    if isinstance(coltype, (String, Text)):
        if not isinstance(value, str):
            raise ValidationError(f"{col.key} must be a string")
        return value.strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    min_lengths = policy.min_lengths or {}

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and isinstance(val, str) and val == "":
            if not col.nullable:
                raise ValidationError(f"{k} cannot be blank")
            patch[k] = None
            continue

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        if k in min_lengths and isinstance(val, str) and len(val) < min_lengths[k]:
            raise ValidationError(f"{k} must be at least {min_lengths[k]} characters")

        patch[k] = val

    return patch


def enforce_rules_customer(patch: dict) -> None:
    email = patch.get("email")
    if email is not None and ("@" not in email or email.startswith("@") or email.endswith("@")):
        raise ValidationError("email must be a valid email address")
    if "deposit" in patch and patch["deposit"] is not None:
        patch["deposit"] = coerce_amount(patch["deposit"], "deposit")


def _optional_str(payload: dict, key: str, max_length: int | None = None) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    value = value.strip()
    if max_length and len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value or None


def validate_checkout_payload(payload: dict) -> dict:
    """
    Normalize a checkout request body.

    Returns snake_case keys with items as
    [{"variant_id": int, "qty": int, "discount": int}, ...].
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    allowed = {"customerId", "dineType", "discount", "paymentType", "paid", "note", "items", "idempotencyKey"}
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    payment_type = payload.get("paymentType")
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"paymentType must be one of: {', '.join(PAYMENT_TYPES)}")

    dine_type = payload.get("dineType") or TAKEAWAY
    if dine_type not in DINE_TYPES:
        raise ValidationError(f"dineType must be one of: {', '.join(DINE_TYPES)}")

    if "paid" not in payload or payload["paid"] is None:
        raise ValidationError("paid is required")
    paid = coerce_amount(payload["paid"], "paid")

    discount = coerce_amount(payload.get("discount") or 0, "discount")

    customer_id = payload.get("customerId")
    if customer_id is not None:
        customer_id = coerce_id(customer_id, "customerId")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if raw.get("variantId") is None:
            raise ValidationError(f"items[{index}].variantId is required")
        qty = coerce_qty(raw.get("qty"), f"items[{index}].qty")
        if qty <= 0:
            raise ValidationError(f"items[{index}].qty must be > 0")
        items.append({
            "variant_id": coerce_id(raw["variantId"], f"items[{index}].variantId"),
            "qty": qty,
            "discount": coerce_amount(raw.get("discount") or 0, f"items[{index}].discount"),
        })

    return {
        "customer_id": customer_id,
        "dine_type": dine_type,
        "discount": discount,
        "payment_type": payment_type,
        "paid": paid,
        "note": _optional_str(payload, "note"),
        "idempotency_key": _optional_str(payload, "idempotencyKey", max_length=128),
        "items": items,
    }


def validate_order_edit_payload(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(set(payload) - {"note"})
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")
    return {"note": _optional_str(payload, "note")}


def validate_stock_lines(payload: dict, *, qty_key: str) -> list[dict]:
    """
    Normalize an inventory receive/adjust body: {"items": [{variantId, <qty_key>, note?}]}.

    qty_key="qty" (receive) requires qty > 0; qty_key="qtyDelta" (adjust) requires a non-zero delta.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if raw.get("variantId") is None:
            raise ValidationError(f"items[{index}].variantId is required")
        qty = coerce_qty(raw.get(qty_key), f"items[{index}].{qty_key}")
        if qty_key == "qty" and qty <= 0:
            raise ValidationError(f"items[{index}].qty must be > 0")
        if qty == 0:
            raise ValidationError(f"items[{index}].{qty_key} cannot be 0")
        lines.append({
            "variant_id": coerce_id(raw["variantId"], f"items[{index}].variantId"),
            "qty": qty,
            "note": _optional_str(raw, "note", max_length=255),
        })
    return lines
