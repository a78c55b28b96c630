# Overview: Service-layer operations for products; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Product, Variant
from ..models.inventory import MOVEMENT_IN
from ..validation import ValidationError, ConflictError, coerce_amount, coerce_int
from .inventory_service import record_movement


def list_products(include_inactive: bool = False) -> list[Product]:
    query = db.session.query(Product).options(selectinload(Product.variants))
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.name.asc()).all()


def _parse_variant(raw: dict, index: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"variants[{index}] must be an object")
    label = raw.get("label")
    if not isinstance(label, str) or not label.strip():
        raise ValidationError(f"variants[{index}].label is required")
    if raw.get("price") is None:
        raise ValidationError(f"variants[{index}].price is required")

    stock = coerce_int(raw.get("stock", 0), f"variants[{index}].stock")
    if stock < 0:
        raise ValidationError(f"variants[{index}].stock must be >= 0")

    threshold = raw.get("lowStockThreshold")
    if threshold is not None:
        threshold = coerce_int(threshold, f"variants[{index}].lowStockThreshold")
        if threshold < 0:
            raise ValidationError(f"variants[{index}].lowStockThreshold must be >= 0")

    sku = raw.get("sku")
    if sku is not None and not isinstance(sku, str):
        raise ValidationError(f"variants[{index}].sku must be a string")

    return {
        "label": label.strip(),
        "sku": sku.strip() if sku else None,
        "price": coerce_amount(raw["price"], f"variants[{index}].price"),
        "cost": coerce_amount(raw.get("cost", 0), f"variants[{index}].cost"),
        "stock": stock,
        "low_stock_threshold": threshold,
    }


def create_product(payload: dict, user_id: int) -> Product:
    """
    Create a product with its variants.

    Each variant's opening stock is logged as an IN movement so the ledger
    replay matches the counter from the first row.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    name = payload.get("name")
    if not isinstance(name, str) or len(name.strip()) < 2:
        raise ValidationError("name must be at least 2 characters")
    raw_variants = payload.get("variants")
    if not isinstance(raw_variants, list) or not raw_variants:
        raise ValidationError("variants must be a non-empty list")

    variants = [_parse_variant(raw, i) for i, raw in enumerate(raw_variants)]

    product = Product(
        name=name.strip(),
        category=(payload.get("category") or None),
        is_active=True,
    )
    db.session.add(product)
    try:
        for data in variants:
            variant = Variant(product=product, **data)
            db.session.add(variant)
            db.session.flush()
            if variant.stock > 0:
                record_movement(variant.id, MOVEMENT_IN, variant.stock, user_id=user_id, note="Opening stock")
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SKU already exists")

    return product
