"""
Pricing & Stock Validator

Resolves requested lines to current variant prices and stock, computes
subtotal and total, and rejects missing variants or insufficient stock.

Pure computation over a point-in-time read: nothing is mutated here. The
order transaction re-checks stock at write time with a guarded UPDATE.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Variant
from .order_errors import VariantNotFound, InsufficientStock


@dataclass
class PricedLine:
    variant: Variant
    qty: int
    discount: int

    @property
    def line_total(self) -> int:
        return self.variant.price * self.qty - self.discount


@dataclass
class PriceQuote:
    subtotal: int
    discount: int
    total: int
    lines: list[PricedLine] = field(default_factory=list)

    @property
    def variants(self) -> dict[int, Variant]:
        return {line.variant.id: line.variant for line in self.lines}


def compute_total(subtotal: int, order_discount: int) -> int:
    return max(0, subtotal - order_discount)


def price_order(items: list[dict], order_discount: int = 0) -> PriceQuote:
    """
    Price a cart.

    items: [{"variant_id": int, "qty": int, "discount": int}, ...]

    Raises:
        VariantNotFound: a requested variant id does not exist
        InsufficientStock: a variant's stock is below the requested quantity
            (quantities for the same variant on several lines are summed)
    """
    variant_ids = {item["variant_id"] for item in items}
    variants = (
        db.session.query(Variant)
        .options(joinedload(Variant.product))
        .filter(Variant.id.in_(variant_ids))
        .all()
    )
    by_id = {v.id: v for v in variants}

    requested: dict[int, int] = {}
    for item in items:
        if item["variant_id"] not in by_id:
            raise VariantNotFound(item["variant_id"])
        requested[item["variant_id"]] = requested.get(item["variant_id"], 0) + item["qty"]

    lines = []
    subtotal = 0
    for item in items:
        variant = by_id[item["variant_id"]]
        if variant.stock < requested[variant.id]:
            raise InsufficientStock(
                variant.id,
                variant.display_name,
                requested=requested[variant.id],
                available=variant.stock,
            )
        line = PricedLine(variant=variant, qty=item["qty"], discount=item.get("discount") or 0)
        subtotal += line.line_total
        lines.append(line)

    return PriceQuote(
        subtotal=subtotal,
        discount=order_discount,
        total=compute_total(subtotal, order_discount),
        lines=lines,
    )
