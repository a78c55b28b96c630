# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

"""
Inventory Invariants (authoritative)

- Variant.stock is a materialized projection of the stock_movements ledger.
- Every stock change writes exactly one StockMovement in the same DB transaction.
- IN and OUT rows carry a positive qty; ADJUST rows carry the signed delta.
- Replaying a variant's ledger (IN +qty, OUT -qty, ADJUST +qty) reproduces
  its stock counter.
- Stock never goes below zero: decrements are guarded UPDATEs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import func, case
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Variant, StockMovement
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUST, MOVEMENT_TYPES
from kedai.time_utils import utcnow
from .concurrency import increment_stock


class InventoryError(Exception):
    """Raised for inventory operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class Reconciliation:
    variant_id: int
    stock: int
    ledger_stock: int

    @property
    def in_sync(self) -> bool:
        return self.stock == self.ledger_stock

    def to_dict(self) -> dict:
        return {
            "variantId": self.variant_id,
            "stock": self.stock,
            "ledgerStock": self.ledger_stock,
            "difference": self.stock - self.ledger_stock,
            "inSync": self.in_sync,
        }


def record_movement(
    variant_id: int,
    movement_type: str,
    qty: int,
    *,
    user_id: int | None,
    note: str | None = None,
    ref_order_id: int | None = None,
) -> StockMovement:
    """Append a ledger row to the current session (caller commits)."""
    movement = StockMovement(
        variant_id=variant_id,
        type=movement_type,
        qty=qty,
        ref_order_id=ref_order_id,
        user_id=user_id,
        note=note,
        created_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def _apply_lines(lines: list[dict], movement_type: str, user_id: int) -> list[StockMovement]:
    variant_ids = {line["variant_id"] for line in lines}
    found = {v.id for v in db.session.query(Variant.id).filter(Variant.id.in_(variant_ids))}
    missing = sorted(variant_ids - found)
    if missing:
        raise InventoryError(f"Variant not found: {missing[0]}", details={"variantIds": missing})

    movements = []
    try:
        for line in lines:
            if not increment_stock(line["variant_id"], line["qty"]):
                raise InventoryError(
                    "Adjustment would make stock negative",
                    details={"variantId": line["variant_id"], "qtyDelta": line["qty"]},
                )
            movements.append(record_movement(
                line["variant_id"],
                movement_type,
                line["qty"],
                user_id=user_id,
                note=line.get("note"),
            ))
        db.session.commit()
    except InventoryError:
        db.session.rollback()
        raise
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Inventory %s failed", movement_type)
        raise

    current_app.logger.info("Inventory %s of %s line(s) by user %s", movement_type, len(lines), user_id)
    return movements


def receive_stock(lines: list[dict], user_id: int) -> list[StockMovement]:
    """
    Receive goods: one IN movement per line, stock incremented.

    lines: [{"variant_id", "qty" > 0, "note"}]. All lines commit together.
    """
    return _apply_lines(lines, MOVEMENT_IN, user_id)


def adjust_stock(lines: list[dict], user_id: int) -> list[StockMovement]:
    """
    Manual correction (stock count, spoilage): one ADJUST movement per line
    with the signed delta. A negative delta larger than current stock is
    rejected and the whole batch rolls back.
    """
    return _apply_lines(lines, MOVEMENT_ADJUST, user_id)


def list_movements(
    variant_id: int | None = None,
    movement_type: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    q: str | None = None,
    ref_order_id: int | None = None,
    limit: int = 500,
) -> list[StockMovement]:
    if movement_type and movement_type not in MOVEMENT_TYPES:
        raise InventoryError(f"type must be one of: {', '.join(MOVEMENT_TYPES)}")

    query = db.session.query(StockMovement)
    if variant_id is not None:
        query = query.filter(StockMovement.variant_id == variant_id)
    if movement_type:
        query = query.filter(StockMovement.type == movement_type)
    if ref_order_id is not None:
        query = query.filter(StockMovement.ref_order_id == ref_order_id)
    if date_from is not None:
        query = query.filter(StockMovement.created_at >= date_from)
    if date_to is not None:
        query = query.filter(StockMovement.created_at <= date_to)
    if q:
        query = query.filter(StockMovement.note.ilike(f"%{q}%"))
    return query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit).all()


def low_stock_variants() -> list[Variant]:
    """Variants with a positive threshold whose stock is at or below it."""
    return (
        db.session.query(Variant)
        .filter(Variant.low_stock_threshold > 0, Variant.stock <= Variant.low_stock_threshold)
        .order_by(Variant.stock.asc(), Variant.id.asc())
        .all()
    )


def ledger_stock(variant_id: int) -> int:
    """Replay the ledger: IN +qty, OUT -qty, ADJUST +qty (signed)."""
    signed = case(
        (StockMovement.type == MOVEMENT_OUT, -StockMovement.qty),
        else_=StockMovement.qty,
    )
    total = (
        db.session.query(func.coalesce(func.sum(signed), 0))
        .filter(StockMovement.variant_id == variant_id)
        .scalar()
    )
    return int(total or 0)


def reconcile_variant(variant_id: int) -> Reconciliation:
    variant = db.session.get(Variant, variant_id)
    if variant is None:
        raise InventoryError(f"Variant not found: {variant_id}", details={"variantId": variant_id})
    return Reconciliation(variant_id=variant.id, stock=variant.stock, ledger_stock=ledger_stock(variant.id))
