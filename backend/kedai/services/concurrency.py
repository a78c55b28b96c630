# Overview: Row-locking and guarded counter updates shared by the order, refund and inventory services.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import Variant, Customer


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def decrement_stock(variant_id: int, qty: int) -> bool:
    """
    Conditionally take `qty` units from a variant.

    Runs as a single UPDATE guarded by `stock >= qty`, so two concurrent
    checkouts cannot both pass a stale read. Returns False when the guard
    fails (nothing is changed).
    """
    result = db.session.execute(
        update(Variant)
        .where(Variant.id == variant_id, Variant.stock >= qty)
        .values(stock=Variant.stock - qty)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def increment_stock(variant_id: int, qty: int) -> bool:
    """Add `qty` units (qty may be negative for adjustments; the result may not go below zero)."""
    stmt = update(Variant).where(Variant.id == variant_id)
    if qty < 0:
        stmt = stmt.where(Variant.stock >= -qty)
    result = db.session.execute(
        stmt.values(stock=Variant.stock + qty).execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def add_to_customer(customer_id: int, *, deposit: int = 0, points: int = 0) -> bool:
    """Apply deltas to a customer's balances as SQL expressions (no read-modify-write)."""
    values = {}
    if deposit:
        values["deposit"] = Customer.deposit + deposit
    if points:
        values["points"] = Customer.points + points
    if not values:
        return True
    result = db.session.execute(
        update(Customer)
        .where(Customer.id == customer_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
