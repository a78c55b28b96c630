"""
Cashier Shift Service

DESIGN PRINCIPLES:
- One open shift per cashier at a time
- Shifts are immutable once closed
- Checkout is only allowed while the cashier has an open shift
"""

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Shift, User
from kedai.time_utils import utcnow
from .concurrency import lock_for_update
from .order_errors import NoActiveShift


class ShiftError(Exception):
    """Raised for shift management errors."""
    pass


def get_active_shift(cashier_id: int, *, lock: bool = False) -> Shift | None:
    query = db.session.query(Shift).filter(
        Shift.cashier_id == cashier_id,
        Shift.closed_at.is_(None),
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def require_active_shift(cashier_id: int, *, lock: bool = False) -> Shift:
    """Shift gate for checkout. Raises NoActiveShift when the cashier has no open shift."""
    shift = get_active_shift(cashier_id, lock=lock)
    if shift is None:
        raise NoActiveShift(cashier_id)
    return shift


def open_shift(cashier_id: int, opening_cash: int, notes: str | None = None) -> Shift:
    """
    Open a new shift for a cashier.

    The cashier row is locked first so two concurrent opens serialize; the
    partial unique index on (cashier_id) WHERE closed_at IS NULL backs this
    up on databases that ignore FOR UPDATE.
    """
    lock_for_update(db.session.query(User).filter_by(id=cashier_id)).first()

    if get_active_shift(cashier_id) is not None:
        db.session.rollback()
        raise ShiftError("Shift already open")

    shift = Shift(
        cashier_id=cashier_id,
        opened_at=utcnow(),
        opening_cash=opening_cash,
        notes=notes,
    )
    db.session.add(shift)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ShiftError("Shift already open")

    current_app.logger.info("Shift %s opened by user %s", shift.id, cashier_id)
    return shift


def close_shift(cashier_id: int, closing_cash: int, notes: str | None = None) -> Shift:
    shift = get_active_shift(cashier_id, lock=True)
    if shift is None:
        db.session.rollback()
        raise ShiftError("No active shift")

    shift.closed_at = utcnow()
    shift.closing_cash = closing_cash
    if notes is not None:
        shift.notes = notes
    db.session.commit()

    current_app.logger.info("Shift %s closed by user %s", shift.id, cashier_id)
    return shift
