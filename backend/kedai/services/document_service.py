"""Order code generation: POS-YYMMDD-HHMMSS-NN."""

from __future__ import annotations

import random
from datetime import datetime

from kedai.time_utils import local_now

from ..extensions import db
from ..models import Order
from .order_errors import CheckoutFailed


MAX_CODE_ATTEMPTS = 10


def make_order_code(now: datetime | None = None) -> str:
    """Timestamp plus a two-digit random suffix (10-99), local server time."""
    now = now or local_now()
    suffix = random.randint(10, 99)
    return f"POS-{now:%y%m%d-%H%M%S}-{suffix}"


def next_order_code() -> str:
    """
    Generate a code not yet used by any order.

    Codes carry a unique constraint; this loop only makes a collision at
    insert time unlikely, it does not replace the constraint.
    """
    for _ in range(MAX_CODE_ATTEMPTS):
        code = make_order_code()
        exists = db.session.query(Order.id).filter_by(code=code).first()
        if exists is None:
            return code
    raise CheckoutFailed("Could not generate a unique order code")
