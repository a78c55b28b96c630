"""
Payment Resolver

Determines the effective paid amount for an order and validates deposit
eligibility.

RULES:
- CASH / QRIS / CARD: tendered amount must cover the total
- DEPOSIT: requires an existing customer; the balance does NOT have to
  cover the total (the shop lets customers run a tab, so the deposit may
  go negative). Effective paid is always the total.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Customer
from ..models.orders import PAYMENT_DEPOSIT
from .order_errors import InsufficientPayment, CustomerRequired, CustomerNotFound


@dataclass(frozen=True)
class ResolvedPayment:
    payment_type: str
    paid: int
    change: int
    customer: Customer | None = None


def resolve_payment(
    payment_type: str,
    total: int,
    paid: int,
    customer_id: int | None = None,
) -> ResolvedPayment:
    customer = None
    if customer_id is not None:
        customer = db.session.get(Customer, customer_id)
        if customer is None:
            raise CustomerNotFound(customer_id)

    if payment_type == PAYMENT_DEPOSIT:
        if customer_id is None:
            raise CustomerRequired()
        return ResolvedPayment(payment_type=payment_type, paid=total, change=0, customer=customer)

    if paid < total:
        raise InsufficientPayment(paid, total)

    return ResolvedPayment(payment_type=payment_type, paid=paid, change=paid - total, customer=customer)
