"""
Customer Service

Profile CRUD only. Balances (points, deposit) are set once at creation and
afterwards move only through checkout and refund.
"""

from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Order


MAX_PAGE_SIZE = 100


class CustomerError(Exception):
    """Raised for customer operation errors."""
    status_code = 400


class CustomerNotFoundError(CustomerError):
    status_code = 404


class DuplicateCustomerError(CustomerError):
    status_code = 409


def _check_unique(phone: str | None, email: str | None, exclude_id: int | None = None) -> None:
    clauses = []
    if phone:
        clauses.append(Customer.phone == phone)
    if email:
        clauses.append(Customer.email == email)
    if not clauses:
        return
    query = db.session.query(Customer.id).filter(or_(*clauses))
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first() is not None:
        raise DuplicateCustomerError("Phone or email already exists")


def _commit_or_duplicate() -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateCustomerError("Phone or email already exists")


def list_customers(q: str | None = None, skip: int = 0, take: int = 50) -> tuple[list[Customer], int]:
    query = db.session.query(Customer)
    if q:
        pattern = f"%{q}%"
        query = query.filter(or_(
            Customer.name.ilike(pattern),
            Customer.phone.ilike(pattern),
            Customer.email.ilike(pattern),
        ))
    total = query.count()
    take = max(1, min(take, MAX_PAGE_SIZE))
    customers = (
        query.order_by(Customer.created_at.desc(), Customer.id.desc())
        .offset(max(0, skip))
        .limit(take)
        .all()
    )
    return customers, total


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFoundError("Customer not found")
    return customer


def create_customer(name: str, phone: str | None = None, email: str | None = None, deposit: int = 0) -> Customer:
    _check_unique(phone, email)
    customer = Customer(name=name, phone=phone, email=email, points=0, deposit=deposit or 0)
    db.session.add(customer)
    _commit_or_duplicate()
    return customer


def update_customer(customer_id: int, patch: dict) -> Customer:
    customer = get_customer(customer_id)
    _check_unique(patch.get("phone"), patch.get("email"), exclude_id=customer.id)
    for key in ("name", "phone", "email"):
        if key in patch:
            setattr(customer, key, patch[key])
    _commit_or_duplicate()
    return customer


def delete_customer(customer_id: int) -> None:
    """Customers referenced by orders are kept for order history."""
    customer = get_customer(customer_id)
    if db.session.query(Order.id).filter_by(customer_id=customer.id).first() is not None:
        raise CustomerError("Customer has orders and cannot be deleted")
    db.session.delete(customer)
    db.session.commit()
