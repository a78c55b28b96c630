"""
Order Service - checkout and refund transactions

Checkout and refund are the only operations that move stock, customer
deposit and reward points together. Each runs as one database transaction:
either every row (order, items, stock counters, ledger rows, customer
balances) is written, or none is.

FLOW (checkout):
1. Idempotency replay (optional key)
2. Pricing & stock validation (pure read)
3. Shift gate
4. Payment resolution
5. Atomic write: order + items, guarded stock decrements + OUT movements,
   deposit debit, points accrual

Nothing is retried automatically. Resubmitting without an idempotency key
creates a second order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import joinedload, selectinload

from ..extensions import db
from ..models import Order, OrderItem, StockMovement, Variant
from ..models.orders import (
    ORDER_COMPLETED,
    ORDER_REFUNDED,
    ORDER_CANCELLED,
    PAYMENT_DEPOSIT,
    TAKEAWAY,
)
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from kedai.time_utils import utcnow
from .concurrency import lock_for_update, decrement_stock, increment_stock, add_to_customer
from .document_service import next_order_code
from .order_errors import (
    OrderError,
    OrderNotFound,
    AlreadyRefunded,
    OrderCancelled,
    OrderNotEditable,
    CheckoutFailed,
    RefundFailed,
)
from .payment_service import resolve_payment
from .pricing_service import price_order
from .shift_service import require_active_shift


@dataclass
class CheckoutResult:
    order: Order
    change: int
    replayed: bool = False


def points_for_total(total: int) -> int:
    """1 point per POINTS_UNIT rupiah (default Rp 10,000), rounded down."""
    unit = current_app.config.get("POINTS_UNIT", 10000)
    return max(0, total // unit)


def _order_query():
    return db.session.query(Order).options(
        selectinload(Order.items).joinedload(OrderItem.variant).joinedload(Variant.product),
        joinedload(Order.cashier),
        joinedload(Order.customer),
    )


def get_order(order_id: int) -> Order:
    order = _order_query().filter(Order.id == order_id).first()
    if order is None:
        raise OrderNotFound(order_id)
    return order


def find_by_idempotency_key(key: str) -> Order | None:
    return _order_query().filter(Order.idempotency_key == key).first()


def _replay(key: str, cashier_id: int) -> CheckoutResult | None:
    """
    Existing order for an idempotency key, or None.

    Keys are only replayed for the cashier who submitted them.
    """
    order = find_by_idempotency_key(key)
    if order is None:
        return None
    if order.cashier_id != cashier_id:
        raise CheckoutFailed(
            "Idempotency key already used by another cashier",
            details={"idempotencyKey": key},
        )
    change = order.paid - order.total if order.payment_type != PAYMENT_DEPOSIT else 0
    return CheckoutResult(order=order, change=change, replayed=True)


def checkout(
    cashier_id: int,
    items: list[dict],
    payment_type: str,
    paid: int,
    discount: int = 0,
    dine_type: str = TAKEAWAY,
    customer_id: int | None = None,
    note: str | None = None,
    idempotency_key: str | None = None,
) -> CheckoutResult:
    """
    Create a COMPLETED order.

    Args:
        cashier_id: Acting user; must own an open shift
        items: [{"variant_id", "qty", "discount"}, ...] (validated shape)
        payment_type: CASH, QRIS, CARD or DEPOSIT
        paid: Tendered amount (ignored for DEPOSIT)
        discount: Order-level discount
        idempotency_key: Replays the existing order instead of creating a new one

    Raises:
        OrderError subclasses (see order_errors) - nothing is written
    """
    if idempotency_key:
        replayed = _replay(idempotency_key, cashier_id)
        if replayed is not None:
            return replayed

    quote = price_order(items, discount)
    require_active_shift(cashier_id)
    payment = resolve_payment(payment_type, quote.total, paid, customer_id)

    try:
        # Re-validate inside the write transaction so a concurrently closed
        # shift cannot receive the order.
        shift = require_active_shift(cashier_id, lock=True)

        order = Order(
            code=next_order_code(),
            status=ORDER_COMPLETED,
            dine_type=dine_type,
            payment_type=payment_type,
            subtotal=quote.subtotal,
            discount=discount,
            total=quote.total,
            paid=payment.paid,
            note=note,
            idempotency_key=idempotency_key,
            customer_id=customer_id,
            cashier_id=cashier_id,
            shift_id=shift.id,
            created_at=utcnow(),
            points_awarded=0,
        )
        for line in quote.lines:
            order.items.append(OrderItem(
                variant_id=line.variant.id,
                qty=line.qty,
                price=line.variant.price,
                cost=line.variant.cost or 0,
                discount=line.discount,
            ))
        db.session.add(order)
        db.session.flush()

        for line in quote.lines:
            if not decrement_stock(line.variant.id, line.qty):
                raise CheckoutFailed(
                    f"Stock changed during checkout for {line.variant.display_name}",
                    details={"variantId": line.variant.id, "requested": line.qty},
                )
            db.session.add(StockMovement(
                variant_id=line.variant.id,
                type=MOVEMENT_OUT,
                qty=line.qty,
                ref_order_id=order.id,
                user_id=cashier_id,
                note=f"Order {order.code}",
                created_at=order.created_at,
            ))

        if payment_type == PAYMENT_DEPOSIT:
            add_to_customer(customer_id, deposit=-quote.total)

        if customer_id is not None:
            points = points_for_total(quote.total)
            if points > 0:
                add_to_customer(customer_id, points=points)
                order.points_awarded = points

        db.session.commit()

    except OrderError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        if idempotency_key:
            replayed = _replay(idempotency_key, cashier_id)
            if replayed is not None:
                current_app.logger.info("Checkout replayed for idempotency key %s", idempotency_key)
                return replayed
        current_app.logger.exception("Checkout integrity failure")
        raise CheckoutFailed("Order could not be saved") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Checkout transaction failed")
        raise CheckoutFailed("Order could not be saved") from exc

    current_app.logger.info(
        "Order %s created by user %s: total=%s payment=%s items=%s",
        order.code, cashier_id, order.total, payment_type, len(quote.lines),
    )
    return CheckoutResult(order=get_order(order.id), change=payment.change)


def _ensure_refundable(order: Order) -> None:
    if order.status == ORDER_REFUNDED:
        raise AlreadyRefunded(order.id)
    if order.status == ORDER_CANCELLED:
        raise OrderCancelled(order.id)
    if order.status != ORDER_COMPLETED:
        raise RefundFailed(f"Cannot refund order with status {order.status}", details={"orderId": order.id})


def refund_order(order_id: int, actor_id: int) -> Order:
    """
    Full refund of a COMPLETED order.

    Restocks every item (IN movements), returns a DEPOSIT payment to the
    customer, removes the points granted at checkout, and flips the status
    to REFUNDED. The status flip is a guarded UPDATE executed first, so two
    concurrent refunds cannot both restock.
    """
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        db.session.rollback()
        raise OrderNotFound(order_id)

    try:
        _ensure_refundable(order)

        refunded_at = utcnow()
        flipped = db.session.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == ORDER_COMPLETED)
            .values(status=ORDER_REFUNDED, refunded_at=refunded_at)
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount != 1:
            raise AlreadyRefunded(order.id)

        for item in order.items:
            if not increment_stock(item.variant_id, item.qty):
                raise RefundFailed("Variant missing for refunded item", details={"variantId": item.variant_id})
            db.session.add(StockMovement(
                variant_id=item.variant_id,
                type=MOVEMENT_IN,
                qty=item.qty,
                ref_order_id=order.id,
                user_id=actor_id,
                note=f"Refund {order.code}",
                created_at=refunded_at,
            ))

        if order.customer_id is not None:
            deposit_back = order.total if order.payment_type == PAYMENT_DEPOSIT else 0
            add_to_customer(order.customer_id, deposit=deposit_back, points=-order.points_awarded)

        db.session.commit()

    except OrderError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Refund transaction failed")
        raise RefundFailed("Refund could not be saved", details={"orderId": order_id}) from exc

    current_app.logger.info("Order %s refunded by user %s", order.code, actor_id)
    return get_order(order_id)


def update_order_note(order_id: int, note: str | None) -> Order:
    """Only the note is editable, and only while the order is not REFUNDED/CANCELLED."""
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        db.session.rollback()
        raise OrderNotFound(order_id)
    if order.status in (ORDER_REFUNDED, ORDER_CANCELLED):
        db.session.rollback()
        raise OrderNotEditable(order.id, order.status)

    order.note = note
    db.session.commit()
    return get_order(order_id)


def list_orders(
    status: str | None = None,
    q: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 200,
) -> list[Order]:
    """Newest first. `q` matches the order code case-insensitively."""
    query = _order_query()
    if status:
        query = query.filter(Order.status == status)
    if q:
        query = query.filter(Order.code.ilike(f"%{q}%"))
    if date_from is not None:
        query = query.filter(Order.created_at >= date_from)
    if date_to is not None:
        query = query.filter(Order.created_at <= date_to)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
