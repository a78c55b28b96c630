from __future__ import annotations

from ..extensions import db
from kedai.time_utils import to_utc_z


ORDER_PENDING = "PENDING"
ORDER_COMPLETED = "COMPLETED"
ORDER_CANCELLED = "CANCELLED"
ORDER_REFUNDED = "REFUNDED"
ORDER_STATUSES = (ORDER_PENDING, ORDER_COMPLETED, ORDER_CANCELLED, ORDER_REFUNDED)

DINE_IN = "DINE_IN"
TAKEAWAY = "TAKEAWAY"
DINE_TYPES = (DINE_IN, TAKEAWAY)

PAYMENT_CASH = "CASH"
PAYMENT_QRIS = "QRIS"
PAYMENT_CARD = "CARD"
PAYMENT_DEPOSIT = "DEPOSIT"
PAYMENT_TYPES = (PAYMENT_CASH, PAYMENT_QRIS, PAYMENT_CARD, PAYMENT_DEPOSIT)


class Order(db.Model):
    """
    Completed checkout.

    LIFECYCLE:
    - COMPLETED: created by checkout
    - REFUNDED: full refund applied (terminal)
    - CANCELLED: terminal, never set by checkout/refund
    PENDING exists for reporting and is never written here.

    All amounts are whole rupiah. `points_awarded` records the loyalty
    accrual so a refund reverses exactly what was granted.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_orders_code"),
        db.UniqueConstraint("idempotency_key", name="uq_orders_idempotency_key"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable code (e.g. "POS-260118-093012-47")
    code = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ORDER_COMPLETED, index=True)
    dine_type = db.Column(db.String(16), nullable=False, default=TAKEAWAY)
    payment_type = db.Column(db.String(16), nullable=False, index=True)

    subtotal = db.Column(db.Integer, nullable=False)
    discount = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False)
    paid = db.Column(db.Integer, nullable=False)
    points_awarded = db.Column(db.Integer, nullable=False, default=0)

    note = db.Column(db.Text, nullable=True)
    idempotency_key = db.Column(db.String(128), nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    cashier = db.relationship("User", backref=db.backref("orders", lazy=True))
    shift = db.relationship("Shift", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        lazy=True,
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "status": self.status,
            "dineType": self.dine_type,
            "paymentType": self.payment_type,
            "subtotal": self.subtotal,
            "discount": self.discount,
            "total": self.total,
            "paid": self.paid,
            "pointsAwarded": self.points_awarded,
            "note": self.note,
            "customerId": self.customer_id,
            "cashierId": self.cashier_id,
            "shiftId": self.shift_id,
            "createdAt": to_utc_z(self.created_at),
            "refundedAt": to_utc_z(self.refunded_at) if self.refunded_at else None,
            "items": [item.to_dict() for item in self.items],
            "cashier": self.cashier.to_dict() if self.cashier else None,
            "customer": self.customer.to_dict() if self.customer else None,
        }


class OrderItem(db.Model):
    """
    Line on an order.

    price/cost/discount are a snapshot taken at sale time, decoupled from
    the variant's current price.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)

    qty = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Integer, nullable=False)
    cost = db.Column(db.Integer, nullable=False, default=0)
    discount = db.Column(db.Integer, nullable=False, default=0)

    order = db.relationship("Order", back_populates="items")
    variant = db.relationship("Variant")

    @property
    def line_total(self) -> int:
        return self.price * self.qty - self.discount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "variantId": self.variant_id,
            "qty": self.qty,
            "price": self.price,
            "cost": self.cost,
            "discount": self.discount,
            "lineTotal": self.line_total,
            "variant": self.variant.to_dict() if self.variant else None,
        }
