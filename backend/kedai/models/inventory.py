from __future__ import annotations

from ..extensions import db
from kedai.time_utils import to_utc_z


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUST = "ADJUST"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUST)


class StockMovement(db.Model):
    """
    Append-only ledger of stock changes.

    QTY SEMANTICS:
    - IN: qty > 0, adds to stock
    - OUT: qty > 0, removes from stock
    - ADJUST: signed delta

    IMMUTABLE: Records are never updated or deleted. Replaying a variant's
    movements reproduces its stock counter.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_variant_created", "variant_id", "created_at"),
        db.Index("ix_stock_movements_ref_order", "ref_order_id"),
        db.CheckConstraint("type IN ('IN', 'OUT', 'ADJUST')", name="ck_stock_movements_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False)

    type = db.Column(db.String(8), nullable=False, index=True)
    qty = db.Column(db.Integer, nullable=False)

    ref_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    variant = db.relationship("Variant", backref=db.backref("movements", lazy="dynamic"))
    ref_order = db.relationship("Order")
    user = db.relationship("User")

    @property
    def signed_qty(self) -> int:
        if self.type == MOVEMENT_OUT:
            return -self.qty
        return self.qty

    def __repr__(self) -> str:
        return f"<StockMovement id={self.id} {self.type} {self.qty} variant={self.variant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variantId": self.variant_id,
            "type": self.type,
            "qty": self.qty,
            "refOrderId": self.ref_order_id,
            "userId": self.user_id,
            "note": self.note,
            "createdAt": to_utc_z(self.created_at),
        }
