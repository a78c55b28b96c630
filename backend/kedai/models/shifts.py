from __future__ import annotations

from ..extensions import db
from kedai.time_utils import to_utc_z


class Shift(db.Model):
    """
    Cashier shift.

    LIFECYCLE:
    - open: closed_at IS NULL, checkouts allowed
    - closed: closed_at set, closing cash counted

    At most one open shift per cashier (partial unique index).
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_one_open_per_cashier",
            "cashier_id",
            unique=True,
            sqlite_where=db.text("closed_at IS NULL"),
            postgresql_where=db.text("closed_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Whole rupiah
    opening_cash = db.Column(db.Integer, nullable=False, default=0)
    closing_cash = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)

    cashier = db.relationship("User", backref=db.backref("shifts", lazy=True))

    @property
    def is_open(self) -> bool:
        return self.closed_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cashierId": self.cashier_id,
            "openedAt": to_utc_z(self.opened_at),
            "closedAt": to_utc_z(self.closed_at) if self.closed_at else None,
            "openingCash": self.opening_cash,
            "closingCash": self.closing_cash,
            "notes": self.notes,
        }
