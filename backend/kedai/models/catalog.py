from __future__ import annotations

from ..extensions import db
from kedai.time_utils import to_utc_z


class Product(db.Model):
    """Menu item (e.g. "Kopi Susu"). Sold through its variants."""
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"

    def to_dict(self, include_variants: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
        }
        if include_variants:
            data["variants"] = [v.to_dict(include_product=False) for v in self.variants]
        return data


class Variant(db.Model):
    """
    Purchasable SKU of a product (e.g. "Hot - M") with its own price and stock.

    `stock` is a materialized projection of the stock_movements ledger.
    It is only changed by checkout, refund and inventory receive/adjust,
    always together with a StockMovement row.
    """
    __tablename__ = "variants"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_variants_sku"),
        db.CheckConstraint("stock >= 0", name="ck_variants_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    label = db.Column(db.String(128), nullable=False)
    sku = db.Column(db.String(64), nullable=True)

    # Whole rupiah
    price = db.Column(db.Integer, nullable=False)
    cost = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=True)

    product = db.relationship(
        "Product",
        backref=db.backref("variants", lazy=True, order_by="Variant.id"),
    )

    @property
    def display_name(self) -> str:
        return f"{self.product.name} - {self.label}"

    def __repr__(self) -> str:
        return f"<Variant id={self.id} label={self.label!r} stock={self.stock}>"

    def to_dict(self, include_product: bool = True) -> dict:
        data = {
            "id": self.id,
            "productId": self.product_id,
            "label": self.label,
            "sku": self.sku,
            "price": self.price,
            "cost": self.cost,
            "stock": self.stock,
            "lowStockThreshold": self.low_stock_threshold,
        }
        if include_product and self.product is not None:
            data["product"] = self.product.to_dict(include_variants=False)
        return data
