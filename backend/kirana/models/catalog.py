from __future__ import annotations

from ..extensions import db
from ..money import as_number
from ..time_utils import to_utc_z

STOCK_OUT = "Out of Stock"
STOCK_LOW = "Low Stock"
STOCK_IN = "In Stock"
STOCK_UNTRACKED = "Untracked"


def compute_stock_status(stock_quantity: int | None, low_stock_threshold: int | None) -> str:
    """Pure function of quantity vs. threshold."""
    if stock_quantity is None:
        return STOCK_UNTRACKED
    if stock_quantity <= 0:
        return STOCK_OUT
    if stock_quantity <= (low_stock_threshold or 0):
        return STOCK_LOW
    return STOCK_IN


class Product(db.Model):
    """
    Catalog product as seen by checkout.

    STOCK: stock_quantity NULL means untracked (unlimited). When tracked it is
    only ever changed by inventory_service.reserve/release, and the reserve
    path is a conditional UPDATE so it can never go negative.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity IS NULL OR stock_quantity >= 0", name="ck_products_stock_nonneg"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Sparse unique identifiers: NULLs never collide
    sku = db.Column(db.String(64), nullable=True, unique=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)

    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    stock_quantity = db.Column(db.Integer, nullable=True)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    variants = db.relationship(
        "ProductVariant",
        backref="product",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ProductVariant.id",
    )

    @property
    def stock_status(self) -> str:
        return compute_stock_status(self.stock_quantity, self.low_stock_threshold)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "is_active": self.is_active,
            "stock_quantity": self.stock_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "stock_status": self.stock_status,
            "variants": [v.to_dict() for v in self.variants],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductVariant(db.Model):
    """Sellable unit of a product (e.g. '500 ml', '1 kg') with its price tiers."""
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("product_id", "code", name="uq_product_variants_product_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    # Client-facing variant id, e.g. "v1"
    code = db.Column(db.String(32), nullable=False)
    label = db.Column(db.String(128), nullable=False)
    in_stock = db.Column(db.Boolean, nullable=False, default=True)

    tiers = db.relationship(
        "PriceTier",
        backref="variant",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PriceTier.min_qty",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.code,
            "label": self.label,
            "in_stock": self.in_stock,
            "price_tiers": [t.to_dict() for t in self.tiers],
        }


class PriceTier(db.Model):
    """Unit price that applies from min_qty upwards."""
    __tablename__ = "price_tiers"
    __table_args__ = (
        db.UniqueConstraint("variant_id", "min_qty", name="uq_price_tiers_variant_min_qty"),
        db.CheckConstraint("min_qty >= 1", name="ck_price_tiers_min_qty"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=False, index=True)
    min_qty = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)

    def to_dict(self) -> dict:
        return {"min_qty": self.min_qty, "price": as_number(self.price)}
