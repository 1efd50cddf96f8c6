from __future__ import annotations

from ..extensions import db
from ..money import as_number
from ..time_utils import to_utc_z

ORDER_PENDING = "pending"
ORDER_PREPARING = "preparing"
ORDER_OUT_FOR_DELIVERY = "out-for-delivery"
ORDER_DELIVERED = "delivered"
ORDER_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_PENDING,
    ORDER_PREPARING,
    ORDER_OUT_FOR_DELIVERY,
    ORDER_DELIVERED,
    ORDER_CANCELLED,
)

PAYMENT_COD = "cod"
PAYMENT_ACCOUNT = "account"
PAYMENT_UPI = "upi"
PAYMENT_CASH = "cash"

PAYMENT_METHODS = (PAYMENT_COD, PAYMENT_ACCOUNT, PAYMENT_UPI, PAYMENT_CASH)


class Order(db.Model):
    """
    Customer order placed from the storefront.

    PRICING: total is always the sum of server-priced lines (plus the gift
    line price). Client-submitted prices are never stored.

    RECONCILIATION FLAGS:
    - added_to_udhar: an app_order credit for this order exists on the ledger
    - stock_restored: cancellation already released stock for every line
    - paid: an order_payment was recorded (or the order was settled off-ledger)
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_phone_created", "phone", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
    )

    # Assigned from the "orders" counter
    id = db.Column(db.Integer, primary_key=True, autoincrement=False)

    customer_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    block = db.Column(db.String(64), nullable=True)
    villa = db.Column(db.String(64), nullable=True)
    note = db.Column(db.String(512), nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    total = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(32), nullable=False, default=ORDER_PENDING, index=True)
    payment_method = db.Column(db.String(16), nullable=False, default=PAYMENT_COD)

    added_to_udhar = db.Column(db.Boolean, nullable=False, default=False)
    stock_restored = db.Column(db.Boolean, nullable=False, default=False)
    paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Snapshot of the applied free gift config (label, price), if any
    free_gift = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderLine.id",
    )

    @property
    def regular_lines(self) -> list:
        return [line for line in self.lines if not line.is_gift]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_name": self.customer_name,
            "phone": self.phone,
            "block": self.block,
            "villa": self.villa,
            "note": self.note,
            "customer_id": self.customer_id,
            "items": [line.to_dict() for line in self.lines],
            "total": as_number(self.total),
            "status": self.status,
            "payment_method": self.payment_method,
            "added_to_udhar": self.added_to_udhar,
            "stock_restored": self.stock_restored,
            "paid": self.paid,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "free_gift": self.free_gift,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderLine(db.Model):
    """Line item with the server-computed unit price snapshot."""
    __tablename__ = "order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_code = db.Column(db.String(32), nullable=True)

    name = db.Column(db.String(255), nullable=False)
    variant_label = db.Column(db.String(128), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    # Gift lines never reserve or release stock
    is_gift = db.Column(db.Boolean, nullable=False, default=False)

    def snapshot(self) -> dict:
        """Compact copy stored on ledger entries."""
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_code,
            "name": self.name,
            "qty": self.quantity,
            "price": as_number(self.unit_price),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_code,
            "name": self.name,
            "variant_label": self.variant_label,
            "quantity": self.quantity,
            "unit_price": as_number(self.unit_price),
            "line_total": as_number(self.line_total),
            "is_gift": self.is_gift,
        }
