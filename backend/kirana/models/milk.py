from __future__ import annotations

from ..extensions import db
from ..money import as_number
from ..time_utils import to_utc_z

SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_PAUSED = "paused"


def _items_out(items):
    return [
        {**item, "qty": as_number(item.get("qty")), "price": as_number(item.get("price"))}
        for item in (items or [])
    ]


class MilkSubscription(db.Model):
    """
    Daily milk subscription; at most one per customer.

    Either a flat default_qty (litres) billed per litre, or default_items
    (itemized: [{"name", "qty", "price"}]) billed per item.
    """
    __tablename__ = "milk_subscriptions"
    __table_args__ = (
        db.UniqueConstraint("customer_id", name="uq_milk_subscriptions_customer"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    default_qty = db.Column(db.Numeric(8, 3), nullable=True)
    default_items = db.Column(db.JSON, nullable=True)
    price_per_litre = db.Column(db.Numeric(12, 2), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SUBSCRIPTION_ACTIVE)
    pause_from = db.Column(db.String(10), nullable=True)
    pause_until = db.Column(db.String(10), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("milk_subscription", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "default_qty": as_number(self.default_qty),
            "default_items": _items_out(self.default_items),
            "price_per_litre": as_number(self.price_per_litre),
            "status": self.status,
            "pause_from": self.pause_from,
            "pause_until": self.pause_until,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class MilkLog(db.Model):
    """What was delivered to one customer on one day (price snapshot included)."""
    __tablename__ = "milk_logs"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "date", name="uq_milk_logs_customer_date"),
        db.Index("ix_milk_logs_month_customer", "month", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    date = db.Column(db.String(10), nullable=False)
    month = db.Column(db.String(7), nullable=False)

    qty = db.Column(db.Numeric(8, 3), nullable=False, default=0)
    items = db.Column(db.JSON, nullable=True)
    price = db.Column(db.Numeric(12, 2), nullable=True)

    marked_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "date": self.date,
            "month": self.month,
            "qty": as_number(self.qty),
            "items": _items_out(self.items),
            "price": as_number(self.price),
            "marked_at": to_utc_z(self.marked_at),
        }


class MilkPayment(db.Model):
    """Payment against a month's milk bill."""
    __tablename__ = "milk_payments"
    __table_args__ = (
        db.Index("ix_milk_payments_month_customer", "month", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    month = db.Column(db.String(7), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    note = db.Column(db.String(255), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "month": self.month,
            "amount": as_number(self.amount),
            "note": self.note,
            "paid_at": to_utc_z(self.paid_at),
        }
