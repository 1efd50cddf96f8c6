from __future__ import annotations

from ..extensions import db
from ..money import as_number
from ..time_utils import to_utc_z

KIND_CREDIT = "credit"
KIND_PAYMENT = "payment"
ENTRY_KINDS = (KIND_CREDIT, KIND_PAYMENT)

SOURCE_MANUAL = "manual"
SOURCE_APP_ORDER = "app_order"
SOURCE_ORDER_PAYMENT = "order_payment"
SOURCE_LEGACY_UDHAR = "legacy_udhar"
SOURCE_LEGACY_PAYMENT = "legacy_payment"

ENTRY_SOURCES = (
    SOURCE_MANUAL,
    SOURCE_APP_ORDER,
    SOURCE_ORDER_PAYMENT,
    SOURCE_LEGACY_UDHAR,
    SOURCE_LEGACY_PAYMENT,
)
LEGACY_SOURCES = (SOURCE_LEGACY_UDHAR, SOURCE_LEGACY_PAYMENT)


class LedgerEntry(db.Model):
    """
    One financial fact on a customer's account.

    INVARIANTS:
    - amount is always positive; direction comes from kind
    - balance(customer) = SUM(credit.amount) - SUM(payment.amount)
    - automated sources (app_order, order_payment, legacy_*) are never
      rewritten by the system; manual corrections go through
      ledger_service.update_entry/delete_entry
    - (source, legacy_id) is unique, so a legacy record migrates once
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.UniqueConstraint("source", "legacy_id", name="uq_ledger_entries_source_legacy"),
        db.CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
        db.Index("ix_ledger_entries_customer_date", "customer_id", "date"),
    )

    # Assigned from the "ledger" counter
    id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    note = db.Column(db.String(512), nullable=True)

    # Business date (YYYY-MM-DD); created_at is system time
    date = db.Column(db.String(10), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    source = db.Column(db.String(32), nullable=False, default=SOURCE_MANUAL, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    legacy_id = db.Column(db.Integer, nullable=True)
    items = db.Column(db.JSON, nullable=True)

    customer = db.relationship("Customer", backref=db.backref("ledger_entries", lazy=True))

    @property
    def signed_amount(self):
        return self.amount if self.kind == KIND_CREDIT else -self.amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "kind": self.kind,
            "amount": as_number(self.amount),
            "note": self.note,
            "date": self.date,
            "created_at": to_utc_z(self.created_at),
            "source": self.source,
            "order_id": self.order_id,
            "legacy_id": self.legacy_id,
            "items": self.items or [],
        }
