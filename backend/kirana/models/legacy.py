from __future__ import annotations

from ..extensions import db
from ..money import as_number
from ..time_utils import to_utc_z


class LegacyCreditEntry(db.Model):
    """
    Pre-ledger udhar entry ("udharEntries" in the old JSON store).

    Read-only history: rows arrive through the legacy import and are copied
    into ledger_entries by migration_service. Never deleted by migration.
    """
    __tablename__ = "udhar_entries"

    # Original id from the old store
    id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    customer_id = db.Column(db.Integer, nullable=False, index=True)
    items = db.Column(db.JSON, nullable=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    date = db.Column(db.String(10), nullable=False)
    note = db.Column(db.String(512), nullable=True)
    type = db.Column(db.String(32), nullable=False, default="purchase")
    created_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "items": self.items or [],
            "amount": as_number(self.amount),
            "date": self.date,
            "note": self.note,
            "type": self.type,
            "created_at": to_utc_z(self.created_at),
        }


class LegacyPayment(db.Model):
    """Pre-ledger udhar payment ("udharPayments" in the old JSON store)."""
    __tablename__ = "udhar_payments"

    id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    customer_id = db.Column(db.Integer, nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    method = db.Column(db.String(32), nullable=False, default="cash")
    note = db.Column(db.String(512), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    date = db.Column(db.String(10), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "amount": as_number(self.amount),
            "method": self.method,
            "note": self.note,
            "paid_at": to_utc_z(self.paid_at),
            "date": self.date,
        }
