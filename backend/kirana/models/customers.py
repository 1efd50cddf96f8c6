from __future__ import annotations

from ..extensions import db
from ..money import as_number
from ..time_utils import to_utc_z

CUSTOMER_ACTIVE = "ACTIVE"
CUSTOMER_DELETED = "DELETED"


class Customer(db.Model):
    """
    Store customer (credit account holder and/or milk subscriber).

    LIFECYCLE: ACTIVE -> DELETED (soft, data retained, restorable) or gone
    (hard delete cascades through every related table). Phone is the lookup
    key and is unique among customers that are not soft-deleted.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index(
            "uq_customers_phone_active",
            "phone",
            unique=True,
            sqlite_where=db.text("status = 'ACTIVE'"),
            postgresql_where=db.text("status = 'ACTIVE'"),
        ),
    )

    # Assigned from the "customers" counter, never autoincrement
    id = db.Column(db.Integer, primary_key=True, autoincrement=False)

    phone = db.Column(db.String(32), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    block = db.Column(db.String(64), nullable=True)
    villa = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(512), nullable=True)

    credit_limit = db.Column(db.Numeric(12, 2), nullable=True)

    # bcrypt hash; never serialized
    pin_hash = db.Column(db.String(128), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=CUSTOMER_ACTIVE, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def is_deleted(self) -> bool:
        return self.status == CUSTOMER_DELETED

    def __repr__(self) -> str:
        return f"<Customer id={self.id} phone={self.phone!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "phone": self.phone,
            "name": self.name,
            "block": self.block,
            "villa": self.villa,
            "address": self.address,
            "credit_limit": as_number(self.credit_limit),
            "status": self.status,
            "deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
