# Overview: Customer directory: lookups, registration, soft/hard delete lifecycle.

from __future__ import annotations

import logging
import re

import bcrypt

from ..extensions import db
from ..models import (
    Customer,
    LedgerEntry,
    LegacyCreditEntry,
    LegacyPayment,
    MilkLog,
    MilkPayment,
    MilkSubscription,
    Order,
)
from ..models.customers import CUSTOMER_ACTIVE, CUSTOMER_DELETED
from ..time_utils import utcnow
from ..validation import ConflictError, ModelValidationPolicy, NotFoundError, ValidationError, validate_payload
from .sequence_service import COUNTER_CUSTOMERS, next_id

"""
Customer lifecycle

ACTIVE --soft_delete--> DELETED --restore--> ACTIVE
  |                        |
  +-------hard_delete------+--> row and every related row removed

Every lookup here filters DELETED customers unless include_deleted=True.
"""

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^\+?\d{7,15}$")

CUSTOMER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "block", "villa", "address", "credit_limit"},
    required_on_create={"name", "phone"},
    aliases={"creditLimit": "credit_limit"},
)


def normalize_phone(phone) -> str:
    value = re.sub(r"[\s\-()]", "", str(phone or ""))
    if not PHONE_RE.match(value):
        raise ValidationError("phone must be 7-15 digits")
    return value


def hash_pin(pin: str) -> str:
    """bcrypt hash of a customer PIN (4-8 digits)."""
    pin = str(pin or "")
    if not pin.isdigit() or not 4 <= len(pin) <= 8:
        raise ValidationError("PIN must be 4-8 digits")
    return bcrypt.hashpw(pin.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_pin(customer: Customer, pin: str) -> bool:
    if not customer.pin_hash or not pin:
        return False
    try:
        return bcrypt.checkpw(str(pin).encode("utf-8"), customer.pin_hash.encode("utf-8"))
    except ValueError:
        return False


def _base_query(include_deleted: bool):
    q = db.session.query(Customer)
    if not include_deleted:
        q = q.filter(Customer.status == CUSTOMER_ACTIVE)
    return q


def find_by_phone(phone: str, *, include_deleted: bool = False) -> Customer | None:
    try:
        normalized = normalize_phone(phone)
    except ValidationError:
        return None
    return (
        _base_query(include_deleted)
        .filter(Customer.phone == normalized)
        .order_by(Customer.id.desc())
        .first()
    )


def find_by_id(customer_id: int, *, include_deleted: bool = False) -> Customer | None:
    return _base_query(include_deleted).filter(Customer.id == customer_id).first()


def get_customer(customer_id: int, *, include_deleted: bool = False) -> Customer:
    customer = find_by_id(customer_id, include_deleted=include_deleted)
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def list_customers(*, include_deleted: bool = False) -> list[Customer]:
    return _base_query(include_deleted).order_by(Customer.name, Customer.id).all()


def create_customer(payload: dict, *, pin: str | None = None) -> Customer:
    """
    Register a customer. Phone must be unique among non-deleted customers.
    """
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_CREATE_POLICY, partial=False)
    patch["phone"] = normalize_phone(patch["phone"])
    if patch.get("credit_limit") is not None and patch["credit_limit"] < 0:
        raise ValidationError("credit_limit must be >= 0")

    if find_by_phone(patch["phone"]) is not None:
        raise ConflictError("Phone already registered")

    customer = Customer(id=next_id(COUNTER_CUSTOMERS), status=CUSTOMER_ACTIVE, **patch)
    if pin:
        customer.pin_hash = hash_pin(pin)
    db.session.add(customer)
    db.session.commit()
    logger.info("Customer %s registered", customer.id)
    return customer


def soft_delete(customer_id: int) -> Customer:
    customer = get_customer(customer_id)
    customer.status = CUSTOMER_DELETED
    customer.deleted_at = utcnow()
    db.session.commit()
    return customer


def restore(customer_id: int) -> Customer:
    customer = get_customer(customer_id, include_deleted=True)
    if not customer.is_deleted:
        return customer
    if find_by_phone(customer.phone) is not None:
        raise ConflictError("Another active customer already uses this phone")
    customer.status = CUSTOMER_ACTIVE
    customer.deleted_at = None
    db.session.commit()
    return customer


def hard_delete(customer_id: int) -> dict:
    """
    Remove a customer and every related row (explicit admin action only).

    Returns per-table delete counts.
    """
    customer = get_customer(customer_id, include_deleted=True)
    cid = customer.id

    order_ids = [row.id for row in db.session.query(Order.id).filter(Order.customer_id == cid)]

    counts = {
        "ledger_entries": db.session.query(LedgerEntry).filter(LedgerEntry.customer_id == cid).delete(synchronize_session=False),
        "legacy_credits": db.session.query(LegacyCreditEntry).filter(LegacyCreditEntry.customer_id == cid).delete(synchronize_session=False),
        "legacy_payments": db.session.query(LegacyPayment).filter(LegacyPayment.customer_id == cid).delete(synchronize_session=False),
        "milk_logs": db.session.query(MilkLog).filter(MilkLog.customer_id == cid).delete(synchronize_session=False),
        "milk_payments": db.session.query(MilkPayment).filter(MilkPayment.customer_id == cid).delete(synchronize_session=False),
        "milk_subscriptions": db.session.query(MilkSubscription).filter(MilkSubscription.customer_id == cid).delete(synchronize_session=False),
    }

    # Relationship collections loaded earlier still point at bulk-deleted rows
    db.session.expire(customer)

    # ORM delete so order lines cascade
    for order in db.session.query(Order).filter(Order.id.in_(order_ids)).all():
        db.session.delete(order)
    counts["orders"] = len(order_ids)

    db.session.delete(customer)
    db.session.commit()
    logger.warning("Customer %s hard-deleted: %s", cid, counts)
    return counts
