# Overview: Customer ledger: posting, listing, balances and operator corrections.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import and_, case, exists, func

from ..extensions import db
from ..models import LedgerEntry, LegacyCreditEntry, LegacyPayment
from ..models.ledger import (
    ENTRY_KINDS,
    ENTRY_SOURCES,
    KIND_CREDIT,
    KIND_PAYMENT,
    SOURCE_LEGACY_PAYMENT,
    SOURCE_LEGACY_UDHAR,
    SOURCE_MANUAL,
)
from ..money import ZERO, as_number, round_money, to_amount
from ..time_utils import month_of, parse_business_date, today_str
from ..validation import NotFoundError, ValidationError
from .customer_service import get_customer
from .sequence_service import COUNTER_LEDGER, next_id

"""
Ledger invariants (authoritative)

- Append-only from the system's point of view: automated postings
  (app_order, order_payment, legacy_*) are never rewritten.
- balance = SUM(credit.amount) - SUM(payment.amount).
- Migration window: legacy udhar rows that have no ledger entry with the
  matching (source, legacy_id) are "unmigrated" and are added to the balance
  separately. A migrated legacy row is only ever counted through its ledger
  copy, so there is no double counting at any point of the migration.
- update_entry/delete_entry are trusted operator corrections; they never touch
  stock or order state.
"""


@dataclass(frozen=True)
class BalanceView:
    customer_id: int
    total_credit: Decimal
    total_paid: Decimal
    ledger_balance: Decimal
    unmigrated_legacy_credit: Decimal
    unmigrated_legacy_paid: Decimal
    unmigrated_count: int

    @property
    def unmigrated_legacy_balance(self) -> Decimal:
        return self.unmigrated_legacy_credit - self.unmigrated_legacy_paid

    @property
    def balance(self) -> Decimal:
        return self.ledger_balance + self.unmigrated_legacy_balance

    @property
    def fully_migrated(self) -> bool:
        return self.unmigrated_count == 0

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "total_credit": as_number(self.total_credit),
            "total_paid": as_number(self.total_paid),
            "ledger_balance": as_number(self.ledger_balance),
            "unmigrated_legacy_balance": as_number(self.unmigrated_legacy_balance),
            "unmigrated_count": self.unmigrated_count,
            "fully_migrated": self.fully_migrated,
            "balance": as_number(self.balance),
        }


# =============================================================================
# POSTING
# =============================================================================

def post_entry(
    *,
    customer_id: int,
    kind: str,
    amount,
    note: str | None = None,
    date=None,
    source: str = SOURCE_MANUAL,
    order_id: int | None = None,
    legacy_id: int | None = None,
    items: list | None = None,
    include_deleted_customer: bool = False,
    entry_id: int | None = None,
    commit: bool = True,
) -> LedgerEntry:
    """
    Append one entry to a customer's ledger.

    commit=False lets callers (order fulfillment, migration) post inside
    their own transaction. Such callers pass an entry_id taken from
    next_id(COUNTER_LEDGER) before their first write.
    """
    if kind not in ENTRY_KINDS:
        raise ValidationError(f"kind must be one of {', '.join(ENTRY_KINDS)}")
    if source not in ENTRY_SOURCES:
        raise ValidationError(f"source must be one of {', '.join(ENTRY_SOURCES)}")
    try:
        value = to_amount(amount)
        business_date = parse_business_date(date) if date else today_str()
    except ValueError as exc:
        raise ValidationError(str(exc))

    customer = get_customer(customer_id, include_deleted=include_deleted_customer)

    entry = LedgerEntry(
        id=entry_id if entry_id is not None else next_id(COUNTER_LEDGER),
        customer_id=customer.id,
        kind=kind,
        amount=value,
        note=(note or "").strip() or None,
        date=business_date,
        source=source,
        order_id=order_id,
        legacy_id=legacy_id,
        items=items or None,
    )
    db.session.add(entry)
    db.session.flush()
    if commit:
        db.session.commit()
    return entry


def post_from_payload(payload: dict) -> LedgerEntry:
    """Operator posting from the admin API (always source=manual)."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    customer_id = payload.get("customerId", payload.get("customer_id"))
    if customer_id in (None, ""):
        raise ValidationError("customerId is required")
    try:
        customer_id = int(customer_id)
    except (TypeError, ValueError):
        raise ValidationError("customerId must be an integer")
    if payload.get("amount") in (None, ""):
        raise ValidationError("amount is required")
    kind = payload.get("kind") or payload.get("type") or KIND_CREDIT
    return post_entry(
        customer_id=customer_id,
        kind=kind,
        amount=payload.get("amount"),
        note=payload.get("note"),
        date=payload.get("date"),
        source=SOURCE_MANUAL,
        items=payload.get("items"),
    )


# =============================================================================
# READS
# =============================================================================

def get_entry(entry_id: int) -> LedgerEntry:
    entry = db.session.get(LedgerEntry, entry_id)
    if entry is None:
        raise NotFoundError("Ledger entry not found")
    return entry


def list_for(customer_id: int, month: str | None = None) -> list[LedgerEntry]:
    """Entries for a customer ordered by (date, created_at, id)."""
    q = db.session.query(LedgerEntry).filter(LedgerEntry.customer_id == customer_id)
    if month:
        q = q.filter(LedgerEntry.date.like(f"{month}-%"))
    return q.order_by(LedgerEntry.date, LedgerEntry.created_at, LedgerEntry.id).all()


def list_all(*, customer_id: int | None = None, source: str | None = None, limit: int = 500) -> list[LedgerEntry]:
    q = db.session.query(LedgerEntry)
    if customer_id is not None:
        q = q.filter(LedgerEntry.customer_id == customer_id)
    if source:
        q = q.filter(LedgerEntry.source == source)
    return q.order_by(LedgerEntry.date.desc(), LedgerEntry.id.desc()).limit(limit).all()


def _migrated_clause(model, source: str):
    return exists().where(
        and_(
            LedgerEntry.source == source,
            LedgerEntry.legacy_id == model.id,
        )
    )


def unmigrated_legacy_credits(customer_id: int | None = None, month: str | None = None) -> list[LegacyCreditEntry]:
    q = db.session.query(LegacyCreditEntry).filter(~_migrated_clause(LegacyCreditEntry, SOURCE_LEGACY_UDHAR))
    if customer_id is not None:
        q = q.filter(LegacyCreditEntry.customer_id == customer_id)
    if month:
        q = q.filter(LegacyCreditEntry.date.like(f"{month}-%"))
    return q.order_by(LegacyCreditEntry.date, LegacyCreditEntry.id).all()


def unmigrated_legacy_payments(customer_id: int | None = None, month: str | None = None) -> list[LegacyPayment]:
    q = db.session.query(LegacyPayment).filter(~_migrated_clause(LegacyPayment, SOURCE_LEGACY_PAYMENT))
    if customer_id is not None:
        q = q.filter(LegacyPayment.customer_id == customer_id)
    if month:
        q = q.filter(LegacyPayment.date.like(f"{month}-%"))
    return q.order_by(LegacyPayment.date, LegacyPayment.id).all()


def balance_of(customer_id: int) -> BalanceView:
    """
    All-time balance for a customer: ledger plus unmigrated legacy records.

    Once every legacy record has been migrated, balance == ledger_balance.
    """
    credit_sum = func.coalesce(
        func.sum(case((LedgerEntry.kind == KIND_CREDIT, LedgerEntry.amount), else_=0)), 0
    )
    paid_sum = func.coalesce(
        func.sum(case((LedgerEntry.kind == KIND_PAYMENT, LedgerEntry.amount), else_=0)), 0
    )
    row = (
        db.session.query(credit_sum.label("credit"), paid_sum.label("paid"))
        .filter(LedgerEntry.customer_id == customer_id)
        .one()
    )
    total_credit = round_money(row.credit or ZERO)
    total_paid = round_money(row.paid or ZERO)

    legacy_credits = unmigrated_legacy_credits(customer_id)
    legacy_payments = unmigrated_legacy_payments(customer_id)

    return BalanceView(
        customer_id=customer_id,
        total_credit=total_credit,
        total_paid=total_paid,
        ledger_balance=total_credit - total_paid,
        unmigrated_legacy_credit=round_money(sum((e.amount for e in legacy_credits), ZERO)),
        unmigrated_legacy_paid=round_money(sum((p.amount for p in legacy_payments), ZERO)),
        unmigrated_count=len(legacy_credits) + len(legacy_payments),
    )


def months_with_entries(customer_id: int) -> set[str]:
    rows = db.session.query(LedgerEntry.date).filter(LedgerEntry.customer_id == customer_id).distinct()
    return {month_of(r.date) for r in rows}


# =============================================================================
# OPERATOR CORRECTIONS
# =============================================================================

def update_entry(entry_id: int, payload: dict) -> LedgerEntry:
    """
    Correct amount/note/date on an entry. Kind, customer and source are fixed.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    entry = get_entry(entry_id)

    allowed = {"amount", "note", "date"}
    unknown = set(payload) - allowed
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    try:
        if "amount" in payload:
            entry.amount = to_amount(payload["amount"])
        if "date" in payload:
            entry.date = parse_business_date(payload["date"])
    except ValueError as exc:
        raise ValidationError(str(exc))
    if "note" in payload:
        entry.note = (payload["note"] or "").strip() or None

    db.session.commit()
    return entry


def delete_entry(entry_id: int) -> None:
    entry = get_entry(entry_id)
    db.session.delete(entry)
    db.session.commit()
