# Overview: One-time copy of legacy udhar records into the ledger, and the JSON store import that feeds it.

from __future__ import annotations

import json
import logging
from pathlib import Path

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import LedgerEntry, LegacyCreditEntry, LegacyPayment
from ..models.ledger import KIND_CREDIT, KIND_PAYMENT, SOURCE_LEGACY_PAYMENT, SOURCE_LEGACY_UDHAR
from ..money import to_amount
from ..time_utils import parse_business_date, parse_iso_datetime, today_str
from ..validation import NotFoundError, ValidationError
from . import ledger_service

"""
Migration invariants (authoritative)

- Idempotent: a legacy record is copied only when no ledger entry carries the
  same (source, legacy_id). The unique constraint on that pair catches a
  concurrent run; the loser counts the record as skipped.
- Each record is committed on its own, so an interrupted run leaves a
  consistent state and the balance view stays correct throughout (unmigrated
  rows keep being counted from the legacy tables).
- Legacy rows are never deleted or modified.
"""

logger = logging.getLogger(__name__)


def _copy_one(legacy_row, *, kind: str, source: str, note, items) -> bool:
    """Returns True when a ledger entry was created."""
    try:
        entry = ledger_service.post_entry(
            customer_id=legacy_row.customer_id,
            kind=kind,
            amount=legacy_row.amount,
            note=note,
            date=legacy_row.date,
            source=source,
            legacy_id=legacy_row.id,
            items=items,
            include_deleted_customer=True,
            commit=False,
        )
        if getattr(legacy_row, "created_at", None) is not None:
            entry.created_at = legacy_row.created_at
        elif getattr(legacy_row, "paid_at", None) is not None:
            entry.created_at = legacy_row.paid_at
        db.session.commit()
        return True
    except IntegrityError:
        db.session.rollback()
        logger.info("Legacy %s #%s already migrated by a concurrent run", source, legacy_row.id)
        return False


def migrate_legacy_to_ledger() -> dict:
    """
    Copy every unmigrated legacy credit and payment into ledger_entries.

    Returns {"migrated_credits", "migrated_payments", "skipped_orphans"}.
    A second run returns zero counts.
    """
    migrated_credits = 0
    migrated_payments = 0
    orphans = 0

    credit_ids = [e.id for e in ledger_service.unmigrated_legacy_credits()]
    for legacy_id in credit_ids:
        row = db.session.get(LegacyCreditEntry, legacy_id)
        try:
            if _copy_one(row, kind=KIND_CREDIT, source=SOURCE_LEGACY_UDHAR, note=row.note, items=row.items):
                migrated_credits += 1
        except NotFoundError:
            db.session.rollback()
            orphans += 1
            logger.warning("Legacy udhar entry #%s references unknown customer %s", row.id, row.customer_id)

    payment_ids = [p.id for p in ledger_service.unmigrated_legacy_payments()]
    for legacy_id in payment_ids:
        row = db.session.get(LegacyPayment, legacy_id)
        note = row.note or (row.method.upper() if row.method else None)
        try:
            if _copy_one(row, kind=KIND_PAYMENT, source=SOURCE_LEGACY_PAYMENT, note=note, items=None):
                migrated_payments += 1
        except NotFoundError:
            db.session.rollback()
            orphans += 1
            logger.warning("Legacy udhar payment #%s references unknown customer %s", row.id, row.customer_id)

    logger.info(
        "Legacy migration finished: %s credits, %s payments, %s orphans",
        migrated_credits, migrated_payments, orphans,
    )
    return {
        "migrated_credits": migrated_credits,
        "migrated_payments": migrated_payments,
        "skipped_orphans": orphans,
    }


def migration_status() -> dict:
    legacy_credits = db.session.query(LegacyCreditEntry).count()
    legacy_payments = db.session.query(LegacyPayment).count()
    migrated = (
        db.session.query(LedgerEntry)
        .filter(LedgerEntry.source.in_((SOURCE_LEGACY_UDHAR, SOURCE_LEGACY_PAYMENT)))
        .count()
    )
    return {
        "legacy_credits": legacy_credits,
        "legacy_payments": legacy_payments,
        "migrated": migrated,
        "pending": len(ledger_service.unmigrated_legacy_credits()) + len(ledger_service.unmigrated_legacy_payments()),
    }


# =============================================================================
# LEGACY JSON STORE IMPORT
# =============================================================================

def _legacy_credit_from_json(raw: dict) -> LegacyCreditEntry:
    return LegacyCreditEntry(
        id=int(raw["id"]),
        customer_id=int(raw["customerId"]),
        items=raw.get("items") or None,
        amount=to_amount(raw.get("amount")),
        date=parse_business_date(raw.get("date") or today_str()),
        note=raw.get("note") or None,
        type=raw.get("type") or "purchase",
        created_at=parse_iso_datetime(raw["createdAt"]) if raw.get("createdAt") else None,
    )


def _legacy_payment_from_json(raw: dict) -> LegacyPayment:
    paid_at = parse_iso_datetime(raw["paidAt"]) if raw.get("paidAt") else None
    date = raw.get("date") or (paid_at.date().isoformat() if paid_at else today_str())
    return LegacyPayment(
        id=int(raw["id"]),
        customer_id=int(raw["customerId"]),
        amount=to_amount(raw.get("amount")),
        method=raw.get("method") or "cash",
        note=raw.get("note") or None,
        paid_at=paid_at,
        date=parse_business_date(date),
    )


def import_legacy_store(path) -> dict:
    """
    Load udharEntries/udharPayments from an old JSON store into the legacy
    tables. Ids already present are skipped; malformed rows abort the import.
    """
    store_path = Path(path)
    try:
        data = json.loads(store_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise NotFoundError(f"Legacy store not found: {store_path}")
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Legacy store is not valid JSON: {exc}")
    if not isinstance(data, dict):
        raise ValidationError("Legacy store must be a JSON object")

    existing_credit_ids = {r.id for r in db.session.query(LegacyCreditEntry.id)}
    existing_payment_ids = {r.id for r in db.session.query(LegacyPayment.id)}

    imported_credits = 0
    imported_payments = 0
    try:
        for raw in data.get("udharEntries") or []:
            if int(raw["id"]) in existing_credit_ids:
                continue
            db.session.add(_legacy_credit_from_json(raw))
            existing_credit_ids.add(int(raw["id"]))
            imported_credits += 1
        for raw in data.get("udharPayments") or []:
            if int(raw["id"]) in existing_payment_ids:
                continue
            db.session.add(_legacy_payment_from_json(raw))
            existing_payment_ids.add(int(raw["id"]))
            imported_payments += 1
    except (KeyError, TypeError, ValueError) as exc:
        db.session.rollback()
        raise ValidationError(f"Malformed legacy record: {exc}")

    db.session.commit()
    logger.info("Imported %s legacy credits and %s legacy payments from %s",
                imported_credits, imported_payments, store_path)
    return {"imported_credits": imported_credits, "imported_payments": imported_payments}
