# Overview: Monthly customer statements and store-wide milk billing, derived on demand.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import or_

from ..extensions import db
from ..models import Customer, MilkLog, MilkPayment, MilkSubscription, Order
from ..models.customers import CUSTOMER_ACTIVE
from ..models.ledger import KIND_CREDIT, SOURCE_APP_ORDER, SOURCE_LEGACY_PAYMENT, SOURCE_LEGACY_UDHAR
from ..models.orders import ORDER_CANCELLED
from ..money import ZERO, as_number, round_money
from ..time_utils import current_month, parse_month, to_utc_z
from ..validation import ValidationError
from . import ledger_service, settings_service
from .customer_service import get_customer, list_customers
from .milk_service import items_amount, items_litres

"""
Billing semantics (authoritative)

- Nothing here is stored; every figure is folded from source rows.
- A monthly statement merges milk deliveries, milk payments, app orders that
  are NOT on the ledger, ledger entries dated in the month, and legacy udhar
  rows that have not been migrated yet. Orders on the ledger
  (added_to_udhar) show up through their app_order credit only.
- outstanding = (milkTotal + orderTotal + udharTotal) - paymentsTotal is a
  monthly figure. It is not the all-time balance; the statement carries the
  all-time BalanceView alongside it.
"""

TYPE_MILK = "milk"
TYPE_ORDER = "order"
TYPE_UDHAR = "udhar"
TYPE_PAYMENT = "payment"
TYPE_UDHAR_PAYMENT = "udhar_payment"

PAYMENT_TYPES = (TYPE_PAYMENT, TYPE_UDHAR_PAYMENT)


def _month_bounds(month: str) -> tuple[datetime, datetime]:
    start = datetime.strptime(month, "%Y-%m")
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def _summarize_items(items, fallback: str) -> str:
    names = [str(i.get("name")) for i in (items or []) if i.get("name")]
    if not names:
        return fallback
    text = ", ".join(names[:2])
    if len(names) > 2:
        text += f" +{len(names) - 2} more"
    return text


def milk_log_amount(log: MilkLog, subscription: MilkSubscription | None, store_price: Decimal) -> Decimal:
    """Itemized: sum(qty * price). Flat: qty * (log price, else subscription price, else store price)."""
    if log.items:
        return items_amount(log.items)
    price = log.price
    if price is None and subscription is not None:
        price = subscription.price_per_litre
    if price is None:
        price = store_price
    return round_money(Decimal(log.qty) * Decimal(price))


def milk_log_litres(log: MilkLog) -> Decimal:
    if log.items:
        return items_litres(log.items)
    return Decimal(log.qty)


# =============================================================================
# PER-CUSTOMER STATEMENT
# =============================================================================

def _statement_row(*, id: str, date: str, type: str, source: str, description: str,
                   amount: Decimal, time, note: str | None = None, **extra) -> dict:
    row = {
        "id": id,
        "date": date,
        "type": type,
        "source": source,
        "description": description,
        "amount": round_money(amount),
        "debit": type not in PAYMENT_TYPES,
        "time": to_utc_z(time) if isinstance(time, datetime) else time,
        "note": note or "",
    }
    row.update(extra)
    return row


def _milk_rows(customer: Customer, month: str, store_price: Decimal) -> list[dict]:
    subscription = customer.milk_subscription
    rows = []
    logs = db.session.query(MilkLog).filter_by(customer_id=customer.id, month=month).all()
    for log in logs:
        litres = milk_log_litres(log)
        rows.append(_statement_row(
            id=f"milk_{log.id}",
            date=log.date,
            type=TYPE_MILK,
            source="SUBSCRIPTION",
            description=_summarize_items(log.items, f"Milk delivery - {as_number(litres)}L"),
            amount=milk_log_amount(log, subscription, store_price),
            time=log.marked_at,
        ))

    payments = db.session.query(MilkPayment).filter_by(customer_id=customer.id, month=month).all()
    for p in payments:
        paid_date = p.paid_at.date().isoformat() if p.paid_at else f"{month}-01"
        # A payment recorded later for this month's bill is still shown in the month
        if not paid_date.startswith(month):
            paid_date = f"{month}-01"
        rows.append(_statement_row(
            id=f"milkpay_{p.id}",
            date=paid_date,
            type=TYPE_PAYMENT,
            source="PAYMENT",
            description=f"Milk payment - {p.note or 'Cash'}",
            amount=p.amount,
            time=p.paid_at,
            note=p.note,
        ))
    return rows


def _order_rows(customer: Customer, month: str) -> list[dict]:
    start, end = _month_bounds(month)
    orders = (
        db.session.query(Order)
        .filter(
            or_(Order.customer_id == customer.id, Order.phone == customer.phone),
            Order.status != ORDER_CANCELLED,
            Order.added_to_udhar.is_(False),
            Order.created_at >= start,
            Order.created_at < end,
        )
        .all()
    )
    rows = []
    for o in orders:
        rows.append(_statement_row(
            id=f"order_{o.id}",
            date=o.created_at.date().isoformat(),
            type=TYPE_ORDER,
            source="APP",
            description=f"App order #{o.id} - " + _summarize_items([{"name": l.name} for l in o.lines], "items"),
            amount=o.total,
            time=o.created_at,
            note=o.note,
            order_id=o.id,
            order_status=o.status,
        ))
    return rows


def _ledger_rows(customer: Customer, month: str) -> list[dict]:
    rows = []
    for e in ledger_service.list_for(customer.id, month):
        if e.kind == KIND_CREDIT:
            if e.source == SOURCE_APP_ORDER:
                fallback = f"App order #{e.order_id}" if e.order_id else "App order"
            else:
                fallback = e.note or "Store purchase"
            rows.append(_statement_row(
                id=f"ledger_{e.id}",
                date=e.date,
                type=TYPE_UDHAR,
                source="LEGACY" if e.source == SOURCE_LEGACY_UDHAR else "STORE",
                description=_summarize_items(e.items, fallback),
                amount=e.amount,
                time=e.created_at,
                note=e.note,
                ledger_id=e.id,
                ledger_source=e.source,
                order_id=e.order_id,
            ))
        else:
            rows.append(_statement_row(
                id=f"ledger_{e.id}",
                date=e.date,
                type=TYPE_UDHAR_PAYMENT,
                source="LEGACY" if e.source == SOURCE_LEGACY_PAYMENT else "PAYMENT",
                description=f"Payment received - {e.note or 'Cash'}",
                amount=e.amount,
                time=e.created_at,
                note=e.note,
                ledger_id=e.id,
                ledger_source=e.source,
                order_id=e.order_id,
            ))
    return rows


def _legacy_rows(customer: Customer, month: str) -> list[dict]:
    rows = []
    for e in ledger_service.unmigrated_legacy_credits(customer.id, month):
        rows.append(_statement_row(
            id=f"udhar_{e.id}",
            date=e.date,
            type=TYPE_UDHAR,
            source="STORE",
            description=_summarize_items(e.items, e.note or "Store purchase"),
            amount=e.amount,
            time=e.created_at,
            note=e.note,
            legacy_id=e.id,
        ))
    for p in ledger_service.unmigrated_legacy_payments(customer.id, month):
        rows.append(_statement_row(
            id=f"udpay_{p.id}",
            date=p.date,
            type=TYPE_UDHAR_PAYMENT,
            source="PAYMENT",
            description=f"Payment received - {p.method or 'Cash'}",
            amount=p.amount,
            time=p.paid_at,
            note=p.note,
            legacy_id=p.id,
        ))
    return rows


def monthly_statement(customer_id: int, month: str | None = None) -> dict:
    """
    Unified month view for one customer: entries sorted by (date, time) plus
    category totals and the all-time balance.
    """
    try:
        month = parse_month(month)
    except ValueError as exc:
        raise ValidationError(str(exc))
    customer = get_customer(customer_id, include_deleted=True)
    store_price = settings_service.get_milk_price()

    entries = []
    entries.extend(_milk_rows(customer, month, store_price))
    entries.extend(_order_rows(customer, month))
    entries.extend(_ledger_rows(customer, month))
    entries.extend(_legacy_rows(customer, month))
    entries.sort(key=lambda e: (e["date"], e["time"] or ""))

    def _total(*types) -> Decimal:
        return round_money(sum((e["amount"] for e in entries if e["type"] in types), ZERO))

    milk_total = _total(TYPE_MILK)
    order_total = _total(TYPE_ORDER)
    udhar_total = _total(TYPE_UDHAR)
    payments_total = _total(*PAYMENT_TYPES)
    total_debits = milk_total + order_total + udhar_total

    return {
        "month": month,
        "customer": customer.to_dict(),
        "entries": entries,
        "summary": {
            "milkTotal": milk_total,
            "orderTotal": order_total,
            "udharTotal": udhar_total,
            "paymentsTotal": payments_total,
            "totalDebits": total_debits,
            "outstanding": total_debits - payments_total,
        },
        "balance": ledger_service.balance_of(customer.id),
    }


def statement_to_json(statement: dict) -> dict:
    return {
        **statement,
        "entries": [{**e, "amount": as_number(e["amount"])} for e in statement["entries"]],
        "summary": {k: as_number(v) for k, v in statement["summary"].items()},
        "balance": statement["balance"].to_dict(),
    }


def activity_months(customer_id: int) -> list[str]:
    """Months with any activity for a customer, newest first (current month always included)."""
    customer = get_customer(customer_id, include_deleted=True)
    months = {current_month()}

    months.update(r.month for r in db.session.query(MilkLog.month).filter_by(customer_id=customer.id).distinct())
    months.update(r.month for r in db.session.query(MilkPayment.month).filter_by(customer_id=customer.id).distinct())
    months.update(ledger_service.months_with_entries(customer.id))
    months.update(e.date[:7] for e in ledger_service.unmigrated_legacy_credits(customer.id))
    months.update(p.date[:7] for p in ledger_service.unmigrated_legacy_payments(customer.id))

    order_times = db.session.query(Order.created_at).filter(
        or_(Order.customer_id == customer.id, Order.phone == customer.phone)
    )
    months.update(r.created_at.strftime("%Y-%m") for r in order_times if r.created_at)

    return sorted(months, reverse=True)


# =============================================================================
# STORE-WIDE
# =============================================================================

def milk_billing(month: str | None = None) -> dict:
    """
    Milk bill per subscribed, non-deleted customer for a month, plus totals.
    due = billed amount - milk payments recorded for that month.
    """
    try:
        month = parse_month(month)
    except ValueError as exc:
        raise ValidationError(str(exc))
    store_price = settings_service.get_milk_price()

    subscribed = (
        db.session.query(Customer, MilkSubscription)
        .join(MilkSubscription, MilkSubscription.customer_id == Customer.id)
        .filter(Customer.status == CUSTOMER_ACTIVE)
        .order_by(Customer.name, Customer.id)
        .all()
    )

    logs_by_customer: dict[int, list[MilkLog]] = {}
    for log in db.session.query(MilkLog).filter(MilkLog.month == month):
        logs_by_customer.setdefault(log.customer_id, []).append(log)

    paid_by_customer: dict[int, Decimal] = {}
    for p in db.session.query(MilkPayment).filter(MilkPayment.month == month):
        paid_by_customer[p.customer_id] = paid_by_customer.get(p.customer_id, ZERO) + Decimal(p.amount)

    rows = []
    totals = {"litres": Decimal("0"), "amount": ZERO, "paid": ZERO, "due": ZERO}
    for customer, subscription in subscribed:
        logs = logs_by_customer.get(customer.id, [])
        litres = sum((milk_log_litres(l) for l in logs), Decimal("0"))
        amount = round_money(sum((milk_log_amount(l, subscription, store_price) for l in logs), ZERO))
        paid = round_money(paid_by_customer.get(customer.id, ZERO))
        due = amount - paid
        rows.append({
            "customer": {"id": customer.id, "name": customer.name, "phone": customer.phone},
            "subscription_status": subscription.status,
            "days": len(logs),
            "litres": litres,
            "amount": amount,
            "paid": paid,
            "due": due,
        })
        totals["litres"] += litres
        totals["amount"] += amount
        totals["paid"] += paid
        totals["due"] += due

    return {
        "month": month,
        "milk_price": store_price,
        "customers": rows,
        "totals": totals,
    }


def milk_billing_to_json(billing: dict) -> dict:
    def _row(r):
        return {**r, **{k: as_number(r[k]) for k in ("litres", "amount", "paid", "due")}}
    return {
        "month": billing["month"],
        "milk_price": as_number(billing["milk_price"]),
        "customers": [_row(r) for r in billing["customers"]],
        "totals": {k: as_number(v) for k, v in billing["totals"].items()},
    }


def credit_summary() -> list[dict]:
    """All-time udhar balance for every non-deleted customer."""
    return [
        {"customer": c.to_dict(), **ledger_service.balance_of(c.id).to_dict()}
        for c in list_customers()
    ]
