# Overview: Milk subscriptions, daily delivery logs and milk payments.

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import MilkLog, MilkPayment, MilkSubscription
from ..models.milk import SUBSCRIPTION_ACTIVE, SUBSCRIPTION_PAUSED
from ..money import ZERO, round_money, to_amount, to_quantity
from ..time_utils import month_of, parse_business_date, parse_month, utcnow
from ..validation import BusinessRuleError, NotFoundError, ValidationError
from .customer_service import get_customer


def _normalize_items(items) -> list[dict] | None:
    """
    Itemized delivery: [{"name", "qty", "price"}]. Numbers are stored as
    decimal strings so the JSON column never sees floats.
    """
    if items in (None, []):
        return None
    if not isinstance(items, list):
        raise ValidationError("items must be a list")
    normalized = []
    try:
        for item in items:
            if not isinstance(item, dict):
                raise ValidationError("each item must be an object")
            qty = to_quantity(item.get("qty"), field="item qty")
            if qty == 0:
                continue
            normalized.append({
                "name": str(item.get("name") or "Milk").strip(),
                "qty": str(qty),
                "price": str(to_amount(item.get("price"), field="item price")),
            })
    except ValueError as exc:
        raise ValidationError(str(exc))
    return normalized or None


def items_amount(items) -> Decimal:
    return round_money(sum(
        (Decimal(str(i["qty"])) * Decimal(str(i["price"])) for i in (items or [])),
        ZERO,
    ))


def items_litres(items) -> Decimal:
    return sum((Decimal(str(i["qty"])) for i in (items or [])), Decimal("0"))


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

def get_subscription(customer_id: int) -> MilkSubscription | None:
    return db.session.query(MilkSubscription).filter_by(customer_id=customer_id).first()


def subscribe(
    customer_id: int,
    *,
    default_qty=None,
    default_items=None,
    price_per_litre=None,
) -> MilkSubscription:
    customer = get_customer(customer_id)
    if get_subscription(customer.id) is not None:
        raise BusinessRuleError("Customer already has a milk subscription")

    items = _normalize_items(default_items)
    try:
        qty = to_quantity(default_qty if default_qty not in (None, "") else "0.5", field="defaultQty")
        price = to_amount(price_per_litre, field="pricePerLitre") if price_per_litre not in (None, "") else None
    except ValueError as exc:
        raise ValidationError(str(exc))

    sub = MilkSubscription(
        customer_id=customer.id,
        default_qty=None if items else qty,
        default_items=items,
        price_per_litre=price,
        status=SUBSCRIPTION_ACTIVE,
    )
    db.session.add(sub)
    db.session.commit()
    return sub


def _require_subscription(customer_id: int) -> MilkSubscription:
    sub = get_subscription(customer_id)
    if sub is None:
        raise NotFoundError("Milk subscription not found")
    return sub


def pause(customer_id: int, *, pause_from=None, pause_until=None) -> MilkSubscription:
    sub = _require_subscription(customer_id)
    try:
        start = parse_business_date(pause_from) if pause_from else None
        end = parse_business_date(pause_until) if pause_until else None
    except ValueError as exc:
        raise ValidationError(str(exc))
    if start and end and end < start:
        raise ValidationError("pauseUntil must not be before pauseFrom")
    sub.status = SUBSCRIPTION_PAUSED
    sub.pause_from = start
    sub.pause_until = end
    db.session.commit()
    return sub


def resume(customer_id: int) -> MilkSubscription:
    sub = _require_subscription(customer_id)
    sub.status = SUBSCRIPTION_ACTIVE
    sub.pause_from = None
    sub.pause_until = None
    db.session.commit()
    return sub


# =============================================================================
# DELIVERIES & PAYMENTS
# =============================================================================

def record_delivery(customer_id: int, date, *, qty=None, items=None, price=None) -> MilkLog | None:
    """
    Upsert the delivery for (customer, date).

    qty 0 (and no items) removes the day's log; returns None in that case.
    """
    customer = get_customer(customer_id)
    try:
        business_date = parse_business_date(date)
        quantity = to_quantity(qty if qty not in (None, "") else 0)
        unit_price = to_amount(price, field="price") if price not in (None, "") else None
    except ValueError as exc:
        raise ValidationError(str(exc))
    normalized_items = _normalize_items(items)

    log = db.session.query(MilkLog).filter_by(customer_id=customer.id, date=business_date).first()

    if quantity == 0 and not normalized_items:
        if log is not None:
            db.session.delete(log)
            db.session.commit()
        return None

    if log is None:
        log = MilkLog(customer_id=customer.id, date=business_date, month=month_of(business_date))
        db.session.add(log)

    log.qty = items_litres(normalized_items) if normalized_items else quantity
    log.items = normalized_items
    log.price = unit_price
    log.marked_at = utcnow()
    db.session.commit()
    return log


def list_logs(month: str | None = None, customer_id: int | None = None) -> list[MilkLog]:
    try:
        month = parse_month(month)
    except ValueError as exc:
        raise ValidationError(str(exc))
    q = db.session.query(MilkLog).filter(MilkLog.month == month)
    if customer_id is not None:
        q = q.filter(MilkLog.customer_id == customer_id)
    return q.order_by(MilkLog.date, MilkLog.customer_id).all()


def record_payment(customer_id: int, month, amount, note: str | None = None) -> MilkPayment:
    customer = get_customer(customer_id)
    try:
        month = parse_month(month)
        value = to_amount(amount)
    except ValueError as exc:
        raise ValidationError(str(exc))
    payment = MilkPayment(
        customer_id=customer.id,
        month=month,
        amount=value,
        note=(note or "Manual").strip(),
        paid_at=utcnow(),
    )
    db.session.add(payment)
    db.session.commit()
    return payment


def list_payments(month: str | None = None, customer_id: int | None = None) -> list[MilkPayment]:
    try:
        month = parse_month(month)
    except ValueError as exc:
        raise ValidationError(str(exc))
    q = db.session.query(MilkPayment).filter(MilkPayment.month == month)
    if customer_id is not None:
        q = q.filter(MilkPayment.customer_id == customer_id)
    return q.order_by(MilkPayment.paid_at, MilkPayment.id).all()
