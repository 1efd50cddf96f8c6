# Overview: Order fulfillment: checkout, status changes, cancellation restock, settlement.

"""
Order fulfillment

WHY: Checkout is the one place where stock, price and the customer's credit
meet. The client cart is only a list of (product, variant, quantity); every
price is recomputed here and every unit of stock is taken through
inventory_service.reserve().

DESIGN PRINCIPLES:
- All-or-nothing reservation: if any line is rejected, lines already reserved
  in the same request are released before the error is returned.
- Orders paid "on account" post an app_order credit to the ledger in the same
  transaction as the order row.
- Reconciliation flags (added_to_udhar, stock_restored, paid) are claimed with
  conditional UPDATEs, so repeating an action is a no-op or a 409, never a
  second side effect.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import update

from ..extensions import db
from ..models import Order, OrderLine
from ..models.ledger import KIND_CREDIT, KIND_PAYMENT, SOURCE_APP_ORDER, SOURCE_ORDER_PAYMENT
from ..models.orders import (
    ORDER_CANCELLED,
    ORDER_DELIVERED,
    ORDER_STATUSES,
    PAYMENT_ACCOUNT,
    PAYMENT_COD,
    PAYMENT_METHODS,
)
from ..money import MAX_AMOUNT, ZERO, as_number, round_money
from ..time_utils import utcnow
from ..validation import (
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    ValidationError,
    require_int,
)
from . import inventory_service, ledger_service, settings_service
from .catalog_service import find_product, find_product_variant
from .concurrency import lock_for_update, run_with_retry
from .customer_service import find_by_id, find_by_phone, normalize_phone
from .sequence_service import COUNTER_LEDGER, COUNTER_ORDERS, next_id

logger = logging.getLogger(__name__)

MAX_LINES_PER_ORDER = 100
MAX_QTY_PER_LINE = 1000


# =============================================================================
# PAYLOAD PARSING
# =============================================================================

def _parse_items(raw_items) -> list[dict]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")
    if len(raw_items) > MAX_LINES_PER_ORDER:
        raise ValidationError(f"An order can have at most {MAX_LINES_PER_ORDER} items")

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object")
        product_id = raw.get("productId", raw.get("product_id", raw.get("id")))
        quantity = require_int(raw.get("qty", raw.get("quantity")), "qty")
        if quantity > MAX_QTY_PER_LINE:
            raise ValidationError(f"qty cannot exceed {MAX_QTY_PER_LINE} per item")
        items.append({
            "product_id": require_int(product_id, "productId"),
            "variant_id": raw.get("variantId", raw.get("variant_id")),
            "quantity": quantity,
        })
    return items


def _parse_order_payload(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    customer_name = str(payload.get("customerName") or "").strip()
    phone = payload.get("phone")
    if not customer_name or not phone:
        raise ValidationError("customerName, phone and items are required")

    payment_method = str(payload.get("paymentMethod") or PAYMENT_COD).strip().lower()
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"paymentMethod must be one of {', '.join(PAYMENT_METHODS)}")

    free_gift = payload.get("freeGift")
    if free_gift is not None and not isinstance(free_gift, dict):
        raise ValidationError("freeGift must be an object")

    return {
        "customer_name": customer_name[:255],
        "phone": normalize_phone(phone),
        "block": (payload.get("block") or None),
        "villa": (payload.get("villa") or None),
        "note": (payload.get("note") or None),
        "items": _parse_items(payload.get("items")),
        "payment_method": payment_method,
        "free_gift": free_gift,
    }


# =============================================================================
# CHECKOUT
# =============================================================================

def _release_all(reservations: list[inventory_service.Reservation]) -> None:
    for r in reservations:
        if r.reserved:
            inventory_service.release(r.product_id, r.quantity)


def _resolve_free_gift(requested: dict | None, subtotal: Decimal) -> OrderLine | None:
    """
    Build the gift line if the request asks for the configured gift and the
    regular subtotal meets the threshold. Anything else is dropped.
    """
    if not requested:
        return None

    config = settings_service.get_free_gift()
    gift_product_id = config.get("productId")
    requested_id = requested.get("productId", requested.get("id"))
    if not gift_product_id or str(requested_id) != str(gift_product_id):
        logger.info("Dropping free gift %r: not the configured gift", requested_id)
        return None
    if subtotal < config["threshold"]:
        logger.info("Dropping free gift: subtotal %s below threshold %s", subtotal, config["threshold"])
        return None

    product = find_product(int(gift_product_id))
    if product is None or not product.is_active:
        logger.warning("Configured free gift product %s is unavailable", gift_product_id)
        return None
    try:
        variant = find_product_variant(product, config.get("variantId"))
    except (NotFoundError, ValidationError):
        variant = product.variants[0] if product.variants else None

    qty = max(int(config.get("qty") or 1), 1)
    price = round_money(config["discountPrice"])
    return OrderLine(
        product_id=product.id,
        variant_code=variant.code if variant else None,
        name=config.get("label") or product.name,
        variant_label=variant.label if variant else None,
        quantity=qty,
        unit_price=round_money(price / qty),
        line_total=price,
        is_gift=True,
    )


def _post_order_credit(order: Order, customer_id: int, entry_id: int) -> None:
    ledger_service.post_entry(
        customer_id=customer_id,
        kind=KIND_CREDIT,
        amount=order.total,
        note=f"App order #{order.id}",
        date=(order.created_at or utcnow()).date(),
        source=SOURCE_APP_ORDER,
        order_id=order.id,
        items=[line.snapshot() for line in order.lines],
        entry_id=entry_id,
        commit=False,
    )


def _place_order_once(data: dict) -> Order:
    # Ids are committed by next_id on their own connection, so take them
    # before the first stock UPDATE holds the write lock.
    customer = find_by_phone(data["phone"])
    on_account = data["payment_method"] == PAYMENT_ACCOUNT and customer is not None
    order_id = next_id(COUNTER_ORDERS)
    credit_entry_id = next_id(COUNTER_LEDGER) if on_account else None

    reservations: list[inventory_service.Reservation] = []
    try:
        for item in data["items"]:
            reservations.append(
                inventory_service.reserve(item["product_id"], item["variant_id"], item["quantity"])
            )
    except (BusinessRuleError, ConflictError, NotFoundError, ValidationError):
        _release_all(reservations)
        db.session.commit()
        raise

    try:
        subtotal = sum((r.line_total for r in reservations), ZERO)
        gift_line = _resolve_free_gift(data["free_gift"], subtotal)
        total = round_money(subtotal + (gift_line.line_total if gift_line else ZERO))
        if total > MAX_AMOUNT:
            raise ValidationError(f"order total cannot exceed {MAX_AMOUNT}")

        order = Order(
            id=order_id,
            customer_name=data["customer_name"],
            phone=data["phone"],
            block=data["block"],
            villa=data["villa"],
            note=data["note"],
            customer_id=customer.id if customer else None,
            total=total,
            payment_method=data["payment_method"],
            created_at=utcnow(),
        )
        for r in reservations:
            order.lines.append(OrderLine(
                product_id=r.product_id,
                variant_code=r.variant_code,
                name=r.name,
                variant_label=r.variant_label,
                quantity=r.quantity,
                unit_price=r.unit_price,
                line_total=round_money(r.line_total),
                is_gift=False,
            ))
        if gift_line is not None:
            order.lines.append(gift_line)
            order.free_gift = {"label": gift_line.name, "price": as_number(gift_line.line_total)}

        db.session.add(order)
        db.session.flush()

        if on_account:
            _post_order_credit(order, customer.id, credit_entry_id)
            order.added_to_udhar = True

        db.session.commit()
    except Exception:
        # Drops the stock decrements and the half-built order together
        db.session.rollback()
        raise

    logger.info(
        "Order %s placed: total=%s method=%s customer=%s",
        order.id, order.total, order.payment_method, order.customer_id,
    )
    return order


def place_order(payload: dict) -> Order:
    """
    Validate, price and persist a storefront order.

    Raises ValidationError, BusinessRuleError (stock/availability) or
    ConflictError (lost a stock race; the client may retry the whole order).
    """
    data = _parse_order_payload(payload)
    return run_with_retry(lambda: _place_order_once(data))


# =============================================================================
# READS
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def list_orders(*, status: str | None = None, phone: str | None = None, limit: int = 200) -> list[Order]:
    q = db.session.query(Order)
    if status:
        q = q.filter(Order.status == status)
    if phone:
        q = q.filter(Order.phone == normalize_phone(phone))
    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


# =============================================================================
# STATE CHANGES
# =============================================================================

def _claim_flag(order: Order, column) -> bool:
    """Atomically flip a boolean flag from False to True. False if already set."""
    db.session.flush()
    result = db.session.execute(
        update(Order)
        .where(Order.id == order.id, column.is_(False))
        .values({column.key: True, "updated_at": utcnow()})
        .execution_options(synchronize_session=False)
    )
    db.session.expire(order)
    return result.rowcount == 1


def cancel_order(order_id: int) -> Order:
    """
    Cancel an order and put its stock back exactly once.

    The stock_restored flag is claimed before any release, so repeated or
    concurrent cancellations never restock twice.
    """
    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError("Order not found")

        if _claim_flag(order, Order.stock_restored):
            for line in order.regular_lines:
                inventory_service.release(line.product_id, line.quantity)
            logger.info("Order %s cancelled, stock restored", order.id)

        if order.status != ORDER_CANCELLED:
            order.status = ORDER_CANCELLED
        if order.added_to_udhar:
            logger.warning("Cancelled order %s has an app_order credit on the ledger; needs manual correction", order.id)
        db.session.commit()
        return order

    return run_with_retry(_op)


def update_status(order_id: int, status: str) -> Order:
    """
    Move an order to a new status. Cancelled is terminal.
    """
    status = str(status or "").strip().lower()
    if status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(ORDER_STATUSES)}")

    order = get_order(order_id)
    if status == ORDER_CANCELLED:
        return cancel_order(order.id)
    if order.status == ORDER_CANCELLED:
        raise ConflictError("Cancelled orders cannot be reopened")
    if order.status == status:
        return order

    order.status = status
    db.session.commit()
    if status == ORDER_DELIVERED:
        logger.info("Order %s delivered to %s", order.id, order.phone)
    return order


def convert_to_credit(order_id: int, *, customer_id: int | None = None, phone: str | None = None) -> Order:
    """
    Put an order on the customer's udhar: post an app_order credit for its total.
    """
    order = get_order(order_id)
    if order.added_to_udhar:
        raise ConflictError("Order already added to udhar")
    if order.status == ORDER_CANCELLED:
        raise BusinessRuleError("Cancelled orders cannot be added to udhar")

    if customer_id is not None:
        customer = find_by_id(customer_id)
    else:
        customer = find_by_phone(phone or order.phone)
    if customer is None:
        raise BusinessRuleError("No customer account matches this order")

    entry_id = next_id(COUNTER_LEDGER)
    if not _claim_flag(order, Order.added_to_udhar):
        raise ConflictError("Order already added to udhar")

    order.customer_id = customer.id
    _post_order_credit(order, customer.id, entry_id)
    db.session.commit()
    logger.info("Order %s added to udhar for customer %s", order.id, customer.id)
    return order


def mark_paid(order_id: int) -> Order:
    """
    Record payment of an order.

    With a linked customer the ledger gets the full picture: the order's
    credit (posted now if it was not on the ledger yet) and an order_payment
    entry for the total. Orders without an account are only flagged.
    """
    order = get_order(order_id)
    if order.paid:
        raise ConflictError("Order already marked paid")
    if order.status == ORDER_CANCELLED:
        raise BusinessRuleError("Cancelled orders cannot be marked paid")

    customer = None
    if order.customer_id is not None:
        customer = find_by_id(order.customer_id)
    if customer is None:
        customer = find_by_phone(order.phone)

    credit_entry_id = payment_entry_id = None
    if customer is not None:
        if not order.added_to_udhar:
            credit_entry_id = next_id(COUNTER_LEDGER)
        payment_entry_id = next_id(COUNTER_LEDGER)

    if not _claim_flag(order, Order.paid):
        raise ConflictError("Order already marked paid")

    if customer is not None:
        if order.customer_id is None:
            order.customer_id = customer.id
        if credit_entry_id is not None and _claim_flag(order, Order.added_to_udhar):
            _post_order_credit(order, customer.id, credit_entry_id)
        ledger_service.post_entry(
            customer_id=customer.id,
            kind=KIND_PAYMENT,
            amount=order.total,
            note=f"Payment for order #{order.id}",
            source=SOURCE_ORDER_PAYMENT,
            order_id=order.id,
            entry_id=payment_entry_id,
            commit=False,
        )

    order.paid_at = utcnow()
    db.session.commit()
    logger.info("Order %s marked paid", order.id)
    return order

