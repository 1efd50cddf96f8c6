# Overview: Stock reservation and release for checkout; tier price resolution.

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import update

from ..extensions import db
from ..models import Product
from ..money import to_decimal
from ..validation import BusinessRuleError, ConflictError, NotFoundError, require_int
from .catalog_service import find_product, find_product_variant

"""
Inventory invariants (authoritative)

- Product.stock_quantity NULL means untracked: reserve() only prices the line.
- Tracked stock never goes negative. The only decrement is the conditional
      UPDATE products SET stock_quantity = stock_quantity - :q
      WHERE id = :id AND stock_quantity >= :q
  so two checkouts racing for the last unit cannot both succeed; the loser
  gets a retryable ConflictError.
- release() is an unconditional increment used by cancellation and by
  checkout compensation. It never decrements.
- Unit price is resolved from the variant's tiers on the server; the client's
  price is never consulted.
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    product_id: int
    variant_code: str
    quantity: int
    unit_price: Decimal
    name: str
    variant_label: str
    # False for untracked products (nothing to release later)
    reserved: bool

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def _tier_pair(tier) -> tuple[int, Decimal]:
    if isinstance(tier, dict):
        min_qty = tier.get("minQty", tier.get("min_qty"))
        price = tier.get("price")
    else:
        min_qty, price = tier.min_qty, tier.price
    return int(min_qty), to_decimal(price, field="price")


def resolve_tier_price(tiers, quantity: int) -> Decimal:
    """
    Pick the unit price for a quantity.

    Tiers are sorted ascending by min_qty and the highest threshold <= quantity
    wins. When no tier qualifies the lowest tier's price is used.
    """
    pairs = sorted((_tier_pair(t) for t in tiers), key=lambda p: p[0])
    if not pairs:
        raise BusinessRuleError("No price configured")
    price = pairs[0][1]
    for min_qty, tier_price in pairs:
        if min_qty <= quantity:
            price = tier_price
        else:
            break
    return price


def _fresh_stock(product_id: int) -> int | None:
    return (
        db.session.query(Product.stock_quantity)
        .filter(Product.id == product_id)
        .scalar()
    )


def reserve(product_id: int, variant_id: str | None, quantity) -> Reservation:
    """
    Reserve stock for one cart line and return its server-side price.

    Raises:
        ValidationError: quantity is not a positive integer
        BusinessRuleError: unavailable / out of stock / insufficient stock
        ConflictError: stock changed between the check and the write (retry)
    """
    qty = require_int(quantity, "quantity")

    product = find_product(product_id)
    if product is None or not product.is_active:
        raise BusinessRuleError(
            f"Product {product_id} is unavailable",
            details={"product_id": product_id, "reason": "unavailable"},
        )

    try:
        variant = find_product_variant(product, variant_id)
    except NotFoundError:
        raise BusinessRuleError(
            f"{product.name} ({variant_id}) is unavailable",
            details={"product_id": product.id, "variant_id": variant_id, "reason": "unavailable"},
        )
    if not variant.in_stock:
        raise BusinessRuleError(
            f"{product.name} ({variant.label}) is unavailable",
            details={"product_id": product.id, "variant_id": variant.code, "reason": "unavailable"},
        )

    unit_price = resolve_tier_price(variant.tiers, qty)

    stock = _fresh_stock(product.id)
    if stock is None:
        return Reservation(
            product_id=product.id,
            variant_code=variant.code,
            quantity=qty,
            unit_price=unit_price,
            name=product.name,
            variant_label=variant.label,
            reserved=False,
        )

    if stock == 0:
        raise BusinessRuleError(
            f"{product.name} is out of stock",
            details={"product_id": product.id, "available": 0, "reason": "out_of_stock"},
        )
    if stock < qty:
        raise BusinessRuleError(
            f"Only {stock} of {product.name} in stock",
            details={
                "product_id": product.id,
                "requested_quantity": qty,
                "available": stock,
                "reason": "insufficient_stock",
            },
        )

    result = db.session.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock_quantity >= qty)
        .values(stock_quantity=Product.stock_quantity - qty)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info("Lost stock race for product %s (requested %s)", product.id, qty)
        raise ConflictError(
            "Stock changed during checkout, please retry",
            details={"product_id": product.id, "reason": "stock_changed"},
            retryable=True,
        )
    db.session.expire(product, ["stock_quantity"])

    return Reservation(
        product_id=product.id,
        variant_code=variant.code,
        quantity=qty,
        unit_price=unit_price,
        name=product.name,
        variant_label=variant.label,
        reserved=True,
    )


def release(product_id: int, quantity: int) -> bool:
    """
    Return stock to a tracked product. Untracked products are left alone.

    Returns True when a row was incremented.
    """
    if quantity <= 0:
        return False
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity.isnot(None))
        .values(stock_quantity=Product.stock_quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    product = db.session.get(Product, product_id)
    if product is not None:
        db.session.expire(product, ["stock_quantity"])
    return bool(result.rowcount)
