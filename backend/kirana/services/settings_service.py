# Overview: Store-wide settings consumed by checkout and milk billing.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import StoreSetting
from ..money import MAX_AMOUNT, as_number, to_amount, to_decimal
from ..validation import ValidationError

KEY_MILK_PRICE = "milk_price"
KEY_FREE_GIFT = "free_gift"

DEFAULT_FREE_GIFT = {
    "threshold": 0,
    "productId": None,
    "variantId": None,
    "qty": 1,
    "label": "Free Gift",
    "discountPrice": 0,
}


def _get(key: str):
    row = db.session.get(StoreSetting, key)
    return row.value if row else None


def _put(key: str, value) -> StoreSetting:
    row = db.session.get(StoreSetting, key)
    if row is None:
        row = StoreSetting(key=key, value=value)
        db.session.add(row)
    else:
        row.value = value
    db.session.flush()
    return row


def get_milk_price() -> Decimal:
    """Current store-wide per-litre milk price (falls back to DEFAULT_MILK_PRICE)."""
    stored = _get(KEY_MILK_PRICE)
    if stored is not None:
        return to_decimal(stored, field="milk_price")
    return to_decimal(current_app.config.get("DEFAULT_MILK_PRICE", "60"), field="milk_price")


def set_milk_price(price) -> Decimal:
    try:
        value = to_amount(price, field="milkPrice")
    except ValueError as exc:
        raise ValidationError(str(exc))
    _put(KEY_MILK_PRICE, str(value))
    db.session.commit()
    return value


def get_free_gift() -> dict:
    """Free-gift config merged over defaults. threshold/discountPrice are Decimals."""
    stored = _get(KEY_FREE_GIFT) or {}
    config = {**DEFAULT_FREE_GIFT, **stored}
    config["threshold"] = to_decimal(config.get("threshold") or 0, field="threshold")
    config["discountPrice"] = to_decimal(config.get("discountPrice") or 0, field="discountPrice")
    return config


def set_free_gift(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("free gift config must be an object")
    merged = {**DEFAULT_FREE_GIFT, **(_get(KEY_FREE_GIFT) or {})}
    for key in DEFAULT_FREE_GIFT:
        if key in payload:
            merged[key] = payload[key]
    try:
        threshold = to_decimal(merged.get("threshold") or 0, field="threshold")
        discount = to_decimal(merged.get("discountPrice") or 0, field="discountPrice")
    except ValueError as exc:
        raise ValidationError(str(exc))
    if threshold < 0 or discount < 0:
        raise ValidationError("threshold and discountPrice must be >= 0")
    if threshold > MAX_AMOUNT or discount > MAX_AMOUNT:
        raise ValidationError(f"threshold and discountPrice cannot exceed {MAX_AMOUNT}")
    merged["threshold"] = as_number(threshold)
    merged["discountPrice"] = as_number(discount)
    _put(KEY_FREE_GIFT, merged)
    db.session.commit()
    return get_free_gift()
