# Overview: Decimal helpers for currency amounts and delivered quantities.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
MILLI = Decimal("0.001")
ZERO = Decimal("0.00")

# Largest amount a single ledger entry or order may carry
MAX_AMOUNT = Decimal("9999999.99")
# Largest delivered quantity (litres or units) on one milk log line
MAX_QUANTITY = Decimal("9999.999")


def to_decimal(value, *, field: str = "amount", places: Decimal = CENT) -> Decimal:
    """
    Coerce JSON/str/int/float input to a quantized Decimal.

    Floats go through str() so 0.1 stays 0.1. Booleans are rejected even
    though bool is an int subclass. Raises ValueError with the field name.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            d = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValueError(f"{field} must be a number")
    if not d.is_finite():
        raise ValueError(f"{field} must be a number")
    try:
        return d.quantize(places, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"{field} is out of range")


def to_amount(value, *, field: str = "amount") -> Decimal:
    """Positive currency amount, rounded half-up to the cent."""
    d = to_decimal(value, field=field)
    if d <= 0:
        raise ValueError(f"{field} must be > 0")
    if d > MAX_AMOUNT:
        raise ValueError(f"{field} cannot exceed {MAX_AMOUNT}")
    return d


def to_quantity(value, *, field: str = "qty") -> Decimal:
    """Non-negative delivered quantity (litres may be fractional)."""
    d = to_decimal(value, field=field, places=MILLI)
    if d < 0:
        raise ValueError(f"{field} must be >= 0")
    if d > MAX_QUANTITY:
        raise ValueError(f"{field} cannot exceed {MAX_QUANTITY}")
    return d


def round_money(value) -> Decimal:
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"amount {value} is out of range")


def as_number(value):
    """JSON-friendly rendering of a Decimal (int when whole, else float)."""
    if value is None:
        return None
    d = Decimal(value)
    if d == d.to_integral_value():
        return int(d)
    return float(d)
