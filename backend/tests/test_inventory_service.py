from decimal import Decimal

import pytest

from kirana.models import Product
from kirana.services import catalog_service, inventory_service
from kirana.services.inventory_service import resolve_tier_price
from kirana.validation import BusinessRuleError, ConflictError, NotFoundError, ValidationError


TIERS = [{"minQty": 1, "price": 80}, {"minQty": 5, "price": 70}]


@pytest.mark.parametrize("qty,expected", [(1, 80), (4, 80), (5, 70), (100, 70)])
def test_tier_selection(qty, expected):
    assert resolve_tier_price(TIERS, qty) == Decimal(expected)


def test_tier_order_does_not_matter():
    assert resolve_tier_price(list(reversed(TIERS)), 6) == Decimal("70")


def test_lowest_tier_used_when_none_qualifies():
    tiers = [{"minQty": 10, "price": 60}, {"minQty": 5, "price": 70}]
    assert resolve_tier_price(tiers, 2) == Decimal("70")


def test_no_tiers_is_rejected():
    with pytest.raises(BusinessRuleError):
        resolve_tier_price([], 1)


def test_reserve_decrements_tracked_stock(db_session, make_product):
    product = make_product(stock=10)

    reservation = inventory_service.reserve(product.id, "v1", 4)
    db_session.commit()

    assert reservation.reserved is True
    assert reservation.unit_price == Decimal("80")
    assert reservation.line_total == Decimal("320")
    assert db_session.get(Product, product.id).stock_quantity == 6


def test_reserve_prices_from_tiers_not_client(db_session, make_product):
    product = make_product(stock=50)

    reservation = inventory_service.reserve(product.id, "v1", 5)

    assert reservation.unit_price == Decimal("70")


def test_untracked_stock_is_not_reserved(db_session, make_product):
    product = make_product(stock=None)

    reservation = inventory_service.reserve(product.id, "v1", 1000)
    db_session.commit()

    assert reservation.reserved is False
    assert db_session.get(Product, product.id).stock_quantity is None


def test_out_of_stock(db_session, make_product):
    product = make_product(stock=0)

    with pytest.raises(BusinessRuleError) as exc:
        inventory_service.reserve(product.id, "v1", 1)

    assert "out of stock" in str(exc.value)
    assert exc.value.details["available"] == 0


def test_insufficient_stock_reports_available(db_session, make_product):
    product = make_product(stock=3)

    with pytest.raises(BusinessRuleError) as exc:
        inventory_service.reserve(product.id, "v1", 5)

    assert exc.value.details["available"] == 3
    assert exc.value.details["reason"] == "insufficient_stock"
    assert db_session.get(Product, product.id).stock_quantity == 3


def test_disabled_product_is_unavailable(db_session, make_product):
    product = make_product(stock=10, is_active=False)

    with pytest.raises(BusinessRuleError) as exc:
        inventory_service.reserve(product.id, "v1", 1)

    assert exc.value.details["reason"] == "unavailable"


def test_unknown_product_is_unavailable(db_session):
    with pytest.raises(BusinessRuleError):
        inventory_service.reserve(999, "v1", 1)


def test_unknown_variant_is_unavailable(db_session, make_product):
    product = make_product(stock=10)

    with pytest.raises(BusinessRuleError):
        inventory_service.reserve(product.id, "v9", 1)


@pytest.mark.parametrize("qty", [0, -1, "abc", 1.5])
def test_quantity_must_be_positive_integer(db_session, make_product, qty):
    product = make_product(stock=10)

    with pytest.raises(ValidationError):
        inventory_service.reserve(product.id, "v1", qty)


def test_lost_race_is_retryable_conflict(db_session, make_product, monkeypatch):
    product = make_product(stock=1)
    # Another checkout took the stock after our read
    monkeypatch.setattr(inventory_service, "_fresh_stock", lambda product_id: 5)

    with pytest.raises(ConflictError) as exc:
        inventory_service.reserve(product.id, "v1", 3)

    assert exc.value.retryable is True
    assert db_session.get(Product, product.id).stock_quantity == 1


def test_release_returns_stock(db_session, make_product):
    product = make_product(stock=2)

    inventory_service.reserve(product.id, "v1", 2)
    assert inventory_service.release(product.id, 2) is True
    db_session.commit()

    assert db_session.get(Product, product.id).stock_quantity == 2


def test_release_ignores_untracked(db_session, make_product):
    product = make_product(stock=None)

    assert inventory_service.release(product.id, 3) is False
    assert db_session.get(Product, product.id).stock_quantity is None


@pytest.mark.parametrize("stock,expected", [
    (None, "Untracked"),
    (0, "Out of Stock"),
    (5, "Low Stock"),
    (6, "In Stock"),
])
def test_stock_status_thresholds(db_session, make_product, stock, expected):
    product = make_product(stock=stock, low_stock_threshold=5)
    assert catalog_service.stock_status(product.id)["stock_status"] == expected


def test_stock_status_unknown_product(db_session):
    with pytest.raises(NotFoundError):
        catalog_service.stock_status(999)
