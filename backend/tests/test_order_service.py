from decimal import Decimal

import pytest

from kirana.models import LedgerEntry, Order, Product
from kirana.models.ledger import KIND_CREDIT, KIND_PAYMENT, SOURCE_APP_ORDER, SOURCE_ORDER_PAYMENT
from kirana.services import ledger_service, order_service, settings_service
from kirana.validation import BusinessRuleError, ConflictError, ValidationError


def _payload(items, **extra):
    data = {
        "customerName": "Asha",
        "phone": "9876500001",
        "block": "B",
        "villa": "12",
        "items": items,
    }
    data.update(extra)
    return data


def _stock(db_session, product_id):
    db_session.expire_all()
    return db_session.get(Product, product_id).stock_quantity


def test_client_price_is_ignored(db_session, make_product):
    product = make_product(stock=10, tiers=((1, 100),))

    order = order_service.place_order(_payload([
        {"productId": product.id, "variantId": "v1", "qty": 2, "price": 1},
    ]))

    assert order.total == Decimal("200")
    assert order.lines[0].unit_price == Decimal("100")
    assert _stock(db_session, product.id) == 8


def test_tier_price_applied_per_line(db_session, make_product):
    product = make_product(stock=20)

    order = order_service.place_order(_payload([{"productId": product.id, "variantId": "v1", "qty": 5}]))

    assert order.total == Decimal("350")


def test_rejected_line_releases_earlier_reservations(db_session, make_product):
    rice = make_product(name="Rice", stock=5)
    sugar = make_product(name="Sugar", stock=0)

    with pytest.raises(BusinessRuleError):
        order_service.place_order(_payload([
            {"productId": rice.id, "variantId": "v1", "qty": 2},
            {"productId": sugar.id, "variantId": "v1", "qty": 1},
        ]))

    assert _stock(db_session, rice.id) == 5
    assert db_session.query(Order).count() == 0


@pytest.mark.parametrize("payload", [
    {"phone": "9876500001", "items": [{"productId": 1, "qty": 1}]},
    {"customerName": "Asha", "items": [{"productId": 1, "qty": 1}]},
    {"customerName": "Asha", "phone": "9876500001", "items": []},
    {"customerName": "Asha", "phone": "9876500001", "items": [{"productId": 1, "qty": 0}]},
    {"customerName": "Asha", "phone": "9876500001", "items": [{"productId": 1, "qty": 10**30}]},
    {"customerName": "Asha", "phone": "9876500001", "items": [{"productId": 1, "qty": 1001}]},
    {"customerName": "Asha", "phone": "9876500001", "items": [{"productId": 1, "qty": 1}], "paymentMethod": "cheque"},
])
def test_invalid_payloads(db_session, payload):
    with pytest.raises(ValidationError):
        order_service.place_order(payload)


def test_account_order_posts_credit_for_known_customer(db_session, make_product, make_customer):
    customer = make_customer(phone="9876500001")
    product = make_product(stock=10)

    order = order_service.place_order(_payload(
        [{"productId": product.id, "variantId": "v1", "qty": 2}],
        paymentMethod="account",
    ))

    assert order.customer_id == customer.id
    assert order.added_to_udhar is True
    entries = ledger_service.list_for(customer.id)
    assert len(entries) == 1
    assert entries[0].kind == KIND_CREDIT
    assert entries[0].source == SOURCE_APP_ORDER
    assert entries[0].order_id == order.id
    assert entries[0].amount == Decimal("160")
    assert entries[0].items[0]["qty"] == 2
    assert ledger_service.balance_of(customer.id).balance == Decimal("160")


def test_account_order_without_customer_stays_off_ledger(db_session, make_product):
    product = make_product(stock=10)

    order = order_service.place_order(_payload(
        [{"productId": product.id, "variantId": "v1", "qty": 1}],
        paymentMethod="account",
    ))

    assert order.customer_id is None
    assert order.added_to_udhar is False
    assert db_session.query(LedgerEntry).count() == 0


def test_order_ids_come_from_counter(db_session, make_product):
    product = make_product(stock=None)
    first = order_service.place_order(_payload([{"productId": product.id, "qty": 1}]))
    second = order_service.place_order(_payload([{"productId": product.id, "qty": 1}]))

    assert (first.id, second.id) == (1, 2)


def test_cancel_restores_stock_once(db_session, make_product):
    product = make_product(stock=10)
    order = order_service.place_order(_payload([{"productId": product.id, "variantId": "v1", "qty": 3}]))
    assert _stock(db_session, product.id) == 7

    order_service.cancel_order(order.id)
    order_service.cancel_order(order.id)

    assert _stock(db_session, product.id) == 10
    cancelled = order_service.get_order(order.id)
    assert cancelled.status == "cancelled"
    assert cancelled.stock_restored is True


def test_status_update_to_cancelled_restocks(db_session, make_product):
    product = make_product(stock=4)
    order = order_service.place_order(_payload([{"productId": product.id, "variantId": "v1", "qty": 4}]))

    order_service.update_status(order.id, "cancelled")
    order_service.update_status(order.id, "cancelled")

    assert _stock(db_session, product.id) == 4


def test_cancelled_order_cannot_be_reopened(db_session, make_product):
    product = make_product(stock=4)
    order = order_service.place_order(_payload([{"productId": product.id, "variantId": "v1", "qty": 1}]))
    order_service.cancel_order(order.id)

    with pytest.raises(ConflictError):
        order_service.update_status(order.id, "pending")


def test_status_progression(db_session, make_product):
    product = make_product(stock=4)
    order = order_service.place_order(_payload([{"productId": product.id, "variantId": "v1", "qty": 1}]))

    for status in ("preparing", "out-for-delivery", "delivered"):
        order = order_service.update_status(order.id, status)
        assert order.status == status

    with pytest.raises(ValidationError):
        order_service.update_status(order.id, "lost")


def test_convert_to_credit_once(db_session, make_product, make_customer):
    customer = make_customer(phone="9876500001")
    product = make_product(stock=10)
    order = order_service.place_order(_payload([{"productId": product.id, "variantId": "v1", "qty": 1}]))

    converted = order_service.convert_to_credit(order.id)
    assert converted.added_to_udhar is True
    assert converted.customer_id == customer.id

    with pytest.raises(ConflictError):
        order_service.convert_to_credit(order.id)

    assert len(ledger_service.list_for(customer.id)) == 1


def test_convert_to_credit_by_explicit_customer(db_session, make_product, make_customer):
    other = make_customer(phone="9876500099")
    product = make_product(stock=10)
    order = order_service.place_order(_payload([{"productId": product.id, "variantId": "v1", "qty": 1}]))

    order_service.convert_to_credit(order.id, customer_id=other.id)

    assert ledger_service.balance_of(other.id).balance == Decimal("80")


def test_convert_without_customer_is_rejected(db_session, make_product):
    product = make_product(stock=10)
    order = order_service.place_order(_payload([{"productId": product.id, "variantId": "v1", "qty": 1}]))

    with pytest.raises(BusinessRuleError):
        order_service.convert_to_credit(order.id)


def test_convert_cancelled_order_is_rejected(db_session, make_product, make_customer):
    make_customer(phone="9876500001")
    product = make_product(stock=10)
    order = order_service.place_order(_payload([{"productId": product.id, "variantId": "v1", "qty": 1}]))
    order_service.cancel_order(order.id)

    with pytest.raises(BusinessRuleError):
        order_service.convert_to_credit(order.id)


def test_mark_paid_settles_customer_order(db_session, make_product, make_customer):
    customer = make_customer(phone="9876500001")
    product = make_product(stock=10)
    order = order_service.place_order(_payload([{"productId": product.id, "variantId": "v1", "qty": 2}]))

    paid = order_service.mark_paid(order.id)

    assert paid.paid is True
    assert paid.paid_at is not None
    assert paid.added_to_udhar is True
    entries = ledger_service.list_for(customer.id)
    assert sorted((e.kind, e.source) for e in entries) == [
        (KIND_CREDIT, SOURCE_APP_ORDER),
        (KIND_PAYMENT, SOURCE_ORDER_PAYMENT),
    ]
    view = ledger_service.balance_of(customer.id)
    assert view.total_credit == Decimal("160")
    assert view.total_paid == Decimal("160")
    assert view.balance == Decimal("0")

    with pytest.raises(ConflictError):
        order_service.mark_paid(order.id)


def test_mark_paid_after_account_order_does_not_double_credit(db_session, make_product, make_customer):
    customer = make_customer(phone="9876500001")
    product = make_product(stock=10)
    order = order_service.place_order(_payload(
        [{"productId": product.id, "variantId": "v1", "qty": 1}],
        paymentMethod="account",
    ))

    order_service.mark_paid(order.id)

    view = ledger_service.balance_of(customer.id)
    assert view.total_credit == Decimal("80")
    assert view.balance == Decimal("0")


def test_mark_paid_without_customer_only_flags(db_session, make_product):
    product = make_product(stock=10)
    order = order_service.place_order(_payload([{"productId": product.id, "variantId": "v1", "qty": 1}]))

    paid = order_service.mark_paid(order.id)

    assert paid.paid is True
    assert paid.added_to_udhar is False
    assert db_session.query(LedgerEntry).count() == 0


def test_free_gift_added_above_threshold(db_session, make_product):
    product = make_product(stock=10)
    gift = make_product(name="Chocolate", stock=3, tiers=((1, 50),))
    settings_service.set_free_gift({
        "threshold": 150,
        "productId": gift.id,
        "label": "Free Chocolate",
        "discountPrice": 1,
    })

    order = order_service.place_order(_payload(
        [{"productId": product.id, "variantId": "v1", "qty": 2}],
        freeGift={"productId": gift.id},
    ))

    gift_lines = [line for line in order.lines if line.is_gift]
    assert len(gift_lines) == 1
    assert gift_lines[0].line_total == Decimal("1")
    assert order.total == Decimal("161")
    assert order.free_gift["label"] == "Free Chocolate"
    # Gift lines never touch stock
    assert _stock(db_session, gift.id) == 3


def test_free_gift_dropped_below_threshold(db_session, make_product):
    product = make_product(stock=10)
    gift = make_product(name="Chocolate", stock=3, tiers=((1, 50),))
    settings_service.set_free_gift({"threshold": 500, "productId": gift.id, "discountPrice": 1})

    order = order_service.place_order(_payload(
        [{"productId": product.id, "variantId": "v1", "qty": 1}],
        freeGift={"productId": gift.id},
    ))

    assert not any(line.is_gift for line in order.lines)
    assert order.total == Decimal("80")


def test_gift_line_not_restocked_on_cancel(db_session, make_product):
    product = make_product(stock=10)
    gift = make_product(name="Chocolate", stock=3, tiers=((1, 50),))
    settings_service.set_free_gift({"threshold": 0, "productId": gift.id, "discountPrice": 1})
    order = order_service.place_order(_payload(
        [{"productId": product.id, "variantId": "v1", "qty": 1}],
        freeGift={"productId": gift.id},
    ))

    order_service.cancel_order(order.id)

    assert _stock(db_session, product.id) == 10
    assert _stock(db_session, gift.id) == 3


def test_failure_after_reservation_leaves_nothing_behind(db_session, make_product, make_customer):
    make_customer(phone="9876500001")
    product = make_product(stock=5, tiers=((1, 9999999),))

    with pytest.raises(ValidationError):
        order_service.place_order(_payload(
            [{"productId": product.id, "variantId": "v1", "qty": 2}],
            paymentMethod="account",
        ))

    # A later commit by the same caller must not persist a half-built order
    db_session.commit()
    assert _stock(db_session, product.id) == 5
    assert db_session.query(Order).count() == 0
    assert db_session.query(LedgerEntry).count() == 0


def test_failed_order_still_consumes_its_id(db_session, make_product):
    product = make_product(stock=1)
    with pytest.raises(BusinessRuleError):
        order_service.place_order(_payload([{"productId": product.id, "variantId": "v1", "qty": 2}]))

    order = order_service.place_order(_payload([{"productId": product.id, "variantId": "v1", "qty": 1}]))
    assert order.id == 2


def test_free_gift_config_keeps_only_known_keys(db_session):
    config = settings_service.set_free_gift({"threshold": 100, "discountPrice": 5, "autoAdd": False})

    assert set(config) == {"threshold", "productId", "variantId", "qty", "label", "discountPrice"}
    assert config["threshold"] == Decimal("100")

    with pytest.raises(ValidationError):
        settings_service.set_free_gift({"discountPrice": "1e30"})
