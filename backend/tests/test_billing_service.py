from decimal import Decimal

from kirana.models import LegacyCreditEntry, LegacyPayment
from kirana.models.ledger import KIND_CREDIT, KIND_PAYMENT
from kirana.services import (
    billing_service,
    customer_service,
    ledger_service,
    migration_service,
    milk_service,
    order_service,
    settings_service,
)
from kirana.time_utils import current_month


def _summary(customer, month):
    return billing_service.monthly_statement(customer.id, month)["summary"]


def test_milk_and_payment_statement(db_session, make_customer):
    customer = make_customer()
    milk_service.record_delivery(customer.id, "2026-03-05", qty=2, price=60)
    milk_service.record_payment(customer.id, "2026-03", 50)

    summary = _summary(customer, "2026-03")

    assert summary["milkTotal"] == Decimal("120")
    assert summary["paymentsTotal"] == Decimal("50")
    assert summary["outstanding"] == Decimal("70")


def test_milk_price_falls_back_to_subscription_then_store(db_session, make_customer):
    subscribed = make_customer()
    walk_in = make_customer()
    milk_service.subscribe(subscribed.id, default_qty=1, price_per_litre=55)
    settings_service.set_milk_price(70)

    milk_service.record_delivery(subscribed.id, "2026-03-01", qty=2)
    milk_service.record_delivery(walk_in.id, "2026-03-01", qty=2)

    assert _summary(subscribed, "2026-03")["milkTotal"] == Decimal("110")
    assert _summary(walk_in, "2026-03")["milkTotal"] == Decimal("140")


def test_itemized_delivery_is_summed_per_item(db_session, make_customer):
    customer = make_customer()
    milk_service.record_delivery(customer.id, "2026-03-02", items=[
        {"name": "Cow milk", "qty": 1, "price": 64},
        {"name": "Buffalo milk", "qty": "0.5", "price": 80},
    ])

    statement = billing_service.monthly_statement(customer.id, "2026-03")

    assert statement["summary"]["milkTotal"] == Decimal("104")
    assert "Cow milk" in statement["entries"][0]["description"]


def test_entries_sorted_by_date(db_session, make_customer):
    customer = make_customer()
    milk_service.record_delivery(customer.id, "2026-03-09", qty=1, price=60)
    ledger_service.post_entry(customer_id=customer.id, kind=KIND_CREDIT, amount=30, date="2026-03-03")
    milk_service.record_delivery(customer.id, "2026-03-01", qty=1, price=60)

    entries = billing_service.monthly_statement(customer.id, "2026-03")["entries"]

    assert [e["date"] for e in entries] == ["2026-03-01", "2026-03-03", "2026-03-09"]


def test_ledger_entries_render_as_udhar_and_payments(db_session, make_customer):
    customer = make_customer()
    ledger_service.post_entry(customer_id=customer.id, kind=KIND_CREDIT, amount=200, date="2026-03-03")
    ledger_service.post_entry(customer_id=customer.id, kind=KIND_PAYMENT, amount=150, date="2026-03-20")
    ledger_service.post_entry(customer_id=customer.id, kind=KIND_CREDIT, amount=999, date="2026-04-01")

    statement = billing_service.monthly_statement(customer.id, "2026-03")

    assert [e["type"] for e in statement["entries"]] == ["udhar", "udhar_payment"]
    assert statement["summary"]["udharTotal"] == Decimal("200")
    assert statement["summary"]["paymentsTotal"] == Decimal("150")
    assert statement["summary"]["outstanding"] == Decimal("50")
    # All-time view includes April
    assert statement["balance"].balance == Decimal("1049")


def test_order_on_ledger_is_not_counted_twice(db_session, make_customer, make_product):
    customer = make_customer(phone="9876511111")
    product = make_product(stock=10)
    base = {"customerName": "Ravi", "phone": "9876511111"}
    order_service.place_order({**base, "items": [{"productId": product.id, "qty": 1}], "paymentMethod": "account"})
    order_service.place_order({**base, "items": [{"productId": product.id, "qty": 2}]})
    cancelled = order_service.place_order({**base, "items": [{"productId": product.id, "qty": 3}]})
    order_service.cancel_order(cancelled.id)

    summary = _summary(customer, current_month())

    # account order via its ledger credit, cod order as an app order, cancelled one nowhere
    assert summary["udharTotal"] == Decimal("80")
    assert summary["orderTotal"] == Decimal("160")
    assert summary["totalDebits"] == Decimal("240")


def test_unmigrated_legacy_appears_once_across_migration(db_session, make_customer):
    customer = make_customer()
    db_session.add(LegacyCreditEntry(id=7, customer_id=customer.id, amount=Decimal("300"), date="2026-03-04", note="Rice"))
    db_session.add(LegacyPayment(id=3, customer_id=customer.id, amount=Decimal("100"), date="2026-03-15", method="upi"))
    db_session.commit()

    before = _summary(customer, "2026-03")
    migration_service.migrate_legacy_to_ledger()
    after = _summary(customer, "2026-03")

    for summary in (before, after):
        assert summary["udharTotal"] == Decimal("300")
        assert summary["paymentsTotal"] == Decimal("100")
        assert summary["outstanding"] == Decimal("200")


def test_statement_to_json_is_serializable(db_session, make_customer):
    customer = make_customer()
    milk_service.record_delivery(customer.id, "2026-03-05", qty="1.5", price=60)

    data = billing_service.statement_to_json(billing_service.monthly_statement(customer.id, "2026-03"))

    assert data["summary"]["milkTotal"] == 90
    assert data["entries"][0]["amount"] == 90
    assert data["balance"]["balance"] == 0


def test_milk_billing_per_subscriber(db_session, make_customer):
    asha = make_customer(name="Asha")
    ravi = make_customer(name="Ravi")
    gone = make_customer(name="Zed")
    for c in (asha, ravi, gone):
        milk_service.subscribe(c.id, default_qty=1, price_per_litre=60)

    milk_service.record_delivery(asha.id, "2026-03-01", qty=1)
    milk_service.record_delivery(asha.id, "2026-03-02", qty=2)
    milk_service.record_delivery(ravi.id, "2026-03-01", qty="0.5")
    milk_service.record_delivery(ravi.id, "2026-04-01", qty=5)
    milk_service.record_delivery(gone.id, "2026-03-01", qty=1)
    milk_service.record_payment(asha.id, "2026-03", 100)
    customer_service.soft_delete(gone.id)

    billing = billing_service.milk_billing("2026-03")

    rows = {r["customer"]["name"]: r for r in billing["customers"]}
    assert set(rows) == {"Asha", "Ravi"}
    assert rows["Asha"]["litres"] == Decimal("3")
    assert rows["Asha"]["amount"] == Decimal("180")
    assert rows["Asha"]["paid"] == Decimal("100")
    assert rows["Asha"]["due"] == Decimal("80")
    assert rows["Ravi"]["amount"] == Decimal("30")
    assert billing["totals"]["amount"] == Decimal("210")
    assert billing["totals"]["due"] == Decimal("110")

    data = billing_service.milk_billing_to_json(billing)
    assert data["totals"]["litres"] == 3.5


def test_activity_months_newest_first(db_session, make_customer):
    customer = make_customer()
    milk_service.record_delivery(customer.id, "2025-11-03", qty=1, price=60)
    ledger_service.post_entry(customer_id=customer.id, kind=KIND_CREDIT, amount=10, date="2026-01-10")
    db_session.add(LegacyCreditEntry(id=1, customer_id=customer.id, amount=Decimal("5"), date="2025-08-01"))
    db_session.commit()

    months = billing_service.activity_months(customer.id)

    assert months[0] == current_month()
    assert months == sorted(months, reverse=True)
    assert {"2025-11", "2026-01", "2025-08"} <= set(months)


def test_credit_summary_lists_active_customers(db_session, make_customer):
    asha = make_customer(name="Asha")
    ravi = make_customer(name="Ravi")
    ledger_service.post_entry(customer_id=asha.id, kind=KIND_CREDIT, amount=40)
    customer_service.soft_delete(ravi.id)

    summary = billing_service.credit_summary()

    assert [row["customer"]["name"] for row in summary] == ["Asha"]
    assert summary[0]["balance"] == 40
