from decimal import Decimal

import pytest

from kirana.models import LegacyCreditEntry, LegacyPayment
from kirana.models.ledger import KIND_CREDIT, KIND_PAYMENT, SOURCE_MANUAL
from kirana.services import customer_service, ledger_service, migration_service
from kirana.validation import NotFoundError, ValidationError


def _post(customer, kind, amount, date="2026-03-10", **extra):
    return ledger_service.post_entry(customer_id=customer.id, kind=kind, amount=amount, date=date, **extra)


def test_balance_is_credits_minus_payments(db_session, make_customer):
    customer = make_customer()
    for kind, amount in [(KIND_CREDIT, 100), (KIND_CREDIT, "45.50"), (KIND_PAYMENT, 60), (KIND_CREDIT, 14.5), (KIND_PAYMENT, 20)]:
        _post(customer, kind, amount)

    view = ledger_service.balance_of(customer.id)

    assert view.total_credit == Decimal("160.00")
    assert view.total_paid == Decimal("80.00")
    assert view.ledger_balance == Decimal("80.00")
    assert view.balance == Decimal("80.00")
    assert view.fully_migrated is True


def test_balance_of_unknown_customer_is_zero(db_session):
    view = ledger_service.balance_of(12345)
    assert view.balance == Decimal("0")


def test_entry_ids_come_from_ledger_counter(db_session, make_customer):
    customer = make_customer()
    first = _post(customer, KIND_CREDIT, 10)
    second = _post(customer, KIND_PAYMENT, 5)

    assert (first.id, second.id) == (1, 2)
    assert first.source == SOURCE_MANUAL


@pytest.mark.parametrize("amount", [0, -5, "abc", None, "1e30", 10**30])
def test_amount_must_be_positive(db_session, make_customer, amount):
    customer = make_customer()
    with pytest.raises(ValidationError):
        _post(customer, KIND_CREDIT, amount)


def test_kind_is_validated(db_session, make_customer):
    customer = make_customer()
    with pytest.raises(ValidationError):
        _post(customer, "refund", 10)


def test_posting_requires_active_customer(db_session, make_customer):
    customer = make_customer()
    customer_service.soft_delete(customer.id)

    with pytest.raises(NotFoundError):
        _post(customer, KIND_CREDIT, 10)
    with pytest.raises(NotFoundError):
        ledger_service.post_entry(customer_id=999, kind=KIND_CREDIT, amount=10)


def test_list_for_orders_by_business_date_and_filters_month(db_session, make_customer):
    customer = make_customer()
    late = _post(customer, KIND_CREDIT, 10, date="2026-03-20")
    early = _post(customer, KIND_CREDIT, 20, date="2026-03-01")
    other_month = _post(customer, KIND_PAYMENT, 5, date="2026-04-02")

    assert [e.id for e in ledger_service.list_for(customer.id)] == [early.id, late.id, other_month.id]
    assert [e.id for e in ledger_service.list_for(customer.id, "2026-03")] == [early.id, late.id]


def test_post_from_payload_accepts_camel_case(db_session, make_customer):
    customer = make_customer()

    entry = ledger_service.post_from_payload({
        "customerId": str(customer.id),
        "amount": "99.99",
        "type": "payment",
        "note": "  cash  ",
        "date": "2026-05-04T10:00:00Z",
    })

    assert entry.kind == KIND_PAYMENT
    assert entry.amount == Decimal("99.99")
    assert entry.note == "cash"
    assert entry.date == "2026-05-04"


def test_update_entry_corrects_amount_note_date(db_session, make_customer):
    customer = make_customer()
    entry = _post(customer, KIND_CREDIT, 10)

    ledger_service.update_entry(entry.id, {"amount": 12, "note": "fixed", "date": "2026-03-11"})

    updated = ledger_service.get_entry(entry.id)
    assert updated.amount == Decimal("12")
    assert updated.note == "fixed"
    assert updated.date == "2026-03-11"
    assert ledger_service.balance_of(customer.id).balance == Decimal("12")


def test_update_entry_rejects_fixed_fields(db_session, make_customer):
    customer = make_customer()
    entry = _post(customer, KIND_CREDIT, 10)

    with pytest.raises(ValidationError):
        ledger_service.update_entry(entry.id, {"kind": "payment"})
    with pytest.raises(ValidationError):
        ledger_service.update_entry(entry.id, {"amount": 0})


def test_delete_entry(db_session, make_customer):
    customer = make_customer()
    entry = _post(customer, KIND_CREDIT, 10)

    ledger_service.delete_entry(entry.id)

    assert ledger_service.list_for(customer.id) == []
    with pytest.raises(NotFoundError):
        ledger_service.delete_entry(entry.id)


def test_unmigrated_legacy_counts_toward_balance(db_session, make_customer):
    customer = make_customer()
    _post(customer, KIND_CREDIT, 100)
    db_session.add(LegacyCreditEntry(id=1, customer_id=customer.id, amount=Decimal("50"), date="2026-01-05"))
    db_session.add(LegacyPayment(id=1, customer_id=customer.id, amount=Decimal("20"), date="2026-01-06"))
    db_session.commit()

    before = ledger_service.balance_of(customer.id)
    assert before.ledger_balance == Decimal("100")
    assert before.unmigrated_legacy_balance == Decimal("30")
    assert before.unmigrated_count == 2
    assert before.balance == Decimal("130")

    migration_service.migrate_legacy_to_ledger()

    after = ledger_service.balance_of(customer.id)
    assert after.unmigrated_count == 0
    assert after.ledger_balance == Decimal("130")
    assert after.balance == before.balance


def test_balance_view_serializes(db_session, make_customer):
    customer = make_customer()
    _post(customer, KIND_CREDIT, "10.50")

    data = ledger_service.balance_of(customer.id).to_dict()

    assert data["balance"] == 10.5
    assert data["fully_migrated"] is True
    assert data["customer_id"] == customer.id
