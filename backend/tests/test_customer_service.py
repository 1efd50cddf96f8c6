import warnings
from decimal import Decimal
from pathlib import Path

import pytest

import kirana
from kirana.models import Customer, LedgerEntry, MilkLog, Order
from kirana.models.ledger import KIND_CREDIT
from kirana.services import customer_service, ledger_service, milk_service, order_service
from kirana.validation import ConflictError, NotFoundError, ValidationError


def test_create_customer_normalizes_phone(db_session):
    customer = customer_service.create_customer({
        "name": "Asha",
        "phone": "98765-00001",
        "creditLimit": "500",
    })

    assert customer.id == 1
    assert customer.phone == "9876500001"
    assert customer.credit_limit == Decimal("500")
    assert customer_service.find_by_phone("98765 00001").id == customer.id


@pytest.mark.parametrize("payload", [
    {"phone": "9876500001"},
    {"name": "Asha"},
    {"name": "Asha", "phone": "12"},
    {"name": "Asha", "phone": "9876500001", "creditLimit": "-1"},
])
def test_create_customer_validation(db_session, payload):
    with pytest.raises(ValidationError):
        customer_service.create_customer(payload)


def test_duplicate_phone_conflicts(db_session, make_customer):
    make_customer(phone="9876500001")

    with pytest.raises(ConflictError):
        make_customer(phone="9876500001")


def test_pin_is_hashed_and_verified(db_session):
    customer = customer_service.create_customer({"name": "Asha", "phone": "9876500001"}, pin="1234")

    assert customer.pin_hash and "1234" not in customer.pin_hash
    assert "pin_hash" not in customer.to_dict()
    assert customer_service.verify_pin(customer, "1234") is True
    assert customer_service.verify_pin(customer, "4321") is False


def test_soft_delete_hides_customer(db_session, make_customer):
    customer = make_customer(phone="9876500001")

    customer_service.soft_delete(customer.id)

    assert customer_service.find_by_phone("9876500001") is None
    assert customer_service.find_by_id(customer.id) is None
    assert customer_service.find_by_id(customer.id, include_deleted=True).is_deleted
    assert customer_service.list_customers() == []
    with pytest.raises(NotFoundError):
        customer_service.get_customer(customer.id)


def test_phone_reusable_after_soft_delete(db_session, make_customer):
    old = make_customer(phone="9876500001")
    customer_service.soft_delete(old.id)

    new = make_customer(phone="9876500001")

    assert new.id != old.id
    with pytest.raises(ConflictError):
        customer_service.restore(old.id)


def test_restore(db_session, make_customer):
    customer = make_customer()
    customer_service.soft_delete(customer.id)

    restored = customer_service.restore(customer.id)

    assert restored.is_deleted is False
    assert restored.deleted_at is None


def test_hard_delete_removes_related_rows(db_session, make_customer, make_product):
    customer = make_customer(phone="9876500001")
    product = make_product(stock=None)
    milk_service.subscribe(customer.id, default_qty=1)
    milk_service.record_delivery(customer.id, "2026-03-01", qty=1)
    order_service.place_order({
        "customerName": "Asha",
        "phone": "9876500001",
        "items": [{"productId": product.id, "qty": 1}],
        "paymentMethod": "account",
    })
    ledger_service.post_entry(customer_id=customer.id, kind=KIND_CREDIT, amount=10)

    counts = customer_service.hard_delete(customer.id)

    assert counts["ledger_entries"] == 2
    assert counts["orders"] == 1
    assert counts["milk_logs"] == 1
    assert db_session.get(Customer, customer.id) is None
    assert db_session.query(Order).count() == 0
    assert db_session.query(LedgerEntry).count() == 0
    assert db_session.query(MilkLog).count() == 0


def test_package_sources_compile_without_warnings():
    package_dir = Path(kirana.__file__).parent
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        for path in sorted(package_dir.rglob("*.py")):
            compile(path.read_text(encoding="utf-8"), str(path), "exec")
