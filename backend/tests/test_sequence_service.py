from kirana.models import Counter
from kirana.services import sequence_service
from kirana.services.sequence_service import COUNTER_LEDGER, COUNTER_ORDERS


def test_next_id_starts_at_one_and_increments(db_session):
    assert sequence_service.next_id(COUNTER_ORDERS) == 1
    assert sequence_service.next_id(COUNTER_ORDERS) == 2
    assert sequence_service.next_id(COUNTER_ORDERS) == 3
    db_session.commit()

    assert sequence_service.peek(COUNTER_ORDERS) == 3


def test_counters_are_independent(db_session):
    assert sequence_service.next_id(COUNTER_ORDERS) == 1
    assert sequence_service.next_id(COUNTER_LEDGER) == 1
    assert sequence_service.next_id(COUNTER_ORDERS) == 2
    db_session.commit()


def test_counter_survives_commit(db_session):
    sequence_service.next_id("invoices")
    db_session.commit()
    db_session.expire_all()

    row = db_session.get(Counter, "invoices")
    assert row.value == 1
    assert sequence_service.next_id("invoices") == 2


def test_id_is_consumed_even_when_caller_rolls_back(db_session):
    assert sequence_service.next_id(COUNTER_ORDERS) == 1
    db_session.rollback()

    assert sequence_service.next_id(COUNTER_ORDERS) == 2
    assert sequence_service.peek(COUNTER_ORDERS) == 2


def test_unknown_counter_is_created_on_first_use(db_session):
    assert sequence_service.next_id("invoices") == 1
    db_session.rollback()

    assert db_session.get(Counter, "invoices").value == 1


def test_ensure_counters_is_idempotent(db_session):
    sequence_service.ensure_counters()
    sequence_service.ensure_counters()
    db_session.commit()

    names = {c.name for c in db_session.query(Counter).all()}
    assert names == set(sequence_service.KNOWN_COUNTERS)
    assert sequence_service.peek(COUNTER_ORDERS) == 0
