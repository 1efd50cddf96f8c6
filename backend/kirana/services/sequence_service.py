# Overview: Named, monotonically increasing id counters backed by the counters table.

from __future__ import annotations

from sqlalchemy import insert, select, update

from ..extensions import db
from ..models import Counter
from ..validation import ValidationError

"""
Sequence invariants (authoritative)

- Every entity id (customers, orders, ledger entries) comes from next_id().
- The increment is a single UPDATE ... SET value = value + 1 on the counter
  row, so two concurrent callers can never read the same value back.
- The increment is committed on its own connection before the id is
  returned. An id is consumed even when the caller's transaction later
  rolls back; it is never handed out twice.
- Callers take their ids before their own first write. On SQLite the
  counter commit would otherwise wait on the caller's own write lock.
- Gaps are acceptable, duplicates are not.
"""

COUNTER_CUSTOMERS = "customers"
COUNTER_ORDERS = "orders"
COUNTER_LEDGER = "ledger"

KNOWN_COUNTERS = (COUNTER_CUSTOMERS, COUNTER_ORDERS, COUNTER_LEDGER)


def _insert_if_missing(executor, counter_name: str) -> None:
    """
    Create the counter row at 0; a concurrent creator winning the race is fine.

    executor is either db.session or a Connection.
    """
    dialect = executor.get_bind().dialect.name if executor is db.session else executor.dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    else:
        exists = executor.execute(select(Counter.name).where(Counter.name == counter_name)).first()
        if exists is None:
            executor.execute(insert(Counter).values(name=counter_name, value=0))
        return
    executor.execute(
        dialect_insert(Counter)
        .values(name=counter_name, value=0)
        .on_conflict_do_nothing(index_elements=["name"])
    )


def next_id(counter_name: str) -> int:
    """
    Atomically allocate and commit the next integer for a named counter.

    Missing counters are created on first use, so the first id is 1.
    Storage errors propagate to the caller; the enclosing operation owns
    retry (see concurrency.run_with_retry).
    """
    if not counter_name:
        raise ValidationError("counter_name is required")

    bump = (
        update(Counter)
        .where(Counter.name == counter_name)
        .values(value=Counter.value + 1)
    )

    with db.engine.begin() as conn:
        if not conn.execute(bump).rowcount:
            _insert_if_missing(conn, counter_name)
            if not conn.execute(bump).rowcount:
                raise RuntimeError(f"counter {counter_name!r} could not be created")
        value = conn.execute(
            select(Counter.value).where(Counter.name == counter_name)
        ).scalar_one()
    return value


def peek(counter_name: str) -> int:
    """Last issued value for a counter (0 if never used)."""
    value = (
        db.session.query(Counter.value)
        .filter_by(name=counter_name)
        .scalar()
    )
    return value or 0


def ensure_counters() -> None:
    """Create the known counters up front (idempotent)."""
    for name in KNOWN_COUNTERS:
        _insert_if_missing(db.session, name)
    db.session.flush()
