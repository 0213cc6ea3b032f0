# Overview: Service-layer operations for sequence counters; encapsulates business logic and database work.

"""
Sequence allocation for patient codes and daily queue tokens.

INVARIANTS:
- Two allocations for the same scope never return the same value.
- Values only increase; a counter is never decremented or reused.
- A fresh scope starts at 1 (row created with next_value = 2).
- The allocation belongs to the caller's transaction: a rollback releases it.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import SequenceCounter
from .concurrency import run_in_transaction


def patient_scope_key(org_id: int, branch_id: int, period: date) -> str:
    return f"{org_id}|{branch_id}|{period:%Y%m}"


def token_scope_key(org_id: int, branch_id: int, day: date) -> str:
    return f"{org_id}|{branch_id}|{day.isoformat()}"


def format_patient_code(branch_code: str, period: date, seq: int) -> str:
    """OP_<BRANCH>_<YYYY><MM><seq>, e.g. OP_SMNH-MCC_2025091."""
    return f"OP_{branch_code.strip()}_{period:%Y%m}{seq}"


def _bump(scope_key: str) -> int | None:
    """
    Increment an existing counter and return the pre-increment value.

    The UPDATE takes the row (or, on SQLite, database) write lock, so the
    read that follows sees our own increment and nobody else's.
    """
    stmt = (
        update(SequenceCounter)
        .where(SequenceCounter.scope_key == scope_key)
        .values(next_value=SequenceCounter.next_value + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(SequenceCounter.next_value)
        .filter_by(scope_key=scope_key)
        .scalar()
    )
    return current - 1


def next_sequence_value(scope_key: str) -> int:
    """
    Allocate the next value for scope_key inside the current transaction.

    Flushes but does not commit: the business write that consumes the value
    commits (or rolls back) together with the counter.
    """
    if not scope_key or not scope_key.strip():
        raise ValidationError("scope_key is required")

    value = _bump(scope_key)
    if value is not None:
        return value

    try:
        with db.session.begin_nested():
            db.session.add(SequenceCounter(scope_key=scope_key, next_value=2))
        return 1
    except IntegrityError:
        # Lost the race to create the scope row; it exists now.
        value = _bump(scope_key)
        if value is None:
            raise
        return value


def allocate_sequence(scope_key: str) -> dict:
    """Standalone allocation in its own transaction: {"value": n}."""
    value = run_in_transaction(lambda: next_sequence_value(scope_key))
    return {"value": value}


def peek_sequence(scope_key: str) -> int | None:
    """Next value the scope would hand out, or None if never allocated."""
    return (
        db.session.query(SequenceCounter.next_value)
        .filter_by(scope_key=scope_key)
        .scalar()
    )
