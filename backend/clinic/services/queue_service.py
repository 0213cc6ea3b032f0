# Overview: Service-layer operations for the daily visit queue.

"""
Queue status for today's visits.

The machine is intentionally permissive: staff may move an entry between any
two statuses (including re-opening COMPLETED). There is no transition table
and no terminal state. Status changes touch only the queue row.
"""

from __future__ import annotations

from datetime import date
from enum import Enum

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import QueueEntry, Visit
from .concurrency import run_in_transaction
from .sequence_service import next_sequence_value, token_scope_key


class QueueStatus(str, Enum):
    WAITING = "WAITING"
    NEXT = "NEXT"
    IN_ROOM = "IN_ROOM"
    COMPLETED = "COMPLETED"


INITIAL_STATUS = QueueStatus.WAITING


def parse_queue_status(value) -> QueueStatus:
    try:
        return QueueStatus(str(value or "").strip().upper())
    except ValueError:
        raise ValidationError(
            f"Invalid status: {value}. Must be one of {[s.value for s in QueueStatus]}"
        )


def enqueue_visit(visit: Visit, day: date) -> QueueEntry:
    """
    Create the visit's queue entry for `day` (caller's transaction).

    Idempotent per visit per day: an existing entry is returned unchanged.
    The token comes from the (org, branch, day) sequence.
    """
    existing = db.session.query(QueueEntry).filter_by(visit_id=visit.id, queue_date=day).first()
    if existing:
        return existing

    token = next_sequence_value(token_scope_key(visit.org_id, visit.branch_id, day))
    entry = QueueEntry(
        visit_id=visit.id,
        branch_id=visit.branch_id,
        queue_date=day,
        token_no=token,
        status=INITIAL_STATUS.value,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def set_queue_status(
    queue_entry_id: int,
    new_status,
    *,
    org_id: int | None = None,
    branch_id: int | None = None,
    day: date | None = None,
) -> QueueEntry:
    """
    Move a queue entry to any status. Single-row update, own transaction.

    org_id / branch_id / day restrict which entries the caller may touch;
    entries outside that scope are reported as not found.
    """
    status = parse_queue_status(new_status)

    def _op():
        query = (
            db.session.query(QueueEntry)
            .join(Visit, Visit.id == QueueEntry.visit_id)
            .filter(QueueEntry.id == queue_entry_id)
        )
        if org_id is not None:
            query = query.filter(Visit.org_id == org_id)
        if branch_id is not None:
            query = query.filter(QueueEntry.branch_id == branch_id)
        if day is not None:
            query = query.filter(QueueEntry.queue_date == day)

        entry = query.first()
        if not entry:
            raise NotFoundError("Queue entry not found")

        entry.status = status.value
        return entry

    return run_in_transaction(_op)


def list_queue(branch_id: int, day: date) -> list[QueueEntry]:
    return (
        db.session.query(QueueEntry)
        .filter_by(branch_id=branch_id, queue_date=day)
        .order_by(QueueEntry.token_no)
        .all()
    )
