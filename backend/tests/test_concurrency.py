# Overview: Pytest coverage for retry and transaction boundaries around lock failures.

"""
Retry / Transaction Tests

A lock failure (OperationalError) or optimistic-lock conflict (StaleDataError)
rolls back and re-runs the whole operation; once attempts are exhausted the
caller sees ConcurrencyTimeoutError and nothing from any attempt persists.
"""

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from clinic.errors import ConcurrencyTimeoutError, ValidationError
from clinic.extensions import db
from clinic.models import Organization
from clinic.services.concurrency import run_in_transaction, run_with_retry


def _locked():
    return OperationalError("UPDATE sequence_counters", {}, Exception("database is locked"))


def _failing_op(calls, failures, exc_factory):
    """Adds an organization each attempt; fails the first `failures` attempts."""
    def _op():
        calls.append(1)
        db.session.add(Organization(name=f"Attempt {len(calls)}", is_active=True))
        db.session.flush()
        if len(calls) <= failures:
            raise exc_factory()
        return len(calls)
    return _op


class TestRunInTransaction:

    def test_transient_failure_then_success_commits_once(self, db_session):
        calls = []
        commits = []
        session = db_session()

        def count_commit(sess):
            commits.append(1)

        event.listen(session, "after_commit", count_commit)
        try:
            result = run_in_transaction(_failing_op(calls, 2, _locked), attempts=3, backoff_base=0)
        finally:
            event.remove(session, "after_commit", count_commit)
        db_session.rollback()

        assert result == 3
        assert len(calls) == 3
        assert len(commits) == 1
        # Only the successful attempt's write survives
        assert [o.name for o in db_session.query(Organization).all()] == ["Attempt 3"]

    def test_exhausted_retries_raise_timeout_and_roll_back(self, db_session):
        calls = []

        with pytest.raises(ConcurrencyTimeoutError):
            run_in_transaction(_failing_op(calls, 99, _locked), attempts=4, backoff_base=0)

        assert len(calls) == 4
        assert db_session.query(Organization).count() == 0

    def test_stale_data_is_retried(self, db_session):
        calls = []

        with pytest.raises(ConcurrencyTimeoutError):
            run_in_transaction(
                _failing_op(calls, 99, lambda: StaleDataError("charges row changed")),
                attempts=2,
                backoff_base=0,
            )

        assert len(calls) == 2
        assert db_session.query(Organization).count() == 0

    def test_attempts_from_config(self, app, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "DB_RETRY_ATTEMPTS", 5)
        calls = []

        with pytest.raises(ConcurrencyTimeoutError):
            run_in_transaction(_failing_op(calls, 99, _locked))

        assert len(calls) == 5

    def test_business_errors_are_not_retried(self, db_session):
        calls = []

        with pytest.raises(ValidationError):
            run_in_transaction(
                _failing_op(calls, 99, lambda: ValidationError("bad input")),
                attempts=3,
                backoff_base=0,
            )

        assert len(calls) == 1
        assert db_session.query(Organization).count() == 0


class TestRunWithRetry:

    @pytest.mark.parametrize("attempts", [0, -2])
    def test_always_runs_at_least_once(self, db_session, attempts):
        calls = []

        result = run_with_retry(lambda: calls.append(1) or "done", attempts=attempts, backoff_base=0)

        assert result == "done"
        assert len(calls) == 1

    def test_zero_attempts_still_surfaces_timeout(self, db_session):
        calls = []

        with pytest.raises(ConcurrencyTimeoutError):
            run_with_retry(_failing_op(calls, 99, _locked), attempts=0, backoff_base=0)

        assert len(calls) == 1
