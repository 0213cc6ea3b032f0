# Overview: Pytest coverage for sequence counter allocation.

"""
Sequence Allocation Tests

- A fresh scope hands out 1 and leaves the counter at 2
- Values increase by one per allocation and scopes are independent
- An allocation inside a rolled-back transaction is released
- Concurrent allocators on a shared database never see the same value
"""

import threading
from datetime import date

import pytest

from clinic import create_app
from clinic.errors import ValidationError
from clinic.extensions import db
from clinic.models import SequenceCounter
from clinic.services.sequence_service import (
    allocate_sequence,
    format_patient_code,
    next_sequence_value,
    patient_scope_key,
    peek_sequence,
    token_scope_key,
)

from conftest import ClinicTestConfig


class TestScopeKeys:

    def test_patient_scope_is_monthly(self):
        assert patient_scope_key(1, 2, date(2025, 1, 31)) == "1|2|202501"

    def test_token_scope_is_daily(self):
        assert token_scope_key(1, 2, date(2025, 1, 5)) == "1|2|2025-01-05"

    def test_patient_code_format(self):
        assert format_patient_code("SMNH-MCC", date(2025, 9, 14), 1) == "OP_SMNH-MCC_2025091"
        assert format_patient_code("MAIN", date(2025, 12, 1), 42) == "OP_MAIN_20251242"


class TestAllocateSequence:

    def test_fresh_scope_starts_at_one(self, db_session):
        result = allocate_sequence("org1|branch1|202501")

        assert result == {"value": 1}
        counter = db_session.get(SequenceCounter, "org1|branch1|202501")
        assert counter.next_value == 2

    def test_values_increase_by_one(self, db_session):
        values = [allocate_sequence("1|1|202501")["value"] for _ in range(5)]
        assert values == [1, 2, 3, 4, 5]
        assert peek_sequence("1|1|202501") == 6

    def test_scopes_are_independent(self, db_session):
        allocate_sequence("1|1|202501")
        allocate_sequence("1|1|202501")

        assert allocate_sequence("1|2|202501")["value"] == 1
        assert allocate_sequence("1|1|202502")["value"] == 1
        assert allocate_sequence("1|1|202501")["value"] == 3

    def test_blank_scope_rejected(self, db_session):
        with pytest.raises(ValidationError):
            allocate_sequence("  ")

    def test_never_allocated_scope_peeks_none(self, db_session):
        assert peek_sequence("9|9|209901") is None

    def test_rollback_releases_allocation(self, db_session):
        assert next_sequence_value("1|1|2025-01-05") == 1
        db_session.rollback()

        assert peek_sequence("1|1|2025-01-05") is None
        assert allocate_sequence("1|1|2025-01-05")["value"] == 1

    def test_committed_allocation_survives(self, db_session):
        next_sequence_value("1|1|2025-01-05")
        db_session.commit()
        db_session.rollback()

        assert allocate_sequence("1|1|2025-01-05")["value"] == 2


class TestConcurrentAllocation:
    """Allocators racing on one file-backed database."""

    THREADS = 8
    PER_THREAD = 5

    def test_no_duplicates_under_concurrency(self, tmp_path):
        db_file = tmp_path / "sequences.sqlite3"

        class FileConfig(ClinicTestConfig):
            SQLALCHEMY_DATABASE_URI = f"sqlite:///{db_file}"
            SQLALCHEMY_ENGINE_OPTIONS = {
                "connect_args": {"check_same_thread": False, "timeout": 30},
            }
            DB_RETRY_ATTEMPTS = 20
            DB_RETRY_BACKOFF_BASE = 0.01

        file_app = create_app(FileConfig)
        with file_app.app_context():
            db.create_all()

        results = []
        errors = []
        lock = threading.Lock()

        def worker():
            with file_app.app_context():
                try:
                    for _ in range(self.PER_THREAD):
                        value = allocate_sequence("1|1|202501")["value"]
                        with lock:
                            results.append(value)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(self.THREADS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        total = self.THREADS * self.PER_THREAD
        assert errors == []
        assert sorted(results) == list(range(1, total + 1))

        with file_app.app_context():
            assert peek_sequence("1|1|202501") == total + 1
            db.session.remove()
            db.engine.dispose()
