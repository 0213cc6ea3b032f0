"""
Pytest fixtures for clinic billing tests.

Provides test database setup, a small clinic catalog, and test client.
"""

import pytest

from clinic import create_app
from clinic.config import Config
from clinic.extensions import db
from clinic.models import Branch, Doctor, Organization, PaymentMode, ServiceLine, ServiceRate
from clinic.services import visit_billing_service
from clinic.time_utils import clinic_today


class ClinicTestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    DB_RETRY_BACKOFF_BASE = 0
    ALLOW_OVERPAYMENT = True
    ALLOCATION_TOLERANCE_CENTS = 0


CONSULTATION_RATE_CENTS = 50000


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(ClinicTestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        app.config["ALLOW_OVERPAYMENT"] = True


@pytest.fixture(scope='function')
def today(app):
    with app.app_context():
        return clinic_today()


@pytest.fixture(scope='function')
def org(db_session):
    org = Organization(name="Sunrise Clinics", code="SUN", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def other_org(db_session):
    org = Organization(name="Lakeside Health", code="LAKE", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def branch(db_session, org):
    branch = Branch(org_id=org.id, name="Main Branch", code="MAIN", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def other_branch(db_session, org):
    branch = Branch(org_id=org.id, name="East Wing", code="EAST", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def doctor(db_session, org, branch):
    doctor = Doctor(org_id=org.id, branch_id=branch.id, full_name="Dr. Iyer", is_active=True)
    db_session.add(doctor)
    db_session.commit()
    return doctor


@pytest.fixture(scope='function')
def consultation(db_session, org, branch):
    """CONSULTATION service line with a 500.00 rate at the main branch."""
    line = ServiceLine(org_id=org.id, code="CONSULTATION", name="Consultation", is_active=True)
    db_session.add(line)
    db_session.flush()
    db_session.add(ServiceRate(
        service_line_id=line.id,
        branch_id=branch.id,
        rate_cents=CONSULTATION_RATE_CENTS,
        is_active=True,
    ))
    db_session.commit()
    return line


@pytest.fixture(scope='function')
def payment_modes(db_session):
    db_session.add_all([
        PaymentMode(code="CASH", display_name="Cash", sort_order=10, is_active=True),
        PaymentMode(code="UPI", display_name="UPI", sort_order=20, is_active=True),
        PaymentMode(code="CHEQUE", display_name="Cheque", sort_order=90, is_active=False),
    ])
    db_session.commit()
    return ["CASH", "UPI"]


@pytest.fixture(scope='function')
def clinic(org, branch, doctor, consultation, payment_modes):
    """Everything a registration needs."""
    return {
        "org": org,
        "branch": branch,
        "doctor": doctor,
        "consultation": consultation,
    }


@pytest.fixture(scope='function')
def register(clinic, today):
    """Register a visit for a new patient with sensible defaults."""
    def _register(**overrides):
        kwargs = {
            "org_id": clinic["org"].id,
            "branch_id": clinic["branch"].id,
            "doctor_id": clinic["doctor"].id,
            "service_line_id": clinic["consultation"].id,
            "visit_date": today,
            "actor_id": 1,
            "full_name": "Asha Rao",
            "today": today,
        }
        kwargs.update(overrides)
        return visit_billing_service.register_visit(**kwargs)

    return _register


@pytest.fixture(scope='function')
def staff_headers(clinic):
    """Staff context headers as set by the auth gateway, for the main branch."""
    return {
        'X-Actor-Id': '1',
        'X-Org-Id': str(clinic["org"].id),
        'X-Branch-Id': str(clinic["branch"].id),
    }
