# Overview: Pytest coverage for the charge ledger (charges, adjustments, payments).

"""
Charge Ledger Tests

Ledger functions only flush; each test commits where a workflow would.
"""

import pytest

from clinic.errors import (
    ChargeNotFoundError,
    DuplicateChargeError,
    InvalidAmountError,
    NotFoundError,
    ReasonRequiredError,
    ValidationError,
)
from clinic.models import Charge, ChargeAdjustment, Patient, Payment, PaymentAllocation, Visit
from clinic.services import ledger_service
from clinic.services.charge_calculator import DiscountMode, DiscountRule


@pytest.fixture
def visit(db_session, clinic, today):
    patient = Patient(
        org_id=clinic["org"].id,
        branch_id=clinic["branch"].id,
        patient_code="OP_MAIN_2025011",
        full_name="Ravi Kumar",
    )
    db_session.add(patient)
    db_session.flush()
    visit = Visit(
        patient_id=patient.id,
        org_id=clinic["org"].id,
        branch_id=clinic["branch"].id,
        doctor_id=clinic["doctor"].id,
        visit_date=today,
    )
    db_session.add(visit)
    db_session.commit()
    return visit


def _charge(db_session, visit, line, gross):
    charge = ledger_service.record_initial_charge(visit.id, line.id, gross)
    db_session.commit()
    return charge


class TestInitialCharge:

    def test_starts_undiscounted(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 50000)

        assert charge.gross_cents == 50000
        assert charge.discount_cents == 0
        assert charge.net_cents == 50000

    def test_duplicate_rejected_and_ledger_unchanged(self, db_session, visit, consultation):
        _charge(db_session, visit, consultation, 50000)

        with pytest.raises(DuplicateChargeError):
            ledger_service.record_initial_charge(visit.id, consultation.id, 70000)
        db_session.rollback()

        charges = db_session.query(Charge).filter_by(visit_id=visit.id).all()
        assert len(charges) == 1
        assert charges[0].gross_cents == 50000

    def test_negative_gross_rejected(self, db_session, visit, consultation):
        with pytest.raises(InvalidAmountError):
            ledger_service.record_initial_charge(visit.id, consultation.id, -1)

    def test_get_charge_unknown(self, db_session, visit, consultation):
        with pytest.raises(ChargeNotFoundError):
            ledger_service.get_charge(visit.id, consultation.id)


class TestAdjustCharge:

    def test_waive_unpaid_charge(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 50000)

        result = ledger_service.adjust_charge(
            charge.id, DiscountRule(DiscountMode.WAIVE), "Hardship waiver", actor_id=7
        )
        db_session.commit()

        assert result.new_net_cents == 0
        assert result.refund_due_cents == 0
        assert charge.discount_cents == 50000
        assert charge.net_cents == 0

    def test_discount_after_full_payment_reports_refund_due(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 100000)
        ledger_service.record_payment(visit.id, consultation.id, 100000, "CASH")
        db_session.commit()

        result = ledger_service.adjust_charge(charge.id, 40000, "Senior citizen discount", actor_id=7)
        db_session.commit()

        assert result.new_net_cents == 60000
        assert result.refund_due_cents == 40000
        # The ledger never refunds on its own
        assert ledger_service.get_paid_total(charge.id) == 100000

    def test_adjustment_snapshot(self, db_session, visit, consultation, doctor):
        charge = _charge(db_session, visit, consultation, 50000)
        ledger_service.record_payment(visit.id, consultation.id, 20000, "UPI")

        result = ledger_service.adjust_charge(
            charge.id,
            DiscountRule(DiscountMode.PERCENT, 10),
            "  Staff family  ",
            actor_id=7,
            authorized_by_doctor_id=doctor.id,
        )
        db_session.commit()

        adj = result.adjustment
        assert adj.old_gross_cents == 50000
        assert adj.old_discount_cents == 0
        assert adj.old_net_cents == 50000
        assert adj.new_discount_cents == 5000
        assert adj.new_net_cents == 45000
        assert adj.paid_cents == 20000
        assert adj.refund_due_cents == 0
        assert adj.reason == "Staff family"
        assert adj.actor_id == 7
        assert adj.authorized_by_doctor_id == doctor.id

    def test_missing_reason_writes_nothing(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 50000)

        with pytest.raises(ReasonRequiredError):
            ledger_service.adjust_charge(charge.id, 10000, "   ", actor_id=7)
        db_session.rollback()

        assert db_session.query(ChargeAdjustment).count() == 0
        charge = db_session.get(Charge, charge.id)
        assert charge.discount_cents == 0
        assert charge.net_cents == 50000

    def test_no_op_adjustment_writes_nothing(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 50000)

        result = ledger_service.adjust_charge(charge.id, 0, None, actor_id=7)

        assert result.adjustment is None
        assert result.new_net_cents == 50000
        assert db_session.query(ChargeAdjustment).count() == 0

    def test_discount_above_gross_clamps(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 50000)

        result = ledger_service.adjust_charge(charge.id, 90000, "Goodwill", actor_id=7)

        assert result.new_net_cents == 0
        assert charge.discount_cents == 50000

    def test_negative_discount_rejected(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 50000)

        with pytest.raises(InvalidAmountError):
            ledger_service.adjust_charge(charge.id, -500, "Oops", actor_id=7)

    def test_unknown_charge(self, db_session):
        with pytest.raises(ChargeNotFoundError):
            ledger_service.adjust_charge(99999, 100, "Reason", actor_id=7)

    def test_every_change_audited(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 50000)

        ledger_service.adjust_charge(charge.id, 10000, "First", actor_id=7)
        ledger_service.adjust_charge(charge.id, 20000, "Second", actor_id=7)
        db_session.commit()

        trail = ledger_service.get_charge_adjustments(charge.id)
        assert [a.reason for a in trail] == ["First", "Second"]
        assert trail[1].old_discount_cents == 10000


class TestRecordPayment:

    def test_payment_allocates_to_charge(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 50000)

        payment = ledger_service.record_payment(visit.id, consultation.id, 30000, "cash", note="Front desk")
        db_session.commit()

        assert payment.mode == "CASH"
        assert payment.direction == ledger_service.DIRECTION_PAYMENT
        allocation = db_session.query(PaymentAllocation).filter_by(payment_id=payment.id).one()
        assert allocation.charge_id == charge.id
        assert allocation.amount_cents == 30000
        assert ledger_service.get_paid_total(charge.id) == 30000

    def test_overpayment_allowed_by_default(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 50000)

        ledger_service.record_payment(visit.id, consultation.id, 60000, "CASH")
        db_session.commit()

        breakdown = ledger_service.get_charge_breakdown(charge)
        assert breakdown.refund_due_cents == 10000
        assert breakdown.pending_cents == 0

    def test_overpayment_rejected_when_disabled(self, app, db_session, visit, consultation):
        _charge(db_session, visit, consultation, 50000)
        app.config["ALLOW_OVERPAYMENT"] = False

        ledger_service.record_payment(visit.id, consultation.id, 50000, "CASH")
        with pytest.raises(InvalidAmountError):
            ledger_service.record_payment(visit.id, consultation.id, 1, "CASH")

    def test_refund_allocates_negative(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 50000)
        ledger_service.record_payment(visit.id, consultation.id, 50000, "CASH")

        refund = ledger_service.record_payment(
            visit.id, consultation.id, 20000, "CASH", ledger_service.DIRECTION_REFUND
        )
        db_session.commit()

        allocation = db_session.query(PaymentAllocation).filter_by(payment_id=refund.id).one()
        assert refund.amount_cents == 20000
        assert allocation.amount_cents == -20000
        assert ledger_service.get_paid_total(charge.id) == 30000

    def test_refund_cannot_exceed_paid(self, db_session, visit, consultation):
        _charge(db_session, visit, consultation, 50000)
        ledger_service.record_payment(visit.id, consultation.id, 10000, "CASH")

        with pytest.raises(InvalidAmountError):
            ledger_service.record_payment(
                visit.id, consultation.id, 10001, "CASH", ledger_service.DIRECTION_REFUND
            )

    @pytest.mark.parametrize("amount", [0, -100])
    def test_non_positive_amount_rejected(self, db_session, visit, consultation, amount):
        _charge(db_session, visit, consultation, 50000)

        with pytest.raises(InvalidAmountError):
            ledger_service.record_payment(visit.id, consultation.id, amount, "CASH")

    def test_inactive_mode_rejected(self, db_session, visit, consultation):
        _charge(db_session, visit, consultation, 50000)

        with pytest.raises(ValidationError):
            ledger_service.record_payment(visit.id, consultation.id, 100, "CHEQUE")

    def test_invalid_direction_rejected(self, db_session, visit, consultation):
        _charge(db_session, visit, consultation, 50000)

        with pytest.raises(ValidationError):
            ledger_service.record_payment(visit.id, consultation.id, 100, "CASH", "CHARGEBACK")

    def test_payment_without_charge(self, db_session, visit, consultation):
        with pytest.raises(ChargeNotFoundError):
            ledger_service.record_payment(visit.id, consultation.id, 100, "CASH")


class TestPendingPayments:

    def test_pending_not_counted_until_settled(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 50000)

        payment = ledger_service.record_payment(
            visit.id, consultation.id, 50000, "UPI", status=ledger_service.PAY_STATUS_PENDING
        )
        db_session.commit()
        assert ledger_service.get_paid_total(charge.id) == 0

        ledger_service.settle_payment(payment.id, ledger_service.PAY_STATUS_ACCEPTED, actor_id=3)
        db_session.commit()

        assert payment.status == ledger_service.PAY_STATUS_ACCEPTED
        assert payment.settled_by == 3
        assert payment.settled_at is not None
        assert ledger_service.get_paid_total(charge.id) == 50000

    def test_waived_never_counts(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 50000)
        payment = ledger_service.record_payment(
            visit.id, consultation.id, 50000, "UPI", status=ledger_service.PAY_STATUS_PENDING
        )

        ledger_service.settle_payment(payment.id, ledger_service.PAY_STATUS_WAIVED)
        db_session.commit()

        assert ledger_service.get_paid_total(charge.id) == 0

    def test_settle_only_once(self, db_session, visit, consultation):
        _charge(db_session, visit, consultation, 50000)
        payment = ledger_service.record_payment(
            visit.id, consultation.id, 50000, "UPI", status=ledger_service.PAY_STATUS_PENDING
        )
        ledger_service.settle_payment(payment.id, ledger_service.PAY_STATUS_ACCEPTED)

        with pytest.raises(ValidationError):
            ledger_service.settle_payment(payment.id, ledger_service.PAY_STATUS_WAIVED)

    def test_refund_cannot_be_pending(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 100000)
        ledger_service.record_payment(visit.id, consultation.id, 100000, "CASH")
        db_session.commit()

        for _ in range(2):
            with pytest.raises(ValidationError):
                ledger_service.record_payment(
                    visit.id,
                    consultation.id,
                    100000,
                    "CASH",
                    ledger_service.DIRECTION_REFUND,
                    status=ledger_service.PAY_STATUS_PENDING,
                )
        db_session.rollback()

        assert db_session.query(Payment).filter_by(direction=ledger_service.DIRECTION_REFUND).count() == 0
        assert ledger_service.get_paid_total(charge.id) == 100000

    def test_refunds_never_drive_paid_negative(self, db_session, visit, consultation):
        charge = _charge(db_session, visit, consultation, 100000)
        ledger_service.record_payment(visit.id, consultation.id, 100000, "CASH")
        ledger_service.record_payment(
            visit.id, consultation.id, 100000, "CASH", ledger_service.DIRECTION_REFUND
        )

        with pytest.raises(InvalidAmountError):
            ledger_service.record_payment(
                visit.id, consultation.id, 1, "CASH", ledger_service.DIRECTION_REFUND
            )
        assert ledger_service.get_paid_total(charge.id) == 0

    def test_settle_unknown_payment(self, db_session):
        with pytest.raises(NotFoundError):
            ledger_service.settle_payment(99999, ledger_service.PAY_STATUS_ACCEPTED)

    def test_cannot_settle_to_pending(self, db_session):
        with pytest.raises(ValidationError):
            ledger_service.settle_payment(1, ledger_service.PAY_STATUS_PENDING)


class TestChargeSummary:

    def test_totals_across_charges(self, db_session, visit, consultation, org, branch):
        from clinic.models import ServiceLine

        xray = ServiceLine(org_id=org.id, code="XRAY", name="X-Ray", is_active=True)
        db_session.add(xray)
        db_session.commit()

        _charge(db_session, visit, consultation, 50000)
        _charge(db_session, visit, xray, 120000)
        ledger_service.record_payment(visit.id, consultation.id, 50000, "CASH")
        ledger_service.record_payment(visit.id, xray.id, 20000, "UPI")
        db_session.commit()

        summary = ledger_service.get_charge_summary(visit.id)

        assert len(summary["charges"]) == 2
        assert summary["totals"]["gross_cents"] == 170000
        assert summary["totals"]["paid_cents"] == 70000
        assert summary["totals"]["pending_cents"] == 100000
        assert [c["status"] for c in summary["charges"]] == ["PAID", "PARTIAL"]
        assert db_session.query(Payment).filter_by(visit_id=visit.id).count() == 2
