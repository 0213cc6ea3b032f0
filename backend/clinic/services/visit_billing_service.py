# Overview: Visit billing workflows; each public function is exactly one database transaction.

"""
Visit Billing Workflow

Orchestrates the sequence allocator, charge calculator, ledger and queue for
the reception/doctor use cases:

- register_visit: patient code (new patients) -> visit -> queue token (same-day
  visits) -> initial charge -> optional discount -> optional paid-now payment
- edit_consultation_charge: adjust_charge; a positive refund due comes back as
  a "refund pending" result
- collect_pending_payment: PAYMENT against the pending amount
- record_refund: the explicit REFUND follow-up to a refund-pending result
- settle_pending_payment: PENDING -> ACCEPTED / WAIVED

DESIGN:
- One transaction per call via run_in_transaction: commit on success, full
  rollback on any error, transient lock failures retried.
- Refunds are never folded into adjustments. Each one is a separate call with
  its own mode and note so the audit trail stays one row per money movement.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConstraintViolationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, Charge, Doctor, Patient, Payment, QueueEntry, ServiceLine, ServiceRate, Visit
from ..time_utils import clinic_today
from . import charge_calculator as calc
from . import ledger_service
from .charge_calculator import DiscountRule
from .concurrency import lock_for_update, run_in_transaction
from .queue_service import enqueue_visit
from .sequence_service import format_patient_code, next_sequence_value, patient_scope_key


CONSULTATION_SERVICE_CODE = "CONSULTATION"

VISIT_STATUS_OPEN = "OPEN"
VISIT_STATUS_CANCELLED = "CANCELLED"
VISIT_STATUS_NO_SHOW = "NO_SHOW"
CLOSED_FOR_MONEY = (VISIT_STATUS_CANCELLED, VISIT_STATUS_NO_SHOW)


@dataclass(frozen=True)
class RegistrationResult:
    patient: Patient
    visit: Visit
    charge: Charge
    queue_entry: QueueEntry | None
    payment: Payment | None
    breakdown: calc.ChargeBreakdown

    def to_dict(self) -> dict:
        return {
            "patient": self.patient.to_dict(),
            "visit": self.visit.to_dict(),
            "charge": self.charge.to_dict(),
            "queued": self.queue_entry is not None,
            "queue_entry": self.queue_entry.to_dict() if self.queue_entry else None,
            "payment": self.payment.to_dict() if self.payment else None,
            "billing": self.breakdown.to_dict(),
        }


@dataclass(frozen=True)
class ChargeEditResult:
    adjustment: ledger_service.AdjustmentResult
    breakdown: calc.ChargeBreakdown

    @property
    def refund_pending(self) -> bool:
        return self.adjustment.refund_due_cents > 0

    def to_dict(self) -> dict:
        data = self.adjustment.to_dict()
        data["billing"] = self.breakdown.to_dict()
        data["refund_pending"] = self.refund_pending
        return data


@dataclass(frozen=True)
class PaymentResult:
    payment: Payment
    breakdown: calc.ChargeBreakdown

    def to_dict(self) -> dict:
        return {
            "payment": self.payment.to_dict(),
            "billing": self.breakdown.to_dict(),
        }


# =============================================================================
# LOOKUPS
# =============================================================================

def _load_visit(visit_id: int, org_id: int | None, branch_id: int | None, *, for_update: bool = False) -> Visit:
    query = db.session.query(Visit).filter_by(id=visit_id)
    if org_id is not None:
        query = query.filter_by(org_id=org_id)
    if branch_id is not None:
        query = query.filter_by(branch_id=branch_id)
    if for_update:
        query = lock_for_update(query)
    visit = query.first()
    if not visit:
        raise NotFoundError(f"Visit {visit_id} not found")
    return visit


def _require_money_allowed(visit: Visit) -> None:
    if visit.status in CLOSED_FOR_MONEY:
        raise ValidationError(f"Cannot move money on a {visit.status} visit")


def _resolve_service_line_id(org_id: int, service_line_id: int | None) -> int:
    if service_line_id:
        return service_line_id
    line = db.session.query(ServiceLine).filter_by(
        org_id=org_id, code=CONSULTATION_SERVICE_CODE, is_active=True
    ).first()
    if not line:
        raise NotFoundError(f"Service not found: {CONSULTATION_SERVICE_CODE}")
    return line.id


def _branch_rate(org_id: int, branch_id: int, service_line_id: int) -> int:
    rate = (
        db.session.query(ServiceRate.rate_cents)
        .join(ServiceLine, ServiceLine.id == ServiceRate.service_line_id)
        .filter(
            ServiceLine.id == service_line_id,
            ServiceLine.org_id == org_id,
            ServiceLine.is_active == True,
            ServiceRate.branch_id == branch_id,
            ServiceRate.is_active == True,
        )
        .scalar()
    )
    if rate is None:
        raise ValidationError("Invalid service or rate not configured for this branch")
    if rate < 0:
        raise ValidationError("Invalid configured rate for this service")
    return rate


def _create_patient(org_id: int, branch: Branch, visit_date: date, full_name: str, phone: str | None) -> Patient:
    if phone:
        taken = db.session.query(Patient.id).filter_by(phone=phone).first()
        if taken:
            raise ConstraintViolationError("A patient with this phone number already exists")

    seq = next_sequence_value(patient_scope_key(org_id, branch.id, visit_date))
    patient = Patient(
        org_id=org_id,
        branch_id=branch.id,
        patient_code=format_patient_code(branch.code, visit_date, seq),
        full_name=full_name,
        phone=phone,
    )
    try:
        with db.session.begin_nested():
            db.session.add(patient)
    except IntegrityError as exc:
        raise ConstraintViolationError("Patient code or phone already registered") from exc
    return patient


# =============================================================================
# WORKFLOWS
# =============================================================================

def register_visit(
    *,
    org_id: int,
    branch_id: int,
    doctor_id: int,
    service_line_id: int,
    visit_date: date,
    actor_id: int | None = None,
    full_name: str | None = None,
    phone: str | None = None,
    patient_code: str | None = None,
    referral_id: str | None = None,
    discount: DiscountRule | int | None = None,
    discount_reason: str | None = None,
    paid_now_cents: int = 0,
    payment_mode: str | None = None,
    remarks: str | None = None,
    today: date | None = None,
) -> RegistrationResult:
    """
    Register a visit for a new patient (full_name, optional phone) or a
    returning one (patient_code).

    The queue token is only issued when visit_date is today. Paid-now is
    clamped to the net after discount; a positive paid-now needs a mode.
    A registration discount is an audited adjustment and needs a reason
    (discount_reason, falling back to remarks).
    """
    if not patient_code and not (full_name or "").strip():
        raise ValidationError("Name is required")
    if paid_now_cents is None or paid_now_cents < 0:
        raise ValidationError("Paid-now must be a valid amount")
    if today is None:
        today = clinic_today()

    def _op() -> RegistrationResult:
        doctor = db.session.query(Doctor).filter_by(
            id=doctor_id, org_id=org_id, branch_id=branch_id, is_active=True
        ).first()
        if not doctor:
            raise ValidationError("Invalid doctor")

        gross = _branch_rate(org_id, branch_id, service_line_id)

        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id, org_id=org_id)).first()
        if not branch or not branch.code:
            raise ValidationError("Invalid branch")

        if patient_code:
            patient = db.session.query(Patient).filter_by(
                patient_code=patient_code.strip(), org_id=org_id
            ).first()
            if not patient:
                raise NotFoundError(f"Patient {patient_code} not found")
        else:
            patient = _create_patient(org_id, branch, visit_date, full_name.strip(), phone)

        visit = Visit(
            patient_id=patient.id,
            org_id=org_id,
            branch_id=branch_id,
            doctor_id=doctor_id,
            visit_date=visit_date,
            referral_id=referral_id,
            remarks=remarks,
            status=VISIT_STATUS_OPEN,
            created_by=actor_id,
        )
        db.session.add(visit)
        db.session.flush()

        queue_entry = enqueue_visit(visit, visit_date) if visit_date == today else None

        charge = ledger_service.record_initial_charge(visit.id, service_line_id, gross)

        if discount:
            ledger_service.adjust_charge(
                charge.id,
                discount,
                discount_reason or remarks,
                actor_id,
            )

        paid_now = calc.clamp(paid_now_cents, 0, charge.net_cents)
        payment = None
        if paid_now > 0:
            if not (payment_mode or "").strip():
                raise ValidationError("Payment mode is required when collecting paid-now amount")
            payment = ledger_service.record_payment(
                visit.id,
                service_line_id,
                paid_now,
                payment_mode,
                ledger_service.DIRECTION_PAYMENT,
                note=remarks,
                actor_id=actor_id,
            )

        return RegistrationResult(
            patient=patient,
            visit=visit,
            charge=charge,
            queue_entry=queue_entry,
            payment=payment,
            breakdown=ledger_service.get_charge_breakdown(charge),
        )

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Registered visit %s for patient %s (token %s)",
        result.visit.id,
        result.patient.patient_code,
        result.queue_entry.token_no if result.queue_entry else None,
    )
    return result


def edit_consultation_charge(
    visit_id: int,
    *,
    actor_id: int | None,
    reason: str | None,
    new_discount: DiscountRule | int | None = None,
    new_net_cents: int | None = None,
    service_line_id: int | None = None,
    authorized_by_doctor_id: int | None = None,
    org_id: int | None = None,
    branch_id: int | None = None,
) -> ChargeEditResult:
    """
    Change the discount on a visit's charge (consultation by default).

    Pass either new_discount (amount or DiscountRule) or new_net_cents; a new
    net is clamped to [0, gross] and turned into the matching discount.
    Check result.refund_pending: when true, follow up with record_refund.
    """
    if (new_discount is None) == (new_net_cents is None):
        raise ValidationError("Provide exactly one of new_discount or new_net_cents")
    if new_net_cents is not None and new_net_cents < 0:
        raise ValidationError("New net amount cannot be negative")

    def _op() -> ChargeEditResult:
        visit = _load_visit(visit_id, org_id, branch_id, for_update=True)
        line_id = _resolve_service_line_id(visit.org_id, service_line_id)
        charge = ledger_service.get_charge(visit.id, line_id)

        discount = new_discount
        if discount is None:
            net = calc.clamp(new_net_cents, 0, charge.gross_cents)
            discount = charge.gross_cents - net

        adjustment = ledger_service.adjust_charge(
            charge.id,
            discount,
            reason,
            actor_id,
            authorized_by_doctor_id=authorized_by_doctor_id,
        )
        return ChargeEditResult(
            adjustment=adjustment,
            breakdown=ledger_service.get_charge_breakdown(adjustment.charge),
        )

    result = run_in_transaction(_op)
    if result.refund_pending:
        current_app.logger.info(
            "Visit %s charge lowered below collected amount; refund due %s",
            visit_id, result.adjustment.refund_due_cents,
        )
    return result


def collect_pending_payment(
    visit_id: int,
    amount_cents: int,
    mode: str,
    *,
    actor_id: int | None = None,
    note: str | None = None,
    service_line_id: int | None = None,
    pending_confirmation: bool = False,
    org_id: int | None = None,
    branch_id: int | None = None,
) -> PaymentResult:
    """
    Collect money against the pending amount of a visit charge.

    Refused when nothing is pending. The amount itself is not capped at the
    pending amount; any excess becomes refund due. pending_confirmation
    records the payment as PENDING (e.g. cheque awaiting clearance).
    """
    def _op() -> PaymentResult:
        visit = _load_visit(visit_id, org_id, branch_id, for_update=True)
        _require_money_allowed(visit)
        line_id = _resolve_service_line_id(visit.org_id, service_line_id)
        charge = ledger_service.get_charge(visit.id, line_id)

        before = ledger_service.get_charge_breakdown(charge)
        if before.pending_cents <= 0:
            raise ValidationError("No pending amount")

        payment = ledger_service.record_payment(
            visit.id,
            line_id,
            amount_cents,
            mode,
            ledger_service.DIRECTION_PAYMENT,
            status=ledger_service.PAY_STATUS_PENDING if pending_confirmation else ledger_service.PAY_STATUS_ACCEPTED,
            note=note,
            actor_id=actor_id,
        )
        return PaymentResult(payment=payment, breakdown=ledger_service.get_charge_breakdown(charge))

    return run_in_transaction(_op)


def record_refund(
    visit_id: int,
    mode: str,
    *,
    amount_cents: int | None = None,
    actor_id: int | None = None,
    note: str | None = None,
    service_line_id: int | None = None,
    org_id: int | None = None,
    branch_id: int | None = None,
) -> PaymentResult:
    """
    Pay money back to the patient.

    amount_cents defaults to the current refund due. It may not exceed the
    paid total.
    """
    def _op() -> PaymentResult:
        visit = _load_visit(visit_id, org_id, branch_id, for_update=True)
        _require_money_allowed(visit)
        line_id = _resolve_service_line_id(visit.org_id, service_line_id)
        charge = ledger_service.get_charge(visit.id, line_id, for_update=True)

        before = ledger_service.get_charge_breakdown(charge)
        if before.paid_cents <= 0:
            raise ValidationError("No paid amount available to refund")

        amount = amount_cents if amount_cents is not None else before.refund_due_cents
        if amount <= 0:
            raise ValidationError("No refund due; pass an explicit amount")

        payment = ledger_service.record_payment(
            visit.id,
            line_id,
            amount,
            mode,
            ledger_service.DIRECTION_REFUND,
            note=note,
            actor_id=actor_id,
        )
        return PaymentResult(payment=payment, breakdown=ledger_service.get_charge_breakdown(charge))

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Refund %s of %s recorded on visit %s",
        result.payment.id, result.payment.amount_cents, visit_id,
    )
    return result


def settle_pending_payment(
    payment_id: int,
    status: str,
    *,
    actor_id: int | None = None,
    org_id: int | None = None,
    branch_id: int | None = None,
) -> PaymentResult:
    """Settle a PENDING payment once, to ACCEPTED or WAIVED."""
    def _op() -> PaymentResult:
        payment = db.session.query(Payment).filter_by(id=payment_id).first()
        if not payment:
            raise NotFoundError(f"Payment {payment_id} not found")
        _load_visit(payment.visit_id, org_id, branch_id)

        payment = ledger_service.settle_payment(payment_id, status, actor_id)
        charge = ledger_service.get_charge(payment.visit_id, payment.service_line_id)
        return PaymentResult(payment=payment, breakdown=ledger_service.get_charge_breakdown(charge))

    result = run_in_transaction(_op)
    current_app.logger.info("Payment %s settled as %s by %s", payment_id, status, actor_id)
    return result


def get_visit_billing(visit_id: int, *, org_id: int | None = None, branch_id: int | None = None) -> dict:
    """Charges, payments and adjustment trail for one visit."""
    visit = _load_visit(visit_id, org_id, branch_id)
    summary = ledger_service.get_charge_summary(visit.id)
    summary["visit"] = visit.to_dict()
    summary["payments"] = [p.to_dict() for p in ledger_service.get_visit_payments(visit.id)]
    summary["adjustments"] = [
        a.to_dict()
        for charge in visit.charges
        for a in ledger_service.get_charge_adjustments(charge.id)
    ]
    return summary
