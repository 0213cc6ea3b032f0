# Overview: Service-layer operations for the charge ledger; encapsulates business logic and database work.

"""
Charge Ledger

Persists charges, payments, payment allocations and charge-adjustment audit
rows so the financial trail of a visit can always be reconstructed.

INVARIANTS:
- One charge per (visit, service line); 0 <= discount <= gross; net = gross - discount.
- Every discount/waiver change writes exactly one ChargeAdjustment, and a
  change without a reason writes nothing.
- Paid total of a charge = SUM(allocation.amount) over ACCEPTED payments;
  refunds allocate negative amounts.
- The ledger never refunds on its own. adjust_charge reports refund_due and
  the caller decides when to record the REFUND payment.
- Nothing here commits. Callers own the transaction boundary.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import (
    ChargeNotFoundError,
    DuplicateChargeError,
    InvalidAmountError,
    NotFoundError,
    ReasonRequiredError,
    ValidationError,
)
from ..extensions import db
from ..models import Charge, ChargeAdjustment, Payment, PaymentAllocation, PaymentMode
from ..time_utils import utcnow
from . import charge_calculator as calc
from .charge_calculator import DiscountRule
from .concurrency import lock_for_update


# =============================================================================
# PAYMENT DIRECTION / STATUS (CONSTANTS)
# =============================================================================

DIRECTION_PAYMENT = "PAYMENT"
DIRECTION_REFUND = "REFUND"
VALID_DIRECTIONS = [DIRECTION_PAYMENT, DIRECTION_REFUND]

PAY_STATUS_ACCEPTED = "ACCEPTED"
PAY_STATUS_PENDING = "PENDING"
PAY_STATUS_WAIVED = "WAIVED"
VALID_PAY_STATUSES = [PAY_STATUS_ACCEPTED, PAY_STATUS_PENDING, PAY_STATUS_WAIVED]


@dataclass(frozen=True)
class AdjustmentResult:
    charge: Charge
    adjustment: ChargeAdjustment | None
    new_net_cents: int
    refund_due_cents: int

    def to_dict(self) -> dict:
        return {
            "charge": self.charge.to_dict(),
            "adjustment": self.adjustment.to_dict() if self.adjustment else None,
            "new_net_cents": self.new_net_cents,
            "refund_due_cents": self.refund_due_cents,
        }


# =============================================================================
# CHARGES
# =============================================================================

def get_charge(visit_id: int, service_line_id: int, *, for_update: bool = False) -> Charge:
    query = db.session.query(Charge).filter_by(visit_id=visit_id, service_line_id=service_line_id)
    if for_update:
        query = lock_for_update(query)
    charge = query.first()
    if not charge:
        raise ChargeNotFoundError(
            f"No charge for visit {visit_id} and service line {service_line_id}"
        )
    return charge


def record_initial_charge(visit_id: int, service_line_id: int, gross_cents: int) -> Charge:
    """
    Insert the charge for a (visit, service line) at its catalog gross.

    Starts undiscounted (discount 0, net = gross); discounts go through
    adjust_charge so they are audited.

    Raises:
        InvalidAmountError: gross is negative
        DuplicateChargeError: a charge already exists for the pair
    """
    if gross_cents is None or gross_cents < 0:
        raise InvalidAmountError("Gross amount cannot be negative")

    existing = db.session.query(Charge.id).filter_by(
        visit_id=visit_id, service_line_id=service_line_id
    ).first()
    if existing:
        raise DuplicateChargeError(
            f"Charge already exists for visit {visit_id} and service line {service_line_id}"
        )

    charge = Charge(
        visit_id=visit_id,
        service_line_id=service_line_id,
        gross_cents=gross_cents,
        discount_cents=0,
        net_cents=gross_cents,
    )
    try:
        with db.session.begin_nested():
            db.session.add(charge)
    except IntegrityError as exc:
        raise DuplicateChargeError(
            f"Charge already exists for visit {visit_id} and service line {service_line_id}"
        ) from exc
    return charge


def adjust_charge(
    charge_id: int,
    new_discount: DiscountRule | int,
    reason: str | None,
    actor_id: int | None,
    *,
    authorized_by_doctor_id: int | None = None,
) -> AdjustmentResult:
    """
    Change a charge's discount (amount, percent or waiver) with an audit row.

    Steps (caller's transaction):
    1. Lock the charge row
    2. Resolve the new discount and net via the calculator
    3. Require a reason if the discount actually changes
    4. Write the ChargeAdjustment snapshot
    5. Update the charge
    6. Report refund due against the current paid total

    A no-op adjustment (same discount) writes nothing and needs no reason.

    Raises:
        ChargeNotFoundError: unknown charge_id
        InvalidAmountError: negative discount amount
        ReasonRequiredError: discount changes and reason is blank
    """
    if isinstance(new_discount, int) and new_discount < 0:
        raise InvalidAmountError("Discount cannot be negative")

    charge = lock_for_update(db.session.query(Charge).filter_by(id=charge_id)).first()
    if not charge:
        raise ChargeNotFoundError(f"Charge {charge_id} not found")

    gross = charge.gross_cents
    discount = calc.resolve_discount(gross, new_discount)
    net = calc.compute_net(gross, discount)
    paid = get_paid_total(charge.id)
    refund_due = calc.compute_refund_due(net, paid)

    if discount == charge.discount_cents:
        return AdjustmentResult(charge=charge, adjustment=None, new_net_cents=net, refund_due_cents=refund_due)

    reason = (reason or "").strip()
    if not reason:
        raise ReasonRequiredError("Reason is required for a discount or waiver change")

    adjustment = ChargeAdjustment(
        charge_id=charge.id,
        visit_id=charge.visit_id,
        service_line_id=charge.service_line_id,
        old_gross_cents=gross,
        old_discount_cents=charge.discount_cents,
        old_net_cents=charge.net_cents,
        new_discount_cents=discount,
        new_net_cents=net,
        paid_cents=paid,
        refund_due_cents=refund_due,
        reason=reason,
        actor_id=actor_id,
        authorized_by_doctor_id=authorized_by_doctor_id,
        created_at=utcnow(),
    )
    db.session.add(adjustment)

    charge.discount_cents = discount
    charge.net_cents = net
    db.session.flush()

    current_app.logger.info(
        "Charge %s adjusted by %s: net %s -> %s (refund due %s)",
        charge.id, actor_id, adjustment.old_net_cents, net, refund_due,
    )
    return AdjustmentResult(charge=charge, adjustment=adjustment, new_net_cents=net, refund_due_cents=refund_due)


def get_charge_adjustments(charge_id: int) -> list[ChargeAdjustment]:
    return (
        db.session.query(ChargeAdjustment)
        .filter_by(charge_id=charge_id)
        .order_by(ChargeAdjustment.id)
        .all()
    )


# =============================================================================
# PAYMENTS
# =============================================================================

def get_paid_total(charge_id: int) -> int:
    """Signed allocation sum over ACCEPTED payments (refunds already negative)."""
    total = (
        db.session.query(func.coalesce(func.sum(PaymentAllocation.amount_cents), 0))
        .join(Payment, Payment.id == PaymentAllocation.payment_id)
        .filter(
            PaymentAllocation.charge_id == charge_id,
            Payment.status == PAY_STATUS_ACCEPTED,
        )
        .scalar()
    )
    return int(total or 0)


def _allocated_total(charge_id: int) -> int:
    """Allocation sum including PENDING payments (committed-or-expected money)."""
    total = (
        db.session.query(func.coalesce(func.sum(PaymentAllocation.amount_cents), 0))
        .join(Payment, Payment.id == PaymentAllocation.payment_id)
        .filter(
            PaymentAllocation.charge_id == charge_id,
            Payment.status.in_([PAY_STATUS_ACCEPTED, PAY_STATUS_PENDING]),
        )
        .scalar()
    )
    return int(total or 0)


def _require_active_mode(mode: str | None) -> str:
    code = (mode or "").strip().upper()
    if not code:
        raise ValidationError("Payment mode is required")
    found = db.session.query(PaymentMode).filter_by(code=code, is_active=True).first()
    if not found:
        raise ValidationError(f"Invalid or inactive payment mode: {code}")
    return code


def record_payment(
    visit_id: int,
    service_line_id: int,
    amount_cents: int,
    mode: str,
    direction: str = DIRECTION_PAYMENT,
    *,
    status: str = PAY_STATUS_ACCEPTED,
    note: str | None = None,
    actor_id: int | None = None,
) -> Payment:
    """
    Record a money movement and its allocation to the visit's charge.

    PAYMENT: overpayment is accepted while ALLOW_OVERPAYMENT is on (the excess
    shows up as refund due). With it off, allocations may not exceed
    net + ALLOCATION_TOLERANCE_CENTS.
    REFUND: always ACCEPTED, may not exceed the current paid total; allocated
    negatively.

    Raises:
        InvalidAmountError: amount <= 0 or over an allocation/refund limit
        ValidationError: unknown direction/status or inactive payment mode
        ChargeNotFoundError: visit has no charge for the service line
    """
    if direction not in VALID_DIRECTIONS:
        raise ValidationError(f"Invalid direction: {direction}. Must be one of {VALID_DIRECTIONS}")
    if status not in (PAY_STATUS_ACCEPTED, PAY_STATUS_PENDING):
        raise ValidationError("New payments must be ACCEPTED or PENDING")
    if direction == DIRECTION_REFUND and status != PAY_STATUS_ACCEPTED:
        raise ValidationError("Refunds are recorded as ACCEPTED only")
    if amount_cents is None or amount_cents <= 0:
        raise InvalidAmountError("Payment amount must be positive")

    mode_code = _require_active_mode(mode)
    charge = get_charge(visit_id, service_line_id, for_update=True)

    if direction == DIRECTION_PAYMENT:
        if not current_app.config.get("ALLOW_OVERPAYMENT", True):
            tolerance = current_app.config.get("ALLOCATION_TOLERANCE_CENTS", 0)
            if _allocated_total(charge.id) + amount_cents > charge.net_cents + tolerance:
                raise InvalidAmountError("Payment exceeds the pending amount for this charge")
        allocation_cents = amount_cents
    else:
        paid = get_paid_total(charge.id)
        if amount_cents > paid:
            raise InvalidAmountError(
                f"Refund amount {amount_cents} exceeds paid total {paid}"
            )
        allocation_cents = -amount_cents

    payment = Payment(
        visit_id=visit_id,
        service_line_id=service_line_id,
        amount_cents=amount_cents,
        mode=mode_code,
        direction=direction,
        status=status,
        note=note,
        created_by=actor_id,
        created_at=utcnow(),
    )
    db.session.add(payment)
    db.session.flush()  # Get payment ID

    db.session.add(PaymentAllocation(
        payment_id=payment.id,
        charge_id=charge.id,
        amount_cents=allocation_cents,
    ))
    db.session.flush()
    return payment


def settle_payment(payment_id: int, status: str, actor_id: int | None = None) -> Payment:
    """
    One-time settlement of a PENDING payment to ACCEPTED or WAIVED.

    Raises:
        NotFoundError: unknown payment
        ValidationError: payment is not PENDING or target status invalid
    """
    if status not in (PAY_STATUS_ACCEPTED, PAY_STATUS_WAIVED):
        raise ValidationError("Pending payments can only become ACCEPTED or WAIVED")

    payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
    if not payment:
        raise NotFoundError(f"Payment {payment_id} not found")
    if payment.status != PAY_STATUS_PENDING:
        raise ValidationError(f"Payment {payment_id} is already {payment.status}")

    payment.status = status
    payment.settled_by = actor_id
    payment.settled_at = utcnow()
    db.session.flush()
    return payment


def get_visit_payments(visit_id: int) -> list[Payment]:
    return (
        db.session.query(Payment)
        .filter_by(visit_id=visit_id)
        .order_by(Payment.created_at, Payment.id)
        .all()
    )


# =============================================================================
# SUMMARIES
# =============================================================================

def get_charge_breakdown(charge: Charge) -> calc.ChargeBreakdown:
    return calc.charge_breakdown(charge.gross_cents, charge.discount_cents, get_paid_total(charge.id))


def get_charge_summary(visit_id: int) -> dict:
    """
    Billing summary for every charge on a visit, plus visit totals.
    """
    charges = (
        db.session.query(Charge)
        .filter_by(visit_id=visit_id)
        .order_by(Charge.id)
        .all()
    )
    lines = []
    totals = {
        "gross_cents": 0,
        "discount_cents": 0,
        "net_cents": 0,
        "paid_cents": 0,
        "pending_cents": 0,
        "refund_due_cents": 0,
    }
    for charge in charges:
        breakdown = get_charge_breakdown(charge)
        row = breakdown.to_dict()
        row["charge_id"] = charge.id
        row["service_line_id"] = charge.service_line_id
        lines.append(row)
        for key in totals:
            totals[key] += row[key]

    return {
        "visit_id": visit_id,
        "charges": lines,
        "totals": totals,
    }
