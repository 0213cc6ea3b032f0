# Overview: Flask API routes for visit registration and charge edits; parses input and returns JSON responses.

"""
Visit Billing API Routes

DESIGN:
- Register a visit (new or returning patient) with its initial charge
- Read a visit's billing summary, payments and adjustment trail
- Edit a charge's discount / waiver (reason required)
- Collect pending payments and record refunds

All amounts are integer minor units (*_cents). Money is never sent as floats.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_staff_context
from ..errors import ClinicError, ValidationError
from ..services import visit_billing_service
from ..services.charge_calculator import DiscountMode, DiscountRule
from ..time_utils import clinic_today
from ..validation import (
    clean_text,
    normalize_phone,
    parse_bool,
    parse_cents,
    parse_decimal,
    parse_id,
    parse_visit_date,
)


visits_bp = Blueprint("visits", __name__, url_prefix="/api/visits")


def _parse_discount(data: dict):
    """
    discount_mode + discount_value (PERCENT / AMOUNT / WAIVE), or plain
    discount_cents. Returns None when no discount is given.
    """
    mode = clean_text(data.get("discount_mode"))
    if mode:
        try:
            mode = DiscountMode(mode.upper())
        except ValueError:
            raise ValidationError("discount_mode must be PERCENT, AMOUNT or WAIVE")
        if mode is DiscountMode.WAIVE:
            return DiscountRule(mode)
        if mode is DiscountMode.PERCENT:
            return DiscountRule(mode, parse_decimal(data.get("discount_value"), "discount_value"))
        return DiscountRule(mode, parse_cents(data.get("discount_value"), "discount_value"))

    return parse_cents(data.get("discount_cents"), "discount_cents", required=False)


# =============================================================================
# REGISTRATION
# =============================================================================

@visits_bp.post("/register")
@require_staff_context
def register_visit_route():
    """
    Register a visit.

    Request body:
    {
        "visit_date": "2025-01-15",
        "name": "Asha Rao",           (new patient)
        "phone": "9876543210",        (optional, new patient)
        "patient_code": "OP_MAIN_2025011",  (returning patient, instead of name)
        "doctor_id": 3,
        "service_line_id": 1,
        "referral_id": "R-17",        (optional)
        "discount_mode": "PERCENT", "discount_value": 10,   (optional)
        "discount_reason": "Staff family",                  (required with a discount)
        "paid_now_cents": 45000,      (optional)
        "payment_mode": "CASH",       (required if paid_now_cents > 0)
        "remarks": "..."
    }

    Returns:
        201: Visit registered (queue_entry present for same-day visits)
        400: Invalid input
        404: Unknown patient_code
        409: Phone already registered
    """
    try:
        data = request.get_json(silent=True) or {}
        today = clinic_today()

        result = visit_billing_service.register_visit(
            org_id=g.org_id,
            branch_id=g.branch_id,
            actor_id=g.actor_id,
            visit_date=parse_visit_date(data.get("visit_date"), today=today),
            doctor_id=parse_id(data.get("doctor_id"), "doctor_id"),
            service_line_id=parse_id(data.get("service_line_id"), "service_line_id"),
            full_name=clean_text(data.get("name")),
            phone=normalize_phone(data.get("phone")),
            patient_code=clean_text(data.get("patient_code")),
            referral_id=clean_text(data.get("referral_id")),
            discount=_parse_discount(data),
            discount_reason=clean_text(data.get("discount_reason")),
            paid_now_cents=parse_cents(data.get("paid_now_cents"), "paid_now_cents", required=False) or 0,
            payment_mode=clean_text(data.get("payment_mode")),
            remarks=clean_text(data.get("remarks")),
            today=today,
        )
        return jsonify(result.to_dict()), 201

    except ClinicError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register visit")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# BILLING
# =============================================================================

@visits_bp.get("/<int:visit_id>/billing")
@require_staff_context
def get_visit_billing_route(visit_id: int):
    """
    Billing summary for a visit: per-charge gross/discount/net/paid/pending/
    refund due, payments, and the adjustment trail.
    """
    try:
        summary = visit_billing_service.get_visit_billing(
            visit_id, org_id=g.org_id, branch_id=g.branch_id
        )
        return jsonify(summary), 200

    except ClinicError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load visit billing")
        return jsonify({"error": "Internal server error"}), 500


@visits_bp.post("/<int:visit_id>/charges/<int:service_line_id>/adjust")
@require_staff_context
def adjust_charge_route(visit_id: int, service_line_id: int):
    """
    Change the discount on a visit charge.

    Request body (one of):
    { "net_cents": 30000, "reason": "..." }
    { "discount_cents": 20000, "reason": "..." }
    { "discount_mode": "WAIVE", "reason": "..." }
    Optional: "authorized_by_doctor_id"

    Returns 200 with new net and refund due. When "refund_pending" is true the
    client must follow up with POST /api/visits/<id>/payments/refund.
    """
    try:
        data = request.get_json(silent=True) or {}

        net_cents = parse_cents(data.get("net_cents"), "net_cents", required=False)
        discount = _parse_discount(data)
        if net_cents is None and discount is None:
            return jsonify({"error": "net_cents, discount_cents or discount_mode required"}), 400

        result = visit_billing_service.edit_consultation_charge(
            visit_id,
            actor_id=g.actor_id,
            reason=clean_text(data.get("reason")),
            new_discount=discount,
            new_net_cents=net_cents,
            service_line_id=service_line_id,
            authorized_by_doctor_id=parse_id(data.get("authorized_by_doctor_id"), "authorized_by_doctor_id", required=False),
            org_id=g.org_id,
            branch_id=g.branch_id,
        )
        return jsonify(result.to_dict()), 200

    except ClinicError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust charge")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# MONEY MOVEMENTS
# =============================================================================

@visits_bp.post("/<int:visit_id>/payments/collect")
@require_staff_context
def collect_payment_route(visit_id: int):
    """
    Collect a pending amount.

    Request body:
    {
        "amount_cents": 20000,
        "payment_mode": "UPI",
        "service_line_id": 1,        (optional, defaults to CONSULTATION)
        "pending_confirmation": false,
        "note": "..."
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        result = visit_billing_service.collect_pending_payment(
            visit_id,
            parse_cents(data.get("amount_cents"), "amount_cents", allow_zero=False),
            clean_text(data.get("payment_mode")),
            actor_id=g.actor_id,
            note=clean_text(data.get("note")),
            service_line_id=parse_id(data.get("service_line_id"), "service_line_id", required=False),
            pending_confirmation=parse_bool(data.get("pending_confirmation"), "pending_confirmation"),
            org_id=g.org_id,
            branch_id=g.branch_id,
        )
        return jsonify(result.to_dict()), 201

    except ClinicError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to collect payment")
        return jsonify({"error": "Internal server error"}), 500


@visits_bp.post("/<int:visit_id>/payments/refund")
@require_staff_context
def refund_payment_route(visit_id: int):
    """
    Record a refund.

    Request body:
    {
        "payment_mode": "CASH",
        "amount_cents": 40000,       (optional, defaults to the refund due)
        "service_line_id": 1,        (optional, defaults to CONSULTATION)
        "note": "Refund voucher #12"
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        result = visit_billing_service.record_refund(
            visit_id,
            clean_text(data.get("payment_mode")),
            amount_cents=parse_cents(data.get("amount_cents"), "amount_cents", required=False, allow_zero=False),
            actor_id=g.actor_id,
            note=clean_text(data.get("note")),
            service_line_id=parse_id(data.get("service_line_id"), "service_line_id", required=False),
            org_id=g.org_id,
            branch_id=g.branch_id,
        )
        return jsonify(result.to_dict()), 201

    except ClinicError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record refund")
        return jsonify({"error": "Internal server error"}), 500
