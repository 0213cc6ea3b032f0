# Overview: Flask API routes for payment modes and pending-payment settlement.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_staff_context
from ..errors import ClinicError
from ..extensions import db
from ..models import PaymentMode
from ..services import visit_billing_service
from ..validation import clean_text


payments_bp = Blueprint("payments", __name__, url_prefix="/api")


@payments_bp.get("/payment-modes")
@require_staff_context
def list_payment_modes_route():
    """Active payment modes in display order."""
    modes = (
        db.session.query(PaymentMode)
        .filter_by(is_active=True)
        .order_by(PaymentMode.sort_order, PaymentMode.display_name)
        .all()
    )
    return jsonify({"modes": [m.to_dict() for m in modes]}), 200


@payments_bp.post("/payments/<int:payment_id>/settle")
@require_staff_context
def settle_payment_route(payment_id: int):
    """
    Settle a PENDING payment.

    Request body:
    { "status": "ACCEPTED" }   or   { "status": "WAIVED" }

    Returns:
        200: Payment settled, with refreshed charge billing
        400: Payment not PENDING or invalid status
        404: Payment not found
    """
    try:
        data = request.get_json(silent=True) or {}
        status = (clean_text(data.get("status")) or "").upper()

        result = visit_billing_service.settle_pending_payment(
            payment_id,
            status,
            actor_id=g.actor_id,
            org_id=g.org_id,
            branch_id=g.branch_id,
        )
        return jsonify(result.to_dict()), 200

    except ClinicError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to settle payment")
        return jsonify({"error": "Internal server error"}), 500
