# Overview: Flask API routes for today's visit queue.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_staff_context
from ..errors import ClinicError
from ..services import queue_service
from ..time_utils import clinic_today
from ..validation import parse_visit_date


queue_bp = Blueprint("queue", __name__, url_prefix="/api/queue")


@queue_bp.get("/")
@require_staff_context
def list_queue_route():
    """
    Queue for the caller's branch, ordered by token.

    Query params:
    - date: YYYY-MM-DD (default: today)
    """
    try:
        today = clinic_today()
        raw = request.args.get("date")
        day = parse_visit_date(raw, today=today, allow_future=True) if raw else today

        entries = queue_service.list_queue(g.branch_id, day)
        return jsonify({
            "date": day.isoformat(),
            "entries": [e.to_dict() for e in entries],
        }), 200

    except ClinicError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list queue")
        return jsonify({"error": "Internal server error"}), 500


@queue_bp.post("/<int:queue_entry_id>/status")
@require_staff_context
def set_queue_status_route(queue_entry_id: int):
    """
    Move a queue entry to WAITING, NEXT, IN_ROOM or COMPLETED.

    Any status may follow any other. Only today's entries in the caller's
    branch can be changed.
    """
    try:
        data = request.get_json(silent=True) or {}

        entry = queue_service.set_queue_status(
            queue_entry_id,
            data.get("status"),
            org_id=g.org_id,
            branch_id=g.branch_id,
            day=clinic_today(),
        )
        return jsonify({"ok": True, "queue_entry": entry.to_dict()}), 200

    except ClinicError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update queue status")
        return jsonify({"error": "Internal server error"}), 500
