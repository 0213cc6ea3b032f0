# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


def _header_int(name: str) -> int | None:
    raw = (request.headers.get(name) or "").strip()
    if not raw.isdigit() or int(raw) <= 0:
        return None
    return int(raw)


def require_staff_context(f):
    """
    Require the caller identity set by the upstream auth gateway.

    Sets the following Flask g attributes:
    - g.actor_id: the staff user performing the action
    - g.org_id: the organization (tenant) of the caller
    - g.branch_id: the branch the caller works in

    Returns 401 if any of X-Actor-Id, X-Org-Id, X-Branch-Id is missing or
    not a positive integer. Authentication itself happens upstream.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = _header_int("X-Actor-Id")
        org_id = _header_int("X-Org-Id")
        branch_id = _header_int("X-Branch-Id")

        if not actor_id or not org_id or not branch_id:
            return jsonify({"error": "Staff context required"}), 401

        g.actor_id = actor_id
        g.org_id = org_id
        g.branch_id = branch_id
        return f(*args, **kwargs)

    return decorated_function
