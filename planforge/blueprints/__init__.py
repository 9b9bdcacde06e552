"""
PlanForge
Blueprint registry and shared request helpers.

Every blueprint renders service errors the same way:

    {"error": "<message>", "kind": "<PlanError.kind>", "details": {...}}
"""

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from planforge.core.exceptions import PlanError

logger = logging.getLogger(__name__)


def paginate_query(query, default_limit=50, max_limit=200):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 50, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


# ── Acting user ──────────────────────────────────────────────────────────────

def current_actor() -> str | None:
    """Acting user from the X-User-Id header, else the JSON body's user_id."""
    actor = request.headers.get("X-User-Id")
    if not actor:
        data = request.get_json(silent=True) or {}
        actor = data.get("user_id")
    actor = str(actor).strip() if actor else ""
    return actor or None


def actor_required() -> tuple[str | None, tuple | None]:
    actor = current_actor()
    if not actor:
        return None, (jsonify({
            "error": "X-User-Id header or user_id is required",
            "kind": "InvalidArgument",
        }), 400)
    return actor, None


# ── Error handlers ───────────────────────────────────────────────────────────

def register_error_handlers(bp):
    """Attach the PlanError → JSON mapping and a 500 fallback to ``bp``."""

    @bp.errorhandler(PlanError)
    def _handle_plan_error(error: PlanError):
        return jsonify(error.to_dict()), error.http_status

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return jsonify({"error": "Internal server error", "kind": "Error"}), 500

    return bp
