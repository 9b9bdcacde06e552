"""
Share blueprint — access grants and public links.

Endpoints:
    POST   /api/v1/plans/<plan_id>/shares                          create grant
    GET    /api/v1/plans/<plan_id>/shares                          active grants
    DELETE /api/v1/plans/<plan_id>/shares/<share_id>               revoke
    POST   /api/v1/plans/<plan_id>/shares/<share_id>/access        record an access
    POST   /api/v1/plans/<plan_id>/shares/<share_id>/reactivate
    PUT    /api/v1/plans/<plan_id>/shares/<share_id>/permission    {"permission": "Edit"}
    GET    /api/v1/shared/<token>                                  anonymous read via public token
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, jsonify, request

from planforge.blueprints import actor_required, register_error_handlers
from planforge.core.exceptions import ValidationError
from planforge.services import plan_service, share_service

logger = logging.getLogger(__name__)

share_bp = Blueprint("share", __name__, url_prefix="/api/v1")
register_error_handlers(share_bp)


def _parse_expiry(value) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError("expires_at must be an ISO-8601 timestamp", details={"expires_at": value})
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@share_bp.route("/plans/<plan_id>/shares", methods=["POST"])
def create_share(plan_id):
    actor, err = actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    share = share_service.create_share(
        plan_id,
        actor,
        permission=data.get("permission", "ReadOnly"),
        shared_with_user=data.get("shared_with_user"),
        shared_with_email=data.get("shared_with_email"),
        is_public=bool(data.get("is_public", False)),
        expires_at=_parse_expiry(data.get("expires_at")),
    )
    return jsonify(share.to_dict()), 201


@share_bp.route("/plans/<plan_id>/shares", methods=["GET"])
def list_shares(plan_id):
    actor, err = actor_required()
    if err:
        return err
    plan_service.get_plan_for(plan_id, actor)
    shares = share_service.list_shares(plan_id)
    return jsonify({"items": [s.to_dict() for s in shares], "total": len(shares)})


@share_bp.route("/plans/<plan_id>/shares/<int:share_id>", methods=["DELETE"])
def revoke_share(plan_id, share_id):
    actor, err = actor_required()
    if err:
        return err
    share = share_service.revoke_share(share_id, actor, plan_id=plan_id)
    return jsonify(share.to_dict())


@share_bp.route("/plans/<plan_id>/shares/<int:share_id>/access", methods=["POST"])
def record_access(plan_id, share_id):
    share_service.get_share(share_id, plan_id)
    share = share_service.record_access(share_id)
    return jsonify(share.to_dict())


@share_bp.route("/plans/<plan_id>/shares/<int:share_id>/reactivate", methods=["POST"])
def reactivate_share(plan_id, share_id):
    actor, err = actor_required()
    if err:
        return err
    share = share_service.reactivate_share(share_id, actor, plan_id=plan_id)
    return jsonify(share.to_dict())


@share_bp.route("/plans/<plan_id>/shares/<int:share_id>/permission", methods=["PUT"])
def update_permission(plan_id, share_id):
    actor, err = actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    permission = data.get("permission")
    if not permission:
        return jsonify({"error": "permission is required", "kind": "InvalidArgument"}), 400
    share = share_service.update_permission(share_id, permission, actor, plan_id=plan_id)
    return jsonify(share.to_dict())


@share_bp.route("/shared/<token>", methods=["GET"])
def open_shared_plan(token):
    """Anonymous access through a public link. Counts as one access."""
    plan, share = share_service.resolve_public_token(token)
    return jsonify({
        "plan": plan.to_dict(),
        "permission": share.permission,
        "expires_at": share.to_dict()["expires_at"],
    })
