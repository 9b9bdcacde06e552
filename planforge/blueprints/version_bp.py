"""
Version blueprint — plan snapshots.

Endpoints:
    POST /api/v1/plans/<plan_id>/versions                 {"comment": "..."}
    GET  /api/v1/plans/<plan_id>/versions                 newest first
    GET  /api/v1/plans/<plan_id>/versions/<n>             full content
    POST /api/v1/plans/<plan_id>/versions/<n>/restore
"""

from flask import Blueprint, jsonify, request

from planforge.blueprints import actor_required, register_error_handlers
from planforge.services import plan_service, version_service

version_bp = Blueprint("version", __name__, url_prefix="/api/v1/plans/<plan_id>/versions")
register_error_handlers(version_bp)


@version_bp.route("", methods=["POST"])
def create_version(plan_id):
    actor, err = actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    version = version_service.create_snapshot(plan_id, actor, comment=data.get("comment"))
    return jsonify(version.to_dict()), 201


@version_bp.route("", methods=["GET"])
def list_versions(plan_id):
    actor, err = actor_required()
    if err:
        return err
    plan_service.get_plan_for(plan_id, actor)
    versions = version_service.list_versions(plan_id)
    return jsonify({"items": [v.to_dict() for v in versions], "total": len(versions)})


@version_bp.route("/<int:version_number>", methods=["GET"])
def get_version(plan_id, version_number):
    actor, err = actor_required()
    if err:
        return err
    plan_service.get_plan_for(plan_id, actor)
    version = version_service.get_version(plan_id, version_number)
    return jsonify(version.to_dict(include_content=True))


@version_bp.route("/<int:version_number>/restore", methods=["POST"])
def restore_version(plan_id, version_number):
    actor, err = actor_required()
    if err:
        return err
    plan = version_service.restore_version(plan_id, version_number, actor)
    return jsonify(plan.to_dict())
