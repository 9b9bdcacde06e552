"""
Plan blueprint — plan CRUD, questionnaire answers, manual transitions.

Endpoints:
    POST   /api/v1/plans                              create plan + questionnaire
    GET    /api/v1/plans                              list the actor's plans
    GET    /api/v1/plans/<plan_id>                    plan with sections
    DELETE /api/v1/plans/<plan_id>                    owner only
    PUT    /api/v1/plans/<plan_id>/sections/<name>    manual section edit
    POST   /api/v1/plans/<plan_id>/transition         {"action": "finalize"}
    POST   /api/v1/plans/<plan_id>/answers            {"question_key", "answer"}
    GET    /api/v1/plans/<plan_id>/answers
    GET    /api/v1/plans/<plan_id>/progress

The acting user comes from the X-User-Id header (or ``user_id`` in the body).
Service layer owns all business logic and commits.
"""

import logging

from flask import Blueprint, jsonify, request

from planforge.blueprints import actor_required, paginate_query, register_error_handlers
from planforge.services import plan_service, questionnaire_service

logger = logging.getLogger(__name__)

plan_bp = Blueprint("plan", __name__, url_prefix="/api/v1/plans")
register_error_handlers(plan_bp)


# ═════════════════════════════════════════════════════════════════════════
# Plans
# ═════════════════════════════════════════════════════════════════════════

@plan_bp.route("", methods=["POST"])
def create_plan():
    actor, err = actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    plan = plan_service.create_plan(
        title=data.get("title", ""),
        category=data.get("category", "Standard"),
        description=data.get("description"),
        questions=data.get("questions"),
        actor=actor,
    )
    return jsonify(plan.to_dict()), 201


@plan_bp.route("", methods=["GET"])
def list_plans():
    actor, err = actor_required()
    if err:
        return err
    items, total = paginate_query(plan_service.plans_query(actor))
    return jsonify({
        "items": [p.to_dict(include_sections=False) for p in items],
        "total": total,
    })


@plan_bp.route("/<plan_id>", methods=["GET"])
def get_plan(plan_id):
    actor, err = actor_required()
    if err:
        return err
    plan = plan_service.get_plan_for(plan_id, actor)
    return jsonify(plan.to_dict())


@plan_bp.route("/<plan_id>", methods=["DELETE"])
def delete_plan(plan_id):
    actor, err = actor_required()
    if err:
        return err
    plan_service.delete_plan(plan_id, actor)
    return jsonify({"message": "Plan deleted", "id": plan_id})


@plan_bp.route("/<plan_id>/sections/<section>", methods=["PUT"])
def update_section(plan_id, section):
    actor, err = actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    if "content" not in data:
        return jsonify({"error": "content is required", "kind": "InvalidArgument"}), 400
    plan = plan_service.update_section(plan_id, section, data["content"], actor)
    return jsonify(plan.to_dict())


@plan_bp.route("/<plan_id>/transition", methods=["POST"])
def transition(plan_id):
    actor, err = actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    action = data.get("action")
    if not action:
        return jsonify({"error": "action is required", "kind": "InvalidArgument"}), 400
    result = plan_service.transition_plan(plan_id, action, actor)
    return jsonify(result)


# ═════════════════════════════════════════════════════════════════════════
# Questionnaire
# ═════════════════════════════════════════════════════════════════════════

@plan_bp.route("/<plan_id>/answers", methods=["POST"])
def submit_answer(plan_id):
    actor, err = actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    question_key = data.get("question_key")
    if not question_key:
        return jsonify({"error": "question_key is required", "kind": "InvalidArgument"}), 400
    result = questionnaire_service.submit_answer(plan_id, question_key, data.get("answer"), actor)
    return jsonify(result)


@plan_bp.route("/<plan_id>/answers", methods=["GET"])
def list_answers(plan_id):
    actor, err = actor_required()
    if err:
        return err
    plan_service.get_plan_for(plan_id, actor)
    answers = questionnaire_service.list_answers(plan_id)
    return jsonify({"items": [a.to_dict() for a in answers], "total": len(answers)})


@plan_bp.route("/<plan_id>/progress", methods=["GET"])
def progress(plan_id):
    actor, err = actor_required()
    if err:
        return err
    plan_service.get_plan_for(plan_id, actor)
    return jsonify(questionnaire_service.get_progress(plan_id))
