"""
Generation blueprint — full-plan generation, section regeneration, status.

Endpoints:
    POST   /api/v1/plans/<plan_id>/generate               sync run (or ?async=true → 202 task)
    POST   /api/v1/plans/<plan_id>/regenerate/<section>   one section
    POST   /api/v1/plans/<plan_id>/sections/<section>/improve|expand|simplify
                                                     rewrite for review, not saved
    GET    /api/v1/plans/<plan_id>/generation-status
    GET    /api/v1/plans/available-sections?category=Standard
    GET    /api/v1/generation-tasks/<task_id>
    DELETE /api/v1/generation-tasks/<task_id>             cancel

``language`` is read from the JSON body or query string and defaults to
GENERATION_DEFAULT_LANGUAGE.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from planforge.blueprints import actor_required, register_error_handlers
from planforge.core.exceptions import ValidationError
from planforge.services import plan_service
from planforge.services.generation_service import GenerationOrchestrator

logger = logging.getLogger(__name__)

generation_bp = Blueprint("generation", __name__, url_prefix="/api/v1")
register_error_handlers(generation_bp)


def _language() -> str:
    data = request.get_json(silent=True) or {}
    return (
        data.get("language")
        or request.args.get("language")
        or current_app.config["GENERATION_DEFAULT_LANGUAGE"]
    )


def _task_runner():
    return current_app.extensions["generation_task_runner"]


@generation_bp.route("/plans/<plan_id>/generate", methods=["POST"])
def generate_plan(plan_id):
    actor, err = actor_required()
    if err:
        return err
    language = _language()

    if request.args.get("async", "").lower() in ("1", "true", "yes"):
        task = _task_runner().submit(plan_id, language, actor)
        return jsonify(task), 202

    plan = GenerationOrchestrator.from_app().generate_all(plan_id, language, actor)
    status = GenerationOrchestrator.get_status(plan_id)
    return jsonify({"plan": plan.to_dict(), "generation": status.to_dict()})


@generation_bp.route("/plans/<plan_id>/regenerate/<section>", methods=["POST"])
def regenerate_section(plan_id, section):
    actor, err = actor_required()
    if err:
        return err
    plan = GenerationOrchestrator.from_app().regenerate_section(plan_id, section, _language(), actor)
    return jsonify({"section": section, "content": plan.get_section(section), "plan": plan.to_dict()})


@generation_bp.route(
    "/plans/<plan_id>/sections/<section>/<any(improve, expand, simplify):improvement_type>",
    methods=["POST"],
)
def improve_section(plan_id, section, improvement_type):
    actor, err = actor_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    max_length = data.get("max_length")
    if max_length is not None and (isinstance(max_length, bool) or not isinstance(max_length, int)):
        raise ValidationError("max_length must be an integer", details={"max_length": max_length})

    result = GenerationOrchestrator.from_app().improve_section(
        plan_id, section, improvement_type, _language(), actor,
        max_length=max_length,
        instructions=data.get("instructions"),
        target_audience=data.get("target_audience"),
        industry_context=data.get("industry_context"),
        tone=data.get("tone"),
    )
    return jsonify(result.to_dict())


@generation_bp.route("/plans/<plan_id>/generation-status", methods=["GET"])
def generation_status(plan_id):
    actor, err = actor_required()
    if err:
        return err
    plan_service.get_plan_for(plan_id, actor)
    return jsonify(GenerationOrchestrator.get_status(plan_id).to_dict())


@generation_bp.route("/plans/available-sections", methods=["GET"])
def available_sections():
    category = request.args.get("category", "Standard")
    sections = GenerationOrchestrator.available_sections(category)
    return jsonify({"category": category, "sections": sections, "total": len(sections)})


# ── Background tasks ─────────────────────────────────────────────────────────

@generation_bp.route("/generation-tasks/<int:task_id>", methods=["GET"])
def get_task(task_id):
    actor, err = actor_required()
    if err:
        return err
    task = _task_runner().get_status(task_id)
    plan_service.get_plan_for(task["plan_id"], actor)
    return jsonify(task)


@generation_bp.route("/generation-tasks/<int:task_id>", methods=["DELETE"])
def cancel_task(task_id):
    actor, err = actor_required()
    if err:
        return err
    task = _task_runner().get_status(task_id)
    plan_service.get_plan_for(task["plan_id"], actor, required="Edit")
    return jsonify(_task_runner().cancel(task_id))
