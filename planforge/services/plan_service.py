"""
Plan service — plan CRUD, manual lifecycle transitions, section edits.

Manual transitions (PLAN_TRANSITIONS) never trigger generation:

    submit_for_review   Generated → InReview
    finalize            Generated | InReview → Finalized
    reopen              Finalized → InReview
    archive             Generated | InReview | Finalized → Archived
    unarchive           Archived → InReview

Status writes are compare-and-set UPDATEs on the current status so two
concurrent callers cannot both apply a transition from the same state.

Usage:
    from planforge.services.plan_service import create_plan, transition_plan

    plan = create_plan(title="Bakery", category="Standard", actor="u-1")
    transition_plan(plan.id, "finalize", actor="u-1")
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import update

from planforge.core.exceptions import (
    ConcurrencyConflictError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from planforge.models import db
from planforge.models.ai import AIUsageLog, GenerationTask
from planforge.models.collaboration import PlanShare, PlanVersion
from planforge.models.plan import (
    PLAN_CATEGORIES,
    PLAN_TRANSITIONS,
    SECTION_COLUMNS,
    STATUS_DRAFT,
    STATUS_FINALIZED,
    STATUS_GENERATED,
    STATUS_GENERATING,
    STATUS_IN_REVIEW,
    Plan,
    PlanAnswer,
)
from planforge.services.section_manifest import available_sections
from planforge.services.share_service import require_owner, require_permission

logger = logging.getLogger(__name__)

# Statuses in which sections may be edited by hand or regenerated
EDITABLE_STATUSES = (STATUS_GENERATED, STATUS_IN_REVIEW)

# Used when a plan is created without an explicit questionnaire
DEFAULT_QUESTIONNAIRE = [
    {"key": "business_name", "text": "What is the name of your business or organization?"},
    {"key": "business_description", "text": "Describe what your business or organization does."},
    {"key": "target_customers", "text": "Who are your target customers or beneficiaries?"},
    {"key": "problem", "text": "What problem or need are you addressing?"},
    {"key": "offering", "text": "What products or services do you offer?"},
    {"key": "competitors", "text": "Who are your main competitors or alternatives?"},
    {"key": "revenue_model", "text": "How will you generate revenue or funding?"},
    {"key": "team", "text": "Who is on the management team and what is their experience?"},
    {"key": "funding_needs", "text": "How much funding do you need and how will it be used?"},
    {"key": "risks", "text": "What are the main risks you foresee?"},
    {"key": "additional_notes", "text": "Anything else the plan should mention?", "required": False},
]


def require_actor(actor: str | None) -> str:
    """Every mutating operation names who performs it."""
    actor = (actor or "").strip()
    if not actor:
        raise ValidationError("Acting user is required")
    return actor


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════

def get_plan(plan_id: str) -> Plan:
    plan = db.session.get(Plan, plan_id)
    if not plan:
        raise NotFoundError(resource="Plan", resource_id=plan_id)
    return plan


def get_plan_for(plan_id: str, actor: str, required: str = "ReadOnly") -> Plan:
    """Load a plan and check that ``actor`` holds at least ``required`` on it."""
    plan = get_plan(plan_id)
    require_permission(plan, require_actor(actor), required)
    return plan


def plans_query(owner: str):
    return Plan.query.filter_by(owner=owner).order_by(Plan.last_modified_at.desc())


def list_plans(owner: str) -> list[Plan]:
    return plans_query(owner).all()


def _normalise_questions(questions: list[dict]) -> list[dict]:
    seen = set()
    result = []
    for idx, q in enumerate(questions):
        key = str(q.get("key", "") or "").strip()
        text = str(q.get("text", "") or "").strip()
        if not key or not text:
            raise ValidationError("Each question needs a key and a text", details={"index": idx})
        if key in seen:
            raise ValidationError(f"Duplicate question key: {key}", details={"key": key})
        seen.add(key)
        result.append({"key": key, "text": text, "required": bool(q.get("required", True))})
    if not any(q["required"] for q in result):
        raise ValidationError("The questionnaire needs at least one required question")
    return result


def create_plan(
    *,
    title: str,
    category: str,
    actor: str,
    description: str | None = None,
    questions: list[dict] | None = None,
) -> Plan:
    """Create a Draft plan together with its questionnaire."""
    actor = require_actor(actor)
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required")
    if category not in PLAN_CATEGORIES:
        raise ValidationError(
            f"Unknown plan category: {category!r}",
            details={"category": category, "supported": list(PLAN_CATEGORIES)},
        )

    normalised = _normalise_questions(questions if questions is not None else DEFAULT_QUESTIONNAIRE)

    plan = Plan(
        title=title,
        description=description,
        category=category,
        status=STATUS_DRAFT,
        owner=actor,
        total_questions=sum(1 for q in normalised if q["required"]),
        answered_questions=0,
        completion_percentage=0.0,
        version=0,
        last_modified_by=actor,
    )
    db.session.add(plan)
    db.session.flush()

    for order, q in enumerate(normalised, start=1):
        db.session.add(PlanAnswer(
            plan_id=plan.id,
            question_key=q["key"],
            question_text=q["text"],
            sort_order=order,
            is_required=q["required"],
        ))
    db.session.commit()

    logger.info("Plan created category=%s questions=%d", category, len(normalised),
                extra={"plan_id": plan.id})
    return plan


def delete_plan(plan_id: str, actor: str) -> None:
    """Owner-only. Removes the plan and every record that references it."""
    actor = require_actor(actor)
    plan = get_plan(plan_id)
    require_owner(plan, actor)
    if plan.status == STATUS_GENERATING:
        raise PreconditionFailedError("Cannot delete a plan while generation is running")

    for model in (PlanAnswer, PlanVersion, PlanShare, GenerationTask):
        model.query.filter_by(plan_id=plan_id).delete(synchronize_session=False)
    AIUsageLog.query.filter_by(plan_id=plan_id).update(
        {"plan_id": None}, synchronize_session=False,
    )
    db.session.delete(plan)
    db.session.commit()
    logger.info("Plan deleted by %s", actor, extra={"plan_id": plan_id})


# ═════════════════════════════════════════════════════════════════════════════
# Section edits
# ═════════════════════════════════════════════════════════════════════════════

def write_section(plan_id: str, section: str, content: str | None, actor: str,
                  *, allowed_statuses=None) -> bool:
    """
    Write one section column and the last-modified stamp in a single UPDATE.

    Only the target column is touched, so concurrent writes to different
    sections of the same plan never overwrite each other. Commits.
    Returns False when ``allowed_statuses`` no longer matched.
    """
    column = SECTION_COLUMNS[section]
    stmt = update(Plan).where(Plan.id == plan_id)
    if allowed_statuses is not None:
        stmt = stmt.where(Plan.status.in_(allowed_statuses))
    stmt = stmt.values({
        column: content,
        "last_modified_at": datetime.now(timezone.utc),
        "last_modified_by": actor,
    })
    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    db.session.commit()
    return result.rowcount == 1


def update_section(plan_id: str, section: str, content: str, actor: str) -> Plan:
    """Manually replace one section's text (Generated / InReview only)."""
    actor = require_actor(actor)
    plan = get_plan(plan_id)
    if section not in available_sections(plan.category):
        raise ValidationError(
            f"Invalid section '{section}' for category {plan.category}",
            details={"section": section, "category": plan.category},
        )
    require_permission(plan, actor, "Edit")
    if plan.status not in EDITABLE_STATUSES:
        raise PreconditionFailedError(
            f"Sections can only be edited in Generated or InReview (status={plan.status})",
        )
    if not write_section(plan_id, section, content, actor, allowed_statuses=EDITABLE_STATUSES):
        raise ConcurrencyConflictError("Plan status changed while the section was being saved")

    db.session.expire(plan)
    return plan


# ═════════════════════════════════════════════════════════════════════════════
# Manual transitions
# ═════════════════════════════════════════════════════════════════════════════

def validate_transition(plan: Plan, action: str) -> dict:
    """
    Check whether ``action`` is valid from the plan's current status.

    Returns:
        {"valid": bool, "from": str, "to": str|None, "reason": str|None}
    """
    rule = PLAN_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": plan.status, "to": None,
                "reason": f"Unknown action: {action}"}
    if plan.status not in rule["from"]:
        return {"valid": False, "from": plan.status, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{plan.status}'"}
    return {"valid": True, "from": plan.status, "to": rule["to"], "reason": None}


def transition_plan(plan_id: str, action: str, actor: str) -> dict:
    """
    Apply a manual transition.

    Raises:
        ValidationError: unknown action.
        PreconditionFailedError: action not allowed from the current status.
        ConcurrencyConflictError: the status changed underneath us.
    """
    actor = require_actor(actor)
    plan = get_plan(plan_id)
    if action not in PLAN_TRANSITIONS:
        raise ValidationError(
            f"Unknown action: {action}",
            details={"action": action, "supported": list(PLAN_TRANSITIONS)},
        )
    require_permission(plan, actor, "FullAccess")

    check = validate_transition(plan, action)
    if not check["valid"]:
        raise PreconditionFailedError(check["reason"], details={"from": check["from"], "action": action})

    now = datetime.now(timezone.utc)
    values = {"status": check["to"], "last_modified_at": now, "last_modified_by": actor}
    if check["to"] == STATUS_FINALIZED:
        values["finalized_at"] = now
    elif check["from"] == STATUS_FINALIZED:
        values["finalized_at"] = None

    result = db.session.execute(
        update(Plan)
        .where(Plan.id == plan_id, Plan.status == check["from"])
        .values(values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise ConcurrencyConflictError(
            f"Plan status changed concurrently; '{action}' was not applied",
        )
    db.session.commit()
    db.session.expire(plan)

    logger.info("Plan %s: %s → %s by %s", action, check["from"], check["to"], actor,
                extra={"plan_id": plan_id})
    return {
        "plan_id": plan_id,
        "action": action,
        "previous_status": check["from"],
        "new_status": check["to"],
    }
