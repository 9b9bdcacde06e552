"""Questionnaire answers: the answer source for progress and prompt assembly."""

import logging
from datetime import datetime, timezone

from planforge.core.exceptions import NotFoundError, PreconditionFailedError, ValidationError
from planforge.models import db
from planforge.models.plan import (
    STATUS_ARCHIVED,
    STATUS_FINALIZED,
    STATUS_GENERATING,
    PlanAnswer,
)
from planforge.services.plan_service import get_plan, require_actor
from planforge.services.progress import questionnaire_progress, recompute_questionnaire_progress
from planforge.services.share_service import require_permission

logger = logging.getLogger(__name__)

# Answers are frozen while a run reads them and once the plan is closed
_LOCKED_STATUSES = (STATUS_GENERATING, STATUS_FINALIZED, STATUS_ARCHIVED)


def list_answers(plan_id: str) -> list[PlanAnswer]:
    get_plan(plan_id)
    return (
        PlanAnswer.query
        .filter_by(plan_id=plan_id)
        .order_by(PlanAnswer.sort_order.asc(), PlanAnswer.id.asc())
        .all()
    )


def submit_answer(plan_id: str, question_key: str, answer: str, actor: str) -> dict:
    """
    Store (or replace) the answer to one question and refresh progress.

    Answering the last required question moves the plan from Draft to
    QuestionnaireComplete.

    Returns:
        {"answer": {...}, "progress": {...}, "questionnaire_completed": bool}
    """
    actor = require_actor(actor)
    plan = get_plan(plan_id)
    require_permission(plan, actor, "Edit")
    if plan.status in _LOCKED_STATUSES:
        raise PreconditionFailedError(f"Answers cannot be changed while the plan is {plan.status}")

    text = (answer or "").strip() if isinstance(answer, str) else answer
    if text in (None, ""):
        raise ValidationError("answer must not be empty", details={"question_key": question_key})

    entry = PlanAnswer.query.filter_by(plan_id=plan_id, question_key=question_key).first()
    if not entry:
        raise NotFoundError(resource="Question", resource_id=question_key)

    entry.answer_text = str(text)
    entry.answered_by = actor
    entry.answered_at = datetime.now(timezone.utc)
    db.session.flush()

    answers = PlanAnswer.query.filter_by(plan_id=plan_id).all()
    completed = recompute_questionnaire_progress(plan, answers)
    plan.last_modified_at = datetime.now(timezone.utc)
    plan.last_modified_by = actor
    db.session.commit()

    return {
        "answer": entry.to_dict(),
        "progress": questionnaire_progress(plan),
        "questionnaire_completed": completed,
    }


def get_progress(plan_id: str) -> dict:
    return questionnaire_progress(get_plan(plan_id))
