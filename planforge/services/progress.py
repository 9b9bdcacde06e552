"""
Progress tracker — questionnaire and section-generation completion.

Two independent fractions are tracked per plan:
  - questionnaire: answered required questions / required questions,
    stored on the plan (two-decimal percentage)
  - generation: non-empty manifest sections / manifest length,
    computed on demand and never stored

Reaching 100% on the questionnaire fires Draft → QuestionnaireComplete.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from planforge.models.plan import (
    STATUS_DRAFT,
    STATUS_QUESTIONNAIRE_COMPLETE,
    Plan,
    PlanAnswer,
    _iso,
)
from planforge.services.section_manifest import available_sections

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Data Classes
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class GenerationStatus:
    """Point-in-time view of a plan's section generation progress."""
    plan_id: str
    status: str
    category: str
    total_sections: int
    completed_sections: int
    completion_percentage: float
    questionnaire_completed_at: datetime | None = None
    generation_started_at: datetime | None = None
    generation_completed_at: datetime | None = None
    sections: dict[str, bool] = field(default_factory=dict)

    @property
    def pending_sections(self) -> list[str]:
        return [name for name, done in self.sections.items() if not done]

    def to_dict(self) -> dict:
        return {
            "plan_id": self.plan_id,
            "status": self.status,
            "category": self.category,
            "total_sections": self.total_sections,
            "completed_sections": self.completed_sections,
            "completion_percentage": self.completion_percentage,
            "questionnaire_completed_at": _iso(self.questionnaire_completed_at),
            "generation_started_at": _iso(self.generation_started_at),
            "generation_completed_at": _iso(self.generation_completed_at),
            "sections": dict(self.sections),
        }


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════

def percentage(done: int, total: int) -> float:
    """``done / total * 100`` clamped to [0, 100], rounded to two decimals."""
    if total <= 0:
        return 0.0
    return round(max(0.0, min(100.0, done / total * 100.0)), 2)


def is_section_complete(text: str | None) -> bool:
    return bool(text and text.strip())


# ── Questionnaire progress ───────────────────────────────────────────────────

def recompute_questionnaire_progress(plan: Plan, answers: list[PlanAnswer]) -> bool:
    """
    Refresh the plan's questionnaire counters from ``answers``.

    Changes are made on the ORM object; the caller commits. Returns True
    when this call moved the plan from Draft to QuestionnaireComplete.
    """
    required = [a for a in answers if a.is_required]
    answered = sum(1 for a in required if a.is_answered)

    plan.total_questions = len(required)
    plan.answered_questions = answered
    plan.completion_percentage = percentage(answered, len(required))

    if plan.status == STATUS_DRAFT and required and answered >= len(required):
        plan.status = STATUS_QUESTIONNAIRE_COMPLETE
        plan.completion_percentage = 100.0
        if plan.questionnaire_completed_at is None:
            plan.questionnaire_completed_at = datetime.now(timezone.utc)
        logger.info(
            "Questionnaire complete (%d/%d)", answered, len(required),
            extra={"plan_id": plan.id},
        )
        return True
    return False


def questionnaire_progress(plan: Plan) -> dict:
    return {
        "plan_id": plan.id,
        "total_questions": plan.total_questions,
        "answered_questions": plan.answered_questions,
        "completion_percentage": round(plan.completion_percentage or 0.0, 2),
        "status": plan.status,
    }


# ── Generation progress ──────────────────────────────────────────────────────

def compute_generation_status(plan: Plan) -> GenerationStatus:
    """Count non-empty manifest sections for the plan's category."""
    manifest = available_sections(plan.category)
    sections = {name: is_section_complete(plan.get_section(name)) for name in manifest}
    completed = sum(1 for done in sections.values() if done)
    return GenerationStatus(
        plan_id=plan.id,
        status=plan.status,
        category=plan.category,
        total_sections=len(manifest),
        completed_sections=completed,
        completion_percentage=percentage(completed, len(manifest)),
        questionnaire_completed_at=plan.questionnaire_completed_at,
        generation_started_at=plan.generation_started_at,
        generation_completed_at=plan.generation_completed_at,
        sections=sections,
    )
