"""
PlanForge
Plan aggregate models.

Models:
    - Plan: the generated document (aggregate root) with one text column
      per section, questionnaire counters and lifecycle timestamps
    - PlanAnswer: one questionnaire question + the owner's answer

Child tables (answers, versions, shares, generation tasks) reference the
plan by id only. Nothing holds a live object back-reference to the plan.
"""

import uuid
from datetime import datetime, timezone

from planforge.models import db


__all__ = [
    "PLAN_STATUSES",
    "PLAN_CATEGORIES",
    "SECTION_COLUMNS",
    "CONTENT_COLUMNS",
    "PLAN_TRANSITIONS",
    "Plan",
    "PlanAnswer",
]


# ── Helpers ──────────────────────────────────────────────────────────────────

def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


# ── Constants ────────────────────────────────────────────────────────────────

STATUS_DRAFT = "Draft"
STATUS_QUESTIONNAIRE_COMPLETE = "QuestionnaireComplete"
STATUS_GENERATING = "Generating"
STATUS_GENERATED = "Generated"
STATUS_IN_REVIEW = "InReview"
STATUS_FINALIZED = "Finalized"
STATUS_ARCHIVED = "Archived"

PLAN_STATUSES = (
    STATUS_DRAFT,
    STATUS_QUESTIONNAIRE_COMPLETE,
    STATUS_GENERATING,
    STATUS_GENERATED,
    STATUS_IN_REVIEW,
    STATUS_FINALIZED,
    STATUS_ARCHIVED,
)

CATEGORY_STANDARD = "Standard"
CATEGORY_NON_PROFIT = "NonProfit"
CATEGORY_LEAN_CANVAS = "LeanCanvas"

PLAN_CATEGORIES = (CATEGORY_STANDARD, CATEGORY_NON_PROFIT, CATEGORY_LEAN_CANVAS)

# Section name (public identifier) → column on Plan.
# Superset of every category's manifest.
SECTION_COLUMNS = {
    "ExecutiveSummary": "executive_summary",
    "ProblemStatement": "problem_statement",
    "Solution": "solution",
    "MarketAnalysis": "market_analysis",
    "CompetitiveAnalysis": "competitive_analysis",
    "SwotAnalysis": "swot_analysis",
    "BusinessModel": "business_model",
    "MarketingStrategy": "marketing_strategy",
    "BrandingStrategy": "branding_strategy",
    "OperationsPlan": "operations_plan",
    "ManagementTeam": "management_team",
    "FinancialProjections": "financial_projections",
    "FundingRequirements": "funding_requirements",
    "RiskAnalysis": "risk_analysis",
    "ExitStrategy": "exit_strategy",
    "MissionStatement": "mission_statement",
    "SocialImpact": "social_impact",
    "BeneficiaryProfile": "beneficiary_profile",
    "GrantStrategy": "grant_strategy",
    "SustainabilityPlan": "sustainability_plan",
}

# Every column copied into a version snapshot
CONTENT_COLUMNS = tuple(SECTION_COLUMNS.values()) + ("appendix_data",)

# Manual, user-driven transitions (no generation side effects)
PLAN_TRANSITIONS = {
    "submit_for_review": {"from": [STATUS_GENERATED], "to": STATUS_IN_REVIEW},
    "finalize": {"from": [STATUS_GENERATED, STATUS_IN_REVIEW], "to": STATUS_FINALIZED},
    "reopen": {"from": [STATUS_FINALIZED], "to": STATUS_IN_REVIEW},
    "archive": {
        "from": [STATUS_GENERATED, STATUS_IN_REVIEW, STATUS_FINALIZED],
        "to": STATUS_ARCHIVED,
    },
    "unarchive": {"from": [STATUS_ARCHIVED], "to": STATUS_IN_REVIEW},
}


# ═════════════════════════════════════════════════════════════════════════════
# Plan
# ═════════════════════════════════════════════════════════════════════════════

class Plan(db.Model):
    """
    A multi-section document generated from questionnaire answers.

    Lifecycle: Draft → QuestionnaireComplete → Generating → Generated
               → InReview → Finalized → Archived
    """

    __tablename__ = "plans"
    __table_args__ = (
        db.Index("idx_plan_owner_status", "owner", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(30), nullable=False, default=CATEGORY_STANDARD)
    status = db.Column(db.String(30), nullable=False, default=STATUS_DRAFT, index=True)
    owner = db.Column(db.String(150), nullable=False, comment="User who created the plan")

    # Questionnaire progress
    total_questions = db.Column(db.Integer, nullable=False, default=0,
                                comment="Number of required questions")
    answered_questions = db.Column(db.Integer, nullable=False, default=0)
    completion_percentage = db.Column(db.Float, nullable=False, default=0.0)

    # Lifecycle timestamps
    questionnaire_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    generation_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    generation_completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    finalized_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Incremented only when a version snapshot is taken
    version = db.Column(db.Integer, nullable=False, default=0)

    # Section content (sparse: NULL until generated)
    executive_summary = db.Column(db.Text, nullable=True)
    problem_statement = db.Column(db.Text, nullable=True)
    solution = db.Column(db.Text, nullable=True)
    market_analysis = db.Column(db.Text, nullable=True)
    competitive_analysis = db.Column(db.Text, nullable=True)
    swot_analysis = db.Column(db.Text, nullable=True)
    business_model = db.Column(db.Text, nullable=True)
    marketing_strategy = db.Column(db.Text, nullable=True)
    branding_strategy = db.Column(db.Text, nullable=True)
    operations_plan = db.Column(db.Text, nullable=True)
    management_team = db.Column(db.Text, nullable=True)
    financial_projections = db.Column(db.Text, nullable=True)
    funding_requirements = db.Column(db.Text, nullable=True)
    risk_analysis = db.Column(db.Text, nullable=True)
    exit_strategy = db.Column(db.Text, nullable=True)
    mission_statement = db.Column(db.Text, nullable=True)
    social_impact = db.Column(db.Text, nullable=True)
    beneficiary_profile = db.Column(db.Text, nullable=True)
    grant_strategy = db.Column(db.Text, nullable=True)
    sustainability_plan = db.Column(db.Text, nullable=True)
    appendix_data = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    last_modified_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    last_modified_by = db.Column(db.String(150), nullable=True)

    def get_section(self, section: str) -> str | None:
        """Return the stored text of a section by its public name."""
        return getattr(self, SECTION_COLUMNS[section])

    def sections_dict(self, sections=None) -> dict:
        names = sections if sections is not None else SECTION_COLUMNS.keys()
        return {name: self.get_section(name) for name in names}

    def to_dict(self, include_sections=True):
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "status": self.status,
            "owner": self.owner,
            "total_questions": self.total_questions,
            "answered_questions": self.answered_questions,
            "completion_percentage": round(self.completion_percentage or 0.0, 2),
            "questionnaire_completed_at": _iso(self.questionnaire_completed_at),
            "generation_started_at": _iso(self.generation_started_at),
            "generation_completed_at": _iso(self.generation_completed_at),
            "finalized_at": _iso(self.finalized_at),
            "version": self.version,
            "created_at": _iso(self.created_at),
            "last_modified_at": _iso(self.last_modified_at),
            "last_modified_by": self.last_modified_by,
        }
        if include_sections:
            d["sections"] = self.sections_dict()
            d["appendix_data"] = self.appendix_data
        return d

    def __repr__(self):
        return f"<Plan id={self.id} category={self.category} status={self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# PlanAnswer: questionnaire question + answer
# ═════════════════════════════════════════════════════════════════════════════

class PlanAnswer(db.Model):
    """One questionnaire entry. ``answer_text`` stays NULL until answered."""

    __tablename__ = "plan_answers"
    __table_args__ = (
        db.UniqueConstraint("plan_id", "question_key", name="uq_plan_answer_question"),
    )

    id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(
        db.String(36), db.ForeignKey("plans.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    question_key = db.Column(db.String(80), nullable=False)
    question_text = db.Column(db.Text, nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    answer_text = db.Column(db.Text, nullable=True)
    answered_by = db.Column(db.String(150), nullable=True)
    answered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_answered(self) -> bool:
        return bool(self.answer_text and self.answer_text.strip())

    def to_dict(self):
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "question_key": self.question_key,
            "question_text": self.question_text,
            "sort_order": self.sort_order,
            "is_required": self.is_required,
            "answer": self.answer_text,
            "answered_by": self.answered_by,
            "answered_at": _iso(self.answered_at),
        }

    def __repr__(self):
        return f"<PlanAnswer plan={self.plan_id} key={self.question_key}>"
