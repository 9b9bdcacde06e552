"""
PlanForge
AI domain models.

Models:
    - AIUsageLog: token/latency tracking per content-generation call
    - GenerationTask: background generation run tracking
"""

import json
from datetime import datetime, timezone

from planforge.models import db
from planforge.models.plan import _iso


TASK_STATUSES = ("pending", "running", "completed", "failed", "cancelled")
TERMINAL_TASK_STATUSES = frozenset({"completed", "failed", "cancelled"})


# ── AIUsageLog ────────────────────────────────────────────────────────────────

class AIUsageLog(db.Model):
    """
    One row per content-generation call (successful or not).
    Aggregated for usage dashboards and cost monitoring.
    """

    __tablename__ = "ai_usage_logs"

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(30), nullable=False, comment="openai / anthropic / gemini / local")
    model = db.Column(db.String(80), nullable=False)
    prompt_tokens = db.Column(db.Integer, default=0)
    completion_tokens = db.Column(db.Integer, default=0)
    total_tokens = db.Column(db.Integer, default=0)
    latency_ms = db.Column(db.Integer, default=0, comment="End-to-end latency in milliseconds")

    # Context
    purpose = db.Column(db.String(100), default="", comment="Section name or other call purpose")
    plan_id = db.Column(db.String(36), db.ForeignKey("plans.id", ondelete="SET NULL"), nullable=True)

    # Status
    success = db.Column(db.Boolean, default=True)
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "provider": self.provider,
            "model": self.model,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "latency_ms": self.latency_ms,
            "purpose": self.purpose,
            "plan_id": self.plan_id,
            "success": self.success,
            "error_message": self.error_message,
            "created_at": _iso(self.created_at),
        }


# ── GenerationTask ────────────────────────────────────────────────────────────

class GenerationTask(db.Model):
    """Background full-plan generation run with status polling."""

    __tablename__ = "generation_tasks"

    id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(
        db.String(36), db.ForeignKey("plans.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    status = db.Column(db.String(20), nullable=False, default="pending")
    language = db.Column(db.String(5), nullable=False, default="fr")

    result_json = db.Column(db.Text, nullable=True)
    error_kind = db.Column(db.String(40), nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    requested_by = db.Column(db.String(150), nullable=False)

    # Timing
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending','running','completed','failed','cancelled')",
            name="ck_generation_task_status",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "status": self.status,
            "language": self.language,
            "result": json.loads(self.result_json) if self.result_json else None,
            "error_kind": self.error_kind,
            "error": self.error_message,
            "requested_by": self.requested_by,
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
        }

    def __repr__(self):
        return f"<GenerationTask id={self.id} plan={self.plan_id} status={self.status}>"
