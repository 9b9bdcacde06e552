"""initial_plan_schema

Create plans, plan_answers, plan_versions, plan_shares, generation_tasks
and ai_usage_logs.

Revision ID: 7c1e0a9b2d41
Revises:
Create Date: 2026-10-12 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e0a9b2d41"
down_revision = None
branch_labels = None
depends_on = None


SECTION_COLUMNS = (
    "executive_summary",
    "problem_statement",
    "solution",
    "market_analysis",
    "competitive_analysis",
    "swot_analysis",
    "business_model",
    "marketing_strategy",
    "branding_strategy",
    "operations_plan",
    "management_team",
    "financial_projections",
    "funding_requirements",
    "risk_analysis",
    "exit_strategy",
    "mission_statement",
    "social_impact",
    "beneficiary_profile",
    "grant_strategy",
    "sustainability_plan",
    "appendix_data",
)


def _content_columns():
    return [sa.Column(name, sa.Text(), nullable=True) for name in SECTION_COLUMNS]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "plans" not in existing_tables:
        op.create_table(
            "plans",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False),
            sa.Column("owner", sa.String(length=150), nullable=False),
            sa.Column("total_questions", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("answered_questions", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("completion_percentage", sa.Float(), nullable=False, server_default="0"),
            sa.Column("questionnaire_completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("generation_started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("generation_completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
            *_content_columns(),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_modified_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_modified_by", sa.String(length=150), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_plans_status", "plans", ["status"])
        op.create_index("idx_plan_owner_status", "plans", ["owner", "status"])

    if "plan_answers" not in existing_tables:
        op.create_table(
            "plan_answers",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("plan_id", sa.String(length=36), nullable=False),
            sa.Column("question_key", sa.String(length=80), nullable=False),
            sa.Column("question_text", sa.Text(), nullable=False),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("answer_text", sa.Text(), nullable=True),
            sa.Column("answered_by", sa.String(length=150), nullable=True),
            sa.Column("answered_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["plan_id"], ["plans.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("plan_id", "question_key", name="uq_plan_answer_question"),
        )
        op.create_index("ix_plan_answers_plan_id", "plan_answers", ["plan_id"])

    if "plan_versions" not in existing_tables:
        op.create_table(
            "plan_versions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("plan_id", sa.String(length=36), nullable=False),
            sa.Column("version_number", sa.Integer(), nullable=False),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False),
            *_content_columns(),
            sa.Column("created_by", sa.String(length=150), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["plan_id"], ["plans.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("plan_id", "version_number", name="uq_plan_version_number"),
        )
        op.create_index("ix_plan_versions_plan_id", "plan_versions", ["plan_id"])

    if "plan_shares" not in existing_tables:
        op.create_table(
            "plan_shares",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("plan_id", sa.String(length=36), nullable=False),
            sa.Column("shared_with_user", sa.String(length=150), nullable=True),
            sa.Column("shared_with_email", sa.String(length=254), nullable=True),
            sa.Column("permission", sa.String(length=20), nullable=False),
            sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("public_token", sa.String(length=64), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("access_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_by", sa.String(length=150), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint(
                "NOT (is_public AND shared_with_user IS NOT NULL)",
                name="ck_plan_share_public_xor_user",
            ),
            sa.CheckConstraint(
                "permission IN ('ReadOnly','Edit','FullAccess')",
                name="ck_plan_share_permission",
            ),
            sa.ForeignKeyConstraint(["plan_id"], ["plans.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("public_token"),
        )
        op.create_index("ix_plan_shares_plan_id", "plan_shares", ["plan_id"])
        op.create_index("idx_plan_share_plan_active", "plan_shares", ["plan_id", "is_active"])

    if "generation_tasks" not in existing_tables:
        op.create_table(
            "generation_tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("plan_id", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("language", sa.String(length=5), nullable=False),
            sa.Column("result_json", sa.Text(), nullable=True),
            sa.Column("error_kind", sa.String(length=40), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("requested_by", sa.String(length=150), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint(
                "status IN ('pending','running','completed','failed','cancelled')",
                name="ck_generation_task_status",
            ),
            sa.ForeignKeyConstraint(["plan_id"], ["plans.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_generation_tasks_plan_id", "generation_tasks", ["plan_id"])

    if "ai_usage_logs" not in existing_tables:
        op.create_table(
            "ai_usage_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("provider", sa.String(length=30), nullable=False),
            sa.Column("model", sa.String(length=80), nullable=False),
            sa.Column("prompt_tokens", sa.Integer(), nullable=True),
            sa.Column("completion_tokens", sa.Integer(), nullable=True),
            sa.Column("total_tokens", sa.Integer(), nullable=True),
            sa.Column("latency_ms", sa.Integer(), nullable=True),
            sa.Column("purpose", sa.String(length=100), nullable=True),
            sa.Column("plan_id", sa.String(length=36), nullable=True),
            sa.Column("success", sa.Boolean(), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["plan_id"], ["plans.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in ("ai_usage_logs", "generation_tasks", "plan_shares",
                  "plan_versions", "plan_answers", "plans"):
        if table in existing_tables:
            op.drop_table(table)
