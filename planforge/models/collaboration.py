"""
PlanForge
Collaboration models — version snapshots and share grants.

Models:
    - PlanVersion: immutable point-in-time copy of a plan's content
    - PlanShare: access grant for a user/email or an anonymous public token
"""

from datetime import datetime, timezone

from planforge.models import db
from planforge.models.plan import CONTENT_COLUMNS, as_utc, _iso


__all__ = [
    "SHARE_PERMISSIONS",
    "PlanVersion",
    "PlanShare",
    "permission_rank",
]


def _utcnow():
    return datetime.now(timezone.utc)


# Ordered by increasing capability
SHARE_PERMISSIONS = ("ReadOnly", "Edit", "FullAccess")


def permission_rank(permission: str) -> int:
    """Position of ``permission`` in SHARE_PERMISSIONS (ValueError if unknown)."""
    return SHARE_PERMISSIONS.index(permission)


# ═════════════════════════════════════════════════════════════════════════════
# PlanVersion
# ═════════════════════════════════════════════════════════════════════════════

class PlanVersion(db.Model):
    """
    Immutable snapshot of a plan.

    ``(plan_id, version_number)`` is unique; numbers start at 1 and grow
    by one per snapshot. Rows are never updated after insert and are only
    removed together with their plan.
    """

    __tablename__ = "plan_versions"
    __table_args__ = (
        db.UniqueConstraint("plan_id", "version_number", name="uq_plan_version_number"),
    )

    id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(
        db.String(36), db.ForeignKey("plans.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    version_number = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=True)

    # Metadata snapshot
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(30), nullable=False)
    status = db.Column(db.String(30), nullable=False)

    # Content snapshot
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

    created_by = db.Column(db.String(150), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    @classmethod
    def capture(cls, plan, version_number: int, *, created_by: str, comment: str | None = None):
        """Build a snapshot row holding value copies of every content field."""
        snapshot = cls(
            plan_id=plan.id,
            version_number=version_number,
            comment=comment,
            title=str(plan.title),
            description=plan.description,
            category=str(plan.category),
            status=str(plan.status),
            created_by=created_by,
        )
        for column in CONTENT_COLUMNS:
            setattr(snapshot, column, getattr(plan, column))
        return snapshot

    def content_preview(self, length: int = 200) -> str | None:
        text = self.executive_summary
        if text is not None and len(text) > length:
            return text[:length] + "..."
        return text

    def to_dict(self, include_content=False):
        d = {
            "id": self.id,
            "plan_id": self.plan_id,
            "version_number": self.version_number,
            "comment": self.comment,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "status": self.status,
            "content_preview": self.content_preview(),
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }
        if include_content:
            d["content"] = {column: getattr(self, column) for column in CONTENT_COLUMNS}
        return d

    def __repr__(self):
        return f"<PlanVersion plan={self.plan_id} v{self.version_number}>"


# ═════════════════════════════════════════════════════════════════════════════
# PlanShare
# ═════════════════════════════════════════════════════════════════════════════

class PlanShare(db.Model):
    """
    Access grant on a plan.

    Exactly one of: a target user/email, or ``is_public`` with a unique
    URL-safe ``public_token``.
    """

    __tablename__ = "plan_shares"
    __table_args__ = (
        db.CheckConstraint(
            "NOT (is_public AND shared_with_user IS NOT NULL)",
            name="ck_plan_share_public_xor_user",
        ),
        db.CheckConstraint(
            "permission IN ('ReadOnly','Edit','FullAccess')",
            name="ck_plan_share_permission",
        ),
        db.Index("idx_plan_share_plan_active", "plan_id", "is_active"),
    )

    id = db.Column(db.Integer, primary_key=True)
    plan_id = db.Column(
        db.String(36), db.ForeignKey("plans.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    shared_with_user = db.Column(db.String(150), nullable=True)
    shared_with_email = db.Column(db.String(254), nullable=True)
    permission = db.Column(db.String(20), nullable=False, default="ReadOnly")
    is_public = db.Column(db.Boolean, nullable=False, default=False)
    public_token = db.Column(db.String(64), unique=True, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_accessed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    access_count = db.Column(db.Integer, nullable=False, default=0)

    created_by = db.Column(db.String(150), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return as_utc(self.expires_at) <= now

    def can_access(self, now: datetime | None = None) -> bool:
        """Active and not expired. Evaluated on every call, never stored."""
        return bool(self.is_active) and not self.is_expired(now)

    def to_dict(self):
        return {
            "id": self.id,
            "plan_id": self.plan_id,
            "shared_with_user": self.shared_with_user,
            "shared_with_email": self.shared_with_email,
            "permission": self.permission,
            "is_public": self.is_public,
            "public_token": self.public_token,
            "is_active": self.is_active,
            "expires_at": _iso(self.expires_at),
            "last_accessed_at": _iso(self.last_accessed_at),
            "access_count": self.access_count,
            "can_access": self.can_access(),
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        target = "public" if self.is_public else (self.shared_with_user or self.shared_with_email)
        return f"<PlanShare id={self.id} plan={self.plan_id} {target} {self.permission}>"
