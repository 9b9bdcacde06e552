"""
Share service — access grants on a plan.

A grant targets either one user/email or the anonymous holder of a public
token, never both. ``can_access`` (active and not expired) is evaluated
fresh on every check and never stored.

Every write to an existing grant is a single UPDATE statement, so
concurrent revoke / access-recording / permission changes on the same
grant cannot lose each other's updates.

Usage:
    from planforge.services import share_service

    share = share_service.create_share(plan_id, actor="u-1", is_public=True)
    plan, share = share_service.resolve_public_token(share.public_token)
"""

import logging
import math
import secrets
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError

from planforge.core.exceptions import (
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from planforge.models import db
from planforge.models.collaboration import SHARE_PERMISSIONS, PlanShare, permission_rank
from planforge.models.plan import Plan

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LENGTH = 22
_TOKEN_ATTEMPTS = 5


# ── Helpers ──────────────────────────────────────────────────────────────────

def _get_plan(plan_id: str) -> Plan:
    plan = db.session.get(Plan, plan_id)
    if not plan:
        raise NotFoundError(resource="Plan", resource_id=plan_id)
    return plan


def get_share(share_id: int, plan_id: str | None = None) -> PlanShare:
    share = db.session.get(PlanShare, share_id)
    if not share or (plan_id is not None and share.plan_id != plan_id):
        raise NotFoundError(resource="Share", resource_id=share_id)
    return share


def _validate_permission(permission: str) -> str:
    if permission not in SHARE_PERMISSIONS:
        raise ValidationError(
            f"Unknown permission: {permission!r}",
            details={"permission": permission, "supported": list(SHARE_PERMISSIONS)},
        )
    return permission


def can_access(share: PlanShare, now: datetime | None = None) -> bool:
    return share.can_access(now)


def permission_allows(share: PlanShare | str, required: str) -> bool:
    """True when the grant's permission is at least ``required``."""
    granted = share if isinstance(share, str) else share.permission
    return permission_rank(granted) >= permission_rank(required)


# ── Actor checks ─────────────────────────────────────────────────────────────

def effective_permission(plan: Plan, actor: str) -> str | None:
    """
    Highest permission ``actor`` holds on ``plan``.

    The owner holds FullAccess. Other users need an accessible user grant.
    """
    if actor == plan.owner:
        return "FullAccess"
    grants = PlanShare.query.filter_by(plan_id=plan.id, shared_with_user=actor, is_active=True).all()
    now = datetime.now(timezone.utc)
    levels = [g.permission for g in grants if g.can_access(now)]
    if not levels:
        return None
    return max(levels, key=permission_rank)


def require_owner(plan: Plan, actor: str) -> None:
    if actor != plan.owner:
        raise PreconditionFailedError(
            "Only the plan owner can perform this action",
            details={"plan_id": plan.id},
        )


def require_permission(plan: Plan, actor: str, required: str) -> str:
    granted = effective_permission(plan, actor)
    if granted is None or not permission_allows(granted, required):
        raise PreconditionFailedError(
            f"User {actor} lacks {required} permission on this plan",
            details={"plan_id": plan.id, "required": required, "granted": granted},
        )
    return granted


# ═════════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════════

def _new_token(length: int) -> str:
    # token_urlsafe encodes 4 chars per 3 bytes; never fewer than 128 random bits
    nbytes = max(16, math.ceil(length * 3 / 4))
    return secrets.token_urlsafe(nbytes)[:length]


def _token_length() -> int:
    return int(current_app.config.get("SHARE_TOKEN_LENGTH", DEFAULT_TOKEN_LENGTH))


def create_share(
    plan_id: str,
    actor: str,
    *,
    permission: str = "ReadOnly",
    shared_with_user: str | None = None,
    shared_with_email: str | None = None,
    is_public: bool = False,
    expires_at: datetime | None = None,
) -> PlanShare:
    """
    Grant access to a plan (owner only).

    An active grant for the same user/email gets its permission updated
    instead of being duplicated; an active public grant is returned as is.

    Raises:
        ValidationError: public + targeted user or email, no target for a private
            grant, or an unknown permission.
    """
    if is_public and (shared_with_user is not None or shared_with_email is not None):
        raise ValidationError(
            "A share cannot be both public and targeted at a user or email",
            details={"shared_with_user": shared_with_user, "shared_with_email": shared_with_email},
        )
    if shared_with_email is not None:
        shared_with_email = shared_with_email.strip().lower() or None
    _validate_permission(permission)
    if not is_public and not (shared_with_user or shared_with_email):
        raise ValidationError("A private share needs a target user or email")

    plan = _get_plan(plan_id)
    require_owner(plan, actor)

    if is_public:
        existing = PlanShare.query.filter_by(plan_id=plan_id, is_public=True, is_active=True).first()
        if existing:
            logger.info("Reusing active public share", extra={"plan_id": plan_id, "share_id": existing.id})
            return existing
        return _insert_public_share(plan_id, actor, permission, expires_at)

    target = []
    if shared_with_user:
        target.append(PlanShare.shared_with_user == shared_with_user)
    if shared_with_email:
        target.append(func.lower(PlanShare.shared_with_email) == shared_with_email)
    existing = (
        PlanShare.query
        .filter(PlanShare.plan_id == plan_id, PlanShare.is_active.is_(True), or_(*target))
        .first()
    )
    if existing:
        return update_permission(existing.id, permission, actor)

    share = PlanShare(
        plan_id=plan_id,
        shared_with_user=shared_with_user,
        shared_with_email=shared_with_email,
        permission=permission,
        is_public=False,
        is_active=True,
        expires_at=expires_at,
        access_count=0,
        created_by=actor,
    )
    db.session.add(share)
    db.session.commit()
    logger.info("Share created for %s (%s)", shared_with_user or shared_with_email, permission,
                extra={"plan_id": plan_id, "share_id": share.id})
    return share


def _insert_public_share(plan_id, actor, permission, expires_at) -> PlanShare:
    length = _token_length()
    for _ in range(_TOKEN_ATTEMPTS):
        token = _new_token(length)
        if PlanShare.query.filter_by(public_token=token).first():
            continue
        share = PlanShare(
            plan_id=plan_id,
            permission=permission,
            is_public=True,
            public_token=token,
            is_active=True,
            expires_at=expires_at,
            access_count=0,
            created_by=actor,
        )
        db.session.add(share)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race on the unique token index
            db.session.rollback()
            continue
        logger.info("Public share created", extra={"plan_id": plan_id, "share_id": share.id})
        return share
    raise RuntimeError("Could not generate a unique share token")


# ═════════════════════════════════════════════════════════════════════════════
# Mutations on an existing grant
# ═════════════════════════════════════════════════════════════════════════════

def _apply(share_id: int, **values) -> PlanShare:
    result = db.session.execute(
        update(PlanShare)
        .where(PlanShare.id == share_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise NotFoundError(resource="Share", resource_id=share_id)
    db.session.commit()
    return get_share(share_id)


def _owned_share(share_id: int, actor: str, plan_id: str | None) -> PlanShare:
    share = get_share(share_id, plan_id)
    require_owner(_get_plan(share.plan_id), actor)
    return share


def revoke_share(share_id: int, actor: str, plan_id: str | None = None) -> PlanShare:
    """Deactivate a grant. Access history is kept."""
    _owned_share(share_id, actor, plan_id)
    share = _apply(share_id, is_active=False)
    logger.info("Share revoked by %s", actor, extra={"plan_id": share.plan_id, "share_id": share_id})
    return share


def reactivate_share(share_id: int, actor: str, plan_id: str | None = None) -> PlanShare:
    _owned_share(share_id, actor, plan_id)
    return _apply(share_id, is_active=True)


def update_permission(share_id: int, new_permission: str, actor: str,
                      plan_id: str | None = None) -> PlanShare:
    _validate_permission(new_permission)
    _owned_share(share_id, actor, plan_id)
    share = _apply(share_id, permission=new_permission)
    logger.info("Share permission set to %s", new_permission,
                extra={"plan_id": share.plan_id, "share_id": share_id})
    return share


def record_access(share_id: int) -> PlanShare:
    """
    Count one access. Does not touch ``is_active`` and is applied even
    when the grant is expired.
    """
    return _apply(
        share_id,
        access_count=PlanShare.access_count + 1,
        last_accessed_at=datetime.now(timezone.utc),
    )


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════

def list_shares(plan_id: str) -> list[PlanShare]:
    """Active grants of a plan, oldest first."""
    _get_plan(plan_id)
    return (
        PlanShare.query
        .filter_by(plan_id=plan_id, is_active=True)
        .order_by(PlanShare.created_at.asc(), PlanShare.id.asc())
        .all()
    )


def resolve_public_token(token: str) -> tuple[Plan, PlanShare]:
    """
    Look up the plan behind a public token and record the access.

    Raises:
        NotFoundError: unknown, revoked or expired token.
    """
    share = PlanShare.query.filter_by(public_token=token, is_public=True).first() if token else None
    if share is None or not share.can_access():
        raise NotFoundError(resource="Share", message="Invalid or expired share token")
    share = record_access(share.id)
    return _get_plan(share.plan_id), share
