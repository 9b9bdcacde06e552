"""
Version service — immutable point-in-time snapshots of a plan.

Version numbers are assigned as ``max(existing) + 1`` under a per-plan
lock and a row lock on the plan, and ``(plan_id, version_number)`` is a
unique constraint, so concurrent snapshot requests never share a number.

Snapshots hold value copies of every content field plus title, category
and status. They are never updated; they disappear only with their plan.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from planforge.core.exceptions import (
    ConcurrencyConflictError,
    NotFoundError,
    PreconditionFailedError,
)
from planforge.models import db
from planforge.models.collaboration import PlanVersion
from planforge.models.plan import CONTENT_COLUMNS, STATUS_GENERATING, Plan
from planforge.services.plan_service import get_plan, require_actor
from planforge.services.share_service import require_permission

logger = logging.getLogger(__name__)

BACKUP_COMMENT = "Backup before restore"
_NUMBERING_ATTEMPTS = 3

# plan_id → [lock, holders]; serialises version-number assignment within this
# process. An entry is dropped when its last holder releases it.
_plan_locks: dict[str, list] = {}
_plan_locks_guard = threading.Lock()


@contextmanager
def _plan_lock(plan_id: str):
    with _plan_locks_guard:
        entry = _plan_locks.setdefault(plan_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _plan_locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _plan_locks[plan_id]


def _next_version_number(plan_id: str) -> int:
    current = db.session.execute(
        select(func.max(PlanVersion.version_number)).where(PlanVersion.plan_id == plan_id)
    ).scalar()
    return (current or 0) + 1


# ═════════════════════════════════════════════════════════════════════════════
# Snapshots
# ═════════════════════════════════════════════════════════════════════════════

def create_snapshot(plan_id: str, actor: str, comment: str | None = None) -> PlanVersion:
    """
    Snapshot the plan's current content as the next version.

    Raises:
        NotFoundError: unknown plan.
        ConcurrencyConflictError: numbering kept colliding with another writer.
    """
    actor = require_actor(actor)
    with _plan_lock(plan_id):
        for attempt in range(1, _NUMBERING_ATTEMPTS + 1):
            plan = db.session.execute(
                select(Plan)
                .where(Plan.id == plan_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if plan is None:
                db.session.rollback()
                raise NotFoundError(resource="Plan", resource_id=plan_id)
            require_permission(plan, actor, "Edit")

            number = _next_version_number(plan_id)
            snapshot = PlanVersion.capture(plan, number, created_by=actor, comment=comment)
            db.session.add(snapshot)
            plan.version = number
            try:
                db.session.commit()
            except IntegrityError:
                # Another process took this number between our read and insert
                db.session.rollback()
                logger.warning("Version %d already taken (attempt %d)", number, attempt,
                               extra={"plan_id": plan_id})
                continue

            logger.info("Snapshot v%d created by %s", number, actor, extra={"plan_id": plan_id})
            return snapshot

    raise ConcurrencyConflictError("Could not assign a version number", details={"plan_id": plan_id})


def list_versions(plan_id: str) -> list[PlanVersion]:
    """All snapshots of a plan, newest first."""
    get_plan(plan_id)
    return (
        PlanVersion.query
        .filter_by(plan_id=plan_id)
        .order_by(PlanVersion.version_number.desc())
        .all()
    )


def get_version(plan_id: str, version_number: int) -> PlanVersion:
    get_plan(plan_id)
    version = PlanVersion.query.filter_by(plan_id=plan_id, version_number=version_number).first()
    if not version:
        raise NotFoundError(resource="Version", resource_id=f"{plan_id}/v{version_number}")
    return version


# ═════════════════════════════════════════════════════════════════════════════
# Restore
# ═════════════════════════════════════════════════════════════════════════════

def restore_version(plan_id: str, version_number: int, actor: str) -> Plan:
    """
    Copy a snapshot's title, description and content back onto the plan.

    The current state is snapshotted first ("Backup before restore").
    Status is never restored.
    """
    actor = require_actor(actor)
    plan = get_plan(plan_id)
    require_permission(plan, actor, "FullAccess")
    if plan.status == STATUS_GENERATING:
        raise PreconditionFailedError("Cannot restore a version while generation is running")

    version = get_version(plan_id, version_number)
    values = {column: getattr(version, column) for column in CONTENT_COLUMNS}
    values.update(
        title=version.title,
        description=version.description,
        last_modified_at=datetime.now(timezone.utc),
        last_modified_by=actor,
    )

    create_snapshot(plan_id, actor, comment=BACKUP_COMMENT)

    result = db.session.execute(
        update(Plan)
        .where(Plan.id == plan_id, Plan.status != STATUS_GENERATING)
        .values(values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise ConcurrencyConflictError("Generation started while the version was being restored")
    db.session.commit()

    logger.info("Restored v%d by %s", version_number, actor, extra={"plan_id": plan_id})
    return get_plan(plan_id)
