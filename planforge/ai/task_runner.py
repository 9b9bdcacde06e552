"""
PlanForge
Background generation jobs.

Full-plan generation can take minutes, so the API can hand it to a
background thread and let the client poll the job. Each job owns a cancel
event; cancelling stops the run before its next un-started section and
rolls the plan back exactly like a failed run.
"""

import json
import logging
import threading
from datetime import datetime, timezone

from flask import current_app

from planforge.ai.prompts import validate_language
from planforge.core.exceptions import NotFoundError, PlanError
from planforge.models import db
from planforge.models.ai import TERMINAL_TASK_STATUSES, GenerationTask
from planforge.services.generation_service import GenerationOrchestrator
from planforge.services.plan_service import get_plan, require_actor

logger = logging.getLogger(__name__)

# In-memory registry of running jobs (task_id → (thread, cancel event))
_running_tasks: dict[int, tuple[threading.Thread, threading.Event]] = {}
_registry_lock = threading.Lock()


class GenerationTaskRunner:
    """Runs ``GenerationOrchestrator.generate_all`` in background threads."""

    def __init__(self, orchestrator_factory=None):
        """
        Args:
            orchestrator_factory: Callable(app) → GenerationOrchestrator.
                Defaults to ``GenerationOrchestrator.from_app``.
        """
        self._orchestrator_factory = orchestrator_factory

    def submit(self, plan_id: str, language: str, actor: str) -> dict:
        """
        Queue a full generation run for ``plan_id``.

        Language and plan existence are checked up front; lifecycle
        preconditions are checked by the run itself and reported on the job.

        Returns:
            Task dict (serializable).
        """
        actor = require_actor(actor)
        language = validate_language(language)
        get_plan(plan_id)

        task = GenerationTask(
            plan_id=plan_id,
            status="pending",
            language=language,
            requested_by=actor,
        )
        db.session.add(task)
        db.session.commit()
        task_id = task.id
        result = task.to_dict()

        app = current_app._get_current_object()
        cancel_event = threading.Event()
        t = threading.Thread(
            target=self._execute_in_background,
            args=(app, task_id, plan_id, language, actor, cancel_event),
            name=f"generation-task-{task_id}",
            daemon=True,
        )
        with _registry_lock:
            _running_tasks[task_id] = (t, cancel_event)
        t.start()

        logger.info("Generation task %d submitted", task_id, extra={"plan_id": plan_id})
        return result

    def get_status(self, task_id: int) -> dict:
        task = db.session.get(GenerationTask, task_id)
        if not task:
            raise NotFoundError(resource="GenerationTask", resource_id=task_id)
        return task.to_dict()

    def cancel(self, task_id: int) -> dict:
        """Ask a pending/running job to stop. Terminal jobs are returned unchanged."""
        task = db.session.get(GenerationTask, task_id)
        if not task:
            raise NotFoundError(resource="GenerationTask", resource_id=task_id)
        if task.status in TERMINAL_TASK_STATUSES:
            return task.to_dict()

        with _registry_lock:
            entry = _running_tasks.get(task_id)
        if entry:
            entry[1].set()
            logger.info("Generation task %d cancellation requested", task_id,
                        extra={"plan_id": task.plan_id})
            return task.to_dict()

        # No live thread (e.g. process restarted): close the record directly
        task.status = "cancelled"
        task.completed_at = datetime.now(timezone.utc)
        db.session.commit()
        return task.to_dict()

    @staticmethod
    def join(task_id: int, timeout: float | None = None) -> bool:
        """Wait for a job's thread. Returns True if it has finished."""
        with _registry_lock:
            entry = _running_tasks.get(task_id)
        if entry is None:
            return True
        entry[0].join(timeout)
        return not entry[0].is_alive()

    # ── Internal ──────────────────────────────────────────────────────────

    def _orchestrator(self, app):
        if self._orchestrator_factory is not None:
            return self._orchestrator_factory(app)
        return GenerationOrchestrator.from_app(app)

    def _execute_in_background(self, app, task_id, plan_id, language, actor, cancel_event):
        """Run the generation in a background thread with its own app context."""
        with app.app_context():
            try:
                self._set_status(task_id, "running", started_at=datetime.now(timezone.utc))
                plan = self._orchestrator(app).generate_all(
                    plan_id, language, actor, cancel_event=cancel_event,
                )
                self._set_status(
                    task_id, "completed",
                    completed_at=datetime.now(timezone.utc),
                    result_json=json.dumps(
                        {"plan_id": plan.id, "status": plan.status}, default=str,
                    ),
                )
            except PlanError as e:
                status = "cancelled" if e.kind == "GenerationCancelled" else "failed"
                logger.warning("Generation task %d %s: %s", task_id, status, e,
                               extra={"plan_id": plan_id})
                self._set_status(
                    task_id, status,
                    completed_at=datetime.now(timezone.utc),
                    error_kind=e.kind, error_message=e.message,
                )
            except Exception as e:
                logger.exception("Generation task %d crashed", task_id, extra={"plan_id": plan_id})
                db.session.rollback()
                self._set_status(
                    task_id, "failed",
                    completed_at=datetime.now(timezone.utc),
                    error_kind="Error", error_message=str(e),
                )
            finally:
                db.session.remove()
                with _registry_lock:
                    _running_tasks.pop(task_id, None)

    @staticmethod
    def _set_status(task_id: int, status: str, **fields) -> None:
        task = db.session.get(GenerationTask, task_id)
        if task is None:
            return
        task.status = status
        for key, value in fields.items():
            setattr(task, key, value)
        db.session.commit()
