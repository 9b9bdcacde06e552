"""
Background generation task tests:
  - submit → completed, plan Generated
  - failed and precondition-failed runs are recorded on the task
  - cancellation of a running task rolls the plan back
  - cancelling a task with no live thread closes the record
"""

import threading

import pytest

from planforge.ai.task_runner import GenerationTaskRunner
from planforge.core.exceptions import NotFoundError, ValidationError
from planforge.models import db
from planforge.models.ai import GenerationTask
from planforge.services import plan_service


class _BlockingGenerator:
    """Blocks inside the first call until ``release`` is set."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def generate(self, system_prompt, user_prompt, max_tokens, temperature):
        self.calls += 1
        self.entered.set()
        self.release.wait(5)
        return "OK"


def _runner(make_orchestrator, generator):
    return GenerationTaskRunner(orchestrator_factory=lambda app: make_orchestrator(generator))


def _finished(runner, task_id):
    assert runner.join(task_id, timeout=10)
    db.session.expire_all()
    return runner.get_status(task_id)


class TestSubmit:

    def test_completed_run(self, complete_plan, make_stub, make_orchestrator, owner):
        plan = complete_plan("LeanCanvas")
        runner = _runner(make_orchestrator, make_stub())

        task = runner.submit(plan.id, "en", owner)
        assert task["status"] == "pending"
        assert task["requested_by"] == owner

        task = _finished(runner, task["id"])
        assert task["status"] == "completed"
        assert task["result"] == {"plan_id": plan.id, "status": "Generated"}
        assert task["started_at"] is not None
        assert plan_service.get_plan(plan.id).status == "Generated"

    def test_failed_run(self, complete_plan, make_stub, make_orchestrator, owner):
        plan = complete_plan("LeanCanvas")
        runner = _runner(make_orchestrator, make_stub(fail_sections={"Solution"}, transient=False))

        task = _finished(runner, runner.submit(plan.id, "en", owner)["id"])
        assert task["status"] == "failed"
        assert task["error_kind"] == "GenerationFailed"
        assert "Failed to generate business plan" in task["error"]
        assert plan_service.get_plan(plan.id).status == "QuestionnaireComplete"

    def test_precondition_failure_recorded(self, make_plan, make_stub, make_orchestrator, owner):
        plan = make_plan()
        runner = _runner(make_orchestrator, make_stub())

        task = _finished(runner, runner.submit(plan.id, "en", owner)["id"])
        assert task["status"] == "failed"
        assert task["error_kind"] == "PreconditionFailed"

    def test_language_checked_on_submit(self, complete_plan, make_stub, make_orchestrator, owner):
        plan = complete_plan()
        with pytest.raises(ValidationError):
            _runner(make_orchestrator, make_stub()).submit(plan.id, "xx", owner)
        assert GenerationTask.query.count() == 0

    def test_unknown_plan(self, make_stub, make_orchestrator, owner):
        with pytest.raises(NotFoundError):
            _runner(make_orchestrator, make_stub()).submit("missing", "en", owner)


class TestCancel:

    def test_cancel_running_task(self, complete_plan, make_orchestrator, owner):
        plan = complete_plan("LeanCanvas")
        generator = _BlockingGenerator()
        runner = _runner(make_orchestrator, generator)

        task_id = runner.submit(plan.id, "en", owner)["id"]
        assert generator.entered.wait(5)
        runner.cancel(task_id)
        generator.release.set()

        task = _finished(runner, task_id)
        assert task["status"] == "cancelled"
        assert task["error_kind"] == "GenerationCancelled"
        assert generator.calls == 1

        plan = plan_service.get_plan(plan.id)
        assert plan.status == "QuestionnaireComplete"
        assert plan.get_section("ExecutiveSummary") == "OK"
        assert plan.get_section("ProblemStatement") is None

    def test_cancel_without_live_thread(self, complete_plan, owner):
        plan = complete_plan()
        task = GenerationTask(plan_id=plan.id, status="pending", language="en", requested_by=owner)
        db.session.add(task)
        db.session.commit()

        result = GenerationTaskRunner().cancel(task.id)
        assert result["status"] == "cancelled"
        assert result["completed_at"] is not None

    def test_cancel_terminal_task_is_noop(self, complete_plan, owner):
        plan = complete_plan()
        task = GenerationTask(plan_id=plan.id, status="completed", language="en", requested_by=owner)
        db.session.add(task)
        db.session.commit()

        assert GenerationTaskRunner().cancel(task.id)["status"] == "completed"

    def test_unknown_task(self):
        with pytest.raises(NotFoundError):
            GenerationTaskRunner().get_status(999)
