"""
Shared pytest fixtures for the PlanForge test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_plan / complete_plan: plan factories driven through the services
    - stub_generator / make_orchestrator: scripted content generator doubles
"""

import pytest

from planforge import create_app
from planforge.core.exceptions import ContentGenerationError
from planforge.models import db as _db
from planforge.services import plan_service, questionnaire_service
from planforge.services.generation_service import GenerationOrchestrator

OWNER = "owner-1"


class StubGenerator:
    """
    Content generator double.

    Returns ``text`` (or ``text(section)`` when callable) and records every
    call. Sections listed in ``fail_sections`` always fail; the first
    ``failures_before_success`` calls fail as well.
    """

    def __init__(self, text="OK", *, fail_sections=(), failures_before_success=0,
                 transient=True, available=True):
        self.text = text
        self.fail_sections = set(fail_sections)
        self.failures_before_success = failures_before_success
        self.transient = transient
        self.available = available
        self.calls = []

    @staticmethod
    def section_of(user_prompt: str) -> str | None:
        for line in reversed(user_prompt.splitlines()):
            if line.startswith("Section:"):
                return line.split(":", 1)[1].strip()
        return None

    @property
    def sections_called(self) -> list[str]:
        return [c["section"] for c in self.calls]

    def generate(self, system_prompt, user_prompt, max_tokens, temperature):
        section = self.section_of(user_prompt)
        self.calls.append({
            "section": section,
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        if len(self.calls) <= self.failures_before_success:
            raise ContentGenerationError("scripted failure", provider="stub", transient=self.transient)
        if section in self.fail_sections:
            raise ContentGenerationError(f"cannot write {section}", provider="stub",
                                         transient=self.transient)
        return self.text(section) if callable(self.text) else self.text

    def is_available(self):
        return self.available


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def owner_headers():
    return {"X-User-Id": OWNER}


# ── Domain factories ─────────────────────────────────────────────────────


def questions(n, *, optional=0):
    """``n`` required questions followed by ``optional`` optional ones."""
    items = [{"key": f"q{i}", "text": f"Question number {i}?"} for i in range(1, n + 1)]
    items += [
        {"key": f"opt{i}", "text": f"Optional question {i}?", "required": False}
        for i in range(1, optional + 1)
    ]
    return items


@pytest.fixture()
def make_plan():
    """Factory: a Draft plan owned by OWNER."""

    def _make(category="Standard", *, n_questions=3, optional=0, title="Corner Bakery",
              owner=OWNER, description="Neighbourhood bakery and coffee shop"):
        return plan_service.create_plan(
            title=title,
            category=category,
            description=description,
            questions=questions(n_questions, optional=optional),
            actor=owner,
        )

    return _make


@pytest.fixture()
def complete_plan(make_plan):
    """Factory: a plan whose required questions are all answered (QuestionnaireComplete)."""

    def _make(category="Standard", *, n_questions=3, **kwargs):
        plan = make_plan(category, n_questions=n_questions, **kwargs)
        owner = kwargs.get("owner", OWNER)
        for i in range(1, n_questions + 1):
            questionnaire_service.submit_answer(plan.id, f"q{i}", f"Answer {i}", owner)
        return plan_service.get_plan(plan.id)

    return _make


@pytest.fixture()
def owner():
    return OWNER


@pytest.fixture()
def make_stub():
    """Factory: ``make_stub(text="OK", fail_sections=..., ...)`` → StubGenerator."""
    return StubGenerator


@pytest.fixture()
def stub_generator():
    return StubGenerator()


@pytest.fixture()
def make_orchestrator():
    """Factory: an orchestrator around a generator with no backoff sleeping."""

    def _make(generator, **kwargs):
        kwargs.setdefault("max_retries", 3)
        kwargs.setdefault("backoff_base", 0.0)
        return GenerationOrchestrator(generator, **kwargs)

    return _make
