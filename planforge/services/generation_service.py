"""
Generation orchestrator — drives section-by-section plan generation.

    QuestionnaireComplete ──(CAS)──► Generating ──► Generated
             ▲                           │
             └──── rollback on failure / cancellation / timeout

A full run walks the category manifest in order. Each section gets one
RetryingGenerator call and is written to its own column immediately, so
partial progress survives a failed run. A failed, cancelled or timed-out
run rolls the status back to QuestionnaireComplete and keeps every section
already written; re-running ``generate_all`` resumes with the first empty
section.
``improve_section`` rewrites one section's existing text (improve, expand or
simplify) and hands it back for review without saving it.

Usage:
    from planforge.services.generation_service import GenerationOrchestrator

    orchestrator = GenerationOrchestrator.from_app()
    plan = orchestrator.generate_all(plan_id, "en", actor="u-1")
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import update

from planforge.ai.gateway import usage_context
from planforge.ai.prompts import (
    IMPROVEMENT_SETTINGS,
    build_improvement_prompt,
    build_user_prompt,
    get_improvement_system_prompt,
    get_system_prompt,
    validate_improvement_type,
    validate_language,
)
from planforge.ai.retry import RetryingGenerator
from planforge.core.exceptions import (
    ConcurrencyConflictError,
    GenerationCancelledError,
    GenerationFailedError,
    PreconditionFailedError,
    ValidationError,
)
from planforge.models import db
from planforge.models.plan import (
    PLAN_STATUSES,
    STATUS_GENERATED,
    STATUS_GENERATING,
    STATUS_QUESTIONNAIRE_COMPLETE,
    Plan,
)
from planforge.services import section_manifest
from planforge.services.plan_service import get_plan, require_actor, write_section
from planforge.services.progress import GenerationStatus, compute_generation_status, is_section_complete
from planforge.services.questionnaire_service import list_answers
from planforge.services.share_service import require_permission

logger = logging.getLogger(__name__)

# Single-section regeneration may run in any status but Generating
_REGENERATE_STATUSES = tuple(s for s in PLAN_STATUSES if s != STATUS_GENERATING)

# Bounds on a caller-supplied max_length for section improvement
IMPROVEMENT_MIN_TOKENS = 100
IMPROVEMENT_MAX_TOKENS = 5000


@dataclass
class SectionImprovement:
    """A rewritten section offered for review. Nothing is saved on the plan."""
    plan_id: str
    section: str
    improvement_type: str
    language: str
    original_content: str
    improved_content: str
    generated_at: datetime

    @property
    def word_count(self) -> int:
        return len(self.improved_content.split())

    def to_dict(self) -> dict:
        return {
            "plan_id": self.plan_id,
            "section": self.section,
            "improvement_type": self.improvement_type,
            "language": self.language,
            "original_content": self.original_content,
            "improved_content": self.improved_content,
            "word_count": self.word_count,
            "generated_at": self.generated_at.isoformat(),
        }


class GenerationOrchestrator:
    """
    Lifecycle-aware plan generation.

    Args:
        generator: A content generator (``generate(system, user, max_tokens,
                   temperature) -> str``) or an already wrapped RetryingGenerator.
        max_tokens / temperature: Passed to every generation call.
        max_retries: Additional attempts per section after the first.
        run_timeout: Seconds a full run may take; 0/None disables the limit.
                     Checked before each section.
    """

    def __init__(
        self,
        generator,
        *,
        max_tokens: int = 2000,
        temperature: float = 0.7,
        max_retries: int = 3,
        backoff_base: float = 2.0,
        backoff_max: float = 30.0,
        run_timeout: float | None = None,
        wait=None,
    ):
        if isinstance(generator, RetryingGenerator):
            self.generator = generator
        else:
            self.generator = RetryingGenerator(
                generator, backoff_base=backoff_base, backoff_max=backoff_max, wait=wait,
            )
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_retries = max_retries
        self.run_timeout = run_timeout or None

    @classmethod
    def from_app(cls, app=None, generator=None) -> "GenerationOrchestrator":
        """Build an orchestrator from app config and the registered content generator."""
        app = app or current_app
        cfg = app.config
        return cls(
            generator or app.extensions["content_generator"],
            max_tokens=cfg["GENERATION_MAX_TOKENS"],
            temperature=cfg["GENERATION_TEMPERATURE"],
            max_retries=cfg["GENERATION_MAX_RETRIES"],
            backoff_base=cfg["GENERATION_BACKOFF_BASE_SECONDS"],
            backoff_max=cfg["GENERATION_BACKOFF_MAX_SECONDS"],
            run_timeout=cfg.get("GENERATION_RUN_TIMEOUT_SECONDS"),
        )

    # ── Queries ──────────────────────────────────────────────────────────

    @staticmethod
    def available_sections(category: str) -> list[str]:
        return section_manifest.available_sections(category)

    @staticmethod
    def get_status(plan_id: str) -> GenerationStatus:
        return compute_generation_status(get_plan(plan_id))

    # ── Full run ─────────────────────────────────────────────────────────

    def generate_all(
        self,
        plan_id: str,
        language: str,
        actor: str,
        *,
        cancel_event: threading.Event | None = None,
    ) -> Plan:
        """
        Generate every manifest section of a plan.

        Raises:
            NotFoundError: unknown plan.
            ValidationError: unsupported language.
            PreconditionFailedError: questionnaire not complete (or the plan
                is past it).
            ConcurrencyConflictError: another run won the status CAS.
            GenerationFailedError: a section exhausted its retries.
            GenerationCancelledError: cancelled or timed out between sections.
        """
        actor = require_actor(actor)
        language = validate_language(language)
        plan = get_plan(plan_id)
        require_permission(plan, actor, "Edit")

        if plan.status != STATUS_QUESTIONNAIRE_COMPLETE or (plan.completion_percentage or 0) < 100:
            raise PreconditionFailedError(
                f"Questionnaire must be complete before generating the business plan "
                f"(status={plan.status}, completion={plan.completion_percentage or 0:.2f}%)",
                details={"status": plan.status},
            )

        manifest = section_manifest.available_sections(plan.category)
        self._start_run(plan_id, actor)

        started = time.monotonic()
        logger.info("Generation started: %d sections, language=%s", len(manifest), language,
                    extra={"plan_id": plan_id})

        try:
            plan = get_plan(plan_id)
            answers = list_answers(plan_id)
            system_prompt = get_system_prompt(language)
            total = len(manifest)

            for index, section in enumerate(manifest, start=1):
                self._check_interrupted(section, cancel_event, started)

                if is_section_complete(plan.get_section(section)):
                    logger.info("Skipping %s (already written) %d/%d", section, index, total,
                                extra={"plan_id": plan_id, "section": section})
                    continue

                logger.info("Generating %s (%d/%d)", section, index, total,
                            extra={"plan_id": plan_id, "section": section})
                user_prompt = build_user_prompt(plan, answers, section, language)
                with usage_context(section, plan_id):
                    content = self.generator.generate(
                        system_prompt, user_prompt, self.max_tokens, self.temperature,
                        self.max_retries, cancel_event=cancel_event, section=section,
                    )

                if not write_section(plan_id, section, content, actor,
                                     allowed_statuses=(STATUS_GENERATING,)):
                    raise ConcurrencyConflictError(
                        "Plan left the Generating status during the run", details={"section": section},
                    )
                plan = get_plan(plan_id)
                logger.info("Completed %d/%d sections", index, total,
                            extra={"plan_id": plan_id, "section": section})

        except GenerationFailedError as e:
            self._rollback(plan_id, actor, e)
            raise GenerationFailedError(
                f"Failed to generate business plan: {e.message}",
                section=e.section,
                details=e.details,
            ) from e
        except GenerationCancelledError as e:
            self._rollback(plan_id, actor, e)
            raise
        except Exception as e:
            db.session.rollback()
            self._rollback(plan_id, actor, e)
            raise

        self._finish_run(plan_id, actor)
        logger.info("Generation completed: %d sections in %.1fs", len(manifest),
                    time.monotonic() - started, extra={"plan_id": plan_id})
        return get_plan(plan_id)

    # ── Single section ───────────────────────────────────────────────────

    def regenerate_section(self, plan_id: str, section: str, language: str, actor: str) -> Plan:
        """
        Regenerate one section. Status and all other sections stay untouched.

        Raises:
            NotFoundError: unknown plan.
            ValidationError: unsupported language, or section not in the
                plan category's manifest.
            PreconditionFailedError: a full run is in progress.
            GenerationFailedError: the section exhausted its retries.
        """
        actor = require_actor(actor)
        language = validate_language(language)
        plan = get_plan(plan_id)
        if section not in section_manifest.available_sections(plan.category):
            raise ValidationError(
                f"Invalid section '{section}' for category {plan.category}",
                details={"section": section, "category": plan.category},
            )
        require_permission(plan, actor, "Edit")
        if plan.status == STATUS_GENERATING:
            raise PreconditionFailedError("Cannot regenerate a section while generation is running")

        user_prompt = build_user_prompt(plan, list_answers(plan_id), section, language)
        logger.info("Regenerating %s", section, extra={"plan_id": plan_id, "section": section})
        with usage_context(section, plan_id):
            try:
                content = self.generator.generate(
                    get_system_prompt(language), user_prompt, self.max_tokens, self.temperature,
                    self.max_retries, section=section,
                )
            except GenerationFailedError as e:
                db.session.commit()  # keep the usage rows of the failed attempts
                raise GenerationFailedError(
                    f"Failed to regenerate section {section}: {e.message}",
                    section=section, details=e.details,
                ) from e

        if not write_section(plan_id, section, content, actor, allowed_statuses=_REGENERATE_STATUSES):
            raise ConcurrencyConflictError("A full generation run started while regenerating the section")
        return get_plan(plan_id)

    def improve_section(
        self,
        plan_id: str,
        section: str,
        improvement_type: str,
        language: str,
        actor: str,
        *,
        max_length: int | None = None,
        **context,
    ) -> SectionImprovement:
        """
        Rewrite a section's current text (improve / expand / simplify).

        The result is returned for review only; saving it goes through
        ``plan_service.update_section``. ``context`` takes instructions,
        target_audience, industry_context and tone.

        Raises:
            NotFoundError: unknown plan.
            ValidationError: bad language, improvement type, section or max_length.
            PreconditionFailedError: a full run is in progress, or the section
                has no text yet.
            GenerationFailedError: the rewrite exhausted its retries.
        """
        actor = require_actor(actor)
        language = validate_language(language)
        kind = validate_improvement_type(improvement_type)
        max_tokens, temperature = IMPROVEMENT_SETTINGS[kind]
        if max_length is not None:
            if not IMPROVEMENT_MIN_TOKENS <= max_length <= IMPROVEMENT_MAX_TOKENS:
                raise ValidationError(
                    f"max_length must be between {IMPROVEMENT_MIN_TOKENS} and {IMPROVEMENT_MAX_TOKENS}",
                    details={"max_length": max_length},
                )
            max_tokens = max_length

        plan = get_plan(plan_id)
        if section not in section_manifest.available_sections(plan.category):
            raise ValidationError(
                f"Invalid section '{section}' for category {plan.category}",
                details={"section": section, "category": plan.category},
            )
        require_permission(plan, actor, "Edit")
        if plan.status == STATUS_GENERATING:
            raise PreconditionFailedError("Cannot improve a section while generation is running")
        original = plan.get_section(section)
        if not is_section_complete(original):
            raise PreconditionFailedError(
                f"Section {section} has no content to {kind}", details={"section": section},
            )

        user_prompt = build_improvement_prompt(section, original, kind, language, **context)
        logger.info("Section %s requested (%s)", kind, section, extra={"plan_id": plan_id, "section": section})
        with usage_context(f"{kind}:{section}", plan_id):
            try:
                improved = self.generator.generate(
                    get_improvement_system_prompt(kind, plan.category, language), user_prompt,
                    max_tokens, temperature, self.max_retries, section=section,
                )
            except GenerationFailedError as e:
                db.session.commit()  # keep the usage rows of the failed attempts
                raise GenerationFailedError(
                    f"Failed to {kind} section {section}: {e.message}",
                    section=section, details=e.details,
                ) from e
        db.session.commit()

        return SectionImprovement(
            plan_id=plan_id,
            section=section,
            improvement_type=kind,
            language=language,
            original_content=original,
            improved_content=improved,
            generated_at=datetime.now(timezone.utc),
        )

    # ── Internal ─────────────────────────────────────────────────────────

    def _check_interrupted(self, section: str, cancel_event, started: float) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise GenerationCancelledError(f"Generation cancelled before section {section}", section=section)
        if self.run_timeout and time.monotonic() - started > self.run_timeout:
            raise GenerationCancelledError(
                f"Generation timed out after {self.run_timeout:.0f}s before section {section}",
                section=section,
            )

    @staticmethod
    def _start_run(plan_id: str, actor: str) -> None:
        """Atomic QuestionnaireComplete → Generating. Exactly one caller wins."""
        now = datetime.now(timezone.utc)
        result = db.session.execute(
            update(Plan)
            .where(Plan.id == plan_id, Plan.status == STATUS_QUESTIONNAIRE_COMPLETE)
            .values(
                status=STATUS_GENERATING,
                generation_started_at=now,
                generation_completed_at=None,
                last_modified_at=now,
                last_modified_by=actor,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise ConcurrencyConflictError(
                "Generation is already running; the questionnaire must be complete and the plan idle",
                details={"plan_id": plan_id},
            )
        db.session.commit()

    @staticmethod
    def _finish_run(plan_id: str, actor: str) -> None:
        now = datetime.now(timezone.utc)
        result = db.session.execute(
            update(Plan)
            .where(Plan.id == plan_id, Plan.status == STATUS_GENERATING)
            .values(
                status=STATUS_GENERATED,
                generation_completed_at=now,
                last_modified_at=now,
                last_modified_by=actor,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise ConcurrencyConflictError("Plan left the Generating status before completion")
        db.session.commit()

    @staticmethod
    def _rollback(plan_id: str, actor: str, error: Exception) -> None:
        """Generating → QuestionnaireComplete, keeping every written section."""
        db.session.execute(
            update(Plan)
            .where(Plan.id == plan_id, Plan.status == STATUS_GENERATING)
            .values(
                status=STATUS_QUESTIONNAIRE_COMPLETE,
                last_modified_at=datetime.now(timezone.utc),
                last_modified_by=actor,
            )
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        logger.error("Generation rolled back to %s: %s", STATUS_QUESTIONNAIRE_COMPLETE, error,
                     extra={"plan_id": plan_id, "section": getattr(error, "section", None)})
