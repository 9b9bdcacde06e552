"""
Section improvement tests:
  - improve / expand / simplify rewrite existing text without saving it
  - per-type token and temperature settings, max_length override
  - optional context lines in the prompt
  - preconditions: empty section, running generation, permissions
  - blank output surfaces as a generation failure
"""

import pytest
from sqlalchemy import update

from planforge.ai.prompts import get_improvement_system_prompt
from planforge.core.exceptions import (
    GenerationFailedError,
    PreconditionFailedError,
    ValidationError,
)
from planforge.models import db
from planforge.models.plan import Plan
from planforge.services import plan_service, share_service


def _reload(plan_id):
    db.session.expire_all()
    return plan_service.get_plan(plan_id)


@pytest.fixture()
def generated_plan(complete_plan, make_stub, make_orchestrator, owner):
    plan = complete_plan("LeanCanvas")
    make_orchestrator(make_stub("Original draft")).generate_all(plan.id, "en", owner)
    return _reload(plan.id)


class TestImproveSection:

    def test_returns_rewrite_without_saving(self, generated_plan, make_stub, make_orchestrator, owner):
        stub = make_stub("Sharper draft")
        result = make_orchestrator(stub).improve_section(
            generated_plan.id, "Solution", "improve", "en", owner,
        )

        assert result.improved_content == "Sharper draft"
        assert result.original_content == "Original draft"
        assert result.improvement_type == "improve"
        assert result.word_count == 2
        plan = _reload(generated_plan.id)
        assert plan.get_section("Solution") == "Original draft"
        assert plan.status == "Generated"

    @pytest.mark.parametrize("kind, max_tokens, temperature", [
        ("improve", 2000, 0.7),
        ("expand", 3000, 0.8),
        ("simplify", 1500, 0.6),
    ])
    def test_settings_per_type(self, generated_plan, make_stub, make_orchestrator, owner,
                               kind, max_tokens, temperature):
        stub = make_stub()
        make_orchestrator(stub).improve_section(generated_plan.id, "Solution", kind, "en", owner)

        call = stub.calls[0]
        assert call["max_tokens"] == max_tokens
        assert call["temperature"] == temperature
        assert call["system_prompt"] == get_improvement_system_prompt(kind, "LeanCanvas", "en")

    def test_max_length_overrides_tokens(self, generated_plan, make_stub, make_orchestrator, owner):
        stub = make_stub()
        make_orchestrator(stub).improve_section(
            generated_plan.id, "Solution", "expand", "en", owner, max_length=800,
        )
        assert stub.calls[0]["max_tokens"] == 800

    @pytest.mark.parametrize("max_length", [50, 6000])
    def test_max_length_out_of_range(self, generated_plan, make_stub, make_orchestrator, owner, max_length):
        stub = make_stub()
        with pytest.raises(ValidationError):
            make_orchestrator(stub).improve_section(
                generated_plan.id, "Solution", "improve", "en", owner, max_length=max_length,
            )
        assert stub.calls == []

    def test_prompt_carries_text_and_context(self, generated_plan, make_stub, make_orchestrator, owner):
        stub = make_stub()
        make_orchestrator(stub).improve_section(
            generated_plan.id, "Solution", "simplify", "fr", owner,
            instructions="Pour des non-spécialistes", tone="chaleureux", target_audience="",
        )

        prompt = stub.calls[0]["user_prompt"]
        assert "Contenu à simplifier:\nOriginal draft" in prompt
        assert "Instructions spécifiques: Pour des non-spécialistes" in prompt
        assert "Ton souhaité: chaleureux" in prompt
        assert "Public cible" not in prompt
        assert stub.sections_called == ["Solution"]

    def test_unknown_type(self, generated_plan, make_stub, make_orchestrator, owner):
        with pytest.raises(ValidationError):
            make_orchestrator(make_stub()).improve_section(generated_plan.id, "Solution", "rewrite", "en", owner)

    def test_section_outside_manifest(self, generated_plan, make_stub, make_orchestrator, owner):
        with pytest.raises(ValidationError):
            make_orchestrator(make_stub()).improve_section(
                generated_plan.id, "ExitStrategy", "improve", "en", owner,
            )

    def test_empty_section_rejected(self, complete_plan, make_stub, make_orchestrator, owner):
        plan = complete_plan("LeanCanvas")
        stub = make_stub()
        with pytest.raises(PreconditionFailedError):
            make_orchestrator(stub).improve_section(plan.id, "Solution", "improve", "en", owner)
        assert stub.calls == []

    def test_rejected_while_generating(self, generated_plan, make_stub, make_orchestrator, owner):
        db.session.execute(update(Plan).where(Plan.id == generated_plan.id).values(status="Generating"))
        db.session.commit()
        with pytest.raises(PreconditionFailedError):
            make_orchestrator(make_stub()).improve_section(generated_plan.id, "Solution", "improve", "en", owner)

    def test_reader_cannot_improve(self, generated_plan, make_stub, make_orchestrator, owner):
        share_service.create_share(generated_plan.id, owner, shared_with_user="reader")
        with pytest.raises(PreconditionFailedError):
            make_orchestrator(make_stub()).improve_section(generated_plan.id, "Solution", "improve", "en", "reader")

    def test_blank_rewrite_fails(self, generated_plan, make_stub, make_orchestrator, owner):
        with pytest.raises(GenerationFailedError) as exc:
            make_orchestrator(make_stub("")).improve_section(generated_plan.id, "Solution", "expand", "en", owner)
        assert "Failed to expand section Solution" in exc.value.message
        assert _reload(generated_plan.id).get_section("Solution") == "Original draft"
