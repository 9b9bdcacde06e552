"""
LLM gateway and prompt assembly tests:
  - local stub generation and usage logging
  - failure classification (empty content, provider exceptions)
  - prompt building per language
"""

import pytest

from planforge.ai.gateway import LLMGateway, LLMProvider, usage_context
from planforge.ai.prompts import (
    SECTION_PROMPTS,
    SUPPORTED_LANGUAGES,
    build_questionnaire_context,
    build_user_prompt,
    get_system_prompt,
    validate_language,
)
from planforge.core.exceptions import ContentGenerationError, ValidationError
from planforge.models.ai import AIUsageLog
from planforge.models.plan import SECTION_COLUMNS
from planforge.services import questionnaire_service


class _EmptyProvider(LLMProvider):
    name = "local"

    def generate(self, system_prompt, user_prompt, model, **kwargs):
        return {"content": "   ", "prompt_tokens": 1, "completion_tokens": 0}


class _BrokenProvider(LLMProvider):
    name = "local"

    def generate(self, system_prompt, user_prompt, model, **kwargs):
        raise ConnectionError("connection reset")


class TestLLMGateway:

    def test_local_stub_echoes_section(self):
        gateway = LLMGateway(model="local-stub")
        text = gateway.generate("system", "Write it.\nSection: MarketAnalysis", 500, 0.2)
        assert text.startswith("## MarketAnalysis")
        assert gateway.is_available() is True

    def test_usage_logged_with_context(self, make_plan):
        plan = make_plan()
        gateway = LLMGateway(model="local-stub")
        with usage_context("Solution", plan.id):
            gateway.generate("system", "Section: Solution", 500, 0.2)

        log = AIUsageLog.query.one()
        assert log.purpose == "Solution"
        assert log.plan_id == plan.id
        assert log.provider == "local"
        assert log.success is True
        assert log.total_tokens == log.prompt_tokens + log.completion_tokens

    def test_usage_logging_can_be_disabled(self):
        LLMGateway(model="local-stub", log_usage=False).generate("s", "Section: Solution", 100, 0.1)
        assert AIUsageLog.query.count() == 0

    def test_empty_content_is_an_error(self):
        gateway = LLMGateway(model="local-stub")
        gateway.register_provider("local", _EmptyProvider())
        with pytest.raises(ContentGenerationError):
            gateway.generate("s", "u", 100, 0.1)
        assert AIUsageLog.query.one().success is False

    def test_provider_exception_becomes_transient_error(self):
        gateway = LLMGateway(model="local-stub")
        gateway.register_provider("local", _BrokenProvider())
        with pytest.raises(ContentGenerationError) as exc:
            gateway.generate("s", "u", 100, 0.1)
        assert exc.value.transient is True
        assert "connection reset" in str(exc.value)

    def test_unknown_model_falls_back_to_stub(self):
        gateway = LLMGateway(model="some-future-model")
        assert gateway.generate("s", "Section: Solution", 100, 0.1).startswith("## Solution")


class TestPrompts:

    def test_every_section_has_a_template(self):
        for language in SUPPORTED_LANGUAGES:
            assert set(SECTION_PROMPTS[language]) == set(SECTION_COLUMNS)

    def test_language_normalised(self):
        assert validate_language(" FR ") == "fr"

    @pytest.mark.parametrize("language", [None, "", "de"])
    def test_unsupported_language(self, language):
        with pytest.raises(ValidationError):
            validate_language(language)

    def test_system_prompts_differ_by_language(self):
        assert get_system_prompt("en") != get_system_prompt("fr")

    def test_questionnaire_context_in_order(self, complete_plan):
        plan = complete_plan(n_questions=2)
        context = build_questionnaire_context(questionnaire_service.list_answers(plan.id))
        lines = context.splitlines()
        assert lines[0] == "=== QUESTIONNAIRE RESPONSES ==="
        assert lines.index("Question 1: Question number 1?") < lines.index("Question 2: Question number 2?")
        assert "Answer: Answer 1" in lines

    def test_user_prompt(self, complete_plan):
        plan = complete_plan(n_questions=1, title="Harbour Ferries")
        prompt = build_user_prompt(plan, questionnaire_service.list_answers(plan.id), "Solution", "en")
        assert "Plan title: Harbour Ferries" in prompt
        assert "Category: Standard" in prompt
        assert "comprehensive Solution section" in prompt
        assert prompt.endswith("Section: Solution")

    def test_user_prompt_unknown_section(self, complete_plan):
        plan = complete_plan(n_questions=1)
        with pytest.raises(ValidationError):
            build_user_prompt(plan, [], "Epilogue", "en")
