"""
PlanForge
LLM Gateway — the content generator behind plan generation.

Provider-agnostic text generation with:
    - Multi-provider support (OpenAI, Anthropic Claude, Gemini, local stub)
    - Model → provider routing with local-stub fallback when no API key
    - Explicit failure classification (ContentGenerationError)
    - Token/latency usage logging

The gateway makes exactly ONE provider call per ``generate``; bounded
retry lives in ``planforge.ai.retry.RetryingGenerator``.

Usage:
    from planforge.ai.gateway import LLMGateway
    gw = LLMGateway(model="gpt-4o-mini")
    text = gw.generate(system_prompt, user_prompt, max_tokens=2000, temperature=0.7)
"""

import hashlib
import logging
import os
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar

from planforge.core.exceptions import ContentGenerationError
from planforge.models import db
from planforge.models.ai import AIUsageLog

logger = logging.getLogger(__name__)

# (purpose, plan_id) attached to usage log rows written inside ``usage_context``
_usage_context: ContextVar[tuple[str, str | None]] = ContextVar("usage_context", default=("", None))


@contextmanager
def usage_context(purpose: str, plan_id: str | None = None):
    """Label every gateway call made inside the block for usage logging."""
    token = _usage_context.set((purpose, plan_id))
    try:
        yield
    finally:
        _usage_context.reset(token)


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    name = "abstract"

    @abstractmethod
    def generate(self, system_prompt: str, user_prompt: str, model: str, **kwargs) -> dict:
        """
        Send one completion request.

        Args:
            system_prompt: Role framing instructions.
            user_prompt: The actual request.
            model: Model identifier string.
            **kwargs: temperature, max_tokens.

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model
        """
        ...

    def is_available(self) -> bool:
        return True


# ── OpenAI Provider ───────────────────────────────────────────────────────────

class OpenAIProvider(LLMProvider):
    """OpenAI chat completions provider."""

    name = "openai"

    def __init__(self):
        self.api_key = os.getenv("OPENAI_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import openai
                self._client = openai.OpenAI(api_key=self.api_key)
            except ImportError:
                raise RuntimeError("openai package not installed. Run: pip install openai")
        return self._client

    def generate(self, system_prompt: str, user_prompt: str, model: str = "gpt-4o-mini", **kwargs) -> dict:
        client = self._get_client()
        response = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=kwargs.get("max_tokens", 2000),
            temperature=kwargs.get("temperature", 0.7),
        )
        choice = response.choices[0]
        return {
            "content": choice.message.content or "",
            "prompt_tokens": response.usage.prompt_tokens,
            "completion_tokens": response.usage.completion_tokens,
            "model": model,
        }

    def is_available(self) -> bool:
        return bool(self.api_key)


# ── Anthropic Provider ────────────────────────────────────────────────────────

class AnthropicProvider(LLMProvider):
    """Claude API (Anthropic) provider."""

    name = "anthropic"

    def __init__(self):
        self.api_key = os.getenv("ANTHROPIC_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import anthropic
                self._client = anthropic.Anthropic(api_key=self.api_key)
            except ImportError:
                raise RuntimeError("anthropic package not installed. Run: pip install anthropic")
        return self._client

    def generate(self, system_prompt: str, user_prompt: str,
                 model: str = "claude-3-5-haiku-20241022", **kwargs) -> dict:
        client = self._get_client()
        response = client.messages.create(
            model=model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            max_tokens=kwargs.get("max_tokens", 2000),
            temperature=kwargs.get("temperature", 0.7),
        )
        return {
            "content": response.content[0].text,
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "model": model,
        }

    def is_available(self) -> bool:
        return bool(self.api_key)


# ── Google Gemini Provider ───────────────────────────────────────────────────

class GeminiProvider(LLMProvider):
    """
    Google Gemini API provider.

    Environment:
        GEMINI_API_KEY — obtain at https://aistudio.google.com/apikey
    """

    name = "gemini"

    def __init__(self):
        self.api_key = os.getenv("GEMINI_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                from google import genai
                self._client = genai.Client(api_key=self.api_key)
            except ImportError:
                raise RuntimeError(
                    "google-genai package not installed. Run: pip install google-genai"
                )
        return self._client

    def generate(self, system_prompt: str, user_prompt: str, model: str = "gemini-2.5-flash", **kwargs) -> dict:
        client = self._get_client()
        from google.genai import types

        config = types.GenerateContentConfig(
            temperature=kwargs.get("temperature", 0.7),
            max_output_tokens=kwargs.get("max_tokens", 2000),
            system_instruction=system_prompt,
        )
        response = client.models.generate_content(
            model=model,
            contents=[types.Content(role="user", parts=[types.Part(text=user_prompt)])],
            config=config,
        )

        prompt_tokens = getattr(response.usage_metadata, "prompt_token_count", 0) or 0
        completion_tokens = getattr(response.usage_metadata, "candidates_token_count", 0) or 0

        return {
            "content": response.text or "",
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "model": model,
        }

    def is_available(self) -> bool:
        return bool(self.api_key)


# ── Local Stub Provider (for dev/test without API keys) ──────────────────────

class LocalStubProvider(LLMProvider):
    """
    Local stub that returns deterministic section text for dev/testing.
    No API key required.
    """

    name = "local"

    def generate(self, system_prompt: str, user_prompt: str, model: str = "local-stub", **kwargs) -> dict:
        content = self._generate_stub_response(user_prompt)
        return {
            "content": content,
            "prompt_tokens": len(user_prompt.split()) * 2,  # rough estimate
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
        }

    @staticmethod
    def _generate_stub_response(user_prompt: str) -> str:
        """Echo the requested section name with a stable digest of the prompt."""
        section = "Section"
        for line in reversed(user_prompt.splitlines()):
            if line.startswith("Section:"):
                section = line.split(":", 1)[1].strip() or section
                break
        digest = hashlib.sha256(user_prompt.encode("utf-8")).hexdigest()[:12]
        return (
            f"## {section}\n\n"
            f"Draft content for {section} generated locally (ref {digest}). "
            "Configure an LLM provider API key to produce real content."
        )


# ── LLM Gateway (Main Interface) ─────────────────────────────────────────────

class LLMGateway:
    """
    Content generator used by the generation orchestrator.

    Implements the two-method contract the orchestration core depends on:
        generate(system_prompt, user_prompt, max_tokens, temperature) -> str
        is_available() -> bool
    """

    # Model → provider mapping
    PROVIDER_MAP = {
        # OpenAI
        "gpt-4o-mini": "openai",
        "gpt-4o": "openai",
        "gpt-4-turbo": "openai",
        # Anthropic
        "claude-3-5-haiku-20241022": "anthropic",
        "claude-3-5-sonnet-20241022": "anthropic",
        # Google Gemini
        "gemini-2.5-flash": "gemini",
        "gemini-2.5-pro": "gemini",
        # Local stub (dev/test)
        "local-stub": "local",
    }

    DEFAULT_CHAT_MODEL = os.getenv("LLM_DEFAULT_CHAT_MODEL", "gpt-4o-mini")

    def __init__(self, model: str | None = None, *, log_usage: bool = True):
        self.model = model or self.DEFAULT_CHAT_MODEL
        self.log_usage = log_usage
        self._providers: dict[str, LLMProvider] = {}
        self._init_providers()

    def _init_providers(self):
        """Initialize available providers based on environment."""
        # Always register local stub
        self._providers["local"] = LocalStubProvider()

        # Register real providers if API keys present
        if os.getenv("OPENAI_API_KEY"):
            self._providers["openai"] = OpenAIProvider()
        if os.getenv("ANTHROPIC_API_KEY"):
            self._providers["anthropic"] = AnthropicProvider()
        if os.getenv("GEMINI_API_KEY"):
            self._providers["gemini"] = GeminiProvider()

    def register_provider(self, name: str, provider: LLMProvider) -> None:
        self._providers[name] = provider

    def _get_provider(self, model: str) -> tuple[LLMProvider, str]:
        """
        Resolve model to provider. Falls back to local stub if real provider unavailable.
        Returns (provider, provider_name).
        """
        provider_name = self.PROVIDER_MAP.get(model, "local")

        if provider_name in self._providers:
            return self._providers[provider_name], provider_name

        logger.warning(
            "Provider '%s' not available (no API key?). Falling back to local stub for model '%s'.",
            provider_name, model,
        )
        return self._providers["local"], "local"

    def is_available(self) -> bool:
        provider, _ = self._get_provider(self.model)
        return provider.is_available()

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 2000,
        temperature: float = 0.7,
    ) -> str:
        """
        Run a single completion and return its text.

        Raises:
            ContentGenerationError: provider call failed or returned no text.
        """
        purpose, plan_id = _usage_context.get()
        provider, provider_name = self._get_provider(self.model)
        start_time = time.time()
        try:
            result = provider.generate(
                system_prompt, user_prompt, self.model,
                max_tokens=max_tokens, temperature=temperature,
            )
        except ContentGenerationError as e:
            self._record(provider_name, purpose, plan_id, start_time, error=e)
            raise
        except Exception as e:
            self._record(provider_name, purpose, plan_id, start_time, error=e)
            raise ContentGenerationError(str(e), provider=provider_name, transient=True) from e

        content = (result.get("content") or "").strip()
        if not content:
            err = ContentGenerationError("Provider returned empty content", provider=provider_name)
            self._record(provider_name, purpose, plan_id, start_time, error=err)
            raise err

        self._record(provider_name, purpose, plan_id, start_time, result=result)
        return content

    # ── Internal Logging ──────────────────────────────────────────────────

    def _record(self, provider_name, purpose, plan_id, start_time, *, result=None, error=None):
        latency_ms = int((time.time() - start_time) * 1000)
        if error is not None:
            logger.debug("LLM call failed provider=%s purpose=%s: %s", provider_name, purpose, error)
        if not self.log_usage:
            return
        prompt_tokens = (result or {}).get("prompt_tokens", 0) or 0
        completion_tokens = (result or {}).get("completion_tokens", 0) or 0
        self._log_usage(
            provider=provider_name, model=(result or {}).get("model", self.model),
            prompt_tokens=prompt_tokens, completion_tokens=completion_tokens,
            latency_ms=latency_ms, purpose=purpose, plan_id=plan_id,
            success=error is None, error_message=str(error) if error else None,
        )

    @staticmethod
    def _log_usage(*, provider, model, prompt_tokens, completion_tokens,
                   latency_ms, purpose, plan_id, success, error_message=None):
        """Persist a usage log record (flush only; the caller owns the commit)."""
        try:
            db.session.add(AIUsageLog(
                provider=provider, model=model,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
                latency_ms=latency_ms,
                purpose=purpose, plan_id=plan_id,
                success=success, error_message=error_message,
            ))
            db.session.flush()
        except Exception as e:
            logger.error("Failed to log AI usage: %s", e)
            db.session.rollback()
