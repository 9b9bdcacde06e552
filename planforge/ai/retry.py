"""
PlanForge
Retrying content generator.

Wraps any object exposing ``generate(system_prompt, user_prompt,
max_tokens, temperature) -> str`` with bounded retry and exponential
backoff.
The first call plus at most ``max_retries`` additional calls are made;
once they are exhausted a single GenerationFailedError is raised and no
partial output is returned. A blank result counts as a failed attempt.
"""

import logging
import threading

from planforge.core.exceptions import (
    ContentGenerationError,
    GenerationCancelledError,
    GenerationFailedError,
)

logger = logging.getLogger(__name__)


class RetryingGenerator:
    """Bounded retry/backoff around a content generator.

    Args:
        generator: The underlying content generator.
        backoff_base: Delay before the first retry, in seconds. Doubles per retry.
        backoff_max: Upper bound on a single delay.
        wait: ``wait(seconds, cancel_event) -> bool`` used between attempts;
              returns True when the wait was interrupted by cancellation.
    """

    def __init__(self, generator, *, backoff_base: float = 2.0, backoff_max: float = 30.0, wait=None):
        self.generator = generator
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._wait = wait or _wait_interruptible

    def backoff_for(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (1-based)."""
        if self.backoff_base <= 0:
            return 0.0
        return min(self.backoff_base * 2 ** (retry_number - 1), self.backoff_max)

    def is_available(self) -> bool:
        check = getattr(self.generator, "is_available", None)
        return bool(check()) if callable(check) else True

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
        max_retries: int = 3,
        *,
        cancel_event: threading.Event | None = None,
        section: str | None = None,
    ) -> str:
        """
        Generate text, retrying failed calls up to ``max_retries`` more times.

        ``section`` only labels log records and errors. Empty or
        whitespace-only output is retried like a transient failure.

        Raises:
            GenerationFailedError: every attempt failed, or a provider flagged
                its failure as non-transient.
            GenerationCancelledError: ``cancel_event`` fired during a backoff wait.
        """
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        attempts = max_retries + 1
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                content = self.generator.generate(system_prompt, user_prompt, max_tokens, temperature)
                if not isinstance(content, str) or not content.strip():
                    raise ContentGenerationError("Generator returned empty content")
                return content
            except ContentGenerationError as e:
                last_error = e
                if not e.transient:
                    logger.error(
                        "Content generation failed permanently on attempt %d: %s", attempt, e,
                        extra={"section": section, "attempt": attempt},
                    )
                    break
            except Exception as e:
                # Unclassified errors from the generator are treated as transient
                last_error = e

            logger.warning(
                "Content generation attempt %d/%d failed: %s", attempt, attempts, last_error,
                extra={"section": section, "attempt": attempt},
            )
            if attempt < attempts:
                delay = self.backoff_for(attempt)
                if self._wait(delay, cancel_event):
                    raise GenerationCancelledError(
                        "Generation cancelled while waiting to retry", section=section,
                    )

        raise GenerationFailedError(
            f"Content generation failed after {attempt} attempt(s): {last_error}",
            section=section,
            details={"attempts": attempt},
        )


def _wait_interruptible(seconds: float, cancel_event: threading.Event | None) -> bool:
    """Sleep for ``seconds``; return True if ``cancel_event`` fired."""
    if cancel_event is None:
        if seconds > 0:
            threading.Event().wait(seconds)
        return False
    if cancel_event.is_set():
        return True
    return cancel_event.wait(seconds) if seconds > 0 else False
