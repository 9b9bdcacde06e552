"""
Platform-wide exception hierarchy.

Every service raises one of these types; blueprints register handlers
against them once and render a consistent JSON error body:

    {"error": "<human readable>", "kind": "<stable machine kind>", "details": {...}}

Usage:
    from planforge.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Plan", resource_id=plan_id)
    raise ValidationError("Unsupported language", details={"language": "de"})
"""


class PlanError(Exception):
    """Base class. ``kind`` is stable and safe to switch on in API clients."""

    kind = "Error"
    http_status = 500

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "details": self.details}


class NotFoundError(PlanError):
    """Raised when a referenced plan, section, version or grant does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Plan", "Share").
        resource_id: The identifier that was looked up.
    """

    kind = "NotFound"
    http_status = 404

    def __init__(self, resource: str, resource_id: int | str | None = None, message: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = message
        if msg is None:
            msg = f"{resource}"
            if resource_id is not None:
                msg += f" id={resource_id}"
            msg += " not found"
        super().__init__(msg)


class ValidationError(PlanError):
    """Raised when a request is malformed for the domain.

    Unsupported language or category, public share with a target user,
    unknown section name, missing acting user.
    """

    kind = "InvalidArgument"
    http_status = 422


class PreconditionFailedError(PlanError):
    """Raised when a lifecycle guard is violated.

    The caller has to change the plan's state before retrying
    (questionnaire incomplete, generation already running, plan finalized).
    """

    kind = "PreconditionFailed"
    http_status = 409


class ConcurrencyConflictError(PreconditionFailedError):
    """Raised when an optimistic compare-and-set on the plan status loses a race."""

    kind = "ConcurrencyConflict"


class GenerationFailedError(PlanError):
    """Raised when content generation exhausted its retries.

    The plan has already been rolled back to QuestionnaireComplete with the
    sections written before the failure kept.
    """

    kind = "GenerationFailed"
    http_status = 502

    def __init__(self, message: str, section: str | None = None, details: dict | None = None) -> None:
        self.section = section
        details = dict(details or {})
        if section:
            details.setdefault("section", section)
        super().__init__(message, details)


class GenerationCancelledError(PlanError):
    """Raised when a run was cancelled or timed out between sections."""

    kind = "GenerationCancelled"
    http_status = 409

    def __init__(self, message: str, section: str | None = None) -> None:
        self.section = section
        super().__init__(message, {"next_section": section} if section else None)


class ContentGenerationError(Exception):
    """Raised by content providers for a failed call.

    ``transient`` classifies the failure explicitly; the retrying generator
    retries transient failures up to its bound.
    """

    def __init__(self, message: str, *, provider: str = "", transient: bool = True) -> None:
        self.provider = provider
        self.transient = transient
        super().__init__(message)
