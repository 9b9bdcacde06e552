"""
Request timing middleware.

Stamps every response with X-Request-ID and X-Request-Duration-Ms and logs
requests that ran longer than their threshold. Endpoints that call the
content generator inline get their own, much higher threshold
(GENERATION_SLOW_REQUEST_MS) so a normal synchronous run is not reported.
"""

import logging
import time
import uuid

from flask import Flask, current_app, g, request

logger = logging.getLogger(__name__)

# Health checks are polled constantly; timed but never logged
_SKIP_LOG = frozenset({"/api/v1/health/live", "/api/v1/health/ready"})

# Endpoints that block on content generation
GENERATION_ENDPOINTS = frozenset({
    "generation.generate_plan",
    "generation.regenerate_section",
    "generation.improve_section",
})


def slow_threshold_ms(endpoint: str | None) -> float:
    cfg = current_app.config
    if endpoint in GENERATION_ENDPOINTS:
        return cfg["GENERATION_SLOW_REQUEST_MS"]
    return cfg["SLOW_REQUEST_MS"]


def init_request_timing(app: Flask):
    """Register the before/after hooks."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish_timer(response):
        start = g.pop("request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = g.get("request_id", "")
        if request.path in _SKIP_LOG:
            return response

        if duration_ms > slow_threshold_ms(request.endpoint):
            level = logging.WARNING
        elif response.status_code >= 500:
            level = logging.ERROR
        else:
            level = logging.DEBUG
        logger.log(
            level, "%s %s → %d (%.0fms)", request.method, request.path, response.status_code, duration_ms,
            extra={
                "method": request.method,
                "path": request.path,
                "endpoint": request.endpoint,
                "status": response.status_code,
                "duration_ms": duration_ms,
                "remote_addr": request.remote_addr,
            },
        )
        return response
