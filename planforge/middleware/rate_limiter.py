"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter
instance is created in planforge/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from planforge.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

GENERATION_LIMIT = "10/minute"
WRITE_LIMIT = "60/minute"
WRITE_METHODS = ["POST", "PUT", "DELETE"]


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Generation endpoints: 10/minute (LLM calls are expensive)
        - Write endpoints:      60/minute (POST/PUT/DELETE)
        - Health check:         exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("generation")
    if bp:
        limiter.limit(GENERATION_LIMIT)(bp)

    for bp_name in ("plan", "version", "share"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, methods=WRITE_METHODS)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — generation: %s, write: %s",
                    GENERATION_LIMIT, WRITE_LIMIT)
