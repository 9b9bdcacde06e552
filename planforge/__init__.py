"""
PlanForge
Flask Application Factory.

Usage:
    from planforge import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from planforge.config import config
from planforge.middleware.logging_config import configure_logging
from planforge.middleware.rate_limiter import init_rate_limits
from planforge.middleware.timing import init_request_timing
from planforge.models import db

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit; applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None, content_generator=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        content_generator: Object with ``generate(system_prompt, user_prompt,
                     max_tokens, temperature) -> str`` and ``is_available()``.
                     Defaults to an LLMGateway for LLM_DEFAULT_CHAT_MODEL.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Content generation ───────────────────────────────────────────────
    from planforge.ai.gateway import LLMGateway
    from planforge.ai.task_runner import GenerationTaskRunner

    if content_generator is None:
        content_generator = LLMGateway(model=app.config["LLM_DEFAULT_CHAT_MODEL"])
    app.extensions["content_generator"] = content_generator
    app.extensions["generation_task_runner"] = GenerationTaskRunner()

    # ── Import all models so Alembic can detect them ─────────────────────
    from planforge.models import plan as _plan_models                  # noqa: F401
    from planforge.models import collaboration as _collaboration_models  # noqa: F401
    from planforge.models import ai as _ai_models                      # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from planforge.blueprints.plan_bp import plan_bp
    from planforge.blueprints.generation_bp import generation_bp
    from planforge.blueprints.version_bp import version_bp
    from planforge.blueprints.share_bp import share_bp
    from planforge.blueprints.health_bp import health_bp

    app.register_blueprint(plan_bp)
    app.register_blueprint(generation_bp)
    app.register_blueprint(version_bp)
    app.register_blueprint(share_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "kind": "NotFound", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
