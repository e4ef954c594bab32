"""
Defect Tracker
Flask Application Factory.

Usage:
    from defect_tracker import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from defect_tracker.config import config
from defect_tracker.middleware.jwt_auth import init_jwt_middleware
from defect_tracker.middleware.logging_config import configure_logging
from defect_tracker.middleware.rate_limiter import init_rate_limits
from defect_tracker.middleware.timing import init_request_timing
from defect_tracker.models import db

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
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
    default_limits=[],                     # no global limit — apply per-blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

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

    # ── Request hooks (order matters: request id before token resolution) ──
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Models & schema ──────────────────────────────────────────────────
    from defect_tracker.models import auth, defect, project  # noqa: F401

    with app.app_context():
        db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from defect_tracker.blueprints import register_error_handlers
    from defect_tracker.blueprints.attachment_bp import attachment_bp
    from defect_tracker.blueprints.auth_bp import auth_bp
    from defect_tracker.blueprints.defect_bp import defect_bp
    from defect_tracker.blueprints.health_bp import health_bp
    from defect_tracker.blueprints.project_bp import project_bp
    from defect_tracker.blueprints.report_bp import report_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(defect_bp)
    app.register_blueprint(attachment_bp)
    app.register_blueprint(report_bp)
    app.register_blueprint(health_bp)

    register_error_handlers(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    logger.info("App created: config=%s", config_name)
    return app
