"""
SiteHub
Flask Application Factory.

Usage:
    from sitehub import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from sitehub.config import config
from sitehub.core.exceptions import ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from sitehub.middleware.jwt_auth import init_jwt_middleware
from sitehub.middleware.logging_config import configure_logging
from sitehub.middleware.rate_limiter import init_rate_limits
from sitehub.middleware.security_headers import init_security_headers
from sitehub.middleware.timing import init_request_timing
from sitehub.models import db
from sitehub.services.blob_store import init_blob_store
from sitehub.utils.errors import E, api_error

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
    default_limits=[],                     # no global limit, see middleware/rate_limiter.py
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def _register_error_handlers(app):
    """Translate domain exceptions into the standard JSON error body."""

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(ValidationError)
    def _handle_validation(error):
        missing = error.details and all(v == "required" for v in error.details.values())
        code = E.VALIDATION_REQUIRED if missing else E.VALIDATION_INVALID
        return api_error(code, str(error), details=error.details)

    @app.errorhandler(UnauthorizedError)
    def _handle_unauthorized(error):
        return api_error(E.UNAUTHORIZED, str(error))

    @app.errorhandler(ForbiddenError)
    def _handle_forbidden(error):
        details = {"operation": error.operation} if error.operation else None
        return api_error(E.FORBIDDEN, str(error), details=details)

    @app.errorhandler(404)
    def _not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(413)
    def _too_large(e):
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        return api_error(
            E.PAYLOAD_TOO_LARGE, "Request body too large",
            details={"max_bytes": max_len} if max_len else None,
        )

    @app.errorhandler(415)
    def _unsupported_media(e):
        return api_error(E.VALIDATION_INVALID, e.description or "Unsupported media type", status=415)

    @app.errorhandler(429)
    def _rate_limited(e):
        return api_error(E.VALIDATION_INVALID, "Too many requests", status=429,
                         details={"retry_after": str(e.description)})

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("500 error on %s %s: %s", request.method, request.path, e)
        return api_error(E.INTERNAL, "Internal server error")

    @app.errorhandler(Exception)
    def _handle_unexpected(error):
        # HTTPExceptions keep their own status (abort(4xx) inside views)
        code = getattr(error, "code", None)
        if isinstance(code, int) and 400 <= code < 500:
            return api_error(E.VALIDATION_INVALID, getattr(error, "description", str(error)), status=code)
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return api_error(E.INTERNAL, "Internal server error")


def _register_cli(app):

    @app.cli.command("create-admin")
    @click.argument("email")
    @click.argument("password")
    @click.option("--name", default="", help="Display name for a new account.")
    def create_admin_cmd(email, password, name):
        """Create an admin account, or promote an existing one."""
        from sitehub.services.user_service import create_or_promote_admin

        try:
            user, created = create_or_promote_admin(email, password, name)
        except ValidationError as exc:
            raise click.ClickException(str(exc)) from exc
        verb = "Created" if created else "Promoted"
        click.echo(f"{verb} admin {user.email} (id={user.id})")


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
    cfg = config[config_name]
    app.config.from_object(cfg() if config_name == "production" else cfg)

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

    # ── Security headers (CSP, HSTS, X-Frame-Options, etc.) ─────────────
    init_security_headers(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            abort(413, description="Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct and "multipart/form-data" not in ct:
                abort(415, description="Content-Type must be application/json")
        return None

    # ── JWT auth middleware (sets g.identity) ────────────────────────────
    init_jwt_middleware(app)

    # ── Blob store (uploads) ─────────────────────────────────────────────
    init_blob_store(app)

    # ── Import all models so create_all / Alembic can see them ───────────
    from sitehub.models import auth as _auth_models              # noqa: F401
    from sitehub.models import group as _group_models            # noqa: F401
    from sitehub.models import site as _site_models              # noqa: F401
    from sitehub.models import document as _document_models      # noqa: F401
    from sitehub.models import external_tool as _tool_models     # noqa: F401
    from sitehub.models import wan as _wan_models                # noqa: F401
    from sitehub.models import wifi as _wifi_models              # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from sitehub.blueprints.admin_bp import admin_bp
    from sitehub.blueprints.archive_bp import archive_bp
    from sitehub.blueprints.auth_bp import auth_bp
    from sitehub.blueprints.deployment_bp import deployment_bp
    from sitehub.blueprints.document_bp import document_bp
    from sitehub.blueprints.external_tool_bp import external_tool_bp
    from sitehub.blueprints.group_bp import group_bp
    from sitehub.blueprints.health_bp import health_bp
    from sitehub.blueprints.site_bp import site_bp
    from sitehub.blueprints.wan_bp import wan_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(group_bp)
    app.register_blueprint(site_bp)
    app.register_blueprint(document_bp)
    app.register_blueprint(external_tool_bp)
    app.register_blueprint(wan_bp)
    app.register_blueprint(deployment_bp)
    app.register_blueprint(archive_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    _register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    _register_cli(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
