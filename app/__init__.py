"""
Application factory for the ServiceNexus business-service API.

Usage::

    from app import create_app
    app = create_app()           # Uses FLASK_ENV to pick config.
    app = create_app("testing")  # Explicit config for tests.
"""

import logging
import os

from flask import Flask, jsonify, request
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from .config import config_by_name
from .errors import ApiError
from .extensions import csrf, db, login_manager, migrate, orchestrator
from .responses import ApiJSONProvider

logger = logging.getLogger(__name__)

_MUTATING_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def create_app(config_name: str | None = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config_name: One of 'development', 'testing', or 'production'.
                     Defaults to the FLASK_ENV environment variable,
                     falling back to 'development'.

    Returns:
        A fully configured Flask application instance.
    """
    # Resolve the configuration class.
    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")
    config_class = config_by_name.get(config_name)
    if config_class is None:
        raise ValueError(
            f"Unknown config '{config_name}'. "
            f"Valid options: {list(config_by_name.keys())}"
        )

    app = Flask(__name__)
    app.config.from_object(config_class)
    app.json = ApiJSONProvider(app)

    # Refuse to run production with insecure secrets.
    if config_name == "production":
        config_class.validate_production_secrets(app.config)

    # -- Initialize extensions ---------------------------------------------
    _register_extensions(app)

    # -- Register blueprints -----------------------------------------------
    _register_blueprints(app)

    # -- Register error handlers -------------------------------------------
    _register_error_handlers(app)

    # -- Register custom CLI commands --------------------------------------
    _register_cli_commands(app)

    # -- Configure logging -------------------------------------------------
    _configure_logging(app)

    return app


def _register_extensions(app: Flask) -> None:
    """Bind all Flask extensions to the application instance."""
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    orchestrator.init_app(app)

    # Imported here to avoid circular imports with models and services.
    # pylint: disable=import-outside-toplevel
    from .models.user import User
    from .services import auth_service

    @login_manager.user_loader
    def load_user(user_id: str):
        """Load a user by primary key for Flask-Login session management."""
        return db.session.get(User, int(user_id))

    @login_manager.request_loader
    def load_user_from_request(req):  # pylint: disable=unused-argument
        """Resolve ``Authorization: Bearer <token>`` to a user."""
        return auth_service.load_user_from_token(auth_service.bearer_token())

    @login_manager.unauthorized_handler
    def unauthorized():
        """Answer API clients with JSON instead of a login redirect."""
        return jsonify({"status": "fail", "message": "Authentication required"}), 401

    @app.before_request
    def csrf_protect_cookie_requests():
        """
        CSRF-check state-changing requests that arrive with a session
        cookie.  Bearer-token clients are exempt.
        """
        if not app.config.get("WTF_CSRF_ENABLED", True):
            return
        if request.method not in _MUTATING_METHODS:
            return
        if auth_service.bearer_token():
            return
        if request.cookies.get(app.config["SESSION_COOKIE_NAME"]):
            csrf.protect()


def _register_blueprints(app: Flask) -> None:
    """
    Import and register each blueprint with its URL prefix.

    Blueprints are imported inside this function to avoid circular
    imports; models and services can safely import ``db`` from
    extensions at module level.
    """
    # pylint: disable=import-outside-toplevel

    # Main: API index and health check at the root URL.
    from .blueprints.main import bp as main_bp

    app.register_blueprint(main_bp)

    # Authentication: register, login, token refresh, logout.
    from .blueprints.auth import bp as auth_bp

    app.register_blueprint(auth_bp, url_prefix="/api/auth")

    # Admin: user management and audit logs.
    from .blueprints.admin import bp as admin_bp

    app.register_blueprint(admin_bp, url_prefix="/api/admin")

    # Organizations: tenants, members and work sites.
    from .blueprints.organizations import bp as organizations_bp

    app.register_blueprint(organizations_bp, url_prefix="/api/organizations")

    # Departments: department tree per organization.
    from .blueprints.departments import bp as departments_bp

    app.register_blueprint(departments_bp, url_prefix="/api/departments")

    # Employees: staff records and statistics.
    from .blueprints.employees import bp as employees_bp

    app.register_blueprint(employees_bp, url_prefix="/api/employees")

    # Services: service tickets, history and statistics.
    from .blueprints.services import bp as services_bp

    app.register_blueprint(services_bp, url_prefix="/api/services")

    # Uploads: file storage and metadata.
    from .blueprints.upload import bp as upload_bp

    app.register_blueprint(upload_bp, url_prefix="/api/upload")

    # Notifications: in-app notifications.
    from .blueprints.notifications import bp as notifications_bp

    app.register_blueprint(notifications_bp, url_prefix="/api/notifications")

    # AI: Gemini-backed advice, analysis and content generation.
    from .blueprints.ai import bp as ai_bp

    app.register_blueprint(ai_bp, url_prefix="/api/ai")

    # Table analysis: parsing, matrices, statistics and storage.
    from .blueprints.table_analysis import bp as table_analysis_bp

    app.register_blueprint(table_analysis_bp, url_prefix="/api/table-analysis")

    # Visualization: chart and diagram rendering.
    from .blueprints.visualization import bp as visualization_bp

    app.register_blueprint(visualization_bp, url_prefix="/api/visualization")

    # Orchestrator: queued multi-step analysis workflows.
    from .blueprints.orchestrator import bp as orchestrator_bp

    app.register_blueprint(orchestrator_bp, url_prefix="/api/ai-orchestrator")

    # Reports: CSV and Excel exports.
    from .blueprints.reports import bp as reports_bp

    app.register_blueprint(reports_bp, url_prefix="/api/reports")


def _register_error_handlers(app: Flask) -> None:
    """Render every error in the JSON error envelope."""

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        """Errors raised deliberately by the service layer."""
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(ValueError)
    def handle_value_error(error):
        """Bad input detected by the pure computation modules."""
        return jsonify({"status": "fail", "message": str(error)}), 400

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        """Constraint violations that slipped past service validation."""
        db.session.rollback()
        detail = str(error.orig).lower()
        if "unique" in detail or "duplicate" in detail:
            message = "Duplicate value"
        elif "foreign key" in detail:
            message = "Referenced record does not exist"
        else:
            message = "Invalid data"
        logger.warning("Integrity error on %s %s: %s", request.method, request.path, error.orig)
        return jsonify({"status": "fail", "message": message}), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        """Werkzeug errors (404, 405, 413, CSRF 400 ...)."""
        status = "fail" if error.code < 500 else "error"
        return jsonify({"status": status, "message": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):  # pylint: disable=unused-argument
        """Anything else: roll back, log and hide the details."""
        db.session.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"status": "error", "message": "Internal server error"}), 500


def _register_cli_commands(app: Flask) -> None:
    """Register custom Flask CLI commands (e.g., flask db-check)."""
    # pylint: disable=import-outside-toplevel
    from .cli import register_commands
    from .seed_dev_admin import register_seed_commands

    register_commands(app)
    register_seed_commands(app)


def _configure_logging(app: Flask) -> None:
    """
    Set the root log level from ``LOG_LEVEL``.

    SQLAlchemy engine logging is quieted in development so query
    echo does not drown out application messages.
    """
    log_level = app.config.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    # Quiet down noisy libraries in development.
    if app.debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
