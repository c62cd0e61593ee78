"""
Routes for the main blueprint — API index and health check.
"""

import logging

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.blueprints.main import bp
from app.extensions import db
from app.responses import success

logger = logging.getLogger(__name__)

API_AREAS = [
    "/api/auth",
    "/api/admin",
    "/api/organizations",
    "/api/departments",
    "/api/employees",
    "/api/services",
    "/api/upload",
    "/api/notifications",
    "/api/ai",
    "/api/table-analysis",
    "/api/visualization",
    "/api/ai-orchestrator",
    "/api/reports",
]


@bp.route("/")
def index():
    """Name, version and the mounted API areas."""
    return success(
        {
            "name": current_app.config["APP_NAME"],
            "version": current_app.config["APP_VERSION"],
            "endpoints": API_AREAS,
        }
    )


@bp.route("/health")
def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns 200 if the app is running and can reach the database.
    """
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}, 200
    except SQLAlchemyError as exc:
        logger.error("Health check failed: %s", exc)
        db.session.rollback()
        return {"status": "unhealthy", "database": "unavailable"}, 503
