"""
Admin blueprint — user management and audit logs.
"""

from flask import Blueprint

bp = Blueprint("admin", __name__)

from app.blueprints.admin import routes  # noqa: E402, F401
