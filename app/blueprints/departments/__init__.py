"""
Departments blueprint — department tree per organization.
"""

from flask import Blueprint

bp = Blueprint("departments", __name__)

from app.blueprints.departments import routes  # noqa: E402, F401
