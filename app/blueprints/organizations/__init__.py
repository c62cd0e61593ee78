"""
Organizations blueprint — tenants, their members and work sites.
"""

from flask import Blueprint

bp = Blueprint("organizations", __name__)

from app.blueprints.organizations import routes  # noqa: E402, F401
