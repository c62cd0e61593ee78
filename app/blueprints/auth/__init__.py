"""
Auth blueprint — registration, login, token refresh and logout.
"""

from flask import Blueprint

bp = Blueprint("auth", __name__)

from app.blueprints.auth import routes  # noqa: E402, F401
