"""
Services blueprint — service tickets, their change history and stats.
"""

from flask import Blueprint

bp = Blueprint("services", __name__)

from app.blueprints.services import routes  # noqa: E402, F401
