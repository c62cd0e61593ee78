"""
Orchestrator blueprint — queued multi-step analysis workflows.
"""

from flask import Blueprint

bp = Blueprint("orchestrator", __name__)

from app.blueprints.orchestrator import routes  # noqa: E402, F401
