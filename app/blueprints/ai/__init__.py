"""
AI blueprint — Gemini-backed advice, analysis and content generation.
"""

from flask import Blueprint

bp = Blueprint("ai", __name__)

from app.blueprints.ai import routes  # noqa: E402, F401
