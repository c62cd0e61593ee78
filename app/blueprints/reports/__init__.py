"""
Reports blueprint — CSV and Excel exports of service records and
employees.
"""

from flask import Blueprint

bp = Blueprint("reports", __name__)

from app.blueprints.reports import routes  # noqa: E402, F401
