"""
Employees blueprint — staff records and headcount statistics.
"""

from flask import Blueprint

bp = Blueprint("employees", __name__)

from app.blueprints.employees import routes  # noqa: E402, F401
