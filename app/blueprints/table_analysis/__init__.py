"""
Table analysis blueprint — parsing, matrix math, statistics and storage
of tabular data.
"""

from flask import Blueprint

bp = Blueprint("table_analysis", __name__)

from app.blueprints.table_analysis import routes  # noqa: E402, F401
