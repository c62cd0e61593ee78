"""
Visualization blueprint — chart and diagram rendering to HTML files.
"""

from flask import Blueprint

bp = Blueprint("visualization", __name__)

from app.blueprints.visualization import routes  # noqa: E402, F401
