"""
Upload blueprint — file storage, download and metadata.
"""

from flask import Blueprint

bp = Blueprint("upload", __name__)

from app.blueprints.upload import routes  # noqa: E402, F401
