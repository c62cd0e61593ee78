"""
Flask extension instances.

Extensions are created here without binding to an application so that
the application factory can call ``init_app()`` on each one during
``create_app()``.  This avoids circular imports and follows the
standard Flask extension pattern.
"""

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect

from app.services.orchestrator import AnalysisOrchestrator

# -- Database ORM ----------------------------------------------------------
# The ``db`` instance is imported by models and services throughout the app.
db = SQLAlchemy()

# -- Schema migrations (Alembic via Flask-Migrate) -------------------------
migrate = Migrate()

# -- Token / session authentication ----------------------------------------
login_manager = LoginManager()

# -- CSRF protection for cookie-authenticated requests ---------------------
csrf = CSRFProtect()

# -- Background analysis task queue ----------------------------------------
orchestrator = AnalysisOrchestrator()
