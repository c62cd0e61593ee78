"""
Model package — imports all models so Alembic and SQLAlchemy can
discover them automatically when ``flask db`` commands are run.

Each model file corresponds to one area of the application:
  - user.py           -> accounts and login sessions
  - organization.py   -> tenants, departments, work sites, employees
  - service_record.py -> service tickets and their change history
  - file.py           -> uploaded file metadata
  - notification.py   -> in-app notifications
  - ai.py             -> assistant conversations and insights
  - audit.py          -> audit trail
"""

# -- accounts --------------------------------------------------------------
from app.models.user import User, UserSession  # noqa: F401

# -- organizations ---------------------------------------------------------
from app.models.organization import (  # noqa: F401
    Department,
    Employee,
    Organization,
    OrganizationMember,
    WorkSite,
)

# -- services --------------------------------------------------------------
from app.models.service_record import (  # noqa: F401
    ServiceRecord,
    ServiceRecordHistory,
)

# -- uploads, notifications, AI --------------------------------------------
from app.models.file import FileRecord  # noqa: F401
from app.models.notification import Notification  # noqa: F401
from app.models.ai import AIConversation, AIInsight  # noqa: F401

# -- audit -----------------------------------------------------------------
from app.models.audit import AuditLog  # noqa: F401
