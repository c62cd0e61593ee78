"""
Authorization decorators for route-level access control.

Used together with Flask-Login's ``@login_required``, which answers
401 JSON through the login manager's unauthorized handler::

    @bp.route('/users')
    @login_required
    @role_required('ADMIN')
    def list_users():
        ...
"""

import logging
from functools import wraps

from flask import request
from flask_login import current_user

from app.errors import AuthenticationError, PermissionDenied

logger = logging.getLogger(__name__)


def role_required(*role_names: str):
    """
    Allow the wrapped route only for users holding one of ``role_names``.

    SUPER_ADMIN passes every check.  Failures raise ``PermissionDenied``
    and are answered 403 by the application error handler.
    """
    allowed = ", ".join(role_names)

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                raise AuthenticationError("Authentication required")
            if not current_user.has_role(*role_names):
                logger.warning(
                    "Role check failed on %s %s: user %d is %s, needs %s",
                    request.method,
                    request.path,
                    current_user.id,
                    current_user.role,
                    allowed,
                )
                raise PermissionDenied("Insufficient permissions")
            return func(*args, **kwargs)

        return wrapper

    return decorator
