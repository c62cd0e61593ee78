"""
API exception hierarchy.

Services raise these to signal a client-facing failure; the handlers
registered in ``create_app`` turn them into the JSON error envelope::

    {"status": "fail", "message": "Organization not found"}

4xx errors use ``"fail"`` and 5xx errors use ``"error"``.
"""


class ApiError(Exception):
    """Base class for errors that map directly to an HTTP response."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None, details=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict:
        payload = {
            "status": "fail" if self.status_code < 500 else "error",
            "message": self.message,
        }
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(ApiError):
    """Missing or malformed input (400)."""

    status_code = 400


class AuthenticationError(ApiError):
    """Missing, invalid or expired credentials (401)."""

    status_code = 401


class PermissionDenied(ApiError):
    """Authenticated but not allowed (403)."""

    status_code = 403


class NotFoundError(ApiError):
    """Referenced record does not exist or is not visible (404)."""

    status_code = 404


class ServiceUnavailable(ApiError):
    """An upstream dependency (e.g. the Gemini API) is unavailable (503)."""

    status_code = 503
