"""Exceptions raised by the API and turned into JSON error responses."""

FALLBACK_MESSAGE = "Er is een onverwachte fout opgetreden."


class ApiError(Exception):
    """Base error carrying an HTTP status and a user facing message."""

    status_code = 500

    def __init__(self, message=None, status_code=None, errors=None):
        super().__init__(message or FALLBACK_MESSAGE)
        self.message = message or FALLBACK_MESSAGE
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors or []

    def to_dict(self):
        payload = {'message': self.message}
        if self.errors:
            payload['errors'] = self.errors
        return payload


class ValidationError(ApiError):
    """Request payload or query string failed validation."""
    status_code = 400


class AuthenticationError(ApiError):
    """No valid session."""
    status_code = 401


class PermissionDenied(ApiError):
    """Logged in, but the role may not perform this action."""
    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    """Unique field already taken or capacity exhausted."""
    status_code = 409
