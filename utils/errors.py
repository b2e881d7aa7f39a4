class AppError(Exception):
    """Base for errors that end a request with a JSON failure envelope."""

    status_code = 400
    default_message = "Bad Request"

    def __init__(self, message=None, errors=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.errors = errors


class ValidationError(AppError):
    status_code = 400
    default_message = "Validation failed"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(AppError):
    status_code = 403
    default_message = "Permission denied"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Conflict"


class InvalidState(AppError):
    status_code = 422
    default_message = "Invalid state"


class InternalError(AppError):
    status_code = 500
    default_message = "Internal server error"
