class ApiError(Exception):
    """Base error rendered with the response envelope."""

    status_code = 500
    default_message = 'Something went wrong!'

    def __init__(self, message=None, errors=None):
        self.message = message or self.default_message
        self.errors = errors or {}
        super().__init__(self.message)


class ValidationFailed(ApiError):
    status_code = 422
    default_message = 'Validation failed'


class Unauthenticated(ApiError):
    status_code = 401
    default_message = 'Unauthenticated'


class Forbidden(ApiError):
    status_code = 403
    default_message = 'Forbidden'


class NotFound(ApiError):
    status_code = 404
    default_message = 'Resource not found'


class Conflict(ApiError):
    status_code = 422
    default_message = 'Conflict'
