"""
Domain errors

Every error carries the HTTP status the API facade answers with.
"""


class AppError(Exception):
    """Base app error."""
    status_code = 500

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class ValidationError(AppError):
    """Invalid input."""
    status_code = 400


class AuthorizationError(AppError):
    """Not authenticated."""
    status_code = 401

    def __init__(self, message: str = None, forbidden: bool = False):
        super().__init__(message)
        if forbidden:
            self.status_code = 403


class NotFoundError(AppError):
    """Referenced entity not found."""
    status_code = 404


class ConflictError(AppError):
    """Conflicting concurrent change."""
    status_code = 409


class ReportTimeoutError(AppError):
    """Report computation timed out."""
    status_code = 500


class InternalError(AppError):
    """An unexpected error occurred."""
    status_code = 500
