"""
Error taxonomy shared by services and the HTTP layer.

Services raise these; main.py maps them to a JSON body of the form
{"error": message} with the class's status code.
"""


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__doc__ or "Error"
        super().__init__(self.message)


class ValidationError(AppError):
    """Invalid request"""
    status_code = 400


class AuthError(AppError):
    """Unauthorized"""
    status_code = 401


class ForbiddenError(AppError):
    """Invalid or expired token"""
    status_code = 403


class NotFoundError(AppError):
    """Not found"""
    status_code = 404


class ConflictError(AppError):
    """Already exists"""
    status_code = 409


class InternalError(AppError):
    """Internal server error"""
    status_code = 500


class UpstreamError(AppError):
    """Plaid request failed"""
    status_code = 502
