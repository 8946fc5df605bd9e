"""
Domain errors raised by the expense core.

Each error carries a human-readable message that is surfaced to the client
verbatim. The HTTP layer maps the error class to a status code:

    ValidationError     -> 400
    AuthorizationError  -> 403
    NotFoundError       -> 404
"""


class DomainError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Malformed or numerically inconsistent input"""
    status_code = 400


class AuthorizationError(DomainError):
    """Caller lacks the relationship a guard requires"""
    status_code = 403


class NotFoundError(DomainError):
    """Referenced expense, split or group does not exist"""
    status_code = 404
