"""
Error taxonomy shared by the store, the HTTP layer and the API client.

Each KanbanError carries the HTTP status it is answered with at the
request boundary.
"""


class KanbanError(Exception):
    """Base class for all board errors."""
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(KanbanError):
    """Raised when input is missing or malformed."""
    status_code = 400


class InvariantViolation(KanbanError):
    """Raised when an operation would break a store invariant."""
    status_code = 400


class DanglingReference(KanbanError):
    """Raised when a task points at a project outside the caller's scope."""
    status_code = 400


class Unauthenticated(KanbanError):
    """Raised when a credential is missing, unknown or expired."""
    status_code = 401


class NotFoundError(KanbanError):
    """Raised when a referenced id is absent from the caller's scope."""
    status_code = 404


class Conflict(KanbanError):
    """Raised when registering an identity that already exists."""
    status_code = 409


class NetworkError(KanbanError):
    """Raised by the API client when the server cannot be reached or parsed."""
    status_code = 0


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


_BY_STATUS = {
    400: ValidationError,
    401: Unauthenticated,
    404: NotFoundError,
    409: Conflict,
}


def error_for_status(status_code: int, message: str) -> KanbanError:
    """Rebuild the error class an HTTP status was produced from."""
    cls = _BY_STATUS.get(status_code)
    if cls is None:
        err = KanbanError(message)
        err.status_code = status_code
        return err
    return cls(message)
