"""Application error taxonomy and JSON response helpers."""

from typing import Any, Dict

from fastapi import status


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        message: str,
        code: str,
        http_status: int = status.HTTP_400_BAD_REQUEST,
        error: str | None = None,
    ):
        """Initialize error.

        Args:
            message: Human-readable message returned to the client
            code: Machine-readable error code
            http_status: HTTP status code for the response
            error: Optional underlying error detail
        """
        self.message = message
        self.code = code
        self.http_status = http_status
        self.error = error
        super().__init__(message)


class ValidationError(AppError):
    """Missing or invalid input fields."""

    def __init__(self, message: str = "Invalid input", error: str | None = None):
        super().__init__(message, "validation_error", status.HTTP_400_BAD_REQUEST, error)


class NotFoundError(AppError):
    """Referenced record does not exist."""

    def __init__(self, message: str = "Not found", error: str | None = None):
        super().__init__(message, "not_found", status.HTTP_404_NOT_FOUND, error)


class InvalidStateError(AppError):
    """Operation not permitted in the record's current state."""

    def __init__(self, message: str = "Invalid state", error: str | None = None):
        super().__init__(message, "invalid_state", status.HTTP_400_BAD_REQUEST, error)


class DependencyError(AppError):
    """External collaborator (e.g. attachment storage) failed."""

    def __init__(self, message: str = "Dependency failure", error: str | None = None):
        super().__init__(message, "dependency_error", status.HTTP_502_BAD_GATEWAY, error)


class InternalError(AppError):
    """Unexpected failure; any atomic write has been rolled back."""

    def __init__(self, message: str = "Internal server error", error: str | None = None):
        super().__init__(message, "internal_error", status.HTTP_500_INTERNAL_SERVER_ERROR, error)


class UnauthorizedError(AppError):
    """Acting user could not be resolved."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, "unauthorized", status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppError):
    """Acting user lacks the role required for the operation."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, "forbidden", status.HTTP_403_FORBIDDEN)


def error_response(error: AppError) -> Dict[str, Any]:
    """Create a standardized error response body."""
    body: Dict[str, Any] = {
        "success": False,
        "message": error.message,
        "code": error.code,
    }
    if error.error:
        body["error"] = error.error
    return body


__all__ = [
    "AppError",
    "ValidationError",
    "NotFoundError",
    "InvalidStateError",
    "DependencyError",
    "InternalError",
    "UnauthorizedError",
    "ForbiddenError",
    "error_response",
]
