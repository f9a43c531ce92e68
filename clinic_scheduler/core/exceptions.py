"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        extra: dict[str, Any] | None = None,
    ):
        """Initialize exception with message, status code and extra response fields."""
        self.message = message
        self.status_code = status_code
        self.extra = extra or {}
        super().__init__(self.message)


class ValidationException(AppException):
    """Missing or malformed input."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class PolicyViolationException(AppException):
    """Request is well formed but breaks a business rule."""

    def __init__(
        self,
        message: str = "Policy violation",
        extra: dict[str, Any] | None = None,
        status_code: int = 400,
    ):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=status_code, extra=extra)


class RelationshipException(PolicyViolationException):
    """Patient has no assigned relationship with the doctor."""

    def __init__(self, message: str = "Patients may only book with their assigned doctor"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ConflictException(AppException):
    """Resource unavailable for the requested interval."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class IllegalTransitionException(AppException):
    """Appointment status change not allowed from its current state."""

    def __init__(self, message: str = "Illegal status transition"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class UpstreamException(AppException):
    """A collaborator (directory, ledger) failed or timed out."""

    def __init__(self, message: str = "Upstream service unavailable"):
        """Initialize with 502 status code."""
        super().__init__(message, status_code=502)
