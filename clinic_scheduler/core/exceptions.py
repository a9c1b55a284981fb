"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    def extra(self) -> dict[str, Any]:
        """Additional fields rendered alongside the error message."""
        return {}


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


class ConflictException(AppException):
    """Conflict exception (double booking, schedule guards)."""

    def __init__(self, message: str = "Conflict", conflicting_ids: list[int] | None = None):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)
        self.conflicting_ids = conflicting_ids or []

    def extra(self) -> dict[str, Any]:
        if not self.conflicting_ids:
            return {}
        return {
            "conflicting_appointments": len(self.conflicting_ids),
            "appointment_ids": self.conflicting_ids,
        }


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class TransitionException(AppException):
    """Illegal appointment status change."""

    def __init__(self, current: str, requested: str, message: str | None = None):
        """Initialize with 422 status code and both statuses."""
        self.current = current
        self.requested = requested
        super().__init__(
            message or f"Appointment cannot transition from '{current}' to '{requested}'.",
            status_code=422,
        )

    def extra(self) -> dict[str, Any]:
        return {"current_status": self.current, "requested_status": self.requested}
