"""
Domain exceptions for the incident lifecycle engine.

Every error carries an HTTP status code and a details dict so the
exception handler in ``main.py`` can render it without knowing the type.
"""

from typing import Any

from fastapi import status

# Starlette renamed HTTP_422_UNPROCESSABLE_ENTITY to HTTP_422_UNPROCESSABLE_CONTENT.
HTTP_422_UNPROCESSABLE = 422


class CivicWatchError(Exception):
    """Base class for all lifecycle errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(CivicWatchError):
    """Malformed or missing required fields."""

    def __init__(self, message: str = "Validation error", details: dict[str, Any] | None = None):
        super().__init__(message, HTTP_422_UNPROCESSABLE, details)


class GeofenceRejectedError(CivicWatchError):
    """Point outside the service area."""

    def __init__(self, reason: str, longitude: float, latitude: float):
        super().__init__(
            reason,
            HTTP_422_UNPROCESSABLE,
            {"longitude": longitude, "latitude": latitude},
        )
        self.reason = reason


class InvalidStatusError(CivicWatchError):
    def __init__(self, value: Any):
        super().__init__(
            "Invalid status value",
            status.HTTP_400_BAD_REQUEST,
            {"status": str(value)},
        )


class MissingActorError(CivicWatchError):
    def __init__(self, action: str = "status transition"):
        super().__init__(
            f"An acting identity is required for {action}",
            status.HTTP_400_BAD_REQUEST,
            {"action": action},
        )


class NotAuthenticatedError(CivicWatchError):
    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class UnauthorizedError(CivicWatchError):
    """Authenticated identity is neither the owner nor an administrator."""

    def __init__(self, message: str = "Not allowed to modify this resource"):
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NotFoundError(CivicWatchError):
    def __init__(self, resource: str = "Resource", identifier: Any = None):
        details = {"resource": resource}
        if identifier is not None:
            details["identifier"] = str(identifier)
        super().__init__(f"{resource} not found", status.HTTP_404_NOT_FOUND, details)


class ConcurrentUpdateError(CivicWatchError):
    def __init__(self, resource: str = "Incident", identifier: Any = None):
        super().__init__(
            f"{resource} was modified concurrently, reload and try again",
            status.HTTP_409_CONFLICT,
            {"identifier": str(identifier)} if identifier is not None else None,
        )


class BoundaryUnavailableError(CivicWatchError):
    """Service-area geometry could not be loaded; location checks fail closed."""

    def __init__(self, source: str, reason: str):
        super().__init__(
            "Service area boundary is unavailable",
            status.HTTP_503_SERVICE_UNAVAILABLE,
            {"source": source, "reason": reason},
        )
