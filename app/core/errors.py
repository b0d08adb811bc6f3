"""
Typed errors raised by the service layer.

Services never raise HTTPException; the application maps these to HTTP
responses in one place (see app.main).
"""
from fastapi import status


class GovernanceError(Exception):
    """Base class for all service-layer failures."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GovernanceError):
    """Malformed input or a reference that does not fit the target."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


class NotFound(GovernanceError):
    """Referenced entity is absent or soft-deleted."""
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class Conflict(GovernanceError):
    """Uniqueness or lifecycle rule would be violated."""
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class Unauthenticated(GovernanceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"


class Unauthorized(GovernanceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "unauthorized"


class HierarchyCycleError(GovernanceError):
    """The stored parent links no longer form a forest."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "hierarchy_cycle"
