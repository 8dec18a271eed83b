"""
Error taxonomy for cross-tenant identity and workflow operations

Every kind keeps its own class and stable code so callers can tell them
apart (retry logic for duplicate submissions depends on it).
"""

from typing import Any, Dict, List, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger(__name__)


class UniAdminError(Exception):
    """Base exception for the administration platform"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class MalformedIdentity(UniAdminError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Malformed composite identity"


class UnknownTenant(UniAdminError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Unknown department"

    def __init__(self, tenant: Optional[str] = None, message: Optional[str] = None):
        self.tenant = tenant
        super().__init__(message or f"Unknown department: {tenant}")


class UnknownView(UniAdminError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Unknown aggregate view"


class StudentNotFound(UniAdminError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Student not found"


class ModuleNotFound(UniAdminError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Module not found or not active"


class RequestNotFound(UniAdminError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Enrollment request not found"


class NotEnrollable(UniAdminError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Module is not enrollable for this student"


class DuplicatePendingRequest(UniAdminError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "A pending request for this module already exists"


class AlreadyDecided(UniAdminError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Enrollment request has already been decided"


class Forbidden(UniAdminError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Operation crosses a department boundary"


class PartitionTimeout(UniAdminError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Department partition did not respond in time"


class PartitionUnavailable(UniAdminError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Department partition is unavailable"


class PartialAggregateFailure(UniAdminError):
    """Some partitions failed to answer; carries the rows that did arrive"""

    status_code = status.HTTP_200_OK
    default_message = "Aggregate is missing some departments"

    def __init__(self, rows: List[Dict[str, Any]], failed_tenants: List[str]):
        self.rows = rows
        self.failed_tenants = failed_tenants
        super().__init__(
            f"Aggregate is missing departments: {', '.join(failed_tenants)}"
        )


async def uniadmin_exception_handler(request: Request, exc: UniAdminError):
    """Render domain errors with their own status and code"""
    logger.warning(f"{exc.code}: {exc.message} - Path: {request.url.path}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
