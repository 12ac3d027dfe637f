"""
Translation of service errors into HTTP responses.
"""

from typing import Any, Dict

from fastapi import HTTPException, status

from learnsync.services.base import ServiceError, ServiceResult

STATUS_BY_ERROR_CODE: Dict[str, int] = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "AUTHORIZATION_ERROR": status.HTTP_403_FORBIDDEN,
    "INVARIANT_VIOLATION": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "DEPENDENCY_FAILURE": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(error: ServiceError) -> int:
    return STATUS_BY_ERROR_CODE.get(error.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def error_body(error: ServiceError) -> Dict[str, Any]:
    """JSON body shared by every error response."""
    return {
        "error_code": error.error_code,
        "message": error.message,
        "details": error.details,
    }


def unwrap_or_raise(result: ServiceResult) -> Any:
    """
    Return the data of a successful result.

    Raises:
        HTTPException: With the status mapped from the error code
    """
    if result.success:
        return result.data
    raise HTTPException(status_code=status_for(result.error), detail=error_body(result.error))
