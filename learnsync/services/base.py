"""
Base Service Classes and Utilities

This module provides the foundation for all service layer implementations including
base classes, error handling, result types, and common service patterns.
"""

import logging
from typing import Any, Dict, List, Optional, Generic, TypeVar, Callable
from datetime import datetime, timezone
from abc import ABC
from dataclasses import dataclass
from functools import wraps

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, error_code: str = None, details: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "SERVICE_ERROR"
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)


class ValidationError(ServiceError):
    """Validation error in service layer (invalid argument)."""

    def __init__(self, message: str, field: str = None, value: Any = None):
        super().__init__(message, "VALIDATION_ERROR", {"field": field, "value": value})
        self.field = field
        self.value = value


class NotFoundError(ServiceError):
    """Resource not found error."""

    def __init__(self, resource_type: str, identifier: Any):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(message, "NOT_FOUND", {"resource_type": resource_type, "identifier": identifier})


class AuthorizationError(ServiceError):
    """Authorization error."""

    def __init__(self, message: str, required_permission: str = None):
        super().__init__(message, "AUTHORIZATION_ERROR", {"required_permission": required_permission})


class InvariantViolationError(ServiceError):
    """
    Stored data breaks an invariant the service relies on.

    Raised when a traversal meets a cycle or exceeds the depth bound. This
    always points at corrupt data or a bug upstream and is never recovered.
    """

    def __init__(self, message: str, group_ids: List[Any] = None):
        super().__init__(message, "INVARIANT_VIOLATION", {"group_ids": list(group_ids or [])})
        self.group_ids = list(group_ids or [])


class DependencyFailure(ServiceError):
    """A collaborator (database, Redis, broker) failed or timed out."""

    def __init__(self, message: str, dependency: str = None, cause: Exception = None):
        super().__init__(message, "DEPENDENCY_FAILURE", {"dependency": dependency})
        self.dependency = dependency
        self.cause = cause


@dataclass
class ServiceResult(Generic[T]):
    """Standard result type for service operations."""
    success: bool
    data: Optional[T] = None
    error: Optional[ServiceError] = None
    warnings: List[str] = None
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.warnings is None:
            self.warnings = []
        if self.metadata is None:
            self.metadata = {}

    @classmethod
    def success_result(cls, data: T, metadata: Dict[str, Any] = None) -> 'ServiceResult[T]':
        """Create a successful result."""
        return cls(success=True, data=data, metadata=metadata or {})

    @classmethod
    def error_result(cls, error: ServiceError, metadata: Dict[str, Any] = None) -> 'ServiceResult[T]':
        """Create an error result."""
        return cls(success=False, error=error, metadata=metadata or {})

    @classmethod
    def from_exception(cls, exc: Exception, metadata: Dict[str, Any] = None) -> 'ServiceResult[T]':
        """Create error result from exception."""
        if isinstance(exc, ServiceError):
            error = exc
        else:
            error = ServiceError(str(exc), "INTERNAL_ERROR")
        return cls.error_result(error, metadata)

    def unwrap(self) -> T:
        """Return the data or raise the carried error."""
        if not self.success:
            raise self.error
        return self.data


def _log_failure(method_name: str, error: ServiceError) -> None:
    if isinstance(error, InvariantViolationError):
        logger.error(f"[{method_name}] Invariant violated: {error.message} (groups: {error.group_ids})")
    else:
        logger.error(f"[{method_name}] Service error: {error.message}")


def service_method(func: Callable) -> Callable:
    """Decorator for service methods with automatic error handling and logging."""

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        method_name = f"{self.__class__.__name__}.{func.__name__}"
        logger.info(f"[{method_name}] Starting operation")

        try:
            if hasattr(self, '_validate_service_state'):
                self._validate_service_state()

            result = func(self, *args, **kwargs)

            if isinstance(result, ServiceResult):
                if result.success:
                    logger.info(f"[{method_name}] Operation completed successfully")
                else:
                    logger.error(f"[{method_name}] Operation failed: {result.error.message}")
            else:
                logger.info(f"[{method_name}] Operation completed")

            return result

        except ServiceError as e:
            _log_failure(method_name, e)
            return ServiceResult.error_result(e)
        except Exception as e:
            logger.exception(f"[{method_name}] Unexpected error: {e}")
            error = ServiceError(f"Internal error in {method_name}: {str(e)}", "INTERNAL_ERROR")
            return ServiceResult.error_result(error)

    return wrapper


class BaseService(ABC):
    """Abstract base class for all services."""

    def __init__(self, name: str = None):
        self.name = name or self.__class__.__name__
        self.logger = logging.getLogger(f"services.{self.name}")
        self._initialized = False
        self._configuration = {}

    def initialize(self, config: Dict[str, Any] = None) -> None:
        """Initialize the service with configuration."""
        self._configuration = config or {}
        self._initialized = True
        self.logger.debug(f"Service {self.name} initialized")

    def _validate_service_state(self) -> None:
        """Validate that the service is properly initialized."""
        if not self._initialized:
            raise ServiceError(f"Service {self.name} not initialized", "SERVICE_NOT_INITIALIZED")

    def get_config(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._configuration.get(key, default)
