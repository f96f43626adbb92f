from typing import Dict, Any, List, Optional
from fastapi import status
from pydantic import BaseModel
import logging

logger = logging.getLogger(__name__)


class BaseCustomException(Exception):
    """Base class for custom exceptions"""

    retryable = False

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(BaseCustomException):
    """Exception for validation errors.

    ``violations`` maps a field path (``"medications[0].dosage"``) to the list
    of problems found for it, so callers see every violated field at once.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        violations: Optional[Dict[str, List[str]]] = None,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.violations = violations or {}
        details = dict(details or {})
        if self.violations:
            details["violations"] = self.violations
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            error_code=error_code or "VALIDATION_ERROR"
        )


class InvalidTransitionError(BaseCustomException):
    """Exception for state machine edges not permitted from the current state"""

    def __init__(
        self,
        message: str = "Invalid state transition",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
            error_code=error_code or "INVALID_TRANSITION"
        )


class PreconditionFailedError(BaseCustomException):
    """Exception for operations whose preconditions are not met"""

    def __init__(
        self,
        message: str = "Precondition failed",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_412_PRECONDITION_FAILED,
            details=details,
            error_code=error_code or "PRECONDITION_FAILED"
        )


class AuthenticationError(BaseCustomException):
    """Exception for authentication errors"""

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
            error_code=error_code or "AUTHENTICATION_ERROR"
        )


class AuthorizationError(BaseCustomException):
    """Exception for authorization errors"""

    def __init__(
        self,
        message: str = "Access denied",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
            error_code=error_code or "AUTHORIZATION_ERROR"
        )


class NotFoundError(BaseCustomException):
    """Exception for resource not found errors"""

    def __init__(
        self,
        message: str = "Resource not found",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
            error_code=error_code or "NOT_FOUND_ERROR"
        )


class ConflictError(BaseCustomException):
    """Exception for conflict errors"""

    def __init__(
        self,
        message: str = "Resource conflict",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
            error_code=error_code or "CONFLICT_ERROR"
        )


class ProviderUnavailableError(BaseCustomException):
    """Exception for payment provider failures. The only retryable class."""

    retryable = True

    def __init__(
        self,
        message: str = "Payment provider unavailable",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
            error_code=error_code or "PROVIDER_UNAVAILABLE"
        )


# Response models for errors
class ErrorResponse(BaseModel):
    """Standard error response model"""
    error: str
    message: str
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    retryable: bool = False
    timestamp: Optional[str] = None
    request_id: Optional[str] = None


def create_error_response(
    exception: BaseCustomException,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """Create standardized error response"""
    from datetime import datetime

    response = {
        "error": exception.__class__.__name__.replace("Error", " Error").strip(),
        "message": exception.message,
        "error_code": exception.error_code,
        "retryable": exception.retryable,
        "timestamp": datetime.utcnow().isoformat(),
        "request_id": request_id
    }

    if exception.details:
        response["details"] = exception.details

    return response


def handle_provider_error(
    error: Exception,
    service_name: str,
    operation: str = "request"
) -> ProviderUnavailableError:
    """Convert a transport or gateway failure into ProviderUnavailableError"""
    logger.error(f"Payment provider error for {service_name}: {error}")

    return ProviderUnavailableError(
        message=f"Payment provider {service_name} unavailable",
        details={
            "service_name": service_name,
            "operation": operation,
            "original_error": str(error)
        }
    )


def handle_integrity_error(error: Exception, operation: str) -> ConflictError:
    """Convert a unique/partial-index violation into ConflictError"""
    logger.warning(f"Integrity violation during {operation}: {error}")

    return ConflictError(
        message="Conflicting record already exists",
        details={"operation": operation, "original_error": str(error)},
        error_code="INTEGRITY_CONFLICT"
    )
