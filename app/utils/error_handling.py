"""
Error Handling Module for AuditPulse

This module provides centralized error handling with:
- Custom exception hierarchy for the audit engine
- Standardized error responses
- Error logging
- Storage and reasoning-gateway failure mapping
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("auditpulse.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_FISCAL_YEAR = "INVALID_FISCAL_YEAR"

    # Authentication/Authorization Errors (401/403)
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    TOKEN_INVALID = "TOKEN_INVALID"
    NO_ORGANIZATION = "NO_ORGANIZATION"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    AUDIT_RUN_NOT_FOUND = "AUDIT_RUN_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    INVALID_RUN_TRANSITION = "INVALID_RUN_TRANSITION"
    AUDIT_RUN_NOT_COMPLETED = "AUDIT_RUN_NOT_COMPLETED"

    # Rate Limiting (429)
    RATE_LIMITED = "RATE_LIMITED"

    # External Service Errors (402/502/503)
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    DELEGATE_UNAVAILABLE = "DELEGATE_UNAVAILABLE"
    DELEGATE_BUDGET_EXHAUSTED = "DELEGATE_BUDGET_EXHAUSTED"
    DELEGATE_PROTOCOL_ERROR = "DELEGATE_PROTOCOL_ERROR"

    # Database Errors (500/503)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_ACCESS_ERROR = "DATA_ACCESS_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Base validation exception"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )


class InvalidFiscalYearException(ValidationException):
    """Fiscal-year label is not of the form YYYY-YY or YYYY-YYYY"""

    def __init__(self, label: str, message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid financial year: {label!r}. Expected e.g. '2025-26'.",
            field="financial_year",
            code=ErrorCode.INVALID_FISCAL_YEAR,
            details={"provided": label, "expected_format": "YYYY-YY (April to March)"},
        )


# ============================================================================
# Authentication/Authorization Exceptions
# ============================================================================

class AuthenticationException(AppException):
    """Base authentication exception"""

    def __init__(
        self,
        message: str = "Authentication required",
        code: ErrorCode = ErrorCode.UNAUTHORIZED,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
        )


class TokenInvalidException(AuthenticationException):
    """Token is invalid or expired"""

    def __init__(self, message: str = "Invalid access token"):
        super().__init__(
            message=message,
            code=ErrorCode.TOKEN_INVALID,
        )


class NoOrganizationException(AuthenticationException):
    """Caller has no organization to audit"""

    def __init__(self, user_id: Union[str, UUID]):
        super().__init__(
            message="No organization is linked to this user",
            code=ErrorCode.NO_ORGANIZATION,
            details={"user_id": str(user_id)},
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class AuditRunNotFoundException(NotFoundException):
    """Audit run does not exist for the caller's organization"""

    def __init__(self, run_id: Union[str, UUID]):
        super().__init__(
            resource_type="Audit run",
            resource_id=run_id,
            code=ErrorCode.AUDIT_RUN_NOT_FOUND,
        )


class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if resource_type:
            _details["resource_type"] = resource_type
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
        )


class InvalidRunTransitionException(ConflictException):
    """Attempted write to, or transition out of, a terminal audit run"""

    def __init__(self, run_id: Union[str, UUID], current: str, requested: str):
        super().__init__(
            message=f"Audit run {run_id} cannot move from '{current}' to '{requested}'",
            resource_type="Audit run",
            code=ErrorCode.INVALID_RUN_TRANSITION,
            details={"run_id": str(run_id), "current_status": current, "requested": requested},
        )


class AuditRunNotCompletedException(ConflictException):
    """Auditor pack requested for a run that has not completed"""

    def __init__(self, run_id: Union[str, UUID], current: str):
        super().__init__(
            message=f"Audit run {run_id} is '{current}'; only completed runs can be exported",
            resource_type="Audit run",
            code=ErrorCode.AUDIT_RUN_NOT_COMPLETED,
            details={"run_id": str(run_id), "current_status": current},
        )


# ============================================================================
# External Service Exceptions
# ============================================================================

class ExternalServiceException(AppException):
    """External service error exception"""

    def __init__(
        self,
        service_name: str,
        message: str,
        code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        original_error: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
    ):
        _details = details or {}
        _details["service"] = service_name
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            details=_details,
            original_error=original_error,
        )


class DelegateUnavailableException(ExternalServiceException):
    """Reasoning gateway rate-limited the request or could not be reached"""

    def __init__(self, message: str = "Rate limit exceeded. Please try again later.",
                 original_error: Optional[Exception] = None,
                 gateway_status: Optional[int] = None):
        details: Dict[str, Any] = {"action": "Retry the audit after a short wait"}
        # Absent when the gateway was never reached
        if gateway_status is not None:
            details["status_code"] = gateway_status
        super().__init__(
            service_name="Audit intelligence gateway",
            message=message,
            code=ErrorCode.DELEGATE_UNAVAILABLE,
            original_error=original_error,
            details=details,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


class DelegateBudgetExhaustedException(ExternalServiceException):
    """Reasoning gateway usage credits are exhausted"""

    def __init__(self, message: str = "AI credits exhausted. Please top up."):
        super().__init__(
            service_name="Audit intelligence gateway",
            message=message,
            code=ErrorCode.DELEGATE_BUDGET_EXHAUSTED,
            details={"action": "Top up gateway credits", "status_code": 402},
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
        )


class DelegateProtocolException(ExternalServiceException):
    """Reasoning gateway answered but not in the agreed structured format"""

    def __init__(self, message: str, original_error: Optional[Exception] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(
            service_name="Audit intelligence gateway",
            message=message,
            code=ErrorCode.DELEGATE_PROTOCOL_ERROR,
            original_error=original_error,
            details=details,
        )


# ============================================================================
# Database Exceptions
# ============================================================================

class DatabaseException(AppException):
    """Database error exception"""

    def __init__(
        self,
        message: str = "A database error occurred",
        code: ErrorCode = ErrorCode.DATABASE_ERROR,
        original_error: Optional[Exception] = None,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            original_error=original_error,
            details=details,
        )


class DataAccessException(DatabaseException):
    """Accounting data could not be read for the snapshot"""

    def __init__(self, message: str = "Accounting data is unavailable",
                 original_error: Optional[Exception] = None,
                 failed_sources: Optional[list] = None):
        super().__init__(
            message=message,
            code=ErrorCode.DATA_ACCESS_ERROR,
            original_error=original_error,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"failed_sources": failed_sources} if failed_sources else None,
        )


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    content = {
        "detail": {
            "code": code.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    }
    if field:
        content["detail"]["field"] = field
    if details:
        content["detail"]["details"] = details

    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        401: ErrorCode.UNAUTHORIZED,
        403: ErrorCode.FORBIDDEN,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        429: ErrorCode.RATE_LIMITED,
        500: ErrorCode.INTERNAL_ERROR,
        502: ErrorCode.EXTERNAL_SERVICE_ERROR,
        503: ErrorCode.EXTERNAL_SERVICE_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.DUPLICATE_ENTRY
            status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, DataError):
        error_message = "Invalid data format for database"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    # Internal error details are not exposed to the caller
    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = [
    # Base
    "AppException",
    "ErrorCode",

    # Validation
    "ValidationException",
    "InvalidFiscalYearException",

    # Auth
    "AuthenticationException",
    "TokenInvalidException",
    "NoOrganizationException",

    # Resource
    "NotFoundException",
    "AuditRunNotFoundException",
    "ConflictException",
    "InvalidRunTransitionException",
    "AuditRunNotCompletedException",

    # External Services
    "ExternalServiceException",
    "DelegateUnavailableException",
    "DelegateBudgetExhaustedException",
    "DelegateProtocolException",

    # Database
    "DatabaseException",
    "DataAccessException",

    # Handlers
    "setup_exception_handlers",
    "create_error_response",
]
