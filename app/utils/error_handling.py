"""
Error Handling Module for NotaryPro Certify

This module provides centralized error handling with:
- Custom exception hierarchy for the certification lifecycle
- Standardized error responses
- Error logging
- Chilean identity validation errors
- Database and signature-token error handling
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

logger = logging.getLogger("notarypro.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_RUT = "INVALID_RUT"
    INVALID_EVIDENCE = "INVALID_EVIDENCE"

    # Authentication/Authorization Errors (401/403)
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    INSUFFICIENT_AUTHORITY = "INSUFFICIENT_AUTHORITY"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"

    # Lifecycle Errors (409)
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INTEGRITY_FAILURE = "INTEGRITY_FAILURE"

    # External Service Errors (503)
    SIGNER_UNAVAILABLE = "SIGNER_UNAVAILABLE"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

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
    """Malformed input. Surfaced immediately, never retried."""

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


class InvalidInputException(ValidationException):
    """Required input for a pure computation is missing"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message=message, field=field, code=ErrorCode.INVALID_INPUT)


class InvalidRUTException(ValidationException):
    """Invalid Chilean RUT"""

    def __init__(self, rut: str, field: str = "client_rut", message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid Chilean RUT: {rut}",
            field=field,
            code=ErrorCode.INVALID_RUT,
            details={"provided_rut": rut, "expected_format": "12.345.678-5"},
        )


class InvalidEvidencePayloadException(ValidationException):
    """Evidence payload does not match the schema for its type"""

    def __init__(self, evidence_type: str, errors: Optional[list] = None, message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid {evidence_type} evidence payload",
            field="payload",
            code=ErrorCode.INVALID_EVIDENCE,
            details={"evidence_type": evidence_type, "errors": errors or []},
        )


# ============================================================================
# Authentication/Authorization Exceptions
# ============================================================================

class AuthenticationFailedException(AppException):
    """Token unlock or actor authority failed. Callers should prompt re-entry."""

    def __init__(
        self,
        message: str = "Authentication failed",
        code: ErrorCode = ErrorCode.AUTHENTICATION_FAILED,
        status_code: int = status.HTTP_401_UNAUTHORIZED,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            details=details,
        )


class InvalidCredentialException(AuthenticationFailedException):
    """PIN rejected before contacting the token"""

    def __init__(self, message: str = "Invalid PIN", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.INVALID_CREDENTIAL,
            details=details,
        )


class InsufficientAuthorityException(AuthenticationFailedException):
    """Actor lacks the role required for the transition"""

    def __init__(self, required_roles: list, actor_role: Optional[str] = None):
        details = {"required_roles": required_roles}
        if actor_role:
            details["current_role"] = actor_role
        super().__init__(
            message=f"Insufficient authority. Required one of: {', '.join(required_roles)}",
            code=ErrorCode.INSUFFICIENT_AUTHORITY,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
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


class DocumentNotFoundException(NotFoundException):
    """Document not found"""

    def __init__(self, document_ref: Union[str, UUID]):
        super().__init__(
            resource_type="Document",
            resource_id=document_ref,
            code=ErrorCode.DOCUMENT_NOT_FOUND,
        )


class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


class InvalidTransitionException(ConflictException):
    """Requested state change is not an edge of the lifecycle"""

    def __init__(self, document_number: str, current_status: str, event: str):
        super().__init__(
            message=f"Cannot {event.replace('_', ' ')} document {document_number} in status '{current_status}'",
            code=ErrorCode.INVALID_TRANSITION,
            details={
                "document_number": document_number,
                "current_status": current_status,
                "event": event,
            },
        )


class IntegrityFailureException(ConflictException):
    """Recomputed hash or signature does not match what was stored"""

    def __init__(self, document_number: str, reason: str):
        super().__init__(
            message=f"Integrity check failed for document {document_number}: {reason}",
            code=ErrorCode.INTEGRITY_FAILURE,
            details={"document_number": document_number, "reason": reason},
        )


# ============================================================================
# External Service Exceptions
# ============================================================================

class SignerUnavailableException(AppException):
    """Signature token could not be reached"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(
            code=ErrorCode.SIGNER_UNAVAILABLE,
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"service": "signature_token"},
            original_error=original_error,
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
        401: ErrorCode.AUTHENTICATION_FAILED,
        403: ErrorCode.INSUFFICIENT_AUTHORITY,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        503: ErrorCode.SIGNER_UNAVAILABLE,
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
        elif "foreign key" in error_str:
            error_message = "Referenced record does not exist"
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR
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


# ============================================================================
# Error Tracking Middleware
# ============================================================================

class ErrorTrackingMiddleware:
    """Middleware for tracking and logging all errors"""

    def __init__(self, app: FastAPI):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            logger.error(
                f"Request failed: {scope.get('path', 'unknown')}",
                extra={
                    "path": scope.get("path"),
                    "method": scope.get("method"),
                    "exception_type": type(exc).__name__,
                },
                exc_info=True,
            )
            raise


__all__ = [
    # Base
    "AppException",
    "ErrorCode",

    # Validation
    "ValidationException",
    "InvalidInputException",
    "InvalidRUTException",
    "InvalidEvidencePayloadException",

    # Auth
    "AuthenticationFailedException",
    "InvalidCredentialException",
    "InsufficientAuthorityException",

    # Resource
    "NotFoundException",
    "DocumentNotFoundException",
    "ConflictException",

    # Lifecycle
    "InvalidTransitionException",
    "IntegrityFailureException",

    # External Services
    "SignerUnavailableException",

    # Handlers
    "setup_exception_handlers",
    "create_error_response",
    "ErrorTrackingMiddleware",
]
