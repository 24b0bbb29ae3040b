"""
skillpath/errors.py
Centralized error handling

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

PROPAGATION:
- validation and ownership errors are raised immediately and abort the transaction
- storage failures roll back and surface as InternalError with the cause attached
- AiGenerationError never reaches callers of the recommendation engine;
  it is handled per skill gap
"""

import logging
import uuid
from typing import Optional, Dict, Any
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    INVALID_INPUT = "INVALID_INPUT"

    FORBIDDEN = "FORBIDDEN"
    OWNERSHIP_VIOLATION = "OWNERSHIP_VIOLATION"

    NOT_FOUND = "NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    SKILL_NOT_FOUND = "SKILL_NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    QUESTION_NOT_FOUND = "QUESTION_NOT_FOUND"
    RECOMMENDATION_NOT_FOUND = "RECOMMENDATION_NOT_FOUND"

    INSUFFICIENT_QUESTIONS = "INSUFFICIENT_QUESTIONS"
    GRADE_LEVEL_REQUIRED = "GRADE_LEVEL_REQUIRED"
    QUESTION_NOT_IN_SESSION = "QUESTION_NOT_IN_SESSION"
    ALREADY_ANSWERED = "ALREADY_ANSWERED"
    SESSION_NOT_IN_PROGRESS = "SESSION_NOT_IN_PROGRESS"
    SESSION_NOT_COMPLETED = "SESSION_NOT_COMPLETED"

    CONFLICT = "CONFLICT"

    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"


class ErrorResponse(BaseModel):
    """Standard error response model"""
    success: bool = False
    error: str
    message: str
    code: str
    details: Optional[Dict[str, Any]] = None


class APIError(Exception):
    """Base API exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result


class BadRequestError(APIError):
    """400 Bad Request - Invalid or insufficient input"""
    def __init__(self, message: str, code: str = ErrorCode.INVALID_INPUT, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Bad Request",
            message=message,
            code=code,
            details=details
        )


class ForbiddenError(APIError):
    """403 Forbidden - Access denied"""
    def __init__(self, message: str, code: str = ErrorCode.FORBIDDEN, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error="Forbidden",
            message=message,
            code=code,
            details=details
        )


class NotFoundError(APIError):
    """404 Not Found - Resource does not exist"""
    def __init__(self, resource: str, identifier: Any = None, code: str = ErrorCode.NOT_FOUND):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error="Not Found",
            message=message,
            code=code
        )


class ConflictError(APIError):
    """409 Conflict - Concurrent modification of the same record"""
    def __init__(self, message: str, code: str = ErrorCode.CONFLICT, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error="Conflict",
            message=message,
            code=code,
            details=details
        )


class InternalError(APIError):
    """500 Internal Server Error - Use sparingly, only for true internal failures"""
    def __init__(
        self,
        message: str = "An internal error occurred",
        log_id: Optional[str] = None,
        code: str = ErrorCode.INTERNAL_ERROR
    ):
        self.log_id = log_id or str(uuid.uuid4())[:8]
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error="Internal Error",
            message=message,
            code=code,
            details={"log_id": self.log_id}
        )


class AiGenerationError(Exception):
    """
    Failure reported by the AI generation boundary.

    Fatal codes will not resolve by retrying. A code is also treated as
    fatal when the provider only reports it inside the message text.
    """

    INVALID_API_KEY = "INVALID_API_KEY"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    INVALID_REQUEST = "INVALID_REQUEST"
    CONTENT_POLICY_VIOLATION = "CONTENT_POLICY_VIOLATION"
    NULL_RESPONSE = "NULL_RESPONSE"
    TIMEOUT = "TIMEOUT"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    FATAL_CODES = frozenset({
        INVALID_API_KEY,
        QUOTA_EXCEEDED,
        INVALID_REQUEST,
        CONTENT_POLICY_VIOLATION,
    })

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")

    @property
    def is_fatal(self) -> bool:
        if self.code in self.FATAL_CODES:
            return True
        return any(fatal in (self.message or "") for fatal in self.FATAL_CODES)


def internal_error_from(error: Exception, context: str) -> InternalError:
    """Log a storage failure and wrap it in a safe InternalError."""
    internal = InternalError(f"Failed to {context}. Please try again later.")
    logger.error(
        f"[{internal.log_id}] Internal error in {context}: {type(error).__name__}: {str(error)}"
    )
    return internal


def register_exception_handlers(app: FastAPI) -> None:
    """Render APIError and unexpected exceptions with the standard body."""

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        logger.warning(f"API error on {request.url.path}: {exc.code} - {exc.message}")
        return exc.to_response()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        log_id = str(uuid.uuid4())[:8]
        logger.error(f"[{log_id}] Unhandled exception on {request.url.path}: {type(exc).__name__}: {str(exc)}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "Internal Error",
                "message": "An unexpected error occurred. Please try again later.",
                "code": ErrorCode.INTERNAL_ERROR,
                "details": {"log_id": log_id}
            }
        )
