"""
Centralized error handling for the indexer query API.
Provides consistent error responses, logging, and HTTP status codes across all routers.
"""

import traceback
from typing import Dict, Any, Optional
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from datetime import datetime

from src.core.logger.logger import get_logger
from src.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


class ServiceErrorCode:
    """Standard error codes for services"""

    # Validation
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_FORMAT = "INVALID_FORMAT"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    UNKNOWN_FIELD = "UNKNOWN_FIELD"

    # Lookup
    NOT_FOUND = "NOT_FOUND"

    # Indexer
    UNRECOGNIZED_EVENT = "UNRECOGNIZED_EVENT"
    MISSING_REFERENCED_ENTITY = "MISSING_REFERENCED_ENTITY"
    RPC_ERROR = "RPC_ERROR"

    # Rate Limiting
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Query layer
    QUERY_ERROR = "QUERY_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"

    # System
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"


class ServiceError(Exception):
    """
    Standardized service error for internal use.
    Gets converted to proper HTTP response by error handler.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.context = context or {}
        super().__init__(message)


class ErrorResponseBuilder:
    """Builds standardized error responses"""

    @staticmethod
    def build_error_response(
        error_code: str,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Build standardized error response"""

        response = {
            "success": False,
            "error": {
                "code": error_code,
                "message": message,
                "timestamp": datetime.utcnow().isoformat() + "Z"
            }
        }

        if details:
            response["error"]["details"] = details

        if request_id:
            response["error"]["request_id"] = request_id

        return response

    @staticmethod
    def build_validation_error_response(
        validation_errors: list,
        request_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Build validation error response"""

        return ErrorResponseBuilder.build_error_response(
            error_code=ServiceErrorCode.INVALID_INPUT,
            message="Validation failed",
            status_code=422,
            details={
                "validation_errors": validation_errors
            },
            request_id=request_id
        )


class GlobalErrorHandler:
    """Global error handler for all application errors"""

    @staticmethod
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        """Handle ServiceError exceptions"""

        request_id = request.headers.get("X-Request-ID", "unknown")

        logger.error(
            f"Service error: {exc.code}",
            extra={
                "error_code": exc.code,
                "error_message": exc.message,
                "status_code": exc.status_code,
                "details": exc.details,
                "context": exc.context,
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method
            }
        )

        response = ErrorResponseBuilder.build_error_response(
            error_code=exc.code,
            message=exc.message,
            status_code=exc.status_code,
            details=exc.details,
            request_id=request_id
        )

        headers = {}
        retry_after = exc.details.get("retry_after") if exc.details else None
        if exc.status_code == 429 and retry_after is not None:
            headers["Retry-After"] = str(int(retry_after))

        return JSONResponse(
            status_code=exc.status_code,
            content=response,
            headers=headers
        )

    @staticmethod
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle Pydantic validation errors"""

        request_id = request.headers.get("X-Request-ID", "unknown")

        validation_errors = []
        for error in exc.errors():
            field = '.'.join(str(loc) for loc in error['loc'])
            validation_errors.append({
                'field': field,
                'message': error['msg'],
                'input': error.get('input')
            })

        logger.warning(
            f"Validation error: {len(validation_errors)} errors",
            extra={
                "validation_errors": validation_errors,
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method
            }
        )

        response = ErrorResponseBuilder.build_validation_error_response(
            validation_errors=validation_errors,
            request_id=request_id
        )

        return JSONResponse(
            status_code=422,
            content=jsonable_errors(response)
        )

    @staticmethod
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions"""

        request_id = request.headers.get("X-Request-ID", "unknown")

        # Log full traceback for debugging
        logger.error(
            f"Unexpected error: {type(exc).__name__}",
            extra={
                "error_type": type(exc).__name__,
                "error_message": str(exc),
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "traceback": traceback.format_exc()
            }
        )

        # Never expose internal errors in production
        if settings.DEBUG:
            message = f"Internal error: {str(exc)}"
            details = {"traceback": traceback.format_exc()}
        else:
            message = "An unexpected error occurred. Please try again."
            details = {}

        response = ErrorResponseBuilder.build_error_response(
            error_code=ServiceErrorCode.INTERNAL_ERROR,
            message=message,
            status_code=500,
            details=details,
            request_id=request_id
        )

        return JSONResponse(
            status_code=500,
            content=response
        )


def jsonable_errors(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Stringify validation inputs that JSONResponse cannot serialize"""
    errors = payload.get("error", {}).get("details", {}).get("validation_errors", [])
    for error in errors:
        value = error.get("input")
        if value is not None and not isinstance(value, (str, int, float, bool, list, dict)):
            error["input"] = str(value)
    return payload
