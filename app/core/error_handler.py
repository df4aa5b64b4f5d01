"""
Centralized error handling for the Benetrip flight search API.

Maps the typed failures raised by the search, polling and redirect services
to error codes, HTTP status codes and a consistent JSON error body.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Tuple
from enum import Enum

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.core.exceptions import (
    AttemptTimeoutError,
    FlightSearchError,
    MissingLinkData,
    OperationFailed,
    RedirectUnavailable,
    ResponseParseError,
    SearchValidationError,
    UpstreamHttpError,
)
from app.models.responses import ErrorResponse


class ErrorCode(str, Enum):
    """Enumeration of error codes for different failure scenarios."""

    # HTTP status code specific errors
    HTTP_400 = "HTTP_400"
    HTTP_403 = "HTTP_403"
    HTTP_404 = "HTTP_404"
    HTTP_405 = "HTTP_405"
    HTTP_500 = "HTTP_500"

    # Client errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_LINK_DATA = "MISSING_LINK_DATA"
    INVALID_MARKER = "INVALID_MARKER"

    # Upstream errors (5xx)
    TIMEOUT = "TIMEOUT"
    HTTP_ERROR = "HTTP_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    OPERATION_FAILED = "OPERATION_FAILED"
    REDIRECT_UNAVAILABLE = "REDIRECT_UNAVAILABLE"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ErrorHandler:
    """
    Centralized error handling class with consistent error response formatting.

    Every service failure derives from FlightSearchError and carries an
    ``error_code``; this class turns those into logged, well-formed
    responses.
    """

    # Error code to HTTP status code mapping
    ERROR_STATUS_MAPPING: Dict[ErrorCode, int] = {
        ErrorCode.HTTP_400: 400,
        ErrorCode.HTTP_403: 403,
        ErrorCode.HTTP_404: 404,
        ErrorCode.HTTP_405: 405,
        ErrorCode.HTTP_500: 500,

        ErrorCode.VALIDATION_ERROR: 422,
        ErrorCode.MISSING_LINK_DATA: 422,
        ErrorCode.INVALID_MARKER: 403,

        ErrorCode.TIMEOUT: 504,
        ErrorCode.HTTP_ERROR: 502,
        ErrorCode.PARSE_ERROR: 502,
        ErrorCode.OPERATION_FAILED: 502,
        ErrorCode.REDIRECT_UNAVAILABLE: 503,
        ErrorCode.CONFIGURATION_ERROR: 500,
        ErrorCode.INTERNAL_SERVER_ERROR: 500,
    }

    # Error code to default message mapping
    ERROR_MESSAGES: Dict[ErrorCode, str] = {
        ErrorCode.HTTP_400: "Bad Request",
        ErrorCode.HTTP_403: "Forbidden",
        ErrorCode.HTTP_404: "Not Found",
        ErrorCode.HTTP_405: "Method Not Allowed",
        ErrorCode.HTTP_500: "Internal Server Error",

        ErrorCode.VALIDATION_ERROR: "Invalid search parameters",
        ErrorCode.MISSING_LINK_DATA: "The selected offer has no booking reference",
        ErrorCode.INVALID_MARKER: "Invalid affiliate marker",
        ErrorCode.TIMEOUT: "The flight search provider took too long to respond",
        ErrorCode.HTTP_ERROR: "The flight search provider returned an error",
        ErrorCode.PARSE_ERROR: "The flight search provider returned an unreadable response",
        ErrorCode.OPERATION_FAILED: "The flight search provider is unavailable, please try again",
        ErrorCode.REDIRECT_UNAVAILABLE: "Booking link unavailable, please try another offer",
        ErrorCode.CONFIGURATION_ERROR: "Flight search is not configured",
        ErrorCode.INTERNAL_SERVER_ERROR: "An unexpected error occurred",
    }

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize the ErrorHandler.

        Args:
            logger: Optional logger instance. If not provided, creates a new logger.
        """
        self.logger = logger or logging.getLogger(__name__)

    def create_error_response(
        self,
        error_code: ErrorCode,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> ErrorResponse:
        """
        Create a standardized error response.

        Args:
            error_code: The error code enum value
            message: Optional custom error message. If not provided, uses default message.
            details: Optional additional error details

        Returns:
            ErrorResponse: Standardized error response object
        """
        final_message = message or self.ERROR_MESSAGES.get(error_code, "Unknown error")

        if details:
            final_message = f"{final_message}. Details: {details}"

        return ErrorResponse(
            error=error_code.value,
            message=final_message,
            timestamp=datetime.now(timezone.utc)
        )

    def log_error(
        self,
        error_code: ErrorCode,
        message: str,
        request: Optional[Request] = None,
        exception: Optional[Exception] = None,
        additional_context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log error with context information.

        Args:
            error_code: The error code enum value
            message: Error message
            request: Optional FastAPI request object
            exception: Optional exception that caused the error
            additional_context: Optional additional context information
        """
        context = {
            "error_code": error_code.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        if request:
            context.update({
                "method": request.method,
                "url": str(request.url),
                "client_ip": getattr(request.client, 'host', 'unknown') if request.client else 'unknown',
                "user_agent": request.headers.get("user-agent", "unknown"),
            })

        if additional_context:
            context.update(additional_context)

        log_message = f"{error_code.value}: {message}"

        # Client mistakes are expected traffic; upstream failures get a traceback
        if self.ERROR_STATUS_MAPPING.get(error_code, 500) < 500:
            self.logger.warning(log_message, extra={"context": context})
        elif exception:
            self.logger.error(log_message, extra={"context": context}, exc_info=exception)
        else:
            self.logger.error(log_message, extra={"context": context})

    def classify(self, error: BaseException) -> ErrorCode:
        """
        Error code for an exception raised by the services.

        An OperationFailed is classified by its last failure so that a search
        that timed out on every attempt still reports TIMEOUT.
        """
        if isinstance(error, OperationFailed):
            if isinstance(error.last_error, AttemptTimeoutError):
                return ErrorCode.TIMEOUT
            return ErrorCode.OPERATION_FAILED
        if isinstance(error, SearchValidationError):
            return ErrorCode.VALIDATION_ERROR
        if isinstance(error, MissingLinkData):
            return ErrorCode.MISSING_LINK_DATA
        if isinstance(error, RedirectUnavailable):
            return ErrorCode.REDIRECT_UNAVAILABLE
        if isinstance(error, AttemptTimeoutError):
            return ErrorCode.TIMEOUT
        if isinstance(error, UpstreamHttpError):
            return ErrorCode.HTTP_ERROR
        if isinstance(error, ResponseParseError):
            return ErrorCode.PARSE_ERROR
        if isinstance(error, httpx.TimeoutException):
            return ErrorCode.TIMEOUT
        if isinstance(error, httpx.HTTPError):
            return ErrorCode.HTTP_ERROR
        return ErrorCode.INTERNAL_SERVER_ERROR

    def handle_flight_search_error(
        self,
        error: Exception,
        request: Optional[Request] = None
    ) -> Tuple[ErrorCode, str]:
        """
        Handle a service failure and return the error code and message.

        Args:
            error: The failure raised by a service
            request: Optional FastAPI request object

        Returns:
            Tuple of (ErrorCode, error_message)
        """
        error_code = self.classify(error)

        if isinstance(error, (SearchValidationError, MissingLinkData)):
            message = error.message
        else:
            message = self.ERROR_MESSAGES[error_code]

        context: Dict[str, Any] = {"error_type": type(error).__name__, "detail": str(error)}
        if isinstance(error, OperationFailed):
            context["attempts"] = error.attempts
            context["last_error_type"] = type(error.last_error).__name__
        if isinstance(error, (MissingLinkData, RedirectUnavailable)) and error.offer_id:
            context["offer_id"] = error.offer_id
        if isinstance(error, SearchValidationError) and error.field:
            context["field"] = error.field

        self.log_error(
            error_code=error_code,
            message=message,
            request=request,
            exception=error,
            additional_context=context
        )

        return error_code, message

    def create_json_response(
        self,
        error_code: ErrorCode,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> JSONResponse:
        """
        Create a JSON response for an error.

        Args:
            error_code: The error code enum value
            message: Optional custom error message
            details: Optional additional error details

        Returns:
            JSONResponse: FastAPI JSON response with appropriate status code
        """
        error_response = self.create_error_response(error_code, message, details)
        status_code = self.ERROR_STATUS_MAPPING.get(error_code, 500)

        return JSONResponse(
            status_code=status_code,
            content=error_response.model_dump(mode='json')
        )

    def handle_validation_error(
        self,
        error: ValidationError,
        request: Optional[Request] = None
    ) -> JSONResponse:
        """
        Handle Pydantic validation errors.

        Args:
            error: The validation error
            request: Optional FastAPI request object

        Returns:
            JSONResponse: Error response for validation failure
        """
        error_details = error.errors(include_url=False)
        message = f"Validation failed: {error_details}"

        self.log_error(
            error_code=ErrorCode.VALIDATION_ERROR,
            message=message,
            request=request,
            additional_context={"validation_errors": error_details}
        )

        return self.create_json_response(ErrorCode.VALIDATION_ERROR, message)


# Global error handler instance
error_handler = ErrorHandler()
