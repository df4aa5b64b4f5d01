"""
Typed failures raised by the flight search, polling and redirect components.
"""

from typing import Any, Optional


class FlightSearchError(Exception):
    """Base class for every failure that crosses a component boundary."""

    error_code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SearchValidationError(FlightSearchError, ValueError):
    """Malformed search parameters. Never reaches the network."""

    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class AttemptTimeoutError(FlightSearchError):
    """A single network attempt exceeded its allotted time."""

    error_code = "TIMEOUT"

    def __init__(self, message: str, timeout: Optional[float] = None):
        super().__init__(message)
        self.timeout = timeout


class UpstreamHttpError(FlightSearchError):
    """Non-2xx response from an upstream endpoint."""

    error_code = "HTTP_ERROR"

    def __init__(self, status_code: int, body: Any = None, url: Optional[str] = None):
        super().__init__(f"HTTP {status_code} from {url or 'upstream'}")
        self.status_code = status_code
        self.body = body
        self.url = url

    @property
    def has_parsable_body(self) -> bool:
        return isinstance(self.body, (dict, list))

    @property
    def retryable(self) -> bool:
        if self.status_code >= 500 or self.status_code in (408, 429):
            return True
        # A structured error body is a definitive answer from the API
        return not self.has_parsable_body


class ResponseParseError(FlightSearchError):
    """Response body is not valid JSON or lacks expected fields."""

    error_code = "PARSE_ERROR"


class OperationFailed(FlightSearchError):
    """Every attempt of an operation failed; carries the last failure."""

    error_code = "OPERATION_FAILED"

    def __init__(self, last_error: BaseException, attempts: int):
        super().__init__(f"Operation failed after {attempts} attempt(s): {last_error}")
        self.last_error = last_error
        self.attempts = attempts


class MissingLinkData(FlightSearchError):
    """The offer lacks the terms reference or search handle needed for a redirect."""

    error_code = "MISSING_LINK_DATA"

    def __init__(self, message: str, offer_id: Optional[str] = None):
        super().__init__(message)
        self.offer_id = offer_id


class RedirectUnavailable(FlightSearchError):
    """The partner redirect could not be obtained."""

    error_code = "REDIRECT_UNAVAILABLE"

    def __init__(self, message: str, offer_id: Optional[str] = None):
        super().__init__(message)
        self.offer_id = offer_id
