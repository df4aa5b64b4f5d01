# Pydantic models for request/response validation

from .requests import SearchRequest, RedirectRequest
from .responses import (
    FlightLeg,
    FlightOffer,
    Place,
    PollTimeoutReport,
    Price,
    ProgressUpdate,
    RedirectDescriptor,
    SearchFilters,
    SearchHandle,
    SearchResults,
    ErrorResponse,
)

__all__ = [
    "SearchRequest",
    "RedirectRequest",
    "FlightLeg",
    "FlightOffer",
    "Place",
    "PollTimeoutReport",
    "Price",
    "ProgressUpdate",
    "RedirectDescriptor",
    "SearchFilters",
    "SearchHandle",
    "SearchResults",
    "ErrorResponse"
]
