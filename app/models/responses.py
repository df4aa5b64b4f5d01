"""Response models for the Benetrip flight search API."""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from app.models.requests import RedirectRequest

REDIRECT_TTL_SECONDS = 15 * 60


def format_duration(minutes: Any) -> str:
    """Format a minute count as '2h 15m', '2h' or '45m'; 'N/A' when invalid."""
    if isinstance(minutes, bool) or not isinstance(minutes, (int, float)):
        return "N/A"
    if not math.isfinite(minutes) or minutes < 0:
        return "N/A"
    total = int(minutes)
    hours, mins = divmod(total, 60)
    if hours and mins:
        return f"{hours}h {mins}m"
    if hours:
        return f"{hours}h"
    return f"{mins}m"


class FlightLeg(BaseModel):
    """One direction of travel, collapsed from its individual flights."""

    model_config = ConfigDict(frozen=True)

    departure_airport: str
    departure_date: Optional[str] = None
    departure_time: Optional[str] = None
    arrival_airport: str
    arrival_date: Optional[str] = None
    arrival_time: Optional[str] = None
    carrier_code: Optional[str] = None
    stop_count: int = Field(..., ge=0)
    duration_minutes: int = Field(default=0, ge=0)

    @computed_field
    @property
    def duration_display(self) -> str:
        return format_duration(self.duration_minutes)


class Price(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: float = Field(..., ge=0)
    currency: str = Field(default="BRL")


class FlightOffer(BaseModel):
    """Normalized flight proposal."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "a1b2c3",
                "legs": [{
                    "departure_airport": "GRU",
                    "departure_date": "2025-09-10",
                    "departure_time": "22:10",
                    "arrival_airport": "LIS",
                    "arrival_date": "2025-09-11",
                    "arrival_time": "11:05",
                    "carrier_code": "TP",
                    "stop_count": 0,
                    "duration_minutes": 595
                }],
                "total_duration_minutes": 595,
                "price": {"amount": 2890.45, "currency": "BRL"},
                "price_unknown": False,
                "baggage_allowance": "1PC",
                "is_direct": True,
                "carriers": ["TP"]
            }
        }
    )

    id: str
    legs: List[FlightLeg] = Field(..., min_length=1, max_length=2)
    total_duration_minutes: int = Field(default=0, ge=0)
    price: Price
    price_unknown: bool = Field(default=False, description="Price could not be read from the proposal")
    baggage_allowance: str
    is_direct: bool = False
    carriers: List[str] = Field(default_factory=list, description="Unique carrier codes")

    # Link-resolution data
    search_id: Optional[str] = None
    terms_url: Optional[str] = None
    gate_id: Optional[str] = None
    gate_label: Optional[str] = None

    @computed_field
    @property
    def total_duration_display(self) -> str:
        return format_duration(self.total_duration_minutes)

    def link_reference(self) -> RedirectRequest:
        return RedirectRequest(
            offer_id=self.id,
            search_id=self.search_id,
            term_url=self.terms_url,
            gate_id=self.gate_id,
            gate_label=self.gate_label,
        )


class PriceBand(BaseModel):
    min: float
    max: float


class PriceFilter(BaseModel):
    min: float = 0.0
    max: float = 0.0
    bands: List[PriceBand] = Field(default_factory=list)


class SearchFilters(BaseModel):
    carriers: List[str] = Field(default_factory=list)
    stops: List[int] = Field(default_factory=list)
    prices: PriceFilter = Field(default_factory=PriceFilter)


class SearchHandle(BaseModel):
    """Opaque search session identifier issued by the initiation call."""

    search_id: str = Field(..., min_length=1)
    gates_count: int = 0
    currency_rates: Dict[str, float] = Field(default_factory=dict)
    # Degenerate/mock backends answer with results straight away
    immediate_results: Optional[Dict[str, Any]] = Field(default=None, exclude=True)


class SearchResults(BaseModel):
    success: Literal[True] = True
    search_id: Optional[str] = None
    origin: str
    destination: str
    departure_date: str
    return_date: Optional[str] = None
    adults: int
    children: int = 0
    infants: int = 0
    offers: List[FlightOffer] = Field(default_factory=list)
    total_results: int = 0
    filters: SearchFilters = Field(default_factory=SearchFilters)


class PollTimeoutReport(BaseModel):
    """Polling ended without results. A business outcome, not an error."""

    success: Literal[False] = False
    reason: Literal["timeout", "cancelled", "no_results"] = "timeout"
    attempts: int = 0
    message: str = "No flights found for this route and date. Please try again."


class ProgressUpdate(BaseModel):
    percent: float = Field(..., ge=0, le=100)
    message: str
    attempt: int = 0
    max_attempts: int = 0


class RedirectDescriptor(BaseModel):
    """Data needed to send the user to a booking partner."""

    model_config = ConfigDict(frozen=True)

    target_url: str = Field(..., min_length=1)
    http_method: Literal["GET", "POST"] = "GET"
    params: Dict[str, Any] = Field(default_factory=dict)
    partner_label: str = "Partner"
    obtained_at: float = Field(..., description="Epoch seconds when the link was obtained")
    gate_id: Optional[str] = None
    click_id: Optional[str] = None
    redirect_page_url: Optional[str] = None

    @computed_field
    @property
    def expires_at(self) -> float:
        return self.obtained_at + REDIRECT_TTL_SECONDS


class Place(BaseModel):
    """Autocomplete suggestion."""

    type: str = "city"
    code: str
    name: str
    country_code: Optional[str] = None
    country_name: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error response model for consistent error handling."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "VALIDATION_ERROR",
                "message": "Invalid search parameters",
                "timestamp": "2025-01-15T10:30:00Z"
            }
        }
    )

    error: str = Field(..., description="Error code or type")
    message: str = Field(..., description="Human-readable error message")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Error timestamp"
    )
