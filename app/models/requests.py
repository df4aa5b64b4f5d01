"""Request models for the Benetrip flight search API."""

import re
from datetime import date
from typing import Any, Dict, Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from app.core.exceptions import SearchValidationError

IATA_PATTERN = re.compile(r"^[A-Z]{3}$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class SearchRequest(BaseModel):
    """User-confirmed flight search parameters. Immutable once issued."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "origin": "GRU",
                "destination": "LIS",
                "dateIda": "2025-09-10",
                "dateVolta": "2025-09-20",
                "adults": 2,
                "children": 0,
                "infants": 0
            }
        }
    )

    origin_code: str = Field(
        ...,
        validation_alias=AliasChoices("origin_code", "origin", "origem"),
        description="Origin IATA code"
    )
    destination_code: str = Field(
        ...,
        validation_alias=AliasChoices("destination_code", "destination", "destino"),
        description="Destination IATA code"
    )
    departure_date: str = Field(
        ...,
        validation_alias=AliasChoices("departure_date", "dateIda", "dataIda"),
        description="Outbound date, YYYY-MM-DD"
    )
    return_date: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("return_date", "dateVolta", "dataVolta"),
        description="Return date, YYYY-MM-DD"
    )
    adults: int = Field(default=1, ge=1, le=9, validation_alias=AliasChoices("adults", "adultos"))
    children: int = Field(default=0, ge=0, le=9, validation_alias=AliasChoices("children", "criancas"))
    infants: int = Field(default=0, ge=0, le=9, validation_alias=AliasChoices("infants", "bebes"))
    trip_class: Literal["Y", "C"] = Field(default="Y", description="Y economy, C business")
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)

    @field_validator("origin_code", "destination_code")
    @classmethod
    def validate_iata(cls, v: str) -> str:
        if not IATA_PATTERN.match(v):
            raise ValueError(f"Invalid IATA code '{v}': use 3 upper-case letters")
        return v

    @field_validator("departure_date", "return_date")
    @classmethod
    def validate_date(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if not DATE_PATTERN.match(v):
            raise ValueError(f"Invalid date '{v}': use YYYY-MM-DD")
        try:
            date.fromisoformat(v)
        except ValueError:
            raise ValueError(f"Invalid calendar date '{v}'")
        return v

    @field_validator("trip_class", mode="before")
    @classmethod
    def normalize_trip_class(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @model_validator(mode="after")
    def validate_route_and_dates(self) -> "SearchRequest":
        if self.origin_code == self.destination_code:
            raise ValueError("Origin and destination must differ")
        if self.return_date and self.return_date < self.departure_date:
            raise ValueError("Return date must not be before departure date")
        if self.infants > self.adults:
            raise ValueError("Each infant must travel with an adult")
        return self

    @property
    def is_round_trip(self) -> bool:
        return self.return_date is not None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "SearchRequest":
        """
        Build a request from loosely-typed form data.

        Raises:
            SearchValidationError: If any field is missing or malformed
        """
        if not isinstance(data, dict):
            raise SearchValidationError("Search parameters must be an object")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            raise SearchValidationError(
                f"Invalid search parameters: {first.get('msg')}", field=field
            ) from e


class RedirectRequest(BaseModel):
    """The minimum data needed to ask the partner API for a booking link."""

    model_config = ConfigDict(frozen=True)

    offer_id: str = Field(..., min_length=1)
    search_id: Optional[str] = None
    term_url: Optional[str] = None
    gate_id: Optional[str] = None
    gate_label: Optional[str] = None

    @field_validator("term_url", "gate_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        # Partner APIs send these as numbers or strings
        if v is None or v == "":
            return None
        return str(v)
