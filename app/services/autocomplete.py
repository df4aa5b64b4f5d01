"""
City and airport autocomplete with a static fallback list.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from app.core.exceptions import FlightSearchError
from app.models.responses import Place
from app.services.executor import RetryExecutor, RetryPolicy
from app.services.travelpayouts_client import TravelpayoutsClient

logger = logging.getLogger(__name__)

MIN_TERM_LENGTH = 2

FALLBACK_PLACES: List[Dict[str, str]] = [
    {"name": "São Paulo", "code": "SAO", "country_code": "BR", "country_name": "Brasil"},
    {"name": "Rio de Janeiro", "code": "RIO", "country_code": "BR", "country_name": "Brasil"},
    {"name": "Brasília", "code": "BSB", "country_code": "BR", "country_name": "Brasil"},
    {"name": "Salvador", "code": "SSA", "country_code": "BR", "country_name": "Brasil"},
    {"name": "Recife", "code": "REC", "country_code": "BR", "country_name": "Brasil"},
    {"name": "Nova York", "code": "NYC", "country_code": "US", "country_name": "Estados Unidos"},
    {"name": "Miami", "code": "MIA", "country_code": "US", "country_name": "Estados Unidos"},
    {"name": "Orlando", "code": "MCO", "country_code": "US", "country_name": "Estados Unidos"},
    {"name": "Los Angeles", "code": "LAX", "country_code": "US", "country_name": "Estados Unidos"},
    {"name": "Lisboa", "code": "LIS", "country_code": "PT", "country_name": "Portugal"},
    {"name": "Londres", "code": "LON", "country_code": "GB", "country_name": "Reino Unido"},
    {"name": "Paris", "code": "PAR", "country_code": "FR", "country_name": "França"},
    {"name": "Roma", "code": "ROM", "country_code": "IT", "country_name": "Itália"},
    {"name": "Madri", "code": "MAD", "country_code": "ES", "country_name": "Espanha"},
    {"name": "Buenos Aires", "code": "BUE", "country_code": "AR", "country_name": "Argentina"},
    {"name": "Santiago", "code": "SCL", "country_code": "CL", "country_name": "Chile"},
    {"name": "Cidade do México", "code": "MEX", "country_code": "MX", "country_name": "México"},
    {"name": "Tóquio", "code": "TYO", "country_code": "JP", "country_name": "Japão"},
    {"name": "Dubai", "code": "DXB", "country_code": "AE", "country_name": "Emirados Árabes"},
]


def fallback_places(term: str) -> List[Place]:
    """Static places whose name, code or country name contains ``term``, ignoring case."""
    needle = term.lower()
    return [
        Place(type="city", **place)
        for place in FALLBACK_PLACES
        if needle in place["name"].lower()
        or needle in place["code"].lower()
        or needle in place["country_name"].lower()
    ]


def _to_place(record: Any) -> Optional[Place]:
    if not isinstance(record, dict) or not record.get("code") or not record.get("name"):
        return None
    try:
        return Place(
            type=record.get("type") or "city",
            code=str(record["code"]),
            name=str(record["name"]),
            country_code=record.get("country_code"),
            country_name=record.get("country_name"),
        )
    except ValidationError:
        return None


class PlaceAutocomplete:
    """Suggests places for a search box; never fails, degrading to a static list."""

    def __init__(
        self,
        gateway: TravelpayoutsClient,
        executor: RetryExecutor,
        policy: Optional[RetryPolicy] = None,
        locale: str = "pt"
    ):
        self.gateway = gateway
        self.executor = executor
        self.policy = policy or RetryPolicy(timeout=5.0, max_retries=0)
        self.locale = locale

    async def suggest(self, term: Optional[str]) -> List[Place]:
        """
        Places matching a free-text term.

        Terms shorter than two characters return nothing. When the
        autocomplete endpoint fails or times out, the static list is
        filtered instead.
        """
        term = (term or "").strip()
        if len(term) < MIN_TERM_LENGTH:
            return []

        try:
            records = await self.executor.execute(
                lambda: self.gateway.autocomplete(term, locale=self.locale),
                self.policy,
                description=f"autocomplete '{term}'"
            )
        except (FlightSearchError, httpx.HTTPError) as e:
            logger.warning(f"Autocomplete failed for '{term}', using fallback list: {e}")
            return fallback_places(term)

        places = [place for place in (_to_place(r) for r in records) if place is not None]
        logger.debug(f"Autocomplete returned {len(places)} places for '{term}'")
        return places
