"""
Normalizer for raw flight search proposals.

Raw proposals have no guaranteed shape. Each one is converted into a
FlightOffer or dropped; offers are returned sorted by ascending price.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from app.models.responses import (
    FlightLeg,
    FlightOffer,
    Price,
    PriceBand,
    PriceFilter,
    SearchFilters,
)

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "BRL"
DEFAULT_BAGGAGE = "Check with the airline"
PRICE_KEYS = ("total", "price", "unified_price")
PRICE_BAND_COUNT = 4


class ProposalDropped(Exception):
    """A proposal cannot be turned into an offer."""


def first_term(proposal: Dict[str, Any]) -> Tuple[Optional[str], Dict[str, Any]]:
    """
    Return the first (key, term) pair of a proposal's ``terms`` map.

    Terms are keyed by arbitrary agency identifiers and proposals normally
    carry a single one. When there are several, the choice depends on the
    key order of the decoded JSON object, which follows the order in the
    response body.
    """
    terms = proposal.get("terms")
    if not isinstance(terms, dict) or not terms:
        return None, {}
    key = next(iter(terms))
    term = terms[key]
    return str(key), term if isinstance(term, dict) else {}


def parse_amount(value: Any) -> Optional[float]:
    """
    Read a price from a number or a string such as 'R$ 2.890,45', '1,234' or
    '2890.45'. A lone comma is a thousands separator.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if value >= 0 else None
    if isinstance(value, str):
        cleaned = "".join(ch for ch in value if ch.isdigit() or ch in ".,")
        if not cleaned:
            return None
        if "," in cleaned and "." in cleaned:
            # Thousands separator is whichever comes first
            if cleaned.rfind(",") > cleaned.rfind("."):
                cleaned = cleaned.replace(".", "").replace(",", ".")
            else:
                cleaned = cleaned.replace(",", "")
        else:
            cleaned = cleaned.replace(",", "")
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def extract_price(term: Dict[str, Any], default_currency: str = DEFAULT_CURRENCY) -> Tuple[Price, bool]:
    """
    Price from a term, trying total, price and unified_price in that order.

    Returns the price and whether it was unknown. Unknown prices default to 0
    so the offer is still shown.
    """
    currency = term.get("currency") or default_currency
    if isinstance(currency, str):
        currency = currency.upper()
    else:
        currency = default_currency

    for key in PRICE_KEYS:
        amount = parse_amount(term.get(key))
        if amount is not None:
            return Price(amount=amount, currency=currency), False
    return Price(amount=0.0, currency=currency), True


def _minutes(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)) and value >= 0:
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0


def build_leg(segment: Any) -> FlightLeg:
    """Collapse one segment's flights into a leg, first departure to last arrival."""
    flights = segment.get("flight") if isinstance(segment, dict) else None
    if not isinstance(flights, list) or not flights:
        raise ProposalDropped("segment has no flights")
    first, last = flights[0], flights[-1]
    if not isinstance(first, dict) or not isinstance(last, dict):
        raise ProposalDropped("malformed flight entry")
    if not first.get("departure") or not last.get("arrival"):
        raise ProposalDropped("flight without airports")

    return FlightLeg(
        departure_airport=str(first["departure"]),
        departure_date=first.get("departure_date"),
        departure_time=first.get("departure_time"),
        arrival_airport=str(last["arrival"]),
        arrival_date=last.get("arrival_date"),
        arrival_time=last.get("arrival_time"),
        carrier_code=first.get("marketing_carrier") or first.get("operating_carrier"),
        stop_count=len(flights) - 1,
        duration_minutes=sum(_minutes(f.get("duration")) for f in flights if isinstance(f, dict)),
    )


def _unique(values: Iterable[Any]) -> List[Any]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def _flatten(values: List[Any]) -> Iterable[Any]:
    for value in values:
        if isinstance(value, list):
            yield from _flatten(value)
        else:
            yield value


def normalize_proposal(
    proposal: Any,
    index: int,
    search_id: Optional[str] = None,
    gates_info: Optional[Dict[str, Any]] = None
) -> FlightOffer:
    """
    Convert one raw proposal into a FlightOffer.

    Raises:
        ProposalDropped: If the proposal has no usable segments
    """
    if not isinstance(proposal, dict):
        raise ProposalDropped("proposal is not an object")

    segments = proposal.get("segment")
    if not isinstance(segments, list) or not segments:
        raise ProposalDropped("proposal has no segments")
    if len(segments) > 2:
        raise ProposalDropped("multi-city proposals are not supported")

    legs = [build_leg(segment) for segment in segments]

    term_key, term = first_term(proposal)
    price, price_unknown = extract_price(term)

    baggage = term.get("flights_baggage")
    if isinstance(baggage, list):
        baggage = ", ".join(str(b) for b in _flatten(baggage) if b not in (None, ""))
    baggage_allowance = str(baggage) if baggage else DEFAULT_BAGGAGE

    carriers = proposal.get("carriers")
    if not isinstance(carriers, list) or not carriers:
        carriers = [leg.carrier_code for leg in legs if leg.carrier_code]
    carriers = _unique(str(c) for c in carriers if c)

    total_duration = proposal.get("total_duration")
    if not isinstance(total_duration, (int, float)) or isinstance(total_duration, bool) or total_duration < 0:
        total_duration = sum(leg.duration_minutes for leg in legs)

    gate_id = term.get("gate_id") or term_key
    gate_label = None
    if gates_info and gate_id is not None:
        info = gates_info.get(str(gate_id))
        if isinstance(info, dict):
            gate_label = info.get("label")

    is_direct = proposal.get("is_direct")
    if not isinstance(is_direct, bool):
        is_direct = all(leg.stop_count == 0 for leg in legs)

    return FlightOffer(
        id=str(proposal.get("sign") or f"flight-{index + 1}"),
        legs=legs,
        total_duration_minutes=int(total_duration),
        price=price,
        price_unknown=price_unknown,
        baggage_allowance=baggage_allowance,
        is_direct=is_direct,
        carriers=carriers,
        search_id=search_id,
        terms_url=str(term["url"]) if term.get("url") not in (None, "") else None,
        gate_id=str(gate_id) if gate_id is not None else None,
        gate_label=gate_label,
    )


def normalize(raw_results: Any) -> List[FlightOffer]:
    """
    Normalize a raw result set into offers sorted by ascending price.

    Proposals that cannot be parsed are dropped. Price ties keep their
    original order.
    """
    if not isinstance(raw_results, dict):
        return []
    proposals = raw_results.get("proposals")
    if not isinstance(proposals, list):
        return []

    search_id = raw_results.get("search_id")
    search_id = str(search_id) if search_id else None
    gates_info = raw_results.get("gates_info") if isinstance(raw_results.get("gates_info"), dict) else {}

    offers = []
    for index, proposal in enumerate(proposals):
        try:
            offers.append(normalize_proposal(proposal, index, search_id, gates_info))
        except (ProposalDropped, ValidationError, KeyError, TypeError, ValueError) as e:
            logger.debug(f"Dropping proposal {index}: {e}")

    dropped = len(proposals) - len(offers)
    if dropped:
        logger.info(f"Normalized {len(offers)} offers, dropped {dropped} malformed proposals")

    return sorted(offers, key=lambda offer: offer.price.amount)


def build_filters(offers: List[FlightOffer]) -> SearchFilters:
    """
    Filter options for a result set: unique carriers, unique stop counts and
    four equal-width price bands between the lowest and highest price.
    """
    carriers = _unique(c for offer in offers for c in offer.carriers)
    stops = sorted({leg.stop_count for offer in offers for leg in offer.legs})

    prices = [offer.price.amount for offer in offers]
    if not prices:
        return SearchFilters(
            carriers=carriers,
            stops=stops,
            prices=PriceFilter(min=0.0, max=0.0, bands=[PriceBand(min=0.0, max=0.0)])
        )

    low, high = min(prices), max(prices)
    if low == high:
        bands = [PriceBand(min=low, max=high)]
    else:
        width = (high - low) / PRICE_BAND_COUNT
        bands = [
            PriceBand(min=low + i * width, max=high if i == PRICE_BAND_COUNT - 1 else low + (i + 1) * width)
            for i in range(PRICE_BAND_COUNT)
        ]

    return SearchFilters(
        carriers=carriers,
        stops=stops,
        prices=PriceFilter(min=low, max=high, bands=bands)
    )
