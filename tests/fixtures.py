"""
Test fixtures with sample search parameters and raw partner API responses.
Provides realistic test data and a recording mock transport for httpx.
"""

import copy
from typing import Any, Dict, List, Optional, Union

import httpx


BASE_URL = "https://api.travelpayouts.com/v1"
AUTOCOMPLETE_URL = "https://autocomplete.travelpayouts.com/places2"


class SearchParamFixtures:
    """Search form payloads, valid and invalid."""

    ONE_WAY = {
        "origin": "GRU",
        "destination": "LIS",
        "dateIda": "2025-09-10",
        "adults": 1,
    }

    ROUND_TRIP = {
        "origin": "GRU",
        "destination": "LIS",
        "dateIda": "2025-09-10",
        "dateVolta": "2025-09-20",
        "adults": 2,
        "children": 1,
        "infants": 0,
    }

    # (payload, description)
    INVALID = [
        ({"origin": "GRU", "destination": "LIS", "dateIda": "10/09/2025", "adults": 1}, "bad date format"),
        ({"origin": "GRU", "destination": "LIS", "dateIda": "2025-02-30", "adults": 1}, "impossible date"),
        ({"origin": "GR", "destination": "LIS", "dateIda": "2025-09-10", "adults": 1}, "short IATA code"),
        ({"origin": "gru", "destination": "LIS", "dateIda": "2025-09-10", "adults": 1}, "lower-case IATA code"),
        ({"origin": "GRU", "destination": "GRU", "dateIda": "2025-09-10", "adults": 1}, "same origin and destination"),
        ({"origin": "GRU", "destination": "LIS", "dateIda": "2025-09-10", "adults": 0}, "no adults"),
        ({"origin": "GRU", "destination": "LIS", "dateIda": "2025-09-10", "dateVolta": "2025-09-01"}, "return before departure"),
        ({"origin": "GRU", "destination": "LIS", "dateIda": "2025-09-10", "adults": 1, "infants": 2}, "more infants than adults"),
        ({"destination": "LIS", "dateIda": "2025-09-10"}, "missing origin"),
    ]


class TravelpayoutsFixtures:
    """Raw responses shaped like the partner API's."""

    SEARCH_ID = "4b1e0c52-7f1d-4d0c-9a3e-6a0b2f1c9e11"

    INITIATION = {
        "search_id": SEARCH_ID,
        "gates_count": 12,
        "currency_rates": {"brl": 1.0, "usd": 5.1},
    }

    # GRU -> OPO -> LIS on TAP, one stop, price as a number
    ONE_STOP_PROPOSAL = {
        "sign": "a1b2c3",
        "terms": {
            "42": {
                "currency": "brl",
                "price": 2890.45,
                "unified_price": 2890,
                "url": 4200001,
                "flights_baggage": [["1PC"]],
            }
        },
        "segment": [{
            "flight": [
                {
                    "departure": "GRU",
                    "arrival": "OPO",
                    "departure_date": "2025-09-10",
                    "departure_time": "22:10",
                    "arrival_date": "2025-09-11",
                    "arrival_time": "11:05",
                    "marketing_carrier": "TP",
                    "duration": 595,
                },
                {
                    "departure": "OPO",
                    "arrival": "LIS",
                    "departure_date": "2025-09-11",
                    "departure_time": "13:00",
                    "arrival_date": "2025-09-11",
                    "arrival_time": "14:00",
                    "marketing_carrier": "TP",
                    "duration": 60,
                },
            ]
        }],
        "carriers": ["TP"],
        "total_duration": 830,
        "is_direct": False,
    }

    # Direct LATAM flight, price as a Brazilian-formatted string
    DIRECT_PROPOSAL = {
        "sign": "d4e5f6",
        "terms": {
            "77": {
                "currency": "brl",
                "total": "R$ 3.450,00",
                "url": 7700002,
                "flights_baggage": ["2PC"],
            }
        },
        "segment": [{
            "flight": [{
                "departure": "GRU",
                "arrival": "LIS",
                "departure_date": "2025-09-10",
                "departure_time": "17:40",
                "arrival_date": "2025-09-11",
                "arrival_time": "07:10",
                "marketing_carrier": "LA",
                "duration": 630,
            }]
        }],
        "carriers": ["LA"],
        "total_duration": 630,
    }

    # Cheapest, but no price field at all
    NO_PRICE_PROPOSAL = {
        "sign": "noprice",
        "terms": {"99": {"currency": "brl", "url": 9900003}},
        "segment": [{
            "flight": [{
                "departure": "GRU",
                "arrival": "LIS",
                "marketing_carrier": "AD",
                "duration": 640,
            }]
        }],
    }

    EMPTY_FLIGHT_PROPOSAL = {
        "sign": "broken",
        "terms": {"13": {"currency": "brl", "price": 100, "url": 1}},
        "segment": [{"flight": []}],
    }

    GATES_INFO = {
        "42": {"label": "Agência Azul"},
        "77": {"label": "Voe Já"},
    }

    CLICK_GET = {
        "url": "https://partner.example.com/book?curr=USD&lang=en&ref=benetrip",
        "method": "GET",
        "params": {},
        "gate_id": 42,
        "gate_name": "Agência Azul",
        "str_click_id": "987654321",
    }

    CLICK_POST = {
        "url": "https://partner.example.com/checkout",
        "method": "POST",
        "params": {"token": "abc123", "flight": "TP1234"},
        "gate_id": 77,
        "click_id": 123456,
    }

    AUTOCOMPLETE = [
        {"type": "city", "code": "PAR", "name": "Paris", "country_code": "FR", "country_name": "França"},
        {"type": "airport", "code": "CDG", "name": "Charles de Gaulle", "country_code": "FR", "country_name": "França"},
        {"type": "city", "name": "no code"},
    ]

    @classmethod
    def proposal(cls, name: str = "ONE_STOP_PROPOSAL") -> Dict[str, Any]:
        """A deep copy of one of the sample proposals."""
        return copy.deepcopy(getattr(cls, name))

    @classmethod
    def results(
        cls,
        proposals: Optional[List[Dict[str, Any]]] = None,
        search_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """A chunked results response: one chunk with proposals and a meta chunk."""
        return [
            {
                "search_id": search_id or cls.SEARCH_ID,
                "proposals": copy.deepcopy(proposals) if proposals is not None else [],
                "gates_info": copy.deepcopy(cls.GATES_INFO),
            },
            {"search_id": search_id or cls.SEARCH_ID, "meta": {"uuid": search_id or cls.SEARCH_ID}},
        ]

    @classmethod
    def empty_results(cls) -> List[Dict[str, Any]]:
        return [{"search_id": cls.SEARCH_ID, "proposals": []}]


Reply = Union[Exception, tuple]


class RecordingRouter:
    """
    httpx.MockTransport handler that answers by URL path and records every
    request.

    Each path holds a queue of replies, each either ``(status, body)`` or an
    exception to raise. Replies are consumed in order; the last one repeats.
    """

    def __init__(self):
        self.routes: Dict[str, List[Reply]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, path: str, *replies: Reply) -> "RecordingRouter":
        self.routes.setdefault(path, []).extend(replies)
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get(request.url.path)
        if not queue:
            return httpx.Response(404, json={"error": "not found"})

        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        status, body = reply
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body)

    def calls(self, path: str) -> List[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


SEARCH_PATH = "/v1/flight_search"
RESULTS_PATH = "/v1/flight_search_results"
AUTOCOMPLETE_PATH = "/places2"


def click_path(search_id: str = TravelpayoutsFixtures.SEARCH_ID, term_url: str = "4200001") -> str:
    return f"/v1/flight_searches/{search_id}/clicks/{term_url}.json"


class FakeClock:
    """Settable clock returning epoch seconds."""

    def __init__(self, now: float = 1_750_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
