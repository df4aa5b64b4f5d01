"""
Gateway to the Travelpayouts flight search, results, click and places APIs.

Every method performs exactly one network attempt; callers wrap them with the
retry executor.
"""

import hashlib
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from app.core.exceptions import ResponseParseError
from app.models.requests import SearchRequest
from app.models.responses import SearchHandle
from app.services.http_client import AsyncHttpClient

logger = logging.getLogger(__name__)


def merge_result_chunks(data: Any) -> Dict[str, Any]:
    """
    Collapse a results response into one result set.

    The results endpoint answers with either a single object or a list of
    chunks, one per agency batch. Chunks are merged: proposals concatenated,
    gates_info combined, the first search_id kept. An empty or partial body
    yields an empty proposal list, meaning "not ready yet".

    Raises:
        ResponseParseError: If the body is neither an object nor a list
    """
    if isinstance(data, dict):
        # Proxies wrap the payload as {"resultados": {...}}
        if isinstance(data.get("resultados"), (dict, list)):
            return merge_result_chunks(data["resultados"])
        chunks = [data]
    elif isinstance(data, list):
        chunks = data
    else:
        raise ResponseParseError(f"Unexpected results payload of type {type(data).__name__}")

    merged: Dict[str, Any] = {"search_id": None, "proposals": [], "gates_info": {}}
    for chunk in chunks:
        if not isinstance(chunk, dict):
            continue
        if not merged["search_id"] and chunk.get("search_id"):
            merged["search_id"] = chunk["search_id"]
        proposals = chunk.get("proposals")
        if isinstance(proposals, list):
            merged["proposals"].extend(proposals)
        gates_info = chunk.get("gates_info")
        if isinstance(gates_info, dict):
            merged["gates_info"].update(gates_info)
        if "meta" in chunk and "meta" not in merged:
            merged["meta"] = chunk["meta"]
    return merged


class TravelpayoutsClient:
    """Client for the partner endpoints used by the flight search flow."""

    def __init__(
        self,
        http_client: AsyncHttpClient,
        marker: str,
        token: str = "",
        base_url: str = "https://api.travelpayouts.com/v1",
        autocomplete_url: str = "https://autocomplete.travelpayouts.com/places2",
        host: str = "www.benetrip.com.br",
        locale: str = "pt"
    ):
        self.http_client = http_client
        self.marker = str(marker)
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.autocomplete_url = autocomplete_url
        self.host = host
        self.locale = locale

    def build_segments(self, request: SearchRequest) -> List[Dict[str, str]]:
        segments = [{
            "origin": request.origin_code,
            "destination": request.destination_code,
            "date": request.departure_date,
        }]
        if request.return_date:
            segments.append({
                "origin": request.destination_code,
                "destination": request.origin_code,
                "date": request.return_date,
            })
        return segments

    def generate_signature(self, request: SearchRequest, user_ip: str) -> str:
        """
        MD5 request signature: the token followed by every parameter value in
        alphabetical key order, joined with ':'.
        """
        values: List[Any] = [
            self.host,
            self.locale,
            self.marker,
            request.adults,
            request.children,
            request.infants,
        ]
        for segment in self.build_segments(request):
            values.extend([segment["date"], segment["destination"], segment["origin"]])
        values.extend([request.trip_class, user_ip])

        signature_string = ":".join([self.token] + [str(v) for v in values])
        return hashlib.md5(signature_string.encode("utf-8")).hexdigest()

    def build_search_body(self, request: SearchRequest, user_ip: str) -> Dict[str, Any]:
        return {
            "signature": self.generate_signature(request, user_ip),
            "marker": self.marker,
            "host": self.host,
            "user_ip": user_ip,
            "locale": self.locale,
            "trip_class": request.trip_class,
            "passengers": {
                "adults": request.adults,
                "children": request.children,
                "infants": request.infants,
            },
            "segments": self.build_segments(request),
            "know_english": True,
        }

    async def start_search(self, request: SearchRequest, user_ip: str = "127.0.0.1") -> SearchHandle:
        """
        Initiate a search and return its handle.

        Raises:
            ResponseParseError: If the response carries no search_id
        """
        logger.info(
            f"Starting flight search {request.origin_code} -> {request.destination_code} "
            f"{request.departure_date}{' -> ' + request.return_date if request.return_date else ' (one way)'} "
            f"| {request.adults}a {request.children}c {request.infants}i"
        )
        data = await self.http_client.post_json(
            f"{self.base_url}/flight_search",
            json=self.build_search_body(request, user_ip)
        )
        if not isinstance(data, dict) or not data.get("search_id"):
            raise ResponseParseError("Search initiation response has no search_id")

        immediate = None
        if data.get("proposals"):
            immediate = merge_result_chunks(data)

        handle = SearchHandle(
            search_id=str(data["search_id"]),
            gates_count=data.get("gates_count") or 0,
            currency_rates=data.get("currency_rates") or {},
            immediate_results=immediate,
        )
        logger.info(f"Search started: search_id={handle.search_id} gates={handle.gates_count}")
        return handle

    async def fetch_results(self, search_id: str) -> Dict[str, Any]:
        """Fetch whatever results are ready for a search, merged into one set."""
        data = await self.http_client.get_json(
            f"{self.base_url}/flight_search_results",
            params={"uuid": search_id}
        )
        merged = merge_result_chunks(data)
        if not merged["search_id"]:
            merged["search_id"] = search_id
        return merged

    async def fetch_click(
        self,
        search_id: str,
        term_url: str,
        currency: Optional[str] = None,
        locale: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Request a partner booking link for one proposal term.

        Raises:
            ResponseParseError: If the response has no url
        """
        url = (
            f"{self.base_url}/flight_searches/{quote(str(search_id), safe='')}"
            f"/clicks/{quote(str(term_url), safe='')}.json"
        )
        params = {"marker": self.marker}
        if currency:
            params["currency"] = currency
        if locale:
            params["locale"] = locale

        data = await self.http_client.get_json(url, params=params)
        if not isinstance(data, dict) or not data.get("url"):
            raise ResponseParseError("Redirect response has no url")
        return data

    async def autocomplete(self, term: str, locale: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Look up cities and airports matching a free-text term.

        Raises:
            ResponseParseError: If the response is not a list
        """
        params = [
            ("term", term),
            ("locale", locale or self.locale),
            ("types[]", "city"),
            ("types[]", "airport"),
        ]
        data = await self.http_client.get_json(self.autocomplete_url, params=params)
        if not isinstance(data, list):
            raise ResponseParseError("Autocomplete response is not a list")
        return data
