"""
Async JSON HTTP client for the partner flight APIs.

Each call is a single attempt: failures are classified into typed errors and
retries are left to the executor.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from app.core.exceptions import AttemptTimeoutError, ResponseParseError, UpstreamHttpError

logger = logging.getLogger(__name__)


class AsyncHttpClient:
    """
    Thin wrapper over httpx.AsyncClient that speaks JSON and raises typed
    errors for timeouts, non-2xx statuses and unparsable bodies.
    """

    USER_AGENT = "Benetrip/1.0"

    def __init__(
        self,
        timeout: float = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.timeout = timeout

        # Configure httpx client
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
            transport=transport
        )

    def _get_headers(self) -> Dict[str, str]:
        """Default headers for JSON APIs"""
        return {
            "User-Agent": self.USER_AGENT,
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
        }

    @staticmethod
    def _decode_body(response: httpx.Response) -> Any:
        """Parse a JSON body, returning the raw text when it is not JSON"""
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
            return response.text

    async def request_json(
        self,
        method: str,
        url: str,
        **kwargs
    ) -> Any:
        """
        Make one HTTP request and return the decoded JSON body.

        Raises:
            AttemptTimeoutError: If httpx reports a timeout
            UpstreamHttpError: On non-2xx responses
            ResponseParseError: On 2xx responses without a JSON body
            httpx.TransportError: On connection-level failures
        """
        headers = self._get_headers()
        if "headers" in kwargs:
            headers.update(kwargs.pop("headers") or {})

        logger.debug(f"Making {method} request to {url}")

        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout for {method} {url}: {e}")
            raise AttemptTimeoutError(f"Request to {url} timed out", timeout=self.timeout) from e

        if not 200 <= response.status_code < 300:
            body = self._decode_body(response)
            logger.warning(f"HTTP {response.status_code} for {method} {url}")
            raise UpstreamHttpError(response.status_code, body=body, url=url)

        body = self._decode_body(response)
        if isinstance(body, str):
            raise ResponseParseError(f"Response from {url} is not valid JSON")

        logger.debug(f"Successful {method} request to {url}")
        return body

    async def get_json(self, url: str, **kwargs) -> Any:
        """Make a GET request and decode the JSON response"""
        return await self.request_json("GET", url, **kwargs)

    async def post_json(self, url: str, **kwargs) -> Any:
        """Make a POST request and decode the JSON response"""
        return await self.request_json("POST", url, **kwargs)

    async def close(self) -> None:
        """Close the HTTP client"""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()
