"""
Redirect resolver: turns a selected offer into a partner redirect descriptor,
serving from the redirect link cache when possible.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

import httpx

from app.core.exceptions import (
    FlightSearchError,
    MissingLinkData,
    RedirectUnavailable,
    ResponseParseError,
)
from app.models.requests import RedirectRequest
from app.models.responses import FlightOffer, RedirectDescriptor
from app.services.executor import RetryExecutor, RetryPolicy
from app.services.partner_url import apply_locale_and_currency, build_redirect_page_url
from app.services.redirect_cache import RedirectLinkCache
from app.services.travelpayouts_client import TravelpayoutsClient

logger = logging.getLogger(__name__)

MAX_REDIRECT_RETRIES = 2


class RedirectState(str, Enum):
    """Lifecycle of one offer's redirect link"""
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


class RedirectResolver:
    """
    Resolves partner booking links for offers.

    Concurrent resolutions of the same offer share one network request.
    """

    def __init__(
        self,
        gateway: TravelpayoutsClient,
        cache: RedirectLinkCache,
        executor: RetryExecutor,
        policy: Optional[RetryPolicy] = None,
        currency: Optional[str] = None,
        language: Optional[str] = None,
        redirect_page_template: str = "redirect.html",
        clock: Callable[[], float] = time.time
    ):
        self.gateway = gateway
        self.cache = cache
        self.executor = executor
        self.policy = policy or RetryPolicy(timeout=8.0, max_retries=MAX_REDIRECT_RETRIES, retry_delay=1.0)
        if self.policy.max_retries > MAX_REDIRECT_RETRIES:
            raise ValueError(f"Redirect resolution allows at most {MAX_REDIRECT_RETRIES} retries")
        self.currency = currency
        self.language = language
        self.redirect_page_template = redirect_page_template
        self.clock = clock

        self._states: Dict[str, RedirectState] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}

    @staticmethod
    def _link_reference(offer: Union[FlightOffer, RedirectRequest]) -> RedirectRequest:
        if isinstance(offer, FlightOffer):
            return offer.link_reference()
        return offer

    async def state_of(self, offer_id: str) -> RedirectState:
        """Current state; a resolved link whose cache entry expired is unresolved again."""
        state = self._states.get(offer_id, RedirectState.UNRESOLVED)
        if state == RedirectState.RESOLVED and await self.cache.get(offer_id) is None:
            self._states[offer_id] = state = RedirectState.UNRESOLVED
        return state

    async def resolve(self, offer: Union[FlightOffer, RedirectRequest]) -> RedirectDescriptor:
        """
        Get the redirect descriptor for an offer.

        Raises:
            MissingLinkData: If the offer has no terms reference or search handle
            RedirectUnavailable: If the partner link could not be obtained
        """
        ref = self._link_reference(offer)
        if not ref.search_id or not ref.term_url:
            raise MissingLinkData(
                f"Offer {ref.offer_id} lacks {'search_id' if not ref.search_id else 'terms url'} "
                f"needed to request a redirect",
                offer_id=ref.offer_id
            )

        cached = await self.cache.get(ref.offer_id)
        if cached is not None:
            self._states[ref.offer_id] = RedirectState.RESOLVED
            return cached

        task = self._in_flight.get(ref.offer_id)
        if task is None:
            task = asyncio.ensure_future(self._resolve_remote(ref))
            self._in_flight[ref.offer_id] = task
            task.add_done_callback(lambda _: self._in_flight.pop(ref.offer_id, None))
        else:
            logger.debug(f"Joining in-flight redirect resolution for offer {ref.offer_id}")
        return await asyncio.shield(task)

    async def _resolve_remote(self, ref: RedirectRequest) -> RedirectDescriptor:
        self._states[ref.offer_id] = RedirectState.RESOLVING

        async def fetch() -> RedirectDescriptor:
            data = await self.gateway.fetch_click(
                ref.search_id,
                ref.term_url,
                currency=self.currency,
                locale="pt-BR" if self.language and self.language.lower().startswith("pt") else self.language
            )
            return self._build_descriptor(ref, data)

        try:
            descriptor = await self.executor.execute(
                fetch, self.policy, description=f"redirect for offer {ref.offer_id}"
            )
        except (FlightSearchError, httpx.HTTPError) as e:
            self._states[ref.offer_id] = RedirectState.FAILED
            logger.error(f"Redirect unavailable for offer {ref.offer_id}: {e}")
            raise RedirectUnavailable(
                f"Could not obtain a booking link for offer {ref.offer_id}",
                offer_id=ref.offer_id
            ) from e

        await self.cache.put(ref.offer_id, descriptor)
        self._states[ref.offer_id] = RedirectState.RESOLVED
        logger.info(
            f"Resolved redirect for offer {ref.offer_id} via {descriptor.partner_label} "
            f"({descriptor.http_method})"
        )
        return descriptor

    def _partner_label(self, ref: RedirectRequest, data: Dict[str, Any], gate_id: Optional[str]) -> str:
        if data.get("gate_name"):
            return str(data["gate_name"])
        if ref.gate_label:
            return ref.gate_label
        if gate_id:
            return f"Agency {gate_id}"
        return "Partner"

    def _build_descriptor(self, ref: RedirectRequest, data: Dict[str, Any]) -> RedirectDescriptor:
        """
        Raises:
            ResponseParseError: If the response cannot describe a redirect
        """
        target_url = data.get("url")
        if not isinstance(target_url, str) or not target_url:
            raise ResponseParseError("Redirect response has no url")

        if self.currency or self.language:
            target_url, _ = apply_locale_and_currency(target_url, self.currency, self.language)

        method = str(data.get("method") or "GET").upper()
        if method not in ("GET", "POST"):
            raise ResponseParseError(f"Unsupported redirect method {method}")

        params = data.get("params") if isinstance(data.get("params"), dict) else {}
        gate_id = data.get("gate_id") or ref.gate_id
        gate_id = str(gate_id) if gate_id not in (None, "") else None
        click_id = data.get("str_click_id") or data.get("click_id")

        descriptor = RedirectDescriptor(
            target_url=target_url,
            http_method=method,
            params=params,
            partner_label=self._partner_label(ref, data, gate_id),
            obtained_at=self.clock(),
            gate_id=gate_id,
            click_id=str(click_id) if click_id not in (None, "") else None,
        )
        if method == "POST":
            descriptor = descriptor.model_copy(
                update={"redirect_page_url": build_redirect_page_url(descriptor, self.redirect_page_template)}
            )
        return descriptor
