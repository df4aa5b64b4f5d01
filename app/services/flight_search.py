"""
Flight search service that combines search initiation, result polling and
normalization, and owns the per-session search state.
"""

import logging
from typing import Any, Dict, Optional, Union

from app.models.requests import RedirectRequest, SearchRequest
from app.models.responses import (
    FlightOffer,
    PollTimeoutReport,
    ProgressUpdate,
    RedirectDescriptor,
    SearchHandle,
    SearchResults,
)
from app.services.executor import RetryExecutor, RetryPolicy
from app.services.normalizer import build_filters, normalize
from app.services.poller import ProgressCallback, ResultsPoller, has_proposals
from app.services.redirect_cache import RedirectLinkCache
from app.services.redirect_resolver import RedirectResolver
from app.services.travelpayouts_client import TravelpayoutsClient


class FlightSearchService:
    """
    Orchestrates a flight search: validate, initiate, poll, normalize.

    One instance represents one user session. Starting a new search replaces
    the current handle; starting a new session also drops cached redirect
    links.
    """

    def __init__(
        self,
        gateway: TravelpayoutsClient,
        executor: RetryExecutor,
        redirect_resolver: RedirectResolver,
        redirect_cache: RedirectLinkCache,
        search_policy: Optional[RetryPolicy] = None,
        poll_interval: float = 2.0,
        poll_max_attempts: int = 10
    ):
        """
        Initialize the flight search service.

        Args:
            gateway: Client for the partner search endpoints
            executor: Retry executor shared by all network calls
            redirect_resolver: Resolver for partner booking links
            redirect_cache: Cache cleared when a new session starts
            search_policy: Timeout/backoff for initiation and poll calls
            poll_interval: Seconds between poll attempts
            poll_max_attempts: Poll attempts before giving up
        """
        self.logger = logging.getLogger(__name__)
        self.gateway = gateway
        self.executor = executor
        self.redirect_resolver = redirect_resolver
        self.redirect_cache = redirect_cache
        self.search_policy = search_policy or RetryPolicy()
        self.poll_interval = poll_interval
        self.poll_max_attempts = poll_max_attempts

        self.current_handle: Optional[SearchHandle] = None
        self.active_poller: Optional[ResultsPoller] = None

    async def start_session(self) -> int:
        """
        Begin a fresh session: forget the current search and clear cached
        partner links. Returns the number of links removed.
        """
        self.cancel_polling()
        self.current_handle = None
        self.active_poller = None
        removed = await self.redirect_cache.clear_all()
        self.logger.info(f"New session started ({removed} cached redirect links cleared)")
        return removed

    @staticmethod
    def _as_request(params: Union[SearchRequest, Dict[str, Any]]) -> SearchRequest:
        if isinstance(params, SearchRequest):
            return params
        return SearchRequest.from_payload(params)

    async def start_search(
        self,
        params: Union[SearchRequest, Dict[str, Any]],
        user_ip: str = "127.0.0.1"
    ) -> SearchHandle:
        """
        Validate the parameters and initiate a search.

        Raises:
            SearchValidationError: Before any network call, for bad parameters
            OperationFailed: If initiation failed after retries
        """
        request = self._as_request(params)
        handle = await self.executor.execute(
            lambda: self.gateway.start_search(request, user_ip),
            self.search_policy,
            description=f"search {request.origin_code}-{request.destination_code}"
        )
        self.current_handle = handle
        return handle

    async def fetch_results_once(self, search_id: str) -> Dict[str, Any]:
        """One results fetch through the executor, without polling."""
        return await self.executor.execute(
            lambda: self.gateway.fetch_results(search_id),
            self.search_policy,
            description=f"results for {search_id}"
        )

    def create_poller(self, on_progress: Optional[ProgressCallback] = None) -> ResultsPoller:
        return ResultsPoller(
            self.gateway.fetch_results,
            self.executor,
            policy=self.search_policy,
            on_progress=on_progress
        )

    def pause_polling(self) -> None:
        if self.active_poller is not None:
            self.active_poller.pause()

    def resume_polling(self) -> None:
        if self.active_poller is not None:
            self.active_poller.resume()

    def cancel_polling(self) -> None:
        if self.active_poller is not None:
            self.active_poller.cancel()

    async def search(
        self,
        params: Union[SearchRequest, Dict[str, Any]],
        user_ip: str = "127.0.0.1",
        on_progress: Optional[ProgressCallback] = None
    ) -> Union[SearchResults, PollTimeoutReport]:
        """
        Run a complete search and return normalized offers.

        Returns:
            SearchResults with offers sorted by price, or a PollTimeoutReport
            when no results arrived in time

        Raises:
            SearchValidationError: Before any network call, for bad parameters
            OperationFailed: If the search could not be initiated
        """
        request = self._as_request(params)

        def notify(percent: float, message: str) -> None:
            if on_progress is not None:
                try:
                    on_progress(ProgressUpdate(percent=percent, message=message))
                except Exception as e:
                    self.logger.warning(f"Progress observer failed: {e}")

        notify(10, "Starting flight search...")
        handle = await self.start_search(request, user_ip)
        notify(30, "Checking the best offers for you...")
        self.active_poller = None

        if handle.immediate_results and has_proposals(handle.immediate_results):
            raw_results = dict(handle.immediate_results)
            raw_results.setdefault("search_id", handle.search_id)
            raw_results["search_id"] = raw_results["search_id"] or handle.search_id
        else:
            self.active_poller = self.create_poller(on_progress)
            raw_results = await self.active_poller.poll_for_results(
                handle.search_id,
                interval=self.poll_interval,
                max_attempts=self.poll_max_attempts
            )
            if isinstance(raw_results, PollTimeoutReport):
                return raw_results

        notify(80, "Organizing the best flights...")
        offers = normalize(raw_results)
        if not offers:
            self.logger.warning(f"Search {handle.search_id} returned no usable proposals")
            return PollTimeoutReport(
                reason="no_results",
                attempts=self.active_poller.attempts if self.active_poller else 0,
                message="No flights found for this route and date."
            )

        results = SearchResults(
            search_id=handle.search_id,
            origin=request.origin_code,
            destination=request.destination_code,
            departure_date=request.departure_date,
            return_date=request.return_date,
            adults=request.adults,
            children=request.children,
            infants=request.infants,
            offers=offers,
            total_results=len(offers),
            filters=build_filters(offers)
        )
        notify(100, "Flights found!")
        self.logger.info(f"Search {handle.search_id} produced {len(offers)} offers")
        return results

    async def resolve_redirect(self, offer: Union[FlightOffer, RedirectRequest]) -> RedirectDescriptor:
        """Partner booking link for a selected offer."""
        return await self.redirect_resolver.resolve(offer)
