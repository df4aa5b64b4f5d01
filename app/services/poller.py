"""
Results poller: repeatedly fetches search results until proposals arrive or
the attempt limit is reached.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx

from app.core.exceptions import FlightSearchError
from app.models.responses import PollTimeoutReport, ProgressUpdate
from app.services.executor import RetryExecutor, RetryPolicy

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressUpdate], Any]
ResultsFetcher = Callable[[str], Awaitable[Dict[str, Any]]]

PROGRESS_START = 30.0
PROGRESS_SPAN = 50.0


def has_proposals(result_set: Any) -> bool:
    """True when a result set holds at least one proposal."""
    if not isinstance(result_set, dict):
        return False
    proposals = result_set.get("proposals")
    return isinstance(proposals, list) and len(proposals) > 0


class ResultsPoller:
    """
    Polls the results endpoint through the retry executor.

    Attempts are strictly sequential. Polling can be paused and resumed from
    another task; resuming re-arms the full interval and keeps the attempt
    count. Cancelling stops polling and resolves with a "cancelled" report.
    """

    def __init__(
        self,
        fetch_results: ResultsFetcher,
        executor: RetryExecutor,
        policy: Optional[RetryPolicy] = None,
        on_progress: Optional[ProgressCallback] = None
    ):
        self.fetch_results = fetch_results
        self.executor = executor
        self.policy = policy
        self.on_progress = on_progress

        self.attempts = 0
        self._running = asyncio.Event()
        self._running.set()
        self._interrupted = asyncio.Event()
        self._cancelled = False

    @property
    def is_paused(self) -> bool:
        return not self._running.is_set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def pause(self) -> None:
        """Suspend polling after the attempt in progress, if any."""
        if self._running.is_set():
            logger.info("Polling paused")
        self._running.clear()
        self._interrupted.set()

    def resume(self) -> None:
        """Resume polling; the next attempt waits a full interval."""
        if not self._running.is_set():
            logger.info(f"Polling resumed after {self.attempts} attempt(s)")
        self._running.set()

    def cancel(self) -> None:
        """Stop polling for good."""
        self._cancelled = True
        self._interrupted.set()
        self._running.set()

    def _notify(self, percent: float, message: str, attempt: int, max_attempts: int) -> None:
        if self.on_progress is None:
            return
        update = ProgressUpdate(
            percent=min(100.0, max(0.0, percent)),
            message=message,
            attempt=attempt,
            max_attempts=max_attempts
        )
        try:
            self.on_progress(update)
        except Exception as e:
            # Observers are fire-and-forget and must not break polling
            logger.warning(f"Progress observer failed: {e}")

    async def _wait_interval(self, interval: float) -> None:
        """Sleep for ``interval``; a pause restarts the full interval after resume."""
        while not self._cancelled:
            await self._running.wait()
            if self._cancelled:
                return
            self._interrupted.clear()
            try:
                await asyncio.wait_for(self._interrupted.wait(), timeout=interval)
            except asyncio.TimeoutError:
                if self._running.is_set():
                    return
            # Interrupted by pause or cancel: loop to wait for resume

    async def poll_for_results(
        self,
        search_id: str,
        interval: float = 2.0,
        max_attempts: int = 10
    ) -> Union[Dict[str, Any], PollTimeoutReport]:
        """
        Poll until the result set has proposals.

        Args:
            search_id: Handle of the running search
            interval: Seconds to wait before each attempt
            max_attempts: Maximum number of attempts

        Returns:
            The first result set with proposals, or a PollTimeoutReport when
            the attempts run out or polling is cancelled
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        logger.info(f"Starting polling for search_id {search_id} (max {max_attempts} attempts)")

        while self.attempts < max_attempts:
            await self._wait_interval(interval)
            if self._cancelled:
                logger.info(f"Polling cancelled after {self.attempts} attempt(s)")
                return PollTimeoutReport(
                    reason="cancelled",
                    attempts=self.attempts,
                    message="Flight search was cancelled."
                )

            self.attempts += 1
            attempt = self.attempts
            try:
                result_set = await self.executor.execute(
                    lambda: self.fetch_results(search_id),
                    self.policy,
                    description=f"poll attempt {attempt} for {search_id}"
                )
            except (FlightSearchError, httpx.HTTPError) as e:
                logger.warning(f"Poll attempt {attempt} failed: {e}")
                result_set = None

            self._notify(
                PROGRESS_START + (attempt / max_attempts) * PROGRESS_SPAN,
                f"Searching flights (attempt {attempt})...",
                attempt,
                max_attempts
            )

            if has_proposals(result_set):
                logger.info(
                    f"Found {len(result_set['proposals'])} proposals on attempt {attempt}"
                )
                return result_set

        logger.warning(f"Maximum poll attempts reached without results for {search_id}")
        return PollTimeoutReport(reason="timeout", attempts=self.attempts)
