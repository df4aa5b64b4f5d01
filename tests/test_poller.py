"""
Unit tests for the results poller.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock

from app.core.exceptions import UpstreamHttpError
from app.models.responses import PollTimeoutReport
from app.services.executor import RetryExecutor, RetryPolicy
from app.services.poller import ResultsPoller, has_proposals
from tests.fixtures import TravelpayoutsFixtures


NOT_READY = {"search_id": TravelpayoutsFixtures.SEARCH_ID, "proposals": []}
READY = {"search_id": TravelpayoutsFixtures.SEARCH_ID, "proposals": [TravelpayoutsFixtures.proposal()]}


def make_poller(fetch, on_progress=None) -> ResultsPoller:
    return ResultsPoller(
        fetch,
        RetryExecutor(sleep=AsyncMock()),
        policy=RetryPolicy(timeout=1, max_retries=0),
        on_progress=on_progress,
    )


class TestHasProposals:
    """Test the readiness predicate."""

    @pytest.mark.parametrize("result_set,expected", [
        (READY, True),
        (NOT_READY, False),
        ({}, False),
        (None, False),
        ([READY], False),
        ({"proposals": "many"}, False),
    ])
    def test_has_proposals(self, result_set, expected):
        assert has_proposals(result_set) is expected


class TestResultsPoller:
    """Test cases for ResultsPoller."""

    @pytest.mark.asyncio
    async def test_success_on_third_attempt(self):
        """Test that polling stops at the first result set with proposals."""
        fetch = AsyncMock(side_effect=[NOT_READY, NOT_READY, READY])
        poller = make_poller(fetch)

        result = await poller.poll_for_results(TravelpayoutsFixtures.SEARCH_ID, interval=0.01, max_attempts=5)

        assert result == READY
        assert fetch.call_count == 3
        assert poller.attempts == 3
        fetch.assert_called_with(TravelpayoutsFixtures.SEARCH_ID)

    @pytest.mark.asyncio
    async def test_exhaustion(self):
        """Test that running out of attempts yields a timeout report."""
        fetch = AsyncMock(return_value=NOT_READY)
        poller = make_poller(fetch)

        result = await poller.poll_for_results("s1", interval=0.01, max_attempts=3)

        assert isinstance(result, PollTimeoutReport)
        assert result.success is False
        assert result.reason == "timeout"
        assert result.attempts == 3
        assert fetch.call_count == 3

    @pytest.mark.asyncio
    async def test_failed_attempt_counts(self):
        """Test that a failed fetch counts as an attempt and polling continues."""
        fetch = AsyncMock(side_effect=[UpstreamHttpError(502, body="Bad Gateway"), READY])
        poller = make_poller(fetch)

        result = await poller.poll_for_results("s1", interval=0.01, max_attempts=3)

        assert result == READY
        assert poller.attempts == 2

    @pytest.mark.asyncio
    async def test_interval_waited_before_each_attempt(self):
        """Test the delay before every attempt, the first included."""
        fetch = AsyncMock(return_value=NOT_READY)
        poller = make_poller(fetch)
        loop = asyncio.get_running_loop()

        started = loop.time()
        await poller.poll_for_results("s1", interval=0.05, max_attempts=2)

        assert loop.time() - started >= 0.1 - 0.01

    @pytest.mark.asyncio
    async def test_progress_updates(self):
        """Test that progress moves from 30 towards 80 percent."""
        updates = []
        fetch = AsyncMock(side_effect=[NOT_READY, READY])
        poller = make_poller(fetch, on_progress=updates.append)

        await poller.poll_for_results("s1", interval=0.01, max_attempts=4)

        assert [u.attempt for u in updates] == [1, 2]
        assert [u.percent for u in updates] == [42.5, 55.0]
        assert updates[0].message == "Searching flights (attempt 1)..."
        assert updates[0].max_attempts == 4

    @pytest.mark.asyncio
    async def test_failing_observer_ignored(self):
        """Test that an exception in the progress observer does not stop polling."""
        def broken_observer(update):
            raise RuntimeError("UI gone")

        fetch = AsyncMock(side_effect=[NOT_READY, READY])
        poller = make_poller(fetch, on_progress=broken_observer)

        assert await poller.poll_for_results("s1", interval=0.01, max_attempts=3) == READY

    @pytest.mark.asyncio
    async def test_pause_and_resume(self):
        """Test that a paused poller makes no attempts until resumed."""
        fetch = AsyncMock(return_value=NOT_READY)
        poller = make_poller(fetch)

        poller.pause()
        task = asyncio.ensure_future(poller.poll_for_results("s1", interval=0.01, max_attempts=2))
        await asyncio.sleep(0.05)

        assert poller.is_paused is True
        assert fetch.call_count == 0

        poller.resume()
        result = await asyncio.wait_for(task, timeout=1)

        assert isinstance(result, PollTimeoutReport)
        assert fetch.call_count == 2

    @pytest.mark.asyncio
    async def test_pause_keeps_attempt_count(self):
        """Test that pausing mid-poll resumes with the same attempt count."""
        fetch = AsyncMock(return_value=NOT_READY)
        poller = make_poller(fetch)

        task = asyncio.ensure_future(poller.poll_for_results("s1", interval=0.02, max_attempts=3))
        while fetch.call_count < 1:
            await asyncio.sleep(0.005)
        poller.pause()
        await asyncio.sleep(0.06)
        paused_calls = fetch.call_count

        poller.resume()
        result = await asyncio.wait_for(task, timeout=1)

        assert paused_calls <= 2
        assert result.attempts == 3
        assert fetch.call_count == 3

    @pytest.mark.asyncio
    async def test_cancel(self):
        """Test that cancelling resolves with a cancelled report."""
        fetch = AsyncMock(return_value=NOT_READY)
        poller = make_poller(fetch)

        task = asyncio.ensure_future(poller.poll_for_results("s1", interval=10, max_attempts=5))
        await asyncio.sleep(0.01)
        poller.cancel()
        result = await asyncio.wait_for(task, timeout=1)

        assert result.reason == "cancelled"
        assert result.success is False
        assert poller.is_cancelled is True
        fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_while_paused(self):
        fetch = AsyncMock(return_value=NOT_READY)
        poller = make_poller(fetch)
        poller.pause()

        task = asyncio.ensure_future(poller.poll_for_results("s1", interval=0.01, max_attempts=5))
        await asyncio.sleep(0.02)
        poller.cancel()

        assert (await asyncio.wait_for(task, timeout=1)).reason == "cancelled"

    @pytest.mark.asyncio
    async def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            await make_poller(AsyncMock()).poll_for_results("s1", max_attempts=0)
