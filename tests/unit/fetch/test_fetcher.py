"""Tests for calhub/fetch/fetcher.py"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from calhub.adapters.base import AdapterRegistry
from calhub.fetch.fetcher import TIMEOUT_MESSAGE, RetryingFetcher
from calhub.models import DateRange, SourceType
from tests.conftest import BASE_TIME, FakeAdapter, raw_event


@pytest.fixture
def date_range():
    return DateRange(BASE_TIME, BASE_TIME + timedelta(days=7))


@pytest.fixture
def adapter():
    return FakeAdapter()


@pytest.fixture
def fetcher(adapter):
    return RetryingFetcher(AdapterRegistry([adapter]), timeout=1.0, retry_attempts=3, retry_delay=0)


class TestBackoff:
    def test_exponential_delays(self):
        fetcher = RetryingFetcher(AdapterRegistry(), retry_delay=1.0)
        assert [fetcher.backoff_delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryingFetcher(AdapterRegistry(), retry_attempts=0)


class TestFetch:
    @pytest.mark.asyncio
    async def test_success_normalizes_events(self, fetcher, adapter, make_source, date_range):
        adapter.raw_events["src-a"] = [raw_event("1", "Yoga"), raw_event("2", "Pilates")]

        result = await fetcher.fetch(make_source("src-a"), date_range)

        assert result.success
        assert result.error is None
        assert [e.id for e in result.events] == ["src-a:1", "src-a:2"]
        assert all(e.source_id == "src-a" for e in result.events)
        assert result.fetch_time >= 0

    @pytest.mark.asyncio
    async def test_retries_transient_failure(self, fetcher, adapter, make_source, date_range):
        adapter.raw_events["src-a"] = [raw_event("1", "Yoga")]
        adapter.transient_failures["src-a"] = 2

        result = await fetcher.fetch(make_source("src-a"), date_range)

        assert result.success
        assert len(result.events) == 1
        assert adapter.calls == ["src-a", "src-a", "src-a"]

    @pytest.mark.asyncio
    async def test_gives_up_after_all_attempts(self, fetcher, adapter, make_source, date_range):
        adapter.errors["src-a"] = RuntimeError("503 Service Unavailable")

        result = await fetcher.fetch(make_source("src-a"), date_range)

        assert not result.success
        assert result.events == []
        assert result.error == "503 Service Unavailable"
        assert len(adapter.calls) == 3

    @pytest.mark.asyncio
    async def test_timeout_message(self, adapter, make_source, date_range):
        adapter.delay = 0.2
        fetcher = RetryingFetcher(AdapterRegistry([adapter]), timeout=0.01, retry_attempts=2, retry_delay=0)

        result = await fetcher.fetch(make_source("src-a"), date_range)

        assert not result.success
        assert result.error == TIMEOUT_MESSAGE

    @pytest.mark.asyncio
    async def test_unsupported_type_is_not_retried(self, fetcher, adapter, make_source, date_range):
        result = await fetcher.fetch(make_source("cal", SourceType.CALDAV), date_range)

        assert not result.success
        assert result.error == "No adapter available for source type: caldav"
        assert result.fetch_time == 0.0
        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_normalization_error_fails_attempt(self, fetcher, adapter, make_source, date_range):
        adapter.raw_events["src-a"] = [{"uid": "1"}]

        result = await fetcher.fetch(make_source("src-a"), date_range)

        assert not result.success
        assert result.error == "'title'"
        assert len(adapter.calls) == 3

    @pytest.mark.asyncio
    async def test_empty_message_uses_exception_type(self, fetcher, adapter, make_source, date_range):
        adapter.errors["src-a"] = ConnectionError()

        result = await fetcher.fetch(make_source("src-a"), date_range)

        assert result.error == "ConnectionError"

    @pytest.mark.asyncio
    async def test_sleeps_with_backoff_between_attempts(self, adapter, make_source, date_range):
        adapter.errors["src-a"] = RuntimeError("down")
        fetcher = RetryingFetcher(AdapterRegistry([adapter]), timeout=1.0, retry_attempts=3, retry_delay=0.5)

        with patch("calhub.fetch.fetcher.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            await fetcher.fetch(make_source("src-a"), date_range)

        assert [c.args[0] for c in mock_sleep.await_args_list] == [0.5, 1.0]
