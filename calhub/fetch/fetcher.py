"""
Retrying Fetcher

Wraps a single adapter call with a per-attempt timeout and exponential
backoff. Never raises: every outcome comes back as a FetchResult so the
orchestrator can isolate failures per source.

Backoff between attempts is ``retry_delay * 2 ** (attempt - 1)`` seconds.
An unsupported source type fails at once and is not retried.
"""

from __future__ import annotations

import asyncio
import logging
import time

from calhub.adapters.base import AdapterRegistry, UnsupportedSourceTypeError
from calhub.models import CalendarSource, DateRange, FetchResult

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Fetch timeout"


class RetryingFetcher:
    def __init__(
        self,
        registry: AdapterRegistry,
        timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
    ):
        """
        Args:
            registry: Adapter lookup by source type
            timeout: Seconds allowed per attempt
            retry_attempts: Total attempts before giving up
            retry_delay: Backoff base in seconds
        """
        if retry_attempts < 1:
            raise ValueError(f"retry_attempts must be at least 1, got {retry_attempts}")
        self.registry = registry
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay

    def backoff_delay(self, attempt: int) -> float:
        return self.retry_delay * (2 ** (attempt - 1))

    async def fetch(self, source: CalendarSource, date_range: DateRange) -> FetchResult:
        try:
            adapter = self.registry.get(source.type)
        except UnsupportedSourceTypeError as e:
            logger.warning(f"Skipping source '{source.id}': {e}")
            return FetchResult(source_id=source.id, success=False, error=str(e), fetch_time=0.0)

        start_time = time.monotonic()
        last_error = "Unknown error"

        for attempt in range(1, self.retry_attempts + 1):
            try:
                raw_events = await asyncio.wait_for(
                    adapter.fetch_events(source, date_range),
                    timeout=self.timeout,
                )
                events = [adapter.normalize_event(raw, source.id) for raw in raw_events]
                fetch_time = (time.monotonic() - start_time) * 1000

                logger.debug(
                    f"Fetched {len(events)} events from '{source.id}' "
                    f"(attempt {attempt}, {fetch_time:.0f}ms)"
                )
                return FetchResult(
                    source_id=source.id,
                    events=events,
                    success=True,
                    fetch_time=fetch_time,
                )
            except asyncio.TimeoutError:
                last_error = TIMEOUT_MESSAGE
            except Exception as e:
                last_error = str(e) or type(e).__name__

            if attempt < self.retry_attempts:
                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"Fetch from '{source.id}' failed (attempt {attempt}/{self.retry_attempts}): "
                    f"{last_error}; retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

        fetch_time = (time.monotonic() - start_time) * 1000
        logger.warning(
            f"Fetch from '{source.id}' failed after {self.retry_attempts} attempts: {last_error}"
        )
        return FetchResult(
            source_id=source.id,
            success=False,
            error=last_error,
            fetch_time=fetch_time,
        )
