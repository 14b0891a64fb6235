"""calhub Test Suite

This package contains all tests for the calendar aggregation core.

Test organization:
- unit/: Unit tests for individual modules
  - fetch/: Limiter, retrying fetcher, orchestrator, deduplication
  - cache/: Memory tier, durable SQLite tier, two-tier EventCache
  - query/: Availability and search engines
- integration/: Multi-source flows through CalendarManager

Running tests:
    # All tests
    pytest

    # Specific module
    pytest tests/unit/cache/

    # With coverage
    pytest --cov=calhub --cov-report=term-missing
"""
