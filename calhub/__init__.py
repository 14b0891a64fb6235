"""
calhub: Multi-source calendar aggregation core

Fetches events from many independently-configured calendar sources, merges
them into one normalized timeline and answers range, keyword and
availability queries against it. Source failures degrade results, they never
take the caller down.

Components:
    models.py: Data models (CalendarSource, NormalizedEvent, DateRange, ...)
    config_models.py: Pydantic settings loaded from args/calhub.yaml
    logging_config.py: structlog setup
    adapters/: Adapter contract and registry (format-specific adapters live elsewhere)
    fetch/: Concurrency limiter, retrying fetcher, orchestrator, deduplicator
    cache/: Two-tier event cache (memory + SQLite)
    query/: Availability and search engines
    manager.py: CalendarManager facade
    cli.py: Cache maintenance command line

Usage:
    from calhub.config_models import load_config
    from calhub.manager import CalendarManager

    manager = CalendarManager.from_config(load_config())
    manager.register_adapter(MyICalAdapter())
    outcome = await manager.fetch_events(DateRange(start, end))
"""

from pathlib import Path


# Path constants
PROJECT_ROOT = Path(__file__).parent.parent
PACKAGE_ROOT = Path(__file__).parent
DATA_DIR = PROJECT_ROOT / "data"
ARGS_DIR = PROJECT_ROOT / "args"
CONFIG_PATH = ARGS_DIR / "calhub.yaml"

# Database paths
CACHE_DB_PATH = DATA_DIR / "calhub_cache.db"

__version__ = "0.1.0"

__all__ = [
    "PROJECT_ROOT",
    "PACKAGE_ROOT",
    "DATA_DIR",
    "ARGS_DIR",
    "CONFIG_PATH",
    "CACHE_DB_PATH",
    "__version__",
]
