"""
Event cache maintenance.

Usage:
    python -m calhub.cli --stats
    python -m calhub.cli --sweep
    python -m calhub.cli --invalidate-source city-events
    python -m calhub.cli --clear --db /tmp/calhub.db
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

from calhub.cache.event_cache import EventCache
from calhub.config_models import load_config
from calhub.logging_config import setup_logging


async def _run(args) -> dict:
    settings = load_config(args.config).cache
    db_path = args.db or settings.resolved_db_path()
    cache = EventCache(
        db_path,
        memory_ttl=settings.memory_ttl,
        persistent_ttl=settings.persistent_ttl,
        max_memory_events=settings.max_memory_events,
        cleanup_interval=settings.cleanup_interval,
    )

    try:
        if args.clear:
            await cache.clear()
            action = "clear"
        elif args.invalidate_source:
            await cache.invalidate_source(args.invalidate_source)
            action = f"invalidate {args.invalidate_source}"
        elif args.sweep:
            await cache.force_cleanup()
            action = "sweep"
        else:
            action = "stats"

        stats = await cache.get_stats()
    finally:
        await cache.close()

    return {"action": action, "db_path": str(db_path), "stats": stats.to_dict()}


def main():
    import argparse

    parser = argparse.ArgumentParser(description="Calendar Event Cache Maintenance")
    parser.add_argument("--db", type=Path, default=None, help="Cache database path")
    parser.add_argument("--config", type=Path, default=None, help="Config file (default: args/calhub.yaml)")
    parser.add_argument("--stats", action="store_true", help="Show cache statistics")
    parser.add_argument("--sweep", action="store_true", help="Remove expired records")
    parser.add_argument("--invalidate-source", metavar="ID", help="Drop every cached event from a source")
    parser.add_argument("--clear", action="store_true", help="Drop every cached event")
    parser.add_argument("--json", action="store_true", help="Output as JSON")

    args = parser.parse_args()
    setup_logging()

    result = asyncio.run(_run(args))

    if args.json:
        print(json.dumps(result, indent=2))
        return

    print(f"Cache: {result['db_path']} ({result['action']})")
    for name, value in result["stats"].items():
        print(f"  {name}: {value}")


if __name__ == "__main__":
    main()
