"""
Query engines built on top of the fetch orchestrator.

Components:
    availability.py: Interval-overlap conflict checks per time window
    search.py: Keyword / category / location filtering
"""

from calhub.query.availability import AvailabilityReport, SlotAvailability, check_availability
from calhub.query.search import search_events

__all__ = [
    "AvailabilityReport",
    "SlotAvailability",
    "check_availability",
    "search_events",
]
