"""
Calendar adapter contract.

Format-specific adapters (iCal, CalDAV, Google) are supplied by the caller
and registered with the CalendarManager; only the interface lives here.
"""

from calhub.adapters.base import AdapterRegistry, CalendarAdapter, UnsupportedSourceTypeError

__all__ = [
    "AdapterRegistry",
    "CalendarAdapter",
    "UnsupportedSourceTypeError",
]
