# ==============================================================================
# Base Abstract Classes
# ==============================================================================
"""
Abstract base classes defining the contracts between the analytics core and
its collaborators (ports-and-adapters architecture).

Concrete implementations live in webstats.infrastructure; tests provide
in-memory fakes.
"""

from webstats.base.live_visitors import LiveVisitorTracker
from webstats.base.lookups import BotDetector, GeoLookup, ReferrerNameTable, UserAgentParser
from webstats.base.repositories import DomainRepository, EventRepository, SessionRepository

__all__ = [
    "BotDetector",
    "DomainRepository",
    "EventRepository",
    "GeoLookup",
    "LiveVisitorTracker",
    "ReferrerNameTable",
    "SessionRepository",
    "UserAgentParser",
]
