# ==============================================================================
# Core Domain Logic
# ==============================================================================
"""
Analytics domain logic with no framework or driver dependencies.

This module contains:
- Domain models and the error taxonomy
- Visitor identity derivation
- Period resolution and filter compilation

The collaborator-driven components (ingestion, sessions, aggregator,
referrers) depend on the ports in webstats.base and are imported from their
own modules.
"""

from webstats.core.errors import (
    AnalyticsError,
    DependencyError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from webstats.core.filters import FilterSet, Predicate, compile_filters
from webstats.core.identity import VisitorIdentity, derive_visitor_id
from webstats.core.models import Event, EventType, Session
from webstats.core.periods import TimeWindow, resolve_period

__all__ = [
    # Errors
    "AnalyticsError",
    "DependencyError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    # Models
    "Event",
    "EventType",
    "Session",
    # Logic
    "FilterSet",
    "Predicate",
    "TimeWindow",
    "VisitorIdentity",
    "compile_filters",
    "derive_visitor_id",
    "resolve_period",
]
