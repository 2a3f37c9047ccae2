# ==============================================================================
# Error Taxonomy
# ==============================================================================
"""
Exceptions raised by the analytics core and its adapters.

- ValidationError: malformed input rejected before any write (4xx-equivalent)
- NotFoundError: unknown domain (4xx-equivalent)
- DependencyError: geo/user-agent lookup failure, degraded to "Unknown" values
- StorageError: storage failure, propagated unchanged and never retried here
"""


class AnalyticsError(Exception):
    """Base class for all webstats errors."""


class ValidationError(AnalyticsError):
    """Input is malformed or inconsistent and was rejected."""


class NotFoundError(AnalyticsError):
    """A referenced resource (usually a domain) does not exist."""


class DependencyError(AnalyticsError):
    """An enrichment collaborator (geo, user-agent) failed."""


class StorageError(AnalyticsError):
    """The storage collaborator failed."""
