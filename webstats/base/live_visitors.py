# ==============================================================================
# Live Visitor Tracker Abstract Base Class
# ==============================================================================
"""
Abstract interface for tracking which visitors were recently active.

This is NOT a repository. It is transient, TTL-bounded state kept next to the
relational store so "visitors right now" does not need a range scan.

Implementations: Valkey (sorted sets), in-memory, etc.
"""

from abc import ABC, abstractmethod
from datetime import datetime


class LiveVisitorTracker(ABC):
    """Recently active visitors per domain."""

    @abstractmethod
    def record(self, domain_id: str, visitor_id: str, at: datetime) -> None:
        """
        Record activity for a visitor.

        Args:
            domain_id: Domain the event belongs to
            visitor_id: Unique visitor id
            at: Event time

        Raises:
            DependencyError: If the tracker store is unavailable
        """
        ...

    @abstractmethod
    def count(self, domain_id: str, since: datetime) -> int:
        """
        Count distinct visitors active at or after since.

        Args:
            domain_id: Domain to count
            since: Start of the trailing window

        Returns:
            Number of distinct visitors
        """
        ...

