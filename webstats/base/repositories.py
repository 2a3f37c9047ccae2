# ==============================================================================
# Repository Abstract Base Classes
# ==============================================================================
"""
Repository ABCs for data persistence.

These define the "what" (store an event, find a session) not the "how"
(SQL dialect, locking). Concrete implementations in infrastructure/ handle
the specifics.

Includes:
- DomainRepository: Tracked domains
- EventRepository: Page-view events, range scans and grouped counts
- SessionRepository: Session lookup and transactional creation

Implementations raise webstats.core.errors.StorageError on failure. The core
never retries storage calls.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from webstats.core.filters import Predicate
from webstats.core.models import Domain, Event, GroupCount, Session


class DomainRepository(ABC):
    """Repository for tracked domains."""

    @abstractmethod
    def get_by_name(self, name: str) -> Domain | None:
        """
        Look up a domain by its (lowercase) name.

        Returns:
            The domain, or None if it is not tracked
        """
        ...

    @abstractmethod
    def create(self, name: str) -> Domain:
        """Register a new domain and return it."""
        ...

    @abstractmethod
    def list_all(self) -> list[Domain]:
        """Return all domains ordered by name."""
        ...

    @abstractmethod
    def delete(self, domain_id: str) -> None:
        """
        Remove a domain together with its events and sessions.

        Everything is deleted in one transaction.
        """
        ...


class EventRepository(ABC):
    """Repository for page-view events."""

    @abstractmethod
    def insert(self, fields: dict) -> Event:
        """
        Persist a new event.

        Args:
            fields: Event fields without id (the store generates it)

        Returns:
            The stored event
        """
        ...

    @abstractmethod
    def query(
        self,
        domain_id: str,
        predicate: Predicate,
        start: datetime,
        end: datetime,
        require_session: bool = False,
    ) -> list[Event]:
        """
        Range scan of events on a domain.

        Args:
            domain_id: Domain to scan
            predicate: Compiled filter conditions
            start: Inclusive lower bound on created_at
            end: Inclusive upper bound on created_at
            require_session: Only return events with a session id

        Returns:
            Matching events ordered by created_at
        """
        ...

    @abstractmethod
    def group_count(
        self,
        domain_id: str,
        predicate: Predicate,
        start: datetime,
        end: datetime,
        column: str,
    ) -> list[GroupCount]:
        """
        Count matching events grouped by one column.

        Returns:
            One GroupCount per distinct value (None for NULL)
        """
        ...

    @abstractmethod
    def find_unstitched(self, domain_id: str | None, limit: int) -> list[Event]:
        """Events with a visitor id but no session id, oldest first."""
        ...

    @abstractmethod
    def exists_for_domain(self, domain_id: str) -> bool:
        """Check whether a domain has received any event."""
        ...


class SessionRepository(ABC):
    """Repository for visitor sessions."""

    @abstractmethod
    def find_recent(
        self,
        visitor_id: str,
        domain_id: str,
        active_since: datetime,
        not_after: datetime,
    ) -> Session | None:
        """
        Find the most recent open session for a visitor on a domain.

        Args:
            visitor_id: Unique visitor id
            domain_id: Domain the session must belong to
            active_since: Minimum last_activity_at
            not_after: Maximum created_at

        Returns:
            The most recently started matching session, or None
        """
        ...

    @abstractmethod
    def create_for_event(
        self,
        visitor_id: str,
        domain_id: str,
        event_id: str,
        created_at: datetime,
        active_since: datetime,
    ) -> Session:
        """
        Create a session starting at created_at and link the event to it.

        The insert and the event update happen in one transaction.
        Implementations that can serialize per visitor re-check for a session
        active since active_since inside the transaction and reuse it.
        """
        ...

    @abstractmethod
    def attach_event(self, session_id: str, event_id: str, event_created_at: datetime) -> None:
        """Link an event to a session and advance its last activity, atomically."""
        ...

    @abstractmethod
    def get_many(self, session_ids: list[str]) -> dict[str, Session]:
        """
        Get sessions by id.

        Returns:
            Dict mapping session id to session. Missing ids are omitted.
        """
        ...
