# ==============================================================================
# Session Stitching
# ==============================================================================
"""
Attach stored page-view events to visitor sessions.

A session groups one visitor's events on one domain. An event joins the most
recent session whose last activity is no more than the inactivity timeout
(30 minutes by default) before the event; otherwise it starts a new session
whose created_at is the event's created_at.

Sessions have no explicit state. A session is "closed" implicitly once the
timeout passes without a new event pointing at it.

Concurrency: two events for the same visitor arriving at once in an empty
window may both try to create a session. The PostgreSQL adapter serializes
creation per visitor with an advisory lock and re-checks inside the
transaction; other adapters only guarantee at least one session.
"""

import logging
from datetime import datetime, timedelta

from webstats.base.repositories import EventRepository, SessionRepository
from webstats.core.models import Event, EventType, Session

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MINUTES = 30


def is_session_expired(
    session: Session | None, event_created_at: datetime, timeout: timedelta
) -> bool:
    """
    Check if a session can no longer accept an event.

    Args:
        session: Candidate session, or None if the visitor has none
        event_created_at: Time of the new event
        timeout: Inactivity timeout

    Returns:
        True if there is no session, it started after the event, or the gap
        since its last activity exceeds the timeout
    """
    if session is None:
        return True
    if session.created_at > event_created_at:
        return True
    return event_created_at - session.last_activity_at > timeout


def stitch_events(
    events: list[Event],
    existing: dict[tuple[str, str], Session],
    timeout: timedelta,
) -> list[tuple[Session | None, list[Event]]]:
    """
    Group events into sessions in memory.

    Events without a visitor id are ignored. Events are sorted by created_at
    before grouping.

    Args:
        events: Events to group
        existing: Open session per (domain_id, visitor_id) before these events
        timeout: Inactivity timeout

    Returns:
        List of (session, events) runs in order of their first event. session
        is the existing session the run continues, or None for a new session.
    """
    runs: list[tuple[Session | None, list[Event]]] = []
    current: dict[tuple[str, str], tuple[datetime, list[Event]]] = {}

    for event in sorted(events, key=lambda e: e.created_at):
        if not event.unique_visitor_id:
            continue
        key = (event.domain_id, event.unique_visitor_id)

        if key in current:
            last_activity, run = current[key]
            if event.created_at - last_activity <= timeout:
                run.append(event)
                current[key] = (event.created_at, run)
                continue
        else:
            session = existing.get(key)
            if not is_session_expired(session, event.created_at, timeout):
                run = [event]
                runs.append((session, run))
                current[key] = (event.created_at, run)
                continue

        run = [event]
        runs.append((None, run))
        current[key] = (event.created_at, run)

    return runs


class SessionStitcher:
    """
    Finds or creates the session for each newly stored event.

    Storage narrows candidates with the same window rules that
    is_session_expired() applies.
    """

    def __init__(
        self,
        session_repo: SessionRepository,
        event_repo: EventRepository,
        timeout_minutes: int = DEFAULT_TIMEOUT_MINUTES,
    ):
        """
        Initialize the stitcher.

        Args:
            session_repo: Session storage
            event_repo: Event storage (used by the reconciliation pass)
            timeout_minutes: Session inactivity timeout in minutes
        """
        self._sessions = session_repo
        self._events = event_repo
        self.timeout = timedelta(minutes=timeout_minutes)

    def window_start(self, event_created_at: datetime) -> datetime:
        """Earliest last-activity time a session may have to accept the event."""
        return event_created_at - self.timeout

    def attach(self, event: Event) -> Session | None:
        """
        Attach an event to its session, creating the session if needed.

        Events that are not page views, have no visitor id (legacy rows) or are
        already stitched are skipped.

        Args:
            event: A stored event

        Returns:
            The session the event now belongs to, or None if skipped
        """
        if event.type != EventType.PAGE_VIEW or not event.unique_visitor_id:
            logger.debug("Skipping event %s: no visitor id", event.id)
            return None
        if event.session_id:
            logger.debug("Skipping event %s: already in session %s", event.id, event.session_id)
            return None

        active_since = self.window_start(event.created_at)
        session = self._sessions.find_recent(
            event.unique_visitor_id,
            event.domain_id,
            active_since=active_since,
            not_after=event.created_at,
        )

        if not is_session_expired(session, event.created_at, self.timeout):
            self._sessions.attach_event(session.id, event.id, event.created_at)
            logger.debug("Event %s joined session %s", event.id, session.id)
            return session

        session = self._sessions.create_for_event(
            visitor_id=event.unique_visitor_id,
            domain_id=event.domain_id,
            event_id=event.id,
            created_at=event.created_at,
            active_since=active_since,
        )
        logger.debug("Event %s is in session %s", event.id, session.id)
        return session

    def restitch_pending(self, domain_id: str | None = None, limit: int = 1000) -> int:
        """
        Attach events that were stored but never stitched.

        Events are processed oldest first so sessions grow in order.

        Args:
            domain_id: Restrict to one domain (None for all)
            limit: Maximum number of events to process

        Returns:
            Count of events attached
        """
        pending = self._events.find_unstitched(domain_id, limit)
        attached = 0
        for event in sorted(pending, key=lambda e: e.created_at):
            if self.attach(event) is not None:
                attached += 1
        logger.info("Re-stitched %d of %d pending events", attached, len(pending))
        return attached

    def plan_pending(self, domain_id: str | None = None, limit: int = 1000) -> dict:
        """
        Preview a reconciliation pass without writing.

        Sessions that are still open in storage are not consulted, so the
        number of new sessions is an upper bound.

        Returns:
            Dict with pending event count and the number of sessions they form
        """
        pending = self._events.find_unstitched(domain_id, limit)
        runs = stitch_events(pending, {}, self.timeout)
        return {"events": len(pending), "sessions": len(runs)}
