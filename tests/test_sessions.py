# ==============================================================================
# Tests for Session Stitching
# ==============================================================================
"""
Unit tests for SessionStitcher, stitch_events() and is_session_expired().

Tests cover:
- The 30-minute inactivity window (inclusive at exactly 30 minutes)
- Separate sessions per visitor and per UTC day
- Out-of-order events
- Re-stitching events stored without a session, and its dry-run plan
- Stitching failures not losing the stored event
"""

from datetime import datetime, timedelta, timezone

import pytest

from webstats.base.repositories import EventRepository
from webstats.core.errors import StorageError
from webstats.core.models import Event, Session
from webstats.core.sessions import SessionStitcher, is_session_expired, stitch_events

TIMEOUT = timedelta(minutes=30)


def at(hour: int, minute: int = 0, day: int = 15) -> datetime:
    return datetime(2024, 3, day, hour, minute, tzinfo=timezone.utc)


def make_event(event_id: str, created_at: datetime, visitor: str | None = "v1") -> Event:
    return Event(
        id=event_id,
        domain_id="d1",
        href="https://example.com/",
        created_at=created_at,
        unique_visitor_id=visitor,
    )


def make_session(created_at: datetime, last_activity_at: datetime) -> Session:
    return Session(
        id="s1",
        unique_visitor_id="v1",
        domain_id="d1",
        created_at=created_at,
        last_activity_at=last_activity_at,
    )


# ==============================================================================
# is_session_expired
# ==============================================================================


class TestIsSessionExpired:
    """Tests for is_session_expired()."""

    def test_no_session(self):
        assert is_session_expired(None, at(10), TIMEOUT)

    def test_exactly_at_timeout_is_open(self):
        session = make_session(at(10), at(10))
        assert not is_session_expired(session, at(10, 30), TIMEOUT)

    def test_past_timeout_is_expired(self):
        session = make_session(at(10), at(10))
        assert is_session_expired(session, at(10, 31), TIMEOUT)

    def test_event_before_session_start(self):
        session = make_session(at(10), at(10, 5))
        assert is_session_expired(session, at(9, 55), TIMEOUT)


# ==============================================================================
# Ingest-time stitching
# ==============================================================================


class TestAttach:
    """Stitching through AnalyticsService.ingest()."""

    def test_chain_within_timeout_is_one_session(self, visit, session_repo):
        """00:10, 00:40 and 01:05 belong to one session."""
        first = visit(at=at(0, 10))
        second = visit(at=at(0, 40))
        third = visit(at=at(1, 5))

        assert first.session_id == second.session_id == third.session_id
        session = session_repo.sessions[first.session_id]
        assert session.created_at == at(0, 10)
        assert session.last_activity_at == at(1, 5)

    def test_stored_event_is_linked_by_session_write(self, visit, event_repo):
        """The session repository links the stored event; the event port has no separate update."""
        event = visit(at=at(10))

        assert event_repo.events[event.id].session_id == event.session_id
        assert not hasattr(EventRepository, "update_session_id")

    def test_gap_of_31_minutes_starts_new_session(self, visit, session_repo):
        first = visit(at=at(10))
        second = visit(at=at(10, 31))
        assert first.session_id != second.session_id
        assert len(session_repo.sessions) == 2
        assert session_repo.sessions[second.session_id].created_at == at(10, 31)

    def test_visitors_do_not_share_sessions(self, visit):
        first = visit(at=at(10), ip="203.0.113.7")
        second = visit(at=at(10, 1), ip="198.51.100.20")
        assert first.session_id != second.session_id

    def test_visitor_id_rotation_at_midnight(self, visit):
        """A new UTC day means a new visitor id and therefore a new session."""
        before = visit(at=at(23, 50, day=15))
        after = visit(at=at(0, 5, day=16))
        assert before.unique_visitor_id != after.unique_visitor_id
        assert before.session_id != after.session_id

    def test_late_event_inside_session(self, visit, session_repo):
        """An out-of-order event inside the window joins without moving activity back."""
        first = visit(at=at(10))
        visit(at=at(10, 20))
        late = visit(at=at(10, 10))
        assert late.session_id == first.session_id
        assert session_repo.sessions[first.session_id].last_activity_at == at(10, 20)

    def test_event_older_than_session_start(self, visit):
        first = visit(at=at(10))
        earlier = visit(at=at(9, 50))
        assert earlier.session_id != first.session_id

    def test_skips_event_without_visitor(self, session_repo, event_repo):
        stitcher = SessionStitcher(session_repo, event_repo)
        assert stitcher.attach(make_event("e1", at(10), visitor=None)) is None
        assert session_repo.sessions == {}

    def test_skips_already_stitched_event(self, session_repo, event_repo):
        stitcher = SessionStitcher(session_repo, event_repo)
        event = make_event("e1", at(10)).model_copy(update={"session_id": "s-existing"})
        assert stitcher.attach(event) is None

    def test_custom_timeout(self, session_repo, event_repo):
        stitcher = SessionStitcher(session_repo, event_repo, timeout_minutes=5)
        assert stitcher.window_start(at(10)) == at(9, 55)

    def test_stitch_failure_keeps_event(self, visit, session_repo, event_repo, monkeypatch):
        def broken(*args, **kwargs):
            raise StorageError("connection lost")

        monkeypatch.setattr(session_repo, "find_recent", broken)
        event = visit(at=at(10))

        assert event.session_id is None
        assert event.id in event_repo.events
        assert event_repo.find_unstitched(None, 10) == [event_repo.events[event.id]]


# ==============================================================================
# Reconciliation
# ==============================================================================


class TestRestitch:
    """Tests for restitch_pending() and its dry-run plan."""

    @pytest.fixture()
    def pending(self, event_repo, domain):
        """Four unstitched events: two runs for v1, one for v2."""
        for minute, visitor in [(0, "v1"), (20, "v1"), (55, "v1"), (5, "v2")]:
            event_repo.insert(
                {
                    "domain_id": domain.id,
                    "href": "https://example.com/",
                    "created_at": at(10, minute),
                    "unique_visitor_id": visitor,
                }
            )
        return event_repo

    def test_plan_does_not_write(self, service, pending, session_repo):
        plan = service.plan_restitch("example.com")
        assert plan == {"events": 4, "sessions": 3}
        assert session_repo.sessions == {}

    def test_restitch_attaches_everything(self, service, pending, session_repo):
        attached = service.restitch_pending("example.com")
        assert attached == 4
        assert len(session_repo.sessions) == 3
        assert pending.find_unstitched(None, 100) == []

    def test_restitch_respects_limit(self, service, pending):
        assert service.restitch_pending(limit=2) == 2
        assert len(pending.find_unstitched(None, 100)) == 2

    def test_restitch_is_idempotent(self, service, pending, session_repo):
        service.restitch_pending()
        assert service.restitch_pending() == 0
        assert len(session_repo.sessions) == 3


# ==============================================================================
# stitch_events
# ==============================================================================


class TestStitchEvents:
    """Tests for the in-memory grouping helper."""

    def test_groups_by_gap(self):
        events = [make_event("a", at(10)), make_event("b", at(10, 30)), make_event("c", at(11, 1))]
        runs = stitch_events(events, {}, TIMEOUT)
        assert [[e.id for e in run] for _, run in runs] == [["a", "b"], ["c"]]
        assert all(session is None for session, _ in runs)

    def test_sorts_input(self):
        events = [make_event("late", at(10, 20)), make_event("early", at(10))]
        runs = stitch_events(events, {}, TIMEOUT)
        assert [e.id for e in runs[0][1]] == ["early", "late"]

    def test_continues_existing_session(self):
        existing = {("d1", "v1"): make_session(at(9, 30), at(9, 50))}
        runs = stitch_events([make_event("a", at(10, 10))], existing, TIMEOUT)
        session, run = runs[0]
        assert session is not None and session.id == "s1"
        assert [e.id for e in run] == ["a"]

    def test_ignores_events_without_visitor(self):
        assert stitch_events([make_event("a", at(10), visitor=None)], {}, TIMEOUT) == []
