# ==============================================================================
# Shared Test Fixtures
# ==============================================================================
"""
Pytest fixtures shared across all test modules.

Provides:
- In-memory Domain/Event/Session repositories implementing the base ABCs
- Static geo lookups (working and failing)
- fakeredis-backed live visitor tracker
- An AnalyticsService wired to the fakes with a controllable clock
- A `visit` helper that ingests page views for example.com
"""

import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest

from webstats.base.lookups import GeoLookup
from webstats.base.repositories import DomainRepository, EventRepository, SessionRepository
from webstats.core.errors import DependencyError, ValidationError
from webstats.core.models import (
    Domain,
    Event,
    EventType,
    GeoResult,
    GroupCount,
    RawEventInput,
    RequestMeta,
    Session,
)
from webstats.infrastructure.live_visitors import ValkeyLiveVisitorTracker
from webstats.infrastructure.referrer_names import StaticReferrerNameTable
from webstats.infrastructure.useragent import KeywordBotDetector, RuleBasedUserAgentParser
from webstats.service import AnalyticsService

FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)


# ==============================================================================
# In-Memory Repositories
# ==============================================================================


class InMemoryDomainRepository(DomainRepository):
    def __init__(self, events=None, sessions=None):
        self.domains: dict[str, Domain] = {}
        self._events = events
        self._sessions = sessions

    def get_by_name(self, name: str) -> Domain | None:
        return self.domains.get(name.lower())

    def create(self, name: str) -> Domain:
        name = name.lower()
        if name in self.domains:
            raise ValidationError(f"Domain '{name}' already exists")
        domain = Domain(id=str(uuid.uuid4()), name=name, created_at=FIXED_NOW)
        self.domains[name] = domain
        return domain

    def list_all(self) -> list[Domain]:
        return sorted(self.domains.values(), key=lambda d: d.name)

    def delete(self, domain_id: str) -> None:
        for store in (self._events, self._sessions):
            if store is not None:
                store.purge(domain_id)
        self.domains = {n: d for n, d in self.domains.items() if d.id != domain_id}


class InMemoryEventRepository(EventRepository):
    def __init__(self):
        self.events: dict[str, Event] = {}

    def insert(self, fields: dict) -> Event:
        event = Event(id=str(uuid.uuid4()), **fields)
        self.events[event.id] = event
        return event

    def purge(self, domain_id: str) -> None:
        self.events = {k: e for k, e in self.events.items() if e.domain_id != domain_id}

    def link_session(self, event_id: str, session_id: str) -> None:
        event = self.events[event_id]
        if event.session_id is None:
            self.events[event_id] = event.model_copy(update={"session_id": session_id})

    def _scan(self, domain_id, predicate, start, end):
        for event in sorted(self.events.values(), key=lambda e: e.created_at):
            if event.domain_id != domain_id:
                continue
            if not start <= event.created_at <= end:
                continue
            if predicate.matches(event.to_db_record()):
                yield event

    def query(self, domain_id, predicate, start, end, require_session=False) -> list[Event]:
        return [
            e
            for e in self._scan(domain_id, predicate, start, end)
            if e.session_id or not require_session
        ]

    def group_count(self, domain_id, predicate, start, end, column) -> list[GroupCount]:
        counts = Counter(
            e.to_db_record()[column] for e in self._scan(domain_id, predicate, start, end)
        )
        return [GroupCount(value=value, count=count) for value, count in counts.items()]

    def find_unstitched(self, domain_id: str | None, limit: int) -> list[Event]:
        pending = [
            e
            for e in self.events.values()
            if e.unique_visitor_id
            and e.session_id is None
            and (domain_id is None or e.domain_id == domain_id)
        ]
        return sorted(pending, key=lambda e: e.created_at)[:limit]

    def exists_for_domain(self, domain_id: str) -> bool:
        return any(e.domain_id == domain_id for e in self.events.values())


class InMemorySessionRepository(SessionRepository):
    def __init__(self, events: InMemoryEventRepository):
        self.sessions: dict[str, Session] = {}
        self._events = events

    def find_recent(self, visitor_id, domain_id, active_since, not_after) -> Session | None:
        candidates = [
            s
            for s in self.sessions.values()
            if s.unique_visitor_id == visitor_id
            and s.domain_id == domain_id
            and s.last_activity_at >= active_since
            and s.created_at <= not_after
        ]
        return max(candidates, key=lambda s: s.created_at, default=None)

    def create_for_event(self, visitor_id, domain_id, event_id, created_at, active_since):
        existing = self.find_recent(visitor_id, domain_id, active_since, created_at)
        if existing is not None:
            self.attach_event(existing.id, event_id, created_at)
            return existing
        session = Session(
            id=str(uuid.uuid4()),
            unique_visitor_id=visitor_id,
            domain_id=domain_id,
            created_at=created_at,
            last_activity_at=created_at,
        )
        self.sessions[session.id] = session
        self._events.link_session(event_id, session.id)
        return session

    def attach_event(self, session_id, event_id, event_created_at) -> None:
        session = self.sessions[session_id]
        last = max(session.last_activity_at, event_created_at)
        self.sessions[session_id] = session.model_copy(update={"last_activity_at": last})
        self._events.link_session(event_id, session_id)

    def purge(self, domain_id: str) -> None:
        self.sessions = {k: s for k, s in self.sessions.items() if s.domain_id != domain_id}

    def get_many(self, session_ids) -> dict[str, Session]:
        return {sid: self.sessions[sid] for sid in session_ids if sid in self.sessions}


# ==============================================================================
# Lookups
# ==============================================================================


class StaticGeoLookup(GeoLookup):
    """Resolves a fixed set of IPs; everything else is unknown."""

    def __init__(self, table: dict[str, GeoResult] | None = None):
        self.table = table or {
            "203.0.113.7": GeoResult(
                country="Germany",
                country_code="DE",
                region="Berlin",
                city="Berlin",
                latitude=52.52,
                longitude=13.405,
            ),
            "198.51.100.20": GeoResult(
                country="United States", country_code="US", region="Oregon", city="Portland"
            ),
        }

    def lookup(self, ip: str) -> GeoResult:
        return self.table.get(ip, GeoResult())


class FailingGeoLookup(GeoLookup):
    def lookup(self, ip: str) -> GeoResult:
        raise DependencyError("geo database unavailable")


class Clock:
    """Mutable clock passed to the service as a callable."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture()
def fake_redis():
    """A clean fakeredis instance for each test.

    Uses decode_responses=True to match the real tracker's client.
    """
    server = fakeredis.FakeServer()
    client = fakeredis.FakeRedis(server=server, decode_responses=True)
    yield client
    client.flushall()
    client.close()


@pytest.fixture()
def live_tracker(fake_redis):
    return ValkeyLiveVisitorTracker(client=fake_redis)


@pytest.fixture()
def domain_repo(event_repo, session_repo):
    return InMemoryDomainRepository(event_repo, session_repo)


@pytest.fixture()
def event_repo():
    return InMemoryEventRepository()


@pytest.fixture()
def session_repo(event_repo):
    return InMemorySessionRepository(event_repo)


@pytest.fixture()
def clock():
    return Clock()


@pytest.fixture()
def geo():
    return StaticGeoLookup()


@pytest.fixture()
def service(domain_repo, event_repo, session_repo, geo, clock):
    """AnalyticsService over the in-memory fakes (no live tracker)."""
    return AnalyticsService(
        domains=domain_repo,
        events=event_repo,
        sessions=session_repo,
        ua_parser=RuleBasedUserAgentParser(),
        bot_detector=KeywordBotDetector(),
        referrer_names=StaticReferrerNameTable(),
        geo=geo,
        clock=clock,
    )


@pytest.fixture()
def domain(service):
    """example.com, registered with the service."""
    return service.add_domain("example.com")


@pytest.fixture()
def visit(service, domain):
    """Ingest a page view on example.com and return the stored event.

    Usage: visit("/pricing", at=datetime(...), ip="...", user_agent="...", referrer="...")
    """

    def _visit(
        path: str = "/",
        at: datetime | None = None,
        ip: str = "203.0.113.7",
        user_agent: str = CHROME_UA,
        referrer: str | None = None,
    ) -> Event:
        raw = RawEventInput(
            type=EventType.PAGE_VIEW,
            href=f"https://example.com{path}",
            domain="example.com",
            referrer=referrer,
            created_at=at,
        )
        return service.ingest(raw, RequestMeta(ip=ip, user_agent=user_agent))

    return _visit
