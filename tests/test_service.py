# ==============================================================================
# Tests for the Analytics Service Facade
# ==============================================================================
"""
Unit tests for AnalyticsService domain management and build_service() wiring.
"""

import pytest
import redis

from webstats.core.errors import NotFoundError, ValidationError
from webstats.core.models import EventType, RawEventInput, RequestMeta
from webstats.infrastructure.live_visitors import ValkeyLiveVisitorTracker
from webstats.infrastructure.referrer_names import StaticReferrerNameTable
from webstats.infrastructure.repositories.postgresql import PostgreSQLRepository
from webstats.infrastructure.useragent import KeywordBotDetector, RuleBasedUserAgentParser
from webstats.service import AnalyticsService, build_service
from webstats.utils.config import GeoSettings, Settings, ValkeySettings

from conftest import CHROME_UA


class TestDomains:
    """Tests for add_domain(), list_domains() and resolve_domain()."""

    def test_add_normalizes_case(self, service):
        domain = service.add_domain("  Example.COM ")
        assert domain.name == "example.com"

    @pytest.mark.parametrize(
        "name", ["", "https://example.com", "example.com/path", "-bad.com", "exa mple.com"]
    )
    def test_rejects_non_hostnames(self, service, name):
        with pytest.raises(ValidationError):
            service.add_domain(name)

    def test_duplicate(self, service, domain):
        with pytest.raises(ValidationError, match="already exists"):
            service.add_domain("example.com")

    def test_list_sorted(self, service):
        service.add_domain("zeta.org")
        service.add_domain("alpha.net")
        assert [d.name for d in service.list_domains()] == ["alpha.net", "zeta.org"]

    def test_resolve_is_case_insensitive(self, service, domain):
        assert service.resolve_domain("EXAMPLE.com").id == domain.id

    def test_resolve_unknown(self, service):
        with pytest.raises(NotFoundError):
            service.resolve_domain("missing.example")


class TestRemoveDomain:
    def test_purges_events_and_sessions(self, service, domain, visit, event_repo, session_repo):
        other = service.add_domain("other.org")
        service.ingest(
            RawEventInput(type=EventType.PAGE_VIEW, href="https://other.org/", domain="other.org"),
            RequestMeta(ip="198.51.100.20", user_agent=CHROME_UA),
        )
        visit()
        visit("/pricing")

        removed = service.remove_domain("Example.com")

        assert removed.id == domain.id
        assert {e.domain_id for e in event_repo.events.values()} == {other.id}
        assert {s.domain_id for s in session_repo.sessions.values()} == {other.id}
        with pytest.raises(NotFoundError):
            service.resolve_domain("example.com")

    def test_unknown(self, service):
        with pytest.raises(NotFoundError, match="not found"):
            service.remove_domain("missing.example")


class TestIngestResult:
    """ingest() returns the stored event with its session."""

    def test_returned_event_has_session(self, visit, event_repo):
        event = visit()
        assert event.session_id is not None
        assert event_repo.events[event.id].session_id == event.session_id

    def test_live_tracker_outage_does_not_fail_ingest(
        self, domain_repo, event_repo, session_repo, geo, clock, caplog
    ):
        """A Valkey error is logged; the stored event is still returned once."""

        class UnreachableValkey:
            def zadd(self, *args, **kwargs):
                raise redis.ConnectionError("connection refused")

        service = AnalyticsService(
            domains=domain_repo,
            events=event_repo,
            sessions=session_repo,
            ua_parser=RuleBasedUserAgentParser(),
            bot_detector=KeywordBotDetector(),
            referrer_names=StaticReferrerNameTable(),
            geo=geo,
            live_tracker=ValkeyLiveVisitorTracker(client=UnreachableValkey()),
            clock=clock,
        )
        service.add_domain("example.com")
        raw = RawEventInput(
            type=EventType.PAGE_VIEW, href="https://example.com/", domain="example.com"
        )

        event = service.ingest(raw, RequestMeta(ip="203.0.113.7", user_agent="Mozilla/5.0"))

        assert list(event_repo.events) == [event.id]
        assert event.session_id is not None
        assert f"Live visitor update skipped for event {event.id}" in caplog.text


class TestClose:
    def test_closes_resources_that_support_it(self, service, domain_repo):
        closed = []
        domain_repo.close = lambda: closed.append("domains")
        service.close()
        assert closed == ["domains"]


class TestBuildService:
    """build_service() wiring without a database."""

    @pytest.fixture(autouse=True)
    def no_connect(self, monkeypatch):
        monkeypatch.setattr(PostgreSQLRepository, "connect", lambda self: None)

    def test_minimal_settings(self):
        service = build_service(Settings())
        assert service._live_tracker is None
        assert service.ingestor is not None
        assert service.stitcher.timeout.total_seconds() == 30 * 60

    def test_valkey_enabled(self):
        settings = Settings(valkey=ValkeySettings(enabled=True, host="cache", port=6380))
        service = build_service(settings)
        assert isinstance(service._live_tracker, ValkeyLiveVisitorTracker)

    def test_geo_configured(self, tmp_path):
        settings = Settings(geo=GeoSettings(database_path=tmp_path / "GeoLite2-City.mmdb"))
        service = build_service(settings)
        assert service.ingestor._geo is not None
