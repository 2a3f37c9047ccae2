# ==============================================================================
# Tests for Event Ingestion
# ==============================================================================
"""
Unit tests for EventIngestor and its URL helpers.

Tests cover:
- Rejection of malformed hrefs and host/domain mismatches before any write
- Canonical href (no query, fragment or trailing slash)
- UTM parameter extraction
- Geo and user-agent enrichment, including degraded lookups
- Visitor id derivation from the event time
"""

from datetime import datetime, timezone

import pytest

from webstats.core.errors import NotFoundError, ValidationError
from webstats.core.identity import VisitorIdentity, derive_visitor_id
from webstats.core.ingestion import (
    EventIngestor,
    canonicalize_href,
    classify_device,
    extract_utm,
    parse_href,
)
from webstats.core.models import DeviceType, EventType, RawEventInput, RequestMeta
from webstats.infrastructure.useragent import KeywordBotDetector, RuleBasedUserAgentParser

from conftest import CHROME_UA, FIXED_NOW, FailingGeoLookup

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_3 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.3 Mobile/15E148 Safari/604.1"
)


def raw_event(href: str, domain: str = "example.com", **kwargs) -> RawEventInput:
    return RawEventInput(type=EventType.PAGE_VIEW, href=href, domain=domain, **kwargs)


# ==============================================================================
# URL Helpers
# ==============================================================================


class TestUrlHelpers:
    """Tests for parse_href(), canonicalize_href() and extract_utm()."""

    @pytest.mark.parametrize(
        "href",
        ["", "   ", "example.com/about", "ftp://example.com/file", "https://", "https://x:99999/"],
    )
    def test_invalid_hrefs(self, href):
        with pytest.raises(ValidationError):
            parse_href(href)

    def test_canonical_href_drops_query_fragment_and_slash(self):
        parts = parse_href("HTTPS://Example.com/blog/?page=2#comments")
        assert canonicalize_href(parts) == "https://example.com/blog"

    def test_canonical_root_keeps_slash(self):
        assert canonicalize_href(parse_href("https://example.com")) == "https://example.com/"

    def test_canonical_href_unifies_scheme_and_drops_port(self):
        parts = parse_href("http://example.com:8080/docs/")
        assert canonicalize_href(parts) == "https://example.com/docs"

    def test_extract_utm_first_value_wins(self):
        utm = extract_utm("utm_source=newsletter&utm_source=other&utm_medium=email&x=1")
        assert utm == {"utm_source": "newsletter", "utm_medium": "email", "utm_campaign": None}

    @pytest.mark.parametrize(
        "device_class, expected",
        [
            ("mobile", DeviceType.MOBILE),
            ("wearable", DeviceType.MOBILE),
            ("Tablet", DeviceType.TABLET),
            ("smarttv", DeviceType.DESKTOP),
            (None, DeviceType.DESKTOP),
        ],
    )
    def test_classify_device(self, device_class, expected):
        assert classify_device(device_class) == expected


# ==============================================================================
# Validation
# ==============================================================================


class TestValidation:
    """Rejected events never reach storage."""

    def test_host_mismatch_is_rejected(self, service, domain, event_repo):
        raw = raw_event("https://evil.com/steal")
        with pytest.raises(ValidationError, match="does not match"):
            service.ingest(raw, RequestMeta(ip="203.0.113.7", user_agent=CHROME_UA))
        assert event_repo.events == {}

    def test_subdomain_is_a_mismatch(self, service, domain, event_repo):
        with pytest.raises(ValidationError):
            service.ingest(raw_event("https://blog.example.com/"), RequestMeta(ip="203.0.113.7"))
        assert event_repo.events == {}

    def test_port_is_ignored_for_host_check(self, service, domain):
        event = service.ingest(
            raw_event("https://example.com:8443/"), RequestMeta(ip="203.0.113.7")
        )
        assert event.href == "https://example.com/"

    def test_unknown_domain(self, service, event_repo):
        with pytest.raises(NotFoundError):
            service.ingest(raw_event("https://other.com/", "other.com"), RequestMeta(ip="1.2.3.4"))
        assert event_repo.events == {}

    def test_bad_scheme_is_rejected(self, service, domain, event_repo):
        with pytest.raises(ValidationError):
            service.ingest(raw_event("javascript:alert(1)"), RequestMeta(ip="203.0.113.7"))
        assert event_repo.events == {}


# ==============================================================================
# Enrichment
# ==============================================================================


class TestEnrichment:
    """Stored events carry geo, user-agent, UTM and visitor fields."""

    def test_stores_canonical_href_and_utm(self, visit):
        event = visit("/landing/?utm_source=newsletter&utm_campaign=spring#hero")
        assert event.href == "https://example.com/landing"
        assert event.utm_source == "newsletter"
        assert event.utm_medium is None
        assert event.utm_campaign == "spring"

    def test_geo_fields(self, visit):
        event = visit(ip="203.0.113.7")
        assert (event.country, event.country_code, event.city) == ("Germany", "DE", "Berlin")
        assert event.latitude == pytest.approx(52.52)

    def test_unresolved_ip_is_unknown(self, visit):
        event = visit(ip="192.0.2.1")
        assert event.country == "Unknown"
        assert event.city == "Unknown"
        assert event.latitude is None

    def test_user_agent_fields(self, visit):
        event = visit(user_agent=CHROME_UA)
        assert event.browser == "Chrome"
        assert event.browser_version == "122.0.0.0"
        assert event.os == "Windows"
        assert event.device == DeviceType.DESKTOP
        assert event.cpu_architecture == "amd64"
        assert event.bot is False

    def test_mobile_device(self, visit):
        event = visit(user_agent=IPHONE_UA)
        assert event.device == DeviceType.MOBILE
        assert event.os == "iOS"
        assert event.device_vendor == "Apple"

    def test_bot_is_flagged(self, visit):
        event = visit(user_agent="Mozilla/5.0 (compatible; Googlebot/2.1)")
        assert event.bot is True

    def test_blank_referrer_is_none(self, visit):
        assert visit(referrer="   ").referrer is None

    def test_defaults_to_clock_time(self, visit):
        assert visit().created_at == FIXED_NOW

    def test_visitor_id_uses_event_day(self, visit):
        at = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)
        event = visit(at=at, ip="203.0.113.7", user_agent=CHROME_UA)
        assert event.unique_visitor_id == derive_visitor_id(
            "example.com", "203.0.113.7", CHROME_UA, at
        )

    def test_geo_failure_degrades_to_unknown(self, domain_repo, event_repo, domain):
        ingestor = EventIngestor(
            domains=domain_repo,
            events=event_repo,
            identity=VisitorIdentity(),
            geo=FailingGeoLookup(),
            ua_parser=RuleBasedUserAgentParser(),
            bot_detector=KeywordBotDetector(),
            clock=lambda: FIXED_NOW,
        )
        event = ingestor.ingest(
            raw_event("https://example.com/"), RequestMeta(ip="203.0.113.7", user_agent=CHROME_UA)
        )
        assert event.country == "Unknown"
        assert event.region == "Unknown"
        assert event.browser == "Chrome"
        assert event.id in event_repo.events
