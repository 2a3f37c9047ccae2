# ==============================================================================
# Event Ingestion
# ==============================================================================
"""
Validate, enrich and persist one tracker event.

Validation (URL shape, host/domain match) happens before any lookup or write,
so rejected events leave no trace. Enrichment failures never reject an event:
geo and user-agent fields fall back to "Unknown".

Session stitching is not done here; see core/sessions.py.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from urllib.parse import parse_qs, urlsplit, urlunsplit

from webstats.base.lookups import BotDetector, GeoLookup, UserAgentParser
from webstats.base.repositories import DomainRepository, EventRepository
from webstats.core.errors import DependencyError, NotFoundError, ValidationError
from webstats.core.identity import VisitorIdentity
from webstats.core.models import (
    UNKNOWN,
    DeviceType,
    Event,
    GeoResult,
    ParsedUserAgent,
    RawEventInput,
    RequestMeta,
)
from webstats.core.periods import to_utc, utc_now

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")
UTM_FIELDS = ("utm_source", "utm_medium", "utm_campaign")

# Parser device classes mapped onto the three stored device types
MOBILE_CLASSES = frozenset({"mobile", "wearable"})
TABLET_CLASSES = frozenset({"tablet"})


# ==============================================================================
# URL Helpers
# ==============================================================================


def parse_href(href: str | None):
    """
    Split an href and check it is an absolute http(s) URL.

    Returns:
        urllib SplitResult

    Raises:
        ValidationError: If the href is missing or malformed
    """
    if not href or not href.strip():
        raise ValidationError("href is required")
    try:
        parts = urlsplit(href.strip())
        hostname = parts.hostname
        parts.port  # raises ValueError on a bad port
    except ValueError as e:
        raise ValidationError(f"Invalid href: {href!r}") from e
    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise ValidationError(f"Invalid href scheme: {href!r}")
    if not hostname:
        raise ValidationError(f"href has no host: {href!r}")
    return parts


def check_host(parts, domain: str) -> None:
    """
    Require the URL hostname to equal the declared domain (port ignored).

    Raises:
        ValidationError: On mismatch
    """
    if parts.hostname.lower() != domain:
        raise ValidationError(
            f"Host '{parts.hostname}' does not match declared domain '{domain}'"
        )


def canonicalize_href(parts) -> str:
    """
    Rebuild the href as https://host/path.

    Scheme, port, query, fragment and trailing slash are dropped so the
    result equals what the page filter builds from a path.
    """
    path = parts.path.rstrip("/") or "/"
    return urlunsplit(("https", parts.hostname.lower(), path, "", ""))


def extract_utm(query: str) -> dict[str, str | None]:
    """Pull UTM parameters from a query string; the first value wins."""
    params = parse_qs(query, keep_blank_values=False)
    return {field: params[field][0] if field in params else None for field in UTM_FIELDS}


def normalize_referrer(referrer: str | None) -> str | None:
    if referrer is None:
        return None
    referrer = referrer.strip()
    return referrer or None


def classify_device(device_class: str | None) -> DeviceType:
    """Map a parser device class onto Desktop/Mobile/Tablet."""
    if device_class:
        device_class = device_class.lower()
        if device_class in MOBILE_CLASSES:
            return DeviceType.MOBILE
        if device_class in TABLET_CLASSES:
            return DeviceType.TABLET
    return DeviceType.DESKTOP


def _or_unknown(value: str | None) -> str:
    return value if value else UNKNOWN


# ==============================================================================
# Ingestor
# ==============================================================================


class EventIngestor:
    """
    Turns a raw tracker payload into a stored Event.

    Collaborators are injected so tests can substitute in-memory fakes.
    """

    def __init__(
        self,
        domains: DomainRepository,
        events: EventRepository,
        identity: VisitorIdentity,
        geo: GeoLookup | None,
        ua_parser: UserAgentParser,
        bot_detector: BotDetector,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._domains = domains
        self._events = events
        self._identity = identity
        self._geo = geo
        self._ua_parser = ua_parser
        self._bot_detector = bot_detector
        self._clock = clock

    def ingest(self, raw: RawEventInput, meta: RequestMeta) -> Event:
        """
        Validate, enrich and store one event.

        Args:
            raw: Tracker payload
            meta: Client IP and User-Agent

        Returns:
            The stored event (session_id not yet set)

        Raises:
            ValidationError: Malformed href or host/domain mismatch
            NotFoundError: Declared domain is not tracked
            StorageError: The event could not be stored
        """
        domain_name = raw.domain.strip().lower()
        if not domain_name:
            raise ValidationError("domain is required")

        parts = parse_href(raw.href)
        check_host(parts, domain_name)
        href = canonicalize_href(parts)
        utm = extract_utm(parts.query)
        referrer = normalize_referrer(raw.referrer)

        domain = self._domains.get_by_name(domain_name)
        if domain is None:
            raise NotFoundError(f"Domain '{domain_name}' not found")

        created_at = to_utc(raw.created_at) if raw.created_at else self._clock()
        user_agent = meta.user_agent or ""

        fields = {
            "domain_id": domain.id,
            "type": raw.type.value,
            "href": href,
            "referrer": referrer,
            "created_at": created_at,
            "updated_at": created_at,
            "unique_visitor_id": self._identity.derive(
                domain_name, meta.ip, user_agent, created_at
            ),
            "session_id": None,
            "bot": self._detect_bot(user_agent),
            **utm,
            **self._geo_fields(meta.ip),
            **self._user_agent_fields(user_agent),
        }

        event = self._events.insert(fields)
        logger.debug("Stored event %s for %s (%s)", event.id, domain_name, href)
        return event

    def _geo_fields(self, ip: str) -> dict:
        geo = GeoResult()
        if self._geo is not None:
            try:
                geo = self._geo.lookup(ip)
            except DependencyError as e:
                logger.warning("Geo lookup failed for %s: %s", ip, e)
        return {
            "country": _or_unknown(geo.country),
            "country_code": _or_unknown(geo.country_code),
            "region": _or_unknown(geo.region),
            "city": _or_unknown(geo.city),
            "latitude": geo.latitude,
            "longitude": geo.longitude,
        }

    def _user_agent_fields(self, user_agent: str) -> dict:
        try:
            parsed = self._ua_parser.parse(user_agent)
        except DependencyError as e:
            logger.warning("User-agent parsing failed: %s", e)
            parsed = ParsedUserAgent()
        return {
            "browser": _or_unknown(parsed.browser),
            "browser_version": _or_unknown(parsed.browser_version),
            "os": _or_unknown(parsed.os),
            "os_version": _or_unknown(parsed.os_version),
            "device": classify_device(parsed.device).value,
            "device_vendor": _or_unknown(parsed.device_vendor),
            "device_model": _or_unknown(parsed.device_model),
            "engine": _or_unknown(parsed.engine),
            "engine_version": _or_unknown(parsed.engine_version),
            "cpu_architecture": _or_unknown(parsed.cpu_architecture),
        }

    def _detect_bot(self, user_agent: str) -> bool:
        try:
            return self._bot_detector.is_bot(user_agent)
        except DependencyError as e:
            logger.warning("Bot detection failed, assuming human: %s", e)
            return False
