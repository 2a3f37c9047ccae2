# ==============================================================================
# Analytics Service Facade
# ==============================================================================
"""
Single entry point for callers (an HTTP layer, the CLI, jobs).

AnalyticsService resolves domain names, applies period/filter parsing and
delegates to the core components:

    ingest()              -> EventIngestor, then SessionStitcher, live tracker
    time_series()         -> PeriodResolver + FilterCompiler -> Aggregator
    breakdown()           -> PeriodResolver + FilterCompiler -> Aggregator
    live_visitor_count()  -> Aggregator
    is_installed()        -> Aggregator
    restitch_pending()    -> SessionStitcher
    add_domain(), list_domains(), remove_domain() -> DomainRepository

build_service() wires the production adapters from Settings.
"""

import logging
import re
from collections.abc import Callable
from datetime import datetime

from webstats.base.live_visitors import LiveVisitorTracker
from webstats.base.lookups import BotDetector, GeoLookup, ReferrerNameTable, UserAgentParser
from webstats.base.repositories import DomainRepository, EventRepository, SessionRepository
from webstats.core.aggregator import Aggregator
from webstats.core.errors import DependencyError, NotFoundError, ValidationError
from webstats.core.filters import FilterCompiler, FilterSet
from webstats.core.identity import VisitorIdentity
from webstats.core.ingestion import EventIngestor
from webstats.core.models import (
    BreakdownRow,
    Dimension,
    Domain,
    Event,
    RawEventInput,
    RequestMeta,
    TimeSeriesPoint,
)
from webstats.core.periods import DEFAULT_LAUNCH_DATE, PeriodResolver, TimeWindow, utc_now
from webstats.core.referrers import ReferrerNormalizer
from webstats.core.sessions import DEFAULT_TIMEOUT_MINUTES, SessionStitcher
from webstats.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Bare hostname: labels of letters, digits and hyphens, e.g. "example.com"
DOMAIN_NAME = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)*$")


class AnalyticsService:
    """
    Facade over ingestion, session stitching and aggregation.

    Callers are expected to apply their own defaults: a FilterSet without a
    period or date is rejected rather than silently widened.
    """

    def __init__(
        self,
        domains: DomainRepository,
        events: EventRepository,
        sessions: SessionRepository,
        ua_parser: UserAgentParser,
        bot_detector: BotDetector,
        referrer_names: ReferrerNameTable,
        geo: GeoLookup | None = None,
        live_tracker: LiveVisitorTracker | None = None,
        identity: VisitorIdentity | None = None,
        launch_date: datetime = DEFAULT_LAUNCH_DATE,
        session_timeout_minutes: int = DEFAULT_TIMEOUT_MINUTES,
        live_window_seconds: int = 60,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._domains = domains
        self._live_tracker = live_tracker
        self._periods = PeriodResolver(launch_date)
        self._filters = FilterCompiler()
        self._closeables = [domains, events, sessions, geo]

        self.ingestor = EventIngestor(
            domains=domains,
            events=events,
            identity=identity or VisitorIdentity(),
            geo=geo,
            ua_parser=ua_parser,
            bot_detector=bot_detector,
            clock=clock,
        )
        self.stitcher = SessionStitcher(sessions, events, timeout_minutes=session_timeout_minutes)
        self.aggregator = Aggregator(
            events=events,
            sessions=sessions,
            referrers=ReferrerNormalizer(referrer_names),
            live_tracker=live_tracker,
            clock=clock,
            live_window_seconds=live_window_seconds,
        )

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def resolve_domain(self, name: str) -> Domain:
        """
        Look up a tracked domain by name.

        Raises:
            NotFoundError: If the domain is not tracked
        """
        domain = self._domains.get_by_name(name.strip().lower())
        if domain is None:
            raise NotFoundError(f"Domain '{name}' not found")
        return domain

    def resolve_window(self, filters: FilterSet) -> TimeWindow:
        """
        Resolve the filters' period and date into a window.

        Raises:
            ValidationError: If period or date is missing or malformed
        """
        if not filters.period or filters.date is None:
            raise ValidationError("Both period and date are required")
        return self._periods.resolve(filters.period, filters.date)

    # ==========================================================================
    # Operations
    # ==========================================================================

    def add_domain(self, name: str) -> Domain:
        """
        Start tracking a domain.

        Raises:
            ValidationError: If the name is not a bare hostname or already exists
        """
        name = name.strip().lower()
        if not DOMAIN_NAME.match(name):
            raise ValidationError(f"Invalid domain name: {name!r}")
        return self._domains.create(name)

    def list_domains(self) -> list[Domain]:
        return self._domains.list_all()

    def remove_domain(self, name: str) -> Domain:
        """
        Stop tracking a domain and delete its events and sessions.

        Returns:
            The removed domain

        Raises:
            NotFoundError: If the domain is not tracked
        """
        domain = self.resolve_domain(name)
        self._domains.delete(domain.id)
        logger.info("Removed domain %s", domain.name)
        return domain

    def ingest(self, raw: RawEventInput, meta: RequestMeta) -> Event:
        """
        Store an event and attach it to a session.

        A stitching failure is logged and does not undo the stored event;
        `webstats sessions restitch` picks it up later. A live tracker outage
        is logged and otherwise ignored.

        Returns:
            The stored event
        """
        event = self.ingestor.ingest(raw, meta)

        try:
            session = self.stitcher.attach(event)
        except Exception:
            logger.exception("Session stitching failed for event %s", event.id)
            session = None
        if session is not None:
            event = event.model_copy(update={"session_id": session.id})

        if self._live_tracker is not None and event.unique_visitor_id and not event.bot:
            try:
                self._live_tracker.record(
                    event.domain_id, event.unique_visitor_id, event.created_at
                )
            except DependencyError as e:
                logger.warning("Live visitor update skipped for event %s: %s", event.id, e)

        return event

    def time_series(self, domain: str, filters: FilterSet) -> list[TimeSeriesPoint]:
        """Per-bucket views, visitors, sessions, views/session and bounce rate."""
        record = self.resolve_domain(domain)
        window = self.resolve_window(filters)
        predicate = self._filters.compile(record.name, filters)
        return self.aggregator.time_series(record.id, window, predicate)

    def breakdown(
        self, domain: str, dimension: str | Dimension, filters: FilterSet
    ) -> list[BreakdownRow]:
        """Ranked counts for one dimension."""
        record = self.resolve_domain(domain)
        window = self.resolve_window(filters)
        predicate = self._filters.compile(record.name, filters)
        return self.aggregator.breakdown(record.id, dimension, window, predicate, filters)

    def live_visitor_count(self, domain: str) -> int:
        """Distinct visitors active in the trailing live window."""
        return self.aggregator.live_visitor_count(self.resolve_domain(domain).id)

    def is_installed(self, domain: str) -> bool:
        """True once the domain has reported at least one event."""
        return self.aggregator.has_events(self.resolve_domain(domain).id)

    def restitch_pending(self, domain: str | None = None, limit: int = 1000) -> int:
        """Attach stored events that have no session yet."""
        domain_id = self.resolve_domain(domain).id if domain else None
        return self.stitcher.restitch_pending(domain_id, limit)

    def plan_restitch(self, domain: str | None = None, limit: int = 1000) -> dict:
        """Preview restitch_pending() without writing."""
        domain_id = self.resolve_domain(domain).id if domain else None
        return self.stitcher.plan_pending(domain_id, limit)

    def close(self) -> None:
        """Release adapter resources (connections, readers)."""
        for resource in self._closeables:
            close = getattr(resource, "close", None)
            if close is not None:
                close()


def build_service(settings: Settings | None = None) -> AnalyticsService:
    """
    Wire an AnalyticsService with the production adapters.

    PostgreSQL repositories are connected before returning. The Valkey
    tracker and GeoIP lookup are only created when configured.

    Args:
        settings: Application settings. If None, uses get_settings().
    """
    from webstats.infrastructure import (
        GeoIP2Lookup,
        KeywordBotDetector,
        PostgreSQLDomainRepository,
        PostgreSQLEventRepository,
        PostgreSQLSessionRepository,
        RuleBasedUserAgentParser,
        StaticReferrerNameTable,
        ValkeyLiveVisitorTracker,
    )

    settings = settings or get_settings()

    domains = PostgreSQLDomainRepository(settings)
    events = PostgreSQLEventRepository(settings)
    sessions = PostgreSQLSessionRepository(settings)
    for repo in (domains, events, sessions):
        repo.connect()

    live_tracker = None
    if settings.valkey.enabled:
        live_tracker = ValkeyLiveVisitorTracker(url=settings.valkey.url)

    geo = None
    if settings.geo.is_configured:
        geo = GeoIP2Lookup(settings.geo.database_path)
    else:
        logger.info("GEO_DATABASE_PATH not set; locations will be stored as Unknown")

    return AnalyticsService(
        domains=domains,
        events=events,
        sessions=sessions,
        ua_parser=RuleBasedUserAgentParser(),
        bot_detector=KeywordBotDetector(),
        referrer_names=StaticReferrerNameTable(),
        geo=geo,
        live_tracker=live_tracker,
        identity=VisitorIdentity(settings.analytics.identity_salt),
        launch_date=settings.analytics.launch_date,
        session_timeout_minutes=settings.session.timeout_minutes,
        live_window_seconds=settings.analytics.live_window_seconds,
    )
