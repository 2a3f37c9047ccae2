# ==============================================================================
# Aggregation Engine
# ==============================================================================
"""
Time series and categorical breakdowns over a filtered time window.

Both queries exclude bot traffic. Breakdowns are grouped in storage
(EventRepository.group_count); only label normalization and merging happen
here. Time series need per-event session data, so they scan the window.

Results are all-or-nothing: storage errors propagate and no partial result is
returned.
"""

import logging
from collections import Counter, defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta
from urllib.parse import urlsplit

from webstats.base.live_visitors import LiveVisitorTracker
from webstats.base.repositories import EventRepository, SessionRepository
from webstats.core.errors import DependencyError, ValidationError
from webstats.core.filters import FilterSet, Predicate
from webstats.core.models import (
    DIRECT_REFERRER,
    UNKNOWN,
    BreakdownRow,
    Dimension,
    GroupCount,
    TimeSeriesPoint,
)
from webstats.core.periods import TimeWindow, utc_now
from webstats.core.referrers import ReferrerNormalizer

logger = logging.getLogger(__name__)

DEFAULT_LIVE_WINDOW_SECONDS = 60


def parse_dimension(value: str | Dimension) -> Dimension:
    """
    Resolve a dimension name.

    Raises:
        ValidationError: If the name is not a known dimension
    """
    if isinstance(value, Dimension):
        return value
    try:
        return Dimension(str(value).strip().lower())
    except ValueError as e:
        choices = ", ".join(d.value for d in Dimension)
        raise ValidationError(f"Unknown dimension '{value}' (expected one of: {choices})") from e


def rank(counts: dict[str, int]) -> list[BreakdownRow]:
    """Rows sorted by count descending, then label ascending."""
    rows = [BreakdownRow(label=label, value=value) for label, value in counts.items()]
    rows.sort(key=lambda row: (-row.value, row.label))
    return rows


def page_label(href: str | None) -> str:
    if not href:
        return UNKNOWN
    try:
        return urlsplit(href).path or "/"
    except ValueError:
        return href


class Aggregator:
    """
    Query engine over stored events and sessions.

    Args:
        events: Event storage
        sessions: Session storage
        referrers: Referrer label normalizer
        live_tracker: Optional live visitor tracker; storage is queried if None
        clock: Returns the current UTC time
        live_window_seconds: Trailing window for live visitor counts
    """

    def __init__(
        self,
        events: EventRepository,
        sessions: SessionRepository,
        referrers: ReferrerNormalizer,
        live_tracker: LiveVisitorTracker | None = None,
        clock: Callable[[], datetime] = utc_now,
        live_window_seconds: int = DEFAULT_LIVE_WINDOW_SECONDS,
    ):
        self._events = events
        self._sessions = sessions
        self._referrers = referrers
        self._live_tracker = live_tracker
        self._clock = clock
        self._live_window = timedelta(seconds=live_window_seconds)

    # ==========================================================================
    # Time Series
    # ==========================================================================

    def time_series(
        self, domain_id: str, window: TimeWindow, predicate: Predicate
    ) -> list[TimeSeriesPoint]:
        """
        Compute per-bucket statistics for a window.

        Only events attached to a session are counted. A session counts in
        the bucket containing its created_at; a session bounces when it has
        exactly one event in the window.

        Args:
            domain_id: Domain to aggregate
            window: Resolved time window
            predicate: Compiled filters

        Returns:
            One point per bucket, oldest first
        """
        events = self._events.query(
            domain_id, predicate.exclude_bots(), window.start, window.end, require_session=True
        )
        sessions = self._sessions.get_many(sorted({e.session_id for e in events}))
        events_per_session = Counter(e.session_id for e in events)

        views: Counter = Counter()
        visitors: dict[datetime, set[str]] = defaultdict(set)
        for event in events:
            bucket = window.bucket_of(event.created_at)
            views[bucket] += 1
            if event.unique_visitor_id:
                visitors[bucket].add(event.unique_visitor_id)

        started: dict[datetime, list[str]] = defaultdict(list)
        for session in sessions.values():
            started[window.bucket_of(session.created_at)].append(session.id)

        points = []
        for bucket in window.bucket_starts():
            bucket_views = views[bucket]
            bucket_sessions = started.get(bucket, [])
            session_count = len(bucket_sessions)

            views_per_session = 0.0
            bounce_rate = 0.0
            if session_count:
                views_per_session = bucket_views / session_count
                bounces = sum(1 for sid in bucket_sessions if events_per_session[sid] == 1)
                bounce_rate = bounces / session_count

            points.append(
                TimeSeriesPoint(
                    date=bucket,
                    views=bucket_views,
                    unique_visitors=len(visitors.get(bucket, ())),
                    sessions=session_count,
                    views_per_session=views_per_session,
                    bounce_rate=bounce_rate,
                )
            )

        points.reverse()
        logger.debug(
            "Time series for %s: %d events, %d sessions, %d buckets",
            domain_id,
            len(events),
            len(sessions),
            len(points),
        )
        return points

    # ==========================================================================
    # Breakdowns
    # ==========================================================================

    def breakdown(
        self,
        domain_id: str,
        dimension: str | Dimension,
        window: TimeWindow,
        predicate: Predicate,
        filters: FilterSet | None = None,
    ) -> list[BreakdownRow]:
        """
        Rank the values of one dimension by event count.

        Args:
            domain_id: Domain to aggregate
            dimension: Dimension name (see models.Dimension)
            window: Resolved time window
            predicate: Compiled filters
            filters: The filters the predicate was compiled from

        Returns:
            Rows sorted by value descending, ties by label

        Raises:
            ValidationError: If the dimension is unknown
        """
        dimension = parse_dimension(dimension)
        groups = self._events.group_count(
            domain_id, predicate.exclude_bots(), window.start, window.end, dimension.column
        )

        if dimension == Dimension.REFERRERS:
            if filters is not None and filters.wants_direct_referrer:
                return self._direct_only(groups)
            return rank(self._referrer_counts(groups))
        if dimension == Dimension.PAGES:
            return rank(self._merge(groups, page_label))
        return rank(self._merge(groups, lambda value: value or UNKNOWN))

    def _referrer_counts(self, groups: list[GroupCount]) -> dict[str, int]:
        counts: dict[str, int] = defaultdict(int)
        for group in groups:
            label = self._referrers.normalize(group.value)
            if label is None:
                continue
            counts[label] += group.count
        return counts

    @staticmethod
    def _direct_only(groups: list[GroupCount]) -> list[BreakdownRow]:
        total = sum(group.count for group in groups if group.value is None)
        if not total:
            return []
        return [BreakdownRow(label=DIRECT_REFERRER, value=total)]

    @staticmethod
    def _merge(groups: list[GroupCount], to_label: Callable[[str | None], str]) -> dict[str, int]:
        counts: dict[str, int] = defaultdict(int)
        for group in groups:
            counts[to_label(group.value)] += group.count
        return counts

    # ==========================================================================
    # Live Visitors / Installation
    # ==========================================================================

    def live_visitor_count(self, domain_id: str) -> int:
        """Distinct visitors with an event in the trailing live window.

        Uses the live tracker when one is configured and reachable, otherwise
        counts stored events.
        """
        now = self._clock()
        since = now - self._live_window
        if self._live_tracker is not None:
            try:
                return self._live_tracker.count(domain_id, since)
            except DependencyError as e:
                logger.warning("Live visitor count falling back to storage: %s", e)

        events = self._events.query(domain_id, Predicate().exclude_bots(), since, now)
        return len({e.unique_visitor_id for e in events if e.unique_visitor_id})

    def has_events(self, domain_id: str) -> bool:
        """Check whether the tracking script has reported anything yet."""
        return self._events.exists_for_domain(domain_id)
