# ==============================================================================
# Valkey Live Visitor Tracker
# ==============================================================================
"""
Live visitor tracking in Valkey/Redis.

One sorted set per domain: member = visitor id, score = last event time
(Unix seconds). ZADD overwrites the score, so each visitor appears once and
"active since T" is a single ZCOUNT. Old members are trimmed on every write
and the key expires when a domain goes quiet.
"""

import logging
from datetime import datetime

import redis

from webstats.base.live_visitors import LiveVisitorTracker
from webstats.core.errors import DependencyError
from webstats.utils.config import get_settings
from webstats.utils.retry import PROBE, REDIS_RETRY_EXCEPTIONS, valkey_retry

logger = logging.getLogger(__name__)

# ==============================================================================
# Key Prefixes and TTLs
# ==============================================================================

LIVE_VISITORS_KEY_PREFIX = "webstats:live:"
LIVE_TTL_SECONDS = 300  # 5 minutes


def live_key(domain_id: str) -> str:
    return f"{LIVE_VISITORS_KEY_PREFIX}{domain_id}"


class ValkeyLiveVisitorTracker(LiveVisitorTracker):
    """
    Valkey implementation of LiveVisitorTracker.

    Configured with:
    - 10 second socket timeouts for fast failure detection
    - A short retry budget (PROBE policy), since record() runs on every ingest

    Client errors are raised as DependencyError.
    """

    def __init__(
        self,
        client: redis.Redis | None = None,
        url: str | None = None,
        ttl_seconds: int = LIVE_TTL_SECONDS,
        socket_timeout: int = 10,
    ):
        """
        Initialize the tracker.

        Args:
            client: Existing Redis client. If None, one is built from url.
            url: Valkey/Redis connection URL. If None, uses settings.
            ttl_seconds: How long activity is remembered (must exceed the
                         live window)
            socket_timeout: Socket timeout in seconds (default: 10)
        """
        if client is None:
            url = url or get_settings().valkey.url
            client = redis.from_url(
                url,
                decode_responses=True,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
                retry=valkey_retry(PROBE),
                retry_on_error=list(REDIS_RETRY_EXCEPTIONS),
            )
        self._client = client
        self._ttl_seconds = ttl_seconds

    @property
    def client(self) -> redis.Redis:
        """Get the underlying Redis client."""
        return self._client

    def record(self, domain_id: str, visitor_id: str, at: datetime) -> None:
        """
        Record activity for a visitor.

        Args:
            domain_id: Domain the event belongs to
            visitor_id: Unique visitor id
            at: Event time
        """
        key = live_key(domain_id)
        timestamp = at.timestamp()
        cutoff = timestamp - self._ttl_seconds

        try:
            # Never move a visitor's score backwards (late events)
            self._client.zadd(key, {visitor_id: timestamp}, gt=True)
            self._client.expire(key, self._ttl_seconds)
            self._client.zremrangebyscore(key, "-inf", cutoff)
        except redis.RedisError as e:
            raise DependencyError(f"Live visitor update failed for {domain_id}: {e}") from e

    def count(self, domain_id: str, since: datetime) -> int:
        """Count visitors whose latest event is at or after since."""
        try:
            return int(self._client.zcount(live_key(domain_id), since.timestamp(), "+inf"))
        except redis.RedisError as e:
            raise DependencyError(f"Live visitor count failed for {domain_id}: {e}") from e


def check_valkey_connection(url: str | None = None) -> bool:
    """
    Check if Valkey is reachable.

    Uses a shorter timeout (5 seconds) since this is just a health check.

    Returns:
        True if Valkey responds to ping, False otherwise
    """
    url = url or get_settings().valkey.url
    client = redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=5,
        socket_connect_timeout=5,
    )
    try:
        client.ping()
    except redis.RedisError as e:
        logger.debug("Valkey connection check failed: %s", e)
        return False
    finally:
        client.close()
    return True
