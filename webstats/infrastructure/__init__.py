# ==============================================================================
# Infrastructure Adapters
# ==============================================================================
"""
Adapters for external services (ports-and-adapters architecture).

This module contains concrete implementations of the ports in webstats.base:
- repositories/ - Database adapters (PostgreSQL)
- live_visitors.py - Live visitor tracking (Valkey)
- geo.py - Geo-IP lookup (MaxMind GeoIP2)
- useragent.py - User-agent parsing and bot detection
- referrer_names.py - Known referrer display names
"""

from webstats.infrastructure.geo import GeoIP2Lookup
from webstats.infrastructure.live_visitors import (
    ValkeyLiveVisitorTracker,
    check_valkey_connection,
)
from webstats.infrastructure.referrer_names import StaticReferrerNameTable
from webstats.infrastructure.repositories import (
    PostgreSQLDomainRepository,
    PostgreSQLEventRepository,
    PostgreSQLSessionRepository,
    check_postgresql_connection,
)
from webstats.infrastructure.useragent import KeywordBotDetector, RuleBasedUserAgentParser

__all__ = [
    # Enrichment
    "GeoIP2Lookup",
    "KeywordBotDetector",
    "RuleBasedUserAgentParser",
    "StaticReferrerNameTable",
    # Live visitors
    "ValkeyLiveVisitorTracker",
    "check_valkey_connection",
    # Repositories
    "PostgreSQLDomainRepository",
    "PostgreSQLEventRepository",
    "PostgreSQLSessionRepository",
    "check_postgresql_connection",
]
