# ==============================================================================
# webstats Utilities
# ==============================================================================
"""
Shared utilities: configuration, retry policies, schema management.
"""

from webstats.utils.config import (
    AnalyticsSettings,
    GeoSettings,
    PostgresSettings,
    SessionSettings,
    Settings,
    ValkeySettings,
    get_settings,
)
from webstats.utils.db import (
    ensure_schema,
    reset_schema,
)

__all__ = [
    # Config
    "AnalyticsSettings",
    "GeoSettings",
    "PostgresSettings",
    "SessionSettings",
    "Settings",
    "ValkeySettings",
    "get_settings",
    # Database
    "ensure_schema",
    "reset_schema",
]
