# ==============================================================================
# CLI Commands Module
# ==============================================================================
"""
CLI commands for webstats.

Commands are organized into separate modules for maintainability:
- shared.py: Common utilities, constants, and helpers
- config.py: Configuration display and service checks
- db.py: Schema initialization and reset
- domains.py: Tracked domain management
- events.py: Manual event ingestion
- analytics.py: Time series, breakdowns and live visitors
- sessions.py: Session reconciliation
"""

from webstats.cli.shared import (
    # Constants
    BOX_WIDTH,
    # Classes
    Box,
    Colors,
    Icons,
    # Aliases
    B,
    C,
    I,
    # Command helpers
    fail,
    open_service,
)

__all__ = [
    # Constants
    "BOX_WIDTH",
    # Classes
    "Box",
    "Colors",
    "Icons",
    # Aliases
    "B",
    "C",
    "I",
    # Command helpers
    "fail",
    "open_service",
]
